"""
Node tree -> OMML mapping tests.
"""
from lxml import etree

from mathword.latex_converter import build_nodes
from mathword.omml_builder import M_NAMESPACE, build_omath, build_omath_para, nodes_to_omml

NS = {'m': M_NAMESPACE}


def _local(el):
    return etree.QName(el).localname


def test_run_maps_to_text():
    (el,) = nodes_to_omml(build_nodes('x+1'))
    assert _local(el) == 'r'
    assert el.find('m:t', NS).text == 'x+1'


def test_run_with_outer_spaces_preserves_them():
    (el,) = nodes_to_omml(build_nodes(' ; '))
    t = el.find('m:t', NS)
    assert t.get('{http://www.w3.org/XML/1998/namespace}space') == 'preserve'


def test_fraction_structure():
    (el,) = nodes_to_omml(build_nodes('\\frac{a}{b}'))
    assert _local(el) == 'f'
    assert el.xpath('string(m:num//m:t)', namespaces=NS) == 'a'
    assert el.xpath('string(m:den//m:t)', namespaces=NS) == 'b'


def test_superscript_and_subscript():
    sup, sub = nodes_to_omml(build_nodes('x^2y_i'))
    assert _local(sup) == 'sSup'
    assert sup.xpath('string(m:sup//m:t)', namespaces=NS) == '2'
    assert _local(sub) == 'sSub'
    assert sub.xpath('string(m:e//m:t)', namespaces=NS) == 'y'
    assert sub.xpath('string(m:sub//m:t)', namespaces=NS) == 'i'


def test_square_root_hides_degree():
    (el,) = nodes_to_omml(build_nodes('\\sqrt{2}'))
    assert el.find('m:radPr/m:degHide', NS) is not None
    assert el.xpath('string(m:e//m:t)', namespaces=NS) == '2'


def test_nth_root_keeps_degree():
    (el,) = nodes_to_omml(build_nodes('\\sqrt[3]{8}'))
    assert el.find('m:radPr/m:degHide', NS) is None
    assert el.xpath('string(m:deg//m:t)', namespaces=NS) == '3'


def test_nesting_is_preserved():
    omath = build_omath(build_nodes('\\frac{x^{2}}{\\sqrt{y}}'))
    assert omath.xpath('count(m:f/m:num/m:sSup)', namespaces=NS) == 1
    assert omath.xpath('count(m:f/m:den/m:rad)', namespaces=NS) == 1


def test_display_block_alignment():
    para = build_omath_para(build_nodes('x'), alignment='left')
    assert _local(para) == 'oMathPara'
    assert para.find('m:oMathParaPr/m:jc', NS).get('{%s}val' % M_NAMESPACE) == 'left'
    assert para.find('m:oMath', NS) is not None
