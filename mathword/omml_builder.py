# mathword/omml_builder.py
from typing import Iterable, List, Optional

from lxml import etree

from .schemas import MathNode

# --- 1. OMML 命名空间和常量 ---
M_NAMESPACE = "http://schemas.openxmlformats.org/officeDocument/2006/math"
W_NAMESPACE = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
M_PREFIX = "{%s}" % M_NAMESPACE
XML_SPACE = "{http://www.w3.org/XML/1998/namespace}space"
NSMAP = {'m': M_NAMESPACE, 'w': W_NAMESPACE}


def _m_tag(tag_name: str) -> str: return M_PREFIX + tag_name


# --- 2. Element Builders ---
def _create_run_omml(text: str) -> etree._Element:
    mr = etree.Element(_m_tag('r'), nsmap=NSMAP)
    mt = etree.SubElement(mr, _m_tag('t'))
    if text != text.strip(): mt.set(XML_SPACE, 'preserve')
    mt.text = text
    return mr


def _create_fraction_omml(num: List[etree._Element], den: List[etree._Element]) -> etree._Element:
    mf = etree.Element(_m_tag('f'), nsmap=NSMAP)
    mnum = etree.SubElement(mf, _m_tag('num'))
    mden = etree.SubElement(mf, _m_tag('den'))
    for el in num: mnum.append(el)
    for el in den: mden.append(el)
    return mf


def _create_radical_omml(degree: Optional[List[etree._Element]], base: List[etree._Element]) -> etree._Element:
    mrad = etree.Element(_m_tag('rad'), nsmap=NSMAP)
    mradPr = etree.SubElement(mrad, _m_tag('radPr'))
    if not degree:
        mdegHide = etree.SubElement(mradPr, _m_tag('degHide'))
        mdegHide.set(_m_tag('val'), '1')
    mdeg = etree.SubElement(mrad, _m_tag('deg'))
    for el in degree or []: mdeg.append(el)
    me = etree.SubElement(mrad, _m_tag('e'))
    for el in base: me.append(el)
    return mrad


def _create_script_omml(kind: str, base: List[etree._Element], script: List[etree._Element]) -> etree._Element:
    # kind is 'sup' or 'sub'; the wrapper is m:sSup / m:sSub.
    wrapper = etree.Element(_m_tag('sSup' if kind == 'sup' else 'sSub'), nsmap=NSMAP)
    me = etree.SubElement(wrapper, _m_tag('e'))
    mscript = etree.SubElement(wrapper, _m_tag(kind))
    for el in base: me.append(el)
    for el in script: mscript.append(el)
    return wrapper


# --- 3. Node tree -> OMML ---
def node_to_omml(node: MathNode) -> etree._Element:
    if node.type == 'run':
        return _create_run_omml(node.text)
    if node.type == 'fraction':
        return _create_fraction_omml(nodes_to_omml(node.numerator), nodes_to_omml(node.denominator))
    if node.type == 'superscript':
        return _create_script_omml('sup', nodes_to_omml(node.base), nodes_to_omml(node.script))
    if node.type == 'subscript':
        return _create_script_omml('sub', nodes_to_omml(node.base), nodes_to_omml(node.script))
    if node.type == 'radical':
        degree = nodes_to_omml(node.degree) if node.degree else None
        return _create_radical_omml(degree, nodes_to_omml(node.children))
    raise ValueError(f"Unknown math node type: {node.type!r}")


def nodes_to_omml(nodes: Iterable[MathNode]) -> List[etree._Element]:
    return [node_to_omml(node) for node in nodes]


def build_omath(nodes: Iterable[MathNode]) -> etree._Element:
    """Wraps a node sequence in an inline `m:oMath` element."""
    omath = etree.Element(_m_tag('oMath'), nsmap=NSMAP)
    for el in nodes_to_omml(nodes):
        omath.append(el)
    return omath


def build_omath_para(nodes: Iterable[MathNode], alignment: str = 'center') -> etree._Element:
    """
    Wraps a node sequence in a display `m:oMathPara` block.

    Args:
        nodes (Iterable[MathNode]): The formula nodes.
        alignment (str): One of 'left', 'center', 'right'.

    Returns:
        etree._Element: The `m:oMathPara` element, ready to append to a `w:p`.
    """
    omml_para = etree.Element(_m_tag('oMathPara'), nsmap=NSMAP)
    omml_para_pr = etree.SubElement(omml_para, _m_tag('oMathParaPr'))
    jc = etree.SubElement(omml_para_pr, _m_tag('jc'))
    jc.set(_m_tag('val'), alignment)
    omml_para.append(build_omath(nodes))
    return omml_para
