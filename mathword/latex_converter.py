# mathword/latex_converter.py
import logging
import re
from types import MappingProxyType
from typing import Dict, List, NamedTuple, Optional, Tuple, Union

from .errors import FormulaDepthError
from .schemas import Fallback, Fraction, MathNode, Parsed, Radical, Run, SubScript, SuperScript

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 64

# --- 1. Symbol Table ---
GREEK_LETTERS = {'\\alpha': 'α', '\\beta': 'β', '\\gamma': 'γ', '\\delta': 'δ', '\\epsilon': 'ε', '\\varepsilon': 'ε',
                 '\\zeta': 'ζ', '\\eta': 'η', '\\theta': 'θ', '\\vartheta': 'ϑ', '\\iota': 'ι', '\\kappa': 'κ',
                 '\\lambda': 'λ', '\\mu': 'μ', '\\nu': 'ν', '\\xi': 'ξ', '\\pi': 'π', '\\rho': 'ρ', '\\sigma': 'σ',
                 '\\tau': 'τ', '\\upsilon': 'υ', '\\phi': 'φ', '\\varphi': 'φ', '\\chi': 'χ', '\\psi': 'ψ',
                 '\\omega': 'ω', '\\Gamma': 'Γ', '\\Delta': 'Δ', '\\Theta': 'Θ', '\\Lambda': 'Λ', '\\Xi': 'Ξ',
                 '\\Pi': 'Π', '\\Sigma': 'Σ', '\\Phi': 'Φ', '\\Psi': 'Ψ', '\\Omega': 'Ω'}
RELATIONS = {'\\le': '≤', '\\leq': '≤', '\\ge': '≥', '\\geq': '≥', '\\ne': '≠', '\\neq': '≠', '\\approx': '≈',
             '\\equiv': '≡', '\\sim': '∼', '\\pm': '±', '\\mp': '∓', '\\times': '×', '\\cdot': '·', '\\div': '÷',
             '\\ast': '*', '\\perp': '⊥', '\\parallel': '∥', '\\angle': '∠', '\\triangle': '△'}
ARROWS = {'\\to': '→', '\\rightarrow': '→', '\\leftarrow': '←', '\\Rightarrow': '⇒', '\\implies': '⇒',
          '\\leftrightarrow': '↔', '\\Leftrightarrow': '⇔', '\\iff': '⇔'}
SETS = {'\\in': '∈', '\\notin': '∉', '\\subset': '⊂', '\\subseteq': '⊆', '\\supset': '⊃', '\\cup': '∪',
        '\\cap': '∩', '\\emptyset': '∅', '\\varnothing': '∅', '\\forall': '∀', '\\exists': '∃',
        '\\partial': '∂', '\\nabla': '∇', '\\infty': '∞',
        '\\mathbb{N}': 'ℕ', '\\mathbb{Z}': 'ℤ', '\\mathbb{Q}': 'ℚ', '\\mathbb{R}': 'ℝ', '\\mathbb{C}': 'ℂ'}
DEGREES = {'\\degrees': '°', '\\circ': '°', '\\deg': '°'}
FUNCTION_NAMES = {'\\sin': 'sin', '\\cos': 'cos', '\\tan': 'tan', '\\cot': 'cot', '\\arcsin': 'arcsin',
                  '\\arccos': 'arccos', '\\arctan': 'arctan', '\\ln': 'ln', '\\log': 'log', '\\lim': 'lim',
                  '\\min': 'min', '\\max': 'max', '\\exp': 'exp'}
SPACING = {'\\quad': '  ', '\\qquad': '    ', '\\;': ' ', '\\,': ' ', '\\ ': ' ', '\\!': '',
           '\\{': '{', '\\}': '}', '\\%': '%', '\\ldots': '…', '\\cdots': '⋯', '\\dots': '…'}

SYMBOL_TABLE = MappingProxyType({**GREEK_LETTERS, **RELATIONS, **ARROWS, **SETS, **DEGREES,
                                 **FUNCTION_NAMES, **SPACING})

# Longest token first; alphabetic tokens must end at a command boundary.
_SYMBOL_PATTERN = re.compile('|'.join(
    re.escape(token) + ('(?![a-zA-Z])' if token[-1].isalpha() else '')
    for token in sorted(SYMBOL_TABLE, key=len, reverse=True)
))
_COMMAND_NAME = re.compile(r'\\([a-zA-Z]+)')

ANGLE_MARK = '∠'
COMBINING_OVERLINE = '\u0305'
CASES_BEGIN = '\\begin{cases}'
CASES_END = '\\end{cases}'
TEXT_COMMANDS = {'text', 'textrm', 'mathrm', 'operatorname'}
FRACTION_COMMANDS = {'frac', 'dfrac', 'tfrac'}


def lookup(token: str) -> Optional[str]:
    return SYMBOL_TABLE.get(token)


def substitute_symbols(text: str) -> str:
    """Replaces every known command token in a single pass, preferring the longest token."""
    if '\\' not in text:
        return text
    return _SYMBOL_PATTERN.sub(lambda m: SYMBOL_TABLE[m.group(0)], text)


# --- 2. Brace Extractor ---
class BracedSpan(NamedTuple):
    content: str
    next_index: int


def extract_braced(text: str, start: int) -> Optional[BracedSpan]:
    """
    Returns the content of the brace group opening at `start`.

    Args:
        text (str): The formula text.
        start (int): Index of the opening brace.

    Returns:
        Optional[BracedSpan]: The content between the matching braces and the index just past the
        closing brace, or None when `text[start]` is not '{' or the group never closes.
    """
    if start >= len(text) or text[start] != '{':
        return None
    depth = 0
    for i in range(start, len(text)):
        if text[i] == '{':
            depth += 1
        elif text[i] == '}':
            depth -= 1
            if depth == 0:
                return BracedSpan(text[start + 1:i], i + 1)
    return None


def match_braces(text: str) -> Dict[int, int]:
    """Maps the index of every balanced '{' to the index of its closing '}' in one pass."""
    pairs, stack = {}, []
    for i, char in enumerate(text):
        if char == '{':
            stack.append(i)
        elif char == '}' and stack:
            pairs[stack.pop()] = i
    return pairs


def _skip_spaces(text: str, index: int) -> int:
    while index < len(text) and text[index] == ' ':
        index += 1
    return index


# --- 3. Node Builder ---
class _NodeBuilder:
    """Scans one formula string; instances are never shared between calls."""

    def __init__(self, latex: str, depth: int, max_depth: int):
        if depth > max_depth:
            raise FormulaDepthError(max_depth)
        self.latex, self.depth, self.max_depth = latex, depth, max_depth
        self.nodes: List[MathNode] = []
        self.buffer: List[str] = []
        self.pos = 0
        self.closing = match_braces(latex)
        self._last_find: Dict[str, Tuple[int, int]] = {}

    def _build(self, latex: str) -> List[MathNode]:
        return _NodeBuilder(latex, self.depth + 1, self.max_depth).parse()

    def _flush(self):
        if not self.buffer:
            return
        text = substitute_symbols(''.join(self.buffer)).replace('\\', '')
        self.buffer = []
        if text:
            self.nodes.append(Run(text=text))

    def parse(self) -> List[MathNode]:
        latex = self.latex
        while self.pos < len(latex):
            char = latex[self.pos]
            if char == '\\':
                self._flush()
                if not self._parse_command():
                    self.buffer.append(char)
                    self.pos += 1
            elif char in '^_':
                self._flush()
                self._parse_script(char)
            else:
                self.buffer.append(char)
                self.pos += 1
        self._flush()
        return self.nodes

    def _group_at(self, index: int) -> Optional[BracedSpan]:
        close = self.closing.get(index)
        if close is None:
            return None
        return BracedSpan(self.latex[index + 1:close], close + 1)

    def _braced_arg(self, index: int) -> Optional[BracedSpan]:
        return self._group_at(_skip_spaces(self.latex, index))

    def _find(self, token: str, start: int) -> int:
        """`str.find` that reuses the previous answer for the same token while scanning forward."""
        previous = self._last_find.get(token)
        if previous and previous[0] <= start and (previous[1] == -1 or start <= previous[1]):
            return previous[1]
        index = self.latex.find(token, start)
        self._last_find[token] = (start, index)
        return index

    def _parse_command(self) -> bool:
        """Handles a structural command at `pos`; False means the caller should treat it as text."""
        latex, start = self.latex, self.pos
        match = _COMMAND_NAME.match(latex, start)
        if not match:
            return False
        name, after = match.group(1), match.end()

        if name == 'widehat':
            arg = self._braced_arg(after)
            if arg:
                self.nodes.append(Run(text=ANGLE_MARK))
                self.nodes.extend(self._build(arg.content))
                self.pos = arg.next_index
                return True
        elif name == 'begin' and latex.startswith(CASES_BEGIN, start):
            end = self._find(CASES_END, start)
            if end != -1:
                self._parse_cases(latex[start + len(CASES_BEGIN):end])
                self.pos = end + len(CASES_END)
                return True
        elif name in FRACTION_COMMANDS:
            numerator = self._braced_arg(after)
            if numerator:
                denominator = self._braced_arg(numerator.next_index)
                if denominator:
                    self.nodes.append(Fraction(numerator=self._build(numerator.content),
                                               denominator=self._build(denominator.content)))
                    self.pos = denominator.next_index
                    return True
        elif name == 'sqrt':
            return self._parse_sqrt(after)
        elif name in ('left', 'right'):
            self.pos = after + 1 if latex.startswith('.', after) else after
            return True
        elif name in TEXT_COMMANDS:
            arg = self._braced_arg(after)
            if arg:
                text = arg.content.replace('\\', '')
                if text:
                    self.nodes.append(Run(text=text))
                self.pos = arg.next_index
                return True
        elif name == 'overline':
            arg = self._braced_arg(after)
            if arg:
                self.nodes.extend(self._build(arg.content))
                self.nodes.append(Run(text=COMBINING_OVERLINE))
                self.pos = arg.next_index
                return True
        return False

    def _parse_cases(self, body: str):
        lines = [line.replace('&', ' ').strip() for line in body.split('\\\\')]
        lines = [line for line in lines if line]
        self.nodes.append(Run(text='{ '))
        for idx, line in enumerate(lines):
            self.nodes.extend(self._build(line))
            if idx < len(lines) - 1:
                self.nodes.append(Run(text=' ; '))

    def _parse_sqrt(self, index: int) -> bool:
        latex = self.latex
        degree = None
        index = _skip_spaces(latex, index)
        if latex.startswith('[', index):
            close = self._find(']', index)
            if close == -1:
                return False
            degree = self._build(latex[index + 1:close]) or None
            index = close + 1
        body = self._braced_arg(index)
        if not body:
            return False
        self.nodes.append(Radical(degree=degree, children=self._build(body.content)))
        self.pos = body.next_index
        return True

    def _parse_script(self, operator: str):
        latex = self.latex
        base = self.nodes.pop() if self.nodes else None
        index = _skip_spaces(latex, self.pos + 1)
        script: List[MathNode] = []
        if index < len(latex):
            if latex[index] == '{':
                group = self._group_at(index)
                if group is None:
                    # Unbalanced script group: keep the base and read the operator as text.
                    if base is not None:
                        self.nodes.append(base)
                    self.buffer.append(operator)
                    self.pos += 1
                    return
                script = self._build(group.content)
                index = group.next_index
            elif latex[index] == '\\':
                match = _COMMAND_NAME.match(latex, index)
                command = match.group(0) if match else latex[index:index + 2]
                script = self._build(command)
                index += len(command)
            else:
                script = [Run(text=latex[index])]
                index += 1
        node_type = SuperScript if operator == '^' else SubScript
        self.nodes.append(node_type(base=(base or Run(text=''),), script=script))
        self.pos = index


def build_nodes(latex: str, max_depth: int = DEFAULT_MAX_DEPTH) -> List[MathNode]:
    """
    Parses a formula into an ordered list of math nodes.

    Unknown commands and malformed arguments degrade to literal text. Nesting deeper than
    `max_depth` raises FormulaDepthError.

    Args:
        latex (str): The formula without its `$` delimiters.
        max_depth (int): Maximum number of nested argument levels.

    Returns:
        List[MathNode]: The nodes in reading order.
    """
    return _NodeBuilder(latex, 0, max_depth).parse()


def try_build(latex: str, max_depth: int = DEFAULT_MAX_DEPTH) -> Union[Parsed, Fallback]:
    try:
        return Parsed(nodes=build_nodes(latex, max_depth))
    except Exception as e:
        logger.warning("Formula fell back to text (%s): %r", type(e).__name__, latex[:80])
        return Fallback(text=latex, reason=f"{type(e).__name__}: {e}")


def nodes_to_text(nodes) -> str:
    """Flattens a node tree to its reading-order text, dropping structure."""
    parts = []
    for node in nodes:
        if node.type == 'run':
            parts.append(node.text)
        elif node.type == 'fraction':
            parts.append(f"({nodes_to_text(node.numerator)})/({nodes_to_text(node.denominator)})")
        elif node.type == 'superscript':
            parts.append(f"{nodes_to_text(node.base)}^({nodes_to_text(node.script)})")
        elif node.type == 'subscript':
            parts.append(f"{nodes_to_text(node.base)}_({nodes_to_text(node.script)})")
        elif node.type == 'radical':
            degree = f"[{nodes_to_text(node.degree)}]" if node.degree else ""
            parts.append(f"√{degree}({nodes_to_text(node.children)})")
    return "".join(parts)
