# mathword/inline_segmenter.py
import logging
import re
from typing import List, Optional

from .latex_converter import DEFAULT_MAX_DEPTH, try_build
from .schemas import BoldText, FormattedRun, FormulaGroup, ItalicText, PlainText

logger = logging.getLogger(__name__)

# Display math is listed first so `$$` is never read as an empty inline formula.
MATH_SPAN_REGEX = re.compile(r'(\$\$[\s\S]*?\$\$|\$[^$]*?\$)')
EMPHASIS_REGEX = re.compile(r'(\*\*[^*]+\*\*|\*[^*]+\*)')


def _segment_emphasis(text: str) -> List[FormattedRun]:
    runs: List[FormattedRun] = []
    for piece in EMPHASIS_REGEX.split(text):
        if not piece:
            continue
        if piece.startswith('**') and piece.endswith('**') and len(piece) > 4:
            runs.append(BoldText(text=piece[2:-2]))
        elif piece.startswith('*') and piece.endswith('*') and len(piece) > 2:
            runs.append(ItalicText(text=piece[1:-1]))
        else:
            runs.append(PlainText(text=piece))
    return runs


def _segment_formula(span: str, max_depth: int) -> Optional[FormattedRun]:
    display = span.startswith('$$')
    delimiter_len = 2 if display else 1
    if span == '$$':
        # A lone `$$` that never closes.
        return PlainText(text=span)
    latex = span[delimiter_len:-delimiter_len].strip()
    if not latex:
        return None
    outcome = try_build(latex, max_depth)
    if outcome.type == 'fallback':
        return PlainText(text=span, error=outcome.reason)
    return FormulaGroup(nodes=outcome.nodes, display=display, source=latex)


def segment(line: str, max_depth: int = DEFAULT_MAX_DEPTH) -> List[FormattedRun]:
    """
    Splits one line of prose into styled text runs and formula groups.

    Formula spans that cannot be built come back as PlainText carrying the original delimited
    text and an `error` reason; this function never raises for malformed formulas.

    Args:
        line (str): A line of text with `$...$`, `$$...$$`, `**...**` and `*...*` markup.
        max_depth (int): Nesting limit handed to the node builder.

    Returns:
        List[FormattedRun]: The runs in reading order.
    """
    runs: List[FormattedRun] = []
    for idx, part in enumerate(MATH_SPAN_REGEX.split(line)):
        if not part:
            continue
        if idx % 2 == 1:
            formula = _segment_formula(part, max_depth)
            if formula is not None:
                runs.append(formula)
        else:
            runs.extend(_segment_emphasis(part))
    return runs
