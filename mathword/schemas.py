# mathword/schemas.py

from typing import Annotated, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

# ==============================================================================
# SECTION 1: MATH NODE TREE (Node Builder output)
# ==============================================================================
class MathNodeBase(BaseModel):
    model_config = ConfigDict(frozen=True)


class Run(MathNodeBase):
    """Literal math text after symbol substitution."""
    type: Literal['run'] = 'run'
    text: str


class Fraction(MathNodeBase):
    type: Literal['fraction'] = 'fraction'
    numerator: Tuple['MathNode', ...]
    denominator: Tuple['MathNode', ...]


class SuperScript(MathNodeBase):
    type: Literal['superscript'] = 'superscript'
    base: Tuple['MathNode', ...]
    script: Tuple['MathNode', ...]


class SubScript(MathNodeBase):
    type: Literal['subscript'] = 'subscript'
    base: Tuple['MathNode', ...]
    script: Tuple['MathNode', ...]


class Radical(MathNodeBase):
    """A root; `degree` is None for a plain square root."""
    type: Literal['radical'] = 'radical'
    degree: Optional[Tuple['MathNode', ...]] = None
    children: Tuple['MathNode', ...]


MathNode = Annotated[Union[Run, Fraction, SuperScript, SubScript, Radical], Field(discriminator='type')]

for _model in (Fraction, SuperScript, SubScript, Radical):
    _model.model_rebuild()


# ==============================================================================
# SECTION 2: BUILD OUTCOME
# ==============================================================================
class Parsed(MathNodeBase):
    type: Literal['parsed'] = 'parsed'
    nodes: Tuple[MathNode, ...]


class Fallback(MathNodeBase):
    """The formula could not be structured and should be shown as literal text."""
    type: Literal['fallback'] = 'fallback'
    text: str
    reason: str


ParseOutcome = Annotated[Union[Parsed, Fallback], Field(discriminator='type')]


# ==============================================================================
# SECTION 3: FORMATTED RUNS (Inline Segmenter output)
# ==============================================================================
class PlainText(MathNodeBase):
    type: Literal['plain'] = 'plain'
    text: str
    error: Optional[str] = None  # set when this is a formula that failed to build


class BoldText(MathNodeBase):
    type: Literal['bold'] = 'bold'
    text: str


class ItalicText(MathNodeBase):
    type: Literal['italic'] = 'italic'
    text: str


class FormulaGroup(MathNodeBase):
    type: Literal['formula'] = 'formula'
    nodes: Tuple[MathNode, ...]
    display: bool = False
    source: str = ''


FormattedRun = Annotated[Union[PlainText, BoldText, ItalicText, FormulaGroup], Field(discriminator='type')]


# ==============================================================================
# SECTION 4: DOCUMENT ASSETS AND API PAYLOADS
# ==============================================================================
class ImageAsset(BaseModel):
    """An image cropped from the source page, referenced in text by its placeholder."""
    placeholder: str = Field(..., pattern=r'^\[\[IMG:\d+:\d+\]\]$')
    data: bytes
    width: int = Field(..., gt=0, description="Width in pixels.")
    height: int = Field(..., gt=0, description="Height in pixels.")


class FormulaRequest(BaseModel): latex: str
class SegmentRequest(BaseModel): text: str
class CorrectRequest(BaseModel): text: str


class ExportRequest(BaseModel):
    text: str
    correct: bool = False
    file_name: str = "converted"


class SegmentedLine(BaseModel):
    line: str
    runs: List[FormattedRun]
