# mathword/doc_generator.py
import io
import logging
import re
from datetime import date
from typing import Dict, Iterable, List, Optional

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH, WD_BREAK
from docx.oxml.ns import qn
from docx.shared import Emu, Pt, RGBColor

from .config import get_settings
from .inline_segmenter import segment
from .omml_builder import build_omath, build_omath_para
from .schemas import FormattedRun, ImageAsset

logger = logging.getLogger(__name__)

ERROR_COLOR = RGBColor(0xFF, 0x00, 0x00)
IMAGE_ERROR_COLOR = RGBColor(0xAA, 0x00, 0x00)
EMU_PER_PIXEL = 9525  # 96 dpi

IMAGE_PLACEHOLDER_REGEX = re.compile(r'^\[\[IMG:\d+:\d+\]\]$')
PAGE_BREAK_REGEX = re.compile(r'^(---\s*(Trang|Page)\s*\d+.*|---|====|========)$', re.IGNORECASE)
TABLE_SEPARATOR_REGEX = re.compile(r'^\|?\s*:?-+:?\s*(\|\s*:?-+:?\s*)*\|?$')
HEADING_PREFIXES = (('### ', 3), ('## ', 2), ('# ', 1))


def add_formatted_runs(paragraph, runs: Iterable[FormattedRun]):
    """
    Appends segmenter output to a python-docx paragraph.

    Args:
        paragraph: python-docx的Paragraph对象。
        runs (Iterable[FormattedRun]): Output of `segment`.
    """
    for item in runs:
        if item.type == 'formula':
            math_el = build_omath_para(item.nodes) if item.display else build_omath(item.nodes)
            paragraph._p.append(math_el)
        elif item.type == 'bold':
            paragraph.add_run(item.text).bold = True
        elif item.type == 'italic':
            paragraph.add_run(item.text).italic = True
        else:
            run = paragraph.add_run(item.text)
            if item.error:
                run.font.color.rgb = ERROR_COLOR


def parse_table_rows(table_lines: List[str]) -> List[List[str]]:
    """Splits markdown table lines into cell texts, dropping `|---|` separator rows."""
    rows = []
    for line in table_lines:
        stripped = line.strip()
        if not stripped or TABLE_SEPARATOR_REGEX.match(stripped):
            continue
        if stripped.startswith('|'):
            stripped = stripped[1:]
        if stripped.endswith('|'):
            stripped = stripped[:-1]
        cells = [cell.strip() for cell in stripped.split('|')]
        if cells:
            rows.append(cells)
    return rows


def add_table_from_lines(doc, table_lines: List[str], max_depth: int):
    """
    Adds a bordered table built from markdown table lines; cells may contain formulas.

    Args:
        doc: python-docx的Document对象。
        table_lines (List[str]): Consecutive lines starting with '|'.
        max_depth (int): Formula nesting limit.
    """
    rows = parse_table_rows(table_lines)
    if not rows:
        logger.warning("Table block has no data rows, skipped.")
        return
    cols = max(len(row) for row in rows)
    table = doc.add_table(rows=0, cols=cols, style='Table Grid')
    for row_data in rows:
        cells = table.add_row().cells
        for j, cell_text in enumerate(row_data):
            paragraph = cells[j].paragraphs[0]
            paragraph.alignment = WD_ALIGN_PARAGRAPH.CENTER
            add_formatted_runs(paragraph, segment(cell_text, max_depth))


def add_image_from_asset(doc, placeholder: str, image: Optional[ImageAsset]):
    """
    Embeds the image registered for a placeholder line, centered in its own paragraph.

    Args:
        doc: python-docx的Document对象。
        placeholder (str): The `[[IMG:page:id]]` line.
        image (Optional[ImageAsset]): The matching image, if any.
    """
    if image is None or not image.data:
        logger.warning("No image data for placeholder %s, skipped.", placeholder)
        return
    paragraph = doc.add_paragraph()
    paragraph.alignment = WD_ALIGN_PARAGRAPH.CENTER
    p_format = paragraph.paragraph_format
    p_format.space_before = Pt(10)
    p_format.space_after = Pt(10)
    try:
        paragraph.add_run().add_picture(io.BytesIO(image.data),
                                        width=Emu(image.width * EMU_PER_PIXEL),
                                        height=Emu(image.height * EMU_PER_PIXEL))
        logger.info("Embedded image %s (%dx%dpx)", placeholder, image.width, image.height)
    except Exception as e:
        logger.error("Failed to embed image %s: %s", placeholder, e)
        paragraph.clear()
        run = paragraph.add_run(f"[Image could not be embedded: {placeholder}]")
        run.italic = True
        run.font.color.rgb = IMAGE_ERROR_COLOR


def add_page_break(doc):
    doc.add_paragraph().add_run().add_break(WD_BREAK.PAGE)


def add_text_paragraph(doc, line: str, max_depth: int):
    """Adds a justified body paragraph with inline formatting and formulas."""
    paragraph = doc.add_paragraph()
    p_format = paragraph.paragraph_format
    p_format.alignment = WD_ALIGN_PARAGRAPH.JUSTIFY
    p_format.space_after = Pt(6)
    p_format.line_spacing = 1.5
    add_formatted_runs(paragraph, segment(line, max_depth))


def apply_default_font(doc, font_name: str, font_size: float):
    style = doc.styles['Normal']
    style.font.name = font_name
    style.font.size = Pt(font_size)
    # East Asian font slot too.
    rpr = style.element.get_or_add_rPr()
    rpr.get_or_add_rFonts().set(qn('w:eastAsia'), font_name)


def create_document(content: str, images: Optional[Iterable[ImageAsset]] = None, *,
                    title: Optional[str] = None, font_name: Optional[str] = None,
                    font_size: Optional[float] = None, max_depth: Optional[int] = None,
                    include_header: bool = True) -> bytes:
    """
    Builds a Word document from corrected text with `$...$` formulas.

    Each line becomes a heading, page break, table row, image or justified paragraph.
    Formulas are written as native Office Math objects.

    Args:
        content (str): The text, one paragraph per line.
        images (Optional[Iterable[ImageAsset]]): Images referenced by `[[IMG:page:id]]` lines.
        title (Optional[str]): Title heading; defaults to the configured document title.
        font_name (Optional[str]): Body font; defaults to the configured font.
        font_size (Optional[float]): Body font size in points.
        max_depth (Optional[int]): Formula nesting limit; defaults to the configured limit.
        include_header (bool): Whether to write the title and creation date.

    Returns:
        bytes: The `.docx` file content.
    """
    settings = get_settings()
    max_depth = max_depth or settings.math_max_depth
    image_map: Dict[str, ImageAsset] = {img.placeholder: img for img in images or []}

    doc = Document()
    apply_default_font(doc, font_name or settings.doc_font_name, font_size or settings.doc_font_size)

    if include_header:
        heading = doc.add_heading(title or settings.doc_title, level=1)
        heading.alignment = WD_ALIGN_PARAGRAPH.CENTER
        heading.paragraph_format.space_after = Pt(10)
        date_p = doc.add_paragraph(f"Ngày tạo: {date.today().strftime('%d/%m/%Y')}")
        date_p.alignment = WD_ALIGN_PARAGRAPH.CENTER
        date_p.paragraph_format.space_after = Pt(20)

    table_buffer: List[str] = []
    for raw in content.split('\n'):
        line = raw.strip()

        if line.startswith('|'):
            table_buffer.append(raw)
            continue
        if table_buffer:
            add_table_from_lines(doc, table_buffer, max_depth)
            table_buffer = []

        if IMAGE_PLACEHOLDER_REGEX.match(line):
            add_image_from_asset(doc, line, image_map.get(line))
            continue

        for prefix, level in HEADING_PREFIXES:
            if line.startswith(prefix):
                doc.add_heading(line[len(prefix):], level=level)
                break
        else:
            if PAGE_BREAK_REGEX.match(line):
                add_page_break(doc)
            elif line:
                add_text_paragraph(doc, raw, max_depth)
            else:
                doc.add_paragraph('')

    if table_buffer:
        add_table_from_lines(doc, table_buffer, max_depth)

    stream = io.BytesIO()
    doc.save(stream)
    return stream.getvalue()
