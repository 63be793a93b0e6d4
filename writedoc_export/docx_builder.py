"""
Word-processor export with python-docx.

The structural IR maps onto a Document: the title becomes a Title paragraph,
headings keep their level, list items become indented paragraphs with their
marker, tables use the plain 'Table Grid' style with shaded header cells and
callouts become shaded paragraphs. Unresolved placeholders keep a yellow
highlight. When the container cannot be produced the chain falls back to a
plain-text blob, so callers must trust the returned media type.
"""
import asyncio
import io
import logging
import zipfile

from bs4 import BeautifulSoup
from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH, WD_COLOR_INDEX
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import Inches, Pt, RGBColor

from writedoc_export.colors import hex_fill, try_parse_color
from writedoc_export.models import Theme
from writedoc_export.strategies import DOCX_MEDIA_TYPE, TEXT_MEDIA_TYPE, ExportBlob
from writedoc_export.structure import Block, Run, StructuredDocument, build_document, extract_plain_text
from writedoc_export.theming import export_root

logger = logging.getLogger(__name__)

HIGHLIGHT_FILL = "FFEB3B"
LIST_INDENT = Inches(0.25)


def validate_docx_file(docx_bytes: bytes) -> bool:
    """Validate that the bytes represent a valid DOCX file"""
    try:
        if len(docx_bytes) == 0:
            return False

        # DOCX files are ZIP archives
        if not docx_bytes.startswith(b'PK'):
            return False

        with zipfile.ZipFile(io.BytesIO(docx_bytes), 'r') as zip_file:
            required_files = ['[Content_Types].xml', 'word/document.xml']
            file_list = zip_file.namelist()

            for required_file in required_files:
                if required_file not in file_list:
                    return False

        return True
    except zipfile.BadZipFile as e:
        logger.warning("DOCX validation failed: %s", e)
        return False


def _rgb(value: str) -> RGBColor:
    return RGBColor.from_string(hex_fill(value))


def _shading(fill: str):
    shd = OxmlElement('w:shd')
    shd.set(qn('w:val'), 'clear')
    shd.set(qn('w:color'), 'auto')
    shd.set(qn('w:fill'), fill)
    return shd


def shade_cell(cell, fill: str) -> None:
    cell._tc.get_or_add_tcPr().append(_shading(fill))


def shade_paragraph(paragraph, fill: str) -> None:
    paragraph._p.get_or_add_pPr().append(_shading(fill))


def _add_page_footer(doc) -> None:
    """Footer reading "Page N of M" using PAGE and NUMPAGES fields"""
    footer_para = doc.sections[0].footer.paragraphs[0]
    footer_para.alignment = WD_ALIGN_PARAGRAPH.CENTER
    footer_para.add_run("Page ")
    _add_field(footer_para, "PAGE")
    footer_para.add_run(" of ")
    _add_field(footer_para, "NUMPAGES")
    for run in footer_para.runs:
        run.font.size = Pt(8)


def _add_field(paragraph, instruction: str) -> None:
    run_element = OxmlElement('w:r')

    fldChar1 = OxmlElement('w:fldChar')
    fldChar1.set(qn('w:fldCharType'), 'begin')
    run_element.append(fldChar1)

    instrText = OxmlElement('w:instrText')
    instrText.set(qn('xml:space'), 'preserve')
    instrText.text = instruction
    run_element.append(instrText)

    fldChar2 = OxmlElement('w:fldChar')
    fldChar2.set(qn('w:fldCharType'), 'end')
    run_element.append(fldChar2)

    paragraph._p.append(run_element)


def _primary_font(font_family: str) -> str:
    first = (font_family or "").split(",")[0].strip().strip("'")
    generic = {"sans-serif": "Arial", "serif": "Times New Roman", "monospace": "Courier New"}
    return generic.get(first.lower(), first) or "Arial"


def add_runs(paragraph, runs, color=None, bold=False) -> None:
    for item in runs:
        if item.text == "\n":
            paragraph.add_run().add_break()
            continue
        run = paragraph.add_run(item.text)
        run.bold = bold or item.bold or None
        if item.placeholder:
            run.font.highlight_color = WD_COLOR_INDEX.YELLOW
            run.font.color.rgb = RGBColor(0, 0, 0)
        elif item.color and try_parse_color(item.color):
            run.font.color.rgb = _rgb(item.color)
        elif color:
            run.font.color.rgb = _rgb(color)


class DocxBuilder:
    def __init__(self, document: StructuredDocument, theme: Theme):
        self.document = document
        self.theme = theme
        self.doc = Document()

    def title(self, block: Block) -> None:
        paragraph = self.doc.add_heading(level=0)
        add_runs(paragraph, block.runs, color=self.theme.primary_color)

    def heading(self, block: Block) -> None:
        paragraph = self.doc.add_heading(level=min(max(block.level, 1), 9))
        add_runs(paragraph, block.runs, color=self.theme.primary_color)

    def paragraph(self, block: Block) -> None:
        add_runs(self.doc.add_paragraph(), block.runs)

    def bullet_list(self, block: Block) -> None:
        for item in block.items:
            paragraph = self.doc.add_paragraph()
            paragraph.paragraph_format.left_indent = LIST_INDENT * (item.depth + 1)
            paragraph.add_run(f"{item.marker} ")
            add_runs(paragraph, item.runs)

    def table(self, block: Block) -> None:
        columns = max(len(row) for row in block.rows)
        table = self.doc.add_table(rows=len(block.rows), cols=columns)
        table.style = 'Table Grid'
        header_fill = hex_fill(self.theme.secondary_color)

        for i, row in enumerate(block.rows):
            row_cells = table.rows[i].cells
            for j, cell in enumerate(row):
                target = row_cells[j]
                paragraph = target.paragraphs[0]
                if cell.header:
                    shade_cell(target, header_fill)
                    add_runs(paragraph, cell.runs, color="#ffffff", bold=True)
                else:
                    if cell.has_placeholder:
                        shade_cell(target, HIGHLIGHT_FILL)
                    elif cell.background and try_parse_color(cell.background):
                        shade_cell(target, hex_fill(cell.background))
                    add_runs(paragraph, cell.runs)
        # Separate consecutive tables
        self.doc.add_paragraph()

    def callout(self, block: Block) -> None:
        fill = hex_fill(block.background) if block.background and try_parse_color(block.background) else "E3F2FD"
        for runs in block.children:
            paragraph = self.doc.add_paragraph()
            shade_paragraph(paragraph, fill)
            add_runs(paragraph, runs)

    def build(self):
        normal = self.doc.styles['Normal']
        normal.font.name = _primary_font(self.theme.font_family)
        normal.font.size = Pt(11)
        _add_page_footer(self.doc)

        if self.document.is_empty:
            # Nothing structural was recognised, keep the text anyway
            add_runs(self.doc.add_paragraph(), [Run(self.document.plain_text)])
            return self.doc

        if self.document.title is not None:
            self.title(self.document.title)

        handlers = {
            "heading": self.heading,
            "paragraph": self.paragraph,
            "list": self.bullet_list,
            "table": self.table,
            "callout": self.callout,
        }
        for block in self.document.blocks:
            handlers[block.kind](block)
        return self.doc


def build_docx(document: StructuredDocument, theme: Theme):
    return DocxBuilder(document, theme).build()


def docx_bytes(doc) -> bytes:
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


async def render_docx(subtree: BeautifulSoup, theme: Theme) -> ExportBlob:
    """Primary word-processor strategy."""
    doc = build_docx(build_document(subtree), theme)
    data = await asyncio.to_thread(docx_bytes, doc)
    if not validate_docx_file(data):
        raise ValueError("Generated DOCX is not a valid word-processor container")
    return ExportBlob(data, DOCX_MEDIA_TYPE, "docx")


async def render_plain_text(subtree: BeautifulSoup, theme: Theme) -> ExportBlob:
    """Last-resort word-processor strategy: the extracted text as text/plain."""
    root = export_root(subtree)
    try:
        text = extract_plain_text(root)
    except Exception as exc:
        logger.warning("Plain-text extraction failed, using raw text: %s", exc)
        text = root.get_text("\n", strip=True)
    return ExportBlob(text.encode("utf-8"), TEXT_MEDIA_TYPE, "txt")
