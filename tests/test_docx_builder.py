"""Tests for the word-processor export."""
import io

import pytest
from docx import Document
from docx.enum.text import WD_COLOR_INDEX
from docx.oxml.ns import qn

from writedoc_export import docx_builder, pipeline
from writedoc_export.docx_builder import build_docx, render_docx, validate_docx_file
from writedoc_export.models import DEFAULT_THEME, Theme
from writedoc_export.normalizer import normalize_content
from writedoc_export.structure import StructuredDocument
from writedoc_export.theming import apply_theme


def _styled(content, fields=None, theme=DEFAULT_THEME):
    return apply_theme(normalize_content(content, fields), theme)


async def _read(content, fields=None, theme=DEFAULT_THEME):
    blob = await render_docx(_styled(content, fields, theme), theme)
    assert blob.extension == "docx"
    return Document(io.BytesIO(blob.data))


def _fill(cell):
    tc_pr = cell._tc.tcPr
    shd = tc_pr.find(qn("w:shd")) if tc_pr is not None else None
    return shd.get(qn("w:fill")) if shd is not None else None


@pytest.mark.asyncio
async def test_title_and_paragraphs(invoice_html, invoice_fields):
    doc = await _read(invoice_html, invoice_fields)
    title = doc.paragraphs[0]
    assert title.style.name == "Title"
    assert title.text == "Invoice for Acme Corp"
    texts = [paragraph.text for paragraph in doc.paragraphs]
    assert "Billed to Acme Corp on 2024-05-01." in texts
    assert "Payment is due within 30 days." in texts


@pytest.mark.asyncio
async def test_header_row_is_shaded_with_the_theme():
    theme = Theme(secondaryColor="#112233")
    content = ("<table><tr><th>Name</th><th>Qty</th></tr>"
               "<tr><td>Bolts</td><td>4</td></tr><tr><td>Nuts</td><td>9</td></tr></table>")
    doc = await _read(content, theme=theme)
    table = doc.tables[0]
    assert len(table.rows) == 3
    assert table.style.name == "Table Grid"
    assert [_fill(cell) for cell in table.rows[0].cells] == ["112233", "112233"]
    assert table.rows[1].cells[0].text == "Bolts"
    assert _fill(table.rows[1].cells[0]) is None


@pytest.mark.asyncio
async def test_unresolved_placeholders_keep_a_highlight(invoice_html):
    doc = await _read(invoice_html)
    highlighted = [
        run.text
        for paragraph in doc.paragraphs
        for run in paragraph.runs
        if run.font.highlight_color == WD_COLOR_INDEX.YELLOW
    ]
    assert "[Client Name]" in highlighted
    assert "[Invoice Date]" in highlighted
    assert _fill(doc.tables[0].rows[1].cells[1]) == "FFEB3B"


@pytest.mark.asyncio
async def test_headings_keep_their_level():
    doc = await _read("<h1>Report</h1><h2>Summary</h2><h3>Detail</h3>")
    styles = [paragraph.style.name for paragraph in doc.paragraphs]
    assert styles == ["Title", "Heading 2", "Heading 3"]


@pytest.mark.asyncio
async def test_list_items_are_prefixed():
    doc = await _read("<ul><li>Apple</li></ul><ol><li>First</li><li>Second</li></ol>")
    texts = [paragraph.text for paragraph in doc.paragraphs]
    assert texts == ["• Apple", "1. First", "2. Second"]


def test_empty_structure_falls_back_to_plain_text():
    document = StructuredDocument(title=None, blocks=[], plain_text="Only loose text")
    doc = build_docx(document, DEFAULT_THEME)
    assert doc.paragraphs[-1].text == "Only loose text"


def test_footer_has_page_fields():
    document = StructuredDocument(title=None, blocks=[], plain_text="x")
    doc = build_docx(document, DEFAULT_THEME)
    footer_xml = doc.sections[0].footer.paragraphs[0]._p.xml
    assert "PAGE" in footer_xml
    assert "NUMPAGES" in footer_xml


@pytest.mark.asyncio
async def test_falls_back_to_plain_text_blob(monkeypatch, invoice_html, invoice_fields):
    def broken(doc):
        raise OSError("disk full")

    monkeypatch.setattr(docx_builder, "docx_bytes", broken)
    blob = await pipeline.export_document("docx", invoice_html, invoice_fields)
    assert blob.strategy == "plain-text"
    assert blob.media_type.startswith("text/plain")
    assert blob.extension == "txt"
    text = blob.data.decode("utf-8")
    assert text.splitlines()[0] == "Invoice for Acme Corp"
    assert "Acme Corp" in text


def test_validate_docx_file():
    assert not validate_docx_file(b"")
    assert not validate_docx_file(b"not a zip")
    assert not validate_docx_file(b"PK\x03\x04broken")
