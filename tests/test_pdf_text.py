"""Tests for the text-mode PDF renderer."""
import pytest

from writedoc_export.models import DEFAULT_THEME, Theme
from writedoc_export.normalizer import normalize_content
from writedoc_export.pdf_text import TextPdfRenderer, pdf_font, render_text_pdf, resolve_page_size
from writedoc_export.structure import build_document
from writedoc_export.theming import apply_theme

from tests.conftest import long_document, pdf_pages, pdf_text


def _styled(content, fields=None, theme=DEFAULT_THEME):
    return apply_theme(normalize_content(content, fields), theme)


def _renderer(content, fields=None):
    renderer = TextPdfRenderer(build_document(_styled(content, fields)), DEFAULT_THEME)
    data = renderer.render()
    return renderer, data


@pytest.mark.asyncio
async def test_invoice_with_values(invoice_html, invoice_fields):
    blob = await render_text_pdf(_styled(invoice_html, invoice_fields), DEFAULT_THEME)
    assert blob.media_type == "application/pdf"
    assert blob.extension == "pdf"
    assert blob.data.startswith(b"%PDF")

    text = pdf_text(blob.data)
    assert "Invoice for Acme Corp" in text
    assert "Design work" in text
    assert "Page 1 of 1" in text
    assert "[Client Name]" not in text


def test_unresolved_placeholders_are_highlighted(invoice_html):
    renderer, data = _renderer(invoice_html)
    assert "[Client Name]" in renderer.highlights
    assert "[Invoice Date]" in renderer.highlights
    assert "[Amount]" in renderer.highlights
    assert "[Client Name]" in pdf_text(data)


def test_resolved_document_has_no_highlights(invoice_html, invoice_fields):
    renderer, _ = _renderer(invoice_html, invoice_fields)
    assert renderer.highlights == []


def test_long_content_spans_several_pages():
    renderer, data = _renderer(long_document(200))
    assert renderer.page_count >= 2
    assert pdf_pages(data) == renderer.page_count
    text = pdf_text(data)
    assert f"Page {renderer.page_count} of {renderer.page_count}" in text
    assert "Paragraph 199" in text


def test_page_count_grows_with_content():
    counts = [_renderer(long_document(n))[0].page_count for n in (10, 80, 200, 400)]
    assert counts == sorted(counts)
    assert counts[0] == 1
    assert counts[-1] > counts[0]


def test_tables_split_across_pages():
    rows = "".join(f"<tr><td>Row {i}</td><td>{i * 10}</td></tr>" for i in range(120))
    content = f"<h1>Ledger</h1><table><tr><th>Name</th><th>Value</th></tr>{rows}</table>"
    renderer, data = _renderer(content)
    assert renderer.page_count >= 2
    text = pdf_text(data)
    assert "Row 0" in text
    assert "Row 119" in text


def test_lists_and_callouts_are_drawn():
    content = ('<ul><li>Apples</li><li>Pears</li></ul><ol><li>First step</li></ol>'
               '<div class="callout"><p>Remember the deadline</p></div>')
    _, data = _renderer(content)
    text = pdf_text(data)
    assert "Apples" in text
    assert "1." in text
    assert "Remember the deadline" in text


def test_long_callout_background_continues_on_the_next_page():
    paragraphs = "".join(f"<p>Term {i}: payment is due within thirty days of delivery.</p>" for i in range(120))
    renderer, data = _renderer(f'<h1>Terms</h1><div class="callout">{paragraphs}</div><p>After</p>')
    pages = sorted({page for page, _ in renderer.callout_boxes})
    assert len(pages) >= 2
    assert pages == list(range(pages[0], pages[0] + len(pages)))
    assert all(height > 0 for _, height in renderer.callout_boxes)
    assert "Term 119" in pdf_text(data)


def test_every_page_footer_names_the_final_total():
    renderer, data = _renderer(long_document(200))
    total = renderer.page_count
    text = pdf_text(data)
    for page in range(1, total + 1):
        assert f"Page {page} of {total}" in text


def test_non_latin_text_does_not_break_rendering():
    _, data = _renderer("<h1>Résumé</h1><p>Emoji 🚀 and CJK 漢字</p>")
    assert data.startswith(b"%PDF")
    assert "Résumé" in pdf_text(data)


def test_dark_theme_keeps_rendering():
    theme = Theme(backgroundColor="#111111", textColor="#ffffff")
    renderer = TextPdfRenderer(build_document(_styled("<p>Night mode</p>", theme=theme)), theme)
    assert "Night mode" in pdf_text(renderer.render())


@pytest.mark.parametrize("family, expected", [
    ("Inter, sans-serif", "Helvetica"),
    ("Georgia, serif", "Times-Roman"),
    ("'Courier New', monospace", "Courier"),
])
def test_font_mapping(family, expected):
    assert pdf_font(family) == expected


def test_page_size_aliases():
    assert resolve_page_size("letter") == (612.0, 792.0)
    with pytest.raises(ValueError):
        resolve_page_size("tabloid-ish")
