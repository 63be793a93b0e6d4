"""
Export pipeline: Normalizer -> Theming -> fallback chain -> blob.

HTML and print exports skip theming and the chains; they serialize the
normalized content into the standalone page.
"""
import logging
from typing import Dict, Optional, Sequence, Tuple, Union

from bs4 import BeautifulSoup

from writedoc_export.docx_builder import render_docx, render_plain_text
from writedoc_export.html_export import export_html, export_print
from writedoc_export.image import render_png, render_text_png
from writedoc_export.models import DEFAULT_THEME, ExportFormat, Theme, sanitize_filename_stem
from writedoc_export.normalizer import normalize_content
from writedoc_export.pdf_canvas import render_canvas_pdf, render_plain_text_pdf
from writedoc_export.pdf_text import render_text_pdf
from writedoc_export.strategies import ExportBlob, Strategy, run_chain
from writedoc_export.theming import apply_theme

logger = logging.getLogger(__name__)

PDF_STRATEGIES: Tuple[Strategy, ...] = (
    Strategy("text", render_text_pdf),
    Strategy("canvas", render_canvas_pdf),
    Strategy("plain-text", render_plain_text_pdf),
)

IMAGE_STRATEGIES: Tuple[Strategy, ...] = (
    Strategy("canvas", render_png),
    Strategy("text-canvas", render_text_png),
)

DOCX_STRATEGIES: Tuple[Strategy, ...] = (
    Strategy("structured", render_docx),
    Strategy("plain-text", render_plain_text),
)


def strategy_chains() -> Dict[ExportFormat, Tuple[str, Sequence[Strategy]]]:
    return {
        ExportFormat.PDF: ("PDF", PDF_STRATEGIES),
        ExportFormat.IMAGE: ("Image", IMAGE_STRATEGIES),
        ExportFormat.DOCX: ("DOCX", DOCX_STRATEGIES),
    }


def document_title(content: str) -> Optional[str]:
    """Text of the first non-empty <h1>, if any."""
    soup = BeautifulSoup(content or "", "html.parser")
    for heading in soup.find_all("h1"):
        title = " ".join(heading.get_text().split())
        if title:
            return title
    return None


def prepare(content: str, fields: Optional[Dict[str, str]] = None,
            theme: Optional[Theme] = None) -> Tuple[str, BeautifulSoup]:
    """Normalized content and its themed tree."""
    normalized = normalize_content(content, fields)
    return normalized, apply_theme(normalized, theme or DEFAULT_THEME)


async def export_document(fmt: Union[ExportFormat, str], content: str,
                          fields: Optional[Dict[str, str]] = None,
                          theme: Optional[Theme] = None) -> ExportBlob:
    fmt = ExportFormat(fmt)
    if content is None or not content.strip():
        raise ValueError("No content to export")
    theme = theme or DEFAULT_THEME

    if fmt in (ExportFormat.HTML, ExportFormat.PRINT):
        normalized = normalize_content(content, fields)
        title = document_title(normalized) or "Document"
        if fmt is ExportFormat.PRINT:
            return export_print(normalized, title)
        return export_html(normalized, title)

    normalized, styled = prepare(content, fields, theme)
    label, strategies = strategy_chains()[fmt]
    logger.debug("Exporting %s (%d characters of content)", label, len(normalized))
    return await run_chain(label, strategies, styled, theme)


def filename_stem(content: str, fields: Optional[Dict[str, str]] = None,
                  filename: Optional[str] = None) -> str:
    """Requested file name, else the document title, else "document"."""
    if filename:
        return sanitize_filename_stem(filename)
    return sanitize_filename_stem(document_title(normalize_content(content or "", fields)))
