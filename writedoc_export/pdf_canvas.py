"""
Canvas-mode PDF renderer and the plain-text last resort.

The canvas renderer rasterizes the document into one tall bitmap and slices it
into page-height bands, each placed full-width on its own page. The plain-text
renderer only draws the title and extracted text and is the last step of the
PDF chain, so it must always return a PDF.
"""
import io
import logging
from typing import Optional, Tuple

from bs4 import BeautifulSoup
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas

from writedoc_export.config import settings
from writedoc_export.models import Theme
from writedoc_export.pdf_text import FOOTER_SPACE, NumberedCanvas, pdf_safe, resolve_page_size
from writedoc_export.raster import rasterize
from writedoc_export.strategies import PDF_MEDIA_TYPE, ExportBlob
from writedoc_export.structure import extract_plain_text
from writedoc_export.theming import HEADING_TAGS, export_root

logger = logging.getLogger(__name__)


def band_height(image_width: int, page_size: Tuple[float, float], margin: float) -> int:
    """Bitmap rows that fit on one page once the image is scaled to full width."""
    page_width, page_height = page_size
    points_per_pixel = (page_width - 2 * margin) / image_width
    usable = page_height - 2 * margin - FOOTER_SPACE
    return max(1, int(usable / points_per_pixel))


async def render_canvas_pdf(subtree: BeautifulSoup, theme: Theme) -> ExportBlob:
    """Fallback PDF strategy: paginated bitmap of the rendered document."""
    image = await rasterize(subtree, theme)
    page_size = resolve_page_size(settings.PAGE_SIZE)
    page_width, page_height = page_size
    margin = settings.PAGE_MARGIN
    draw_width = page_width - 2 * margin
    points_per_pixel = draw_width / image.width
    rows = band_height(image.width, page_size, margin)

    buffer = io.BytesIO()
    pdf = NumberedCanvas(buffer, pagesize=page_size, footer_text=settings.FOOTER_TEXT)
    bands = []
    try:
        top = 0
        while top < image.height:
            bottom = min(top + rows, image.height)
            band = image.crop((0, top, image.width, bottom))
            bands.append(band)
            draw_height = (bottom - top) * points_per_pixel
            pdf.drawImage(ImageReader(band), margin, page_height - margin - draw_height,
                          width=draw_width, height=draw_height)
            pdf.showPage()
            top = bottom
        pdf.save()
    finally:
        for band in bands:
            band.close()
        image.close()

    logger.debug("Canvas-mode PDF: %d bands of %d px", len(bands), rows)
    return ExportBlob(buffer.getvalue(), PDF_MEDIA_TYPE, "pdf")


def _title_and_text(subtree: BeautifulSoup) -> Tuple[Optional[str], str]:
    root = export_root(subtree)
    heading = next((tag for tag in root.find_all(HEADING_TAGS) if tag.get_text(strip=True)), None)
    title = heading.get_text(" ", strip=True) if heading is not None else None
    try:
        text = extract_plain_text(root)
    except Exception as exc:
        logger.warning("Plain-text extraction failed, using raw text: %s", exc)
        text = root.get_text("\n", strip=True)
    return title, text


def _minimal_pdf(message: str) -> bytes:
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer)
    pdf.setFont("Helvetica", 12)
    pdf.drawString(40, 800, message)
    pdf.showPage()
    pdf.save()
    return buffer.getvalue()


def plain_text_pdf(title: Optional[str], text: str) -> bytes:
    """Title and wrapped text on as many unstyled pages as needed."""
    page_width, page_height = resolve_page_size(settings.PAGE_SIZE)
    margin = settings.PAGE_MARGIN
    line_height = settings.LINE_HEIGHT
    width = page_width - 2 * margin

    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=(page_width, page_height))
    y = page_height - margin

    if title:
        pdf.setFont("Helvetica-Bold", 16)
        for line in simpleSplit(pdf_safe(title), "Helvetica-Bold", 16, width):
            y -= 20
            pdf.drawString(margin, y, line)
        y -= 10

    pdf.setFont("Helvetica", 10)
    for paragraph in pdf_safe(text).split("\n"):
        for line in simpleSplit(paragraph, "Helvetica", 10, width) or [""]:
            if y - line_height < margin:
                pdf.showPage()
                pdf.setFont("Helvetica", 10)
                y = page_height - margin
            y -= line_height
            pdf.drawString(margin, y, line)

    pdf.showPage()
    pdf.save()
    return buffer.getvalue()


async def render_plain_text_pdf(subtree: BeautifulSoup, theme: Theme) -> ExportBlob:
    """Last-resort PDF strategy; always returns a PDF."""
    try:
        title, text = _title_and_text(subtree)
        data = plain_text_pdf(title, text)
    except Exception as exc:
        logger.error("Plain-text PDF failed, emitting a minimal document: %s", exc)
        data = _minimal_pdf("The document could not be rendered.")
    return ExportBlob(data, PDF_MEDIA_TYPE, "pdf")
