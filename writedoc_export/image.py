"""PNG export: full rasterization, or plain text on a fixed canvas."""
import io
import logging

from bs4 import BeautifulSoup
from PIL import Image, ImageDraw, ImageFont

from writedoc_export.models import Theme
from writedoc_export.raster import font_line_height, font_loader, rasterize, wrap_text
from writedoc_export.strategies import PNG_MEDIA_TYPE, ExportBlob
from writedoc_export.structure import extract_plain_text
from writedoc_export.theming import export_root

logger = logging.getLogger(__name__)

FALLBACK_SIZE = (800, 600)
FALLBACK_FONT_SIZE = 20
FALLBACK_MARGIN = 20


def _png_bytes(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


async def render_png(subtree: BeautifulSoup, theme: Theme) -> ExportBlob:
    """Primary image strategy: one bitmap at the content's natural height."""
    image = await rasterize(subtree, theme)
    try:
        data = _png_bytes(image)
    finally:
        image.close()
    return ExportBlob(data, PNG_MEDIA_TYPE, "png")


def text_canvas(text: str) -> Image.Image:
    width, height = FALLBACK_SIZE
    image = Image.new("RGB", FALLBACK_SIZE, "white")
    draw = ImageDraw.Draw(image)
    try:
        font = font_loader.font(FALLBACK_FONT_SIZE)
    except OSError:
        font = ImageFont.load_default()

    line_height = font_line_height(font, 1.2)
    y = FALLBACK_MARGIN
    for line in wrap_text(text, font, width - 2 * FALLBACK_MARGIN):
        if y + line_height > height - FALLBACK_MARGIN:
            break
        draw.text((FALLBACK_MARGIN, y), line, font=font, fill="black")
        y += line_height
    return image


async def render_text_png(subtree: BeautifulSoup, theme: Theme) -> ExportBlob:
    """Last-resort image strategy; always returns a PNG."""
    try:
        text = extract_plain_text(export_root(subtree))
    except Exception as exc:
        logger.warning("Plain-text extraction failed, using raw text: %s", exc)
        text = subtree.get_text("\n", strip=True)

    try:
        image = text_canvas(text)
    except Exception as exc:
        logger.error("Text canvas failed, returning a blank image: %s", exc)
        image = Image.new("RGB", FALLBACK_SIZE, "white")
    try:
        data = _png_bytes(image)
    finally:
        image.close()
    return ExportBlob(data, PNG_MEDIA_TYPE, "png")
