"""CSS colour parsing shared by the PDF, image and DOCX renderers."""
from typing import Optional, Tuple

from PIL import ImageColor
from reportlab.lib.colors import Color

RGB = Tuple[int, int, int]

WHITE: RGB = (255, 255, 255)
BLACK: RGB = (0, 0, 0)


def parse_color(value: str) -> RGB:
    """Parse any CSS colour Pillow understands (hex, rgb(), hsl(), names)."""
    if value is None:
        raise ValueError("Colour value is required")
    rgb = ImageColor.getrgb(value.strip())
    return rgb[0], rgb[1], rgb[2]


def try_parse_color(value: Optional[str]) -> Optional[RGB]:
    if not value:
        return None
    try:
        return parse_color(value)
    except ValueError:
        return None


def hex_fill(value: str) -> str:
    """Colour as the bare upper-case hex string used by WordprocessingML (w:fill)."""
    r, g, b = parse_color(value)
    return f"{r:02X}{g:02X}{b:02X}"


def rl_color(value: str) -> Color:
    r, g, b = parse_color(value)
    return Color(r / 255.0, g / 255.0, b / 255.0)


def is_white(value: Optional[str]) -> bool:
    rgb = try_parse_color(value)
    return rgb is not None and all(channel >= 250 for channel in rgb)
