"""
Rasterization of the structural IR with Pillow.

This is the "canvas" shared by the canvas-mode PDF renderer and the image
renderer. Layout happens in two passes: ``RasterLayout`` records drawing
operations and the total height at a fixed CSS width times a device scale
factor, then ``paint`` replays them onto an RGB image of exactly that height.

Capture never starts before the font loader has signalled readiness, and the
paint itself runs in a worker thread so the event loop stays free.
"""
import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from bs4 import BeautifulSoup
from PIL import Image, ImageDraw, ImageFont

from writedoc_export.colors import try_parse_color
from writedoc_export.config import settings
from writedoc_export.models import Theme
from writedoc_export.structure import Block, Run, StructuredDocument, build_document

logger = logging.getLogger(__name__)

REGULAR_CANDIDATES = [
    "DejaVuSans.ttf",
    "LiberationSans-Regular.ttf",
    "Arial.ttf",
    "arial.ttf",
    "Helvetica.ttc",
]
BOLD_CANDIDATES = [
    "DejaVuSans-Bold.ttf",
    "LiberationSans-Bold.ttf",
    "Arial Bold.ttf",
    "arialbd.ttf",
]

TITLE_SIZE = 28
BODY_SIZE = 14
HEADING_SIZES = {1: 26, 2: 22, 3: 18, 4: 16, 5: 14, 6: 13}
PAGE_PADDING = 24
CELL_PADDING = 6
CALLOUT_PADDING = 12
LIST_INDENT = 20
LINE_SPACING = 1.4
BORDER_COLOR = "#dddddd"
DEFAULT_CALLOUT = "#e3f2fd"

TOKEN_PATTERN = re.compile(r"\S+|\s+")


class RasterizationError(RuntimeError):
    """Bitmap capture failed or would exceed the configured limits."""


class FontLoader:
    """Resolves TrueType fonts once and hands out sized instances."""

    def __init__(self, regular_path: Optional[str] = None, bold_path: Optional[str] = None):
        self.regular_path = regular_path
        self.bold_path = bold_path
        self._resolved: Optional[Tuple[Optional[str], Optional[str]]] = None
        self._cache: Dict[Tuple[bool, int], ImageFont.ImageFont] = {}

    @staticmethod
    def _first_loadable(explicit: Optional[str], candidates: List[str]) -> Optional[str]:
        paths = [explicit] if explicit else []
        paths.extend(candidates)
        for path in paths:
            try:
                ImageFont.truetype(path, BODY_SIZE)
            except OSError:
                continue
            return path
        return None

    def _resolve(self) -> Tuple[Optional[str], Optional[str]]:
        regular = self._first_loadable(self.regular_path, REGULAR_CANDIDATES)
        bold = self._first_loadable(self.bold_path, BOLD_CANDIDATES) or regular
        if regular is None:
            logger.info("No TrueType font found, rasterizing with Pillow's default font")
        return regular, bold

    @property
    def is_ready(self) -> bool:
        return self._resolved is not None

    async def ready(self, timeout: Optional[float] = None) -> None:
        """Resolve font files off the event loop, bounded by ``timeout``."""
        if self._resolved is not None:
            return
        timeout = settings.RASTER_ASSET_TIMEOUT if timeout is None else timeout
        try:
            self._resolved = await asyncio.wait_for(asyncio.to_thread(self._resolve), timeout)
        except asyncio.TimeoutError:
            logger.warning("Font lookup did not finish within %.1fs, using the default font", timeout)
            self._resolved = (None, None)

    def font(self, size: int, bold: bool = False) -> ImageFont.ImageFont:
        if self._resolved is None:
            self._resolved = self._resolve()
        key = (bold, size)
        if key not in self._cache:
            path = self._resolved[1] if bold else self._resolved[0]
            if path:
                self._cache[key] = ImageFont.truetype(path, size)
            else:
                self._cache[key] = ImageFont.load_default(size)
        return self._cache[key]


font_loader = FontLoader(settings.FONT_PATH, settings.BOLD_FONT_PATH)


def font_line_height(font: ImageFont.ImageFont, spacing: float = LINE_SPACING) -> int:
    try:
        ascent, descent = font.getmetrics()
        base = ascent + descent
    except AttributeError:
        left, top, right, bottom = font.getbbox("Hg")
        base = bottom - top
    return max(1, int(base * spacing))


def wrap_text(text: str, font: ImageFont.ImageFont, max_width: float) -> List[str]:
    """Greedy word wrap; words wider than a line are broken per character."""
    lines: List[str] = []
    for paragraph in text.split("\n"):
        current = ""
        for word in paragraph.split(" "):
            candidate = f"{current} {word}" if current else word
            if font.getlength(candidate) <= max_width:
                current = candidate
                continue
            if current:
                lines.append(current)
            current = ""
            for ch in word:
                if current and font.getlength(current + ch) > max_width:
                    lines.append(current)
                    current = ch
                else:
                    current += ch
        lines.append(current)
    return lines


@dataclass
class Segment:
    x: float
    text: str
    font: ImageFont.ImageFont
    fill: str
    highlight: bool = False


@dataclass
class Op:
    kind: str  # rect | text
    box: Tuple[float, float, float, float]
    fill: Optional[str] = None
    outline: Optional[str] = None
    text: str = ""
    font: Optional[ImageFont.ImageFont] = None


class RasterLayout:
    """Lays the document out top to bottom in device pixels."""

    def __init__(self, document: StructuredDocument, theme: Theme, width: int, scale: int,
                 fonts: FontLoader):
        self.document = document
        self.theme = theme
        self.scale = scale
        self.width = width * scale
        self.fonts = fonts
        self.padding = PAGE_PADDING * scale
        self.content_width = self.width - 2 * self.padding
        self.text_color = self._color(document.color, theme.text_color)
        self.ops: List[Op] = []
        self.y = float(self.padding)

    @staticmethod
    def _color(value: Optional[str], default: str) -> str:
        return value if value and try_parse_color(value) else default

    def _font(self, size: int, bold: bool = False) -> ImageFont.ImageFont:
        return self.fonts.font(size * self.scale, bold)

    def _split_runs(self, runs: List[Run], width: float, size: int, color: str,
                    bold: bool = False) -> List[List[Segment]]:
        lines: List[List[Segment]] = [[]]
        x = 0.0
        for run in runs:
            if run.text == "\n":
                lines.append([])
                x = 0.0
                continue
            font = self._font(size, bold or run.bold)
            fill = self._color(run.color, color)
            tokens = [run.text] if run.placeholder else TOKEN_PATTERN.findall(run.text)
            for token in tokens:
                if token.isspace():
                    if x > 0:
                        lines[-1].append(Segment(x, " ", font, fill))
                        x += font.getlength(" ")
                    continue
                pieces = [token]
                if font.getlength(token) > width and not run.placeholder:
                    pieces = wrap_text(token, font, width)
                for piece in pieces:
                    piece_width = font.getlength(piece)
                    if x > 0 and x + piece_width > width:
                        lines.append([])
                        x = 0.0
                    lines[-1].append(Segment(x, piece, font, fill, run.placeholder))
                    x += piece_width
        return [line for line in lines if any(seg.text.strip() for seg in line)]

    def _emit_lines(self, lines: List[List[Segment]], x0: float, size: int) -> None:
        default_height = font_line_height(self._font(size))
        for line in lines:
            height = max([font_line_height(seg.font) for seg in line] or [default_height])
            for seg in line:
                seg_width = seg.font.getlength(seg.text)
                if seg.highlight:
                    pad = 3 * self.scale
                    self.ops.append(Op("rect", (x0 + seg.x - pad, self.y, x0 + seg.x + seg_width + pad,
                                                self.y + height), fill=settings.HIGHLIGHT_COLOR))
                    fill = "black"
                else:
                    fill = seg.fill
                self.ops.append(Op("text", (x0 + seg.x, self.y, 0, 0), fill=fill,
                                   text=seg.text, font=seg.font))
            self.y += height

    def _measure(self, lines: List[List[Segment]], size: int) -> int:
        default_height = font_line_height(self._font(size))
        return sum(max([font_line_height(seg.font) for seg in line] or [default_height])
                   for line in lines)

    def _gap(self, px: int) -> None:
        self.y += px * self.scale

    def title(self, block: Block) -> None:
        lines = self._split_runs(block.runs, self.content_width, TITLE_SIZE,
                                 self.theme.primary_color, bold=True)
        self._emit_lines(lines, self.padding, TITLE_SIZE)
        self._gap(14)

    def heading(self, block: Block) -> None:
        size = HEADING_SIZES.get(block.level, BODY_SIZE)
        self._gap(6)
        lines = self._split_runs(block.runs, self.content_width, size,
                                 self.theme.primary_color, bold=True)
        self._emit_lines(lines, self.padding, size)
        self._gap(8)

    def paragraph(self, block: Block) -> None:
        lines = self._split_runs(block.runs, self.content_width, BODY_SIZE, self.text_color)
        self._emit_lines(lines, self.padding, BODY_SIZE)
        self._gap(10)

    def bullet_list(self, block: Block) -> None:
        font = self._font(BODY_SIZE)
        for item in block.items:
            indent = (LIST_INDENT * (item.depth + 1)) * self.scale
            marker_width = font.getlength(item.marker + " ")
            x = self.padding + indent
            self.ops.append(Op("text", (x, self.y, 0, 0), fill=self.text_color,
                               text=item.marker, font=font))
            lines = self._split_runs(item.runs, self.content_width - indent - marker_width,
                                     BODY_SIZE, self.text_color)
            self._emit_lines(lines, x + marker_width, BODY_SIZE)
            self._gap(3)
        self._gap(8)

    def table(self, block: Block) -> None:
        columns = max(len(row) for row in block.rows)
        column_width = self.content_width / columns
        pad = CELL_PADDING * self.scale
        size = BODY_SIZE - 1

        for r, row in enumerate(block.rows):
            header = r < block.header_rows
            laid_out = []
            for cell in row:
                color = self._color(cell.color, "#ffffff" if header else self.text_color)
                laid_out.append(self._split_runs(cell.runs, column_width - 2 * pad, size,
                                                 color, bold=cell.header))
            row_height = max([self._measure(lines, size) for lines in laid_out] + [0]) + 2 * pad
            row_height = max(row_height, font_line_height(self._font(size)) + 2 * pad)

            top = self.y
            for c in range(columns):
                x = self.padding + c * column_width
                cell = row[c] if c < len(row) else None
                fill = None
                if cell is not None and cell.background:
                    fill = self._color(cell.background, self.theme.secondary_color)
                elif cell is not None and cell.header:
                    fill = self.theme.secondary_color
                self.ops.append(Op("rect", (x, top, x + column_width, top + row_height),
                                   fill=fill, outline=BORDER_COLOR))
                if cell is not None:
                    self.y = top + pad
                    self._emit_lines(laid_out[c], x + pad, size)
            self.y = top + row_height
        self._gap(14)

    def callout(self, block: Block) -> None:
        pad = CALLOUT_PADDING * self.scale
        inner = self.content_width - 2 * pad
        laid_out = [self._split_runs(runs, inner, BODY_SIZE, self.text_color)
                    for runs in block.children]
        gap = 4 * self.scale
        height = sum(self._measure(lines, BODY_SIZE) for lines in laid_out)
        height += gap * max(len(laid_out) - 1, 0) + 2 * pad

        fill = self._color(block.background, DEFAULT_CALLOUT)
        self.ops.append(Op("rect", (self.padding, self.y, self.padding + self.content_width,
                                    self.y + height), fill=fill))
        self.y += pad
        for index, lines in enumerate(laid_out):
            if index:
                self.y += gap
            self._emit_lines(lines, self.padding + pad, BODY_SIZE)
        self.y += pad
        self._gap(12)

    def run(self) -> int:
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
        return int(self.y + self.padding)


def paint(layout: RasterLayout, height: int, background: str) -> Image.Image:
    image = Image.new("RGB", (int(layout.width), height), background)
    draw = ImageDraw.Draw(image)
    for op in layout.ops:
        if op.kind == "rect":
            draw.rectangle(op.box, fill=op.fill, outline=op.outline,
                           width=layout.scale if op.outline else 0)
        else:
            draw.text(op.box[:2], op.text, font=op.font, fill=op.fill)
    return image


def render_bitmap(document: StructuredDocument, theme: Theme, width: int, scale: int,
                  fonts: FontLoader) -> Image.Image:
    """Lay out and paint ``document``; blocking, meant for a worker thread."""
    layout = RasterLayout(document, theme, width, scale, fonts)
    height = layout.run()
    if height > settings.RASTER_MAX_HEIGHT:
        raise RasterizationError(
            f"Rendered height {height}px exceeds the {settings.RASTER_MAX_HEIGHT}px limit"
        )
    background = RasterLayout._color(document.background, theme.background_color)
    return paint(layout, max(height, 1), background)


async def rasterize(subtree: BeautifulSoup, theme: Theme, width: Optional[int] = None,
                    scale: Optional[int] = None, fonts: Optional[FontLoader] = None) -> Image.Image:
    """Capture ``subtree`` as one tall bitmap once fonts are ready."""
    width = width or settings.RASTER_WIDTH
    scale = scale or settings.RASTER_SCALE
    fonts = fonts or font_loader

    await fonts.ready()
    document = build_document(subtree)
    try:
        image = await asyncio.to_thread(render_bitmap, document, theme, width, scale, fonts)
    except RasterizationError:
        raise
    except Exception as exc:
        raise RasterizationError(f"Bitmap capture failed: {exc}") from exc
    logger.debug("Rasterized document to %dx%d px", image.width, image.height)
    return image
