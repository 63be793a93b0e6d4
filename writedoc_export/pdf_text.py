"""
Text-mode PDF renderer.

Re-draws the structural IR as native ReportLab drawing operations: strings,
filled rectangles and platypus tables. The cursor starts below the top margin
of page 1, the document title is drawn first, then every block in order with a
page break whenever the next piece would run into the footer area. Pages are
stamped "Page N of Total" once the total is known.
"""
import io
import logging
from typing import Dict, List, Optional, Sequence, Tuple
from xml.sax.saxutils import escape

from bs4 import BeautifulSoup
from reportlab.lib import colors
from reportlab.lib.enums import TA_LEFT
from reportlab.lib.pagesizes import A4, A5, legal, letter
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas
from reportlab.platypus import Paragraph, Table, TableStyle

from writedoc_export.colors import is_white, rl_color
from writedoc_export.config import settings
from writedoc_export.models import Theme
from writedoc_export.strategies import PDF_MEDIA_TYPE, ExportBlob
from writedoc_export.structure import Block, Run, StructuredDocument, build_document

logger = logging.getLogger(__name__)

PAGE_SIZE_ALIASES: Dict[str, Tuple[float, float]] = {
    "a4": A4,
    "a5": A5,
    "letter": letter,
    "legal": legal,
}

TITLE_SIZE = 24
BODY_SIZE = 11
HEADING_SIZES = {1: 20, 2: 17, 3: 15, 4: 13, 5: 12, 6: 11}
LIST_INDENT = 15
CALLOUT_PADDING = 8
FOOTER_SPACE = 30
FOOTER_GREY = colors.Color(0.4, 0.4, 0.4)


def resolve_page_size(value: Optional[str]) -> Tuple[float, float]:
    if not value:
        return A4
    size = PAGE_SIZE_ALIASES.get(value.strip().lower())
    if size is None:
        raise ValueError(
            f"Unrecognized page size '{value}'. Use one of {', '.join(sorted(PAGE_SIZE_ALIASES))}."
        )
    return size


def pdf_font(family: Optional[str], bold: bool = False) -> str:
    """Map a CSS font family onto one of the PDF base-14 fonts."""
    family = (family or "").lower()
    if "mono" in family or "courier" in family:
        return "Courier-Bold" if bold else "Courier"
    serif = family.replace("sans-serif", "")
    if "serif" in serif or "times" in family or "georgia" in family:
        return "Times-Bold" if bold else "Times-Roman"
    return "Helvetica-Bold" if bold else "Helvetica"


def pdf_safe(text: str) -> str:
    """Restrict text to what the base-14 fonts can encode."""
    return text.encode("cp1252", "replace").decode("cp1252")


class NumberedCanvas(canvas.Canvas):
    """Canvas that stamps "Page N of Total" on every page when saved"""

    def __init__(self, *args, footer_text: str = "", **kwargs):
        canvas.Canvas.__init__(self, *args, **kwargs)
        self._saved_page_states = []
        self.footer_text = footer_text
        self.page_total = 0

    def showPage(self):
        """Defer the real page break until the total page count is known"""
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        # Restoring a saved state also restores its stale page_total
        total = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self.draw_page_number(total)
            canvas.Canvas.showPage(self)
        self.page_total = total
        canvas.Canvas.save(self)

    def draw_page_number(self, page_total: int) -> None:
        """Centered footer with the page number"""
        page_width = self._pagesize[0]
        label = f"Page {self._pageNumber} of {page_total}"
        if self.footer_text:
            label = f"{label} - {self.footer_text}"
        self.setFont("Helvetica", 8)
        self.setFillColor(FOOTER_GREY)
        self.drawCentredString(page_width / 2.0, FOOTER_SPACE / 2.0, pdf_safe(label))


class TextPdfRenderer:
    """Draws a StructuredDocument onto a NumberedCanvas."""

    def __init__(self, document: StructuredDocument, theme: Theme,
                 page_size: Optional[Tuple[float, float]] = None,
                 margin: Optional[float] = None,
                 line_height: Optional[float] = None):
        self.document = document
        self.theme = theme
        self.page_width, self.page_height = page_size or resolve_page_size(settings.PAGE_SIZE)
        self.margin = settings.PAGE_MARGIN if margin is None else margin
        self.line_height = line_height or settings.LINE_HEIGHT
        self.bottom = self.margin + FOOTER_SPACE
        self.usable_width = self.page_width - 2 * self.margin

        self.font = pdf_font(theme.font_family)
        self.bold_font = pdf_font(theme.font_family, bold=True)
        self.primary = rl_color(theme.primary_color)
        self.highlight = rl_color(settings.HIGHLIGHT_COLOR)
        # Very light text would vanish on white paper unless the page is painted
        self.paint_background = not is_white(theme.background_color)
        self.text_color = rl_color(theme.text_color)
        if is_white(theme.text_color) and not self.paint_background:
            self.text_color = colors.black

        self.canvas: Optional[NumberedCanvas] = None
        self.y = 0.0
        self.page_count = 0
        self.highlights: List[str] = []
        # (page number, height) of every callout background box drawn
        self.callout_boxes: List[Tuple[int, float]] = []
        self._callout_fill = None
        self._callout_remaining = 0.0

    # -- page handling --------------------------------------------------

    def _start_page(self) -> None:
        if self.paint_background:
            self.canvas.setFillColor(rl_color(self.theme.background_color))
            self.canvas.rect(0, 0, self.page_width, self.page_height, stroke=0, fill=1)
        self.y = self.page_height - self.margin
        if self._callout_fill is not None and self._callout_remaining > 0:
            self._callout_box(self._callout_remaining)

    def _page_break(self) -> None:
        self.canvas.showPage()
        self._start_page()

    @property
    def _at_page_top(self) -> bool:
        return self.y >= self.page_height - self.margin

    def _ensure_space(self, height: float) -> None:
        usable = self.page_height - self.margin - self.bottom
        if self.y - min(height, usable) < self.bottom and not self._at_page_top:
            self._page_break()

    # -- primitives -----------------------------------------------------

    def _wrap(self, text: str, font: str, size: float, width: float) -> List[str]:
        lines: List[str] = []
        for part in pdf_safe(text).split("\n"):
            lines.extend(simpleSplit(part, font, size, width) or [""])
        return lines

    def _highlight_line(self, line: str, x: float, font: str, size: float,
                        placeholders: Sequence[str]) -> bool:
        found = False
        for token in placeholders:
            start = line.find(token)
            while start != -1:
                offset = self.canvas.stringWidth(line[:start], font, size)
                width = self.canvas.stringWidth(token, font, size)
                self.canvas.setFillColor(self.highlight)
                self.canvas.rect(x + offset - 1, self.y - 3, width + 2, size + 3, stroke=0, fill=1)
                self.highlights.append(token)
                found = True
                start = line.find(token, start + len(token))
        return found

    def _draw_lines(self, lines: List[str], x: float, font: str, size: float, color,
                    line_height: float, placeholders: Sequence[str] = ()) -> None:
        pending = list(dict.fromkeys(pdf_safe(token) for token in placeholders))
        matched = set()
        for line in lines:
            if self.y - line_height < self.bottom:
                self._page_break()
            self.y -= line_height
            if pending and self._highlight_line(line, x, font, size, pending):
                matched.update(token for token in pending if token in line)
            self.canvas.setFillColor(color)
            self.canvas.setFont(font, size)
            self.canvas.drawString(x, self.y, line)

        unmatched = [token for token in pending if token not in matched]
        if unmatched and lines:
            # Placeholder split across lines: mark the last line as a whole
            self.canvas.setFillColor(self.highlight)
            self.canvas.rect(x - 1, self.y - 3, self.usable_width, size + 3, stroke=0, fill=1)
            self.canvas.setFillColor(color)
            self.canvas.drawString(x, self.y, lines[-1])
            self.highlights.extend(unmatched)

    def _text(self, runs: List[Run], x: float, width: float, font: str, size: float,
              color, line_height: Optional[float] = None) -> None:
        text = "".join(run.text for run in runs)
        lines = self._wrap(text, font, size, width)
        line_height = line_height or self.line_height
        self._ensure_space(len(lines) * line_height)
        placeholders = [run.text for run in runs if run.placeholder]
        self._draw_lines(lines, x, font, size, color, line_height, placeholders)

    # -- blocks ---------------------------------------------------------

    def _title(self, block: Block) -> None:
        self._text(block.runs, self.margin, self.usable_width, self.bold_font,
                   TITLE_SIZE, self.primary, line_height=TITLE_SIZE * 1.25)
        self.y -= 10

    def _heading(self, block: Block) -> None:
        size = HEADING_SIZES.get(block.level, BODY_SIZE)
        self.y -= 4
        self._text(block.runs, self.margin, self.usable_width, self.bold_font,
                   size, self.primary, line_height=max(self.line_height, size * 1.3))
        self.y -= 4

    def _paragraph(self, block: Block) -> None:
        self._text(block.runs, self.margin, self.usable_width, self.font, BODY_SIZE, self.text_color)
        self.y -= 6

    def _list(self, block: Block) -> None:
        for item in block.items:
            indent = LIST_INDENT * (item.depth + 1)
            marker_width = self.canvas.stringWidth(item.marker + " ", self.font, BODY_SIZE) + 2
            text_x = self.margin + indent + marker_width
            lines = self._wrap(item.text, self.font, BODY_SIZE, self.usable_width - indent - marker_width)
            self._ensure_space(len(lines) * self.line_height)

            # The marker shares the baseline of the item's first line
            first_baseline = self.y - self.line_height
            if first_baseline < self.bottom:
                self._page_break()
                first_baseline = self.y - self.line_height
            self.canvas.setFillColor(self.text_color)
            self.canvas.setFont(self.font, BODY_SIZE)
            self.canvas.drawString(self.margin + indent, first_baseline, pdf_safe(item.marker))

            placeholders = [run.text for run in item.runs if run.placeholder]
            self._draw_lines(lines, text_x, self.font, BODY_SIZE, self.text_color,
                             self.line_height, placeholders)
            self.y -= 2
        self.y -= 6

    def _build_table(self, block: Block) -> Table:
        columns = max(len(row) for row in block.rows)
        header_rows = block.header_rows

        body_style = ParagraphStyle(
            'ExportTableCell',
            fontName=self.font,
            fontSize=9,
            leading=12,
            alignment=TA_LEFT,
            textColor=self.text_color,
        )
        header_style = ParagraphStyle(
            'ExportTableHeader',
            parent=body_style,
            fontName=self.bold_font,
            textColor=colors.white,
        )

        data = []
        commands = [
            ('GRID', (0, 0), (-1, -1), 0.5, colors.Color(0.8, 0.8, 0.8)),
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
            ('LEFTPADDING', (0, 0), (-1, -1), 5),
            ('RIGHTPADDING', (0, 0), (-1, -1), 5),
            ('TOPPADDING', (0, 0), (-1, -1), 4),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
        ]
        if header_rows:
            commands.append(('BACKGROUND', (0, 0), (-1, header_rows - 1), self.primary))

        for r, row in enumerate(block.rows):
            style = header_style if r < header_rows else body_style
            cells = []
            for c in range(columns):
                cell = row[c] if c < len(row) else None
                text = escape(pdf_safe(cell.text)) if cell else ""
                cells.append(Paragraph(text, style))
                if cell is not None and cell.has_placeholder:
                    commands.append(('BACKGROUND', (c, r), (c, r), self.highlight))
                    self.highlights.extend(run.text for run in cell.runs if run.placeholder)
            data.append(cells)

        table = Table(data, colWidths=[self.usable_width / columns] * columns,
                      repeatRows=header_rows)
        table.setStyle(TableStyle(commands))
        return table

    def _flow(self, flowable) -> None:
        """Draw a splittable flowable, continuing it on new pages as needed."""
        remaining = [flowable]
        while remaining:
            item = remaining.pop(0)
            available = self.y - self.bottom
            _, height = item.wrapOn(self.canvas, self.usable_width, available)
            if height <= available:
                item.drawOn(self.canvas, self.margin, self.y - height)
                self.y -= height
                continue

            parts = item.split(self.usable_width, available)
            if len(parts) > 1:
                head = parts[0]
                _, head_height = head.wrapOn(self.canvas, self.usable_width, available)
                head.drawOn(self.canvas, self.margin, self.y - head_height)
                self._page_break()
                remaining = list(parts[1:]) + remaining
            elif self._at_page_top:
                raise ValueError("Table row is taller than a page")
            else:
                self._page_break()
                remaining.insert(0, item)

    def _table(self, block: Block) -> None:
        try:
            table = self._build_table(block)
            self._flow(table)
        except Exception as exc:
            logger.warning("Structured table rendering failed, drawing rows as text: %s", exc)
            for row in block.rows:
                line = " | ".join(cell.text for cell in row)
                runs = [Run(line)]
                self._text(runs, self.margin, self.usable_width, self.font, BODY_SIZE, self.text_color)
        self.y -= 10

    def _callout(self, block: Block) -> None:
        background = rl_color(block.background) if block.background else colors.Color(0.89, 0.95, 0.99)
        inner_width = self.usable_width - 2 * CALLOUT_PADDING
        wrapped = [self._wrap("".join(run.text for run in runs), self.font, BODY_SIZE, inner_width)
                   for runs in block.children]
        height = sum(len(lines) for lines in wrapped) * self.line_height + 2 * CALLOUT_PADDING
        self._ensure_space(height)

        self._callout_fill = background
        self._callout_remaining = height
        try:
            self._callout_box(height)
            self.y -= CALLOUT_PADDING
            for runs, lines in zip(block.children, wrapped):
                placeholders = [run.text for run in runs if run.placeholder]
                self._draw_lines(lines, self.margin + CALLOUT_PADDING, self.font, BODY_SIZE,
                                 self.text_color, self.line_height, placeholders)
        finally:
            self._callout_fill = None
            self._callout_remaining = 0.0
        self.y -= CALLOUT_PADDING + 8

    def _callout_box(self, height: float) -> None:
        """Background for the part of the current callout that fits on this page."""
        box_height = min(height, self.y - self.bottom)
        if box_height <= 0:
            return
        self.canvas.setFillColor(self._callout_fill)
        self.canvas.rect(self.margin, self.y - box_height, self.usable_width, box_height, stroke=0, fill=1)
        self.callout_boxes.append((self.canvas.getPageNumber(), box_height))
        self._callout_remaining = height - box_height

    # -- entry point ----------------------------------------------------

    def render(self) -> bytes:
        buffer = io.BytesIO()
        self.canvas = NumberedCanvas(
            buffer,
            pagesize=(self.page_width, self.page_height),
            footer_text=settings.FOOTER_TEXT,
        )
        self.canvas.setTitle(pdf_safe(self.document.title.text) if self.document.title else "Document")
        self._start_page()

        if self.document.title is not None:
            self._title(self.document.title)

        handlers = {
            "heading": self._heading,
            "paragraph": self._paragraph,
            "list": self._list,
            "table": self._table,
            "callout": self._callout,
        }
        for block in self.document.blocks:
            handlers[block.kind](block)

        self.canvas.showPage()
        self.canvas.save()
        self.page_count = self.canvas.page_total
        return buffer.getvalue()


async def render_text_pdf(subtree: BeautifulSoup, theme: Theme) -> ExportBlob:
    """Primary PDF strategy: native text and vector drawing."""
    document = build_document(subtree)
    renderer = TextPdfRenderer(document, theme)
    data = renderer.render()
    logger.debug("Text-mode PDF: %d pages, %d highlighted placeholders",
                 renderer.page_count, len(renderer.highlights))
    return ExportBlob(data, PDF_MEDIA_TYPE, "pdf")
