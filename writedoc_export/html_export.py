"""
Standalone HTML and print exports.

Both wrap the normalized (unthemed) content in the same standalone document
with a fixed stylesheet. The print variant adds a script that opens the print
dialog once the page has had time to lay out.
"""
import html
import logging
import tempfile
import webbrowser
from pathlib import Path
from string import Template
from typing import Callable, Optional

from writedoc_export.config import settings
from writedoc_export.normalizer import HIGHLIGHT_CLASS
from writedoc_export.strategies import HTML_MEDIA_TYPE, ExportBlob

logger = logging.getLogger(__name__)

POPUP_BLOCKED_MESSAGE = "Please allow pop-ups to print the document"

DEFAULT_STYLESHEET = Template("""
    body {
      font-family: Arial, sans-serif;
      line-height: 1.6;
      color: #333;
      max-width: 800px;
      margin: 0 auto;
      padding: 20px;
    }
    h1, h2, h3, h4, h5, h6 {
      margin-top: 1.5em;
      margin-bottom: 0.5em;
    }
    p {
      margin-bottom: 1em;
    }
    table {
      border-collapse: collapse;
      width: 100%;
      margin-bottom: 1em;
    }
    th, td {
      border: 1px solid #ddd;
      padding: 8px;
    }
    th {
      background-color: #f2f2f2;
    }
    .""" + HIGHLIGHT_CLASS + """ {
      background-color: $highlight;
      color: black;
      padding: 0 4px;
      border-radius: 4px;
    }
    @media print {
      body {
        padding: 0;
        margin: 0;
      }
    }
""")

PRINT_SCRIPT = """
  <script>
    window.onload = function () {
      setTimeout(function () { window.print(); }, %(delay)d);
    };
  </script>"""


class PopupBlockedError(RuntimeError):
    """The print window could not be opened; the user has to allow pop-ups."""

    def __init__(self, message: str = POPUP_BLOCKED_MESSAGE):
        super().__init__(message)


def render_html_document(content: str, title: str = "Document", auto_print: bool = False,
                         delay_ms: Optional[int] = None) -> str:
    stylesheet = DEFAULT_STYLESHEET.substitute(highlight=settings.HIGHLIGHT_COLOR)
    script = ""
    if auto_print:
        delay = settings.PRINT_DELAY_MS if delay_ms is None else delay_ms
        script = PRINT_SCRIPT % {"delay": delay}
    return (
        "<!DOCTYPE html>\n"
        "<html>\n"
        "<head>\n"
        '  <meta charset="utf-8">\n'
        f"  <title>{html.escape(title or 'Document')}</title>\n"
        f"  <style>{stylesheet}  </style>{script}\n"
        "</head>\n"
        "<body>\n"
        f"{content}\n"
        "</body>\n"
        "</html>\n"
    )


def export_html(content: str, title: str = "Document") -> ExportBlob:
    document = render_html_document(content, title)
    return ExportBlob(document.encode("utf-8"), HTML_MEDIA_TYPE, "html", strategy="html")


def export_print(content: str, title: str = "Document") -> ExportBlob:
    """The print page as a blob, for callers that open it themselves."""
    document = render_html_document(content, title, auto_print=True)
    return ExportBlob(document.encode("utf-8"), HTML_MEDIA_TYPE, "html", strategy="print")


def _browser_opener(document: str) -> bool:
    with tempfile.NamedTemporaryFile("w", suffix=".html", encoding="utf-8", delete=False) as tmp:
        tmp.write(document)
        path = Path(tmp.name)
    opened = webbrowser.open_new(path.as_uri())
    if not opened:
        path.unlink(missing_ok=True)
    return opened


def open_print_window(document: str, opener: Optional[Callable[[str], bool]] = None) -> None:
    """Open ``document`` in a new window, raising PopupBlockedError if none opens."""
    opener = opener or _browser_opener
    try:
        opened = opener(document)
    except webbrowser.Error as exc:
        logger.warning("Could not open a browser window: %s", exc)
        opened = False
    if not opened:
        raise PopupBlockedError()
    logger.info("Opened print window (%d bytes)", len(document))


def print_document(content: str, title: str = "Document",
                   opener: Optional[Callable[[str], bool]] = None) -> None:
    open_print_window(render_html_document(content, title, auto_print=True), opener)
