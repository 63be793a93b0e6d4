"""
Ordered fallback chains.

Every output format has a tuple of named strategies with the same contract,
``async render(subtree, theme) -> ExportBlob``. ``run_chain`` tries them in
order and returns the first blob produced; each attempt works on its own copy
of the subtree so a strategy that fails half-way cannot leak edits into the
next one.
"""
import copy
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Sequence, Tuple

from bs4 import BeautifulSoup

from writedoc_export.models import Theme

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"
PNG_MEDIA_TYPE = "image/png"
DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
HTML_MEDIA_TYPE = "text/html; charset=utf-8"
TEXT_MEDIA_TYPE = "text/plain; charset=utf-8"


class ExportError(RuntimeError):
    """Raised when every strategy of a chain failed."""

    def __init__(self, label: str, attempts: List[Tuple[str, BaseException]]):
        self.label = label
        self.attempts = attempts
        tried = ", ".join(f"{name}: {exc}" for name, exc in attempts) or "no strategies"
        super().__init__(f"{label} export failed ({tried})")


@dataclass
class ExportBlob:
    data: bytes
    media_type: str
    extension: str
    strategy: str = ""

    def filename(self, stem: str = "document") -> str:
        return f"{stem}.{self.extension}"


Renderer = Callable[[BeautifulSoup, Theme], Awaitable[ExportBlob]]


@dataclass(frozen=True)
class Strategy:
    name: str
    render: Renderer


async def run_chain(label: str, strategies: Sequence[Strategy],
                    subtree: BeautifulSoup, theme: Theme) -> ExportBlob:
    """Run ``strategies`` in order until one returns a blob."""
    attempts: List[Tuple[str, BaseException]] = []
    for strategy in strategies:
        try:
            blob = await strategy.render(copy.copy(subtree), theme)
        except Exception as exc:
            logger.warning("%s strategy '%s' failed: %s", label, strategy.name, exc, exc_info=True)
            attempts.append((strategy.name, exc))
            continue

        blob.strategy = strategy.name
        if attempts:
            logger.info(
                "%s export fell back to '%s' (%d bytes, %d earlier strategies failed)",
                label, strategy.name, len(blob.data), len(attempts),
            )
        else:
            logger.info("%s export produced by '%s' (%d bytes)", label, strategy.name, len(blob.data))
        return blob

    raise ExportError(label, attempts)
