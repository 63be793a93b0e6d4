"""
Content normalisation run before every export.

1. Strip the markdown code-fence markers AI models wrap around HTML.
2. Render Markdown to HTML when the model answered in Markdown.
3. Substitute ``[Field Name]`` placeholders that have a non-empty value.
4. Wrap every remaining placeholder in a highlight span.

Placeholders are bracketed tokens that never contain brackets, tags or line
breaks. Nested brackets such as ``[A [B] C]`` are not resolved: only the
innermost ``[B]`` is treated as a placeholder and the rest passes through.
"""
import html
import logging
import re
from typing import Dict, List, Optional

from markdown_it import MarkdownIt

from writedoc_export.config import settings

logger = logging.getLogger(__name__)

FENCE_PATTERN = re.compile(r"```(?:html)?", re.IGNORECASE)
PLACEHOLDER_PATTERN = re.compile(r"\[([^\[\]<>\n]+)\]")
HIGHLIGHT_CLASS = "placeholder-highlight"

# An existing highlight span, matched first so it is never wrapped twice
HIGHLIGHTED_PATTERN = re.compile(
    r'<span class="' + HIGHLIGHT_CLASS + r'" data-placeholder="[^"]*"[^>]*>'
    r'\[[^\[\]<>\n]+\]</span>'
)
TOKEN_PATTERN = re.compile(
    "(" + HIGHLIGHTED_PATTERN.pattern + ")|" + PLACEHOLDER_PATTERN.pattern
)

HTML_BLOCK_PATTERN = re.compile(
    r"<(h[1-6]|p|div|table|ul|ol|li|section|article|header|footer|br|span|strong|em|blockquote)\b",
    re.IGNORECASE,
)

_MD = MarkdownIt("commonmark", {"html": True}).enable("table")

# Private-use markers standing in for placeholders while Markdown renders
SHIELD_OPEN = "\ue000"
SHIELD_CLOSE = "\ue001"
SHIELD_PATTERN = re.compile(SHIELD_OPEN + r"(\d+)" + SHIELD_CLOSE)


def strip_code_fences(content: str) -> str:
    return FENCE_PATTERN.sub("", content)


def looks_like_html(content: str) -> bool:
    return bool(HTML_BLOCK_PATTERN.search(content))


def markdown_to_html(content: str) -> str:
    """
    Render Markdown to an HTML fragment.

    Bracketed placeholders are swapped out for opaque markers first, so
    Markdown never reads ``[Name]: value`` as a link reference definition
    or ``[Name]`` as a reference link.
    """
    tokens: List[str] = []

    def shield(match: re.Match) -> str:
        tokens.append(match.group(0))
        return f"{SHIELD_OPEN}{len(tokens) - 1}{SHIELD_CLOSE}"

    rendered = _MD.render(TOKEN_PATTERN.sub(shield, content))
    return SHIELD_PATTERN.sub(lambda match: tokens[int(match.group(1))], rendered)


def extract_fields(content: str) -> List[str]:
    """Unique placeholder names in order of first appearance."""
    fields: List[str] = []
    seen = set()
    for match in PLACEHOLDER_PATTERN.finditer(content or ""):
        name = match.group(1).strip()
        if name and name not in seen:
            seen.add(name)
            fields.append(name)
    return fields


def highlight_span(token: str, name: str) -> str:
    return (
        f'<span class="{HIGHLIGHT_CLASS}" data-placeholder="{html.escape(html.unescape(name), quote=True)}" '
        f'style="background-color: {settings.HIGHLIGHT_COLOR}; color: black; '
        f'padding: 0 4px; border-radius: 4px;">{token}</span>'
    )


def substitute_fields(content: str, fields: Dict[str, str]) -> str:
    """Replace every placeholder whose field has a non-empty value."""
    for name, value in fields.items():
        if not value or not name.strip():
            continue
        key = re.escape(name.strip())
        pattern = re.compile(
            r'<span class="' + HIGHLIGHT_CLASS + r'" data-placeholder="[^"]*"[^>]*>'
            r"\[\s*" + key + r"\s*\]</span>|\[\s*" + key + r"\s*\]"
        )
        replacement = html.escape(value, quote=False)
        # A callable replacement keeps backslashes in the value literal
        content = pattern.sub(lambda _match, text=replacement: text, content)
    return content


def highlight_placeholders(content: str) -> str:
    """Wrap unresolved placeholders; already-wrapped ones are left as they are."""

    def replace(match: re.Match) -> str:
        if match.group(1):
            return match.group(0)
        name = match.group(2).strip()
        if not name:
            return match.group(0)
        return highlight_span(match.group(0), name)

    return TOKEN_PATTERN.sub(replace, content)


def normalize_content(content: str, fields: Optional[Dict[str, str]] = None) -> str:
    """Strip fences, substitute field values and highlight what is left."""
    if content is None:
        raise ValueError("content is required")

    normalized = strip_code_fences(content)
    if normalized.strip() and not looks_like_html(normalized):
        logger.debug("Content has no HTML block tags, rendering it as Markdown")
        normalized = markdown_to_html(normalized)

    if fields:
        normalized = substitute_fields(normalized, fields)

    return highlight_placeholders(normalized)
