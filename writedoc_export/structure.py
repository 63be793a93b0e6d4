"""
Structural IR for a themed document.

``build_document`` reads the tree produced by ``theming.apply_theme`` once and
turns it into plain dataclasses (headings, paragraphs, lists, tables and
callouts made of text runs). The PDF, raster and DOCX renderers all draw from
this model, so none of them needs to know about the HTML tree.
"""
import copy
import re
from dataclasses import dataclass, field, replace
from typing import Iterable, List, Optional, Set

from bs4 import BeautifulSoup, Comment, NavigableString, Tag
from bs4.element import CData, Declaration, Doctype, ProcessingInstruction

from writedoc_export.theming import (
    CALLOUT_ROLE,
    HEADING_TAGS,
    background_color,
    export_root,
    style_value,
)

LIST_TAGS = ["ul", "ol"]
BLOCK_TAGS = HEADING_TAGS + ["p", "ul", "ol", "table", "div", "blockquote", "pre"]
# Blocks whose own loose text is interleaved with the blocks they contain
CONTAINER_TAGS = ["div", "blockquote"]
SKIP_TAGS = ["style", "script", "template", "noscript", "head", "title"]
LINE_BREAK_TAGS = set(HEADING_TAGS + ["p", "li", "tr", "div", "table", "ul", "ol", "blockquote", "pre"])

WHITESPACE = re.compile(r"\s+")
NON_TEXT_STRINGS = (Comment, CData, Declaration, Doctype, ProcessingInstruction)

BULLET = "•"


@dataclass
class Run:
    text: str
    placeholder: bool = False
    bold: bool = False
    color: Optional[str] = None


@dataclass
class ListItem:
    runs: List[Run]
    depth: int = 0
    marker: str = BULLET

    @property
    def text(self) -> str:
        return runs_text(self.runs)

    @property
    def has_placeholder(self) -> bool:
        return any(run.placeholder for run in self.runs)


@dataclass
class Cell:
    runs: List[Run]
    header: bool = False
    background: Optional[str] = None
    color: Optional[str] = None

    @property
    def text(self) -> str:
        return runs_text(self.runs)

    @property
    def has_placeholder(self) -> bool:
        return any(run.placeholder for run in self.runs)


@dataclass
class Block:
    kind: str  # heading | paragraph | list | table | callout
    runs: List[Run] = field(default_factory=list)
    level: int = 0
    ordered: bool = False
    items: List[ListItem] = field(default_factory=list)
    rows: List[List[Cell]] = field(default_factory=list)
    children: List[List[Run]] = field(default_factory=list)
    background: Optional[str] = None
    color: Optional[str] = None

    @property
    def text(self) -> str:
        if self.kind == "list":
            return "\n".join(item.text for item in self.items)
        if self.kind == "table":
            return "\n".join(" | ".join(cell.text for cell in row) for row in self.rows)
        if self.kind == "callout":
            return "\n".join(runs_text(runs) for runs in self.children)
        return runs_text(self.runs)

    @property
    def has_placeholder(self) -> bool:
        return any(run.placeholder for run in self.runs)

    @property
    def is_blank(self) -> bool:
        if self.kind == "table":
            return not any(cell.text for row in self.rows for cell in row)
        return not self.text

    @property
    def header_rows(self) -> int:
        count = 0
        for row in self.rows:
            if not row or not all(cell.header for cell in row):
                break
            count += 1
        return count


@dataclass
class StructuredDocument:
    title: Optional[Block]
    blocks: List[Block]
    plain_text: str = ""
    background: Optional[str] = None
    color: Optional[str] = None
    font_family: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.title is None and not self.blocks


def runs_text(runs: Iterable[Run]) -> str:
    return "".join(run.text for run in runs).strip()


def collect_runs(node: Tag, bold: bool = False, color: Optional[str] = None,
                 stop: Iterable[str] = ()) -> List[Run]:
    """Inline text runs under ``node``; subtrees named in ``stop`` are skipped."""
    stop = set(stop)
    runs: List[Run] = []
    for child in node.children:
        runs.extend(_node_runs(child, bold, color, stop))
    return runs


def _node_runs(child, bold: bool, color: Optional[str], stop: Set[str]) -> List[Run]:
    if isinstance(child, NON_TEXT_STRINGS):
        return []
    if isinstance(child, NavigableString):
        return [Run(str(child), bold=bold, color=color)]
    if not isinstance(child, Tag) or child.name in SKIP_TAGS or child.name in stop:
        return []
    if child.name == "br":
        return [Run("\n")]
    if child.get("data-placeholder") is not None:
        return [Run(child.get_text(), placeholder=True, bold=bold)]
    weight = (style_value(child, "font-weight") or "").lower()
    child_bold = bold or child.name in ("b", "strong") or weight in ("bold", "bolder", "600", "700", "800", "900")
    link_color = style_value(child, "color") if child.name == "a" else None
    return collect_runs(child, child_bold, link_color or color, stop)


def clean_runs(runs: List[Run]) -> List[Run]:
    """Collapse whitespace across runs the way a browser lays out inline text."""
    cleaned: List[Run] = []
    for run in runs:
        text = run.text if run.text == "\n" else WHITESPACE.sub(" ", run.text)
        if cleaned and text.startswith(" ") and cleaned[-1].text.endswith((" ", "\n")):
            text = text[1:]
        if text == "\n" and cleaned:
            cleaned[-1].text = cleaned[-1].text.rstrip(" ")
        if text:
            cleaned.append(replace(run, text=text))

    while cleaned and not cleaned[0].text.strip():
        cleaned.pop(0)
    while cleaned and not cleaned[-1].text.strip():
        cleaned.pop()
    if cleaned:
        cleaned[0].text = cleaned[0].text.lstrip()
        cleaned[-1].text = cleaned[-1].text.rstrip()
    return cleaned


def _inline_runs(node: Tag, stop: Iterable[str] = LIST_TAGS) -> List[Run]:
    return clean_runs(collect_runs(node, stop=stop))


def _heading(tag: Tag) -> Block:
    return Block(
        kind="heading",
        runs=_inline_runs(tag),
        level=int(tag.name[1]),
        color=style_value(tag, "color"),
    )


def _list_items(list_tag: Tag, depth: int = 0) -> List[ListItem]:
    ordered = list_tag.name == "ol"
    try:
        index = int(list_tag.get("start", 1))
    except (TypeError, ValueError):
        index = 1

    items: List[ListItem] = []
    for li in list_tag.find_all("li", recursive=False):
        runs = _inline_runs(li)
        if runs_text(runs):
            items.append(ListItem(runs, depth, f"{index}." if ordered else BULLET))
            index += 1
        for nested in li.find_all(LIST_TAGS):
            if nested.find_parent("li") is li:
                items.extend(_list_items(nested, depth + 1))
    return items


def _table_rows(table: Tag) -> List[List[Cell]]:
    rows: List[List[Cell]] = []
    for tr in table.find_all("tr"):
        if tr.find_parent("table") is not table:
            continue
        cells = [
            Cell(
                runs=_inline_runs(cell, stop=()),
                header=cell.name == "th",
                background=background_color(cell),
                color=style_value(cell, "color"),
            )
            for cell in tr.find_all(["th", "td"], recursive=False)
        ]
        if cells:
            rows.append(cells)
    return rows


def _callout(div: Tag, title_tag: Optional[Tag] = None) -> Block:
    text_tags = HEADING_TAGS + ["p", "li"]
    children: List[List[Run]] = []
    holds_title = False
    for child in div.find_all(text_tags):
        if child is title_tag:
            holds_title = True
            continue
        owner = child.find_parent(text_tags)
        # Text blocks nested in another text block of this callout are already included
        if owner is not None and any(parent is div for parent in owner.parents):
            continue
        runs = _inline_runs(child)
        if runs_text(runs):
            children.append(runs)
    if not children and not holds_title:
        runs = _inline_runs(div, stop=())
        if runs_text(runs):
            children.append(runs)
    return Block(kind="callout", children=children, background=background_color(div))


def extract_plain_text(node: Tag) -> str:
    """Visible text with one line per block, like ``innerText``."""
    clone = copy.copy(node)
    for tag in clone.find_all(SKIP_TAGS):
        tag.decompose()
    for string in clone.find_all(string=lambda s: isinstance(s, NON_TEXT_STRINGS)):
        string.extract()
    for br in clone.find_all("br"):
        br.replace_with("\n")
    for cell in clone.find_all(["td", "th"]):
        cell.append(" | ")
    for tag in clone.find_all(list(LINE_BREAK_TAGS)):
        tag.append("\n")

    lines = []
    for line in clone.get_text().splitlines():
        line = WHITESPACE.sub(" ", line).strip().rstrip("|").strip()
        if line:
            lines.append(line)
    return "\n".join(lines)


def _walk_blocks(node: Tag, title_tag: Optional[Tag], blocks: List[Block]) -> None:
    """
    Append the blocks under ``node`` in document order.

    Loose inline text between block elements becomes a paragraph at the
    point where it appears, so closing notes after the last block stay last.
    """
    loose: List[Run] = []
    stop = set(BLOCK_TAGS)

    def flush() -> None:
        runs = clean_runs(loose)
        if runs_text(runs):
            blocks.append(Block(kind="paragraph", runs=runs))
        loose.clear()

    for child in node.children:
        if not isinstance(child, Tag) or child.name in SKIP_TAGS:
            loose.extend(_node_runs(child, False, None, stop))
            continue
        if child.name not in BLOCK_TAGS:
            if child.find(BLOCK_TAGS) is None:
                loose.extend(_node_runs(child, False, None, stop))
            else:
                flush()
                _walk_blocks(child, title_tag, blocks)
            continue

        flush()
        if child is title_tag:
            continue
        if child.name == "div" and child.get("data-role") == CALLOUT_ROLE:
            block = _callout(child, title_tag)
        elif child.name in CONTAINER_TAGS:
            _walk_blocks(child, title_tag, blocks)
            continue
        elif child.name in HEADING_TAGS:
            block = _heading(child)
        elif child.name in LIST_TAGS:
            block = Block(kind="list", ordered=child.name == "ol", items=_list_items(child))
        elif child.name == "table":
            block = Block(kind="table", rows=_table_rows(child))
        else:
            block = Block(kind="paragraph", runs=_inline_runs(child, stop=BLOCK_TAGS))

        if not block.is_blank:
            blocks.append(block)
    flush()


def build_document(styled: BeautifulSoup) -> StructuredDocument:
    """Walk block-level elements in document order and build the IR."""
    root = export_root(styled)

    title_tag = next(
        (heading for heading in root.find_all(HEADING_TAGS) if heading.get_text(strip=True)),
        None,
    )
    title = _heading(title_tag) if title_tag is not None else None

    blocks: List[Block] = []
    _walk_blocks(root, title_tag, blocks)

    return StructuredDocument(
        title=title,
        blocks=blocks,
        plain_text=extract_plain_text(root),
        background=style_value(root, "background-color"),
        color=style_value(root, "color"),
        font_family=style_value(root, "font-family"),
    )
