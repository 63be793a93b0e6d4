"""
Theme application as a pure tree transform.

``apply_theme`` never touches the tree it is given: it works on a deep copy and
returns a new document whose single root is a wrapper ``div`` carrying the
theme's font, text colour and background. Inside it, headings get the primary
colour, links the accent colour and table header cells the secondary colour
with white text. Existing inline declarations are kept unless a rule overrides
the same property.

This is also the one place where "highlighted section" divs are recognised.
They are tagged with ``data-role="callout"`` so renderers only ever read the
marker.
"""
import copy
import re
from collections import OrderedDict
from typing import Dict, Optional, Union

from bs4 import BeautifulSoup, Tag

from writedoc_export.colors import is_white, try_parse_color
from writedoc_export.models import Theme

HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]
ROOT_CLASS = "export-root"
CALLOUT_ROLE = "callout"
CALLOUT_CLASS_PATTERN = re.compile(r"^(bg-(?!white\b|transparent\b).+|highlight.*|callout.*|notice.*)$")
HEX_PATTERN = re.compile(r"#[0-9a-fA-F]{3,8}\b")


def parse_style(value: Optional[str]) -> Dict[str, str]:
    declarations: Dict[str, str] = OrderedDict()
    for declaration in (value or "").split(";"):
        if ":" not in declaration:
            continue
        prop, _, val = declaration.partition(":")
        prop = prop.strip().lower()
        if prop:
            declarations[prop] = val.strip()
    return declarations


def serialize_style(declarations: Dict[str, str]) -> str:
    return "; ".join(f"{prop}: {val}" for prop, val in declarations.items()) + ";"


def merge_style(tag: Tag, declarations: Dict[str, str]) -> None:
    style = parse_style(tag.get("style"))
    style.update(declarations)
    tag["style"] = serialize_style(style)


def style_value(tag: Tag, prop: str) -> Optional[str]:
    value = parse_style(tag.get("style")).get(prop)
    if value:
        value = value.replace("!important", "").strip()
    return value or None


def background_color(tag: Tag) -> Optional[str]:
    """Inline background colour from background-color or the background shorthand."""
    value = style_value(tag, "background-color")
    if value and try_parse_color(value):
        return value
    shorthand = style_value(tag, "background")
    if not shorthand:
        return None
    if try_parse_color(shorthand):
        return shorthand
    match = HEX_PATTERN.search(shorthand)
    return match.group(0) if match else None


def is_callout(div: Tag) -> bool:
    if div.get("data-role") == CALLOUT_ROLE:
        return True
    color = background_color(div)
    if color and not is_white(color):
        return True
    return any(CALLOUT_CLASS_PATTERN.match(name) for name in div.get("class") or [])


def _source_children(content: Union[str, Tag]) -> Tag:
    if isinstance(content, str):
        source = BeautifulSoup(content, "html.parser")
    else:
        source = copy.copy(content)
    # Whole documents contribute their body only
    body = source.find("body")
    return body if body is not None else source


def apply_theme(content: Union[str, Tag], theme: Theme) -> BeautifulSoup:
    """Return a themed copy of ``content`` wrapped in an export root div."""
    source = _source_children(content)

    styled = BeautifulSoup("", "html.parser")
    wrapper = styled.new_tag("div", attrs={"class": ROOT_CLASS})
    merge_style(wrapper, {
        "font-family": theme.font_family,
        "color": theme.text_color,
        "background-color": theme.background_color,
    })
    styled.append(wrapper)
    for child in list(source.contents):
        wrapper.append(child.extract())

    for heading in wrapper.find_all(HEADING_TAGS):
        merge_style(heading, {"color": theme.primary_color})

    for link in wrapper.find_all("a"):
        merge_style(link, {"color": theme.accent_color})

    for cell in wrapper.find_all("th"):
        merge_style(cell, {
            "background-color": theme.secondary_color,
            "color": "#ffffff",
        })

    for div in wrapper.find_all("div"):
        if is_callout(div):
            div["data-role"] = CALLOUT_ROLE

    return styled


def export_root(styled: BeautifulSoup) -> Tag:
    """The wrapper div produced by ``apply_theme`` (or the document itself)."""
    root = styled.find("div", class_=ROOT_CLASS)
    return root if root is not None else styled
