"""HTML sanitization for reader-mode snapshot content.

Everything that is not on an allow-list is removed: disallowed elements are
unwrapped (their text survives), elements that never carry readable text are
dropped with their contents, and attributes are filtered per tag.  The output
is deterministic for a given input and the functions here never raise.
"""

from __future__ import annotations

import html
import re
from typing import Dict, FrozenSet

from bs4 import BeautifulSoup, Tag
from bs4.element import CData, Comment, Declaration, Doctype, ProcessingInstruction

ALLOWED_TAGS: FrozenSet[str] = frozenset(
    {
        # Block elements
        "article", "section", "header", "footer", "aside", "nav", "main",
        "div", "p", "blockquote", "pre", "code", "hr",
        # Headings
        "h1", "h2", "h3", "h4", "h5", "h6",
        # Lists
        "ul", "ol", "li", "dl", "dt", "dd",
        # Inline elements
        "a", "span", "strong", "b", "em", "i", "u", "s", "del", "ins", "mark",
        "sub", "sup", "small", "abbr", "cite", "q", "time", "kbd", "samp", "var",
        # Media
        "img", "figure", "figcaption", "picture", "source",
        # Tables
        "table", "thead", "tbody", "tfoot", "tr", "th", "td", "caption",
        "colgroup", "col",
        # Other
        "br", "wbr",
    }
)

# Removed together with everything inside them.
DROPPED_WITH_CONTENT: FrozenSet[str] = frozenset(
    {
        "script", "style", "noscript", "textarea", "option", "select",
        "button", "input", "iframe", "frame", "frameset", "object", "embed",
        "applet", "template", "svg", "math", "head", "title", "link", "meta",
        "base",
    }
)

ALLOWED_ATTRIBUTES: Dict[str, FrozenSet[str]] = {
    "a": frozenset({"href", "title", "rel", "target"}),
    "img": frozenset({"src", "alt", "title", "width", "height", "loading"}),
    "source": frozenset({"srcset", "media", "type"}),
    "blockquote": frozenset({"cite"}),
    "q": frozenset({"cite"}),
    "time": frozenset({"datetime"}),
    "abbr": frozenset({"title"}),
    "td": frozenset({"colspan", "rowspan"}),
    "th": frozenset({"colspan", "rowspan", "scope"}),
    "col": frozenset({"span"}),
    "colgroup": frozenset({"span"}),
}
GLOBAL_ATTRIBUTES: FrozenSet[str] = frozenset({"id", "class", "lang", "dir"})

URL_ATTRIBUTES: FrozenSet[str] = frozenset({"href", "src", "cite"})
ALLOWED_SCHEMES: FrozenSet[str] = frozenset({"http", "https", "mailto"})
ALLOWED_SCHEMES_BY_TAG: Dict[str, FrozenSet[str]] = {
    "img": frozenset({"http", "https", "data"}),
}

SELF_CLOSING: FrozenSet[str] = frozenset({"br", "hr", "img", "source", "col", "wbr"})

LINK_REL = "noopener noreferrer nofollow"

_SCHEME_RE = re.compile(r"^([a-zA-Z][a-zA-Z0-9+.\-]*):")
# Browsers ignore ASCII whitespace and control characters inside a scheme.
_URL_NOISE_RE = re.compile(r"[\x00-\x20\x7f]+")
_WHITESPACE_RE = re.compile(r"\s+")
_NON_ELEMENTS = (Comment, Doctype, Declaration, ProcessingInstruction, CData)


def _url_allowed(value: str, tag_name: str) -> bool:
    cleaned = _URL_NOISE_RE.sub("", value)
    match = _SCHEME_RE.match(cleaned)
    if match is None:
        # Relative, fragment, or protocol-relative URL.
        return True
    schemes = ALLOWED_SCHEMES_BY_TAG.get(tag_name, ALLOWED_SCHEMES)
    return match.group(1).lower() in schemes


def _srcset_allowed(value: str, tag_name: str) -> bool:
    candidates = [part.strip().split(" ", 1)[0] for part in value.split(",")]
    return all(_url_allowed(url, tag_name) for url in candidates if url)


def _filter_attributes(tag: Tag) -> None:
    allowed = ALLOWED_ATTRIBUTES.get(tag.name, frozenset()) | GLOBAL_ATTRIBUTES
    kept = {}
    for name, value in tag.attrs.items():
        name = name.lower()
        if name not in allowed:
            continue
        if isinstance(value, list):
            value = " ".join(value)
        if name in URL_ATTRIBUTES and not _url_allowed(value, tag.name):
            continue
        if name == "srcset" and not _srcset_allowed(value, tag.name):
            continue
        kept[name] = value
    tag.attrs = kept


def _drop_non_text(soup: BeautifulSoup) -> None:
    for tag in soup.find_all(DROPPED_WITH_CONTENT):
        # Nested matches are already gone with their ancestor.
        if not tag.decomposed:
            tag.decompose()


def _is_empty(tag: Tag) -> bool:
    return not tag.get_text(strip=True) and tag.find(True) is None


def sanitize_content(raw_html: str) -> str:
    """Return an allow-listed copy of *raw_html* safe to store and render.

    Every surviving ``<a>`` opens in a new tab with
    ``rel="noopener noreferrer nofollow"``; every ``<img>`` is lazy-loaded;
    empty non-void elements are removed.
    """
    if not raw_html:
        return ""
    soup = BeautifulSoup(raw_html, "html.parser")

    for node in soup.find_all(string=lambda s: isinstance(s, _NON_ELEMENTS)):
        node.extract()
    _drop_non_text(soup)

    for tag in soup.find_all(True):
        if tag.name not in ALLOWED_TAGS:
            tag.unwrap()
            continue
        _filter_attributes(tag)
        if tag.name == "a":
            tag["target"] = "_blank"
            tag["rel"] = LINK_REL
        elif tag.name == "img":
            tag["loading"] = "lazy"

    # Children before parents so a wrapper of empty elements goes too.
    for tag in reversed(soup.find_all(True)):
        if tag.name not in SELF_CLOSING and _is_empty(tag):
            tag.decompose()

    return str(soup).strip()


def strip_html(raw_html: str) -> str:
    """Reduce markup to collapsed plain text."""
    if not raw_html:
        return ""
    soup = BeautifulSoup(raw_html, "html.parser")
    _drop_non_text(soup)
    return _WHITESPACE_RE.sub(" ", soup.get_text(" ")).strip()


def escape_html(text: str) -> str:
    """Entity-encode *text* for safe interpolation into markup."""
    return html.escape(text, quote=True)
