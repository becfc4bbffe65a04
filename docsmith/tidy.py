"""
HTML tidy and minify stage.

``HtmlTidier.tidy`` is a pure function of its input string and options:

1. Language: ``lang`` and ``xml:lang`` are set on ``<html>`` from a valid
   IANA language tag
2. Accessibility: with ``remove_alt`` every ``<img>`` gets ``alt=""``
3. Cleanup: legacy presentational tags become CSS, vendor proprietary
   attributes are dropped, CDATA becomes text, smart punctuation becomes
   ASCII and non-breaking spaces become plain spaces
4. Minification: comments removed, whitespace collapsed, empty and
   redundant attributes removed, attributes and class names sorted

Running the stage on its own output returns that output unchanged.
"""

import re
from typing import Dict, List, Optional

import langcodes
from bs4 import BeautifulSoup, CData, Comment, NavigableString, Tag
from bs4.element import PreformattedString

from .utils.error_handling import InvalidOptionError
from .utils.html_utils import parse_document
from .utils.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_LANGUAGE = "en"

# Whitespace inside these is significant
PRESERVE_WHITESPACE_TAGS = {"pre", "textarea", "script", "style"}

# Containers whose whitespace-only children never render
STRUCTURAL_TAGS = {
    "[document]", "html", "head", "table", "thead", "tbody", "tfoot", "tr",
    "colgroup", "ul", "ol", "dl", "select", "optgroup",
}

# Text touching one of these can lose its leading or trailing whitespace
BLOCK_TAGS = STRUCTURAL_TAGS | {
    "address", "article", "aside", "blockquote", "body", "br", "caption",
    "dd", "details", "dialog", "div", "dt", "fieldset", "figcaption",
    "figure", "footer", "form", "h1", "h2", "h3", "h4", "h5", "h6", "header",
    "hgroup", "hr", "li", "link", "main", "meta", "nav", "noscript", "option",
    "p", "section", "summary", "td", "th", "title",
}

# Legacy tag -> (replacement tag, CSS declarations)
LEGACY_TAG_STYLES = {
    "center": ("div", ["text-align:center"]),
    "strike": ("span", ["text-decoration:line-through"]),
    "u": ("span", ["text-decoration:underline"]),
    "big": ("span", ["font-size:larger"]),
    "tt": ("span", ["font-family:monospace"]),
    "nobr": ("span", ["white-space:nowrap"]),
}

FONT_SIZES = {
    "1": "x-small",
    "2": "small",
    "3": "medium",
    "4": "large",
    "5": "x-large",
    "6": "xx-large",
    "7": "xxx-large",
    "-1": "smaller",
    "+1": "larger",
}

ALIGNABLE_TAGS = {"p", "div", "h1", "h2", "h3", "h4", "h5", "h6", "td", "th", "caption"}
ALIGN_VALUES = {"left", "right", "center", "justify"}

# Microsoft data binding, IE layout and other non-standard attributes
PROPRIETARY_ATTRIBUTES = {
    "datasrc", "datafld", "dataformatas", "datapagesize",
    "leftmargin", "topmargin", "rightmargin", "bottommargin",
    "marginwidth", "marginheight",
    "bordercolor", "bordercolorlight", "bordercolordark",
}

# Namespaced attributes that are part of (X)HTML
ALLOWED_PREFIXES = ("xml:", "xmlns")

EMPTY_REMOVABLE_ATTRIBUTES = {"class", "id", "style", "title", "dir"}

# tag -> {attribute: default value}
REDUNDANT_ATTRIBUTES: Dict[str, Dict[str, str]] = {
    "form": {"method": "get"},
    "input": {"type": "text"},
    "script": {"language": "javascript"},
    "area": {"shape": "rect"},
}

SMART_PUNCTUATION = str.maketrans({
    "\u2018": "'",
    "\u2019": "'",
    "\u201a": "'",
    "\u201b": "'",
    "\u201c": '"',
    "\u201d": '"',
    "\u201e": '"',
    "\u201f": '"',
    "\u2013": "-",
    "\u2014": "-",
    "\u00a0": " ",
})

_WHITESPACE = re.compile(r"\s+")
_MSO_DECLARATION = re.compile(r"^\s*mso-", re.IGNORECASE)


def validate_language(language: Optional[str]) -> str:
    """
    Check a language against the IANA language subtag registry.

    Args:
        language: Language tag, e.g. ``en`` or ``en-GB``. Empty means ``en``.

    Returns:
        The language tag

    Raises:
        InvalidOptionError: If the tag is not valid
    """
    language = (language or "").strip() or DEFAULT_LANGUAGE
    if not langcodes.tag_is_valid(language):
        raise InvalidOptionError("language", "querystring.language not a valid IANA language tag")
    return language


class HtmlTidier:
    """Tidy and minify HTML documents."""

    def tidy(self, html: str, language: Optional[str] = DEFAULT_LANGUAGE, remove_alt: bool = False) -> str:
        """
        Tidy and minify a document.

        Args:
            html: HTML document or fragment
            language: IANA language tag for ``lang``/``xml:lang``
            remove_alt: Set ``alt=""`` on every image

        Returns:
            Tidied, minified HTML

        Raises:
            InvalidOptionError: If ``language`` is not a valid tag
        """
        language = validate_language(language)
        soup = parse_document(html)

        self._set_language(soup, language)
        if remove_alt:
            for image in soup.find_all("img"):
                image["alt"] = ""

        self._clean(soup)
        self._minify(soup)
        return str(soup)

    # ===== CLEANUP =====

    @staticmethod
    def _set_language(soup: BeautifulSoup, language: str) -> None:
        soup.html["lang"] = language
        soup.html["xml:lang"] = language

    def _clean(self, soup: BeautifulSoup) -> None:
        self._convert_cdata(soup)
        self._remove_comments(soup)
        self._replace_legacy_tags(soup)
        for tag in soup.find_all(True):
            self._drop_proprietary_attributes(tag)
            self._move_align_to_style(tag)
        self._replace_smart_punctuation(soup)
        soup.smooth()

    @staticmethod
    def _convert_cdata(soup: BeautifulSoup) -> None:
        for node in soup.find_all(string=lambda text: isinstance(text, CData)):
            node.replace_with(NavigableString(str(node)))

    @staticmethod
    def _remove_comments(soup: BeautifulSoup) -> None:
        for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
            comment.extract()

    def _replace_legacy_tags(self, soup: BeautifulSoup) -> None:
        for tag in soup.find_all(["font", *LEGACY_TAG_STYLES]):
            if tag.name == "font":
                declarations = self._font_declarations(tag)
                for attr in ("face", "size", "color"):
                    tag.attrs.pop(attr, None)
                tag.name = "span"
            else:
                tag.name, declarations = LEGACY_TAG_STYLES[tag.name]
            _add_style(tag, declarations)

    @staticmethod
    def _font_declarations(tag: Tag) -> List[str]:
        declarations = []
        face = (tag.get("face") or "").strip()
        if face:
            declarations.append(f"font-family:{face}")
        size = (tag.get("size") or "").strip()
        if size in FONT_SIZES:
            declarations.append(f"font-size:{FONT_SIZES[size]}")
        color = (tag.get("color") or "").strip()
        if color:
            declarations.append(f"color:{color}")
        return declarations

    @staticmethod
    def _drop_proprietary_attributes(tag: Tag) -> None:
        for attr in list(tag.attrs):
            name = attr.lower()
            if name in PROPRIETARY_ATTRIBUTES or name.startswith("mso-"):
                del tag[attr]
            elif ":" in name and not name.startswith(ALLOWED_PREFIXES):
                del tag[attr]

        style = tag.get("style")
        if style and "mso-" in style.lower():
            kept = [d.strip() for d in style.split(";") if d.strip() and not _MSO_DECLARATION.match(d)]
            tag["style"] = ";".join(kept)

    @staticmethod
    def _move_align_to_style(tag: Tag) -> None:
        if tag.name not in ALIGNABLE_TAGS:
            return
        align = (tag.get("align") or "").strip().lower()
        if align in ALIGN_VALUES:
            del tag["align"]
            _add_style(tag, [f"text-align:{align}"])

    @staticmethod
    def _replace_smart_punctuation(soup: BeautifulSoup) -> None:
        for node in soup.find_all(string=True):
            if isinstance(node, PreformattedString) or _in_tags(node, {"script", "style"}):
                continue
            replaced = str(node).translate(SMART_PUNCTUATION)
            if replaced != node:
                node.replace_with(NavigableString(replaced))

    # ===== MINIFICATION =====

    def _minify(self, soup: BeautifulSoup) -> None:
        self._collapse_whitespace(soup)
        for tag in soup.find_all(True):
            self._remove_empty_attributes(tag)
            self._remove_redundant_attributes(tag)
            self._sort_attributes(tag)

    @staticmethod
    def _collapse_whitespace(soup: BeautifulSoup) -> None:
        for node in list(soup.find_all(string=True)):
            if isinstance(node, PreformattedString) or _in_tags(node, PRESERVE_WHITESPACE_TAGS):
                continue

            parent_name = node.parent.name if node.parent else "[document]"
            text = _WHITESPACE.sub(" ", str(node))

            if text == " " and parent_name in STRUCTURAL_TAGS:
                node.extract()
                continue

            if text.startswith(" ") and _at_block_boundary(node, node.previous_sibling):
                text = text[1:]
            if text.endswith(" ") and _at_block_boundary(node, node.next_sibling):
                text = text[:-1]

            if not text:
                node.extract()
            elif text != node:
                node.replace_with(NavigableString(text))

    @staticmethod
    def _remove_empty_attributes(tag: Tag) -> None:
        for attr in list(tag.attrs):
            if attr not in EMPTY_REMOVABLE_ATTRIBUTES and not attr.startswith("on"):
                continue
            value = tag[attr]
            if isinstance(value, list):
                value = " ".join(value)
            if not str(value).strip():
                del tag[attr]

    @staticmethod
    def _remove_redundant_attributes(tag: Tag) -> None:
        defaults = REDUNDANT_ATTRIBUTES.get(tag.name, {})
        for attr, default in defaults.items():
            value = tag.get(attr)
            if isinstance(value, str) and value.strip().lower() == default:
                del tag[attr]

        if tag.name == "script" and not tag.get("src"):
            tag.attrs.pop("charset", None)
        if tag.name == "a" and tag.get("name") is not None and tag.get("name") == tag.get("id"):
            del tag["name"]

    @staticmethod
    def _sort_attributes(tag: Tag) -> None:
        classes = tag.get("class")
        if isinstance(classes, list):
            tag["class"] = sorted(classes)
        tag.attrs = dict(sorted(tag.attrs.items()))


def _add_style(tag: Tag, declarations: List[str]) -> None:
    if not declarations:
        return
    existing = (tag.get("style") or "").strip().rstrip(";").strip()
    tag["style"] = ";".join(([existing] if existing else []) + declarations)


def _in_tags(node: NavigableString, names) -> bool:
    return any(parent.name in names for parent in node.parents)


def _at_block_boundary(node: NavigableString, sibling) -> bool:
    """Whether whitespace between ``node`` and ``sibling`` can be dropped."""
    if sibling is None:
        parent = node.parent
        return parent is None or parent.name in BLOCK_TAGS
    return isinstance(sibling, Tag) and sibling.name in BLOCK_TAGS
