"""
Output normalization.

Turns raw converter output into a self-contained document:

- the workspace id is injected as the document title
- ``<img>`` nodes are removed, and the side files they point at are deleted
  when they belong to the converter that produced them
- mojibake left by the converter (Windows-1252 read as UTF-8 and similar)
  is repaired with ftfy
"""

import fnmatch
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

from bs4 import BeautifulSoup
from ftfy import TextFixerConfig, fix_text

from .converters.base import RawOutput
from .utils.html_utils import parse_document
from .utils.logging_config import get_logger

logger = get_logger(__name__)

# HTML entities and typographic quotes are the tidy stage's business
ENCODING_REPAIR_CONFIG = TextFixerConfig(
    unescape_html=False,
    uncurl_quotes=False,
    fix_line_breaks=False,
)


def repair_encoding(text: str) -> str:
    """Fix mis-decoded text without touching markup."""
    if not text:
        return text
    return fix_text(text, config=ENCODING_REPAIR_CONFIG)


class OutputNormalizer:
    """
    Build, mutate and serialize the DOM for one converter output.

    Args:
        inject_title: Prepend ``<title>{workspace id}</title>`` to ``<head>``
        strip_images: Remove ``<img>`` nodes and their side files
        repair: Apply encoding repair to the serialized output
    """

    def __init__(self, inject_title: bool = True, strip_images: bool = True, repair: bool = True):
        self.inject_title = inject_title
        self.strip_images = strip_images
        self.repair = repair

    def normalize(self, raw: RawOutput) -> str:
        if raw.media_type != "text/html":
            return repair_encoding(raw.content) if self.repair else raw.content

        soup = parse_document(raw.content)

        if self.inject_title:
            self._inject_title(soup, raw.workspace.id)
        if self.strip_images:
            removed = self._strip_images(soup, raw)
            if removed:
                logger.debug(f"Removed {removed} image(s) from output of {raw.workspace.id}")

        html = str(soup)
        return repair_encoding(html) if self.repair else html

    @staticmethod
    def _inject_title(soup: BeautifulSoup, title: str) -> None:
        for existing in soup.head.find_all("title"):
            existing.decompose()
        tag = soup.new_tag("title")
        tag.string = title
        soup.head.insert(0, tag)

    def _strip_images(self, soup: BeautifulSoup, raw: RawOutput) -> int:
        converter = raw.converter
        pattern = converter.side_file_pattern(raw.workspace) if converter else None
        directory = converter.side_file_directory(raw.workspace) if converter else None

        images = soup.find_all("img")
        for image in images:
            src = image.get("src")
            image.decompose()
            if pattern and directory and src:
                side_file = resolve_side_file(src, Path(directory), pattern)
                if side_file is not None:
                    _remove_side_file(side_file)
        return len(images)


def resolve_side_file(src: str, directory: Path, pattern: str) -> Optional[Path]:
    """
    Map an ``<img src>`` to a side file the converter wrote.

    Returns None for remote or inline sources, for paths that escape
    ``directory``, and for names that do not match ``pattern``.
    """
    parsed = urlparse(src)
    if parsed.scheme and parsed.scheme != "file":
        return None

    relative = unquote(parsed.path)
    if not relative:
        return None

    base = directory.resolve()
    candidate = (base / relative).resolve()
    if candidate.parent != base:
        return None
    if not fnmatch.fnmatch(candidate.name, pattern):
        return None
    return candidate


def _remove_side_file(path: Path) -> None:
    try:
        # Concurrent requests may reference the same name
        path.unlink(missing_ok=True)
        logger.debug(f"Removed side file: {path}")
    except OSError as e:
        logger.warning(f"Failed to remove side file {path}: {e}")
