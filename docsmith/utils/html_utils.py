"""
HTML document helpers shared by the normalizer and the tidy stage.
"""

from typing import Optional, Tuple

from bs4 import BeautifulSoup, Doctype

from .logging_config import get_logger

logger = get_logger(__name__)

PARSER = "html.parser"


def detect_html_structure(html_content: str) -> Tuple[bool, bool, bool]:
    """
    Detect the structure of HTML content.

    Args:
        html_content: The HTML content to analyze

    Returns:
        Tuple of (has_doctype, has_html_tag, has_body_tag)
    """
    if not html_content:
        return False, False, False

    soup = BeautifulSoup(html_content, PARSER)

    has_doctype = any(isinstance(node, Doctype) for node in soup.contents)
    has_html = soup.find("html") is not None
    has_body = soup.find("body") is not None

    return has_doctype, has_html, has_body


def is_full_html_document(html_content: str) -> bool:
    """
    Check if the HTML content is a full HTML document with html and body tags.

    Args:
        html_content: The HTML content to check

    Returns:
        True if it's a full HTML document, False otherwise
    """
    _, has_html, has_body = detect_html_structure(html_content)
    return has_html and has_body


def wrap_html_content(content: str, title: Optional[str] = None) -> str:
    """
    Wrap a fragment in a full HTML document structure.

    Args:
        content: The HTML fragment to wrap
        title: Optional document title

    Returns:
        Full HTML document
    """
    if not content:
        content = ""

    title_tag = f"<title>{title}</title>" if title else ""

    return (
        "<!DOCTYPE html>\n"
        "<html>\n"
        "<head>\n"
        '<meta charset="UTF-8">\n'
        f"{title_tag}"
        "</head>\n"
        "<body>\n"
        f"{content}\n"
        "</body>\n"
        "</html>"
    )


def parse_document(html_content: str) -> BeautifulSoup:
    """
    Parse HTML into a request-scoped tree that always has html, head and body.

    Fragments are wrapped first; a document that lacks a head gets one.
    """
    if not is_full_html_document(html_content or ""):
        logger.debug("Wrapping HTML fragment in a full document")
        html_content = wrap_html_content(html_content)

    soup = BeautifulSoup(html_content, PARSER)
    if soup.head is None:
        soup.html.insert(0, soup.new_tag("head"))
    return soup
