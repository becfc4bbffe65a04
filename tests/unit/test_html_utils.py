"""
Unit tests for the HTML document helpers.
"""

from docsmith.utils.html_utils import (
    detect_html_structure,
    is_full_html_document,
    parse_document,
    wrap_html_content,
)


class TestStructureDetection:

    def test_full_document(self):
        html = "<!DOCTYPE html><html><head></head><body><p>x</p></body></html>"
        assert detect_html_structure(html) == (True, True, True)
        assert is_full_html_document(html)

    def test_fragment(self):
        assert detect_html_structure("<p>x</p>") == (False, False, False)
        assert not is_full_html_document("<p>x</p>")

    def test_empty(self):
        assert detect_html_structure("") == (False, False, False)


class TestWrapping:

    def test_wrap_with_title(self):
        html = wrap_html_content("<p>Hello</p>", title="doc")
        assert html.startswith("<!DOCTYPE html>")
        assert "<title>doc</title>" in html
        assert "<body>\n<p>Hello</p>\n</body>" in html

    def test_parse_fragment(self):
        soup = parse_document("<p>Hello</p>")
        assert soup.head is not None
        assert soup.body.p.get_text() == "Hello"

    def test_parse_adds_missing_head(self):
        soup = parse_document("<html><body><p>Hello</p></body></html>")
        assert soup.html.contents[0].name == "head"
        assert soup.body.p.get_text() == "Hello"
