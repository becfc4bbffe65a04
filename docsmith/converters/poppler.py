"""
Poppler ``pdftotext`` adapter: PDF to plain text, or XHTML in bounding box
and HTML meta modes.
"""

from pathlib import Path
from typing import Any, List, Mapping

from .base import ExternalConverter

# pdftotext exit status 1 means the PDF could not be opened
INVALID_DOCUMENT_EXIT_CODES = {1}

HTML_MODE_OPTIONS = ("bounding_box_xhtml", "bounding_box_xhtml_layout", "generate_html_meta_file")

# pdftotext -enc name -> Python codec
OUTPUT_ENCODINGS = {
    "UTF-8": "utf-8",
    "Latin1": "latin-1",
    "ASCII7": "ascii",
}
DEFAULT_OUTPUT_ENCODING = "UTF-8"

# option name -> pdftotext switch, for boolean flags
_FLAGS = {
    "maintain_layout": "-layout",
    "no_page_breaks": "-nopgbrk",
    "bounding_box_xhtml": "-bbox",
    "bounding_box_xhtml_layout": "-bbox-layout",
    "generate_html_meta_file": "-htmlmeta",
    "crop_box": "-cropbox",
}

# option name -> pdftotext switch, for valued options
_VALUED = {
    "first_page_to_convert": "-f",
    "last_page_to_convert": "-l",
    "owner_password": "-opw",
    "user_password": "-upw",
}

_SECRET_SWITCHES = {"-opw", "-upw"}


class PdfToTextConverter(ExternalConverter):
    """
    Options:
        first_page_to_convert, last_page_to_convert: Page range (1-based)
        maintain_layout: Keep the physical layout of the text
        no_page_breaks: Do not emit form feeds between pages
        bounding_box_xhtml: XHTML with a bounding box per word
        bounding_box_xhtml_layout: XHTML with block, line and word boxes
        generate_html_meta_file: HTML with the document metadata in ``<head>``
        owner_password, user_password: Passwords for encrypted documents
        output_encoding: One of ``OUTPUT_ENCODINGS``
        crop_box: Use the crop box rather than the media box
    """

    name = "pdftotext"
    input_media_type = "application/pdf"

    def __init__(self, binary: str = "pdftotext", timeout: float = 60.0):
        super().__init__(binary, timeout)

    @staticmethod
    def is_html_mode(options: Mapping[str, Any]) -> bool:
        return any(options.get(key) for key in HTML_MODE_OPTIONS)

    def build_command(self, input_path: Path, options: Mapping[str, Any]) -> List[str]:
        encoding = options.get("output_encoding") or DEFAULT_OUTPUT_ENCODING
        cmd = [self.binary, "-enc", encoding]

        for key, switch in _VALUED.items():
            value = options.get(key)
            if value is not None and value != "":
                cmd.extend([switch, str(value)])

        for key, switch in _FLAGS.items():
            if options.get(key):
                cmd.append(switch)

        # "-" sends the output to stdout
        cmd.extend([str(input_path), "-"])
        return cmd

    def loggable_command(self, cmd: List[str]) -> List[str]:
        masked = list(cmd)
        for index, arg in enumerate(cmd[:-1]):
            if arg in _SECRET_SWITCHES:
                masked[index + 1] = "***"
        return masked

    def output_media_type(self, options: Mapping[str, Any]) -> str:
        return "text/html" if self.is_html_mode(options) else "text/plain"

    def decoding(self, options: Mapping[str, Any]) -> str:
        return OUTPUT_ENCODINGS.get(options.get("output_encoding") or DEFAULT_OUTPUT_ENCODING, "utf-8")

    def is_invalid_document(self, returncode: int, stderr: str) -> bool:
        return returncode in INVALID_DOCUMENT_EXIT_CODES
