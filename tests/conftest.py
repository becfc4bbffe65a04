"""
Shared test configuration and fixtures for docsmith tests.

External converters are replaced by fakes that subclass the real adapters
and only override process execution, so command building, output
post-processing and failure classification are still exercised.
"""

import asyncio
import dataclasses
import re
import struct
import subprocess
import zlib
from pathlib import Path
from typing import Callable, Dict, List, Sequence

import pytest
from fastapi.testclient import TestClient

from app import create_app
from docsmith.config import Settings
from docsmith.converters import PdfToTextConverter, TesseractConverter, UnRTFConverter
from docsmith.pipeline import build_routes


# ===== DOCUMENT BUILDERS =====

HELLO_RTF = b"{\\rtf1\\ansi{\\fonttbl\\f0\\fswiss Helvetica;}\\f0\\pard Hello World\\par}"

_RTF_TEXT = re.compile(rb"\\pard (.*?)\\par")


def build_rtf(text: str) -> bytes:
    return b"{\\rtf1\\ansi{\\fonttbl\\f0\\fswiss Helvetica;}\\f0\\pard " + text.encode() + b"\\par}"


def build_pdf(text: str = "Hello World") -> bytes:
    """Build a single page PDF with one line of Helvetica text."""
    stream = f"BT /F1 24 Tf 72 720 Td ({text}) Tj ET".encode()
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] /Contents 4 0 R "
        b"/Resources << /Font << /F1 5 0 R >> >> >>",
        b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]

    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % number + body + b"\nendobj\n"

    xref_offset = len(out)
    out += b"xref\n0 %d\n" % (len(objects) + 1)
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (len(objects) + 1, xref_offset)
    return bytes(out)


def build_png(width: int = 32, height: int = 32) -> bytes:
    """Build a white 8-bit grayscale PNG."""
    def chunk(kind: bytes, data: bytes) -> bytes:
        return struct.pack(">I", len(data)) + kind + data + struct.pack(">I", zlib.crc32(kind + data) & 0xFFFFFFFF)

    raw = b"".join(b"\x00" + b"\xff" * width for _ in range(height))
    return (
        b"\x89PNG\r\n\x1a\n"
        + chunk(b"IHDR", struct.pack(">IIBBBBB", width, height, 8, 0, 0, 0, 0))
        + chunk(b"IDAT", zlib.compress(raw))
        + chunk(b"IEND", b"")
    )


# ===== FAKE CONVERTERS =====

UNRTF_HTML = """<!DOCTYPE html PUBLIC "-//W3C//DTD HTML 4.01 Transitional//EN">
<html>
<head>
<meta http-equiv="content-type" content="text/html; charset=utf-8">
<!-- Translation from RTF performed by UnRTF, version 0.21.10 -->
<!--font table contains 1 fonts total-->
</head>
<body><font face="Helvetica">{text}</font>
{images}
</body>
</html>
"""

UNRTF_TEXT = """###  Translation from RTF performed by UnRTF, version 0.21.10
### font table contains 1 fonts total
-----------------
{text}
"""

PDFTOTEXT_BBOX = """<!DOCTYPE html PUBLIC "-//W3C//DTD XHTML 1.0 Transitional//EN" "http://www.w3.org/TR/xhtml1/DTD/xhtml1-transitional.dtd">
<html xmlns="http://www.w3.org/1999/xhtml">
<head>
<title></title>
<meta name="Producer" content="fake"/>
</head>
<body>
<doc>
  <page width="612.000000" height="792.000000">
    <word xMin="72.000000" yMin="60.000000" xMax="140.000000" yMax="84.000000">Hello</word>
    <word xMin="146.000000" yMin="60.000000" xMax="210.000000" yMax="84.000000">World</word>
  </page>
</doc>
</body>
</html>
"""


def completed(cmd: List[str], stdout: bytes = b"", returncode: int = 0, stderr: bytes = b"") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(cmd, returncode, stdout, stderr)


class ScriptedExecution:
    """Replaces process execution with canned results."""

    returncode = 0
    stderr = b""
    delay = 0.0

    def _init_script(self):
        self.commands: List[List[str]] = []

    async def _execute(self, cmd, cwd):
        self.commands.append(cmd)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.returncode != 0:
            return completed(cmd, b"", self.returncode, self.stderr)
        return completed(cmd, self.render(cmd, cwd).encode("utf-8"))

    def render(self, cmd: List[str], cwd) -> str:
        raise NotImplementedError


class FakeUnRTFConverter(ScriptedExecution, UnRTFConverter):
    """Echoes the RTF paragraph text in UnRTF's HTML or text layout."""

    def __init__(self, side_files: Sequence[str] = ()):
        super().__init__("unrtf")
        self._init_script()
        self.side_files = list(side_files)

    def render(self, cmd, cwd) -> str:
        match = _RTF_TEXT.search(Path(cmd[-1]).read_bytes())
        text = match.group(1).decode() if match else ""
        for name in self.side_files:
            (Path(cwd) / name).write_bytes(b"\x89PNG\r\n\x1a\n")
        if "--text" in cmd:
            return UNRTF_TEXT.format(text=text)

        images = "".join(f'<img src="{name}">' for name in self.side_files)
        return UNRTF_HTML.format(text=text, images=images)


class FakePdfToTextConverter(ScriptedExecution, PdfToTextConverter):
    def __init__(self):
        super().__init__("pdftotext")
        self._init_script()

    def render(self, cmd, cwd) -> str:
        if any(flag in cmd for flag in ("-bbox", "-bbox-layout", "-htmlmeta")):
            return PDFTOTEXT_BBOX
        return "Hello World\n\f"


class FakeTesseractConverter(ScriptedExecution, TesseractConverter):
    def __init__(self):
        super().__init__("tesseract")
        self._init_script()

    def render(self, cmd, cwd) -> str:
        return "Hello Image\n\n"


# ===== STANDARD FIXTURES =====

@pytest.fixture
def temp_dir(tmp_path) -> Path:
    """Base temp directory used by the service under test (created lazily)."""
    return tmp_path / "docsmith-temp"


@pytest.fixture
def settings(temp_dir) -> Settings:
    return Settings(temp_dir=temp_dir, max_upload_bytes=1024 * 1024, converter_timeout=5.0)


@pytest.fixture
def converters() -> Dict[str, ScriptedExecution]:
    """Fake converters keyed by adapter name. Tests may tweak them before requests."""
    return {
        "unrtf": FakeUnRTFConverter(),
        "pdftotext": FakePdfToTextConverter(),
        "tesseract": FakeTesseractConverter(),
    }


@pytest.fixture
def routes(settings, converters):
    return tuple(
        dataclasses.replace(route, converter=converters[route.converter.name])
        for route in build_routes(settings)
    )


@pytest.fixture
def app(settings, routes):
    return create_app(settings, routes)


@pytest.fixture
def client(app):
    """FastAPI test client for synchronous tests."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def leftover_files(temp_dir) -> Callable[[], List[str]]:
    """Names of files currently in the service temp directory."""
    def list_files() -> List[str]:
        if not temp_dir.exists():
            return []
        return sorted(path.name for path in temp_dir.iterdir())
    return list_files


# ===== SAMPLE DOCUMENTS =====

@pytest.fixture
def sample_rtf() -> bytes:
    return HELLO_RTF


@pytest.fixture
def make_rtf() -> Callable[[str], bytes]:
    return build_rtf


@pytest.fixture
def sample_pdf() -> bytes:
    return build_pdf()


@pytest.fixture
def sample_png() -> bytes:
    return build_png()
