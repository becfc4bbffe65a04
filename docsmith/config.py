"""
Service configuration.

Settings are read from the environment once at startup and are immutable
afterwards. Tests build their own ``Settings`` instances.
"""

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Tuple


# Prefix shared by every workspace id, so stale artifacts can be purged
# without touching anything else in the temp directory.
WORKSPACE_PREFIX = "docsmith"

DEFAULT_TEMP_DIR = Path(tempfile.gettempdir()) / WORKSPACE_PREFIX

DEFAULT_CONVERTER_TIMEOUT_SECONDS = 60.0
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10MB

# Declared Content-Type values each input format route will accept
RTF_CONTENT_TYPES = ("application/rtf", "text/rtf")
PDF_CONTENT_TYPES = ("application/pdf",)
IMAGE_CONTENT_TYPES = ("image/png", "image/jpeg", "image/tiff", "image/bmp")


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_str(name: str, default: str) -> str:
    value = os.environ.get(name)
    if value and value.strip():
        return value.strip()
    return default


@dataclass(frozen=True)
class Settings:
    """Process-wide, read-only service configuration."""

    temp_dir: Path = DEFAULT_TEMP_DIR
    unrtf_binary: str = "unrtf"
    pdftotext_binary: str = "pdftotext"
    tesseract_binary: str = "tesseract"
    tesseract_enabled: bool = True
    tesseract_languages: Tuple[str, ...] = field(default=("eng",))
    converter_timeout: float = DEFAULT_CONVERTER_TIMEOUT_SECONDS
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from ``DOCSMITH_*`` environment variables."""
        languages = _env_str("DOCSMITH_TESSERACT_LANGUAGES", "eng")
        return cls(
            temp_dir=Path(_env_str("DOCSMITH_TEMP_DIR", str(DEFAULT_TEMP_DIR))).resolve(),
            unrtf_binary=_env_str("DOCSMITH_UNRTF_BINARY", "unrtf"),
            pdftotext_binary=_env_str("DOCSMITH_PDFTOTEXT_BINARY", "pdftotext"),
            tesseract_binary=_env_str("DOCSMITH_TESSERACT_BINARY", "tesseract"),
            tesseract_enabled=_env_bool("DOCSMITH_TESSERACT_ENABLED", True),
            tesseract_languages=tuple(lang for lang in languages.replace(",", "+").split("+") if lang),
            converter_timeout=float(_env_str(
                "DOCSMITH_CONVERTER_TIMEOUT", str(DEFAULT_CONVERTER_TIMEOUT_SECONDS)
            )),
            max_upload_bytes=int(_env_str("DOCSMITH_MAX_UPLOAD_BYTES", str(DEFAULT_MAX_UPLOAD_BYTES))),
        )
