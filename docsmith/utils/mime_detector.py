"""
Content-based MIME type detection.

The Content-Type header sent by a client can be spoofed, so it is never
trusted on its own. This module inspects the payload's magic numbers with
libmagic (python-magic) and returns a canonical MIME type.
"""

from typing import Iterable, Optional

import magic

from .error_handling import UnsupportedMediaTypeError
from .logging_config import get_logger

logger = get_logger(__name__)

UNKNOWN = "unknown"
MISSING = "missing"

# libmagic reports some formats under legacy or vendor names
MIME_ALIASES = {
    "text/rtf": "application/rtf",
    "application/x-rtf": "application/rtf",
    "image/x-ms-bmp": "image/bmp",
    "image/x-bmp": "image/bmp",
    "image/jpg": "image/jpeg",
    "image/pjpeg": "image/jpeg",
    "application/x-pdf": "application/pdf",
}

# libmagic falls back to these when no signature matched
UNDETECTED = {"application/octet-stream", "application/x-empty", "inode/x-empty"}


def normalize_mime_type(mime_type: Optional[str]) -> Optional[str]:
    """
    Canonicalize a MIME type string.

    Drops parameters (``; charset=...``), lower-cases, and maps known aliases.

    Args:
        mime_type: Raw MIME type

    Returns:
        Canonical MIME type, or None for empty input
    """
    if not mime_type:
        return None

    mime_clean = mime_type.lower().split(";")[0].strip()
    if not mime_clean:
        return None
    return MIME_ALIASES.get(mime_clean, mime_clean)


class MimeTypeDetector:
    """
    Magic-number based MIME type detector.

    Detection only ever looks at the first ``sample_size`` bytes of the
    payload, which is where every supported signature lives.
    """

    def __init__(self, sample_size: int = 4096):
        self.sample_size = sample_size
        self._magic = magic.Magic(mime=True)

    def detect_from_content(self, content: Optional[bytes]) -> str:
        """
        Detect MIME type from raw bytes.

        Args:
            content: Raw payload, may be None

        Returns:
            Canonical MIME type, ``"missing"`` for an absent or empty payload,
            or ``"unknown"`` when libmagic recognises no signature
        """
        if not content:
            return MISSING

        detected = normalize_mime_type(self._magic.from_buffer(content[:self.sample_size]))

        if not detected or detected in UNDETECTED:
            logger.debug("Content-based detection found no signature")
            return UNKNOWN

        logger.debug(f"Content-based detection: {detected}")
        return detected

    def sniff(self, content: Optional[bytes], expected: Iterable[str]) -> str:
        """
        Verify that a payload really is one of the expected types.

        Args:
            content: Raw payload
            expected: Canonical MIME types the caller accepts

        Returns:
            The detected MIME type

        Raises:
            UnsupportedMediaTypeError: If the payload is missing or of another type
        """
        detected = self.detect_from_content(content)
        if detected == MISSING or detected not in set(expected):
            raise UnsupportedMediaTypeError(detected)
        return detected


def declared_type_accepted(content_type: Optional[str], accepted: Iterable[str]) -> bool:
    """Check a client-declared Content-Type header against a route's accepted types."""
    declared = normalize_mime_type(content_type)
    return declared is not None and declared in {normalize_mime_type(a) for a in accepted}
