"""Tesseract OCR adapter: raster image to plain text."""

import re
from pathlib import Path
from typing import Any, List, Mapping, Sequence

from .base import ExternalConverter

_UNREADABLE_IMAGE = re.compile(
    r"pixReadStream|Error in pixRead|Unsupported image type|cannot be read|Image file .* cannot",
    re.IGNORECASE,
)


class TesseractConverter(ExternalConverter):
    name = "tesseract"
    input_media_type = "image"

    def __init__(self, binary: str = "tesseract", timeout: float = 60.0,
                 languages: Sequence[str] = ("eng",)):
        super().__init__(binary, timeout)
        self.languages = tuple(languages) or ("eng",)

    def build_command(self, input_path: Path, options: Mapping[str, Any]) -> List[str]:
        return [self.binary, str(input_path), "stdout", "-l", "+".join(self.languages)]

    def is_invalid_document(self, returncode: int, stderr: str) -> bool:
        return bool(_UNREADABLE_IMAGE.search(stderr))

    def postprocess(self, output: str, options: Mapping[str, Any]) -> str:
        return output.strip()
