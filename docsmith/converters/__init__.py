"""
External converter adapters.

Each adapter wraps a single command line tool behind the same
``convert(input_path, options, workspace)`` contract.
"""

from .base import ExternalConverter, RawOutput
from .poppler import PdfToTextConverter
from .tesseract import TesseractConverter
from .unrtf import UnRTFConverter

__all__ = [
    "ExternalConverter",
    "RawOutput",
    "PdfToTextConverter",
    "TesseractConverter",
    "UnRTFConverter",
]
