"""
Docsmith document conversion service.

Converts uploaded RTF, PDF and image documents to HTML or plain text by
driving external command line converters.
"""

__version__ = "1.0.0"
