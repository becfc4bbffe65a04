"""
UnRTF adapter: RTF to HTML or plain text.

UnRTF writes embedded pictures (``pict001.wmf``, ``pict002.png``, ...) to its
working directory when picture output is enabled, and some older releases do
so even with ``--nopict``. The tool therefore always runs inside the
workspace's scratch directory, which cleanup removes with everything in it.
"""

import re
from pathlib import Path
from typing import Any, List, Mapping, Optional

from ..utils.error_handling import InvalidDocumentError
from ..workspace import Workspace
from .base import ExternalConverter, read_signature

RTF_SIGNATURE = b"{\\rtf"

_NOT_RTF = re.compile(r"not (?:an? )?rtf|correct media type", re.IGNORECASE)


class UnRTFConverter(ExternalConverter):
    """
    Options:
        output: ``"html"`` (default) or ``"text"``
        no_pictures: Pass ``--nopict`` (default True)
        no_remap: Pass ``--noremap`` to disable charset remapping
    """

    name = "unrtf"
    input_media_type = "application/rtf"

    def __init__(self, binary: str = "unrtf", timeout: float = 60.0):
        super().__init__(binary, timeout)

    def build_command(self, input_path: Path, options: Mapping[str, Any]) -> List[str]:
        cmd = [self.binary]
        if options.get("no_pictures", True):
            cmd.append("--nopict")
        if options.get("no_remap"):
            cmd.append("--noremap")
        cmd.append("--text" if options.get("output") == "text" else "--html")
        cmd.append(str(input_path))
        return cmd

    def output_media_type(self, options: Mapping[str, Any]) -> str:
        return "text/plain" if options.get("output") == "text" else "text/html"

    def validate_input(self, input_path: Path) -> None:
        if not read_signature(input_path).lstrip().startswith(RTF_SIGNATURE):
            raise InvalidDocumentError(self.input_media_type)

    def is_invalid_document(self, returncode: int, stderr: str) -> bool:
        return bool(_NOT_RTF.search(stderr))

    def postprocess(self, output: str, options: Mapping[str, Any]) -> str:
        if options.get("output") == "text":
            return strip_banner(output)
        return output

    def working_directory(self, workspace: Workspace) -> Optional[Path]:
        return workspace.scratch_dir

    def side_file_pattern(self, workspace: Workspace) -> Optional[str]:
        return "pict*"


def strip_banner(text: str) -> str:
    """
    Remove the ``###`` header UnRTF prepends to text output.

    The header is a run of lines starting with ``###`` closed by a line of
    dashes, e.g.::

        ###  Translation from RTF performed by UnRTF, version 0.21.10
        ### font table contains 1 fonts total
        -----------------
        Hello World
    """
    lines = text.splitlines()
    index = 0
    while index < len(lines) and lines[index].startswith("###"):
        index += 1
    if index and index < len(lines) and lines[index].strip() and set(lines[index].strip()) == {"-"}:
        index += 1
    return "\n".join(lines[index:]).strip()
