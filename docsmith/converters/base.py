"""
Base class for external converter adapters.

An adapter wraps one command line tool. It builds the command for an input
file and a map of named options, runs it in a worker thread, and turns the
outcome into either a ``RawOutput`` or a typed failure:

- ``InvalidDocumentError`` when the tool says the input is not a valid
  instance of its format (client error)
- ``ConversionFailedError`` for everything else (missing binary, crash,
  unexpected exit status, timeout)

Failures are never retried: a tool may already have written side files.
"""

import asyncio
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Mapping, Optional

from ..utils.error_handling import ConversionFailedError, InvalidDocumentError, WorkspaceError
from ..utils.logging_config import get_logger
from ..workspace import Workspace

logger = get_logger(__name__)


@dataclass
class RawOutput:
    """Unprocessed converter output, owned by the request that produced it."""

    content: str
    media_type: str
    workspace: Workspace
    converter: "ExternalConverter"


class ExternalConverter(ABC):
    """
    Adapter around an external conversion binary.

    Subclasses implement ``build_command`` and may override the hooks for
    input validation, failure classification, output post-processing and
    side-file discovery.
    """

    name = "converter"
    input_media_type = "application/octet-stream"
    output_encoding = "utf-8"

    def __init__(self, binary: str, timeout: float = 60.0):
        self.binary = binary
        self.timeout = timeout

    @abstractmethod
    def build_command(self, input_path: Path, options: Mapping[str, Any]) -> List[str]:
        """Return the argv used to convert ``input_path``."""

    def output_media_type(self, options: Mapping[str, Any]) -> str:
        return "text/plain"

    def decoding(self, options: Mapping[str, Any]) -> str:
        """Codec used to decode the tool's stdout."""
        return self.output_encoding

    def loggable_command(self, cmd: List[str]) -> List[str]:
        """The command as written to logs. Override to mask secrets."""
        return cmd

    def validate_input(self, input_path: Path) -> None:
        """Reject inputs the tool is known to mishandle. Raises InvalidDocumentError."""

    def is_invalid_document(self, returncode: int, stderr: str) -> bool:
        """Whether a failed run means the input was malformed rather than the tool broken."""
        return False

    def postprocess(self, output: str, options: Mapping[str, Any]) -> str:
        return output

    def working_directory(self, workspace: Workspace) -> Optional[Path]:
        """Directory the tool runs in, created on demand. None keeps the process working directory."""
        return None

    def side_file_directory(self, workspace: Workspace) -> Path:
        """Where side files produced by the tool end up."""
        return self.working_directory(workspace) or Path.cwd()

    def side_file_pattern(self, workspace: Workspace) -> Optional[str]:
        """
        Glob matching the names of side files the tool may generate.

        None means the tool writes no side files. Only files that match this
        pattern and are referenced by the output are ever deleted.
        """
        return None

    async def convert(
        self,
        input_path: Path,
        options: Mapping[str, Any],
        workspace: Workspace,
    ) -> RawOutput:
        """
        Convert ``input_path`` with the given named options.

        Args:
            input_path: Materialized payload inside ``workspace``
            options: Converter options
            workspace: Owning workspace

        Returns:
            RawOutput with the tool's decoded stdout

        Raises:
            InvalidDocumentError: Input rejected by the tool
            ConversionFailedError: Any other failure
        """
        await asyncio.to_thread(self.validate_input, input_path)

        cmd = self.build_command(input_path, options)
        cwd = self.working_directory(workspace)
        if cwd is not None:
            await asyncio.to_thread(_make_working_directory, cwd, workspace)
        logger.debug(f"Running {self.name} for {workspace.id}: {' '.join(self.loggable_command(cmd))}")

        try:
            result = await self._execute(cmd, cwd)
        except FileNotFoundError as e:
            raise ConversionFailedError(
                f"{self.name} binary not found",
                binary=self.binary,
                workspace=workspace.id,
            ) from e
        except subprocess.TimeoutExpired as e:
            raise ConversionFailedError(
                f"{self.name} timed out after {self.timeout}s",
                binary=self.binary,
                workspace=workspace.id,
            ) from e
        except OSError as e:
            raise ConversionFailedError(
                f"{self.name} could not be started: {e}",
                binary=self.binary,
                workspace=workspace.id,
            ) from e

        if result.returncode != 0:
            stderr = _decode(result.stderr, self.output_encoding)
            if self.is_invalid_document(result.returncode, stderr):
                logger.info(f"{self.name} rejected input for {workspace.id}: {stderr.strip()[:200]}")
                raise InvalidDocumentError(self.input_media_type)

            error_msg = f"{self.name} failed with return code {result.returncode}"
            if stderr:
                error_msg += f". stderr: {stderr.strip()[:500]}"
            raise ConversionFailedError(
                error_msg,
                command=self.loggable_command(cmd),
                workspace=workspace.id,
            )

        output = self.postprocess(_decode(result.stdout, self.decoding(options)), options)
        return RawOutput(
            content=output,
            media_type=self.output_media_type(options),
            workspace=workspace,
            converter=self,
        )

    async def _execute(self, cmd: List[str], cwd: Optional[Path]) -> subprocess.CompletedProcess:
        return await asyncio.to_thread(
            subprocess.run,
            cmd,
            capture_output=True,
            timeout=self.timeout,
            cwd=str(cwd) if cwd else None,
            check=False,
        )

    def __repr__(self):
        return f"{self.__class__.__name__}(binary={self.binary!r})"


def _decode(data: Optional[bytes], encoding: str) -> str:
    if not data:
        return ""
    if isinstance(data, str):
        return data
    return data.decode(encoding, errors="replace")


def _make_working_directory(path: Path, workspace: Workspace) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise WorkspaceError(
            "Failed to create working directory",
            path=str(path),
            workspace=workspace.id,
            reason=str(e),
        ) from e


def read_signature(path: Path, size: int = 16) -> bytes:
    """Read the first bytes of a file for signature checks."""
    with open(path, "rb") as f:
        return f.read(size)
