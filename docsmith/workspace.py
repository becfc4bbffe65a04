"""
Per-request temporary workspace management.

Every conversion request gets a workspace: a collision-free id plus the shared
temp directory. Every file the request writes there is named ``{id}...``, and
tools that drop side files run inside the ``{id}.d`` scratch directory, so
cleanup can glob ``{id}*`` and never touch another request's artifacts.

Features:
- Idempotent creation of the base directory
- Payload materialization off the event loop
- Best-effort cleanup (missing files ignored, other failures logged only)
- Async context manager support
"""

import asyncio
import re
import shutil
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional, Union

from .config import WORKSPACE_PREFIX
from .utils.error_handling import WorkspaceError
from .utils.logging_config import get_logger

logger = get_logger(__name__)

_LABEL_UNSAFE = re.compile(r"[^a-z0-9-]+")


class Workspace:
    """A single request's slice of the temp directory."""

    def __init__(self, id: str, directory: Path):
        self.id = id
        self.directory = directory

    def path_for(self, suffix: str = "") -> Path:
        """Path of an artifact owned by this workspace, e.g. ``path_for(".rtf")``."""
        return self.directory / f"{self.id}{suffix}"

    @property
    def scratch_dir(self) -> Path:
        """Per-request working directory for tools that write side files next to themselves."""
        return self.path_for(".d")

    @property
    def glob_pattern(self) -> str:
        return f"{self.id}*"

    def __str__(self):
        return f"Workspace(id={self.id}, directory={self.directory})"

    def __repr__(self):
        return self.__str__()


class WorkspaceManager:
    """
    Allocates workspaces under one base directory and removes their artifacts.

    The base directory is shared process-wide; requests never coordinate
    because each only ever touches files under its own id prefix.
    """

    def __init__(self, base_dir: Union[str, Path], prefix: str = WORKSPACE_PREFIX):
        self.base_dir = Path(base_dir)
        self.prefix = prefix

    def ensure_directory(self) -> Path:
        """
        Create the base directory if it is missing.

        Raises:
            WorkspaceError: If the directory cannot be created
        """
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WorkspaceError(
                "Failed to create temp directory",
                directory=str(self.base_dir),
                reason=str(e),
            ) from e
        return self.base_dir

    def generate_id(self, label: str = "convert") -> str:
        """Generate a workspace id, e.g. ``docsmith_rtf-to-html_<32 hex chars>``."""
        safe_label = _LABEL_UNSAFE.sub("-", label.lower()).strip("-") or "convert"
        return f"{self.prefix}_{safe_label}_{uuid.uuid4().hex}"

    def allocate(self, label: str = "convert") -> Workspace:
        """
        Allocate a fresh workspace.

        Args:
            label: Human readable tag embedded in the id (usually the route)

        Returns:
            New Workspace

        Raises:
            WorkspaceError: If the base directory cannot be created
        """
        directory = self.ensure_directory()
        workspace = Workspace(id=self.generate_id(label), directory=directory)
        logger.debug(f"Allocated workspace: {workspace.id}")
        return workspace

    def materialize(self, workspace: Workspace, content: bytes, extension: str) -> Path:
        """
        Write the uploaded payload to ``{dir}/{id}.{ext}``.

        Args:
            workspace: Owning workspace
            content: Payload bytes
            extension: File extension, with or without the dot

        Returns:
            Path to the written file

        Raises:
            WorkspaceError: If the file cannot be written
        """
        ext = extension if extension.startswith(".") or not extension else f".{extension}"
        target = workspace.path_for(ext)
        try:
            with open(target, "wb") as f:
                f.write(content)
        except OSError as e:
            raise WorkspaceError(
                "Failed to write temp file",
                path=str(target),
                reason=str(e),
            ) from e

        logger.debug(f"Materialized {len(content)} bytes to {target}")
        return target

    def cleanup(self, workspace: Workspace) -> int:
        """
        Remove every file whose name starts with the workspace id, and the
        workspace's scratch directory.

        Never raises: a file that is already gone is ignored, and any other
        failure is logged because the response has already been sent.

        Returns:
            Number of artifacts removed
        """
        removed = 0
        for path in sorted(workspace.directory.glob(workspace.glob_pattern)):
            if _remove_quietly(path):
                removed += 1

        logger.debug(f"Cleaned up {removed} artifact(s) for {workspace.id}")
        return removed

    def purge(self, max_age: Optional[float] = None) -> int:
        """
        Remove docsmith artifacts left in the base directory.

        Only entries carrying the workspace prefix are touched. The directory
        may be shared with other live processes, so with ``max_age`` set only
        entries last modified more than ``max_age`` seconds ago are removed.

        Args:
            max_age: Minimum age in seconds. None removes every artifact.

        Returns:
            Number of artifacts removed
        """
        if not self.base_dir.is_dir():
            return 0

        cutoff = time.time() - max_age if max_age is not None else None
        removed = 0
        for path in sorted(self.base_dir.glob(f"{self.prefix}_*")):
            if cutoff is not None and not _modified_before(path, cutoff):
                continue
            if _remove_quietly(path):
                removed += 1

        if removed:
            logger.info(f"Purged {removed} stale artifact(s) from {self.base_dir}")
        return removed

    async def allocate_async(self, label: str = "convert") -> Workspace:
        return await asyncio.to_thread(self.allocate, label)

    async def materialize_async(self, workspace: Workspace, content: bytes, extension: str) -> Path:
        return await asyncio.to_thread(self.materialize, workspace, content, extension)

    async def cleanup_async(self, workspace: Workspace) -> int:
        return await asyncio.to_thread(self.cleanup, workspace)

    @asynccontextmanager
    async def workspace(self, label: str = "convert") -> AsyncIterator[Workspace]:
        """
        Async context manager that always cleans up.

        Usage:
            async with manager.workspace("rtf-to-html") as ws:
                path = await manager.materialize_async(ws, data, "rtf")
            # Cleanup happens here
        """
        workspace = await self.allocate_async(label)
        try:
            yield workspace
        finally:
            await self.cleanup_async(workspace)


def _remove_quietly(path: Path) -> bool:
    """Remove a file or scratch directory, returning True when this call removed it."""
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path, ignore_errors=True)
        if path.exists():
            logger.warning(f"Failed to cleanup temp directory {path}")
            return False
        logger.debug(f"Cleaned up temporary directory: {path}")
        return True
    return _unlink_quietly(path)


def _modified_before(path: Path, cutoff: float) -> bool:
    try:
        return path.lstat().st_mtime < cutoff
    except FileNotFoundError:
        return False


def _unlink_quietly(path: Path) -> bool:
    """Unlink a file, returning True when it was removed by this call."""
    try:
        path.unlink()
        logger.debug(f"Cleaned up temporary file: {path}")
        return True
    except FileNotFoundError:
        # Removed concurrently, e.g. by the converter itself
        return False
    except OSError as e:
        logger.warning(f"Failed to cleanup temp file {path}: {e}")
        return False
