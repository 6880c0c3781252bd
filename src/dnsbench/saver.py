"""
File savers for exported results.

Two implementations of one capability:
- InteractiveFileSaver: asks the user where to save (terminal sessions),
  falling back to the export directory
- DirectFileSaver: writes straight into the export directory

The implementation is picked once by probe_file_saver(); callers only
ever see the FileSaver interface.
"""

import asyncio
import logging
import os
import sys
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import click

logger = logging.getLogger(__name__)


class FileSaver(ABC):
    """Base class for export targets."""

    def __init__(self, export_dir: Path):
        self.export_dir = Path(export_dir)

    async def save(self, data: bytes, suggested_name: str, mime_type: str) -> bool:
        """
        Save data under a name derived from suggested_name.

        Never raises: any failure is logged and reported as False.

        Args:
            data: File contents
            suggested_name: Proposed file name (no directory)
            mime_type: Content type, e.g. text/csv

        Returns:
            True if the file was written
        """
        loop = asyncio.get_running_loop()
        try:
            path = await loop.run_in_executor(
                None, lambda: self._save_blocking(data, suggested_name, mime_type)
            )
        except Exception as e:
            logger.error("Failed to save %s: %s", suggested_name, e)
            return False

        logger.info("Saved %d bytes to %s", len(data), path)
        return True

    @abstractmethod
    def _save_blocking(self, data: bytes, suggested_name: str, mime_type: str) -> Path:
        """Write data and return the final path; may raise."""


def _write_into(directory: Path, name: str, data: bytes) -> Path:
    """Write data to directory/name through a transient temp file."""
    directory.mkdir(parents=True, exist_ok=True)
    destination = directory / name

    fd, tmp_name = tempfile.mkstemp(prefix=f".{name}.", suffix=".part", dir=directory)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_name, destination)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise
    return destination


class InteractiveFileSaver(FileSaver):
    """
    Prompt for a destination, then write it.

    If the prompt is aborted or the chosen path cannot be written, the
    file goes to the export directory instead.
    """

    def _save_blocking(self, data: bytes, suggested_name: str, mime_type: str) -> Path:
        try:
            return self._save_prompted(data, suggested_name, mime_type)
        except Exception as e:
            logger.warning("Save dialog failed (%s); writing to %s", e, self.export_dir)
            return _write_into(self.export_dir, suggested_name, data)

    def _save_prompted(self, data: bytes, suggested_name: str, mime_type: str) -> Path:
        default = self.export_dir / suggested_name
        answer = click.prompt(
            f"Save {mime_type} as",
            default=str(default),
            err=True,
        )
        path = Path(answer).expanduser()
        if path.is_dir():
            path = path / suggested_name

        with open(path, "wb") as f:
            f.write(data)
        return path


class DirectFileSaver(FileSaver):
    """Write into the export directory through a transient temp file."""

    def _save_blocking(self, data: bytes, suggested_name: str, mime_type: str) -> Path:
        return _write_into(self.export_dir, suggested_name, data)


def probe_file_saver(export_dir: Path, interactive: Optional[bool] = None) -> FileSaver:
    """
    Select the saver for this session.

    Args:
        export_dir: Directory exports default to
        interactive: Force a choice; None probes for a terminal

    Returns:
        InteractiveFileSaver when a user can answer prompts,
        DirectFileSaver otherwise
    """
    if interactive is None:
        interactive = sys.stdin.isatty() and sys.stdout.isatty()
    if interactive:
        return InteractiveFileSaver(export_dir)
    return DirectFileSaver(export_dir)
