"""File writers — the installer's only way to touch the host filesystem.

The installer never calls sudo or pathlib itself. It receives a FileWriter
and checks the WriteResult of every call, stopping at the first failure.
Two implementations:

  SudoFileWriter   — `sudo mkdir -p` and `sudo tee`, for root-owned targets
                     such as /etc/nixos. The sudo prefix is dropped when the
                     process already runs as root.
  LocalFileWriter  — direct pathlib calls, for targets the current user can
                     write (and for tests).

Writes are plain overwrites. There is no temporary file and rename, so an
interrupted write can leave the target truncated.

Observability: every filesystem operation is wrapped in a logfire.span().
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import logfire

from nixpi.tools.cli import run_command

logger = logging.getLogger(__name__)


@dataclass
class WriteResult:
    """Structured result from a writer operation.

    error carries the native diagnostic (OSError text or the command's
    stderr) unchanged, so the operator sees exactly what failed.
    """

    success: bool
    path: str
    message: str
    error: str | None = field(default=None)


class FileWriter(Protocol):
    """Capability the installer needs to place a file at a target path."""

    def ensure_directory(self, path: Path) -> WriteResult: ...

    def write_file(self, path: Path, content: str) -> WriteResult: ...

    def exists(self, path: Path) -> bool: ...


class LocalFileWriter:
    """Writes with the current process's own permissions."""

    def ensure_directory(self, path: Path) -> WriteResult:
        with logfire.span("writer.ensure_directory", path=str(path), sudo=False):
            try:
                path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.error("ensure_directory failed: path=%s error=%s", path, e)
                return WriteResult(
                    success=False,
                    path=str(path),
                    message=f"Failed to create directory '{path}'.",
                    error=str(e),
                )
            return WriteResult(success=True, path=str(path), message=f"Directory '{path}' ready.")

    def write_file(self, path: Path, content: str) -> WriteResult:
        with logfire.span("writer.write_file", path=str(path), size=len(content), sudo=False):
            try:
                path.write_text(content, encoding="utf-8")
            except OSError as e:
                logger.error("write_file failed: path=%s error=%s", path, e)
                return WriteResult(
                    success=False,
                    path=str(path),
                    message=f"Failed to write '{path}'.",
                    error=str(e),
                )
            return WriteResult(success=True, path=str(path), message=f"Wrote '{path}'.")

    def exists(self, path: Path) -> bool:
        return path.exists()


class SudoFileWriter:
    """Writes root-owned paths through sudo.

    Args:
        use_sudo: Prefix commands with sudo. Defaults to True unless the
            process is already root.
    """

    def __init__(self, use_sudo: bool | None = None) -> None:
        self.use_sudo = os.geteuid() != 0 if use_sudo is None else use_sudo

    def _cmd(self, *args: str) -> tuple[str, ...]:
        return ("sudo", *args) if self.use_sudo else args

    def ensure_directory(self, path: Path) -> WriteResult:
        with logfire.span("writer.ensure_directory", path=str(path), sudo=self.use_sudo):
            try:
                result = run_command(*self._cmd("mkdir", "-p", str(path)))
            except OSError as e:
                # sudo missing from PATH, or TimeoutError on a hung prompt.
                logfire.error("Failed to create directory '{path}'", path=str(path), error=str(e))
                logger.error("ensure_directory failed: path=%s error=%s", path, e)
                return WriteResult(
                    success=False,
                    path=str(path),
                    message=f"Failed to create directory '{path}'.",
                    error=str(e),
                )
            if result.success:
                return WriteResult(success=True, path=str(path), message=f"Directory '{path}' ready.")

            logfire.error(
                "Failed to create directory '{path}'",
                path=str(path),
                stderr=result.stderr,
                returncode=result.returncode,
            )
            logger.error(
                "ensure_directory failed: path=%s returncode=%d stderr=%r",
                path,
                result.returncode,
                result.stderr,
            )
            return WriteResult(
                success=False,
                path=str(path),
                message=f"Failed to create directory '{path}'.",
                error=result.stderr or result.stdout,
            )

    def write_file(self, path: Path, content: str) -> WriteResult:
        with logfire.span("writer.write_file", path=str(path), size=len(content), sudo=self.use_sudo):
            # tee echoes its input; the captured stdout is discarded.
            try:
                result = run_command(*self._cmd("tee", str(path)), input_text=content)
            except OSError as e:
                logfire.error("Failed to write '{path}'", path=str(path), error=str(e))
                logger.error("write_file failed: path=%s error=%s", path, e)
                return WriteResult(
                    success=False,
                    path=str(path),
                    message=f"Failed to write '{path}'.",
                    error=str(e),
                )
            if result.success:
                return WriteResult(success=True, path=str(path), message=f"Wrote '{path}'.")

            logfire.error(
                "Failed to write '{path}'",
                path=str(path),
                stderr=result.stderr,
                returncode=result.returncode,
            )
            logger.error(
                "write_file failed: path=%s returncode=%d stderr=%r",
                path,
                result.returncode,
                result.stderr,
            )
            return WriteResult(
                success=False,
                path=str(path),
                message=f"Failed to write '{path}'.",
                error=result.stderr or f"tee exited with status {result.returncode}",
            )

    def exists(self, path: Path) -> bool:
        # /etc/nixos is world-readable; no elevation needed to stat it.
        return path.exists()
