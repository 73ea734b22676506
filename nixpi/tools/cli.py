"""Subprocess runner for nixpi tools.

Every privileged command (sudo mkdir, sudo tee) goes through this module. It
provides:

- Structured results (stdout, stderr, returncode) via CommandResult
- Blocking execution via subprocess.run, with optional stdin text
- Configurable timeouts with automatic process cleanup
- Stripped output for clean parsing
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass

# Default timeout for CLI commands (seconds).
# sudo may prompt for a password on the controlling terminal, so this is
# generous compared to the time the commands themselves take.
DEFAULT_TIMEOUT_SECONDS = 120


@dataclass
class CommandResult:
    """Structured result from a CLI invocation.

    All tools receive one of these — never raw subprocess output.
    """

    stdout: str
    stderr: str
    returncode: int

    def __post_init__(self) -> None:
        self.stdout = self.stdout.strip()
        self.stderr = self.stderr.strip()

    @property
    def success(self) -> bool:
        """True if the command exited with code 0."""
        return self.returncode == 0


def run_command(
    *args: str,
    input_text: str | None = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> CommandResult:
    """Run a CLI command and return a structured result.

    Args:
        *args: Command and arguments (e.g. "sudo", "mkdir", "-p", "/etc/nixos").
        input_text: Text written to the command's stdin, UTF-8 encoded.
        timeout_seconds: Maximum runtime before the process is killed.
            Defaults to DEFAULT_TIMEOUT_SECONDS.

    Returns:
        CommandResult with stdout, stderr, and returncode.

    Raises:
        TimeoutError: If the command exceeds timeout_seconds. The process is killed.
        FileNotFoundError: If the executable does not exist.
    """
    try:
        proc = subprocess.run(  # noqa: S603
            args,
            input=input_text.encode("utf-8") if input_text is not None else None,
            capture_output=True,
            timeout=timeout_seconds,
            check=False,
        )
    except subprocess.TimeoutExpired:
        cmd_str = " ".join(args)
        msg = f"Command timed out after {timeout_seconds}s: {cmd_str}"
        raise TimeoutError(msg) from None

    return CommandResult(
        stdout=proc.stdout.decode() if proc.stdout else "",
        stderr=proc.stderr.decode() if proc.stderr else "",
        returncode=proc.returncode,
    )
