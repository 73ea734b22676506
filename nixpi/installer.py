"""Configuration installer — places the rendered flake at /etc/nixos/flake.nix.

The whole run is four steps, executed in order and stopped at the first
failure:

    1. print the banner
    2. ensure the target directory exists       (writer.ensure_directory)
    3. overwrite the target file                 (writer.write_file)
    4. print the status and follow-up guidance

Each writer call returns a WriteResult that is checked before moving on;
nothing is retried and no later step runs after a failure. The installer
never rebuilds the system. Applying the configuration is left to the
operator (see guidance_steps()).

Two concurrent runs race on the same file; the last writer wins.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

import logfire

from nixpi.config import get_settings
from nixpi.nix_gen.generator import render_flake
from nixpi.tools.writer import SudoFileWriter

if TYPE_CHECKING:
    from nixpi.config import NixpiSettings
    from nixpi.tools.writer import FileWriter

logger = logging.getLogger(__name__)

BANNER = "NixOS Pi Configuration Script\n============================"

HARDWARE_CONFIG_FILENAME = "hardware-configuration.nix"


@dataclass(frozen=True)
class InstallationTarget:
    """Where the document lands on the host."""

    directory: Path
    filename: str = "flake.nix"

    @property
    def path(self) -> Path:
        return self.directory / self.filename


@dataclass(frozen=True)
class ConfigurationDocument:
    """A rendered flake and the target it is installed to."""

    target: InstallationTarget
    content: str
    encoding: str = "utf-8"


@dataclass
class InstallResult:
    """Outcome of an install() run.

    failed_step is "ensure_directory" or "write_file" when success is False.
    error is the writer's native diagnostic, passed through untranslated.
    """

    success: bool
    path: str
    failed_step: str | None = field(default=None)
    error: str | None = field(default=None)


def guidance_steps(target: InstallationTarget, hostname: str) -> list[str]:
    """The four manual follow-up steps printed after a successful write."""
    hardware = target.directory / HARDWARE_CONFIG_FILENAME
    return [
        (
            "Generate the hardware configuration:\n"
            f"     sudo nixos-generate-config --show-hardware-config | sudo tee {hardware}"
        ),
        f"Review the passwords and SSH keys in {target.path}",
        (
            "Rebuild the system:\n"
            f"     sudo nixos-rebuild switch --flake {target.directory}#{hostname}"
        ),
        "Reboot:\n     sudo reboot",
    ]


class Installer:
    """Writes one ConfigurationDocument through a FileWriter.

    Args:
        writer: Filesystem capability (sudo-backed in production).
        out: Stream for operator-facing text. Defaults to sys.stdout.
    """

    def __init__(self, writer: FileWriter, out: TextIO | None = None) -> None:
        self.writer = writer
        self.out = out if out is not None else sys.stdout

    def _say(self, text: str = "") -> None:
        print(text, file=self.out)

    def install(self, document: ConfigurationDocument, hostname: str = "nixos") -> InstallResult:
        """Ensure the target directory, overwrite the file, print guidance.

        Args:
            document: Rendered flake and its target.
            hostname: Flake output name, used in the rebuild instruction.

        Returns:
            InstallResult. On failure nothing after the failing step has run.
        """
        target = document.target
        path = str(target.path)

        with logfire.span("installer.install", path=path):
            self._say(BANNER)

            mkdir = self.writer.ensure_directory(target.directory)
            if not mkdir.success:
                return InstallResult(
                    success=False,
                    path=path,
                    failed_step="ensure_directory",
                    error=mkdir.error,
                )

            write = self.writer.write_file(target.path, document.content)
            if not write.success:
                return InstallResult(
                    success=False,
                    path=path,
                    failed_step="write_file",
                    error=write.error,
                )

            logfire.info("Installed '{path}'", path=path, size=len(document.content))

            self._say(f"Configuration written to {path}")
            hardware = target.directory / HARDWARE_CONFIG_FILENAME
            if not self.writer.exists(hardware):
                logfire.warn("{path} not found", path=str(hardware))
                logger.warning("%s not found; the flake imports it", hardware)
                self._say(f"Note: {hardware} does not exist yet (see step 1).")
            self._say()
            self._say("Next steps:")
            for number, step in enumerate(guidance_steps(target, hostname), start=1):
                self._say(f"  {number}. {step}")

            return InstallResult(success=True, path=path)


def install(
    settings: NixpiSettings | None = None,
    writer: FileWriter | None = None,
    out: TextIO | None = None,
) -> InstallResult:
    """Render the flake from settings and install it.

    Args:
        settings: Defaults to get_settings() (environment).
        writer: Defaults to a SudoFileWriter honoring settings.use_sudo.
        out: Defaults to sys.stdout.

    Raises:
        pydantic.ValidationError: If settings are missing or invalid. Raised
            before any filesystem step.
    """
    if settings is None:
        settings = get_settings()

    spec = settings.system_spec()
    target = InstallationTarget(directory=settings.config_dir, filename=settings.flake_filename)
    document = ConfigurationDocument(target=target, content=render_flake(spec))

    if writer is None:
        writer = SudoFileWriter(use_sudo=settings.use_sudo)

    return Installer(writer, out=out).install(document, hostname=spec.host.hostname)
