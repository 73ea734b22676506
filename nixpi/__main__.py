"""Entry point for the nixpi installer.

Renders the Raspberry Pi flake from NIXPI_* environment variables (or a .env
file) and writes it to /etc/nixos/flake.nix. Takes no arguments:

    python -m nixpi

or, once installed:

    nixpi-install

Exit status is 0 on success and 1 on the first failing step. Diagnostics go
to stderr; the banner and follow-up guidance go to stdout.
"""

from __future__ import annotations

import logging
import sys

import logfire
from pydantic import ValidationError

from nixpi.config import get_settings
from nixpi.installer import install

# ── Logging ───────────────────────────────────────────────────────────────────

logging.basicConfig(
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    level=logging.INFO,
)
logger = logging.getLogger(__name__)


# ── Entrypoint ────────────────────────────────────────────────────────────────


def main() -> int:
    """Install the flake and return the process exit status."""
    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"Invalid nixpi configuration:\n{e}", file=sys.stderr)
        return 1

    # Token is optional; without one nothing leaves the machine.
    logfire_token = settings.logfire_token
    logfire.configure(
        token=logfire_token.get_secret_value() if logfire_token else None,
        send_to_logfire="if-token-present",
        service_name="nixpi-installer",
        console=False,
    )

    logger.info("Installing flake for host %s to %s", settings.hostname, settings.flake_path)

    try:
        result = install(settings)
    except ValidationError as e:
        print(f"Invalid nixpi configuration:\n{e}", file=sys.stderr)
        return 1
    except OSError as e:
        # Writers report their own failures; this covers filesystem errors raised elsewhere.
        print(str(e), file=sys.stderr)
        return 1

    if not result.success:
        print(result.error or f"{result.failed_step} failed for {result.path}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
