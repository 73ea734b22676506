"""nixpi configuration — centralized environment variable management.

Every value that ends up in the generated flake is declared here and read from
the environment (or a .env file in development). Secrets never live in source:
the installer refuses to run until the passwords are provided.

No module should call os.environ directly — import settings from here instead.

Usage:
    from nixpi.config import get_settings

    settings = get_settings()
    spec = settings.system_spec()

Environment variables (all prefixed with NIXPI_):

  Required:
    NIXPI_USER_PASSWORD      — Initial password for the login user.
    NIXPI_PIHOLE_PASSWORD    — Pi-hole web interface password.
    NIXPI_MUMBLE_PASSWORD    — Mumble server password.

  Optional:
    NIXPI_CONFIG_DIR         — Target directory (default /etc/nixos).
    NIXPI_HOSTNAME           — networking.hostName and flake output name.
    NIXPI_AUTHORIZED_KEYS    — JSON list of OpenSSH public keys.
    NIXPI_USER_EXTRA_GROUPS  — JSON list of groups for the login user.
    NIXPI_PIHOLE_IMAGE       — Container image reference for Pi-hole.
    NIXPI_PIHOLE_UPSTREAM_DNS — JSON list of IPv4 resolvers for the container.
    NIXPI_MUMBLE_BANDWIDTH   — Per-user bandwidth cap in bits per second.
    NIXPI_USE_SUDO           — Write through sudo (default true). Set to false
                               when the target directory is writable directly.
    NIXPI_LOGFIRE_TOKEN      — Logfire project token. Without it nothing
                               is exported.
"""

from __future__ import annotations

from functools import lru_cache
from ipaddress import IPv4Address
from pathlib import Path

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from nixpi.nix_gen.models import HostSpec, MumbleSpec, PiholeSpec, SystemSpec, UserSpec


class NixpiSettings(BaseSettings):
    """Centralized configuration for the nixpi installer.

    Field names map to env vars by uppercasing and prefixing:
    hostname → NIXPI_HOSTNAME.

    Instantiate via get_settings() to benefit from caching.
    """

    model_config = SettingsConfigDict(
        env_prefix="NIXPI_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # ── Installation target ─────────────────────────────────────────────────

    config_dir: Path = Path("/etc/nixos")
    flake_filename: str = "flake.nix"

    use_sudo: bool = True
    """Route filesystem writes through sudo. The default matches a fresh Pi
    where the operator runs the installer as an unprivileged user."""

    # ── Host ────────────────────────────────────────────────────────────────

    hostname: str = "nixos"
    system: str = "aarch64-linux"
    state_version: str = "25.05"
    nixpkgs_ref: str = "nixos-25.05"
    packages: list[str] = ["vim", "git", "htop", "tmux", "podman-compose"]

    # ── Login user ──────────────────────────────────────────────────────────

    username: str = "nixpi"
    user_description: str = "NixPi User"
    user_password: SecretStr
    user_extra_groups: list[str] = ["wheel", "podman", "networkmanager"]
    authorized_keys: list[str] = []
    ssh_password_authentication: bool = True

    # ── Pi-hole ─────────────────────────────────────────────────────────────

    pihole_password: SecretStr
    timezone: str = "UTC"
    lan_interface: str = "end0"
    pihole_image: str = "docker.io/pihole/pihole:latest"
    pihole_upstream_dns: list[IPv4Address] = [IPv4Address("127.0.0.1"), IPv4Address("1.1.1.1")]

    # ── Mumble ──────────────────────────────────────────────────────────────

    mumble_password: SecretStr
    mumble_welcome_text: str = "Welcome to Mumble on NixOS Pi!"
    mumble_max_users: int = 50
    mumble_port: int = 64738
    mumble_bandwidth: int = 72000

    # Point-to-point link between the host and the Mumble container.
    mumble_host_address: IPv4Address = IPv4Address("192.168.100.1")
    mumble_local_address: IPv4Address = IPv4Address("192.168.100.2")

    # ── Observability ───────────────────────────────────────────────────────

    logfire_token: SecretStr | None = None

    # ── Computed properties ─────────────────────────────────────────────────

    @property
    def flake_path(self) -> Path:
        return self.config_dir / self.flake_filename

    def system_spec(self) -> SystemSpec:
        """Build the validated SystemSpec the flake is rendered from.

        Raises:
            pydantic.ValidationError: If any value fails model validation
                (bad hostname, malformed SSH key, ...).
        """
        return SystemSpec(
            host=HostSpec(
                hostname=self.hostname,
                system=self.system,
                state_version=self.state_version,
                nixpkgs_ref=self.nixpkgs_ref,
                packages=self.packages,
            ),
            user=UserSpec(
                name=self.username,
                description=self.user_description,
                extra_groups=self.user_extra_groups,
                initial_password=self.user_password,
                authorized_keys=self.authorized_keys,
                password_authentication=self.ssh_password_authentication,
            ),
            pihole=PiholeSpec(
                web_password=self.pihole_password,
                timezone=self.timezone,
                interface=self.lan_interface,
                image=self.pihole_image,
                upstream_dns=self.pihole_upstream_dns,
            ),
            mumble=MumbleSpec(
                server_password=self.mumble_password,
                welcome_text=self.mumble_welcome_text,
                max_users=self.mumble_max_users,
                port=self.mumble_port,
                bandwidth=self.mumble_bandwidth,
                host_address=self.mumble_host_address,
                local_address=self.mumble_local_address,
            ),
        )


@lru_cache(maxsize=1)
def get_settings() -> NixpiSettings:
    """Return the cached NixpiSettings instance.

    Reads from environment on first call, then caches for the process lifetime.
    Call clear_settings_cache() in tests to reset between test cases.
    """
    return NixpiSettings()  # pyright: ignore[reportCallIssue]  — BaseSettings reads from env


def clear_settings_cache() -> None:
    """Clear the settings cache."""
    get_settings.cache_clear()
