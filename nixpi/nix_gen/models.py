"""Pydantic models for the Raspberry Pi system spec.

These models hold every operator-supplied value that ends up in the generated
flake. The generator only ever reads validated SystemSpec instances, so
anything that would produce a broken or unsafe document is rejected here,
before the installer touches the filesystem.

Validation rules:
- hostname: RFC 1123 label, also used as the flake output name
- user name: valid Linux login name
- passwords: non-empty SecretStr (never rendered in repr or logs)
- SSH keys: full OpenSSH public key lines, type prefix included
- Mumble host/container addresses: distinct IPv4 addresses
"""

from __future__ import annotations

import re
from ipaddress import IPv4Address

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

# networking.hostName must be a single DNS label.
_HOSTNAME_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]*[a-z0-9])?$")
_HOSTNAME_MAX_LEN = 63

_USERNAME_RE = re.compile(r"^[a-z_][a-z0-9_-]*$")
_USERNAME_MAX_LEN = 32

_SSH_KEY_TYPES = frozenset(
    {
        "ssh-ed25519",
        "ssh-rsa",
        "ecdsa-sha2-nistp256",
        "ecdsa-sha2-nistp384",
        "ecdsa-sha2-nistp521",
        "sk-ssh-ed25519@openssh.com",
        "sk-ecdsa-sha2-nistp256@openssh.com",
    }
)
_BASE64_RE = re.compile(r"^[A-Za-z0-9+/]+={0,2}$")

# Attribute paths inside `with pkgs; [ ... ]` (e.g. "podman-compose", "python3Packages.pip").
_PACKAGE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_'-]*(?:\.[A-Za-z_][A-Za-z0-9_'-]*)*$")


def validate_ssh_key(key: str) -> str | None:
    """Validate a single OpenSSH public key line.

    Returns an error message string if the key is invalid, or None if valid.
    """
    parts = key.split(maxsplit=2)
    if len(parts) < 2:
        return (
            f"SSH key '{key[:24]}...' is incomplete. "
            "Expected '<type> <base64> [comment]' (e.g. 'ssh-ed25519 AAAA... me@host')."
        )
    key_type, blob = parts[0], parts[1]
    if key_type not in _SSH_KEY_TYPES:
        return (
            f"Unknown SSH key type '{key_type}'. "
            f"Known types: {', '.join(sorted(_SSH_KEY_TYPES))}"
        )
    if not _BASE64_RE.match(blob):
        return f"SSH key of type '{key_type}' has a malformed base64 body."
    return None


def _require_secret(v: SecretStr, label: str) -> SecretStr:
    if not v.get_secret_value():
        msg = f"{label} must not be empty"
        raise ValueError(msg)
    return v


class HostSpec(BaseModel):
    """Host identity and base system options."""

    hostname: str = "nixos"
    system: str = "aarch64-linux"
    state_version: str = "25.05"
    nixpkgs_ref: str = "nixos-25.05"
    packages: list[str] = ["vim", "git", "htop", "tmux", "podman-compose"]

    @field_validator("hostname")
    @classmethod
    def validate_hostname(cls, v: str) -> str:
        if not _HOSTNAME_RE.match(v):
            msg = (
                f"Hostname '{v}' is invalid. "
                "Must be lowercase alphanumeric with hyphens, "
                "no leading/trailing hyphens (e.g. 'nixos-pi')"
            )
            raise ValueError(msg)
        if len(v) > _HOSTNAME_MAX_LEN:
            msg = f"Hostname '{v}' is too long ({len(v)} chars). Must be {_HOSTNAME_MAX_LEN} or fewer."
            raise ValueError(msg)
        return v

    @field_validator("packages")
    @classmethod
    def validate_packages(cls, v: list[str]) -> list[str]:
        bad = [p for p in v if not _PACKAGE_RE.match(p)]
        if bad:
            msg = f"Invalid package attribute names: {', '.join(bad)}"
            raise ValueError(msg)
        if len(v) != len(set(v)):
            dupes = [p for p in v if v.count(p) > 1]
            msg = f"Duplicate packages: {', '.join(sorted(set(dupes)))}"
            raise ValueError(msg)
        return v


class UserSpec(BaseModel):
    """The single interactive login user."""

    name: str = "nixpi"
    description: str = "NixPi User"
    initial_password: SecretStr
    authorized_keys: list[str] = []
    password_authentication: bool = True
    extra_groups: list[str] = ["wheel", "podman", "networkmanager"]

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not _USERNAME_RE.match(v) or len(v) > _USERNAME_MAX_LEN:
            msg = (
                f"User name '{v}' is invalid. Must start with a lowercase letter or "
                f"underscore, contain only [a-z0-9_-], and be at most {_USERNAME_MAX_LEN} chars"
            )
            raise ValueError(msg)
        return v

    @field_validator("initial_password")
    @classmethod
    def validate_password(cls, v: SecretStr) -> SecretStr:
        return _require_secret(v, "Initial password")

    @field_validator("authorized_keys")
    @classmethod
    def validate_keys(cls, v: list[str]) -> list[str]:
        keys = [k.strip() for k in v]
        for key in keys:
            error = validate_ssh_key(key)
            if error:
                raise ValueError(error)
        return keys

    @model_validator(mode="after")
    def validate_login_possible(self) -> UserSpec:
        """Refuse a config that would lock the operator out of SSH."""
        if not self.password_authentication and not self.authorized_keys:
            msg = "SSH password authentication is disabled but no authorized keys are set"
            raise ValueError(msg)
        return self


class PiholeSpec(BaseModel):
    """Pi-hole DNS container, run by Podman under a systemd unit."""

    web_password: SecretStr
    timezone: str = "UTC"
    interface: str = "end0"
    image: str = "docker.io/pihole/pihole:latest"
    upstream_dns: list[IPv4Address] = [IPv4Address("127.0.0.1"), IPv4Address("1.1.1.1")]

    @field_validator("web_password")
    @classmethod
    def validate_password(cls, v: SecretStr) -> SecretStr:
        return _require_secret(v, "Pi-hole web password")

    @field_validator("timezone", "interface", "image")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v:
            msg = "Pi-hole timezone, interface and image must not be empty"
            raise ValueError(msg)
        if any(c.isspace() for c in v):
            msg = f"'{v}' must not contain whitespace"
            raise ValueError(msg)
        return v


class MumbleSpec(BaseModel):
    """Mumble server in a native NixOS container with a private network."""

    server_password: SecretStr
    welcome_text: str = "Welcome to Mumble on NixOS Pi!"
    bandwidth: int = Field(default=72000, gt=0)
    max_users: int = Field(default=50, gt=0)
    port: int = Field(default=64738, ge=1, le=65535)
    host_address: IPv4Address = IPv4Address("192.168.100.1")
    local_address: IPv4Address = IPv4Address("192.168.100.2")

    @field_validator("server_password")
    @classmethod
    def validate_password(cls, v: SecretStr) -> SecretStr:
        return _require_secret(v, "Mumble server password")

    @model_validator(mode="after")
    def validate_addresses(self) -> MumbleSpec:
        if self.host_address == self.local_address:
            msg = f"Mumble host and container addresses must differ (both {self.host_address})"
            raise ValueError(msg)
        return self


class SystemSpec(BaseModel):
    """Everything needed to render /etc/nixos/flake.nix."""

    host: HostSpec = HostSpec()
    user: UserSpec
    pihole: PiholeSpec
    mumble: MumbleSpec

    @property
    def allowed_tcp_ports(self) -> list[int]:
        """SSH, Pi-hole web UI, Mumble."""
        return [22, 80, self.mumble.port]

    @property
    def allowed_udp_ports(self) -> list[int]:
        """DNS, Mumble."""
        return [53, self.mumble.port]
