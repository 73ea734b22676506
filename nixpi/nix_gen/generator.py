"""Flake generator — renders /etc/nixos/flake.nix from a SystemSpec.

Nothing in this package writes Nix syntax by hand outside this module. The
rendering is pure string manipulation: the same SystemSpec always produces
the same bytes, and nothing is evaluated or written to disk here.

Generated flake structure:
    {
      description = "NixOS Pi Configuration";
      inputs.nixpkgs.url = "github:NixOS/nixpkgs/<ref>";
      outputs = { self, nixpkgs }: {
        nixosConfigurations.<hostname> = nixpkgs.lib.nixosSystem {
          system = "aarch64-linux";
          modules = [ ./hardware-configuration.nix ({ ... }: { ... }) ];
        };
      };
    }

Every operator-provided value passes through _nix_string, so a password or
welcome text can never terminate the string or trigger ${...} interpolation.
Pi-hole settings are handed to podman through the unit's environment rather
than spliced into the command line, which keeps secrets out of shell quoting.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from nixpi.nix_gen.models import MumbleSpec, PiholeSpec, SystemSpec, UserSpec

# Interpolated by Nix at evaluation time, so emitted verbatim.
_PODMAN = "${pkgs.podman}/bin/podman"

_PIHOLE_CONTAINER = "pihole"
_PIHOLE_VOLUMES = {"pihole-etc": "/etc/pihole", "pihole-dnsmasq": "/etc/dnsmasq.d"}

_NIX_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_'-]*$")


def _nix_escape(value: str) -> str:
    """Escape a Python string for use inside a double-quoted Nix string.

      \\  →  \\\\   (must be first to avoid double-escaping)
      "   →  \\"
      $   →  \\$    (prevents Nix string interpolation)
      newline, carriage return, tab  →  \\n \\r \\t
    """
    return (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("$", "\\$")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )


def _nix_string(value: str) -> str:
    """Wrap a Python string as a Nix string literal."""
    return f'"{_nix_escape(value)}"'


def _nix_list(items: list[str]) -> str:
    """Format a Python list of strings as a Nix list literal.

    Example: ["wheel", "podman"] → '[ "wheel" "podman" ]'
    """
    if not items:
        return "[ ]"
    return "[ " + " ".join(_nix_string(item) for item in items) + " ]"


def _nix_int_list(items: list[int]) -> str:
    return "[ " + " ".join(str(i) for i in items) + " ]"


def _nix_bool(value: bool) -> str:
    return "true" if value else "false"


def _nix_attr_name(name: str) -> str:
    """Return name as a bare attribute name when Nix allows it, quoted otherwise."""
    return name if _NIX_IDENT_RE.match(name) else _nix_string(name)


def _indent(block: str, spaces: int) -> str:
    # Only "\n" separates lines; splitlines() would also break on \x0c, \u2028 and friends.
    pad = " " * spaces
    return "\n".join(pad + line if line else line for line in block.split("\n"))


def _render_user(user: UserSpec) -> str:
    keys = "\n".join(f"    {_nix_string(k)}" for k in user.authorized_keys)
    keys_block = f"[\n{keys}\n  ]" if keys else "[ ]"
    return f"""\
# Enable SSH
services.openssh = {{
  enable = true;
  settings.PasswordAuthentication = {_nix_bool(user.password_authentication)};
}};

# User configuration
users.users.{_nix_attr_name(user.name)} = {{
  isNormalUser = true;
  description = {_nix_string(user.description)};
  extraGroups = {_nix_list(user.extra_groups)};
  initialPassword = {_nix_string(user.initial_password.get_secret_value())};
  openssh.authorizedKeys.keys = {keys_block};
}};"""


def _render_pihole(pihole: PiholeSpec) -> str:
    env = {
        "TZ": pihole.timezone,
        "WEBPASSWORD": pihole.web_password.get_secret_value(),
        "INTERFACE": pihole.interface,
        "DNSMASQ_LISTENING": "all",
    }
    env_lines = "\n".join(f"    {k} = {_nix_string(v)};" for k, v in env.items())

    run_args = [
        "run",
        "--name",
        _PIHOLE_CONTAINER,
        "--hostname",
        "pi.hole",
        "--network",
        "host",
    ]
    for name in env:
        run_args += ["-e", name]
    for volume, mount in _PIHOLE_VOLUMES.items():
        run_args += ["-v", f"{volume}:{mount}:Z"]
    run_args += [f"--dns={server}" for server in pihole.upstream_dns]
    run_args += ["--restart=unless-stopped", pihole.image]
    exec_start = "\n".join(f"      {_nix_string(arg)}" for arg in run_args)

    volume_cmds = "\n".join(
        f'        "{_PODMAN} volume create {_nix_escape(volume)}"' for volume in _PIHOLE_VOLUMES
    )

    return f"""\
# Pi-hole DNS server
systemd.services.pihole = {{
  description = "Pi-hole DNS Server";
  after = [ "network-online.target" "pihole-volumes.service" ];
  wants = [ "network-online.target" ];
  wantedBy = [ "multi-user.target" ];

  # Forwarded to the container by name (podman run -e NAME)
  environment = {{
{env_lines}
  }};

  serviceConfig = {{
    Type = "simple";
    Restart = "always";
    RestartSec = "30s";

    # Pull the image before starting
    ExecStartPre = [
      "{_PODMAN} pull {_nix_escape(pihole.image)}"
      "-{_PODMAN} stop -t 10 {_PIHOLE_CONTAINER}"
      "-{_PODMAN} rm {_PIHOLE_CONTAINER}"
    ];

    ExecStart = lib.concatStringsSep " " [
      "{_PODMAN}"
{exec_start}
    ];

    ExecStop = "{_PODMAN} stop -t 10 {_PIHOLE_CONTAINER}";
  }};
}};

# Create Podman volumes for Pi-hole
systemd.services.pihole-volumes = {{
  description = "Create Pi-hole Podman volumes";
  before = [ "pihole.service" ];
  wantedBy = [ "multi-user.target" ];
  serviceConfig = {{
    Type = "oneshot";
    RemainAfterExit = true;
    ExecStart = [
{volume_cmds}
    ];
  }};
}};"""


def _render_mumble(mumble: MumbleSpec, state_version: str) -> str:
    forwards = "\n".join(
        f"""\
  {{
    containerPort = {mumble.port};
    hostPort = {mumble.port};
    protocol = "{protocol}";
  }}"""
        for protocol in ("tcp", "udp")
    )
    return f"""\
# Mumble server (native NixOS container)
containers.mumble = {{
  autoStart = true;
  privateNetwork = true;
  hostAddress = {_nix_string(str(mumble.host_address))};
  localAddress = {_nix_string(str(mumble.local_address))};

  forwardPorts = [
{_indent(forwards, 2)}
  ];

  config = {{ config, pkgs, ... }}: {{
    system.stateVersion = {_nix_string(state_version)};

    services.murmur = {{
      enable = true;
      openFirewall = true;
      welcometext = {_nix_string(mumble.welcome_text)};
      password = {_nix_string(mumble.server_password.get_secret_value())};
      bandwidth = {mumble.bandwidth};
      users = {mumble.max_users};
      port = {mumble.port};
    }};
  }};
}};"""


def render_flake(spec: SystemSpec) -> str:
    """Render the complete flake.nix for a Raspberry Pi from a SystemSpec.

    Args:
        spec: Validated SystemSpec.

    Returns:
        The flake source, newline-terminated. Deterministic for a given spec.
    """
    host = spec.host
    nixpkgs_url = f"github:NixOS/nixpkgs/{host.nixpkgs_ref}"
    packages = "\n".join(f"  {p}" for p in host.packages)

    module = f"""\
# System version
system.stateVersion = {_nix_string(host.state_version)};

# Enable flakes
nix.settings.experimental-features = [ "nix-command" "flakes" ];

# Boot loader for Raspberry Pi
boot.loader.grub.enable = false;
boot.loader.generic-extlinux-compatible.enable = true;
boot.loader.generic-extlinux-compatible.configurationLimit = 2;

# Hostname
networking.hostName = {_nix_string(host.hostname)};

# Network configuration
networking.networkmanager.enable = true;
networking.firewall = {{
  enable = true;
  allowedTCPPorts = {_nix_int_list(spec.allowed_tcp_ports)};  # SSH, Pi-hole, Mumble
  allowedUDPPorts = {_nix_int_list(spec.allowed_udp_ports)};  # DNS, Mumble
}};

{_render_user(spec.user)}

# Enable Podman for containers
virtualisation.podman = {{
  enable = true;
  dockerCompat = true;
  defaultNetwork.settings.dns_enabled = true;
}};

{_render_pihole(spec.pihole)}

{_render_mumble(spec.mumble, host.state_version)}

# System packages
environment.systemPackages = with pkgs; [
{packages}
];"""

    return f"""\
{{
  description = "NixOS Pi Configuration";

  inputs = {{
    nixpkgs.url = {_nix_string(nixpkgs_url)};
  }};

  outputs = {{ self, nixpkgs }}: {{
    nixosConfigurations.{_nix_attr_name(host.hostname)} = nixpkgs.lib.nixosSystem {{
      system = {_nix_string(host.system)};
      modules = [
        # Generated by nixos-generate-config
        ./hardware-configuration.nix

        # Main configuration
        ({{ config, pkgs, lib, ... }}: {{
{_indent(module, 10)}
        }})
      ];
    }};
  }};
}}
"""
