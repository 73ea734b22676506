"""Tests for the system spec Pydantic models.

These tests define the contract for the installer-to-Nix boundary: every
value that reaches the generator has passed through these validators.
"""

from ipaddress import IPv4Address

import pytest
from pydantic import SecretStr, ValidationError

from nixpi.nix_gen.models import (
    HostSpec,
    MumbleSpec,
    PiholeSpec,
    SystemSpec,
    UserSpec,
    validate_ssh_key,
)

ED25519_KEY = "ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIH/GcEBOq+XMOUcrn2K99e4MGjefO049gaNcywwBsg/T pi@example"


def make_user(**overrides) -> UserSpec:
    fields = {"initial_password": "hunter2"}
    fields.update(overrides)
    return UserSpec(**fields)


def make_system(**overrides) -> SystemSpec:
    fields = {
        "user": make_user(),
        "pihole": PiholeSpec(web_password="pihole-pw"),
        "mumble": MumbleSpec(server_password="mumble-pw"),
    }
    fields.update(overrides)
    return SystemSpec(**fields)


class TestHostSpec:
    """Host identity defaults and hostname rules."""

    def test_defaults(self):
        host = HostSpec()
        assert host.hostname == "nixos"
        assert host.system == "aarch64-linux"
        assert host.state_version == "25.05"
        assert host.nixpkgs_ref == "nixos-25.05"
        assert host.packages == ["vim", "git", "htop", "tmux", "podman-compose"]

    def test_hyphenated_hostname(self):
        assert HostSpec(hostname="pi-den").hostname == "pi-den"

    def test_max_length_hostname(self):
        name = "a" * 63
        assert HostSpec(hostname=name).hostname == name

    def test_hostname_too_long_rejected(self):
        with pytest.raises(ValidationError, match="too long"):
            HostSpec(hostname="a" * 64)

    @pytest.mark.parametrize("name", ["", "NixOS", "pi den", "-pi", "pi-", "pi.local", "pi_1"])
    def test_invalid_hostname_rejected(self, name):
        with pytest.raises(ValidationError, match="Hostname"):
            HostSpec(hostname=name)

    def test_dotted_package_path_accepted(self):
        host = HostSpec(packages=["python3Packages.pip", "vim"])
        assert host.packages == ["python3Packages.pip", "vim"]

    def test_package_with_space_rejected(self):
        with pytest.raises(ValidationError, match="Invalid package"):
            HostSpec(packages=["vim git"])

    def test_package_injection_rejected(self):
        with pytest.raises(ValidationError, match="Invalid package"):
            HostSpec(packages=["vim ]; boot.loader.grub.enable = true; ["])

    def test_duplicate_packages_rejected(self):
        with pytest.raises(ValidationError, match="Duplicate packages: vim"):
            HostSpec(packages=["vim", "git", "vim"])

    def test_empty_package_list_allowed(self):
        assert HostSpec(packages=[]).packages == []


class TestUserSpec:
    """Login user, password and SSH key validation."""

    def test_defaults(self):
        user = make_user()
        assert user.name == "nixpi"
        assert user.description == "NixPi User"
        assert user.extra_groups == ["wheel", "podman", "networkmanager"]
        assert user.authorized_keys == []
        assert user.password_authentication is True

    def test_password_is_secret(self):
        user = make_user()
        assert isinstance(user.initial_password, SecretStr)
        assert "hunter2" not in repr(user)
        assert user.initial_password.get_secret_value() == "hunter2"

    def test_empty_password_rejected(self):
        with pytest.raises(ValidationError, match="Initial password must not be empty"):
            make_user(initial_password="")

    def test_missing_password_rejected(self):
        with pytest.raises(ValidationError, match="initial_password"):
            UserSpec()

    @pytest.mark.parametrize("name", ["", "Pi", "1pi", "pi user", "a" * 33])
    def test_invalid_name_rejected(self, name):
        with pytest.raises(ValidationError, match="User name"):
            make_user(name=name)

    def test_underscore_name_accepted(self):
        assert make_user(name="_svc-pi").name == "_svc-pi"

    def test_valid_key_accepted(self):
        user = make_user(authorized_keys=[ED25519_KEY])
        assert user.authorized_keys == [ED25519_KEY]

    def test_keys_are_stripped(self):
        user = make_user(authorized_keys=[f"  {ED25519_KEY}\n"])
        assert user.authorized_keys == [ED25519_KEY]

    def test_key_without_type_rejected(self):
        """A bare base64 blob (no 'ssh-ed25519' prefix) is not a usable key line."""
        bare = "AAAAC3NzaC1lZDI1NTE5AAAAIH/GcEBOq+XMOUcrn2K99e4MGjefO049gaNcywwBsg/T pi@example"
        with pytest.raises(ValidationError, match="Unknown SSH key type"):
            make_user(authorized_keys=[bare])

    def test_key_password_auth_disabled_without_keys_rejected(self):
        with pytest.raises(ValidationError, match="no authorized keys"):
            make_user(password_authentication=False)

    def test_key_only_login_accepted(self):
        user = make_user(password_authentication=False, authorized_keys=[ED25519_KEY])
        assert user.password_authentication is False


class TestValidateSshKey:
    """Standalone validate_ssh_key returns an error string or None."""

    def test_valid_key_returns_none(self):
        assert validate_ssh_key(ED25519_KEY) is None

    def test_key_without_comment_returns_none(self):
        assert validate_ssh_key("ssh-rsa AAAAB3NzaC1yc2EAAAADAQABAAABAQC7") is None

    def test_type_only_returns_error(self):
        assert "incomplete" in validate_ssh_key("ssh-ed25519")

    def test_empty_returns_error(self):
        assert "incomplete" in validate_ssh_key("")

    def test_bad_base64_returns_error(self):
        assert "malformed" in validate_ssh_key('ssh-ed25519 AAAA"bad$ pi@example')


class TestPiholeSpec:
    def test_defaults(self):
        pihole = PiholeSpec(web_password="pw")
        assert pihole.timezone == "UTC"
        assert pihole.interface == "end0"
        assert pihole.image == "docker.io/pihole/pihole:latest"
        assert pihole.upstream_dns == [IPv4Address("127.0.0.1"), IPv4Address("1.1.1.1")]

    def test_empty_password_rejected(self):
        with pytest.raises(ValidationError, match="Pi-hole web password"):
            PiholeSpec(web_password="")

    def test_image_with_whitespace_rejected(self):
        with pytest.raises(ValidationError, match="whitespace"):
            PiholeSpec(web_password="pw", image="pihole/pihole:latest --privileged")

    def test_empty_interface_rejected(self):
        with pytest.raises(ValidationError, match="must not be empty"):
            PiholeSpec(web_password="pw", interface="")

    def test_invalid_dns_rejected(self):
        with pytest.raises(ValidationError, match="upstream_dns"):
            PiholeSpec(web_password="pw", upstream_dns=["not-an-ip"])


class TestMumbleSpec:
    def test_defaults(self):
        mumble = MumbleSpec(server_password="pw")
        assert mumble.port == 64738
        assert mumble.bandwidth == 72000
        assert mumble.max_users == 50
        assert mumble.host_address == IPv4Address("192.168.100.1")
        assert mumble.local_address == IPv4Address("192.168.100.2")

    @pytest.mark.parametrize("port", [0, -1, 65536])
    def test_port_out_of_range_rejected(self, port):
        with pytest.raises(ValidationError, match="port"):
            MumbleSpec(server_password="pw", port=port)

    def test_zero_users_rejected(self):
        with pytest.raises(ValidationError, match="max_users"):
            MumbleSpec(server_password="pw", max_users=0)

    def test_same_addresses_rejected(self):
        with pytest.raises(ValidationError, match="must differ"):
            MumbleSpec(
                server_password="pw",
                host_address="10.0.0.1",
                local_address="10.0.0.1",
            )

    def test_empty_password_rejected(self):
        with pytest.raises(ValidationError, match="Mumble server password"):
            MumbleSpec(server_password="")


class TestSystemSpec:
    def test_default_host(self):
        assert make_system().host == HostSpec()

    def test_firewall_ports_follow_mumble_port(self):
        spec = make_system(mumble=MumbleSpec(server_password="pw", port=50000))
        assert spec.allowed_tcp_ports == [22, 80, 50000]
        assert spec.allowed_udp_ports == [53, 50000]

    def test_default_firewall_ports(self):
        spec = make_system()
        assert spec.allowed_tcp_ports == [22, 80, 64738]
        assert spec.allowed_udp_ports == [53, 64738]

    def test_missing_section_rejected(self):
        with pytest.raises(ValidationError, match="mumble"):
            SystemSpec(user=make_user(), pihole=PiholeSpec(web_password="pw"))
