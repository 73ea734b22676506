"""nixpi — renders the Raspberry Pi NixOS flake and installs it to /etc/nixos."""
