"""nix_gen — flake rendering for the Raspberry Pi installer.

This package owns the Python side of the installer-to-Nix boundary:
- Pydantic models defining the system spec (host, user, Pi-hole, Mumble)
- Rendering of a SystemSpec into flake.nix source
"""
