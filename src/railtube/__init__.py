"""
railtube - declarative OS package management

File: src/railtube/__init__.py

Purpose
- Package root. Reconciles a TOML manifest of apt/snap/flatpak/cargo packages,
  .deb URLs and named scripts against the live machine.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.3.0"

__all__ = ["__version__"]
