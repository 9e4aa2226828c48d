"""Module entrypoint for ``python -m railtube``."""

from __future__ import annotations

from railtube.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
