"""Module entrypoint for ``python -m bedrockci``."""

from __future__ import annotations

from bedrockci.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
