"""
bedrockci — package root.

File: src/bedrockci/__init__.py

Purpose
- CI validation for Minecraft Bedrock add-on packs: install a behavior and a
  resource pack into a dedicated server, watch its logs, and turn the
  reported errors and warnings into a pass/fail verdict.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
