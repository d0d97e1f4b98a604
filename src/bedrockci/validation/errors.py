"""Error hierarchy for the validation engine and pack preparation."""

from __future__ import annotations


class BedrockCIError(Exception):
    """Root of every error raised deliberately by bedrockci."""


class ValidationError(BedrockCIError):
    """Fatal failure of a validation run; never retried."""


class InvalidServerPath(ValidationError):
    """Server location is missing, not a directory, or not installed."""


class InvalidPackPath(ValidationError):
    """Pack location is missing, not a directory, or lacks a manifest."""


class PackCopyFailed(ValidationError):
    """Pack installation into the server directory failed."""


class ServerStartFailed(ValidationError):
    """Executable missing, not executable, spawn failed, or streams not captured."""


class ValidationFailed(ValidationError):
    """The verdict policy rejected the accumulated findings."""

    def __init__(self, message: str, *, error_count: int = 0, warning_count: int = 0) -> None:
        super().__init__(message)
        self.error_count = error_count
        self.warning_count = warning_count


__all__ = [
    "BedrockCIError",
    "InvalidPackPath",
    "InvalidServerPath",
    "PackCopyFailed",
    "ServerStartFailed",
    "ValidationError",
    "ValidationFailed",
]
