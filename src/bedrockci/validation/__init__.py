"""
bedrockci — validation engine.

File: src/bedrockci/validation/__init__.py

Purpose
- Public surface of the engine that turns a dedicated server's log streams
  into a CI verdict: launcher, classifier, phase tracker, idle detector,
  run loop and verdict policy.

Functional requirements
- Importing this package must not spawn processes or configure logging.
"""

from bedrockci.validation.classifier import classify, is_separator, severity_of, split_category
from bedrockci.validation.errors import (
    BedrockCIError,
    InvalidPackPath,
    InvalidServerPath,
    PackCopyFailed,
    ServerStartFailed,
    ValidationError,
    ValidationFailed,
)
from bedrockci.validation.idle import IdleClock
from bedrockci.validation.launcher import ManagedProcess, launch_server
from bedrockci.validation.models import (
    ClassificationEvent,
    EventKind,
    Finding,
    RunOutcome,
    Severity,
    StopReason,
    TelemetryState,
    ValidationPhase,
    ValidationResult,
)
from bedrockci.validation.phase import ValidationAccumulator, ValidationSession, advance
from bedrockci.validation.run_loop import run_log_loop, serve_interactive, validate_server
from bedrockci.validation.verdict import Verdict, VerdictPolicy, evaluate

__all__ = [
    "BedrockCIError",
    "ClassificationEvent",
    "EventKind",
    "Finding",
    "IdleClock",
    "InvalidPackPath",
    "InvalidServerPath",
    "ManagedProcess",
    "PackCopyFailed",
    "RunOutcome",
    "ServerStartFailed",
    "Severity",
    "StopReason",
    "TelemetryState",
    "ValidationAccumulator",
    "ValidationError",
    "ValidationFailed",
    "ValidationPhase",
    "ValidationResult",
    "ValidationSession",
    "Verdict",
    "VerdictPolicy",
    "advance",
    "classify",
    "evaluate",
    "is_separator",
    "launch_server",
    "run_log_loop",
    "serve_interactive",
    "severity_of",
    "split_category",
    "validate_server",
]
