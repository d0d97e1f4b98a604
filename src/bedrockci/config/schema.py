"""
bedrockci — configuration schema and validation.

File: src/bedrockci/config/schema.py

Purpose
- Define authoritative configuration defaults and strict validation rules.

What should be included in this file
- Schema versioning and migration guidance.
- Validation rules for required fields, types, enums, and numeric constraints.
- Profile overlay validation and deterministic deep-merge helpers.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Support profile overlays including strict/lenient.

Non-functional requirements
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from bedrockci.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_DOWNLOAD_TIMEOUT_SECONDS,
    DEFAULT_IDLE_TIMEOUT_SECONDS,
    DEFAULT_SERVER_ROOT,
    DOWNLOAD_PAGE_URL,
    DOWNLOAD_URL_TEMPLATE,
    LATEST_VERSION,
    SERVER_EXECUTABLE_NAME,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
BUILTIN_PROFILE_NAMES: Final[tuple[str, ...]] = ("strict", "lenient")

POLICY_VALUES: Final[tuple[str, ...]] = ("lenient", "normal", "strict_on_warn")
INSTALL_MODE_VALUES: Final[tuple[str, ...]] = ("copy", "symlink")
LOG_LEVEL_VALUES: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

_PROFILE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*$")
_VERSION_PATTERN = re.compile(r"^(latest|\d+(\.\d+)*)$")

# Config paths that should be normalized relative to config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("server", "root"),
    ("observability", "log_dir"),
)


class MetaConfig(TypedDict):
    schema_version: int


class ServerConfig(TypedDict):
    root: str
    version: str
    executable: str


class ValidationConfig(TypedDict):
    policy: Literal["lenient", "normal", "strict_on_warn"]
    idle_timeout_seconds: float
    install_mode: Literal["copy", "symlink"]
    verbose: bool


class DownloadConfig(TypedDict):
    page_url: str
    url_template: str
    timeout_seconds: float


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_dir: str
    log_to_stderr: bool


class ProfileOverlay(TypedDict, total=False):
    server: dict[str, Any]
    validation: dict[str, Any]
    download: dict[str, Any]
    observability: dict[str, Any]


class BedrockCIConfig(TypedDict):
    meta: MetaConfig
    server: ServerConfig
    validation: ValidationConfig
    download: DownloadConfig
    observability: ObservabilityConfig
    profiles: dict[str, ProfileOverlay]


DEFAULT_CONFIG: Final[BedrockCIConfig] = {
    "meta": {
        "schema_version": ConfigSchemaVersion,
    },
    "server": {
        "root": DEFAULT_SERVER_ROOT,
        "version": LATEST_VERSION,
        "executable": SERVER_EXECUTABLE_NAME,
    },
    "validation": {
        "policy": "normal",
        "idle_timeout_seconds": DEFAULT_IDLE_TIMEOUT_SECONDS,
        "install_mode": "copy",
        "verbose": False,
    },
    "download": {
        "page_url": DOWNLOAD_PAGE_URL,
        "url_template": DOWNLOAD_URL_TEMPLATE,
        "timeout_seconds": DEFAULT_DOWNLOAD_TIMEOUT_SECONDS,
    },
    "observability": {
        "log_level": "INFO",
        "log_dir": ".bedrockci/logs",
        "log_to_stderr": False,
    },
    "profiles": {
        "strict": {
            "validation": {"policy": "strict_on_warn"},
        },
        "lenient": {
            "validation": {"policy": "lenient"},
        },
    },
}

_SECTION_NAMES: Final[tuple[str, ...]] = ("server", "validation", "download", "observability")


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> BedrockCIConfig:
    """Return a deep copy of deterministic built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    """Return deterministic migration guidance for schema version mismatch."""

    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade bedrockci.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade bedrockci"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def apply_profile_overlay(config: Mapping[str, object], profile: str | None) -> dict[str, Any]:
    """Apply a named profile overlay and re-validate the resulting config."""

    materialized = _deep_copy_mapping(config)
    if profile is None:
        return materialized

    selected = profile.strip()
    if not selected:
        return materialized

    profiles_raw = materialized.get("profiles")
    if not isinstance(profiles_raw, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", "profiles section is required"),)
        )

    overlay_raw = profiles_raw.get(selected)
    if overlay_raw is None:
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", f"profile {selected!r} is not defined"),)
        )
    if not isinstance(overlay_raw, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue(f"profiles.{selected}", "profile overlay must be an object"),)
        )

    merged = merge_config(materialized, overlay_raw)
    return assert_valid_config(merged, active_profile=selected)


def validate_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized = _validate_root(root, issues)

    selected_profile = active_profile.strip() if isinstance(active_profile, str) else None
    if selected_profile and not issues.has_issues:
        profiles = normalized.get("profiles")
        if not isinstance(profiles, Mapping) or selected_profile not in profiles:
            issues.add("profiles", f"profile {selected_profile!r} is not defined")

    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config, active_profile=active_profile)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def _validate_root(payload: Mapping[str, object], issues: _IssueCollector) -> dict[str, Any]:
    allowed = {"meta", "profiles", *_SECTION_NAMES}
    _reject_unknown_keys(payload, allowed, "", issues)
    _require_keys(payload, {"meta", *_SECTION_NAMES}, "", issues)

    out: dict[str, Any] = {}
    _section(
        payload,
        key="meta",
        path="",
        issues=issues,
        validator=lambda section, section_path: _validate_meta(section, section_path, issues),
        out=out,
    )
    for name in _SECTION_NAMES:
        validator = _SECTION_VALIDATORS[name]
        _section(
            payload,
            key=name,
            path="",
            issues=issues,
            validator=lambda section, section_path, v=validator: v(
                section, section_path, issues, partial=False
            ),
            out=out,
        )

    profiles_raw = payload.get("profiles")
    if profiles_raw is not None:
        profiles_obj = _as_object(profiles_raw, "profiles", issues)
        if profiles_obj is not None:
            out["profiles"] = _validate_profiles(profiles_obj, "profiles", issues)
    return out


def _section(
    payload: Mapping[str, object],
    *,
    key: str,
    path: str,
    issues: _IssueCollector,
    validator: Callable[[dict[str, object], str], dict[str, Any]],
    out: dict[str, Any],
) -> None:
    raw = payload.get(key)
    if raw is None:
        return
    section_path = _join(path, key)
    section_obj = _as_object(raw, section_path, issues)
    if section_obj is None:
        return
    out[key] = validator(section_obj, section_path)


def _validate_meta(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"schema_version"}, path, issues)
    _require_keys(payload, {"schema_version"}, path, issues)

    out: dict[str, Any] = {}
    if "schema_version" in payload:
        parsed = _as_int(payload["schema_version"], _join(path, "schema_version"), issues, minimum=1)
        if parsed is not None:
            out["schema_version"] = parsed
            if parsed != ConfigSchemaVersion:
                issues.add(_join(path, "schema_version"), migration_guidance(parsed))
    return out


def _validate_server(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, *, partial: bool
) -> dict[str, Any]:
    allowed = {"root", "version", "executable"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "root" in payload:
        parsed_root = _as_path_text(payload["root"], _join(path, "root"), issues)
        if parsed_root is not None:
            out["root"] = parsed_root
    if "version" in payload:
        parsed_version = _as_str(payload["version"], _join(path, "version"), issues)
        if parsed_version is not None:
            if _VERSION_PATTERN.fullmatch(parsed_version):
                out["version"] = parsed_version
            else:
                issues.add(
                    _join(path, "version"), "must be 'latest' or a dotted numeric version"
                )
    if "executable" in payload:
        parsed_executable = _as_str(payload["executable"], _join(path, "executable"), issues)
        if parsed_executable is not None:
            if "/" in parsed_executable or "\\" in parsed_executable:
                issues.add(_join(path, "executable"), "must be a file name, not a path")
            else:
                out["executable"] = parsed_executable
    return out


def _validate_validation(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, *, partial: bool
) -> dict[str, Any]:
    allowed = {"policy", "idle_timeout_seconds", "install_mode", "verbose"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "policy" in payload:
        parsed_policy = _as_enum(
            payload["policy"], _join(path, "policy"), issues, allowed_values=POLICY_VALUES
        )
        if parsed_policy is not None:
            out["policy"] = parsed_policy
    if "idle_timeout_seconds" in payload:
        parsed_timeout = _as_positive_float(
            payload["idle_timeout_seconds"], _join(path, "idle_timeout_seconds"), issues
        )
        if parsed_timeout is not None:
            out["idle_timeout_seconds"] = parsed_timeout
    if "install_mode" in payload:
        parsed_mode = _as_enum(
            payload["install_mode"],
            _join(path, "install_mode"),
            issues,
            allowed_values=INSTALL_MODE_VALUES,
        )
        if parsed_mode is not None:
            out["install_mode"] = parsed_mode
    if "verbose" in payload:
        parsed_verbose = _as_bool(payload["verbose"], _join(path, "verbose"), issues)
        if parsed_verbose is not None:
            out["verbose"] = parsed_verbose
    return out


def _validate_download(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, *, partial: bool
) -> dict[str, Any]:
    allowed = {"page_url", "url_template", "timeout_seconds"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "page_url" in payload:
        parsed_page = _as_url(payload["page_url"], _join(path, "page_url"), issues)
        if parsed_page is not None:
            out["page_url"] = parsed_page
    if "url_template" in payload:
        parsed_template = _as_url(payload["url_template"], _join(path, "url_template"), issues)
        if parsed_template is not None:
            if parsed_template.count("{version}") != 1:
                issues.add(
                    _join(path, "url_template"), "must contain exactly one {version} placeholder"
                )
            else:
                out["url_template"] = parsed_template
    if "timeout_seconds" in payload:
        parsed_timeout = _as_positive_float(
            payload["timeout_seconds"], _join(path, "timeout_seconds"), issues
        )
        if parsed_timeout is not None:
            out["timeout_seconds"] = parsed_timeout
    return out


def _validate_observability(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, *, partial: bool
) -> dict[str, Any]:
    allowed = {"log_level", "log_dir", "log_to_stderr"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "log_level" in payload:
        raw_level = payload["log_level"]
        if isinstance(raw_level, str):
            raw_level = raw_level.upper()
        parsed_log_level = _as_enum(
            raw_level, _join(path, "log_level"), issues, allowed_values=LOG_LEVEL_VALUES
        )
        if parsed_log_level is not None:
            out["log_level"] = parsed_log_level
    if "log_dir" in payload:
        parsed_log_dir = _as_path_text(payload["log_dir"], _join(path, "log_dir"), issues)
        if parsed_log_dir is not None:
            out["log_dir"] = parsed_log_dir
    if "log_to_stderr" in payload:
        parsed_stderr = _as_bool(payload["log_to_stderr"], _join(path, "log_to_stderr"), issues)
        if parsed_stderr is not None:
            out["log_to_stderr"] = parsed_stderr
    return out


_SECTION_VALIDATORS: Final[dict[str, Callable[..., dict[str, Any]]]] = {
    "server": _validate_server,
    "validation": _validate_validation,
    "download": _validate_download,
    "observability": _validate_observability,
}


def _validate_profiles(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for profile_name in sorted(payload):
        profile_path = _join(path, profile_name)
        if not _PROFILE_NAME_PATTERN.fullmatch(profile_name):
            issues.add(profile_path, "profile name must match ^[a-z][a-z0-9_-]*$")
            continue
        profile_obj = _as_object(payload[profile_name], profile_path, issues)
        if profile_obj is None:
            continue
        out[profile_name] = _validate_profile_overlay(profile_obj, profile_path, issues)
    return out


def _validate_profile_overlay(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, set(_SECTION_NAMES), path, issues)

    out: dict[str, Any] = {}
    for section in _SECTION_NAMES:
        raw = payload.get(section)
        if raw is None:
            continue
        section_path = _join(path, section)
        section_obj = _as_object(raw, section_path, issues)
        if section_obj is None:
            continue
        out[section] = _SECTION_VALIDATORS[section](
            section_obj, section_path, issues, partial=True
        )
    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_url(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if not parsed.startswith(("https://", "http://")):
        issues.add(path, "must be an http(s) URL")
        return None
    return parsed


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_positive_float(value: object, path: str, issues: _IssueCollector) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if parsed <= 0.0:
        issues.add(path, "must be > 0")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key not in allowed:
            issues.add(_join(path, key), "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            if isinstance(existing, dict):
                _merge_into(existing, value)
            else:
                nested: dict[str, Any] = {}
                _merge_into(nested, value)
                target[key] = nested
        else:
            target[key] = copy.deepcopy(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key in sorted(value):
        item = value[key]
        out[key] = _deep_copy_mapping(item) if isinstance(item, Mapping) else copy.deepcopy(item)
    return out


__all__ = [
    "BUILTIN_PROFILE_NAMES",
    "BedrockCIConfig",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "INSTALL_MODE_VALUES",
    "LOG_LEVEL_VALUES",
    "PATH_FIELDS",
    "POLICY_VALUES",
    "ProfileOverlay",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "validate_config",
]
