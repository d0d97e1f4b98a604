"""
bedrockci — runtime config loader.

File: src/bedrockci/config/loader.py

Purpose
- Resolve the effective runtime config for one CLI invocation.

Layers, lowest to highest
- built-in defaults
- ``bedrockci.toml`` (explicit ``--config`` path, else the working directory)
- the selected profile overlay
- ``BEDROCK_SERVER_PATH`` (legacy, server root only)
- ``BEDROCKCI_<SECTION>_<KEY>`` environment variables
- CLI overrides keyed by dotted path (``validation.idle_timeout_seconds``)

Relative paths in the file resolve against the file's directory; relative paths from
defaults, environment variables and CLI overrides resolve against the working directory.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final

from bedrockci.config.schema import (
    PATH_FIELDS,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    merge_config,
)
from bedrockci.constants import SERVER_ROOT_ENV

DEFAULT_CONFIG_FILE: Final[str] = "bedrockci.toml"
ENV_PREFIX: Final[str] = "BEDROCKCI_"
PROFILE_ENV: Final[str] = f"{ENV_PREFIX}PROFILE"

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSY: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})

# Sections whose scalars are never bound to environment variables.
_UNBOUND_SECTIONS: Final[frozenset[str]] = frozenset({"meta", "profiles"})


class ConfigLoadError(ValueError):
    """Raised when config cannot be loaded or overrides cannot be coerced."""


def _parse_bool(text: str) -> bool:
    lowered = text.lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ValueError(text)


# Keyed by the type of the default value; bool must be checked before int.
_COERCERS: Final[tuple[tuple[type, Callable[[str], object], str], ...]] = (
    (bool, _parse_bool, "a boolean (true/false/1/0/yes/no/on/off)"),
    (int, int, "an integer"),
    (float, float, "a number"),
    (str, str, "a string"),
)


@dataclass(slots=True)
class _Layers:
    file_path: Path
    file_payload: dict[str, Any]
    environ: dict[str, str]
    cli: dict[str, object] = field(default_factory=dict)
    profile: str | None = None


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Load effective config with precedence CLI > env > profile > file > defaults."""

    layers = _gather(config_path, profile=profile, cli_overrides=cli_overrides, environ=environ)

    # File paths resolve against the file; defaults, env and CLI paths against the cwd.
    file_layer = normalize_paths(layers.file_payload, base_dir=layers.file_path.parent)
    config = assert_valid_config(merge_config(default_config(), file_layer))
    if layers.profile is not None:
        config = apply_profile_overlay(config, layers.profile)

    config = merge_config(config, _env_layer(layers.environ))
    config = merge_config(config, _cli_layer(layers.cli))
    config = assert_valid_config(config, active_profile=layers.profile)

    return assert_valid_config(
        normalize_paths(config, base_dir=Path.cwd()),
        active_profile=layers.profile,
    )


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Return a copy of ``config`` with path fields made absolute against ``base_dir``.

    Profile overlays are normalized too, so a profile that moves ``server.root``
    resolves the same way as the top-level value.
    """

    out = merge_config({}, config)
    prefixes: list[tuple[str, ...]] = [()]
    profiles = out.get("profiles")
    if isinstance(profiles, Mapping):
        prefixes.extend(("profiles", name) for name in sorted(profiles))

    for prefix in prefixes:
        for field_path in PATH_FIELDS:
            full_path = (*prefix, *field_path)
            raw = _lookup(out, full_path)
            if isinstance(raw, str):
                _assign(out, full_path, _absolute_posix(raw, base_dir))
    return out


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Render the effective config as stable, indented JSON."""

    return json.dumps(dict(config), sort_keys=True, indent=2, ensure_ascii=False)


def env_var_name(path: tuple[str, ...]) -> str:
    """Map a config path such as ``("server", "root")`` to ``BEDROCKCI_SERVER_ROOT``."""

    return ENV_PREFIX + "_".join(part.upper() for part in path)


def _gather(
    config_path: str | Path | None,
    *,
    profile: str | None,
    cli_overrides: Mapping[str, object] | None,
    environ: Mapping[str, str] | None,
) -> _Layers:
    if config_path is None:
        file_path = (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    else:
        file_path = Path(config_path).expanduser().resolve()

    layers = _Layers(
        file_path=file_path,
        file_payload=_read_toml(file_path, required=config_path is not None),
        environ=dict(os.environ if environ is None else environ),
        cli=dict(cli_overrides or {}),
    )
    layers.profile = _pick_profile(profile, layers)
    return layers


def _read_toml(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _pick_profile(explicit: str | None, layers: _Layers) -> str | None:
    candidate: object = explicit
    if candidate is None:
        candidate = layers.cli.get("profile")
        if candidate is not None and not isinstance(candidate, str):
            raise ConfigLoadError("cli override 'profile' must be a string")
    if candidate is None:
        candidate = layers.environ.get(PROFILE_ENV)
    if candidate is None:
        return None
    return str(candidate).strip() or None


def _env_layer(environ: Mapping[str, str]) -> dict[str, Any]:
    layer: dict[str, Any] = {}

    legacy_root = environ.get(SERVER_ROOT_ENV, "").strip()
    if legacy_root:
        _assign(layer, ("server", "root"), legacy_root)

    # Coerced against the schema defaults, not whatever the file happened to set.
    for path, default in _scalar_leaves(default_config()):
        if path[0] in _UNBOUND_SECTIONS:
            continue
        name = env_var_name(path)
        if name in environ:
            _assign(layer, path, _coerce(environ[name], default, name, path))
    return layer


def _coerce(raw: str, default: object, name: str, path: tuple[str, ...]) -> object:
    text = raw.strip()
    for kind, parse, description in _COERCERS:
        if isinstance(default, kind):
            try:
                return parse(text)
            except ValueError as exc:
                raise ConfigLoadError(
                    f"{name} -> {'.'.join(path)} must be {description}"
                ) from exc
    return text


def _cli_layer(cli: Mapping[str, object]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for key in sorted(cli):
        value = cli[key]
        if key == "profile" or value is None:
            continue
        path = tuple(part for part in key.split(".") if part)
        if not path:
            raise ConfigLoadError(f"invalid CLI override key {key!r}")
        _assign(layer, path, value)
    return layer


def _scalar_leaves(
    payload: Mapping[str, object], prefix: tuple[str, ...] = ()
) -> Iterator[tuple[tuple[str, ...], object]]:
    for key in sorted(payload):
        value = payload[key]
        if isinstance(value, Mapping):
            yield from _scalar_leaves(value, (*prefix, key))
        else:
            yield (*prefix, key), value


def _lookup(payload: Mapping[str, object], path: tuple[str, ...]) -> object | None:
    node: object = payload
    for part in path:
        if not isinstance(node, Mapping):
            return None
        node = node.get(part)
    return node


def _assign(target: dict[str, Any], path: tuple[str, ...], value: object) -> None:
    *parents, leaf = path
    for part in parents:
        child = target.get(part)
        if not isinstance(child, dict):
            child = target[part] = {}
        target = child
    target[leaf] = value


def _absolute_posix(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(candidate)).as_posix()


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "PROFILE_ENV",
    "dump_effective_config",
    "env_var_name",
    "load_config",
    "normalize_paths",
]
