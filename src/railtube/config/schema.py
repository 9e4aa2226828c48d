"""
railtube - configuration schema and validation.

File: src/railtube/config/schema.py

Purpose
- Define configuration defaults and strict validation rules.

What should be included in this file
- Validation rules for required fields, types, enums and numeric constraints.
- Deterministic deep-merge helper used by the loader's precedence chain.
- A typed, frozen view of the validated config for the CLI and engine.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Unknown sections and fields are rejected.
"""

from __future__ import annotations

import copy
import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, Literal, TypedDict

from railtube.constants import DEFAULT_EXPORT_PATH, DEFAULT_HTTP_TIMEOUT_SECONDS, DEFAULT_LOG_DIR
from railtube.manifest.schema import UNKNOWN_KEY_POLICIES, UnknownKeyPolicy

LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

# Config paths normalized relative to the config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("export", "output"),
    ("observability", "log_dir"),
)


class ManifestConfig(TypedDict):
    unknown_keys: UnknownKeyPolicy


class ExportConfig(TypedDict):
    output: str
    pin_versions: bool


class HttpConfig(TypedDict):
    timeout_seconds: float


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_dir: str
    log_to_stderr: bool


class RailtubeConfig(TypedDict):
    manifest: ManifestConfig
    export: ExportConfig
    http: HttpConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[RailtubeConfig] = {
    "manifest": {
        "unknown_keys": "reject",
    },
    "export": {
        "output": DEFAULT_EXPORT_PATH,
        "pin_versions": False,
    },
    "http": {
        "timeout_seconds": DEFAULT_HTTP_TIMEOUT_SECONDS,
    },
    "observability": {
        "log_level": "INFO",
        "log_dir": str(DEFAULT_LOG_DIR),
        "log_to_stderr": False,
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


@dataclass(frozen=True, slots=True)
class RuntimeSettings:
    """Typed view over a validated config mapping."""

    unknown_keys: UnknownKeyPolicy
    export_output: Path
    pin_versions: bool
    http_timeout_seconds: float
    log_level: str
    log_dir: Path
    log_to_stderr: bool

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> RuntimeSettings:
        validated = assert_valid_config(config)
        return cls(
            unknown_keys=validated["manifest"]["unknown_keys"],
            export_output=Path(validated["export"]["output"]).expanduser(),
            pin_versions=validated["export"]["pin_versions"],
            http_timeout_seconds=validated["http"]["timeout_seconds"],
            log_level=validated["observability"]["log_level"],
            log_dir=Path(validated["observability"]["log_dir"]).expanduser(),
            log_to_stderr=validated["observability"]["log_to_stderr"],
        )


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


def default_config() -> RailtubeConfig:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def validate_config(
    config: Mapping[str, object] | object,
) -> tuple[dict[str, Any] | None, tuple[ConfigValidationIssue, ...]]:
    """Validate a complete config; returns ``(normalized, issues)``."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return None, issues.items()

    sections: dict[str, Callable[[dict[str, object], str, _IssueCollector], dict[str, Any]]] = {
        "manifest": _validate_manifest,
        "export": _validate_export,
        "http": _validate_http,
        "observability": _validate_observability,
    }
    _reject_unknown_keys(root, set(sections), "", issues)
    _require_keys(root, set(sections), "", issues)

    out: dict[str, Any] = {}
    for key, validator in sections.items():
        raw = root.get(key)
        if raw is None:
            continue
        section = _as_object(raw, key, issues)
        if section is None:
            continue
        out[key] = validator(section, key, issues)

    if issues.has_issues:
        return None, issues.items()
    return out, ()


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    normalized, issues = validate_config(config)
    if normalized is None:
        raise ConfigValidationError(issues)
    return normalized


def _validate_manifest(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"unknown_keys"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "unknown_keys" in payload:
        parsed = _as_enum(
            payload["unknown_keys"],
            _join(path, "unknown_keys"),
            issues,
            allowed_values=UNKNOWN_KEY_POLICIES,
        )
        if parsed is not None:
            out["unknown_keys"] = parsed
    return out


def _validate_export(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"output", "pin_versions"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "output" in payload:
        parsed_output = _as_path_text(payload["output"], _join(path, "output"), issues)
        if parsed_output is not None:
            out["output"] = parsed_output
    if "pin_versions" in payload:
        parsed_pin = _as_bool(payload["pin_versions"], _join(path, "pin_versions"), issues)
        if parsed_pin is not None:
            out["pin_versions"] = parsed_pin
    return out


def _validate_http(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"timeout_seconds"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "timeout_seconds" in payload:
        parsed = _as_float(
            payload["timeout_seconds"],
            _join(path, "timeout_seconds"),
            issues,
            minimum=0.0,
        )
        if parsed is not None:
            if parsed == 0.0:
                issues.add(_join(path, "timeout_seconds"), "must be > 0")
            else:
                out["timeout_seconds"] = parsed
    return out


def _validate_observability(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"log_level", "log_dir", "log_to_stderr"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "log_level" in payload:
        level = payload["log_level"]
        if isinstance(level, str):
            level = level.strip().upper()
        parsed_level = _as_enum(
            level,
            _join(path, "log_level"),
            issues,
            allowed_values=LOG_LEVELS,
        )
        if parsed_level is not None:
            out["log_level"] = parsed_level
    if "log_dir" in payload:
        parsed_dir = _as_path_text(payload["log_dir"], _join(path, "log_dir"), issues)
        if parsed_dir is not None:
            out["log_dir"] = parsed_dir
    if "log_to_stderr" in payload:
        parsed_stderr = _as_bool(payload["log_to_stderr"], _join(path, "log_to_stderr"), issues)
        if parsed_stderr is not None:
            out["log_to_stderr"] = parsed_stderr
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


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_float(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: float | None = None,
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if minimum is not None and parsed < minimum:
        issues.add(path, f"must be >= {minimum}")
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
            nested = _deep_copy_mapping(existing) if isinstance(existing, Mapping) else {}
            _merge_into(nested, value)
            target[key] = nested
        else:
            target[key] = copy.deepcopy(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    return {key: copy.deepcopy(value[key]) for key in sorted(value) if isinstance(key, str)}


__all__ = [
    "DEFAULT_CONFIG",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "RailtubeConfig",
    "RuntimeSettings",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "validate_config",
]
