"""
railtube - manifest parsing and validation.

File: src/railtube/manifest/schema.py

Purpose
- Turn raw manifest TOML text into a typed, read-only ``Manifest``.

What should be included in this file
- Structured issues (dotted location + message) for every malformed field.
- The unknown-key policy (``reject`` or ``ignore``) applied uniformly.

Functional requirements
- Missing sections default to empty; list order is preserved.
- Accepts in-memory text only; fetching a manifest is the caller's job.
"""

from __future__ import annotations

import logging
import tomllib
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Final, Literal

import httpx

from railtube.constants import PACKAGE_SECTIONS, SECTIONS, SYSTEM_SECTION, VERSIONED_SECTIONS
from railtube.domain.models import Manifest, PackageSpec

UnknownKeyPolicy = Literal["reject", "ignore"]
UNKNOWN_KEY_POLICIES: Final[tuple[str, ...]] = ("reject", "ignore")

_URL_SCHEMES: Final[tuple[str, ...]] = ("http://", "https://")
_SECTION_KEYS: Final[dict[str, frozenset[str]]] = {
    SYSTEM_SECTION: frozenset({"update"}),
    **{section: frozenset({"list"}) for section in PACKAGE_SECTIONS},
    "deb": frozenset({"urls"}),
}

logger = logging.getLogger(__name__)


class ParseErrorKind(StrEnum):
    SYNTAX = "syntax"
    STRUCTURAL = "structural"


@dataclass(frozen=True, slots=True)
class ManifestIssue:
    """Single structured manifest problem."""

    path: str
    message: str


class ManifestParseError(ValueError):
    """Raised when manifest text is not valid TOML or has wrongly typed fields."""

    def __init__(self, issues: Sequence[ManifestIssue], *, kind: ParseErrorKind) -> None:
        self.issues = tuple(issues)
        self.kind = kind
        if not self.issues:
            rendered = "unknown parse failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid manifest ({kind.value}):\n{rendered}")

    @property
    def location(self) -> str:
        return self.issues[0].path if self.issues else "<root>"


class ManifestValidationError(ValueError):
    """Raised for well-formed input naming unknown sections, keys or scripts."""

    def __init__(self, issues: Sequence[ManifestIssue]) -> None:
        self.issues = tuple(issues)
        rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"manifest validation failed:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ManifestIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ManifestIssue(path=path, message=message))

    def items(self) -> tuple[ManifestIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def parse_manifest(raw_text: str, *, unknown_keys: UnknownKeyPolicy = "reject") -> Manifest:
    """Parse manifest TOML text.

    Raises ``ManifestParseError`` for syntax or type problems and
    ``ManifestValidationError`` for unknown keys under the ``reject`` policy.
    """

    if unknown_keys not in UNKNOWN_KEY_POLICIES:
        raise ValueError(f"unknown_keys must be one of {UNKNOWN_KEY_POLICIES}, got {unknown_keys!r}")

    try:
        payload = tomllib.loads(raw_text)
    except tomllib.TOMLDecodeError as exc:
        raise ManifestParseError(
            (ManifestIssue("<root>", str(exc)),), kind=ParseErrorKind.SYNTAX
        ) from exc

    structural = _IssueCollector()
    unknown = _IssueCollector()

    declared: set[str] = set()
    system_update = False
    packages: dict[str, tuple[PackageSpec, ...]] = {section: () for section in PACKAGE_SECTIONS}
    deb_urls: tuple[str, ...] = ()
    scripts: dict[str, str] = {}

    for key in payload:
        if key not in SECTIONS:
            unknown.add(key, "unknown section")
            continue
        declared.add(key)
        section = _as_table(payload[key], key, structural)
        if section is None:
            continue
        if key == "scripts":
            scripts = _parse_scripts(section, structural)
            continue

        _check_section_keys(key, section, unknown)
        if key == SYSTEM_SECTION:
            system_update = _parse_system(section, structural)
        elif key == "deb":
            deb_urls = _parse_deb(section, structural)
        else:
            packages[key] = _parse_package_list(key, section, structural)

    if structural.has_issues:
        raise ManifestParseError(structural.items(), kind=ParseErrorKind.STRUCTURAL)
    if unknown.has_issues:
        if unknown_keys == "reject":
            raise ManifestValidationError(unknown.items())
        for issue in unknown.items():
            logger.warning("ignoring manifest key %s: %s", issue.path, issue.message)

    return Manifest(
        system_update=system_update,
        apt=packages["apt"],
        snap=packages["snap"],
        flatpak=packages["flatpak"],
        cargo=packages["cargo"],
        deb=deb_urls,
        scripts=scripts,
        declared=frozenset(declared),
    )


def _check_section_keys(
    section_name: str,
    section: Mapping[str, object],
    issues: _IssueCollector,
) -> None:
    allowed = _SECTION_KEYS[section_name]
    for key in section:
        if key not in allowed:
            issues.add(f"{section_name}.{key}", "unknown field")


def _parse_system(section: Mapping[str, object], issues: _IssueCollector) -> bool:
    if "update" not in section:
        return False
    value = section["update"]
    if not isinstance(value, bool):
        issues.add("system.update", f"expected boolean, got {type(value).__name__}")
        return False
    return value


def _parse_package_list(
    section_name: str,
    section: Mapping[str, object],
    issues: _IssueCollector,
) -> tuple[PackageSpec, ...]:
    path = f"{section_name}.list"
    entries = _as_string_list(section.get("list", []), path, issues)
    allow_version = section_name in VERSIONED_SECTIONS

    specs: list[PackageSpec] = []
    seen: set[str] = set()
    for index, entry in entries:
        item_path = f"{path}[{index}]"
        try:
            spec = PackageSpec.parse(entry, allow_version=allow_version)
        except ValueError as exc:
            issues.add(item_path, str(exc))
            continue
        if spec.name in seen:
            issues.add(item_path, f"duplicate package {spec.name!r}")
            continue
        seen.add(spec.name)
        specs.append(spec)
    return tuple(specs)


def _parse_deb(section: Mapping[str, object], issues: _IssueCollector) -> tuple[str, ...]:
    entries = _as_string_list(section.get("urls", []), "deb.urls", issues)
    urls: list[str] = []
    for index, url in entries:
        item_path = f"deb.urls[{index}]"
        if not url.startswith(_URL_SCHEMES):
            issues.add(item_path, "must be an http:// or https:// URL")
            continue
        try:
            httpx.URL(url)
        except httpx.InvalidURL as exc:
            issues.add(item_path, f"invalid URL: {exc}")
            continue
        if url in urls:
            issues.add(item_path, f"duplicate url {url!r}")
            continue
        urls.append(url)
    return tuple(urls)


def _parse_scripts(section: Mapping[str, object], issues: _IssueCollector) -> dict[str, str]:
    scripts: dict[str, str] = {}
    for name, command in section.items():
        path = f"scripts.{name}"
        if not name.strip():
            issues.add(path, "script name must not be empty")
            continue
        if not isinstance(command, str):
            issues.add(path, f"expected string, got {type(command).__name__}")
            continue
        if not command.strip():
            issues.add(path, "must not be empty")
            continue
        scripts[name] = command
    return scripts


def _as_table(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected table, got {type(value).__name__}")
        return None
    return {str(key): item for key, item in value.items()}


def _as_string_list(
    value: object,
    path: str,
    issues: _IssueCollector,
) -> list[tuple[int, str]]:
    if not isinstance(value, list):
        issues.add(path, f"expected array of strings, got {type(value).__name__}")
        return []
    out: list[tuple[int, str]] = []
    for index, item in enumerate(value):
        item_path = f"{path}[{index}]"
        if not isinstance(item, str):
            issues.add(item_path, f"expected string, got {type(item).__name__}")
            continue
        if not item.strip():
            issues.add(item_path, "must not be empty")
            continue
        out.append((index, item.strip()))
    return out


__all__ = [
    "UNKNOWN_KEY_POLICIES",
    "ManifestIssue",
    "ManifestParseError",
    "ManifestValidationError",
    "ParseErrorKind",
    "UnknownKeyPolicy",
    "parse_manifest",
]
