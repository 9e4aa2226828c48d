"""Render a ``Manifest`` back into manifest TOML text."""

from __future__ import annotations

import json
from collections.abc import Mapping

from railtube.constants import PACKAGE_SECTIONS, SYSTEM_SECTION
from railtube.domain.models import Manifest


def serialize_manifest(manifest: Manifest, *, header: str | None = None) -> str:
    """Serialize ``manifest`` to TOML.

    A section is written when it was declared or holds entries, so parsing the
    output yields an equivalent manifest.
    """

    blocks: list[list[str]] = []

    if _emits(manifest, SYSTEM_SECTION, bool(manifest.system_update)):
        blocks.append(["[system]", f"update = {_toml_value(manifest.system_update)}"])

    for section in PACKAGE_SECTIONS:
        specs = manifest.packages(section)
        if not _emits(manifest, section, bool(specs)):
            continue
        rendered = [spec.render() for spec in specs]
        blocks.append([f"[{section}]", f"list = {_toml_value(rendered)}"])

    if _emits(manifest, "deb", bool(manifest.deb)):
        blocks.append(["[deb]", f"urls = {_toml_value(list(manifest.deb))}"])

    if _emits(manifest, "scripts", bool(manifest.scripts)):
        lines = ["[scripts]"]
        for name, command in manifest.scripts.items():
            lines.append(f"{_toml_key(name)} = {_toml_value(command)}")
        blocks.append(lines)

    parts: list[str] = []
    if header:
        parts.append(header.rstrip("\n"))
    parts.extend("\n".join(block) for block in blocks)
    if not parts:
        return ""
    return "\n\n".join(parts) + "\n"


def _emits(manifest: Manifest, section: str, has_content: bool) -> bool:
    return has_content or manifest.is_declared(section)


def _toml_key(value: str) -> str:
    return _toml_string(value)


def _toml_string(value: str) -> str:
    # TOML basic strings forbid DEL, which json leaves raw.
    return json.dumps(value, ensure_ascii=False).replace("\x7f", "\\u007F")


def _toml_value(value: object) -> str:
    if isinstance(value, str):
        return _toml_string(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, list):
        return "[" + ", ".join(_toml_value(item) for item in value) + "]"
    if isinstance(value, Mapping):
        items = [f"{_toml_key(key)} = {_toml_value(item)}" for key, item in value.items()]
        return "{ " + ", ".join(items) + " }"
    raise ValueError(f"Unsupported TOML value type: {type(value).__name__}")


__all__ = ["serialize_manifest"]
