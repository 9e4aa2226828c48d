"""
railtube - manifest model.

File: src/railtube/manifest/__init__.py

Purpose
- Public surface for parsing, serializing and loading manifests.
"""

from __future__ import annotations

from railtube.manifest.schema import (
    UNKNOWN_KEY_POLICIES,
    ManifestIssue,
    ManifestParseError,
    ManifestValidationError,
    ParseErrorKind,
    UnknownKeyPolicy,
    parse_manifest,
)
from railtube.manifest.serialize import serialize_manifest
from railtube.manifest.source import SourceLoadError, is_remote_source, load_manifest_text

__all__ = [
    "UNKNOWN_KEY_POLICIES",
    "ManifestIssue",
    "ManifestParseError",
    "ManifestValidationError",
    "ParseErrorKind",
    "SourceLoadError",
    "UnknownKeyPolicy",
    "is_remote_source",
    "load_manifest_text",
    "parse_manifest",
    "serialize_manifest",
]
