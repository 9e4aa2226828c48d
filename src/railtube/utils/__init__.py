"""Shared utility helpers."""

from __future__ import annotations

from railtube.utils.concurrency import CancellationToken, cancel_on_sigint
from railtube.utils.fs import atomic_write_text, temp_directory

__all__ = ["CancellationToken", "atomic_write_text", "cancel_on_sigint", "temp_directory"]
