"""
railtube - reconciliation engine.

File: src/railtube/engine/__init__.py

Purpose
- Public entry points for apply, doctor, export and script runs.
"""

from __future__ import annotations

from railtube.engine.export import export_environment
from railtube.engine.reconcile import (
    APPLY_SECTIONS,
    CANCELLED_REASON,
    DECLINED_REASON,
    FILTERED_REASON,
    Reconciler,
)
from railtube.engine.sandbox import Confirmer, ExecutionSandbox, select_sections

__all__ = [
    "APPLY_SECTIONS",
    "CANCELLED_REASON",
    "DECLINED_REASON",
    "FILTERED_REASON",
    "Confirmer",
    "ExecutionSandbox",
    "Reconciler",
    "export_environment",
    "select_sections",
]
