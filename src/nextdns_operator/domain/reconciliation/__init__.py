"""Reconciliation core: resolve, diff, sync and the per-resource state machines."""

from __future__ import annotations

from .deadline import Deadline, calculate_sync_interval
from .dependents import DependentIndex, build_reverse_index, profile_dependencies
from .diff import Add, Operation, Patch, Remove, Replace, SyncMode, diff, diff_flags
from .errors import FailureKind, ReconcileResult, classify
from .executor import Collection, SyncExecutor, SyncReport
from .lists import ListReconciler
from .profile import FINALIZER, ProfileReconciler
from .resolve import (
    MergedDocument,
    MergedEntry,
    ReferenceNotFoundError,
    ReferenceResolver,
    Resolution,
    merge_entries,
    resolve_profile,
)
from .validation import SpecValidationError

__all__ = [
    "FINALIZER",
    "Add",
    "Collection",
    "Deadline",
    "DependentIndex",
    "FailureKind",
    "ListReconciler",
    "MergedDocument",
    "MergedEntry",
    "Operation",
    "Patch",
    "ProfileReconciler",
    "ReconcileResult",
    "ReferenceNotFoundError",
    "ReferenceResolver",
    "Remove",
    "Replace",
    "Resolution",
    "SpecValidationError",
    "SyncExecutor",
    "SyncMode",
    "SyncReport",
    "build_reverse_index",
    "calculate_sync_interval",
    "classify",
    "diff",
    "diff_flags",
    "merge_entries",
    "profile_dependencies",
    "resolve_profile",
]
