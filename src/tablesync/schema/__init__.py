"""
Schema reconciliation package for tablesync.

This package provides:
- Desired table definitions built from configuration
- Structured diffs between live and desired definitions
- Table actions applied with retries while a table is busy
- Validate and migrate orchestration across tables
"""

from .differ import Aspect, Diff, Mismatch
from .operations import ActionType, SchemaOperations, TableAction
from .reconciler import (
    Compatibility,
    MigrationResult,
    MigrationStatus,
    SchemaReconciler,
    ValidationReport,
    ValidationResult,
    ValidationStatus,
)

__all__ = [
    "Aspect",
    "Diff",
    "Mismatch",
    "ActionType",
    "SchemaOperations",
    "TableAction",
    "Compatibility",
    "MigrationResult",
    "MigrationStatus",
    "SchemaReconciler",
    "ValidationReport",
    "ValidationResult",
    "ValidationStatus",
]
