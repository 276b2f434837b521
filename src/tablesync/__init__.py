"""
tablesync: declarative schema reconciliation for DynamoDB tables.

tablesync compares table definitions declared in a YAML file with the live
tables in DynamoDB, reports the differences, and applies the ones the
service can perform in place.
"""

__version__ = "0.1.0"
__author__ = "tablesync Contributors"

from .config import IndexSpec, TableSpec, TableSyncConfig, TTLSpec
from .exceptions import (
    BackwardCompatibleError,
    BackwardIncompatibleError,
    ConfigurationError,
    TableSyncError,
)

__all__ = [
    "__version__",
    "TableSyncConfig",
    "TableSpec",
    "IndexSpec",
    "TTLSpec",
    "TableSyncError",
    "ConfigurationError",
    "BackwardCompatibleError",
    "BackwardIncompatibleError",
]
