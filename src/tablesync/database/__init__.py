"""
DynamoDB integration package for tablesync.

This package provides:
- A shared async wrapper around the boto3 DynamoDB client
- Live table and TTL introspection
"""

from .connection import DynamoDBConnection
from .introspection import LiveTable, LiveTTL, TableIntrospector

__all__ = [
    "DynamoDBConnection",
    "LiveTable",
    "LiveTTL",
    "TableIntrospector",
]
