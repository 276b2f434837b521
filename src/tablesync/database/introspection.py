"""
Live table introspection.

Fetches table and TTL descriptions and turns them into read-only
snapshots the diff engine can compare with the desired state.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..exceptions import FetchError, RemoteServiceError
from .connection import RESOURCE_NOT_FOUND, DynamoDBConnection

logger = logging.getLogger(__name__)


def _throughput(description: Optional[Dict[str, Any]]) -> Dict[str, int]:
    description = description or {}
    return {
        "ReadCapacityUnits": description.get("ReadCapacityUnits", 0),
        "WriteCapacityUnits": description.get("WriteCapacityUnits", 0),
    }


def _index(description: Dict[str, Any], with_throughput: bool) -> Dict[str, Any]:
    index = {
        "IndexName": description.get("IndexName"),
        "KeySchema": copy.deepcopy(description.get("KeySchema", [])),
        "Projection": copy.deepcopy(description.get("Projection", {})),
        "ItemCount": description.get("ItemCount", 0),
    }
    if with_throughput:
        index["ProvisionedThroughput"] = _throughput(
            description.get("ProvisionedThroughput")
        )
        index["IndexStatus"] = description.get("IndexStatus")
    return index


@dataclass
class LiveTable:
    """Snapshot of a table as the service describes it."""

    name: str
    status: Optional[str]
    attribute_definitions: List[Dict[str, str]]
    key_schema: List[Dict[str, str]]
    provisioned_throughput: Dict[str, int]
    global_secondary_indexes: List[Dict[str, Any]] = field(default_factory=list)
    local_secondary_indexes: List[Dict[str, Any]] = field(default_factory=list)
    item_count: int = 0

    @classmethod
    def from_description(cls, description: Dict[str, Any]) -> "LiveTable":
        """Build a snapshot from a ``DescribeTable`` ``Table`` element."""
        return cls(
            name=description["TableName"],
            status=description.get("TableStatus"),
            attribute_definitions=copy.deepcopy(
                description.get("AttributeDefinitions", [])
            ),
            key_schema=copy.deepcopy(description.get("KeySchema", [])),
            provisioned_throughput=_throughput(
                description.get("ProvisionedThroughput")
            ),
            global_secondary_indexes=[
                _index(index, with_throughput=True)
                for index in description.get("GlobalSecondaryIndexes", [])
            ],
            local_secondary_indexes=[
                _index(index, with_throughput=False)
                for index in description.get("LocalSecondaryIndexes", [])
            ],
            item_count=description.get("ItemCount", 0),
        )

    @property
    def index_names(self) -> List[str]:
        return [index["IndexName"] for index in self.global_secondary_indexes]


@dataclass
class LiveTTL:
    """Time-to-live state of a table."""

    attribute_name: Optional[str]
    status: Optional[str]

    @classmethod
    def from_description(cls, description: Dict[str, Any]) -> "LiveTTL":
        return cls(
            attribute_name=description.get("AttributeName") or None,
            status=description.get("TimeToLiveStatus"),
        )

    @property
    def is_configured(self) -> bool:
        return self.attribute_name is not None

    @property
    def enabled(self) -> bool:
        return self.status in ("ENABLED", "ENABLING")


class TableIntrospector:
    """Reads live table definitions through a DynamoDB connection."""

    def __init__(self, connection: DynamoDBConnection):
        self.connection = connection

    async def get_table(self, table_name: str) -> Optional[LiveTable]:
        """Describe a table. Returns None if the table does not exist."""
        try:
            description = await self.connection.describe_table(table_name)
        except RemoteServiceError as e:
            if e.code == RESOURCE_NOT_FOUND:
                logger.debug(f"Table {table_name} does not exist")
                return None
            raise FetchError(
                f"Failed to describe table {table_name}",
                operation="DescribeTable",
                table_name=table_name,
                code=e.code,
                cause=e.cause or e,
            ) from e

        return LiveTable.from_description(description)

    async def get_ttl(self, table_name: str) -> Optional[LiveTTL]:
        """Describe a table's TTL. Returns None if nothing is reported."""
        try:
            description = await self.connection.describe_time_to_live(table_name)
        except RemoteServiceError as e:
            raise FetchError(
                f"Failed to describe time to live of {table_name}",
                operation="DescribeTimeToLive",
                table_name=table_name,
                code=e.code,
                cause=e.cause or e,
            ) from e

        if not description:
            return None
        return LiveTTL.from_description(description)
