"""
Desired-state builder.

Turns a TableSpec into the request shapes the DynamoDB API accepts. Every
function here is pure: the same TableSpec and environment always produce the
same output.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..config import IndexSpec, LocalIndexSpec, TableSpec

# Attribute seeded into every index projection ahead of the declared fields.
IMPLICIT_PROJECTED_ATTRIBUTE = "id"


def qualified_table_name(environment: str, title: str, table_name: str) -> str:
    """Return the addressable name of a table.

    ``<title>-<environment>-<table_name>`` when both title and environment
    are set, otherwise the bare table name.
    """
    if environment and title:
        return f"{title}-{environment}-{table_name}"
    return table_name


def build_key_schema(hash_key: str, range_key: Optional[str] = None) -> List[Dict[str, str]]:
    key_schema = [{"AttributeName": hash_key, "KeyType": "HASH"}]
    if range_key:
        key_schema.append({"AttributeName": range_key, "KeyType": "RANGE"})
    return key_schema


def build_projection(projection_fields: List[str]) -> Dict[str, Any]:
    non_key_attributes: List[str] = []
    for name in [IMPLICIT_PROJECTED_ATTRIBUTE, *projection_fields]:
        if name not in non_key_attributes:
            non_key_attributes.append(name)
    return {"ProjectionType": "INCLUDE", "NonKeyAttributes": non_key_attributes}


def build_provisioned_throughput(read: int, write: int) -> Dict[str, int]:
    return {"ReadCapacityUnits": read, "WriteCapacityUnits": write}


def build_global_secondary_index(index: IndexSpec) -> Dict[str, Any]:
    """Build the full definition of one global secondary index."""
    return {
        "IndexName": index.index_name,
        "KeySchema": build_key_schema(index.primary_key, index.sort_key),
        "Projection": build_projection(index.projection_fields),
        "ProvisionedThroughput": build_provisioned_throughput(
            index.read_throughput, index.write_throughput
        ),
    }


def build_local_secondary_index(table: TableSpec, index: LocalIndexSpec) -> Dict[str, Any]:
    """Build the definition of one local secondary index."""
    return {
        "IndexName": index.index_name,
        "KeySchema": build_key_schema(table.primary_key, index.sort_key),
        "Projection": build_projection(index.projection_fields),
    }


def build_attribute_definitions(table: TableSpec) -> List[Dict[str, str]]:
    """Collect every key attribute of the table and its indexes.

    The table keys come first, then index keys in declaration order. An
    attribute is defined once; the first declaration wins.
    """
    candidates = [(table.primary_key, table.primary_key_type)]
    if table.sort_key:
        candidates.append((table.sort_key, table.sort_key_type))
    for index in table.indexes:
        candidates.append((index.primary_key, index.primary_key_type))
        if index.sort_key:
            candidates.append((index.sort_key, index.sort_key_type))
    for local_index in table.local_indexes:
        candidates.append((local_index.sort_key, local_index.sort_key_type))

    definitions: List[Dict[str, str]] = []
    seen = set()
    for name, attribute_type in candidates:
        if name in seen:
            continue
        seen.add(name)
        definitions.append({"AttributeName": name, "AttributeType": attribute_type})
    return definitions


def index_key_attributes(index: Dict[str, Any]) -> List[str]:
    """Names of the key attributes of an index definition."""
    return [key["AttributeName"] for key in index.get("KeySchema", [])]


@dataclass
class DesiredTable:
    """The complete desired definition of a table.

    Field for field comparable with ``LiveTable``.
    """

    table_name: str
    attribute_definitions: List[Dict[str, str]]
    key_schema: List[Dict[str, str]]
    provisioned_throughput: Dict[str, int]
    global_secondary_indexes: List[Dict[str, Any]] = field(default_factory=list)
    local_secondary_indexes: List[Dict[str, Any]] = field(default_factory=list)

    def get_index(self, name: str) -> Optional[Dict[str, Any]]:
        for index in self.global_secondary_indexes:
            if index["IndexName"] == name:
                return index
        return None

    def to_create_request(self) -> Dict[str, Any]:
        """Render as keyword arguments for ``CreateTable``."""
        request: Dict[str, Any] = {
            "TableName": self.table_name,
            "AttributeDefinitions": copy.deepcopy(self.attribute_definitions),
            "KeySchema": copy.deepcopy(self.key_schema),
            "ProvisionedThroughput": dict(self.provisioned_throughput),
        }
        if self.global_secondary_indexes:
            request["GlobalSecondaryIndexes"] = copy.deepcopy(
                self.global_secondary_indexes
            )
        if self.local_secondary_indexes:
            request["LocalSecondaryIndexes"] = copy.deepcopy(
                self.local_secondary_indexes
            )
        return request


def build_desired_table(table: TableSpec, environment: str = "") -> DesiredTable:
    return DesiredTable(
        table_name=qualified_table_name(environment, table.title, table.table_name),
        attribute_definitions=build_attribute_definitions(table),
        key_schema=build_key_schema(table.primary_key, table.sort_key),
        provisioned_throughput=build_provisioned_throughput(
            table.read_throughput, table.write_throughput
        ),
        global_secondary_indexes=[
            build_global_secondary_index(index) for index in table.indexes
        ],
        local_secondary_indexes=[
            build_local_secondary_index(table, index) for index in table.local_indexes
        ],
    )


def build_create_table_request(table: TableSpec, environment: str = "") -> Dict[str, Any]:
    """Build the ``CreateTable`` request for a table."""
    return build_desired_table(table, environment).to_create_request()


def build_update_table_request(table: TableSpec, environment: str = "") -> Dict[str, Any]:
    """Build the base ``UpdateTable`` request.

    Carries the table name and every desired attribute definition, so that
    an index creation appended to it always has its key attributes defined.
    """
    return {
        "TableName": qualified_table_name(environment, table.title, table.table_name),
        "AttributeDefinitions": build_attribute_definitions(table),
    }


def build_update_ttl_request(
    table: TableSpec, environment: str = ""
) -> Optional[Dict[str, Any]]:
    """Build the ``UpdateTimeToLive`` request, or None without a TTL declaration."""
    if table.ttl is None:
        return None
    return {
        "TableName": qualified_table_name(environment, table.title, table.table_name),
        "TimeToLiveSpecification": {
            "AttributeName": table.ttl.attribute_name,
            "Enabled": table.ttl.enabled,
        },
    }
