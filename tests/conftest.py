"""
Pytest configuration and shared fixtures for tablesync tests.

This module provides table definitions, an in-memory DynamoDB client and
helpers for building service errors.
"""

import copy
from collections import defaultdict
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from tablesync.config import AWSConfig, IndexSpec, RetryConfig, TableSpec, TTLSpec
from tablesync.database.connection import (
    RESOURCE_IN_USE,
    RESOURCE_NOT_FOUND,
    DynamoDBConnection,
)
from tablesync.schema.desired import build_create_table_request


def client_error(code: str, operation: str = "DescribeTable", message: str = "") -> ClientError:
    """Build a botocore ClientError carrying a service error code."""
    return ClientError(
        {"Error": {"Code": code, "Message": message or code}},
        operation,
    )


class FakeDynamoDBClient:
    """In-memory stand-in for a boto3 DynamoDB client.

    Keeps table descriptions in the shape DescribeTable returns and applies
    CreateTable, UpdateTable and UpdateTimeToLive requests to them. Error
    codes queued with ``fail`` are raised by the next calls of an operation,
    and ``describe_errors`` makes DescribeTable fail for specific tables.
    """

    def __init__(self):
        self.tables: Dict[str, Dict[str, Any]] = {}
        self.ttl: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self.failures: Dict[str, List[str]] = defaultdict(list)
        self.describe_errors: Dict[str, str] = {}

    def fail(self, operation: str, *codes: str) -> None:
        self.failures[operation].extend(codes)

    def calls_to(self, operation: str) -> List[Dict[str, Any]]:
        return [kwargs for name, kwargs in self.calls if name == operation]

    def _record(self, operation: str, kwargs: Dict[str, Any]) -> None:
        self.calls.append((operation, copy.deepcopy(kwargs)))
        if self.failures[operation]:
            raise client_error(self.failures[operation].pop(0), operation)

    def describe_table(self, TableName: str) -> Dict[str, Any]:
        self._record("DescribeTable", {"TableName": TableName})
        if TableName in self.describe_errors:
            raise client_error(self.describe_errors[TableName], "DescribeTable")
        if TableName not in self.tables:
            raise client_error(RESOURCE_NOT_FOUND, "DescribeTable")
        return {"Table": copy.deepcopy(self.tables[TableName])}

    def describe_time_to_live(self, TableName: str) -> Dict[str, Any]:
        self._record("DescribeTimeToLive", {"TableName": TableName})
        if TableName not in self.tables:
            raise client_error(RESOURCE_NOT_FOUND, "DescribeTimeToLive")
        description = self.ttl.get(TableName, {"TimeToLiveStatus": "DISABLED"})
        return {"TimeToLiveDescription": copy.deepcopy(description)}

    def create_table(self, **request: Any) -> Dict[str, Any]:
        self._record("CreateTable", request)
        name = request["TableName"]
        if name in self.tables:
            raise client_error(RESOURCE_IN_USE, "CreateTable")
        self.tables[name] = table_description(request)
        return {"TableDescription": copy.deepcopy(self.tables[name])}

    def update_table(self, **request: Any) -> Dict[str, Any]:
        self._record("UpdateTable", request)
        name = request["TableName"]
        if name not in self.tables:
            raise client_error(RESOURCE_NOT_FOUND, "UpdateTable")
        table = self.tables[name]

        known = {a["AttributeName"] for a in table["AttributeDefinitions"]}
        for attribute in request.get("AttributeDefinitions", []):
            if attribute["AttributeName"] not in known:
                table["AttributeDefinitions"].append(dict(attribute))

        if "ProvisionedThroughput" in request:
            table["ProvisionedThroughput"].update(request["ProvisionedThroughput"])

        for update in request.get("GlobalSecondaryIndexUpdates", []):
            if "Create" in update:
                table.setdefault("GlobalSecondaryIndexes", []).append(
                    index_description(update["Create"])
                )
            if "Update" in update:
                for index in table.get("GlobalSecondaryIndexes", []):
                    if index["IndexName"] == update["Update"]["IndexName"]:
                        index["ProvisionedThroughput"].update(
                            update["Update"]["ProvisionedThroughput"]
                        )
        return {"TableDescription": copy.deepcopy(table)}

    def update_time_to_live(self, **request: Any) -> Dict[str, Any]:
        self._record("UpdateTimeToLive", request)
        specification = request["TimeToLiveSpecification"]
        if specification["Enabled"]:
            self.ttl[request["TableName"]] = {
                "TimeToLiveStatus": "ENABLED",
                "AttributeName": specification["AttributeName"],
            }
        else:
            self.ttl[request["TableName"]] = {"TimeToLiveStatus": "DISABLED"}
        return {"TimeToLiveSpecification": dict(specification)}

    def list_tables(self, Limit: Optional[int] = None) -> Dict[str, Any]:
        self._record("ListTables", {"Limit": Limit})
        return {"TableNames": sorted(self.tables)[:Limit]}


def index_description(index: Dict[str, Any]) -> Dict[str, Any]:
    """Describe an index the way the service reports it."""
    description = copy.deepcopy(index)
    description["IndexStatus"] = "ACTIVE"
    description["ItemCount"] = 0
    description["IndexSizeBytes"] = 0
    if "ProvisionedThroughput" in description:
        description["ProvisionedThroughput"]["NumberOfDecreasesToday"] = 0
    return description


def table_description(request: Dict[str, Any]) -> Dict[str, Any]:
    """Describe a table created from a CreateTable request."""
    description = {
        "TableName": request["TableName"],
        "TableStatus": "ACTIVE",
        "AttributeDefinitions": copy.deepcopy(request["AttributeDefinitions"]),
        "KeySchema": copy.deepcopy(request["KeySchema"]),
        "ProvisionedThroughput": dict(
            request["ProvisionedThroughput"], NumberOfDecreasesToday=0
        ),
        "ItemCount": 0,
        "TableSizeBytes": 0,
    }
    if request.get("GlobalSecondaryIndexes"):
        description["GlobalSecondaryIndexes"] = [
            index_description(index) for index in request["GlobalSecondaryIndexes"]
        ]
    if request.get("LocalSecondaryIndexes"):
        description["LocalSecondaryIndexes"] = [
            index_description(index) for index in request["LocalSecondaryIndexes"]
        ]
    return description


# ============================================================================
# Table Definition Fixtures
# ============================================================================

@pytest.fixture
def customer_index() -> IndexSpec:
    """Global secondary index on customer_id."""
    return IndexSpec(
        index_name="by_customer",
        primary_key="customer_id",
        primary_key_type="S",
        sort_key="created_at",
        sort_key_type="N",
        read_throughput=2,
        write_throughput=2,
        projection_fields=["status", "total"],
    )


@pytest.fixture
def orders_table(customer_index) -> TableSpec:
    """Orders table with one index and a TTL attribute."""
    return TableSpec(
        table_name="orders",
        primary_key="id",
        sort_key="created_at",
        sort_key_type="N",
        read_throughput=5,
        write_throughput=5,
        indexes=[customer_index],
        ttl=TTLSpec(attribute_name="expires_at"),
    )


@pytest.fixture
def users_table() -> TableSpec:
    """Plain users table without indexes or TTL."""
    return TableSpec(table_name="users", primary_key="id")


@pytest.fixture
def sample_config_data() -> Dict[str, Any]:
    """Configuration file contents in mapping form."""
    return {
        "environment": "staging",
        "aws": {"region": "eu-west-1", "endpoint_url": "http://localhost:8000"},
        "retry": {"max_attempts": 10, "interval_seconds": 0.5},
        "tables": [
            {
                "title": "shop",
                "table_name": "orders",
                "primary_key": "id",
                "sort_key": "created_at",
                "sort_key_type": "N",
                "read_throughput": 5,
                "write_throughput": 5,
                "indexes": [
                    {
                        "index_name": "by_customer",
                        "primary_key": "customer_id",
                        "primary_key_type": "S",
                        "read_throughput": 2,
                        "write_throughput": 2,
                        "projection_fields": ["status"],
                    }
                ],
                "ttl": {"attribute_name": "expires_at", "enabled": True},
            },
            {"title": "shop", "table_name": "users", "primary_key": "id"},
        ],
    }


# ============================================================================
# Service Fixtures
# ============================================================================

@pytest.fixture
def fake_client() -> FakeDynamoDBClient:
    """In-memory DynamoDB client."""
    return FakeDynamoDBClient()


@pytest.fixture
def connection(fake_client) -> DynamoDBConnection:
    """Connection backed by the in-memory client."""
    return DynamoDBConnection(AWSConfig(region="us-east-1"), client=fake_client)


@pytest.fixture
def mock_boto_client() -> MagicMock:
    """Bare MagicMock boto3 client."""
    return MagicMock()


@pytest.fixture
def fast_retry() -> RetryConfig:
    """Retry settings without delays."""
    return RetryConfig(max_attempts=5, interval_seconds=0)


@pytest.fixture
def seed_table(fake_client):
    """Create a live table in the in-memory client from a TableSpec."""

    def _seed(table: TableSpec, environment: str = "", ttl: Optional[TTLSpec] = None):
        request = build_create_table_request(table, environment)
        fake_client.tables[request["TableName"]] = table_description(request)
        if ttl is not None and ttl.enabled:
            fake_client.ttl[request["TableName"]] = {
                "TimeToLiveStatus": "ENABLED",
                "AttributeName": ttl.attribute_name,
            }
        return fake_client.tables[request["TableName"]]

    return _seed


@pytest.fixture
def make_client_error():
    """Factory for botocore ClientErrors."""
    return client_error
