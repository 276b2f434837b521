"""
DynamoDB connection management for tablesync.

Wraps a boto3 DynamoDB client behind async methods. The blocking boto3
calls run in worker threads so that per-table tasks can proceed
concurrently while sharing one client.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..config import AWSConfig
from ..exceptions import RemoteServiceError

logger = logging.getLogger(__name__)

RESOURCE_NOT_FOUND = "ResourceNotFoundException"
RESOURCE_IN_USE = "ResourceInUseException"
LIMIT_EXCEEDED = "LimitExceededException"


def error_code(exc: BaseException) -> Optional[str]:
    """Extract the service error code from a botocore or tablesync error."""
    if isinstance(exc, RemoteServiceError):
        return exc.code
    if isinstance(exc, ClientError):
        return (exc.response or {}).get("Error", {}).get("Code")
    return None


def botocore_config() -> Config:
    # One wire request per call; schema.retry owns retrying.
    return Config(
        retries={"total_max_attempts": 1, "mode": "standard"},
        connect_timeout=5,
        read_timeout=30,
    )


class DynamoDBConnection:
    """Shared DynamoDB client exposing the calls reconciliation needs."""

    def __init__(self, config: Optional[AWSConfig] = None, client: Any = None):
        self.config = config or AWSConfig()
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = self._create_client()
        return self._client

    def _create_client(self) -> Any:
        session = boto3.session.Session(
            profile_name=self.config.profile, region_name=self.config.region
        )
        client = session.client(
            "dynamodb",
            endpoint_url=self.config.endpoint_url,
            config=botocore_config(),
        )
        logger.info(
            f"Created DynamoDB client (region={session.region_name}, "
            f"endpoint={self.config.endpoint_url or 'default'})"
        )
        return client

    async def initialize(self) -> None:
        """Create the underlying client if it does not exist yet."""
        if self._client is None:
            self._client = await asyncio.to_thread(self._create_client)

    async def close(self) -> None:
        if self._client is not None:
            close = getattr(self._client, "close", None)
            if callable(close):
                close()
            self._client = None

    async def __aenter__(self) -> "DynamoDBConnection":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _call(
        self,
        operation: str,
        method: Callable[..., Dict[str, Any]],
        table_name: Optional[str] = None,
        **kwargs: Any,
    ) -> Dict[str, Any]:
        try:
            return await asyncio.to_thread(method, **kwargs)
        except ClientError as e:
            code = error_code(e)
            raise RemoteServiceError(
                f"{operation} failed",
                operation=operation,
                table_name=table_name,
                code=code,
                cause=e,
            ) from e
        except BotoCoreError as e:
            raise RemoteServiceError(
                f"{operation} failed",
                operation=operation,
                table_name=table_name,
                cause=e,
            ) from e

    async def describe_table(self, table_name: str) -> Dict[str, Any]:
        """Return the ``Table`` description of a table."""
        response = await self._call(
            "DescribeTable",
            self.client.describe_table,
            table_name,
            TableName=table_name,
        )
        return response["Table"]

    async def describe_time_to_live(self, table_name: str) -> Dict[str, Any]:
        """Return the ``TimeToLiveDescription`` of a table."""
        response = await self._call(
            "DescribeTimeToLive",
            self.client.describe_time_to_live,
            table_name,
            TableName=table_name,
        )
        return response.get("TimeToLiveDescription") or {}

    async def create_table(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return await self._call(
            "CreateTable",
            self.client.create_table,
            request.get("TableName"),
            **request,
        )

    async def update_table(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return await self._call(
            "UpdateTable",
            self.client.update_table,
            request.get("TableName"),
            **request,
        )

    async def update_time_to_live(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return await self._call(
            "UpdateTimeToLive",
            self.client.update_time_to_live,
            request.get("TableName"),
            **request,
        )

    async def health_check(self) -> Dict[str, Any]:
        """Check that the service answers and report what it returned."""
        try:
            response = await self._call(
                "ListTables", self.client.list_tables, Limit=1
            )
            return {
                "status": "healthy",
                "endpoint": self.config.endpoint_url or "default",
                "sample_tables": response.get("TableNames", []),
            }
        except RemoteServiceError as e:
            logger.error(f"Health check failed: {e}")
            return {
                "status": "unhealthy",
                "endpoint": self.config.endpoint_url or "default",
                "error": str(e),
            }
