"""
Table actions and their execution.

A TableAction is one self-contained request against the service. The
SchemaOperations executor sends it under the retry policy of its
operation and records the outcome on the action.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from ..config import RetryConfig
from ..database.connection import DynamoDBConnection
from .retry import call_with_retry, policy_for

logger = logging.getLogger(__name__)


class ActionType(str, Enum):
    """Types of table actions."""

    CREATE_TABLE = "create_table"
    UPDATE_THROUGHPUT = "update_throughput"
    CREATE_INDEX = "create_index"
    UPDATE_INDEX_THROUGHPUT = "update_index_throughput"
    UPDATE_TTL = "update_ttl"

    @property
    def operation(self) -> str:
        """The DynamoDB API operation that carries this action."""
        if self == ActionType.CREATE_TABLE:
            return "CreateTable"
        if self == ActionType.UPDATE_TTL:
            return "UpdateTimeToLive"
        return "UpdateTable"


@dataclass
class TableAction:
    """A single request to bring a table closer to its desired state."""

    action_type: ActionType
    table_name: str
    description: str
    request: Dict[str, Any]

    # Execution results
    executed: bool = False
    execution_time_ms: Optional[float] = None
    error: Optional[str] = None

    @property
    def operation(self) -> str:
        return self.action_type.operation

    @property
    def has_error(self) -> bool:
        return self.error is not None

    @property
    def action_id(self) -> str:
        return f"{self.action_type.value}_{self.table_name}"


class SchemaOperations:
    """Applies table actions against DynamoDB with retries."""

    def __init__(
        self,
        connection: DynamoDBConnection,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.connection = connection
        self.retry_config = retry_config or RetryConfig()

    def _method_for(self, action: TableAction):
        if action.action_type == ActionType.CREATE_TABLE:
            return self.connection.create_table
        if action.action_type == ActionType.UPDATE_TTL:
            return self.connection.update_time_to_live
        return self.connection.update_table

    async def apply(self, action: TableAction) -> TableAction:
        """Send one action, retrying while the table is busy.

        Raises the final error after recording it on the action.
        """
        method = self._method_for(action)
        policy = policy_for(action.operation, self.retry_config)
        start = time.monotonic()

        try:
            await call_with_retry(
                action.operation,
                lambda: method(action.request),
                policy,
                table_name=action.table_name,
            )
            action.executed = True
            logger.info(f"Successfully executed {action.action_id}: {action.description}")
        except Exception as e:
            action.executed = False
            action.error = str(e)
            logger.error(f"Failed to execute {action.action_id}: {e}")
            raise
        finally:
            action.execution_time_ms = (time.monotonic() - start) * 1000

        return action

    def get_execution_summary(self, actions: List[TableAction]) -> Dict[str, Any]:
        """Get summary of execution results."""
        total = len(actions)
        successful = sum(1 for a in actions if a.executed)
        failed = sum(1 for a in actions if a.has_error)
        total_time = sum(a.execution_time_ms or 0 for a in actions)

        return {
            "total_operations": total,
            "successful": successful,
            "failed": failed,
            "success_rate": successful / total if total > 0 else 0,
            "total_execution_time_ms": total_time,
            "failed_operations": [
                {
                    "action_id": a.action_id,
                    "error": a.error,
                    "action_type": a.action_type.value,
                }
                for a in actions
                if a.has_error
            ],
        }
