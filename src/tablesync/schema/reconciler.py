"""
Schema reconciliation core logic for tablesync.

Validates declared tables against their live definitions, classifies each
difference as migratable or not, and applies the resulting actions.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set

from ..config import RetryConfig, TableSpec
from ..database.connection import DynamoDBConnection
from ..database.introspection import LiveTable, TableIntrospector
from ..exceptions import (
    BackwardCompatibleError,
    BackwardIncompatibleError,
    FetchError,
    InvalidMigrationInputError,
    SchemaError,
    TableSyncError,
)
from .desired import (
    DesiredTable,
    build_desired_table,
    build_update_table_request,
    build_update_ttl_request,
    index_key_attributes,
    qualified_table_name,
)
from .differ import (
    Aspect,
    Diff,
    Mismatch,
    diff_attribute_definitions,
    diff_global_secondary_indexes,
    diff_key_schema,
    diff_local_secondary_indexes,
    diff_provisioned_throughput,
    diff_ttl,
)
from .operations import ActionType, SchemaOperations, TableAction


class ValidationStatus(str, Enum):
    """Outcome of validating one table."""

    IN_SYNC = "in_sync"
    MISSING = "missing"
    COMPATIBLE_DIFF = "compatible_diff"
    INCOMPATIBLE_DIFF = "incompatible_diff"
    FETCH_ERROR = "fetch_error"


class Compatibility(str, Enum):
    """Verdict over a whole validation run."""

    IN_SYNC = "in_sync"
    BACKWARD_COMPATIBLE = "backward_compatible"
    BACKWARD_INCOMPATIBLE = "backward_incompatible"


class MigrationStatus(str, Enum):
    """Outcome of migrating one table."""

    SUCCEEDED = "succeeded"
    PARTIALLY_FAILED = "partially_failed"
    REJECTED = "rejected"


@dataclass
class ValidationResult:
    """Result of validating one table against its live definition."""

    table: TableSpec
    qualified_name: str
    create_table: Optional[TableAction] = None
    update_table: List[TableAction] = field(default_factory=list)
    update_ttl: Optional[TableAction] = None
    diff: Diff = field(default_factory=Diff)
    can_migrate: bool = True
    error: Optional[Exception] = None
    status: ValidationStatus = ValidationStatus.IN_SYNC

    @property
    def has_diff(self) -> bool:
        return bool(self.diff)

    @property
    def diff_text(self) -> str:
        return self.diff.render()

    @property
    def actions(self) -> List[TableAction]:
        """Every queued action in the order Migrate applies them."""
        actions = []
        if self.create_table:
            actions.append(self.create_table)
        if self.update_ttl:
            actions.append(self.update_ttl)
        actions.extend(self.update_table)
        return actions


@dataclass
class ValidationReport:
    """All per-table results of a validation run plus the overall verdict."""

    results: List[ValidationResult]
    verdict: Compatibility

    @property
    def error(self) -> Optional[SchemaError]:
        if self.verdict == Compatibility.BACKWARD_INCOMPATIBLE:
            return BackwardIncompatibleError(
                details={"tables": ", ".join(self.incompatible_tables)}
            )
        if self.verdict == Compatibility.BACKWARD_COMPATIBLE:
            return BackwardCompatibleError()
        return None

    @property
    def incompatible_tables(self) -> List[str]:
        return [r.qualified_name for r in self.results if not r.can_migrate]

    @property
    def migratable(self) -> bool:
        return self.verdict != Compatibility.BACKWARD_INCOMPATIBLE

    def raise_for_verdict(self) -> None:
        error = self.error
        if error is not None:
            raise error


@dataclass
class MigrationResult:
    """Result of migrating one table."""

    table: TableSpec
    qualified_name: str
    status: MigrationStatus
    errors: List[Exception] = field(default_factory=list)
    applied: List[TableAction] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == MigrationStatus.SUCCEEDED


def classify(results: Sequence[ValidationResult]) -> Compatibility:
    """Reduce per-table results to a single verdict.

    Incompatible wins over compatible, compatible over in sync.
    """
    if any(not r.can_migrate for r in results):
        return Compatibility.BACKWARD_INCOMPATIBLE
    if any(r.has_diff for r in results):
        return Compatibility.BACKWARD_COMPATIBLE
    return Compatibility.IN_SYNC


class SchemaReconciler:
    """
    Core schema reconciliation engine for tablesync.

    Validate compares every declared table with the live service and plans
    the actions needed to converge. Migrate applies the planned actions of
    every table that can be migrated. Tables are processed concurrently and
    one table's failure never affects another.
    """

    def __init__(
        self,
        connection: DynamoDBConnection,
        tables: Sequence[TableSpec],
        environment: str = "",
        retry_config: Optional[RetryConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.connection = connection
        self.tables = list(tables)
        self.environment = environment
        self.logger = logger or logging.getLogger(f"{__name__}.{self.__class__.__name__}")

        # Core components
        self.introspector = TableIntrospector(connection)
        self.operations = SchemaOperations(connection, retry_config)

    def _qualified_name(self, table: TableSpec) -> str:
        return qualified_table_name(self.environment, table.title, table.table_name)

    async def validate(self) -> ValidationReport:
        """Validate every declared table. Results keep declaration order."""
        results = await asyncio.gather(
            *(self._validate_table(table) for table in self.tables)
        )
        results = list(results)
        return ValidationReport(results=results, verdict=classify(results))

    async def _validate_table(self, table: TableSpec) -> ValidationResult:
        name = self._qualified_name(table)
        try:
            result = await self._compare(table)
        except FetchError as e:
            return self._failed_result(table, name, e)
        except (TableSyncError, KeyError, TypeError) as e:
            error = FetchError(
                f"Cannot compare table {name}: {e!r}", table_name=name, cause=e
            )
            return self._failed_result(table, name, error)

        self.logger.info(
            f"Validate table [{name}] with diff: {result.diff_text or 'none'}"
        )
        return result

    def _failed_result(
        self, table: TableSpec, name: str, error: FetchError
    ) -> ValidationResult:
        self.logger.error(f"Validate table [{name}] failed: {error}")
        return ValidationResult(
            table=table,
            qualified_name=name,
            can_migrate=False,
            error=error,
            status=ValidationStatus.FETCH_ERROR,
        )

    async def _compare(self, table: TableSpec) -> ValidationResult:
        desired = build_desired_table(table, self.environment)
        name = desired.table_name
        result = ValidationResult(table=table, qualified_name=name)

        live = await self.introspector.get_table(name)
        if live is None:
            result.create_table = TableAction(
                action_type=ActionType.CREATE_TABLE,
                table_name=name,
                description=f"Create table {name}",
                request=desired.to_create_request(),
            )
            result.diff.add(Mismatch(Aspect.MISSING_TABLE, subject=table.table_name))
            result.status = ValidationStatus.MISSING
            return result

        indexes = diff_global_secondary_indexes(
            live.global_secondary_indexes, desired.global_secondary_indexes
        )

        attribute_mismatches = diff_attribute_definitions(
            *self._comparable_attributes(live, desired, indexes.missing)
        )
        if attribute_mismatches:
            result.diff.extend(attribute_mismatches)
            result.can_migrate = False

        key_mismatches = diff_key_schema(live.key_schema, desired.key_schema)
        if key_mismatches:
            result.diff.extend(key_mismatches)
            result.can_migrate = False

        local_mismatches = diff_local_secondary_indexes(
            live.local_secondary_indexes, desired.local_secondary_indexes
        )
        if local_mismatches:
            result.diff.extend(local_mismatches)
            result.can_migrate = False

        throughput_mismatches = diff_provisioned_throughput(
            live.provisioned_throughput, desired.provisioned_throughput
        )
        if throughput_mismatches:
            result.diff.extend(throughput_mismatches)
            request = build_update_table_request(table, self.environment)
            request["ProvisionedThroughput"] = dict(desired.provisioned_throughput)
            result.update_table.append(
                TableAction(
                    action_type=ActionType.UPDATE_THROUGHPUT,
                    table_name=name,
                    description=f"Update provisioned throughput of {name}",
                    request=request,
                )
            )

        result.diff.extend(indexes.diff)
        if indexes.unsupported:
            result.can_migrate = False
        for update in indexes.updates:
            result.update_table.append(self._index_action(table, name, update))

        if table.ttl is not None:
            live_ttl = await self.introspector.get_ttl(name)
            ttl_mismatches = diff_ttl(live_ttl, table.ttl)
            if ttl_mismatches:
                result.diff.extend(ttl_mismatches)
                result.update_ttl = TableAction(
                    action_type=ActionType.UPDATE_TTL,
                    table_name=name,
                    description=f"Update time to live of {name}",
                    request=build_update_ttl_request(table, self.environment),
                )

        if not result.diff:
            result.status = ValidationStatus.IN_SYNC
        elif result.can_migrate:
            result.status = ValidationStatus.COMPATIBLE_DIFF
        else:
            result.status = ValidationStatus.INCOMPATIBLE_DIFF
        return result

    def _comparable_attributes(
        self, live: LiveTable, desired: DesiredTable, missing_indexes: List[str]
    ):
        """Select the attribute definitions that take part in the comparison.

        Attributes only referenced by a desired index that does not exist yet
        are created with that index, and attributes only referenced by live
        indexes absent from the desired state belong to indexes that are
        ignored. Neither counts as a difference.
        """
        live_names = {a["AttributeName"] for a in live.attribute_definitions}
        desired_names = {a["AttributeName"] for a in desired.attribute_definitions}
        declared = {index["IndexName"] for index in desired.global_secondary_indexes}

        desired_in_use: Set[str] = {k["AttributeName"] for k in desired.key_schema}
        pending: Set[str] = set()
        for index in desired.local_secondary_indexes:
            desired_in_use.update(index_key_attributes(index))
        for index in desired.global_secondary_indexes:
            if index["IndexName"] in missing_indexes:
                pending.update(index_key_attributes(index))
            else:
                desired_in_use.update(index_key_attributes(index))
        pending = (pending - desired_in_use) - live_names

        live_in_use: Set[str] = {k["AttributeName"] for k in live.key_schema}
        undeclared: Set[str] = set()
        for index in live.local_secondary_indexes:
            live_in_use.update(index_key_attributes(index))
        for index in live.global_secondary_indexes:
            if index["IndexName"] in declared:
                live_in_use.update(index_key_attributes(index))
            else:
                undeclared.update(index_key_attributes(index))
        ignored = (undeclared - live_in_use) - desired_names

        return (
            [a for a in live.attribute_definitions if a["AttributeName"] not in ignored],
            [a for a in desired.attribute_definitions if a["AttributeName"] not in pending],
        )

    def _index_action(
        self, table: TableSpec, name: str, update: Dict[str, Any]
    ) -> TableAction:
        request = build_update_table_request(table, self.environment)
        request["GlobalSecondaryIndexUpdates"] = [update]
        if "Create" in update:
            index_name = update["Create"]["IndexName"]
            return TableAction(
                action_type=ActionType.CREATE_INDEX,
                table_name=name,
                description=f"Create index {index_name} on {name}",
                request=request,
            )
        index_name = update["Update"]["IndexName"]
        return TableAction(
            action_type=ActionType.UPDATE_INDEX_THROUGHPUT,
            table_name=name,
            description=f"Update provisioned throughput of index {index_name} on {name}",
            request=request,
        )

    async def migrate(self, results: Sequence[ValidationResult]) -> List[MigrationResult]:
        """Apply the planned actions of every result with a non-empty diff.

        Returns one MigrationResult per such result, in input order.
        """
        pending = [r for r in results if r.has_diff]
        return list(await asyncio.gather(*(self._migrate_table(r) for r in pending)))

    async def _migrate_table(self, result: ValidationResult) -> MigrationResult:
        name = result.qualified_name
        if result.error is not None or not result.can_migrate:
            error = InvalidMigrationInputError(name)
            self.logger.info(f"Migrate table [{name}] with errors: [{error}]")
            return MigrationResult(
                table=result.table,
                qualified_name=name,
                status=MigrationStatus.REJECTED,
                errors=[error],
            )

        migration = MigrationResult(
            table=result.table, qualified_name=name, status=MigrationStatus.SUCCEEDED
        )
        ttl_applied = False

        if result.create_table is not None:
            created = await self._apply(result.create_table, migration)
            ttl_request = build_update_ttl_request(result.table, self.environment)
            if created and ttl_request is not None:
                ttl_action = TableAction(
                    action_type=ActionType.UPDATE_TTL,
                    table_name=name,
                    description=f"Update time to live of {name}",
                    request=ttl_request,
                )
                await self._apply(ttl_action, migration)
                ttl_applied = True

        if result.update_ttl is not None and not ttl_applied:
            await self._apply(result.update_ttl, migration)

        for action in result.update_table:
            await self._apply(action, migration)

        if migration.errors:
            migration.status = MigrationStatus.PARTIALLY_FAILED

        errors = ", ".join(str(e) for e in migration.errors)
        self.logger.info(f"Migrate table [{name}] with errors: [{errors}]")
        return migration

    async def _apply(self, action: TableAction, migration: MigrationResult) -> bool:
        try:
            await self.operations.apply(action)
        except Exception as e:
            migration.errors.append(e)
            return False
        migration.applied.append(action)
        return True

    def get_reconciliation_summary(
        self,
        report: ValidationReport,
        migrations: Optional[Sequence[MigrationResult]] = None,
    ) -> Dict[str, Any]:
        """Get summary of reconciliation results."""
        results = report.results
        summary: Dict[str, Any] = {
            "total_tables": len(results),
            "verdict": report.verdict.value,
            "in_sync": sum(1 for r in results if r.status == ValidationStatus.IN_SYNC),
            "missing": sum(1 for r in results if r.status == ValidationStatus.MISSING),
            "compatible": sum(
                1 for r in results if r.status == ValidationStatus.COMPATIBLE_DIFF
            ),
            "incompatible": sum(
                1 for r in results if r.status == ValidationStatus.INCOMPATIBLE_DIFF
            ),
            "fetch_errors": sum(
                1 for r in results if r.status == ValidationStatus.FETCH_ERROR
            ),
            "planned_actions": sum(len(r.actions) for r in results),
        }

        if migrations is not None:
            summary.update(
                {
                    "migrated_tables": len(migrations),
                    "succeeded": sum(
                        1 for m in migrations if m.status == MigrationStatus.SUCCEEDED
                    ),
                    "partially_failed": sum(
                        1
                        for m in migrations
                        if m.status == MigrationStatus.PARTIALLY_FAILED
                    ),
                    "rejected": sum(
                        1 for m in migrations if m.status == MigrationStatus.REJECTED
                    ),
                    "applied_actions": sum(len(m.applied) for m in migrations),
                    "failed_tables": [
                        m.qualified_name for m in migrations if not m.succeeded
                    ],
                }
            )
        return summary
