"""
Unit tests for tablesync configuration.
"""

import pytest
import yaml
from pydantic import ValidationError

from tablesync.config import (
    IndexSpec,
    LocalIndexSpec,
    RetryConfig,
    TableSpec,
    TableSyncConfig,
    TTLSpec,
)
from tablesync.exceptions import ConfigurationError


class TestTableSpec:
    """Test table definition validation."""

    def test_defaults(self):
        table = TableSpec(table_name="users", primary_key="id")

        assert table.title == ""
        assert table.primary_key_type == "S"
        assert table.sort_key is None
        assert table.read_throughput == 1
        assert table.write_throughput == 1
        assert table.indexes == []
        assert table.ttl is None

    def test_empty_primary_key_rejected(self):
        with pytest.raises(ValidationError, match="cannot be empty"):
            TableSpec(table_name="users", primary_key="  ")

    def test_sort_key_requires_type(self):
        with pytest.raises(ValidationError, match="sort_key_type is required"):
            TableSpec(table_name="orders", primary_key="id", sort_key="created_at")

    def test_sort_key_type_without_sort_key_rejected(self):
        with pytest.raises(ValidationError, match="without a sort_key"):
            TableSpec(table_name="orders", primary_key="id", sort_key_type="N")

    def test_invalid_attribute_type_rejected(self):
        with pytest.raises(ValidationError):
            TableSpec(table_name="orders", primary_key="id", primary_key_type="X")

    def test_throughput_must_be_positive(self):
        with pytest.raises(ValidationError):
            TableSpec(table_name="orders", primary_key="id", read_throughput=0)

    def test_duplicate_index_names_rejected(self, customer_index):
        with pytest.raises(ValidationError, match="duplicate index name 'by_customer'"):
            TableSpec(
                table_name="orders",
                primary_key="id",
                indexes=[customer_index, customer_index],
            )

    def test_duplicate_across_global_and_local_indexes_rejected(self, customer_index):
        with pytest.raises(ValidationError, match="duplicate index name"):
            TableSpec(
                table_name="orders",
                primary_key="id",
                sort_key="created_at",
                sort_key_type="N",
                indexes=[customer_index],
                local_indexes=[
                    LocalIndexSpec(
                        index_name="by_customer", sort_key="status", sort_key_type="S"
                    )
                ],
            )

    def test_local_indexes_require_table_sort_key(self):
        with pytest.raises(ValidationError, match="no sort key"):
            TableSpec(
                table_name="orders",
                primary_key="id",
                local_indexes=[
                    LocalIndexSpec(index_name="by_status", sort_key="status", sort_key_type="S")
                ],
            )

    def test_index_sort_key_requires_type(self):
        with pytest.raises(ValidationError, match="index by_status"):
            IndexSpec(index_name="by_status", primary_key="status", sort_key="created_at")

    def test_specs_are_immutable(self, orders_table):
        with pytest.raises(ValidationError):
            orders_table.read_throughput = 10

    def test_get_index(self, orders_table):
        assert orders_table.get_index("by_customer").primary_key == "customer_id"
        assert orders_table.get_index("unknown") is None

    def test_empty_ttl_attribute_rejected(self):
        with pytest.raises(ValidationError):
            TTLSpec(attribute_name="")


class TestTableSyncConfig:
    """Test main configuration loading."""

    def test_defaults(self):
        config = TableSyncConfig()

        assert config.service_name == "tablesync"
        assert config.environment == ""
        assert config.tables == []
        assert config.retry == RetryConfig()
        assert config.retry.max_attempts == 100
        assert config.retry.interval_seconds == 2.0
        assert config.logging.level == "INFO"

    def test_from_yaml_mapping(self, tmp_path, sample_config_data):
        path = tmp_path / "tablesync.yaml"
        path.write_text(yaml.dump(sample_config_data))

        config = TableSyncConfig.from_yaml(path)

        assert config.environment == "staging"
        assert config.aws.region == "eu-west-1"
        assert config.retry.max_attempts == 10
        assert [t.table_name for t in config.tables] == ["orders", "users"]
        orders = config.get_table("orders")
        assert orders.indexes[0].projection_fields == ["status"]
        assert orders.ttl == TTLSpec(attribute_name="expires_at", enabled=True)

    def test_from_yaml_bare_table_list(self, tmp_path):
        path = tmp_path / "tables.yaml"
        path.write_text(
            "- title: shop\n"
            "  table_name: orders\n"
            "  primary_key: id\n"
            "- title: shop\n"
            "  table_name: users\n"
            "  primary_key: id\n"
        )

        config = TableSyncConfig.from_yaml(path)

        assert [t.table_name for t in config.tables] == ["orders", "users"]

    def test_from_yaml_expands_environment_variables(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DYNAMODB_ENDPOINT", "http://dynamodb:8000")
        path = tmp_path / "tablesync.yaml"
        path.write_text("aws:\n  endpoint_url: ${DYNAMODB_ENDPOINT}\n")

        config = TableSyncConfig.from_yaml(path)

        assert config.aws.endpoint_url == "http://dynamodb:8000"

    def test_from_yaml_environment_override(self, tmp_path, sample_config_data):
        path = tmp_path / "tablesync.yaml"
        path.write_text(yaml.dump(sample_config_data))

        assert TableSyncConfig.from_yaml(path, environment="prod").environment == "prod"
        assert TableSyncConfig.from_yaml(path, environment=None).environment == "staging"

    def test_from_yaml_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            TableSyncConfig.from_yaml(tmp_path / "missing.yaml")

    def test_from_yaml_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("tables: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            TableSyncConfig.from_yaml(path)

    def test_from_yaml_invalid_table(self, tmp_path):
        path = tmp_path / "invalid.yaml"
        path.write_text("tables:\n  - table_name: orders\n    sort_key: created_at\n")

        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            TableSyncConfig.from_yaml(path)

    def test_from_yaml_scalar_document(self, tmp_path):
        path = tmp_path / "scalar.yaml"
        path.write_text("just a string\n")

        with pytest.raises(ConfigurationError, match="mapping or a list"):
            TableSyncConfig.from_yaml(path)

    def test_get_table_unknown(self):
        with pytest.raises(ConfigurationError, match="'orders' not found"):
            TableSyncConfig().get_table("orders")

    def test_validate_config_rejects_colliding_names(self):
        config = TableSyncConfig(
            tables=[
                {"title": "shop", "table_name": "orders", "primary_key": "id"},
                {"title": "admin", "table_name": "orders", "primary_key": "id"},
            ]
        )

        # Without an environment both resolve to the bare name
        with pytest.raises(ConfigurationError, match="both resolve to 'orders'"):
            config.validate_config()

    def test_validate_config_distinct_with_environment(self):
        config = TableSyncConfig(
            environment="dev",
            tables=[
                {"title": "shop", "table_name": "orders", "primary_key": "id"},
                {"title": "admin", "table_name": "orders", "primary_key": "id"},
            ],
        )

        config.validate_config()

    def test_to_yaml_round_trip(self, tmp_path, sample_config_data):
        source = tmp_path / "source.yaml"
        source.write_text(yaml.dump(sample_config_data))
        config = TableSyncConfig.from_yaml(source)

        target = tmp_path / "target.yaml"
        config.to_yaml(target)

        assert TableSyncConfig.from_yaml(target).tables == config.tables
