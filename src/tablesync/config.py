"""
Configuration system for tablesync using Pydantic.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

AttributeType = Literal["S", "N", "B"]


class TTLSpec(BaseModel):
    """Time-to-live declaration for a table."""

    model_config = ConfigDict(frozen=True)

    attribute_name: str = Field(..., description="Attribute holding the expiry epoch")
    enabled: bool = Field(True, description="Whether TTL should be enabled")

    @field_validator("attribute_name")
    @classmethod
    def validate_attribute_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("TTL attribute name cannot be empty")
        return v


class IndexSpec(BaseModel):
    """Configuration for a global secondary index."""

    model_config = ConfigDict(frozen=True)

    index_name: str = Field(..., description="Index name")
    primary_key: str = Field(..., description="Index partition key attribute")
    primary_key_type: AttributeType = Field("S", description="Partition key type")
    sort_key: Optional[str] = Field(None, description="Index sort key attribute")
    sort_key_type: Optional[AttributeType] = Field(None, description="Sort key type")
    read_throughput: int = Field(1, ge=1, description="Read capacity units")
    write_throughput: int = Field(1, ge=1, description="Write capacity units")
    projection_fields: List[str] = Field(
        default_factory=list, description="Non-key attributes projected into the index"
    )

    @field_validator("index_name", "primary_key")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("value cannot be empty")
        return v

    @model_validator(mode="after")
    def validate_sort_key(self) -> "IndexSpec":
        _check_sort_key(self.sort_key, self.sort_key_type, f"index {self.index_name}")
        return self


class LocalIndexSpec(BaseModel):
    """Configuration for a local secondary index.

    The partition key is always the table's primary key, so only the
    alternate sort key is declared.
    """

    model_config = ConfigDict(frozen=True)

    index_name: str = Field(..., description="Index name")
    sort_key: str = Field(..., description="Alternate sort key attribute")
    sort_key_type: AttributeType = Field(..., description="Sort key type")
    projection_fields: List[str] = Field(
        default_factory=list, description="Non-key attributes projected into the index"
    )


class TableSpec(BaseModel):
    """Desired definition of a single table."""

    model_config = ConfigDict(frozen=True)

    title: str = Field("", description="Application title used in the table prefix")
    table_name: str = Field(..., description="Logical table name")
    primary_key: str = Field(..., description="Partition key attribute")
    primary_key_type: AttributeType = Field("S", description="Partition key type")
    sort_key: Optional[str] = Field(None, description="Sort key attribute")
    sort_key_type: Optional[AttributeType] = Field(None, description="Sort key type")
    read_throughput: int = Field(1, ge=1, description="Read capacity units")
    write_throughput: int = Field(1, ge=1, description="Write capacity units")
    indexes: List[IndexSpec] = Field(
        default_factory=list, description="Global secondary indexes"
    )
    local_indexes: List[LocalIndexSpec] = Field(
        default_factory=list, description="Local secondary indexes"
    )
    ttl: Optional[TTLSpec] = Field(None, description="Time-to-live configuration")

    @field_validator("table_name", "primary_key")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("value cannot be empty")
        return v

    @model_validator(mode="after")
    def validate_table(self) -> "TableSpec":
        _check_sort_key(self.sort_key, self.sort_key_type, f"table {self.table_name}")

        if self.local_indexes and not self.sort_key:
            raise ValueError(
                f"table {self.table_name} declares local indexes but has no sort key"
            )

        seen = set()
        for name in [i.index_name for i in self.indexes] + [
            i.index_name for i in self.local_indexes
        ]:
            if name in seen:
                raise ValueError(
                    f"duplicate index name '{name}' in table {self.table_name}"
                )
            seen.add(name)
        return self

    def get_index(self, name: str) -> Optional[IndexSpec]:
        """Get a global secondary index by name."""
        for index in self.indexes:
            if index.index_name == name:
                return index
        return None


def _check_sort_key(
    sort_key: Optional[str], sort_key_type: Optional[str], owner: str
) -> None:
    if sort_key and not sort_key_type:
        raise ValueError(f"{owner}: sort_key_type is required when sort_key is set")
    if sort_key_type and not sort_key:
        raise ValueError(f"{owner}: sort_key_type is set without a sort_key")


class AWSConfig(BaseModel):
    """DynamoDB client configuration."""

    region: Optional[str] = Field(None, description="AWS region")
    endpoint_url: Optional[str] = Field(
        None, description="Custom endpoint URL, e.g. DynamoDB Local"
    )
    profile: Optional[str] = Field(None, description="AWS shared credentials profile")


class RetryConfig(BaseModel):
    """Retry settings for requests rejected while a table is busy."""

    max_attempts: int = Field(100, ge=1, description="Maximum attempts per request")
    interval_seconds: float = Field(
        2.0, ge=0, description="Fixed delay between attempts in seconds"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        "INFO", description="Log level"
    )
    format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format",
    )
    file: Optional[str] = Field(None, description="Log file path")
    max_size: int = Field(10485760, description="Max log file size in bytes")  # 10MB
    backup_count: int = Field(5, description="Number of backup log files")


class TableSyncConfig(BaseSettings):
    """Main tablesync configuration."""

    # Service configuration
    service_name: str = Field("tablesync", description="Service name")
    environment: str = Field("", description="Deployment environment name")
    debug: bool = Field(False, description="Enable debug mode")

    # Desired state
    tables: List[TableSpec] = Field(
        default_factory=list, description="Table definitions"
    )

    # System configuration
    aws: AWSConfig = Field(default_factory=AWSConfig, description="AWS client")
    retry: RetryConfig = Field(
        default_factory=RetryConfig, description="Retry configuration"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="TABLESYNC_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def from_yaml(cls, path: Union[str, Path], **overrides: Any) -> "TableSyncConfig":
        """Load configuration from a YAML file.

        The file is either a mapping of settings or a bare list of table
        definitions.
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)

            if data is None:
                data = {}
            elif isinstance(data, list):
                data = {"tables": data}
            elif not isinstance(data, dict):
                raise ConfigurationError(
                    f"Configuration file must contain a mapping or a list: {path}"
                )

            # Expand environment variables in the data
            data = cls._expand_env_vars(data)
            data.update({k: v for k, v in overrides.items() if v is not None})

            return cls(**data)
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {e}")
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")

    @classmethod
    def _expand_env_vars(cls, data: Any) -> Any:
        """Recursively expand environment variables in configuration data."""
        if isinstance(data, dict):
            return {k: cls._expand_env_vars(v) for k, v in data.items()}
        elif isinstance(data, list):
            return [cls._expand_env_vars(item) for item in data]
        elif isinstance(data, str):
            return os.path.expandvars(data)
        else:
            return data

    def get_table(self, name: str) -> TableSpec:
        """Get a table definition by logical name."""
        for table in self.tables:
            if table.table_name == name:
                return table
        raise ConfigurationError(f"Table configuration '{name}' not found")

    def validate_config(self) -> None:
        """Validate the entire configuration for consistency."""
        from .schema.desired import qualified_table_name

        seen: Dict[str, str] = {}
        for table in self.tables:
            name = qualified_table_name(self.environment, table.title, table.table_name)
            if name in seen:
                raise ConfigurationError(
                    f"Tables '{seen[name]}' and '{table.table_name}' both resolve "
                    f"to '{name}'"
                )
            seen[name] = table.table_name

    def to_yaml(self, path: Union[str, Path]) -> None:
        """Save configuration to a YAML file."""
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(
                self.model_dump(exclude_none=True),
                f,
                default_flow_style=False,
                indent=2,
                sort_keys=False,
            )
