"""Pydantic models for spanner-cli configuration."""

import re
from enum import Enum
from typing import Dict, Optional

from pydantic import (
    BaseModel,
    Field,
    field_validator,
    model_validator,
    AliasChoices,
    ConfigDict,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


class OutputFormat(str, Enum):
    """Supported result output formats."""
    TABLE = "table"
    VERTICAL = "vertical"
    TAB = "tab"
    CSV = "csv"
    JSON = "json"


class Priority(str, Enum):
    """Request priorities accepted by Cloud Spanner."""
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


_RESOURCE_ID_PATTERN = r"^[a-z][a-z0-9_\-]*[a-z0-9]$"


class ConnectionConfig(BaseModel):
    """Coordinates and credentials of one Spanner database."""

    model_config = ConfigDict(populate_by_name=True)

    project: str = Field(validation_alias=AliasChoices("project", "project_id"))
    instance: str = Field(validation_alias=AliasChoices("instance", "instance_id"))
    database: str = Field(validation_alias=AliasChoices("database", "database_id"))
    credential: Optional[str] = Field(default=None, description="Service account key file or JSON payload")
    endpoint: Optional[str] = Field(default=None, description="Custom API endpoint, e.g. for regional endpoints")
    role: Optional[str] = Field(default=None, description="Fine-grained access control database role")

    @field_validator('instance', 'database')
    def validate_resource_id(cls, v):
        """Validate instance and database ids against Spanner naming rules."""
        if not re.match(_RESOURCE_ID_PATTERN, v):
            raise ValueError(f"'{v}' is not a valid Spanner resource id")
        return v

    @property
    def database_path(self) -> str:
        return f"projects/{self.project}/instances/{self.instance}/databases/{self.database}"


class CliSettings(BaseModel):
    """Interactive and batch behaviour of the CLI."""
    prompt: str = Field(default="spanner\\t> ", description="REPL prompt; supports \\p \\i \\d \\t")
    history_file: Optional[str] = Field(default="~/.spanner_cli_history")
    output_format: Optional[OutputFormat] = Field(default=None, description="Defaults to table (interactive) or tab (batch)")
    priority: Optional[Priority] = None
    verbose: bool = False
    ddl_timeout: int = Field(default=600, ge=1, le=86400, description="Seconds to wait for schema operations")


class CliConfig(BaseModel):
    """Main configuration model for spanner-cli."""
    connections: Dict[str, ConnectionConfig] = Field(default_factory=dict)
    default_connection: Optional[str] = None
    cli_settings: CliSettings = Field(default_factory=CliSettings)

    @model_validator(mode='after')
    def validate_default_connection(self):
        """Ensure default_connection exists in connections."""
        if self.default_connection and self.default_connection not in self.connections:
            raise ValueError(f"default_connection '{self.default_connection}' not found in connections")
        return self

    @model_validator(mode='after')
    def set_default_connection(self):
        """Set default connection if not specified."""
        if not self.default_connection and self.connections:
            self.default_connection = next(iter(self.connections))
        return self


class EnvironmentSettings(BaseSettings):
    """Environment-specific settings."""
    log_level: str = Field(default="WARNING")
    debug: bool = Field(default=False)
    config_file: Optional[str] = Field(default=None)

    model_config = SettingsConfigDict(env_prefix="SPANNER_CLI_", case_sensitive=False)


class IntegrationTestSettings(BaseSettings):
    """Target database for the integration test suite.

    All four values must be present for the suite to run; otherwise every
    integration test is skipped.
    """
    project_id: Optional[str] = None
    instance_id: Optional[str] = None
    database_id: Optional[str] = None
    credential: Optional[str] = None

    model_config = SettingsConfigDict(env_prefix="SPANNER_CLI_INTEGRATION_TEST_", case_sensitive=False)

    @property
    def is_complete(self) -> bool:
        return all([self.project_id, self.instance_id, self.database_id, self.credential])
