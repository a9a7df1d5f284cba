"""Configuration management for spanner-cli."""

from spanner_cli.config.models import (
    OutputFormat,
    Priority,
    ConnectionConfig,
    CliSettings,
    CliConfig,
    EnvironmentSettings,
    IntegrationTestSettings,
)
from spanner_cli.config.parser import (
    ConfigParser,
    load_config,
    validate_config_file,
    create_sample_config,
)

__all__ = [
    # Models
    "OutputFormat",
    "Priority",
    "ConnectionConfig",
    "CliSettings",
    "CliConfig",
    "EnvironmentSettings",
    "IntegrationTestSettings",
    # Parser
    "ConfigParser",
    "load_config",
    "validate_config_file",
    "create_sample_config",
]
