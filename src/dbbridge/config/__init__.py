"""dbbridge configuration management.

Classes:
    BaseConfig: Base configuration class
    DatabaseType: Engine tags
    ConnectionConfig: Database connection configuration
    LoggingConfig: Logging configuration
    BridgeSettings: Logging plus named connections, loadable from YAML

Example:
    >>> from dbbridge.config import BridgeSettings
    >>> settings = BridgeSettings.from_file("connections.yaml")
    >>> config = settings.get_connection("local-pg")
"""

from .models import (
    BaseConfig,
    BridgeSettings,
    ConnectionConfig,
    DatabaseType,
    LoggingConfig,
)

__all__ = [
    "BaseConfig",
    "BridgeSettings",
    "ConnectionConfig",
    "DatabaseType",
    "LoggingConfig",
]
