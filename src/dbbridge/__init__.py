"""dbbridge - unified async access to many database engines.

Modules:
    core: Component base classes and exceptions
    config: Connection and logging configuration
    logging: Structured logging framework
    database: Adapters, registry, factory and schema cache

Example:
    >>> from dbbridge.config import ConnectionConfig
    >>> from dbbridge.database import get_adapter_factory
    >>>
    >>> config = ConnectionConfig(id="local", name="Local", type="sqlite", filename="app.db")
    >>> adapter = get_adapter_factory().create(config)
    >>> await adapter.connect()
    >>> tables = await adapter.get_tables()
"""

from . import config, core, database, logging

__version__ = "0.1.0"
__title__ = "dbbridge"
__description__ = "Unified async adapter layer for relational and NoSQL databases"

__all__ = [
    "config",
    "core",
    "database",
    "logging",
    "__version__",
    "__title__",
    "__description__",
]
