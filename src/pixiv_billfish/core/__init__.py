"""Core infrastructure layer - no sync logic dependencies.

This module provides foundation-level services:
- Configuration management (TOML)
- Billfish database access (SQLite)
- Logging (Loguru) and console output (Rich)
"""

# Configuration
from .config import (
    Config,
    DatabaseConfig,
    LoggingConfig,
    NetworkConfig,
    SyncConfig,
    load_config,
    save_config,
    get_config_dir,
    get_config_path,
    get_data_dir,
    create_default_config,
    write_default_config,
)

# Database
from .database import (
    AssetStore,
    PersistenceError,
    StoreError,
    StoreUnavailableError,
)
from .models import (
    Association,
    FileRecord,
    NoteRecord,
    SchemaVariant,
    TagRecord,
)

# Console
from .console import get_console

__all__ = [
    # Config
    "Config",
    "DatabaseConfig",
    "LoggingConfig",
    "NetworkConfig",
    "SyncConfig",
    "load_config",
    "save_config",
    "get_config_dir",
    "get_config_path",
    "get_data_dir",
    "create_default_config",
    "write_default_config",
    # Database
    "AssetStore",
    "PersistenceError",
    "StoreError",
    "StoreUnavailableError",
    "Association",
    "FileRecord",
    "NoteRecord",
    "SchemaVariant",
    "TagRecord",
    # Console
    "get_console",
]
