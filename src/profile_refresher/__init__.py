"""profile_refresher package."""

from .config import (
    AppConfig,
    RefreshConfig,
    RuntimeConfig,
    StorageConfig,
    config_to_dict,
    default_config,
    init_default_config,
    load_runtime_config,
    resolve_config_path,
)
from .models import Contact, ContactKind, PassOutcome

__all__ = [
    "AppConfig",
    "Contact",
    "ContactKind",
    "PassOutcome",
    "RefreshConfig",
    "RuntimeConfig",
    "StorageConfig",
    "config_to_dict",
    "default_config",
    "init_default_config",
    "load_runtime_config",
    "resolve_config_path",
]

__version__ = "0.1.0"
