"""Configuration and codebase detection."""

from .config import BackendConfig, DefaultsConfig, FrameworkConfig, load_config
from .context import CodebaseContext

__all__ = [
    "BackendConfig",
    "DefaultsConfig",
    "FrameworkConfig",
    "load_config",
    "CodebaseContext",
]
