"""Configuration loading and validation."""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "polyflow.yaml"
GLOBAL_CONFIG_PATH = Path.home() / ".config" / "polyflow" / CONFIG_FILENAME


class DefaultsConfig(BaseModel):
    """Run-wide defaults."""
    parallel: bool = True  # False runs the steps of a level one at a time
    timeout: int = 300  # Seconds per backend query

    @field_validator('timeout')
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"timeout must be >= 1 second, got {v}")
        return v


class BackendConfig(BaseModel):
    """Settings for one backend.

    ``command`` is the executable for CLI backends. For the claude backend a
    null command switches to API mode; for ollama it is ignored in favour of
    ``endpoint``.
    """
    enabled: bool = True
    command: Optional[str] = None
    args: List[str] = Field(default_factory=list)
    parse: Literal["raw", "json"] = "raw"
    skip_lines: int = 0
    api_key_env: Optional[str] = None
    model: Optional[str] = None
    endpoint: Optional[str] = None
    timeout: Optional[int] = None  # Falls back to defaults.timeout

    @field_validator('endpoint')
    @classmethod
    def validate_endpoint(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.startswith(("http://", "https://")):
            raise ValueError(
                f"endpoint must start with http:// or https://, got '{v}'"
            )
        return v


def _default_backends() -> Dict[str, BackendConfig]:
    return {
        "claude": BackendConfig(
            command="claude",
            args=["-p", "--output-format", "text"],
            api_key_env="ANTHROPIC_API_KEY",
        ),
        "codex": BackendConfig(
            command="codex",
            args=["exec", "--json", "-s", "read-only"],
            parse="json",
        ),
        "gemini": BackendConfig(
            command="npx",
            args=["@google/gemini-cli"],
            skip_lines=1,
        ),
        "ollama": BackendConfig(
            endpoint="http://localhost:11434",
            model="llama3.2",
        ),
    }


class FrameworkConfig(BaseSettings):
    """Main polyflow configuration."""
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    backends: Dict[str, BackendConfig] = Field(default_factory=_default_backends)

    class Config:
        env_prefix = "POLYFLOW_"
        extra = "allow"

    def backend_timeout(self, name: str) -> int:
        backend = self.backends.get(name)
        if backend is not None and backend.timeout:
            return backend.timeout
        return self.defaults.timeout

    def enabled_backends(self) -> Dict[str, BackendConfig]:
        return {name: cfg for name, cfg in self.backends.items() if cfg.enabled}


# Module-level mtime-based config cache: path -> (parsed_config, file_mtime)
_config_cache: Dict[str, tuple] = {}


def _get_cached_or_load(resolved_path: Path, loader):
    """Return cached config if file mtime unchanged, else reload."""
    key = str(resolved_path)
    try:
        current_mtime = resolved_path.stat().st_mtime
    except FileNotFoundError:
        _config_cache.pop(key, None)
        return None

    cached = _config_cache.get(key)
    if cached is not None:
        cached_result, cached_mtime = cached
        if cached_mtime == current_mtime:
            return cached_result

    result = loader(resolved_path)
    _config_cache[key] = (result, current_mtime)
    return result


def _load_config_from_file(config_path: Path) -> FrameworkConfig:
    """Internal loader for framework config (no caching).

    Backends listed in the file are merged over the built-in defaults, so a
    file that only tweaks ``ollama`` keeps ``claude``, ``codex`` and ``gemini``.
    """
    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping")

    data = _expand_env_vars(data)

    backends = {name: cfg.model_dump() for name, cfg in _default_backends().items()}
    for name, overrides in (data.get("backends") or {}).items():
        merged = dict(backends.get(name, {}))
        merged.update(overrides or {})
        backends[name] = merged
    data["backends"] = backends

    return FrameworkConfig(**data)


def find_config_path(start_dir: Optional[Path] = None) -> Optional[Path]:
    """Locate the config file: working directory first, then the user config dir."""
    local = (start_dir or Path.cwd()) / CONFIG_FILENAME
    if local.exists():
        return local
    if GLOBAL_CONFIG_PATH.exists():
        return GLOBAL_CONFIG_PATH
    return None


def load_config(config_path: Optional[Path] = None) -> FrameworkConfig:
    """Load configuration from YAML.

    With no explicit path the standard locations are searched and defaults
    are used if none exists. Uses mtime-based caching.
    """
    if config_path is None:
        config_path = find_config_path()
        if config_path is None:
            logger.debug("No config file found, using default configuration")
            return FrameworkConfig()
    elif not config_path.exists():
        logger.warning(
            f"Config file not found: {config_path}. Using default configuration. "
            "To customize settings, create a config file at this path."
        )
        return FrameworkConfig()

    resolved = config_path.resolve()
    result = _get_cached_or_load(resolved, _load_config_from_file)
    return result if result is not None else FrameworkConfig()


def clear_config_cache() -> None:
    """Clear the module-level config cache. Useful for tests."""
    _config_cache.clear()


def _expand_env_vars(data: Any, _path: str = "") -> Any:
    """Recursively expand ``${VAR}`` string values from the environment.

    Args:
        data: Config data to process
        _path: Internal tracking for error messages (e.g., "backends.claude.model")
    """
    if isinstance(data, dict):
        return {k: _expand_env_vars(v, f"{_path}.{k}" if _path else k) for k, v in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item, f"{_path}[{i}]") for i, item in enumerate(data)]
    elif isinstance(data, str) and data.startswith("${") and data.endswith("}"):
        env_var = data[2:-1]
        value = os.environ.get(env_var)
        if value is None:
            logger.warning(
                f"Environment variable '{env_var}' not set (referenced at config path: {_path or 'root'}). "
                f"The literal string '{data}' will be used, which may cause errors."
            )
            return data
        return value
    return data


DEFAULT_CONFIG_TEMPLATE = """\
# polyflow configuration
defaults:
  parallel: true
  timeout: 300

backends:
  claude:
    enabled: true
    command: claude            # set to null to call the API with ${ANTHROPIC_API_KEY}
    args: ["-p", "--output-format", "text"]
    api_key_env: ANTHROPIC_API_KEY
  codex:
    enabled: true
    command: codex
    args: ["exec", "--json", "-s", "read-only"]
    parse: json
  gemini:
    enabled: true
    command: npx
    args: ["@google/gemini-cli"]
    skip_lines: 1
  ollama:
    enabled: true
    endpoint: http://localhost:11434
    model: llama3.2
"""
