"""Backend layer: the Backend contract and its implementations."""

import logging
import os
from typing import Dict, List, Optional

from .base import Backend, BackendError
from .cli_backend import ClaudeCLIBackend, CodexBackend, GeminiBackend, SubprocessBackend
from .litellm_backend import LiteLLMBackend
from ..core.config import BackendConfig, FrameworkConfig

logger = logging.getLogger(__name__)

DEFAULT_CLAUDE_API_MODEL = "anthropic/claude-sonnet-4-20250514"
DEFAULT_OLLAMA_ENDPOINT = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "llama3.2"

_CLI_BACKENDS = {
    "codex": CodexBackend,
    "gemini": GeminiBackend,
}


def _cli_kwargs(config: BackendConfig, timeout: int) -> dict:
    kwargs = {
        "command": config.command,
        "args": config.args or None,
        "model": config.model,
        "timeout": timeout,
        "parse": config.parse,
    }
    if config.skip_lines:
        kwargs["skip_lines"] = config.skip_lines
    return kwargs


def create_backend(name: str, config: BackendConfig, default_timeout: int = 300) -> Backend:
    """
    Build a backend from its config entry.

    ``claude`` runs the CLI when a command is configured and otherwise calls
    the API (the key must be present in ``api_key_env``). ``ollama`` talks to
    ``endpoint``.

    Raises:
        BackendError: Unknown backend name, or a required key is missing.
    """
    timeout = config.timeout or default_timeout

    if name == "claude":
        if config.command:
            return ClaudeCLIBackend(**_cli_kwargs(config, timeout))
        api_key_env = config.api_key_env or "ANTHROPIC_API_KEY"
        if not os.environ.get(api_key_env):
            raise BackendError(f"Missing environment variable: {api_key_env}")
        model = config.model or DEFAULT_CLAUDE_API_MODEL
        if "/" not in model:
            model = f"anthropic/{model}"
        return LiteLLMBackend("claude", model, api_key_env=api_key_env, timeout=timeout)

    if name == "ollama":
        model = config.model or DEFAULT_OLLAMA_MODEL
        return LiteLLMBackend(
            "ollama",
            f"ollama_chat/{model}",
            api_base=config.endpoint or DEFAULT_OLLAMA_ENDPOINT,
            timeout=timeout,
        )

    backend_cls = _CLI_BACKENDS.get(name)
    if backend_cls is None:
        raise BackendError(f"Unknown backend: {name}")
    return backend_cls(**_cli_kwargs(config, timeout))


class BackendFactory:
    """Name -> Backend lookup for one run, backed by the config.

    Backends are created lazily and cached. ``get`` returns None for names
    that are not configured or are disabled; creation errors propagate.
    """

    def __init__(self, config: FrameworkConfig):
        self.config = config
        self._cache: Dict[str, Backend] = {}

    def get(self, name: str) -> Optional[Backend]:
        if name in self._cache:
            return self._cache[name]
        backend_config = self.config.backends.get(name)
        if backend_config is None or not backend_config.enabled:
            return None
        backend = create_backend(name, backend_config, self.config.backend_timeout(name))
        self._cache[name] = backend
        return backend

    __call__ = get


def get_backends(config: FrameworkConfig, names: Optional[List[str]] = None) -> List[Backend]:
    """Create every enabled backend (optionally filtered), skipping failures."""
    backends = []
    for name, backend_config in config.enabled_backends().items():
        if names and name not in names:
            continue
        try:
            backends.append(create_backend(name, backend_config, config.backend_timeout(name)))
        except BackendError as e:
            logger.warning(f"Skipping backend {name}: {e}")
    return backends


__all__ = [
    "Backend",
    "BackendError",
    "BackendFactory",
    "ClaudeCLIBackend",
    "CodexBackend",
    "GeminiBackend",
    "LiteLLMBackend",
    "SubprocessBackend",
    "create_backend",
    "get_backends",
]
