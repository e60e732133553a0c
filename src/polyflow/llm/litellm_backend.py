"""LiteLLM direct API backend implementation.

Text-only completion using the litellm Python library. Covers the Claude
API mode and local Ollama servers.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

import litellm

from .base import Backend, BackendError

logger = logging.getLogger(__name__)


class LiteLLMBackend(Backend):
    """Backend calling a model API through ``litellm.acompletion``.

    The working directory is not visible to API models; the prompt has to
    carry whatever context the step needs.
    """

    DEFAULT_TIMEOUT = 300

    def __init__(
        self,
        backend_name: str,
        model: str,
        api_key_env: Optional[str] = None,
        api_base: Optional[str] = None,
        timeout: int = DEFAULT_TIMEOUT,
    ):
        self.backend_name = backend_name
        self.model = model
        self.api_key_env = api_key_env
        self.api_base = api_base
        self.timeout = timeout

    def name(self) -> str:
        return self.backend_name

    def _api_key(self) -> Optional[str]:
        if not self.api_key_env:
            return None
        return os.environ.get(self.api_key_env)

    def is_available(self) -> bool:
        # Local servers are not checked up front; a dead server fails the query
        if not self.api_key_env:
            return True
        return bool(self._api_key())

    async def query(self, prompt: str, working_dir: Path) -> str:
        kwargs = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
        }
        api_key = self._api_key()
        if api_key:
            kwargs["api_key"] = api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base

        try:
            response = await asyncio.wait_for(
                litellm.acompletion(**kwargs),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise BackendError(f"Timeout ({self.timeout}s)")
        except Exception as e:
            logger.error(f"LiteLLM call failed for {self.backend_name}: {e}")
            raise BackendError(f"{self.backend_name} request failed: {e}") from e

        return response.choices[0].message.content or ""
