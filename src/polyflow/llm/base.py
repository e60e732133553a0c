"""Base backend interface."""

from abc import ABC, abstractmethod
from pathlib import Path


class BackendError(Exception):
    """A backend could not be created or a query failed."""


class Backend(ABC):
    """Abstract base class for text-completion backends.

    The workflow engine only ever calls these three methods. Any exception
    raised by ``query`` is turned into a failed step result by the caller.
    """

    @abstractmethod
    def name(self) -> str:
        """Backend identifier, e.g. ``claude``."""

    @abstractmethod
    async def query(self, prompt: str, working_dir: Path) -> str:
        """
        Send a prompt to the backend and return its text answer.

        Args:
            prompt: Fully resolved prompt text.
            working_dir: Directory the backend should treat as the codebase root.

        Raises:
            BackendError: If the backend failed or timed out.
        """

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the backend can be used right now (binary on PATH, key set, ...)."""
