"""Atomic file I/O operations."""

import os
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def atomic_write_text(file_path: Path, content: str, max_retries: int = 3) -> None:
    """
    Atomically write text to a file using temp file + rename.

    The file is either fully rewritten or left as it was. Existing file
    permissions are carried over to the replacement.

    Args:
        file_path: Target file path
        content: Text to write
        max_retries: Maximum number of attempts on failure

    Raises:
        OSError: If the write fails after all retries
    """
    # PID suffix avoids temp file collisions between processes
    tmp_file = file_path.with_suffix(f"{file_path.suffix}.tmp.{os.getpid()}")
    mode = file_path.stat().st_mode if file_path.exists() else None

    last_error = None
    for attempt in range(max_retries):
        try:
            # newline="" keeps the caller's line endings byte-for-byte
            with open(tmp_file, "w", encoding="utf-8", newline="") as f:
                f.write(content)
            if mode is not None:
                os.chmod(tmp_file, mode)
            os.replace(tmp_file, file_path)
            return
        except OSError as e:
            last_error = e
            if attempt < max_retries - 1:
                logger.warning(
                    f"Failed to write {file_path} (attempt {attempt + 1}/{max_retries}): {e}"
                )
        finally:
            if tmp_file.exists():
                try:
                    tmp_file.unlink()
                except OSError:
                    pass

    logger.error(f"Failed to write {file_path} after {max_retries} attempts: {last_error}")
    raise last_error
