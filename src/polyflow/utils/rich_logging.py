"""Console logging for the polyflow CLI."""

import logging
import sys
from datetime import datetime
from typing import Optional, TextIO

LOGGER_NAME = "polyflow"


class PolyflowLogFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL [polyflow] [step] message``, level colored when enabled.

    The step tag appears when the record was logged with ``extra={"step": name}``.
    """

    def __init__(self, label: str = LOGGER_NAME, use_colors: bool = True):
        super().__init__()
        self.label = label
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        if self.use_colors:
            level_colors = {
                "DEBUG": "\033[36m",      # Cyan
                "INFO": "\033[32m",       # Green
                "WARNING": "\033[33m",    # Yellow
                "ERROR": "\033[31m",      # Red
                "CRITICAL": "\033[35m",   # Magenta
            }
            reset = "\033[0m"
            level_color = level_colors.get(record.levelname, "")
        else:
            level_color = ""
            reset = ""

        step_context = f"[{record.step}] " if getattr(record, "step", None) else ""
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        return (
            f"{timestamp} {level_color}{record.levelname:8s}{reset} "
            f"[{self.label}] {step_context}{message}"
        )


def setup_logging(level: str = "INFO", stream: Optional[TextIO] = None) -> logging.Logger:
    """
    Attach the polyflow formatter to the package logger.

    Logs go to stderr by default so report output on stdout stays clean.
    Colors are only used when the stream is a terminal. Calling this again
    replaces the previous handler.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        stream: Destination stream (defaults to stderr)

    Returns:
        The configured ``polyflow`` logger
    """
    stream = stream or sys.stderr
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper()))

    # Close existing handlers before clearing (prevents file descriptor leak)
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)

    use_colors = stream.isatty() if hasattr(stream, "isatty") else False
    handler = logging.StreamHandler(stream)
    handler.setFormatter(PolyflowLogFormatter(use_colors=use_colors))
    logger.addHandler(handler)

    return logger
