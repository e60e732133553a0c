"""polyflow: dependency-ordered workflows over shell commands and model backends."""

__version__ = "0.1.0"
