"""Utilities shared by the pdftextx modules."""

from __future__ import annotations

import logging
from pathlib import Path

_LOGGER = logging.getLogger("pdftextx")

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: int = logging.WARNING) -> logging.Logger:
    """Attach a stream handler to the package logger and set its level."""

    logger = logging.getLogger("pdftextx")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def resolve_path(path: str | Path | None) -> Path:
    if path is None:
        raise ValueError("Path must not be None")
    resolved = Path(path).expanduser().resolve()
    _LOGGER.debug("Resolved path '%s' to '%s'", path, resolved)
    return resolved


def read_pdf_bytes(path: str | Path) -> bytes:
    """Load the whole file at *path* into memory."""

    return resolve_path(path).read_bytes()


def as_buffer(data: bytes | bytearray | memoryview) -> bytes:
    """Normalise any bytes-like input into an immutable ``bytes`` buffer."""

    if isinstance(data, bytes):
        return data
    if isinstance(data, (bytearray, memoryview)):
        return bytes(data)
    raise TypeError(f"Expected a bytes-like PDF buffer, got {type(data).__name__}")


def decode_be_integer(buffer: bytes) -> int:
    """Decode a big-endian integer from ``buffer`` handling empty segments."""

    if not buffer:
        return 0
    return int.from_bytes(buffer, "big")


def format_file_size(size_bytes: float) -> str:
    """Format a byte count as e.g. ``"1.5 MB"``."""

    for unit in ("B", "KB", "MB", "GB", "TB"):
        if size_bytes < 1024.0:
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024.0
    return f"{size_bytes:.1f} PB"
