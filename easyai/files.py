"""
Local file access for attachment operations.
"""

from __future__ import annotations

import mimetypes
from collections.abc import Callable
from pathlib import Path

FileReader = Callable[[str | Path], bytes]


def read_file_bytes(path: str | Path) -> bytes:
    """Read the whole file into memory (blocking)."""
    return Path(path).expanduser().read_bytes()


def guess_mime_type(path: str | Path, default: str = "application/octet-stream") -> str:
    mime_type, _ = mimetypes.guess_type(str(path))
    return mime_type or default
