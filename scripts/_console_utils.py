"""
Shared Rich console helpers for CLI scripts.
"""

from __future__ import annotations

from functools import lru_cache

from rich.console import Console
from rich.text import Text


@lru_cache(maxsize=1)
def get_console() -> Console:
    """Return a shared stdout console instance."""
    return Console()


def status_label(label: str, style: str) -> Text:
    """Create a styled status label wrapped in brackets."""
    text = Text(f"[{label}]")
    text.stylize(style)
    return text


def ok_label() -> Text:
    return status_label("OK", "bold green")


def fail_label() -> Text:
    return status_label("FAIL", "bold red")


def info_label() -> Text:
    return status_label("INFO", "bold blue")
