"""
easyai - a small facade over hosted AI model SDKs.

Chat, streaming, structured output, classification and multimodal prompting
against one configured model, with failures reported as results instead of
exceptions.
"""

from .client import AI, default_ai
from .core.models import (
    MODEL_NOT_SET,
    ErrorKind,
    ObjectResult,
    ObjectStreamResult,
    TextResult,
    TextStreamResult,
)

__all__ = [
    "AI",
    "MODEL_NOT_SET",
    "ErrorKind",
    "ObjectResult",
    "ObjectStreamResult",
    "TextResult",
    "TextStreamResult",
    "default_ai",
]
