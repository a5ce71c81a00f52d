"""
LLM package exposing a provider-agnostic interface.

Backed by OpenAI-compatible endpoints (OpenAI, Groq) and Google Gemini, with a
registry for other vendors.
"""

from .base import (
    ChatMessage,
    ChatMessages,
    ContentPart,
    FilePart,
    ImagePart,
    LLMClient,
    ObjectGeneration,
    ObjectStream,
    Schema,
    TextGeneration,
    TextPart,
    TextStream,
    Usage,
)
from .provider import (
    ModelHandle,
    available_providers,
    create_model,
    parse_model_spec,
    register_provider,
    unregister_provider,
)

__all__ = [
    "ChatMessage",
    "ChatMessages",
    "ContentPart",
    "FilePart",
    "ImagePart",
    "LLMClient",
    "ModelHandle",
    "ObjectGeneration",
    "ObjectStream",
    "Schema",
    "TextGeneration",
    "TextPart",
    "TextStream",
    "Usage",
    "available_providers",
    "create_model",
    "parse_model_spec",
    "register_provider",
    "unregister_provider",
]
