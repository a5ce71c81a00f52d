"""
LLM provider registry and model handle construction.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass

from loguru import logger

from easyai.configs.config import config

from .base import LLMClient
from .gemini_client import GeminiLLMClient
from .middleware import ReasoningExtractingClient
from .openai_client import OpenAILLMClient

# Receives the resolved API key (may be None) and returns a ready client
ProviderFactory = Callable[[str | None], LLMClient]


@dataclass(frozen=True)
class ModelHandle:
    """A model under a provider, with credentials already bound."""

    provider: str
    model_name: str
    client: LLMClient


_factories: dict[str, ProviderFactory] = {}
_aliases: dict[str, str] = {}


def register_provider(
    name: str, factory: ProviderFactory, *, aliases: Iterable[str] = ()
) -> None:
    key = name.lower()
    _factories[key] = factory
    for alias in aliases:
        _aliases[alias.lower()] = key


def unregister_provider(name: str) -> None:
    key = name.lower()
    _factories.pop(key, None)
    for alias in [a for a, target in _aliases.items() if target == key]:
        del _aliases[alias]


def available_providers() -> list[str]:
    return sorted(_factories)


def resolve_provider(name: str | None) -> str | None:
    """Return the canonical registered provider name, if any."""
    key = (name or "").strip().lower()
    key = _aliases.get(key, key)
    return key if key in _factories else None


def parse_model_spec(spec: str, default_provider: str | None = None) -> tuple[str, str]:
    """Split ``provider/model`` into its parts.

    Model identifiers may contain slashes themselves, so the prefix is only
    treated as a provider when it is registered.
    """
    prefix, separator, rest = spec.partition("/")
    if separator and rest and resolve_provider(prefix):
        return prefix.lower(), rest
    return (default_provider or config.default_provider), spec


def create_model(
    provider: str,
    model_name: str,
    api_key: str | None = None,
    *,
    reasoning_tag: str | None = None,
) -> ModelHandle | None:
    """Resolve a model handle, or ``None`` when it cannot be configured."""
    canonical = resolve_provider(provider)
    if canonical is None:
        logger.warning(f"Unsupported provider '{provider}'; ai model left unset")
        return None
    if not model_name:
        logger.warning(f"No model name given for provider '{canonical}'")
        return None

    try:
        client = _factories[canonical](api_key or config.api_key_for(canonical))
    except Exception as err:
        logger.error(f"Failed to initialize provider '{canonical}': {err}")
        return None

    return ModelHandle(
        provider=canonical,
        model_name=model_name,
        client=ReasoningExtractingClient(
            client, tag=reasoning_tag or config.reasoning_tag
        ),
    )


def _groq_client(api_key: str | None) -> LLMClient:
    if not api_key:
        raise ValueError("GROQ_API_KEY is required for Groq client")
    # json_schema response_format is only served by some Groq models
    return OpenAILLMClient(
        api_key=api_key, base_url=config.groq_base_url, json_mode="json_object"
    )


def _openai_client(api_key: str | None) -> LLMClient:
    return OpenAILLMClient(api_key=api_key)


def _gemini_client(api_key: str | None) -> LLMClient:
    return GeminiLLMClient(api_key=api_key)


register_provider("groq", _groq_client)
register_provider("openai", _openai_client)
register_provider("google", _gemini_client, aliases=("gemini",))
