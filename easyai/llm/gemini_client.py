"""Google Gemini LLM client implementation using the google-genai SDK."""

from __future__ import annotations

from collections.abc import Iterator
from concurrent.futures import Future
from typing import Any

from google import genai
from google.genai import types as genai_types
from loguru import logger

from easyai.configs.config import config

from .base import (
    ChatMessages,
    LLMClient,
    ObjectGeneration,
    ObjectStream,
    Schema,
    TextGeneration,
    TextStream,
    Usage,
    parse_json_text,
    to_gemini_contents,
    validate_object,
)
from .middleware import partial_object_stream


class GeminiLLMClient(LLMClient):
    """LLM client backed by Google Gemini models via the official SDK."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        endpoint: str | None = None,
        timeout: float | None = None,
    ) -> None:
        api_key = api_key or config.google_gemini_api_key
        if not api_key:
            raise ValueError("GOOGLE_GEMINI_API_KEY is required for Gemini client")

        http_options: dict[str, Any] = {}
        endpoint = endpoint or config.google_gemini_endpoint
        if endpoint:
            http_options["base_url"] = endpoint
        timeout = config.google_gemini_timeout if timeout is None else timeout
        if timeout and timeout > 0:
            # google-genai expects milliseconds
            http_options["timeout"] = int(timeout * 1000)

        self._client = genai.Client(
            api_key=api_key,
            http_options=http_options or None,
        )

    def _request(
        self, messages: ChatMessages, options: dict[str, Any]
    ) -> tuple[list[dict[str, Any]], dict[str, Any] | None]:
        system_instruction, contents = to_gemini_contents(messages)
        config_payload = _build_generation_config(options)
        if system_instruction:
            config_payload["system_instruction"] = system_instruction
        return contents, config_payload or None

    def generate_text(
        self, model: str, messages: ChatMessages, **kwargs: Any
    ) -> TextGeneration:
        contents, config_payload = self._request(messages, kwargs)
        response = self._client.models.generate_content(
            model=model, contents=contents, config=config_payload
        )
        text, reasoning = _split_parts(response)
        return TextGeneration(text=text, reasoning=reasoning, usage=_usage(response))

    def stream_text(
        self, model: str, messages: ChatMessages, **kwargs: Any
    ) -> TextStream:
        contents, config_payload = self._request(messages, kwargs)
        chunks = self._client.models.generate_content_stream(
            model=model, contents=contents, config=config_payload
        )
        reasoning: Future[str | None] = Future()
        return TextStream(
            text_stream=_iter_text_chunks(chunks, reasoning), reasoning=reasoning
        )

    def generate_object(
        self, model: str, messages: ChatMessages, schema: Schema, **kwargs: Any
    ) -> ObjectGeneration:
        contents, config_payload = self._request(
            messages, {**kwargs, **_schema_options(schema)}
        )
        response = self._client.models.generate_content(
            model=model, contents=contents, config=config_payload
        )
        parsed = getattr(response, "parsed", None)
        if parsed is None:
            text, _ = _split_parts(response)
            parsed = parse_json_text(text)
        return ObjectGeneration(
            object=validate_object(schema, parsed), usage=_usage(response)
        )

    def stream_object(
        self, model: str, messages: ChatMessages, schema: Schema, **kwargs: Any
    ) -> ObjectStream:
        contents, config_payload = self._request(
            messages, {**kwargs, **_schema_options(schema)}
        )
        chunks = self._client.models.generate_content_stream(
            model=model, contents=contents, config=config_payload
        )
        return ObjectStream(
            partial_object_stream=partial_object_stream(
                _iter_answer_text(chunks), schema
            )
        )


_ALLOWED_CONFIG_KEYS = {
    "temperature",
    "top_p",
    "top_k",
    "max_output_tokens",
    "stop_sequences",
    "candidate_count",
    "presence_penalty",
    "frequency_penalty",
    "seed",
    "safety_settings",
    "response_mime_type",
    "response_schema",
    "response_json_schema",
    "thinking_config",
}


def _build_generation_config(options: dict[str, Any]) -> dict[str, Any]:
    ignored = sorted(key for key in options if key not in _ALLOWED_CONFIG_KEYS)
    if ignored:
        logger.debug(f"Ignoring unsupported Gemini options: {ignored}")
    return {
        key: value
        for key, value in options.items()
        if key in _ALLOWED_CONFIG_KEYS and value is not None
    }


def _schema_options(schema: Schema) -> dict[str, Any]:
    options: dict[str, Any] = {"response_mime_type": "application/json"}
    if isinstance(schema, dict):
        options["response_json_schema"] = schema
    else:
        options["response_schema"] = schema
    return options


def _response_parts(response: Any) -> list[Any]:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    content = getattr(candidates[0], "content", None)
    return list(getattr(content, "parts", None) or []) if content is not None else []


def _split_parts(response: Any) -> tuple[str, str | None]:
    """Return ``(answer_text, thought_text)`` from a Gemini response."""
    answer: list[str] = []
    thoughts: list[str] = []
    for part in _response_parts(response):
        part_text = getattr(part, "text", None)
        if not part_text:
            continue
        if getattr(part, "thought", False):
            thoughts.append(str(part_text))
        else:
            answer.append(str(part_text))
    return "".join(answer), ("".join(thoughts) or None)


def _usage(response: genai_types.GenerateContentResponse) -> Usage | None:
    metadata = getattr(response, "usage_metadata", None)
    if metadata is None:
        return None
    return Usage(
        prompt_tokens=getattr(metadata, "prompt_token_count", None),
        completion_tokens=getattr(metadata, "candidates_token_count", None),
        total_tokens=getattr(metadata, "total_token_count", None),
    )


def _iter_answer_text(chunks: Any) -> Iterator[str]:
    for chunk in chunks:
        text, _ = _split_parts(chunk)
        if text:
            yield text


def _iter_text_chunks(chunks: Any, reasoning: Future[str | None]) -> Iterator[str]:
    thoughts: list[str] = []
    try:
        for chunk in chunks:
            text, thought = _split_parts(chunk)
            if thought:
                thoughts.append(thought)
            if text:
                yield text
    except GeneratorExit:
        reasoning.cancel()
        raise
    except Exception as err:
        logger.error(f"Gemini text stream failed: {err}")
        reasoning.set_exception(err)
        raise
    reasoning.set_result("".join(thoughts) or None)
