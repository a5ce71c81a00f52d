"""
OpenAI LLM client implementation for the pluggable LLM interface.

Also serves OpenAI-compatible endpoints (Groq and friends) through ``base_url``.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from concurrent.futures import Future
from typing import Any, Literal, cast

from loguru import logger
from openai import OpenAI

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
    schema_name,
    schema_to_json_schema,
    to_openai_messages,
    validate_object,
)
from .middleware import extract_reasoning, partial_object_stream, strip_reasoning

JsonMode = Literal["json_schema", "json_object"]


class OpenAILLMClient(LLMClient):
    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        max_retries: int | None = None,
        json_mode: JsonMode = "json_schema",
        reasoning_tag: str | None = None,
    ) -> None:
        api_key = api_key or config.openai_api_key
        if not api_key:
            raise ValueError("An API key is required for the OpenAI client")
        client_kwargs: dict[str, Any] = {
            "api_key": api_key,
            "timeout": config.openai_timeout if timeout is None else timeout,
            "max_retries": (
                config.openai_max_retries if max_retries is None else max_retries
            ),
        }
        base_url = base_url or config.openai_base_url
        if base_url:
            client_kwargs["base_url"] = base_url
        self._client = OpenAI(**client_kwargs)
        self._json_mode = json_mode
        self._reasoning_tag = reasoning_tag or config.reasoning_tag

    def generate_text(
        self, model: str, messages: ChatMessages, **kwargs: Any
    ) -> TextGeneration:
        cli = cast(Any, self._client)
        resp = cli.chat.completions.create(
            model=model,
            messages=to_openai_messages(messages),
            **kwargs,
        )
        message = resp.choices[0].message if resp.choices else None
        text = (message.content or "") if message is not None else ""
        return TextGeneration(
            text=text,
            reasoning=_message_reasoning(message),
            usage=_usage(resp),
        )

    def stream_text(
        self, model: str, messages: ChatMessages, **kwargs: Any
    ) -> TextStream:
        cli = cast(Any, self._client)
        stream = cli.chat.completions.create(
            model=model,
            messages=to_openai_messages(messages),
            stream=True,
            **kwargs,
        )
        reasoning: Future[str | None] = Future()
        return TextStream(
            text_stream=_iter_text_deltas(stream, reasoning),
            reasoning=reasoning,
        )

    def generate_object(
        self, model: str, messages: ChatMessages, schema: Schema, **kwargs: Any
    ) -> ObjectGeneration:
        cli = cast(Any, self._client)
        payload, response_format = self._structured_request(messages, schema)
        resp = cli.chat.completions.create(
            model=model,
            messages=payload,
            response_format=response_format,
            **kwargs,
        )
        message = resp.choices[0].message if resp.choices else None
        content = (message.content or "") if message is not None else ""
        text, _ = extract_reasoning(content, self._reasoning_tag)
        data = parse_json_text(text)
        return ObjectGeneration(object=validate_object(schema, data), usage=_usage(resp))

    def stream_object(
        self, model: str, messages: ChatMessages, schema: Schema, **kwargs: Any
    ) -> ObjectStream:
        cli = cast(Any, self._client)
        payload, response_format = self._structured_request(messages, schema)
        stream = cli.chat.completions.create(
            model=model,
            messages=payload,
            response_format=response_format,
            stream=True,
            **kwargs,
        )
        content = strip_reasoning(_iter_content(stream), self._reasoning_tag)
        return ObjectStream(
            partial_object_stream=partial_object_stream(content, schema)
        )

    def _structured_request(
        self, messages: ChatMessages, schema: Schema
    ) -> tuple[list[dict[str, Any]], dict[str, Any]]:
        payload = to_openai_messages(messages)
        json_schema = schema_to_json_schema(schema)
        if self._json_mode == "json_object":
            # JSON mode carries no schema; describe it to the model instead
            instruction = (
                "Respond with a single JSON object that matches this JSON schema:\n"
                f"{json.dumps(json_schema)}"
            )
            payload.insert(0, {"role": "system", "content": instruction})
            return payload, {"type": "json_object"}
        return payload, {
            "type": "json_schema",
            "json_schema": {"name": schema_name(schema), "schema": json_schema},
        }


def _message_reasoning(message: Any) -> str | None:
    # Some OpenAI-compatible servers return parsed reasoning in a side field
    for attr in ("reasoning", "reasoning_content"):
        value = getattr(message, attr, None)
        if isinstance(value, str) and value:
            return value
    return None


def _usage(resp: Any) -> Usage | None:
    usage = getattr(resp, "usage", None)
    if usage is None:
        return None
    return Usage(
        prompt_tokens=getattr(usage, "prompt_tokens", None),
        completion_tokens=getattr(usage, "completion_tokens", None),
        total_tokens=getattr(usage, "total_tokens", None),
    )


def _first_delta(chunk: Any) -> Any:
    choices = getattr(chunk, "choices", None) or []
    if not choices:
        return None
    return getattr(choices[0], "delta", None)


def _iter_content(stream: Any) -> Iterator[str]:
    for chunk in stream:
        delta = _first_delta(chunk)
        content = getattr(delta, "content", None) if delta is not None else None
        if content:
            yield content


def _iter_text_deltas(stream: Any, reasoning: Future[str | None]) -> Iterator[str]:
    reasoning_parts: list[str] = []
    try:
        for chunk in stream:
            delta = _first_delta(chunk)
            if delta is None:
                continue
            side_reasoning = _message_reasoning(delta)
            if side_reasoning:
                reasoning_parts.append(side_reasoning)
            content = getattr(delta, "content", None)
            if content:
                yield content
    except GeneratorExit:
        reasoning.cancel()
        close = getattr(stream, "close", None)
        if callable(close):
            close()
        raise
    except Exception as err:
        logger.error(f"OpenAI text stream failed: {err}")
        reasoning.set_exception(err)
        raise
    reasoning.set_result("".join(reasoning_parts) or None)
