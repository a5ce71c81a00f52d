"""
Configuration file for pytest test suite.
"""

from __future__ import annotations

import os
from collections.abc import Generator, Iterable
from concurrent.futures import Future
from pathlib import Path
from typing import Any

import pytest

os.environ.setdefault("EASYAI_SMOOTH_STREAM_DELAY_MS", "0")

from easyai.llm.base import (
    ChatMessages,
    LLMClient,
    ObjectGeneration,
    ObjectStream,
    Schema,
    TextGeneration,
    TextStream,
    Usage,
    validate_object,
)
from easyai.llm.middleware import partial_object_stream
from easyai.llm.provider import register_provider, unregister_provider


def render_conversation(messages: ChatMessages) -> str:
    """Deterministic echo of a conversation: ``role=text`` joined by `` | ``."""
    rendered: list[str] = []
    for message in messages:
        content = message["content"]
        if isinstance(content, str):
            text = content
        else:
            text = ",".join(str(part.get("type")) for part in content)
        rendered.append(f"{message['role']}={text}")
    return " | ".join(rendered)


class FakeLLMClient(LLMClient):
    """Provider double recording every call; can be told to fail."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, list[Any]]] = []
        self.error: Exception | None = None
        self.reply_prefix = ""
        self.object_payload: Any = None
        self.stream_chunks: Iterable[str] = ["Hello ", "wor", "ld"]

    def _record(self, operation: str, model: str, messages: ChatMessages) -> None:
        self.calls.append((operation, model, list(messages)))
        if self.error is not None:
            raise self.error

    def generate_text(
        self, model: str, messages: ChatMessages, **kwargs: Any
    ) -> TextGeneration:
        self._record("generate_text", model, messages)
        return TextGeneration(
            text=self.reply_prefix + render_conversation(messages),
            usage=Usage(prompt_tokens=3, completion_tokens=5, total_tokens=8),
        )

    def stream_text(
        self, model: str, messages: ChatMessages, **kwargs: Any
    ) -> TextStream:
        self._record("stream_text", model, messages)
        reasoning: Future[str | None] = Future()
        reasoning.set_result(None)
        return TextStream(text_stream=iter(self.stream_chunks), reasoning=reasoning)

    def generate_object(
        self, model: str, messages: ChatMessages, schema: Schema, **kwargs: Any
    ) -> ObjectGeneration:
        self._record("generate_object", model, messages)
        return ObjectGeneration(
            object=validate_object(schema, self.object_payload),
            usage=Usage(prompt_tokens=4, completion_tokens=2, total_tokens=6),
        )

    def stream_object(
        self, model: str, messages: ChatMessages, schema: Schema, **kwargs: Any
    ) -> ObjectStream:
        self._record("stream_object", model, messages)
        return ObjectStream(
            partial_object_stream=partial_object_stream(
                iter(self.stream_chunks), schema
            )
        )


class SpyFileReader:
    """File reader double that counts reads and serves fixed bytes."""

    def __init__(self, data: bytes = b"\x89PNG\r\n\x1a\nfake") -> None:
        self.data = data
        self.paths: list[str] = []

    def __call__(self, path: str | Path) -> bytes:
        self.paths.append(str(path))
        return self.data


@pytest.fixture
def fake_client() -> FakeLLMClient:
    return FakeLLMClient()


@pytest.fixture
def fake_provider(fake_client: FakeLLMClient) -> Generator[FakeLLMClient, None, None]:
    """Register ``fake`` (alias ``stub``) in the provider registry for one test."""
    received_keys: list[str | None] = []

    def _factory(api_key: str | None) -> LLMClient:
        received_keys.append(api_key)
        return fake_client

    register_provider("fake", _factory, aliases=("stub",))
    fake_client.received_keys = received_keys  # type: ignore[attr-defined]
    yield fake_client
    unregister_provider("fake")


@pytest.fixture
def spy_reader() -> SpyFileReader:
    return SpyFileReader()


@pytest.fixture
def conversation() -> list[dict[str, Any]]:
    return [
        {"role": "system", "content": "You are terse."},
        {"role": "user", "content": "hi"},
    ]
