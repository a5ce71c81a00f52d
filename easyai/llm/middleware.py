"""
Stream and text transforms applied around provider clients.

- Reasoning extraction: content wrapped in ``<think>...</think>`` (tag name is
  configurable) is moved out of the answer text into a separate channel, both
  for complete texts and for streams where a tag may be split across chunks.
- Smooth streaming: re-chunks text deltas into words or lines with an optional
  pacing delay.
- Partial objects: turns a stream of JSON text deltas into growing snapshots.
- Stream guards: end a failing stream quietly and let its reasoning be read
  before the text has been consumed.
"""

from __future__ import annotations

import re
import time
from collections import deque
from collections.abc import Callable, Iterable, Iterator, Sequence
from concurrent.futures import Future
from typing import Any

from loguru import logger
from pydantic_core import from_json

from .base import (
    ChatMessages,
    LLMClient,
    ObjectGeneration,
    ObjectStream,
    Schema,
    TextGeneration,
    TextStream,
    schema_name,
    validate_object,
)


def _partial_marker_length(buffer: str, marker: str) -> int:
    """Length of the longest buffer suffix that could start ``marker``."""
    for size in range(min(len(marker) - 1, len(buffer)), 0, -1):
        if buffer.endswith(marker[:size]):
            return size
    return 0


class ReasoningSplitter:
    """Incrementally separates tagged reasoning from answer text."""

    def __init__(self, tag: str = "think") -> None:
        self._open = f"<{tag}>"
        self._close = f"</{tag}>"
        self._buffer = ""
        self._in_reasoning = False
        self._after_reasoning = False
        self._current: list[str] = []
        self._blocks: list[str] = []

    @property
    def reasoning(self) -> str | None:
        blocks = [block for block in self._blocks if block]
        return "\n".join(blocks) if blocks else None

    def feed(self, chunk: str) -> Iterator[str]:
        self._buffer += chunk
        while True:
            marker = self._close if self._in_reasoning else self._open
            idx = self._buffer.find(marker)
            if idx == -1:
                keep = _partial_marker_length(self._buffer, marker)
                cut = len(self._buffer) - keep
                ready, self._buffer = self._buffer[:cut], self._buffer[cut:]
                yield from self._emit(ready)
                return
            yield from self._emit(self._buffer[:idx])
            self._buffer = self._buffer[idx + len(marker) :]
            if self._in_reasoning:
                self._blocks.append("".join(self._current).strip())
                self._current = []
                self._after_reasoning = True
            self._in_reasoning = not self._in_reasoning

    def flush(self) -> Iterator[str]:
        rest, self._buffer = self._buffer, ""
        yield from self._emit(rest)
        if self._in_reasoning and self._current:
            # unterminated block: keep what the model produced
            self._blocks.append("".join(self._current).strip())
            self._current = []

    def _emit(self, text: str) -> Iterator[str]:
        if not text:
            return
        if self._in_reasoning:
            self._current.append(text)
            return
        if self._after_reasoning:
            text = text.lstrip()
            if not text:
                return
            self._after_reasoning = False
        yield text


def extract_reasoning(text: str, tag: str = "think") -> tuple[str, str | None]:
    """Split a complete model answer into ``(text, reasoning)``."""
    splitter = ReasoningSplitter(tag)
    pieces = list(splitter.feed(text or ""))
    pieces.extend(splitter.flush())
    return "".join(pieces), splitter.reasoning


def strip_reasoning(chunks: Iterable[str], tag: str = "think") -> Iterator[str]:
    """Drop tagged reasoning from a stream of text deltas."""
    splitter = ReasoningSplitter(tag)
    for chunk in chunks:
        yield from splitter.feed(chunk)
    yield from splitter.flush()


def _join_reasoning(*parts: str | None) -> str | None:
    present = [part for part in parts if part]
    return "\n".join(present) if present else None


def _settled_value(future: Future[str | None] | None) -> str | None:
    if future is None or not future.done() or future.cancelled():
        return None
    if future.exception() is not None:
        return None
    return future.result()


def split_reasoning_stream(
    chunks: Iterable[str],
    reasoning: Future[str | None],
    *,
    tag: str = "think",
    upstream_reasoning: Future[str | None] | None = None,
) -> Iterator[str]:
    """Yield answer deltas and resolve ``reasoning`` once the stream is drained.

    The future is cancelled when the consumer abandons the stream and carries
    the provider error when iteration fails.
    """
    splitter = ReasoningSplitter(tag)
    try:
        for chunk in chunks:
            yield from splitter.feed(chunk)
        yield from splitter.flush()
    except GeneratorExit:
        reasoning.cancel()
        raise
    except Exception as err:
        if not reasoning.done():
            reasoning.set_exception(err)
        raise
    reasoning.set_result(
        _join_reasoning(_settled_value(upstream_reasoning), splitter.reasoning)
    )


_CHUNK_PATTERNS: dict[str, re.Pattern[str]] = {
    "word": re.compile(r"\S+\s+"),
    "line": re.compile(r"\n+"),
}


def chunk_pattern(chunking: str | re.Pattern[str]) -> re.Pattern[str]:
    """Resolve a smoothing mode name (``word`` or ``line``) to its pattern."""
    if not isinstance(chunking, str):
        return chunking
    pattern = _CHUNK_PATTERNS.get(chunking)
    if pattern is None:
        raise ValueError(f"Unsupported chunking mode '{chunking}'")
    return pattern


def smooth_stream(
    chunks: Iterable[str],
    *,
    delay_seconds: float = 0.01,
    chunking: str | re.Pattern[str] = "word",
    sleep: Callable[[float], None] = time.sleep,
) -> Iterator[str]:
    """Re-chunk text deltas into words (or lines) and pace their delivery.

    An unknown chunking mode raises ``ValueError`` here, before any chunk is
    read.
    """
    return _smooth(chunks, chunk_pattern(chunking), delay_seconds, sleep)


def _smooth(
    chunks: Iterable[str],
    pattern: re.Pattern[str],
    delay_seconds: float,
    sleep: Callable[[float], None],
) -> Iterator[str]:
    buffer = ""
    for chunk in chunks:
        buffer += chunk
        match = pattern.search(buffer)
        while match is not None and match.end() > 0:
            piece, buffer = buffer[: match.end()], buffer[match.end() :]
            yield piece
            if delay_seconds > 0:
                sleep(delay_seconds)
            match = pattern.search(buffer)
    if buffer:
        yield buffer


def _strip_fence_prefix(text: str) -> str:
    if text.startswith("```"):
        newline = text.find("\n")
        return "" if newline == -1 else text[newline + 1 :]
    return text


_MISSING = object()


def partial_object_stream(
    chunks: Iterable[str], schema: Schema | None = None
) -> Iterator[Any]:
    """Parse a growing JSON text and yield each changed partial value.

    With ``schema`` the final snapshot is validated once the text ends; a
    mismatch is logged, the snapshots already yielded stay as they were.
    """
    buffer = ""
    last: Any = _MISSING
    for chunk in chunks:
        buffer += chunk
        candidate = _strip_fence_prefix(buffer.lstrip())
        if not candidate.strip():
            continue
        try:
            value = from_json(candidate, allow_partial=True)
        except ValueError:
            continue
        if value != last:
            last = value
            yield value
    if last is _MISSING:
        if buffer.strip():
            logger.warning(
                f"Structured stream ended without parsable JSON ({len(buffer)} chars)"
            )
        return
    if schema is not None:
        try:
            validate_object(schema, last)
        except ValueError as err:
            logger.warning(
                f"Final streamed object does not match {schema_name(schema)}: {err}"
            )


def guard_stream(
    items: Iterable[Any],
    *,
    label: str,
    reasoning: Future[str | None] | None = None,
) -> Iterator[Any]:
    """End a stream quietly when the source fails mid-iteration.

    The fault is logged and, when given, stored on ``reasoning`` so the
    consumer can still tell a cut stream from a complete one.
    """
    try:
        yield from items
    except Exception as err:
        logger.error(f"{label} interrupted: {err}")
        if reasoning is not None and not reasoning.done():
            reasoning.set_exception(err)


class BufferedStream(Iterator[str]):
    """Single-pass text stream that can pull its remaining chunks ahead of time."""

    def __init__(self, source: Iterable[str]) -> None:
        self._source = iter(source)
        self._buffer: deque[str] = deque()

    def __iter__(self) -> BufferedStream:
        return self

    def __next__(self) -> str:
        if self._buffer:
            return self._buffer.popleft()
        return next(self._source)

    def drain(self) -> None:
        self._buffer.extend(self._source)

    def close(self) -> None:
        close = getattr(self._source, "close", None)
        if callable(close):
            close()


class StreamReasoning(Future):  # type: ignore[type-arg]
    """Reasoning of a streamed answer.

    Mirrors the provider's reasoning future. Asking for the value before the
    text has been consumed drains the rest of the stream into its buffer, so
    the text can still be read afterwards.
    """

    def __init__(
        self, stream: BufferedStream, upstream: Future[str | None]
    ) -> None:
        super().__init__()
        self._stream = stream
        upstream.add_done_callback(self._copy)

    def _copy(self, upstream: Future[str | None]) -> None:
        if self.done():
            return
        if upstream.cancelled():
            self.cancel()
            return
        err = upstream.exception()
        if err is not None:
            self.set_exception(err)
        else:
            self.set_result(upstream.result())

    def _settle(self) -> None:
        if self.done():
            return
        self._stream.drain()
        if not self.done():
            # the source ended without reporting reasoning
            self.set_result(None)

    def result(self, timeout: float | None = None) -> str | None:
        self._settle()
        return super().result(timeout)

    def exception(self, timeout: float | None = None) -> BaseException | None:
        self._settle()
        return super().exception(timeout)


class ReasoningExtractingClient(LLMClient):
    """Wraps a client so that tagged reasoning never reaches the answer text."""

    def __init__(self, client: LLMClient, tag: str = "think") -> None:
        self.client = client
        self.tag = tag

    def generate_text(
        self, model: str, messages: ChatMessages, **kwargs: Any
    ) -> TextGeneration:
        generation = self.client.generate_text(model, messages, **kwargs)
        text, reasoning = extract_reasoning(generation.text, self.tag)
        return TextGeneration(
            text=text,
            reasoning=_join_reasoning(generation.reasoning, reasoning),
            usage=generation.usage,
        )

    def stream_text(
        self, model: str, messages: ChatMessages, **kwargs: Any
    ) -> TextStream:
        stream = self.client.stream_text(model, messages, **kwargs)
        reasoning: Future[str | None] = Future()
        return TextStream(
            text_stream=split_reasoning_stream(
                stream.text_stream,
                reasoning,
                tag=self.tag,
                upstream_reasoning=stream.reasoning,
            ),
            reasoning=reasoning,
        )

    def generate_object(
        self, model: str, messages: ChatMessages, schema: Schema, **kwargs: Any
    ) -> ObjectGeneration:
        return self.client.generate_object(model, messages, schema, **kwargs)

    def stream_object(
        self, model: str, messages: ChatMessages, schema: Schema, **kwargs: Any
    ) -> ObjectStream:
        return self.client.stream_object(model, messages, schema, **kwargs)

    def generate_enum(
        self,
        model: str,
        messages: ChatMessages,
        categories: Sequence[str],
        **kwargs: Any,
    ) -> ObjectGeneration:
        return self.client.generate_enum(model, messages, categories, **kwargs)
