"""
Result types returned by the easyai facade.

Every result is either a success carrying its payload or a failure carrying a
human readable ``error`` plus a machine readable ``error_kind``.
"""

from __future__ import annotations

from collections.abc import Iterator
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import Any

from easyai.llm.base import Usage

MODEL_NOT_SET = "ai model not set"


class ErrorKind(str, Enum):
    UNCONFIGURED = "unconfigured"
    ATTACHMENT_READ_FAILED = "attachment_read_failed"
    PROVIDER_FAULT = "provider_fault"


@dataclass
class _Result:
    success: bool
    error: str | None = None
    error_kind: ErrorKind | None = None

    def __post_init__(self) -> None:
        if self.success:
            if self.error is not None or self.error_kind is not None:
                raise ValueError("A successful result cannot carry an error")
        else:
            if not self.error or self.error_kind is None:
                raise ValueError("A failed result needs an error and an error kind")
            if any(value is not None for value in self._payload()):
                raise ValueError("A failed result cannot carry a payload")

    def _payload(self) -> tuple[Any, ...]:
        return ()

    @classmethod
    def failure(cls, error: str, kind: ErrorKind) -> Any:
        return cls(success=False, error=error, error_kind=kind)

    @classmethod
    def unconfigured(cls) -> Any:
        return cls.failure(MODEL_NOT_SET, ErrorKind.UNCONFIGURED)


@dataclass
class TextResult(_Result):
    text: str | None = None
    reasoning: str | None = None
    usage: Usage | None = None

    def _payload(self) -> tuple[Any, ...]:
        return (self.text, self.reasoning, self.usage)


@dataclass
class ObjectResult(_Result):
    object: Any = None
    usage: Usage | None = None

    def _payload(self) -> tuple[Any, ...]:
        return (self.object, self.usage)


@dataclass
class TextStreamResult(_Result):
    text_stream: Iterator[str] | None = None
    # Resolves once text_stream is drained; reading it earlier drains the
    # remaining text into the stream buffer
    reasoning: Future[str | None] | None = None

    def _payload(self) -> tuple[Any, ...]:
        return (self.text_stream, self.reasoning)


@dataclass
class ObjectStreamResult(_Result):
    partial_object_stream: Iterator[Any] | None = None

    def _payload(self) -> tuple[Any, ...]:
        return (self.partial_object_stream,)
