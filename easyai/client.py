"""
AI client facade.

One ``AI`` instance holds one resolved model handle and exposes chat,
streaming, structured generation, classification and attachment helpers.
No method raises: failures come back as results with ``success=False``.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import AnyUrl, TypeAdapter

from easyai.configs.config import config
from easyai.core.models import (
    ErrorKind,
    ObjectResult,
    ObjectStreamResult,
    TextResult,
    TextStreamResult,
)
from easyai.files import FileReader, read_file_bytes
from easyai.llm.base import ChatMessage, ChatMessages, ContentPart, Schema
from easyai.llm.middleware import (
    BufferedStream,
    StreamReasoning,
    chunk_pattern,
    guard_stream,
    smooth_stream,
)
from easyai.llm.provider import ModelHandle, create_model

_URL_ADAPTER = TypeAdapter(AnyUrl)


def _describe(err: BaseException) -> str:
    return str(err) or err.__class__.__name__


def _with_attachment(messages: ChatMessages, part: ContentPart) -> list[ChatMessage]:
    return [*messages, {"role": "user", "content": [part]}]


class AI:
    """Uniform, non-raising access to a single configured model."""

    def __init__(
        self,
        provider: str,
        model_name: str,
        api_key: str | None = None,
        *,
        file_reader: FileReader | None = None,
        smooth: bool | None = None,
    ) -> None:
        self.provider = provider
        self.model_name = model_name
        self._read_file = file_reader or read_file_bytes
        self._smooth = config.smooth_stream_enabled if smooth is None else smooth
        self.model: ModelHandle | None = create_model(provider, model_name, api_key)

    @property
    def is_configured(self) -> bool:
        return self.model is not None

    def chat(self, messages: ChatMessages) -> TextResult:
        """Chat with the model and wait for the full answer."""
        if self.model is None:
            return TextResult.unconfigured()
        return self._generate_text(self.model, messages)

    def stream_chat(self, messages: ChatMessages) -> TextStreamResult:
        """Chat with the model and get the answer as a lazy text stream."""
        if self.model is None:
            return TextStreamResult.unconfigured()
        pattern = None
        if self._smooth:
            try:
                pattern = chunk_pattern(config.smooth_stream_chunking)
            except ValueError as err:
                logger.error(f"Stream smoothing misconfigured: {err}")
                return TextStreamResult.failure(str(err), ErrorKind.PROVIDER_FAULT)
        try:
            stream = self.model.client.stream_text(self.model.model_name, messages)
        except Exception as err:
            logger.error(f"Streaming chat failed: {err}")
            return TextStreamResult.failure(_describe(err), ErrorKind.PROVIDER_FAULT)

        text_stream: Iterator[str] = guard_stream(
            stream.text_stream, label="Chat stream", reasoning=stream.reasoning
        )
        if pattern is not None:
            text_stream = smooth_stream(
                text_stream,
                delay_seconds=config.smooth_stream_delay_ms / 1000.0,
                chunking=pattern,
            )
        buffered = BufferedStream(text_stream)
        return TextStreamResult(
            success=True,
            text_stream=buffered,
            reasoning=StreamReasoning(buffered, stream.reasoning),
        )

    def create_object(self, messages: ChatMessages, schema: Schema) -> ObjectResult:
        """Generate structured output conforming to ``schema``."""
        if self.model is None:
            return ObjectResult.unconfigured()
        return self._generate_object(self.model, messages, schema)

    def stream_create_object(
        self, messages: ChatMessages, schema: Schema
    ) -> ObjectStreamResult:
        """Generate structured output as a stream of partial objects."""
        if self.model is None:
            return ObjectStreamResult.unconfigured()
        try:
            stream = self.model.client.stream_object(
                self.model.model_name, messages, schema
            )
        except Exception as err:
            logger.error(f"Streaming object generation failed: {err}")
            return ObjectStreamResult.failure(_describe(err), ErrorKind.PROVIDER_FAULT)
        return ObjectStreamResult(
            success=True,
            partial_object_stream=guard_stream(
                stream.partial_object_stream, label="Object stream"
            ),
        )

    def classify_text(
        self, messages: ChatMessages, categories: Sequence[str]
    ) -> ObjectResult:
        """Classify the conversation into exactly one of ``categories``."""
        if self.model is None:
            return ObjectResult.unconfigured()
        try:
            generation = self.model.client.generate_enum(
                self.model.model_name, messages, categories
            )
        except Exception as err:
            logger.error(f"Text classification failed: {err}")
            return ObjectResult.failure(_describe(err), ErrorKind.PROVIDER_FAULT)
        return ObjectResult(
            success=True, object=generation.object, usage=generation.usage
        )

    def chat_with_image_file_path(
        self, messages: ChatMessages, image_file_path: str | Path
    ) -> TextResult:
        """Share a local image and chat about it."""
        if self.model is None:
            return TextResult.unconfigured()
        image, error = self._load_attachment(image_file_path)
        if image is None:
            return TextResult.failure(error, ErrorKind.ATTACHMENT_READ_FAILED)
        return self._generate_text(
            self.model, _with_attachment(messages, {"type": "image", "image": image})
        )

    def chat_with_image_url(
        self, messages: ChatMessages, image_url: str
    ) -> TextResult:
        """Share an image by URL and chat about it."""
        if self.model is None:
            return TextResult.unconfigured()
        try:
            url = _URL_ADAPTER.validate_python(image_url)
        except ValueError as err:
            logger.error(f"Invalid image URL {image_url!r}: {err}")
            return TextResult.failure(
                f"Invalid image URL: {image_url}", ErrorKind.ATTACHMENT_READ_FAILED
            )
        return self._generate_text(
            self.model, _with_attachment(messages, {"type": "image", "image": str(url)})
        )

    def chat_with_file(
        self, messages: ChatMessages, file_path: str | Path, mime_type: str
    ) -> TextResult:
        """Share a file (pdf, json, ...) and chat about it."""
        if self.model is None:
            return TextResult.unconfigured()
        data, error = self._load_attachment(file_path)
        if data is None:
            return TextResult.failure(error, ErrorKind.ATTACHMENT_READ_FAILED)
        part: ContentPart = {
            "type": "file",
            "data": data,
            "mime_type": mime_type,
            "filename": Path(file_path).name,
        }
        return self._generate_text(self.model, _with_attachment(messages, part))

    def extract_data_from_file(
        self,
        messages: ChatMessages,
        schema: Schema,
        file_path: str | Path,
        mime_type: str,
    ) -> ObjectResult:
        """Extract structured data from a file (pdf, json, ...)."""
        if self.model is None:
            return ObjectResult.unconfigured()
        data, error = self._load_attachment(file_path)
        if data is None:
            return ObjectResult.failure(error, ErrorKind.ATTACHMENT_READ_FAILED)
        part: ContentPart = {
            "type": "file",
            "data": data,
            "mime_type": mime_type,
            "filename": Path(file_path).name,
        }
        return self._generate_object(
            self.model, _with_attachment(messages, part), schema
        )

    def _load_attachment(self, path: str | Path) -> tuple[bytes | None, str]:
        """Return ``(contents, "")`` or ``(None, error_description)``."""
        try:
            return self._read_file(path), ""
        except Exception as err:
            logger.error(f"Failed to read attachment {path}: {err}")
            return None, _describe(err)

    def _generate_text(self, model: ModelHandle, messages: ChatMessages) -> TextResult:
        try:
            generation = model.client.generate_text(model.model_name, messages)
        except Exception as err:
            logger.error(f"Chat request failed: {err}")
            return TextResult.failure(_describe(err), ErrorKind.PROVIDER_FAULT)
        return TextResult(
            success=True,
            text=generation.text,
            reasoning=generation.reasoning,
            usage=generation.usage,
        )

    def _generate_object(
        self, model: ModelHandle, messages: ChatMessages, schema: Schema
    ) -> ObjectResult:
        try:
            generation = model.client.generate_object(
                model.model_name, messages, schema
            )
        except Exception as err:
            logger.error(f"Object generation failed: {err}")
            return ObjectResult.failure(_describe(err), ErrorKind.PROVIDER_FAULT)
        return ObjectResult(
            success=True, object=generation.object, usage=generation.usage
        )

    def __repr__(self) -> str:
        state = "configured" if self.is_configured else "unconfigured"
        return f"AI(provider={self.provider!r}, model={self.model_name!r}, {state})"


def default_ai(**kwargs: Any) -> AI:
    """Build an ``AI`` from the configured default provider and model."""
    return AI(config.default_provider, config.default_model, **kwargs)
