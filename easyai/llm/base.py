from __future__ import annotations

import abc
import base64
import json
import re
from collections.abc import Iterator, Sequence
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Literal, NotRequired, TypedDict, cast
from urllib.parse import urlsplit

from pydantic import BaseModel, create_model

from easyai.files import guess_mime_type

MessageRole = Literal["system", "user", "assistant"]


class TextPart(TypedDict):
    type: Literal["text"]
    text: str


class ImagePart(TypedDict):
    type: Literal["image"]
    # Raw bytes, or a URL / data URI string
    image: bytes | str
    mime_type: NotRequired[str]


class FilePart(TypedDict):
    type: Literal["file"]
    data: bytes
    mime_type: str
    filename: NotRequired[str]


ContentPart = TextPart | ImagePart | FilePart


class ChatMessage(TypedDict):
    role: MessageRole
    content: str | list[ContentPart]


ChatMessages = Sequence[ChatMessage]

# A pydantic model class, or a raw JSON schema document
Schema = type[BaseModel] | dict[str, Any]


@dataclass(frozen=True)
class Usage:
    """Token accounting copied from the provider response."""

    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


@dataclass
class TextGeneration:
    text: str
    reasoning: str | None = None
    usage: Usage | None = None


@dataclass
class TextStream:
    text_stream: Iterator[str]
    reasoning: Future[str | None]


@dataclass
class ObjectGeneration:
    object: Any
    usage: Usage | None = None


@dataclass
class ObjectStream:
    # JSON objects or arrays, growing as the text arrives
    partial_object_stream: Iterator[Any]


_IMAGE_SIGNATURES: tuple[tuple[bytes, str], ...] = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"BM", "image/bmp"),
)


def sniff_image_mime(data: bytes, default: str = "image/png") -> str:
    """Guess an image MIME type from its leading bytes."""
    for signature, mime_type in _IMAGE_SIGNATURES:
        if data.startswith(signature):
            return mime_type
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return default


def to_data_uri(data: bytes, mime_type: str) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def _image_mime(part: ImagePart) -> str:
    image = part["image"]
    if "mime_type" in part:
        return part["mime_type"]
    if isinstance(image, bytes | bytearray):
        return sniff_image_mime(bytes(image))
    # data URIs carry their type; plain URLs are judged by the path suffix
    if image.startswith("data:"):
        return guess_mime_type(image, default="image/jpeg")
    return guess_mime_type(urlsplit(image).path, default="image/jpeg")


def to_openai_messages(messages: ChatMessages) -> list[dict[str, Any]]:
    """Normalize chat messages into OpenAI-compatible payloads."""

    normalized: list[dict[str, Any]] = []
    for message in messages:
        if "role" not in message or "content" not in message:
            raise ValueError("Chat message must include 'role' and 'content'.")
        content = message["content"]
        if isinstance(content, str):
            normalized.append({"role": message["role"], "content": content})
            continue
        parts: list[dict[str, Any]] = []
        for part in content:
            part_type = part.get("type")
            if part_type == "text":
                parts.append({"type": "text", "text": cast(TextPart, part)["text"]})
            elif part_type == "image":
                image_part = cast(ImagePart, part)
                image = image_part["image"]
                if isinstance(image, bytes | bytearray):
                    url = to_data_uri(bytes(image), _image_mime(image_part))
                else:
                    url = str(image)
                parts.append({"type": "image_url", "image_url": {"url": url}})
            elif part_type == "file":
                file_part = cast(FilePart, part)
                parts.append(
                    {
                        "type": "file",
                        "file": {
                            "filename": file_part.get("filename", "attachment"),
                            "file_data": to_data_uri(
                                file_part["data"], file_part["mime_type"]
                            ),
                        },
                    }
                )
            else:
                raise ValueError(
                    f"Unsupported content part type '{part_type}' for OpenAI."
                )
        normalized.append({"role": message["role"], "content": parts})
    return normalized


def _map_role_to_gemini(role: str) -> str:
    if role == "assistant":
        return "model"
    return role


def to_gemini_contents(
    messages: ChatMessages,
) -> tuple[str | None, list[dict[str, Any]]]:
    """Normalize chat messages into a Gemini system instruction and contents."""

    system_texts: list[str] = []
    contents: list[dict[str, Any]] = []
    for message in messages:
        if "role" not in message or "content" not in message:
            raise ValueError("Chat message must include 'role' and 'content'.")
        content = message["content"]
        parts: list[dict[str, Any]] = []
        if isinstance(content, str):
            if content:
                parts.append({"text": content})
        else:
            for part in content:
                part_type = part.get("type")
                if part_type == "text":
                    parts.append({"text": cast(TextPart, part)["text"]})
                elif part_type == "image":
                    image_part = cast(ImagePart, part)
                    image = image_part["image"]
                    if isinstance(image, bytes | bytearray):
                        parts.append(
                            {
                                "inline_data": {
                                    "mime_type": _image_mime(image_part),
                                    "data": bytes(image),
                                }
                            }
                        )
                    else:
                        parts.append(
                            {
                                "file_data": {
                                    "file_uri": str(image),
                                    "mime_type": _image_mime(image_part),
                                }
                            }
                        )
                elif part_type == "file":
                    file_part = cast(FilePart, part)
                    parts.append(
                        {
                            "inline_data": {
                                "mime_type": file_part["mime_type"],
                                "data": file_part["data"],
                            }
                        }
                    )
                else:
                    raise ValueError(
                        f"Unsupported content part type '{part_type}' for Gemini."
                    )

        if message["role"] == "system":
            system_texts.extend(p["text"] for p in parts if "text" in p)
            continue
        contents.append({"role": _map_role_to_gemini(message["role"]), "parts": parts})

    system_instruction = "\n\n".join(system_texts) if system_texts else None
    return system_instruction, contents


def schema_name(schema: Schema) -> str:
    if isinstance(schema, dict):
        raw = str(schema.get("title") or "response")
    else:
        raw = schema.__name__
    return re.sub(r"[^a-zA-Z0-9_-]", "_", raw)[:64] or "response"


def schema_to_json_schema(schema: Schema) -> dict[str, Any]:
    if isinstance(schema, dict):
        return schema
    return schema.model_json_schema()


def validate_object(schema: Schema, data: Any) -> Any:
    """Coerce decoded JSON into the caller's schema type.

    Pydantic models are validated; raw JSON schemas are returned as decoded.
    """
    if isinstance(schema, dict):
        return data
    if isinstance(data, schema):
        return data
    return schema.model_validate(data)


_FENCE_PATTERN = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)


def parse_json_text(text: str) -> Any:
    """Decode JSON from model output, tolerating code fences and preamble."""
    text = (text or "").strip()
    if not text:
        raise ValueError("Model returned no JSON content")

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    fence_match = _FENCE_PATTERN.search(text)
    if fence_match:
        try:
            return json.loads(fence_match.group(1).strip())
        except json.JSONDecodeError:
            pass

    for start_char, end_char in (("{", "}"), ("[", "]")):
        start_idx = text.find(start_char)
        end_idx = text.rfind(end_char)
        if start_idx == -1 or end_idx <= start_idx:
            continue
        try:
            return json.loads(text[start_idx : end_idx + 1])
        except json.JSONDecodeError:
            pass

    raise ValueError(f"Could not parse JSON from model output ({len(text)} chars)")


def enum_schema(categories: Sequence[str]) -> type[BaseModel]:
    """Build the wrapper model used to constrain output to one category."""
    choices = tuple(dict.fromkeys(str(c) for c in categories))
    if not choices:
        raise ValueError("Classification requires at least one category")
    return create_model(
        "Classification",
        result=(Literal[choices], ...),  # type: ignore[valid-type]
    )


class LLMClient(abc.ABC):
    """Abstract inference provider interface consumed by the facade."""

    @abc.abstractmethod
    def generate_text(
        self, model: str, messages: ChatMessages, **kwargs: Any
    ) -> TextGeneration:
        """Run the model to completion and return its text."""

    @abc.abstractmethod
    def stream_text(
        self, model: str, messages: ChatMessages, **kwargs: Any
    ) -> TextStream:
        """Start generation and return a lazy stream of text deltas."""

    @abc.abstractmethod
    def generate_object(
        self, model: str, messages: ChatMessages, schema: Schema, **kwargs: Any
    ) -> ObjectGeneration:
        """Generate a structured object conforming to ``schema``."""

    @abc.abstractmethod
    def stream_object(
        self, model: str, messages: ChatMessages, schema: Schema, **kwargs: Any
    ) -> ObjectStream:
        """Start structured generation and stream partial objects."""

    def generate_enum(
        self,
        model: str,
        messages: ChatMessages,
        categories: Sequence[str],
        **kwargs: Any,
    ) -> ObjectGeneration:
        """Generate exactly one of ``categories``."""
        generation = self.generate_object(
            model, messages, enum_schema(categories), **kwargs
        )
        return ObjectGeneration(object=generation.object.result, usage=generation.usage)
