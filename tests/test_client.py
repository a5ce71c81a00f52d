"""Tests for the AI client facade."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
from pydantic import BaseModel

from easyai import AI, MODEL_NOT_SET, ErrorKind
from easyai.configs.config import config

from conftest import FakeLLMClient, SpyFileReader


class Invoice(BaseModel):
    number: str
    total: float


def _all_operations(ai: AI, messages: list[dict[str, Any]]) -> list[Any]:
    return [
        ai.chat(messages),
        ai.stream_chat(messages),
        ai.create_object(messages, Invoice),
        ai.stream_create_object(messages, Invoice),
        ai.classify_text(messages, ["a", "b", "c"]),
        ai.chat_with_image_file_path(messages, "missing.png"),
        ai.chat_with_image_url(messages, "https://example.com/cat.png"),
        ai.chat_with_file(messages, "report.pdf", "application/pdf"),
        ai.extract_data_from_file(messages, Invoice, "report.pdf", "application/pdf"),
    ]


def test_unknown_provider_fails_every_operation_without_side_effects(
    fake_provider: FakeLLMClient,
    spy_reader: SpyFileReader,
    conversation: list[dict[str, Any]],
) -> None:
    ai = AI("no-such-provider", "some-model", file_reader=spy_reader)

    assert ai.model is None
    assert not ai.is_configured
    for result in _all_operations(ai, conversation):
        assert result.success is False
        assert result.error == MODEL_NOT_SET
        assert result.error_kind is ErrorKind.UNCONFIGURED
    assert spy_reader.paths == []
    assert fake_provider.calls == []


def test_factory_failure_leaves_model_unset(conversation: list[dict[str, Any]]) -> None:
    from easyai.llm.provider import register_provider, unregister_provider

    def _broken(api_key: str | None) -> Any:
        raise ValueError("missing credentials")

    register_provider("broken", _broken)
    try:
        ai = AI("broken", "model-x")
    finally:
        unregister_provider("broken")

    assert ai.model is None
    assert ai.chat(conversation).error == MODEL_NOT_SET


def test_provider_lookup_is_case_insensitive_and_accepts_aliases(
    fake_provider: FakeLLMClient,
) -> None:
    assert AI("FAKE", "m").model is not None
    handle = AI("stub", "m").model
    assert handle is not None
    assert handle.provider == "fake"


def test_explicit_api_key_reaches_factory(fake_provider: FakeLLMClient) -> None:
    AI("fake", "model-x", api_key="sk-test")
    assert fake_provider.received_keys == ["sk-test"]  # type: ignore[attr-defined]


def test_chat_passes_messages_through_unchanged(
    fake_provider: FakeLLMClient, conversation: list[dict[str, Any]]
) -> None:
    ai = AI("fake", "model-x")
    result = ai.chat(conversation)

    assert result.success is True
    assert result.error is None
    assert result.error_kind is None
    assert result.text == "system=You are terse. | user=hi"
    assert result.usage is not None and result.usage.total_tokens == 8
    operation, model, sent = fake_provider.calls[0]
    assert (operation, model) == ("generate_text", "model-x")
    assert sent == conversation


def test_chat_round_trip_single_user_message(fake_provider: FakeLLMClient) -> None:
    result = AI("fake", "model-x").chat([{"role": "user", "content": "hi"}])
    assert result.text == "user=hi"


def test_chat_separates_tagged_reasoning(fake_provider: FakeLLMClient) -> None:
    fake_provider.reply_prefix = "<think>consider the greeting</think>\n\n"
    result = AI("fake", "model-x").chat([{"role": "user", "content": "hi"}])

    assert result.success
    assert result.text == "user=hi"
    assert result.reasoning == "consider the greeting"


def test_chat_provider_fault_becomes_error_result(
    fake_provider: FakeLLMClient, conversation: list[dict[str, Any]]
) -> None:
    fake_provider.error = RuntimeError("rate limited")
    result = AI("fake", "model-x").chat(conversation)

    assert result.success is False
    assert result.error == "rate limited"
    assert result.error_kind is ErrorKind.PROVIDER_FAULT
    assert result.text is None
    assert result.reasoning is None
    assert result.usage is None


def test_empty_exception_message_still_yields_error_text(
    fake_provider: FakeLLMClient, conversation: list[dict[str, Any]]
) -> None:
    fake_provider.error = TimeoutError()
    result = AI("fake", "model-x").chat(conversation)
    assert result.error == "TimeoutError"


def test_stream_chat_yields_text_and_resolves_reasoning(
    fake_provider: FakeLLMClient, conversation: list[dict[str, Any]]
) -> None:
    fake_provider.stream_chunks = ["<thi", "nk>plan</th", "ink>Hello ", "world"]
    result = AI("fake", "model-x", smooth=False).stream_chat(conversation)

    assert result.success is True
    assert result.text_stream is not None and result.reasoning is not None
    assert not result.reasoning.done()
    assert "".join(result.text_stream) == "Hello world"
    assert result.reasoning.result() == "plan"


def test_stream_chat_smoothing_rechunks_by_word(
    monkeypatch: pytest.MonkeyPatch,
    fake_provider: FakeLLMClient,
    conversation: list[dict[str, Any]],
) -> None:
    monkeypatch.setattr(config, "smooth_stream_delay_ms", 0.0)
    fake_provider.stream_chunks = ["Hel", "lo wo", "rld again"]
    result = AI("fake", "model-x", smooth=True).stream_chat(conversation)

    assert result.text_stream is not None
    assert list(result.text_stream) == ["Hello ", "world ", "again"]


def test_stream_chat_provider_fault(
    fake_provider: FakeLLMClient, conversation: list[dict[str, Any]]
) -> None:
    fake_provider.error = ConnectionError("network down")
    result = AI("fake", "model-x").stream_chat(conversation)

    assert result.success is False
    assert result.error == "network down"
    assert result.text_stream is None
    assert result.reasoning is None


def test_create_object_returns_validated_model(
    fake_provider: FakeLLMClient, conversation: list[dict[str, Any]]
) -> None:
    fake_provider.object_payload = {"number": "INV-1", "total": 12.5}
    result = AI("fake", "model-x").create_object(conversation, Invoice)

    assert result.success
    assert result.object == Invoice(number="INV-1", total=12.5)
    assert result.usage is not None and result.usage.total_tokens == 6


def test_create_object_with_json_schema_dict(
    fake_provider: FakeLLMClient, conversation: list[dict[str, Any]]
) -> None:
    fake_provider.object_payload = {"tags": ["x", "y"]}
    schema = {"type": "object", "properties": {"tags": {"type": "array"}}}
    result = AI("fake", "model-x").create_object(conversation, schema)

    assert result.success
    assert result.object == {"tags": ["x", "y"]}


def test_create_object_schema_violation_is_reported(
    fake_provider: FakeLLMClient, conversation: list[dict[str, Any]]
) -> None:
    fake_provider.object_payload = {"number": "INV-1"}
    result = AI("fake", "model-x").create_object(conversation, Invoice)

    assert result.success is False
    assert result.error_kind is ErrorKind.PROVIDER_FAULT
    assert "total" in (result.error or "")
    assert result.object is None


def test_stream_create_object_yields_partials(
    fake_provider: FakeLLMClient, conversation: list[dict[str, Any]]
) -> None:
    fake_provider.stream_chunks = ['{"number": "IN', 'V-1", "tot', 'al": 3}']
    result = AI("fake", "model-x").stream_create_object(conversation, Invoice)

    assert result.success
    assert result.partial_object_stream is not None
    partials = list(result.partial_object_stream)
    assert partials[-1] == {"number": "INV-1", "total": 3}
    assert len(partials) >= 2


def test_stream_create_object_provider_fault(
    fake_provider: FakeLLMClient, conversation: list[dict[str, Any]]
) -> None:
    fake_provider.error = ValueError("invalid schema")
    result = AI("fake", "model-x").stream_create_object(conversation, Invoice)
    assert result.success is False
    assert result.error == "invalid schema"
    assert result.partial_object_stream is None


@pytest.mark.parametrize("answer", ["a", "b", "c"])
def test_classify_text_returns_one_of_categories(
    fake_provider: FakeLLMClient, conversation: list[dict[str, Any]], answer: str
) -> None:
    fake_provider.object_payload = {"result": answer}
    result = AI("fake", "model-x").classify_text(conversation, ["a", "b", "c"])

    assert result.success
    assert result.object == answer
    assert result.object in {"a", "b", "c"}


def test_classify_text_rejects_value_outside_categories(
    fake_provider: FakeLLMClient, conversation: list[dict[str, Any]]
) -> None:
    fake_provider.object_payload = {"result": "d"}
    result = AI("fake", "model-x").classify_text(conversation, ["a", "b", "c"])

    assert result.success is False
    assert result.object is None


def test_classify_text_without_categories_fails(
    fake_provider: FakeLLMClient, conversation: list[dict[str, Any]]
) -> None:
    result = AI("fake", "model-x").classify_text(conversation, [])
    assert result.success is False
    assert fake_provider.calls == []


def test_chat_with_image_file_path_appends_image_message(
    fake_provider: FakeLLMClient,
    spy_reader: SpyFileReader,
    conversation: list[dict[str, Any]],
) -> None:
    ai = AI("fake", "model-x", file_reader=spy_reader)
    original = [dict(message) for message in conversation]
    result = ai.chat_with_image_file_path(conversation, "cat.png")

    assert result.success
    assert result.text == "system=You are terse. | user=hi | user=image"
    assert spy_reader.paths == ["cat.png"]
    sent = fake_provider.calls[0][2]
    assert sent[-1] == {
        "role": "user",
        "content": [{"type": "image", "image": spy_reader.data}],
    }
    assert conversation == original


def test_chat_with_image_file_path_missing_file(
    fake_provider: FakeLLMClient, tmp_path: Path, conversation: list[dict[str, Any]]
) -> None:
    ai = AI("fake", "model-x")
    result = ai.chat_with_image_file_path(conversation, tmp_path / "nope.png")

    assert result.success is False
    assert result.error
    assert result.error_kind is ErrorKind.ATTACHMENT_READ_FAILED
    assert fake_provider.calls == []


def test_chat_with_image_url_passes_reference(
    fake_provider: FakeLLMClient,
    spy_reader: SpyFileReader,
    conversation: list[dict[str, Any]],
) -> None:
    ai = AI("fake", "model-x", file_reader=spy_reader)
    result = ai.chat_with_image_url(conversation, "https://example.com/cat.png")

    assert result.success
    sent = fake_provider.calls[0][2]
    assert sent[-1]["content"] == [
        {"type": "image", "image": "https://example.com/cat.png"}
    ]
    assert spy_reader.paths == []


def test_chat_with_image_url_rejects_malformed_url(
    fake_provider: FakeLLMClient, conversation: list[dict[str, Any]]
) -> None:
    result = AI("fake", "model-x").chat_with_image_url(conversation, "not a url")

    assert result.success is False
    assert result.error_kind is ErrorKind.ATTACHMENT_READ_FAILED
    assert fake_provider.calls == []


def test_chat_with_file_reads_real_file(
    fake_provider: FakeLLMClient, tmp_path: Path, conversation: list[dict[str, Any]]
) -> None:
    report = tmp_path / "report.json"
    report.write_bytes(b'{"ok": true}')
    result = AI("fake", "model-x").chat_with_file(
        conversation, report, "application/json"
    )

    assert result.success
    assert result.text == "system=You are terse. | user=hi | user=file"
    part = fake_provider.calls[0][2][-1]["content"][0]
    assert part["data"] == b'{"ok": true}'
    assert part["mime_type"] == "application/json"
    assert part["filename"] == "report.json"


def test_chat_with_file_provider_fault(
    fake_provider: FakeLLMClient,
    spy_reader: SpyFileReader,
    conversation: list[dict[str, Any]],
) -> None:
    fake_provider.error = RuntimeError("unsupported file type")
    result = AI("fake", "model-x", file_reader=spy_reader).chat_with_file(
        conversation, "x.bin", "application/octet-stream"
    )
    assert result.success is False
    assert result.error_kind is ErrorKind.PROVIDER_FAULT
    assert result.text is None


def test_extract_data_from_file_returns_schema_object(
    fake_provider: FakeLLMClient, tmp_path: Path, conversation: list[dict[str, Any]]
) -> None:
    pdf = tmp_path / "invoice.pdf"
    pdf.write_bytes(b"%PDF-1.4 fake")
    fake_provider.object_payload = {"number": "A-7", "total": "99.5"}

    result = AI("fake", "model-x").extract_data_from_file(
        conversation, Invoice, pdf, "application/pdf"
    )

    assert result.success
    assert isinstance(result.object, Invoice)
    assert result.object.total == 99.5
    operation, _, sent = fake_provider.calls[0]
    assert operation == "generate_object"
    assert sent[-1]["content"][0]["mime_type"] == "application/pdf"


def test_extract_data_from_file_schema_fault(
    fake_provider: FakeLLMClient,
    spy_reader: SpyFileReader,
    conversation: list[dict[str, Any]],
) -> None:
    fake_provider.error = ValueError("output does not match schema")
    result = AI("fake", "model-x", file_reader=spy_reader).extract_data_from_file(
        conversation, Invoice, "invoice.pdf", "application/pdf"
    )

    assert result.success is False
    assert result.error == "output does not match schema"
    assert result.object is None


def test_extract_data_from_file_missing_file(
    fake_provider: FakeLLMClient, tmp_path: Path, conversation: list[dict[str, Any]]
) -> None:
    result = AI("fake", "model-x").extract_data_from_file(
        conversation, Invoice, tmp_path / "missing.pdf", "application/pdf"
    )
    assert result.error_kind is ErrorKind.ATTACHMENT_READ_FAILED
    assert fake_provider.calls == []


def test_failing_file_reader_never_raises(
    fake_provider: FakeLLMClient, conversation: list[dict[str, Any]]
) -> None:
    def _reader(path: Any) -> bytes:
        raise PermissionError(f"Permission denied: {path}")

    result = AI("fake", "model-x", file_reader=_reader).chat_with_file(
        conversation, "secret.pdf", "application/pdf"
    )
    assert result.success is False
    assert "Permission denied" in (result.error or "")


def test_repr_reports_configuration_state(fake_provider: FakeLLMClient) -> None:
    assert "configured" in repr(AI("fake", "m"))
    assert "unconfigured" in repr(AI("nope", "m"))


def _cut_connection() -> Iterator[str]:
    yield "<think>plan</think>Hello "
    raise ConnectionError("connection reset by peer")


def test_stream_chat_fault_mid_stream_ends_stream_quietly(
    fake_provider: FakeLLMClient, conversation: list[dict[str, Any]]
) -> None:
    fake_provider.stream_chunks = _cut_connection()
    result = AI("fake", "model-x", smooth=False).stream_chat(conversation)

    assert result.success is True
    assert result.text_stream is not None and result.reasoning is not None
    assert list(result.text_stream) == ["Hello "]
    assert isinstance(result.reasoning.exception(), ConnectionError)


def test_stream_chat_with_smoothing_survives_mid_stream_fault(
    monkeypatch: pytest.MonkeyPatch,
    fake_provider: FakeLLMClient,
    conversation: list[dict[str, Any]],
) -> None:
    monkeypatch.setattr(config, "smooth_stream_delay_ms", 0.0)
    fake_provider.stream_chunks = _cut_connection()
    result = AI("fake", "model-x", smooth=True).stream_chat(conversation)

    assert result.text_stream is not None
    assert "".join(result.text_stream) == "Hello "


def test_stream_chat_rejects_unknown_chunking_mode_up_front(
    monkeypatch: pytest.MonkeyPatch,
    fake_provider: FakeLLMClient,
    conversation: list[dict[str, Any]],
) -> None:
    monkeypatch.setattr(config, "smooth_stream_chunking", "sentence")
    result = AI("fake", "model-x", smooth=True).stream_chat(conversation)

    assert result.success is False
    assert result.error_kind is ErrorKind.PROVIDER_FAULT
    assert "sentence" in (result.error or "")
    assert result.text_stream is None
    assert fake_provider.calls == []


def test_stream_chat_chunking_mode_ignored_without_smoothing(
    monkeypatch: pytest.MonkeyPatch,
    fake_provider: FakeLLMClient,
    conversation: list[dict[str, Any]],
) -> None:
    monkeypatch.setattr(config, "smooth_stream_chunking", "sentence")
    result = AI("fake", "model-x", smooth=False).stream_chat(conversation)
    assert result.success is True


def test_stream_chat_reasoning_available_before_text_is_read(
    fake_provider: FakeLLMClient, conversation: list[dict[str, Any]]
) -> None:
    fake_provider.stream_chunks = ["<think>plan</think>", "answer"]
    result = AI("fake", "model-x", smooth=False).stream_chat(conversation)

    assert result.reasoning is not None and result.text_stream is not None
    assert result.reasoning.result(timeout=1) == "plan"
    assert list(result.text_stream) == ["answer"]


def test_stream_chat_closing_stream_cancels_reasoning(
    fake_provider: FakeLLMClient, conversation: list[dict[str, Any]]
) -> None:
    fake_provider.stream_chunks = ["one ", "two ", "three"]
    result = AI("fake", "model-x", smooth=False).stream_chat(conversation)

    assert result.text_stream is not None and result.reasoning is not None
    assert next(result.text_stream) == "one "
    result.text_stream.close()  # type: ignore[attr-defined]
    assert result.reasoning.cancelled()


def test_stream_create_object_fault_mid_stream_keeps_partials(
    fake_provider: FakeLLMClient, conversation: list[dict[str, Any]]
) -> None:
    def _chunks() -> Iterator[str]:
        yield '{"number": "INV-9"'
        raise ConnectionError("stream dropped")

    fake_provider.stream_chunks = _chunks()
    result = AI("fake", "model-x").stream_create_object(conversation, Invoice)

    assert result.success is True
    assert result.partial_object_stream is not None
    assert list(result.partial_object_stream) == [{"number": "INV-9"}]
