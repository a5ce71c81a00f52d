#!/usr/bin/env python3
"""CLI helpers to try the easyai facade against a real provider."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from rich.text import Text

ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT_DIR))
for dotenv_name in (".env", ".env.local"):
    candidate = ROOT_DIR / dotenv_name
    if candidate.exists():
        load_dotenv(candidate, override=False)

from easyai import AI, ObjectResult, TextResult  # noqa: E402
from easyai.configs.config import config  # noqa: E402
from easyai.configs.logging_config import setup_logging  # noqa: E402
from easyai.files import guess_mime_type  # noqa: E402
from easyai.llm import (  # noqa: E402
    ChatMessage,
    LLMClient,
    available_providers,
    create_model,
    parse_model_spec,
)
from easyai.llm.base import to_gemini_contents, to_openai_messages  # noqa: E402
from scripts._console_utils import (  # noqa: E402
    fail_label,
    get_console,
    info_label,
    ok_label,
    status_label,
)

console = get_console()

CLIENT_METHODS = (
    "generate_text",
    "stream_text",
    "generate_object",
    "stream_object",
    "generate_enum",
)


def _build_ai(args: argparse.Namespace) -> AI:
    provider, model = parse_model_spec(args.model or config.default_model)
    console.print(info_label(), f"Using {provider}/{model}")
    return AI(provider, model, smooth=not getattr(args, "no_smooth", False))


def _messages(args: argparse.Namespace) -> list[ChatMessage]:
    messages: list[ChatMessage] = []
    if getattr(args, "system", None):
        messages.append({"role": "system", "content": args.system})
    messages.append({"role": "user", "content": args.prompt})
    return messages


def _load_schema(path: str) -> dict[str, Any]:
    return json.loads(Path(path).expanduser().read_text(encoding="utf-8"))


def _print_text_result(result: TextResult) -> int:
    if not result.success:
        console.print(fail_label(), Text(f"Request failed: {result.error}"))
        return 1
    if result.reasoning:
        console.print(status_label("THINK", "dim"), Text(result.reasoning))
    if result.text:
        console.print(ok_label(), Text(result.text))
    else:
        console.print(ok_label(), "[dim]<empty response>[/]")
    if result.usage:
        console.print(
            status_label("USAGE", "bold cyan"),
            f"prompt={result.usage.prompt_tokens} "
            f"completion={result.usage.completion_tokens} "
            f"total={result.usage.total_tokens}",
        )
    return 0


def _print_object_result(result: ObjectResult) -> int:
    if not result.success:
        console.print(fail_label(), Text(f"Request failed: {result.error}"))
        return 1
    value = result.object
    if hasattr(value, "model_dump"):
        value = value.model_dump()
    console.print(ok_label(), Text(json.dumps(value, ensure_ascii=False)))
    return 0


def cmd_chat(args: argparse.Namespace) -> int:
    ai = _build_ai(args)
    if not args.stream:
        return _print_text_result(ai.chat(_messages(args)))

    result = ai.stream_chat(_messages(args))
    if not result.success or result.text_stream is None:
        console.print(fail_label(), Text(f"Request failed: {result.error}"))
        return 1
    for chunk in result.text_stream:
        console.print(Text(chunk), end="")
    console.print()
    if result.reasoning is None:
        return 0
    stream_error = result.reasoning.exception()
    if stream_error is not None:
        console.print(fail_label(), Text(f"Stream interrupted: {stream_error}"))
        return 1
    reasoning = result.reasoning.result()
    if reasoning:
        console.print(status_label("THINK", "dim"), Text(reasoning))
    return 0


def cmd_object(args: argparse.Namespace) -> int:
    ai = _build_ai(args)
    schema = _load_schema(args.schema)
    if not args.stream:
        return _print_object_result(ai.create_object(_messages(args), schema))

    result = ai.stream_create_object(_messages(args), schema)
    if not result.success or result.partial_object_stream is None:
        console.print(fail_label(), Text(f"Request failed: {result.error}"))
        return 1
    last: Any = None
    for partial in result.partial_object_stream:
        last = partial
        console.print(status_label("PARTIAL", "dim"), Text(json.dumps(partial)))
    if last is None:
        console.print(fail_label(), "No object received")
        return 1
    console.print(ok_label(), Text(json.dumps(last, ensure_ascii=False)))
    return 0


def cmd_classify(args: argparse.Namespace) -> int:
    ai = _build_ai(args)
    return _print_object_result(ai.classify_text(_messages(args), args.categories))


def cmd_image(args: argparse.Namespace) -> int:
    ai = _build_ai(args)
    if args.url:
        result = ai.chat_with_image_url(_messages(args), args.url)
    else:
        result = ai.chat_with_image_file_path(_messages(args), args.path)
    return _print_text_result(result)


def cmd_file(args: argparse.Namespace) -> int:
    ai = _build_ai(args)
    mime_type = args.mime_type or guess_mime_type(args.path)
    return _print_text_result(ai.chat_with_file(_messages(args), args.path, mime_type))


def cmd_extract(args: argparse.Namespace) -> int:
    ai = _build_ai(args)
    mime_type = args.mime_type or guess_mime_type(args.path)
    result = ai.extract_data_from_file(
        _messages(args), _load_schema(args.schema), args.path, mime_type
    )
    return _print_object_result(result)


def _verify_message_conversions() -> bool:
    console.print("[bold cyan]Message normalization[/]")
    messages: list[ChatMessage] = [
        {"role": "system", "content": "Be concise."},
        {
            "role": "user",
            "content": [
                {"type": "text", "text": "Describe the picture."},
                {"type": "image", "image": b"\x89PNG\r\n\x1a\n"},
            ],
        },
        {"role": "assistant", "content": "It is a tiny PNG."},
    ]
    try:
        openai_payload = to_openai_messages(messages)
        image_url = openai_payload[1]["content"][1]["image_url"]["url"]
        ok = image_url.startswith("data:image/png;base64,")
    except Exception as exc:  # noqa: BLE001
        ok = False
        console.print(f"  {exc}")
    console.print(ok_label() if ok else fail_label(), "easyai → OpenAI")
    all_ok = ok

    try:
        system_instruction, contents = to_gemini_contents(messages)
        ok = (
            system_instruction == "Be concise."
            and [c["role"] for c in contents] == ["user", "model"]
            and "inline_data" in contents[0]["parts"][1]
        )
    except Exception as exc:  # noqa: BLE001
        ok = False
        console.print(f"  {exc}")
    console.print(ok_label() if ok else fail_label(), "easyai → Gemini")
    return all_ok and ok


def _verify_providers(providers: Sequence[str]) -> bool:
    console.print("[bold cyan]Provider interface[/]")
    all_ok = True
    for provider in providers:
        handle = create_model(provider, "verify")
        if handle is None:
            console.print(
                fail_label(), f"{provider}: not registered or missing credentials"
            )
            all_ok = False
            continue
        console.print(status_label(handle.provider.upper(), "bold blue"))
        for method in CLIENT_METHODS:
            ok = callable(getattr(handle.client, method, None)) and isinstance(
                handle.client, LLMClient
            )
            console.print(ok_label() if ok else fail_label(), f"{provider}.{method}")
            all_ok = all_ok and ok
    return all_ok


def cmd_verify(args: argparse.Namespace) -> int:
    providers = args.providers or available_providers()
    overall_ok = _verify_message_conversions()
    if not args.messages_only:
        overall_ok = _verify_providers(providers) and overall_ok
    return 0 if overall_ok else 1


def _add_common(parser: argparse.ArgumentParser, *, prompt_help: str) -> None:
    parser.add_argument("prompt", help=prompt_help)
    parser.add_argument("--system", help="Optional system instruction.")
    parser.add_argument(
        "--model",
        help="Model specification, e.g. groq/llama-3.3-70b-versatile "
        "(defaults to EASYAI_PROVIDER / EASYAI_MODEL).",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="easyai facade utilities.")
    parser.add_argument(
        "--log-level", default=None, help="Log level (defaults to LOG_LEVEL)."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    chat_parser = subparsers.add_parser("chat", help="Chat with the model.")
    _add_common(chat_parser, prompt_help="User prompt to send to the model.")
    chat_parser.add_argument(
        "--stream", action="store_true", help="Stream the answer as it arrives."
    )
    chat_parser.add_argument(
        "--no-smooth", action="store_true", help="Disable stream smoothing."
    )
    chat_parser.set_defaults(func=cmd_chat)

    object_parser = subparsers.add_parser(
        "object", help="Generate a JSON object matching a schema file."
    )
    _add_common(object_parser, prompt_help="Instruction describing the object.")
    object_parser.add_argument(
        "--schema", required=True, help="Path to a JSON schema document."
    )
    object_parser.add_argument(
        "--stream", action="store_true", help="Print partial objects as they arrive."
    )
    object_parser.set_defaults(func=cmd_object)

    classify_parser = subparsers.add_parser(
        "classify", help="Classify text into one of the given categories."
    )
    _add_common(classify_parser, prompt_help="Text to classify.")
    classify_parser.add_argument(
        "--categories", nargs="+", required=True, metavar="NAME"
    )
    classify_parser.set_defaults(func=cmd_classify)

    image_parser = subparsers.add_parser("image", help="Chat about an image.")
    _add_common(image_parser, prompt_help="Question about the image.")
    source = image_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--path", help="Local image file.")
    source.add_argument("--url", help="Image URL.")
    image_parser.set_defaults(func=cmd_image)

    file_parser = subparsers.add_parser("file", help="Chat about a file.")
    _add_common(file_parser, prompt_help="Question about the file.")
    file_parser.add_argument("path", help="Local file (pdf, json, ...).")
    file_parser.add_argument("--mime-type", help="Override the guessed MIME type.")
    file_parser.set_defaults(func=cmd_file)

    extract_parser = subparsers.add_parser(
        "extract", help="Extract structured data from a file."
    )
    _add_common(extract_parser, prompt_help="Extraction instruction.")
    extract_parser.add_argument("path", help="Local file (pdf, json, ...).")
    extract_parser.add_argument(
        "--schema", required=True, help="Path to a JSON schema document."
    )
    extract_parser.add_argument("--mime-type", help="Override the guessed MIME type.")
    extract_parser.set_defaults(func=cmd_extract)

    verify_parser = subparsers.add_parser(
        "verify",
        help="Validate message conversions and registered provider clients.",
    )
    verify_parser.add_argument(
        "--providers",
        nargs="+",
        metavar="NAME",
        help="Provider names to validate (default: all registered).",
    )
    verify_parser.add_argument(
        "--messages-only",
        action="store_true",
        help="Only run message normalization checks.",
    )
    verify_parser.set_defaults(func=cmd_verify)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(log_level=args.log_level)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
