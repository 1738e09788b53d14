"""Command line interface for the ai302 models."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import mimetypes
import sys
from pathlib import Path
from typing import Any, Iterable, Sequence

from .core.adapters.stream import ErrorEvent, FinishEvent, ReasoningDeltaEvent, TextDeltaEvent
from .core.errors import AdapterError
from .core.message import Message, MessageRole
from .provider import Ai302Provider, create_ai302


def _parse_key_value_pairs(pairs: Iterable[str]) -> dict[str, Any]:
    """Parse ``KEY=VALUE`` options; values that are valid JSON are decoded."""

    options: dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            raise argparse.ArgumentTypeError(
                f"invalid key/value pair '{pair}'. Expected KEY=VALUE syntax."
            )
        key, value = pair.split("=", 1)
        key = key.strip()
        if not key:
            raise argparse.ArgumentTypeError("keys must not be empty")
        try:
            options[key] = json.loads(value)
        except ValueError:
            options[key] = value
    return options


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Call 302.AI models from the command line")
    parser.add_argument("--api-key", help="API key (defaults to $AI302_API_KEY)")
    parser.add_argument("--base-url", help="API base URL (defaults to $AI302_BASE_URL)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    chat_parser = subparsers.add_parser("chat", help="run a chat completion")
    chat_parser.add_argument("prompt", help="User message")
    chat_parser.add_argument("-m", "--model", default="gpt-4o-mini", help="Chat model id")
    chat_parser.add_argument("--system", help="Optional system message")
    chat_parser.add_argument("--temperature", type=float)
    chat_parser.add_argument("--max-tokens", type=int)
    chat_parser.add_argument(
        "--stream", action="store_true", help="Print deltas as they arrive"
    )

    image_parser = subparsers.add_parser("image", help="generate images")
    image_parser.add_argument("prompt", help="Image prompt")
    image_parser.add_argument("-m", "--model", default="dall-e-3", help="Image model id")
    image_parser.add_argument("--size", help="WIDTHxHEIGHT")
    image_parser.add_argument("--aspect-ratio", help="W:H")
    image_parser.add_argument("-n", type=int, help="Number of images")
    image_parser.add_argument("--seed", type=int)
    image_parser.add_argument(
        "-o",
        "--option",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Backend specific options",
    )
    image_parser.add_argument(
        "-d",
        "--directory",
        type=Path,
        default=Path.cwd(),
        help="Directory receiving the generated images",
    )

    speech_parser = subparsers.add_parser("speech", help="synthesize speech")
    speech_parser.add_argument("text", help="Text to speak")
    speech_parser.add_argument(
        "-m", "--model", default="openai/alloy", help="provider/voice or provider/model/voice"
    )
    speech_parser.add_argument("--voice", help="Override the voice from the model id")
    speech_parser.add_argument("--format", dest="output_format", help="Audio output format")
    speech_parser.add_argument("--speed", type=float)
    speech_parser.add_argument("--async", dest="run_async", action="store_true", help="Use async mode")
    speech_parser.add_argument(
        "--output", type=Path, default=Path("speech.mp3"), help="Where to write the audio"
    )

    transcribe_parser = subparsers.add_parser("transcribe", help="transcribe an audio file")
    transcribe_parser.add_argument("audio", type=Path, help="Audio file to transcribe")
    transcribe_parser.add_argument("-m", "--model", default="whisper-1", help="Transcription model id")
    transcribe_parser.add_argument(
        "--format",
        dest="response_format",
        choices=("json", "text", "srt", "vtt", "verbose_json", "diarized_json"),
        help="Response format (defaults per model)",
    )
    transcribe_parser.add_argument("--language", help="ISO-639-1 code of the spoken language")
    transcribe_parser.add_argument(
        "--media-type", help="Audio media type (guessed from the file name by default)"
    )
    transcribe_parser.add_argument(
        "--segments", action="store_true", help="Print timed segments instead of plain text"
    )

    return parser


async def _run_chat(provider: Ai302Provider, args: argparse.Namespace) -> int:
    messages = []
    if args.system:
        messages.append(Message(MessageRole.SYSTEM, args.system))
    messages.append(Message(MessageRole.USER, args.prompt))
    model = provider.chat(args.model)
    options = {"temperature": args.temperature, "max_output_tokens": args.max_tokens}
    options = {key: value for key, value in options.items() if value is not None}

    if not args.stream:
        result = await model.generate(messages, **options)
        if result.reasoning:
            sys.stderr.write(result.reasoning + "\n")
        sys.stdout.write(result.text + "\n")
        return 0

    result = await model.stream(messages, **options)
    exit_code = 0
    async for event in result.stream:
        if isinstance(event, ReasoningDeltaEvent):
            sys.stderr.write(event.delta)
        elif isinstance(event, TextDeltaEvent):
            sys.stdout.write(event.delta)
            sys.stdout.flush()
        elif isinstance(event, ErrorEvent):
            sys.stderr.write(f"\nerror: {event.error}\n")
            exit_code = 1
        elif isinstance(event, FinishEvent):
            sys.stdout.write("\n")
    return exit_code


async def _run_image(provider: Ai302Provider, args: argparse.Namespace) -> int:
    model = provider.image(args.model)
    result = await model.generate(
        args.prompt,
        n=args.n,
        size=args.size,
        aspect_ratio=args.aspect_ratio,
        seed=args.seed,
        provider_options=_parse_key_value_pairs(args.option),
    )
    for warning in result.warnings:
        sys.stderr.write(f"warning: {warning.feature or warning.message} {warning.details or ''}\n")
    args.directory.mkdir(parents=True, exist_ok=True)
    stem = args.model.replace("/", "-")
    for index, image in enumerate(result.images):
        path = args.directory / f"{stem}-{index}.png"
        path.write_bytes(image)
        print(f"Image written to {path}")
    return 0


async def _run_speech(provider: Ai302Provider, args: argparse.Namespace) -> int:
    model = provider.speech(args.model)
    result = await model.generate(
        args.text,
        voice=args.voice,
        output_format=args.output_format,
        speed=args.speed,
        provider_options={"run_async": args.run_async},
    )
    args.output.parent.mkdir(parents=True, exist_ok=True)
    args.output.write_bytes(result.audio)
    print(f"Audio written to {args.output}")
    return 0


async def _run_transcribe(provider: Ai302Provider, args: argparse.Namespace) -> int:
    media_type = args.media_type or mimetypes.guess_type(args.audio.name)[0] or "audio/mpeg"
    options = {"response_format": args.response_format, "language": args.language}
    result = await provider.transcription(args.model).transcribe(
        args.audio.read_bytes(),
        media_type=media_type,
        provider_options={key: value for key, value in options.items() if value is not None},
    )
    if args.segments and result.segments:
        for segment in result.segments:
            print(f"[{segment.start_second:.2f}s - {segment.end_second:.2f}s] {segment.text}")
    else:
        print(result.text)
    return 0


_HANDLERS = {
    "chat": _run_chat,
    "image": _run_image,
    "speech": _run_speech,
    "transcribe": _run_transcribe,
}


async def _dispatch(args: argparse.Namespace) -> int:
    async with create_ai302(api_key=args.api_key, base_url=args.base_url) as provider:
        return await _HANDLERS[args.command](provider, args)


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    if args.command not in _HANDLERS:
        parser.error("no command provided")
    try:
        return asyncio.run(_dispatch(args))
    except (AdapterError, ValueError) as exc:
        sys.stderr.write(f"error: {exc}\n")
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
