"""Entry point: wires Config -> Orchestrator and runs one request from the command line."""
import argparse
import asyncio
import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from inference_relay.config import Config
from inference_relay.constants import (
    DEFAULT_INTENT,
    KIND_CHAT,
    KIND_IMAGE,
    KIND_LOCAL_CHAT,
    MSG_STARTING,
    PROMPTS,
    STATUS_OK,
    STATUS_SUCCESS,
)
from inference_relay.orchestrator import Orchestrator


def _setup_logging(level: str) -> None:
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    list(map(root.removeHandler, root.handlers[:]))
    root.addHandler(RichHandler(rich_tracebacks=True))


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="inference-relay")
    sub = parser.add_subparsers(dest="command", required=True)

    image = sub.add_parser("image", help="analyze an image with the cloud providers")
    image.add_argument("path", type=Path)
    image.add_argument("--type", choices=tuple(PROMPTS), default=DEFAULT_INTENT)
    image.add_argument("--model")

    chat = sub.add_parser("chat", help="send a chat message")
    chat.add_argument("message")
    chat.add_argument("--model")

    local = sub.add_parser("local", help="ask the local model server")
    local.add_argument("message", nargs="?", default="")
    local.add_argument("--image", type=Path)
    local.add_argument("--model")

    sub.add_parser("health", help="show which providers are configured")
    return parser


def build_body(args: argparse.Namespace) -> dict:
    match args.command:
        case "image":
            return {
                "payloadKind": KIND_IMAGE,
                "imageBytes": args.path.read_bytes(),
                "recognitionType": args.type,
                "modelHint": args.model,
            }
        case "chat":
            return {"payloadKind": KIND_CHAT, "message": args.message, "modelHint": args.model}
        case "local":
            return {
                "payloadKind": KIND_LOCAL_CHAT,
                "message": args.message,
                "imageBytes": args.image.read_bytes() if args.image else None,
                "modelHint": args.model,
            }
        case other:
            raise ValueError(f"Unknown command: {other}")


async def _run(orchestrator: Orchestrator, args: argparse.Namespace) -> dict:
    try:
        match args.command:
            case "health":
                return orchestrator.health()
            case _:
                return await orchestrator.handle(build_body(args))
    finally:
        await orchestrator.aclose()


def main(argv: list[str] | None = None) -> int:
    args = _parser().parse_args(argv)
    config = Config.from_env()
    _setup_logging(config.log_level)

    logger = logging.getLogger(__name__)
    logger.info(MSG_STARTING)

    orchestrator = Orchestrator.from_config(config)
    response = asyncio.run(_run(orchestrator, args))
    Console().print_json(data=response)
    return 0 if response.get("status") in (STATUS_SUCCESS, STATUS_OK) else 1


if __name__ == "__main__":
    raise SystemExit(main())
