from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from collections.abc import Iterable
from dataclasses import asdict
from pathlib import Path
from typing import Any

import structlog
import uvicorn

from streamfinder.application.use_cases.refresh_links import REFRESH_MODES
from streamfinder.domain.entities.resolution import DEFAULT_AUDIO_TRACK, ResolutionKey
from streamfinder.infrastructure.config import AppConfig, load_config
from streamfinder.infrastructure.logging.setup import configure_logging
from streamfinder.interfaces.api.resolve.presenter import render_result
from streamfinder.interfaces.app_state import AppState
from streamfinder.interfaces.composition import open_resources
from streamfinder.interfaces.main import build_app

log = structlog.get_logger(__name__)


def _add_key_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--type",
        dest="media_type",
        choices=["movie", "series"],
        default="movie",
        help="Media type.",
    )
    parser.add_argument(
        "--audio",
        default=DEFAULT_AUDIO_TRACK,
        help="Audio track (e.g. legendado, dublado).",
    )


def _parse_args(argv: Iterable[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="streamfinder")

    # Global flags feed load_config; subcommands follow.
    parser.add_argument(
        "--config",
        default=None,
        help="YAML settings file.",
    )
    parser.add_argument(
        "--dotenv",
        default=None,
        help="dotenv file loaded before env overrides.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (beats YAML and env).",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        choices=["json", "console"],
        help="Log renderer (beats YAML and env).",
    )

    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the HTTP API (default).")
    serve.add_argument("--host", default=None, help="Bind host (overrides HOST env).")
    serve.add_argument(
        "--port", default=None, type=int, help="Bind port (overrides PORT env)."
    )

    resolve = sub.add_parser("resolve", help="Resolve one item and print JSON.")
    resolve.add_argument("content_id", help="Catalog content id.")
    _add_key_args(resolve)
    resolve.add_argument("--season", type=int, default=None)
    resolve.add_argument("--episode", type=int, default=None)
    resolve.add_argument("--title", default=None)
    resolve.add_argument("--imdb-id", default=None)
    resolve.add_argument("--force", default=None, help="Run only this provider.")
    resolve.add_argument(
        "--skip", action="append", default=[], help="Provider to skip (repeatable)."
    )

    batch = sub.add_parser("batch", help="Resolve many ids and print counts.")
    batch.add_argument("content_ids", nargs="+", help="Catalog content ids.")
    _add_key_args(batch)

    refresh = sub.add_parser("refresh", help="Re-resolve cached links.")
    refresh.add_argument("--mode", choices=list(REFRESH_MODES), default="expiring")
    refresh.add_argument("--batch-size", type=int, default=30)

    sub.add_parser("retry-failures", help="Retry items whose last chain failed.")

    return parser.parse_args(argv)


async def _run_command(config: AppConfig, args: argparse.Namespace) -> dict[str, Any]:
    state = AppState()
    state.config = config
    async with open_resources(state):
        if args.command == "resolve":
            key = ResolutionKey(
                content_id=args.content_id,
                media_type=args.media_type,
                audio_track=args.audio,
                season=args.season,
                episode=args.episode,
                title=args.title,
                imdb_id=args.imdb_id,
            )
            result = await state.resolve_uc.execute(
                key, force_provider=args.force, skip_providers=args.skip
            )
            return render_result(result)
        if args.command == "batch":
            keys = [
                ResolutionKey(
                    content_id=cid, media_type=args.media_type, audio_track=args.audio
                )
                for cid in args.content_ids
            ]
            return asdict(await state.refresh_uc.resolve_many(keys))
        if args.command == "refresh":
            return asdict(await state.refresh_uc.execute(args.mode, args.batch_size))
        if args.command == "retry-failures":
            summary = await state.retry_uc.execute()
            return {"resolved": summary.resolved, "stillFailed": summary.still_failed}
    raise ValueError(f"Unknown command: {args.command}")


def start(argv: Iterable[str] | None = None) -> int:
    """
    Process entrypoint.

    Config is loaded exactly once here and handed to the app or command.
    """

    if argv is None:
        argv = sys.argv[1:]

    args = _parse_args(argv)

    config_path = Path(args.config) if args.config else None
    dotenv_path = Path(args.dotenv) if args.dotenv else None

    cli_overrides: dict[str, Any] = {}
    if args.log_level:
        cli_overrides["log_level"] = args.log_level
    if args.log_format:
        cli_overrides["log_format"] = args.log_format

    config = load_config(
        config_path=config_path,
        dotenv_path=dotenv_path,
        cli_overrides=cli_overrides,
    )

    log_config = configure_logging(config)

    if args.command in (None, "serve"):
        host = getattr(args, "host", None) or os.getenv("HOST", "0.0.0.0")
        port = int(getattr(args, "port", None) or os.getenv("PORT", "8080"))
        uvicorn.run(
            build_app(config),
            host=host,
            port=port,
            log_config=log_config,
        )
        return 0

    output = asyncio.run(_run_command(config, args))
    print(json.dumps(output, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(start())
