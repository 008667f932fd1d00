"""Command line helper for the sheetlog Google Sheets sink."""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

from sheetlog.booking import handle_book_call
from sheetlog.logging_config import configure_logging
from sheetlog.settings import LOG_LEVEL_ENV, LOG_PATH_ENV, SinkConfig
from sheetlog.sink import SheetsLogSink


def _sink_from_env() -> SheetsLogSink:
    return SheetsLogSink(SinkConfig.from_env())


def command_init(args: argparse.Namespace) -> int:
    sink = _sink_from_env()
    if not sink.is_configured:
        print("Google Sheets is not configured; nothing to initialise.", file=sys.stderr)
    asyncio.run(sink.initialize())
    return 0


def command_book(args: argparse.Namespace) -> int:
    try:
        if args.payload == "-":
            body = sys.stdin.read()
        else:
            with open(args.payload, "r", encoding="utf-8") as handle:
                body = handle.read()
    except OSError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    async def _run():
        sink = _sink_from_env()
        response = await handle_book_call(sink, "POST", body)
        await sink.aclose()
        return response

    response = asyncio.run(_run())
    print(response.body)
    return 0 if 200 <= response.status_code < 300 else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Google Sheets conversation and booking log")
    parser.add_argument(
        "--log-level",
        default=os.environ.get(LOG_LEVEL_ENV, "INFO"),
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-file",
        default=os.environ.get(LOG_PATH_ENV),
        help="Optional file receiving a copy of the log",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init", help="Create worksheets and write header rows")
    init_parser.set_defaults(func=command_init)

    book_parser = subparsers.add_parser("book", help="Record a call booking from a JSON request body")
    book_parser.add_argument("payload", help="Path to the JSON body, or - to read stdin")
    book_parser.set_defaults(func=command_book)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level, args.log_file)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
