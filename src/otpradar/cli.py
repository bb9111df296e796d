"""Command line entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from rich.console import Console
from rich.table import Table

from otpradar.app.wiring import Components, build_components, build_reader, close_components
from otpradar.core.errors import SettingsError
from otpradar.core.models import OTPEntry
from otpradar.core.settings import RuntimeSettings
from otpradar.services.otp_reader import OtpReader
from otpradar.utils.env import get_str_env
from otpradar.utils.logging import get_logger


logger = get_logger("OtpCLI")
console = Console()


def _emit(entries: List[OTPEntry], *, as_json: bool) -> None:
    if as_json:
        print(json.dumps([entry.model_dump(mode="json") for entry in entries], indent=2))
    else:
        _render(entries)


def _render(entries: List[OTPEntry]) -> None:
    if not entries:
        console.print("No OTPs found")
        return
    table = Table(title=f"Recent OTPs ({len(entries)} found)")
    table.add_column("Code", style="bold")
    table.add_column("Source")
    table.add_column("Sender")
    table.add_column("Subject")
    table.add_column("Received")
    for entry in entries:
        table.add_row(
            entry.code,
            entry.source.value,
            entry.sender,
            entry.subject or "",
            entry.timestamp.astimezone().strftime("%Y-%m-%d %H:%M:%S"),
        )
    console.print(table)


async def _list(components: Components, args: argparse.Namespace) -> int:
    _emit(await components.scheduler.cached_entries(), as_json=args.json)
    return 0


async def _refresh(components: Components, args: argparse.Namespace) -> int:
    scheduler = components.scheduler
    outcome = await (scheduler.maybe_refresh() if args.background else scheduler.refresh_now())
    if not outcome.did_run:
        logger.info("Refresh skipped (%s)", outcome.reason.value if outcome.reason else "unknown")
        entries = await scheduler.cached_entries()
    else:
        entries = outcome.entries
    _emit(entries, as_json=args.json)
    return 0


async def _watch(components: Components, args: argparse.Namespace) -> int:
    if not components.scheduler.enabled:
        logger.error("background_refresh_interval is 0; nothing to watch")
        return 1
    await components.runtime.run_forever()
    return 0


def _extract(reader: OtpReader, text: str) -> int:
    match = reader.extract(text)
    if match is None:
        console.print("No OTP found")
        return 1
    console.print(f"{match.code} (confidence {match.confidence:.1f})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="otpradar", description="Find verification codes in recent messages.")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path(get_str_env("OTPRADAR_CONFIG", default="config/otpradar.example.yml")),
        help="Path to the YAML settings file",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    list_cmd = commands.add_parser("list", help="Show the cached OTPs")
    list_cmd.add_argument("--json", action="store_true", help="Print JSON instead of a table")

    refresh_cmd = commands.add_parser("refresh", help="Fetch OTPs from all enabled sources")
    refresh_cmd.add_argument(
        "--background",
        action="store_true",
        help="Run the throttled background pass instead of a forced refresh",
    )
    refresh_cmd.add_argument("--json", action="store_true", help="Print JSON instead of a table")

    commands.add_parser("watch", help="Keep refreshing in the background until interrupted")

    extract_cmd = commands.add_parser("extract", help="Run the detector on a piece of text")
    extract_cmd.add_argument("text", help="Message text to inspect")
    return parser


async def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = RuntimeSettings.from_file(args.config)
    except SettingsError as exc:
        if args.command != "extract":
            logger.error("%s", exc)
            return 2
        settings = RuntimeSettings()

    if args.command == "extract":
        return _extract(build_reader(settings), args.text)

    components = build_components(settings)

    handlers = {"list": _list, "refresh": _refresh, "watch": _watch}
    try:
        return await handlers[args.command](components, args)
    finally:
        await close_components(components)


def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    run()
