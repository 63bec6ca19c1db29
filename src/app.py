"""Application entry point for the eventwatch calendar watcher."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

import settings
from adapters.ics_calendar import IcsCalendarSource, build_calendar_specs
from adapters.sqlite_scheduler import SQLiteScheduler
from adapters.sqlite_storage import SQLiteStorage
from adapters.telegram_bot_notifier import TelegramBotNotifier
from adapters.telegram_notifier import TelegramSavedMessagesNotifier
from client import build_client
from core.callbacks import CallbackRegistry, LoggingCallback
from core.config import DedupConfig, WatchDefaults
from core.errors import WatchError
from core.models import CheckReport, OutcomeStatus, WatchConfig
from core.triggers import CHECK_HANDLER
from core.watcher import EventWatcher

NAME = "EVENTWATCH"
FONT = "tarty-1"

console = Console()


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = _RedactingFormatter(_collect_redaction_values(config), fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/eventwatch.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        file_handler = RotatingFileHandler(
            path,
            maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
            backupCount=int(file_cfg.get("backup_count", 5)),
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


def _build_callbacks(calendar_labels: dict[str, str]) -> CallbackRegistry:
    """Register the built-in callbacks enabled in config.json."""

    registry = CallbackRegistry()
    registry.register("log", LoggingCallback())

    methods = set(settings.NOTIFICATION_METHODS)
    if "bot" in methods:
        bot_token = os.getenv("BOT_API")
        if not bot_token:
            raise RuntimeError("BOT_API is required when the bot notification method is enabled")
        if not settings.BOT_CHAT_ID:
            raise RuntimeError("notifications.bot_chat_id is required for bot notifications")
        registry.register(
            "telegram_bot",
            TelegramBotNotifier(bot_token, str(settings.BOT_CHAT_ID), calendar_labels),
        )
    if "saved_messages" in methods:
        client = build_client(settings.PROJECT_ROOT)
        registry.register("telegram", TelegramSavedMessagesNotifier(client, calendar_labels))

    unknown = methods - {"bot", "saved_messages"}
    if unknown:
        raise RuntimeError(f"Unknown notification method(s): {', '.join(sorted(unknown))}")
    return registry


def _build_watcher() -> tuple[EventWatcher, SQLiteStorage, SQLiteScheduler]:
    storage = SQLiteStorage(settings.DB_PATH)
    storage.init_db()
    scheduler = SQLiteScheduler(settings.DB_PATH)
    scheduler.init_db()

    specs = build_calendar_specs(settings.CALENDARS, settings.PROJECT_ROOT)
    calendars = IcsCalendarSource(specs, settings.TIMEZONE)
    callbacks = _build_callbacks({cid: spec.name for cid, spec in specs.items()})

    watcher = EventWatcher(
        properties=storage,
        calendars=calendars,
        scheduler=scheduler,
        cache=storage,
        callbacks=callbacks,
        tz=settings.TIMEZONE,
        dedup_config=DedupConfig(
            scope=settings.DEDUP_SCOPE,
            success_ttl_hours=settings.DEDUP_SUCCESS_TTL_HOURS,
            error_ttl_hours=settings.DEDUP_ERROR_TTL_HOURS,
            missing_callback=settings.MISSING_CALLBACK_POLICY,
        ),
        defaults=WatchDefaults(
            calendar_id=settings.DEFAULT_CALENDAR_ID,
            check_frequency_hours=settings.DEFAULT_CHECK_FREQUENCY_HOURS,
        ),
    )
    return watcher, storage, scheduler


def _parse_at(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _print_watches(watches: list[WatchConfig]) -> None:
    if not watches:
        console.print("No watches configured.")
        return
    table = Table(title="Watches")
    for column in ("Unique id", "Substring", "Days before", "Callback", "Calendar", "Every (h)", "Timer"):
        table.add_column(column)
    for watch in watches:
        table.add_row(
            watch.unique_id,
            watch.event_name_substring,
            str(watch.days_before),
            watch.function_to_run,
            watch.calendar_id,
            str(watch.check_frequency_hours),
            watch.associated_trigger_id[:8],
        )
    console.print(table)


_STATUS_STYLES = {
    OutcomeStatus.DISPATCHED: "green",
    OutcomeStatus.WOULD_DISPATCH: "cyan",
    OutcomeStatus.DUPLICATE: "dim",
    OutcomeStatus.ERRORED: "red",
    OutcomeStatus.MISSING_CALLBACK: "yellow",
}


def _print_report(report: CheckReport) -> None:
    title = "Simulation" if report.dry_run else "Check"
    table = Table(title=f"{title} at {report.started_at.isoformat(timespec='minutes')}")
    for column in ("Watch", "Event", "Starts", "Status", "Detail"):
        table.add_column(column)
    for outcome in report.outcomes:
        style = _STATUS_STYLES.get(outcome.status, "")
        table.add_row(
            outcome.unique_id,
            outcome.event.title,
            outcome.event.start.isoformat(timespec="minutes"),
            f"[{style}]{outcome.status.value}[/{style}]" if style else outcome.status.value,
            outcome.detail,
        )
    console.print(table)
    for skipped in report.skipped:
        console.print(f"[yellow]Skipped {skipped.unique_id}:[/yellow] {skipped.reason}")
    console.print(f"Watches checked: {report.watches_checked}, matches: {report.matched}")


async def _watch_loop(watcher: EventWatcher, scheduler: SQLiteScheduler) -> None:
    """Fire run_check whenever the shared check timer is due."""

    logger = logging.getLogger(__name__)
    while True:
        now = datetime.now(settings.TIMEZONE)
        for timer in scheduler.due_timers(now):
            if timer.handler_name != CHECK_HANDLER:
                continue
            try:
                await watcher.run_check(now)
            except Exception:
                logger.exception("Check run failed")
            scheduler.mark_run(timer.timer_id, now)
        await asyncio.sleep(settings.POLL_SECONDS)


def _run() -> None:
    _print_banner()
    logger = logging.getLogger(__name__)
    logger.info("Starting eventwatch")

    watcher, storage, scheduler = _build_watcher()
    removed = storage.cleanup_cache()
    logger.info("Dedup cleanup removed %s expired markers", removed)
    logger.info("%s watches are loaded", len(watcher.list_all()))

    try:
        asyncio.run(_watch_loop(watcher, scheduler))
    except KeyboardInterrupt:
        logger.info("Stopped")


def _login() -> None:
    _print_banner()
    client = build_client(settings.PROJECT_ROOT)
    # Telethon's start() prompts for phone, code, and 2FA as needed.
    client.start()
    me = client.loop.run_until_complete(client.get_me())
    console.print(f"Logged in as: {me.first_name}")
    client.disconnect()


def _add_setup_parser(subparsers) -> None:
    setup = subparsers.add_parser("setup", help="Create a new watch")
    setup.add_argument("substring", help="Case-insensitive text to look for in event titles")
    setup.add_argument("days_before", type=int, help="Lead time in days")
    setup.add_argument("function", help="Registered callback name (e.g. log, telegram_bot)")
    setup.add_argument("--frequency", type=int, default=None, help="Check frequency in hours")
    setup.add_argument("--unique-id", default=None)
    setup.add_argument("--calendar", default=None, help="Calendar id (defaults to default_calendar)")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="eventwatch")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the watcher loop")
    subparsers.add_parser("check", help="Run a single check now")
    simulate = subparsers.add_parser("simulate", help="Show what a check would do, without side effects")
    simulate.add_argument("--unique-id", default=None)
    simulate.add_argument("--at", default=None, help="ISO timestamp to simulate instead of now")
    _add_setup_parser(subparsers)
    listing = subparsers.add_parser("list", help="List watches")
    listing.add_argument("--substring", default=None)
    delete = subparsers.add_parser("delete", help="Delete one watch")
    delete.add_argument("unique_id")
    subparsers.add_parser("delete-all", help="Delete every watch")
    subparsers.add_parser("login", help="Authorize the Telegram session")

    args = parser.parse_args(argv)
    load_dotenv()
    _configure_logging()

    if args.command == "login":
        _login()
        return
    if args.command in (None, "run"):
        _run()
        return

    watcher, _, _ = _build_watcher()
    try:
        if args.command == "check":
            _print_report(asyncio.run(watcher.run_check()))
        elif args.command == "simulate":
            _print_report(watcher.simulate(_parse_at(args.at), args.unique_id))
        elif args.command == "setup":
            watch = watcher.setup(
                args.substring,
                args.days_before,
                args.function,
                check_frequency_hours=args.frequency,
                unique_id=args.unique_id,
                calendar_id=args.calendar,
            )
            _print_watches([watch])
        elif args.command == "list":
            if args.substring:
                _print_watches(watcher.get_by_event_substring(args.substring))
            else:
                _print_watches(watcher.list_all())
        elif args.command == "delete":
            if not watcher.delete_one(args.unique_id):
                raise SystemExit(f"Could not delete watch {args.unique_id}")
            console.print(f"Deleted {args.unique_id}")
        elif args.command == "delete-all":
            console.print(f"Deleted {watcher.delete_all()} watch(es)")
    except WatchError as exc:
        raise SystemExit(f"{type(exc).__name__}: {exc}") from exc


if __name__ == "__main__":
    main()
