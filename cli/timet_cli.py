"""Command-line interface for timet."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import TYPE_CHECKING

from pydantic import ValidationError

from timet.config import Settings, ensure_env_file
from timet.database import create_engine, create_session_factory, init_schema
from timet.exceptions import ConfigurationError, ItemNotFoundError
from timet.services import item_service
from timet.services.datetime_service import (
    date_range,
    format_duration,
    format_timestamp,
    now_timestamp,
)
from timet.services.sync_service import SyncStatus, sync_database
from timet.storage import S3ObjectStore

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from timet.schemas import TrackedItem

logger = logging.getLogger(__name__)

_NOTES_WIDTH = 30


def _configure_logging(settings: Settings) -> None:
    """Send application logs to the log file; stdout is reserved for command output."""
    level = logging.DEBUG if settings.debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    settings.log_file.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=level,
        format=fmt,
        filename=settings.log_file,
        encoding="utf-8",
        force=True,
    )
    # Quiet noisy libraries
    for name in ("botocore", "boto3", "s3transfer", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.debug else logging.WARNING
    )


def _duration(item: TrackedItem, now: int) -> int:
    end = item.end if item.end is not None else now
    return max(0, end - item.start)


def print_items(items: list[TrackedItem], title: str) -> None:
    """Print items as a plain-text table followed by the total time."""
    now = now_timestamp()
    print(title)
    if not items:
        print("  No items found.")
        return

    print(f"  {'ID':>5}  {'Tag':<15}  {'Start':<19}  {'End':<19}  {'Duration':>9}  Notes")
    total = 0
    for item in items:
        seconds = _duration(item, now)
        total += seconds
        end = format_timestamp(item.end) if item.end is not None else "running"
        marker = " P" if item.pomodoro > 0 else ""
        notes = (item.notes or "")[:_NOTES_WIDTH]
        print(
            f"  {item.id:>5}  {item.tag[:15]:<15}  {format_timestamp(item.start):<19}  "
            f"{end:<19}  {format_duration(seconds):>9}  {notes}{marker}"
        )
    print(f"  Total: {format_duration(total)}")


def _cmd_start(session: Session, args: argparse.Namespace) -> None:
    item = item_service.start_item(session, args.tag, args.notes, args.pomodoro)
    print(f"Started '{item.tag}' (item {item.id}) at {format_timestamp(item.start)}")
    if item.pomodoro:
        print(f"  Pomodoro session: {item.pomodoro} min")


def _cmd_stop(session: Session, args: argparse.Namespace) -> None:
    item = item_service.stop_item(session, args.notes)
    if item is None:
        print("No timer is running.")
        return
    print(f"Stopped '{item.tag}' (item {item.id}) after {format_duration(_duration(item, 0))}")


def _cmd_resume(session: Session, args: argparse.Namespace) -> None:
    item = item_service.resume_item(session, args.id)
    print(f"Resumed '{item.tag}' (item {item.id}) at {format_timestamp(item.start)}")


def _cmd_summary(session: Session, args: argparse.Namespace) -> None:
    since, until = date_range(args.filter)
    items = item_service.list_items(session, since, until)
    print_items(items, f"Tracked time ({args.filter or 'today'}):")


def _cmd_delete(session: Session, args: argparse.Namespace) -> None:
    item = item_service.get_item(session, args.id)
    if not args.yes:
        answer = input(f"Delete item {item.id} ('{item.tag}')? [y/N] ")
        if answer.strip().lower() not in {"y", "yes"}:
            print("Cancelled.")
            return
    item_service.delete_item(session, args.id)
    print(f"Deleted item {item.id}")


def _cmd_edit(session: Session, args: argparse.Namespace) -> None:
    item = item_service.update_item(session, args.id, args.field, args.value)
    print_items([item], f"Updated {args.field} of item {item.id}:")


def _cmd_sync(session: Session, args: argparse.Namespace, settings: Settings) -> None:
    store = S3ObjectStore.from_settings(settings)
    bucket = args.bucket or settings.bucket_name
    print(f"Syncing with bucket '{bucket}'...")
    result = sync_database(session, store, bucket, settings.database_path, settings.snapshot_key)
    for line in result.report_lines():
        print(line)
    if not result.uploaded and result.status != SyncStatus.UP_TO_DATE:
        print(f"Warning: upload failed; see {settings.log_file}")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="timet",
        description="Track time spent on tasks and sync it through S3-compatible storage",
    )
    subparsers = parser.add_subparsers(dest="command")

    start = subparsers.add_parser("start", help="Start tracking a task")
    start.add_argument("tag", help="Task tag")
    start.add_argument("notes", nargs="?", help="Optional notes")
    start.add_argument("--pomodoro", "-p", type=int, default=0, help="Pomodoro length in minutes")

    stop = subparsers.add_parser("stop", help="Stop the running task")
    stop.add_argument("notes", nargs="?", help="Replace the task's notes")

    resume = subparsers.add_parser("resume", help="Track a previous task again")
    resume.add_argument("id", type=int, nargs="?", help="Item id (default: last item)")

    summary = subparsers.add_parser("summary", help="Show tracked time")
    summary.add_argument(
        "filter",
        nargs="?",
        help="today (default), yesterday, week, month, YYYY-MM-DD or YYYY-MM-DD..YYYY-MM-DD",
    )

    delete = subparsers.add_parser("delete", help="Delete an item")
    delete.add_argument("id", type=int, help="Item id")
    delete.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")

    edit = subparsers.add_parser("edit", help="Edit a field of an item")
    edit.add_argument("id", type=int, help="Item id")
    edit.add_argument("field", choices=item_service.EDITABLE_FIELDS, help="Field to edit")
    edit.add_argument("value", help="New value (times as HH:MM[:SS])")

    sync = subparsers.add_parser("sync", help="Sync the database with remote storage")
    sync.add_argument("--bucket", "-b", help="Bucket name (default: BUCKET_NAME setting)")

    return parser


def main(argv: list[str] | None = None, settings: Settings | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return

    if settings is None:
        ensure_env_file()
        try:
            settings = Settings()
        except ValidationError as exc:
            print(f"Error: invalid configuration: {exc}")
            sys.exit(1)
    _configure_logging(settings)
    logger.info("Running command '%s'", args.command)

    engine = create_engine(settings)
    try:
        init_schema(engine)
        session_factory = create_session_factory(engine)
        with session_factory() as session:
            if args.command == "sync":
                _cmd_sync(session, args, settings)
            else:
                handlers = {
                    "start": _cmd_start,
                    "stop": _cmd_stop,
                    "resume": _cmd_resume,
                    "summary": _cmd_summary,
                    "delete": _cmd_delete,
                    "edit": _cmd_edit,
                }
                handlers[args.command](session, args)
    except (ConfigurationError, ItemNotFoundError, ValueError) as exc:
        logger.error("Command '%s' failed: %s", args.command, exc)
        print(f"Error: {exc}")
        sys.exit(1)
    finally:
        engine.dispose()


if __name__ == "__main__":
    main()
