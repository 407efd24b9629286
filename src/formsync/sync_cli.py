#!/usr/bin/env python3
"""
CLI for form definition reconciliation and submission pulling.

Usage:
    formsync reconcile --form downloads/survey.xml [--storage DIR] [--copy]
    formsync promote-revision --form-name "Household Survey" [--storage DIR]
    formsync media begin|end --form-name "Household Survey"
    formsync cursor parse '<cursor ...>'
    formsync cursor compare '<cursor a>' '<cursor b>'
    formsync pull [--config formsync.yaml] [--form-id FORM_ID ...]
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config.config_loader import SyncConfig
from .core.events import DefinitionUpdated, PullCancel, PullComplete, PullFailure, PullSuccess
from .core.exceptions import FormSyncError
from .core.logging import configure_logging
from .pull.aggregate_connector import AggregateConnector
from .pull.cursor import Cursor
from .pull.driver import PullDriver
from .reconcile.reconciler import FormDefinitionReconciler
from .storage.promotion import DeferredCleanup
from .storage.slot import VersionedFileStore


logger = logging.getLogger(__name__)


def print_event(event) -> None:
    """Echo sync events to stdout."""
    if isinstance(event, DefinitionUpdated):
        print(f"updated: {event.definition.form_id} (version {event.definition.version})")
    elif isinstance(event, PullSuccess):
        print(f"pulled: {event.form_id} ({event.instance_count} instance ids)")
    elif isinstance(event, PullFailure):
        print(f"failed: {event.form_id}: {event.reason}")
    elif isinstance(event, PullCancel):
        print(f"cancelled: {event.cause}")
    elif isinstance(event, PullComplete):
        print(f"complete: {event.forms_pulled} form(s)")


def cmd_reconcile(args, config: SyncConfig) -> int:
    """Reconcile a downloaded form definition into storage."""
    store = VersionedFileStore(Path(args.storage) if args.storage else config.get_storage_root())
    cleanup = DeferredCleanup()
    reconciler = FormDefinitionReconciler(store, on_event=print_event, cleanup=cleanup)
    copy_file = args.copy or bool(config.get("storage.copy_candidates", False))

    try:
        outcome = reconciler.reconcile(Path(args.form), copy_file=copy_file)
    except FormSyncError as e:
        logger.error(f"Reconciliation failed: {e}")
        return 1
    finally:
        cleanup.drain()

    report = {
        "form_id": outcome.definition.form_id if outcome.definition else None,
        "version": outcome.definition.version if outcome.definition else None,
        "definition_file": str(outcome.definition.definition_file) if outcome.definition else None,
        "is_identical": outcome.is_identical,
        "needs_media_update": outcome.needs_media_update,
        "quarantined": outcome.quarantined,
        "promotions": [p.method.value for p in outcome.promotions],
    }
    print(json.dumps(report, indent=2))
    return 0


def cmd_promote_revision(args, config: SyncConfig) -> int:
    """Replace a slot's primary definition with its revised copy."""
    store = VersionedFileStore(Path(args.storage) if args.storage else config.get_storage_root())
    slot = store.slot_for(args.form_name)
    try:
        result = store.promote_revision(slot)
    except FormSyncError as e:
        logger.error(f"Promotion failed: {e}")
        return 1
    if result is None:
        logger.info(f"No revised definition in slot {slot.name}")
    return 0


def cmd_media(args, config: SyncConfig) -> int:
    """Mark the start or end of a slot's attachment download."""
    store = VersionedFileStore(Path(args.storage) if args.storage else config.get_storage_root())
    slot = store.slot_for(args.form_name)
    if not slot.primary_exists():
        logger.error(f"No form definition in slot {slot.name}")
        return 1
    if args.action == "begin":
        store.begin_media_fetch(slot)
    else:
        store.end_media_fetch(slot)
    return 0


def cmd_cursor(args, config: SyncConfig) -> int:
    """Inspect or compare cursors."""
    try:
        cursors = [Cursor.parse(value) for value in args.cursors]
    except FormSyncError as e:
        logger.error(f"Invalid cursor: {e}")
        return 1

    if args.action == "parse":
        for cursor in cursors:
            print(json.dumps({
                "empty": cursor.is_empty(),
                "last_update": cursor.last_update.isoformat() if cursor.last_update else None,
                "last_returned_value": cursor.last_returned_value,
            }, indent=2))
        return 0

    if len(cursors) != 2:
        logger.error("compare needs exactly two cursors")
        return 1
    print(cursors[0].compare(cursors[1]).value)
    return 0


def cmd_pull(args, config: SyncConfig) -> int:
    """Pull form definitions and instance ids from the server."""
    server = config.get_server_config()
    if not server.get("url"):
        logger.error("No server URL configured (server.url or FORMSYNC_SERVER_URL)")
        return 1

    form_ids = args.form_id or config.get_forms()
    if not form_ids:
        logger.error("No forms to pull")
        return 1

    connector = AggregateConnector(
        base_url=server["url"],
        username=server.get("username"),
        password=server.get("password"),
        timeout=int(server.get("timeout", 30)),
        max_retries=int(server.get("max_retries", 3)),
        rate_limit_delay=float(server.get("rate_limit_delay", 0.0)),
    )
    try:
        driver = PullDriver(
            connector=connector,
            store=VersionedFileStore(config.get_storage_root()),
            num_entries=int(config.get("pull.num_entries", 100)),
            on_event=print_event,
        )
        results = driver.pull_forms(form_ids)
    finally:
        connector.close()

    return 0 if len(results) == len(form_ids) else 1


def parse_args(argv: Optional[List[str]] = None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Form definition and submission sync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose/debug logging")
    parser.add_argument("--config", help="Path to YAML config file")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON-structured logs")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    reconcile_parser = subparsers.add_parser("reconcile", help="Reconcile a downloaded form definition")
    reconcile_parser.add_argument("--form", required=True, help="Path to the downloaded form XML")
    reconcile_parser.add_argument("--storage", help="Storage root (default from config)")
    reconcile_parser.add_argument("--copy", action="store_true", help="Copy the form instead of moving it")

    promote_parser = subparsers.add_parser("promote-revision", help="Promote a revised definition to primary")
    promote_parser.add_argument("--form-name", required=True, help="Form title")
    promote_parser.add_argument("--storage", help="Storage root (default from config)")

    media_parser = subparsers.add_parser("media", help="Track a slot's attachment download")
    media_parser.add_argument("action", choices=["begin", "end"], help="Start or finish the download")
    media_parser.add_argument("--form-name", required=True, help="Form title")
    media_parser.add_argument("--storage", help="Storage root (default from config)")

    cursor_parser = subparsers.add_parser("cursor", help="Inspect pagination cursors")
    cursor_parser.add_argument("action", choices=["parse", "compare"], help="What to do")
    cursor_parser.add_argument("cursors", nargs="+", help="Cursor XML document(s)")

    pull_parser = subparsers.add_parser("pull", help="Pull forms and instance ids")
    pull_parser.add_argument("--form-id", action="append", help="Form id to pull (repeatable)")

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = SyncConfig(Path(args.config) if args.config else None)
    except FormSyncError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    level_name = "DEBUG" if args.verbose else str(config.get("logging.level", "INFO")).upper()
    configure_logging(
        level=getattr(logging, level_name, logging.INFO),
        structured=args.json_logs or bool(config.get("logging.structured", False)),
    )

    if args.command == "reconcile":
        return cmd_reconcile(args, config)
    elif args.command == "promote-revision":
        return cmd_promote_revision(args, config)
    elif args.command == "media":
        return cmd_media(args, config)
    elif args.command == "cursor":
        return cmd_cursor(args, config)
    elif args.command == "pull":
        return cmd_pull(args, config)
    else:
        print("No command specified. Use --help for usage.", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
