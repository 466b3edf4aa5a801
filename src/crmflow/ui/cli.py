from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING, cast
from uuid import UUID

from dotenv import load_dotenv

from crmflow.app import (
    decide_activities,
    ingest_file,
    pending_activities,
    retry_source_event,
    source_events_by_status,
    sync_communications,
)
from crmflow.config import configure_logging
from crmflow.domain.model import SourceEventStatus

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from crmflow.domain.model import Activity

log = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile communications into CRM activities")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync = subparsers.add_parser("sync", help="Ingest, extract, and stage activities")
    sync.add_argument(
        "--source",
        type=Path,
        help="JSONL export to ingest before reconciling (newer than the stored watermark)",
    )
    approve = sync.add_mutually_exclusive_group()
    approve.add_argument(
        "--auto-approve",
        dest="auto_approve",
        action="store_const",
        const=True,
        default=None,
        help="Accept every staged activity right away (overrides CRMFLOW_AUTO_APPROVE)",
    )
    approve.add_argument(
        "--no-auto-approve",
        dest="auto_approve",
        action="store_const",
        const=False,
        help="Leave staged activities pending for review",
    )

    ingest = subparsers.add_parser("ingest", help="Store communications from a JSONL export")
    ingest.add_argument("path", type=Path, help="Path to the JSONL file")

    activities = subparsers.add_parser("activities", help="List pending activities")
    activities.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Maximum number of activities to show (default: %(default)s)",
    )

    accept = subparsers.add_parser("accept", help="Accept activities and apply them to the CRM")
    accept.add_argument("activity_ids", nargs="+", help="Activity ids to accept")

    reject = subparsers.add_parser("reject", help="Reject activities")
    reject.add_argument("activity_ids", nargs="+", help="Activity ids to reject")

    retry = subparsers.add_parser("retry", help="Reset a failed source event to pending")
    retry.add_argument("event_id", help="Source event id")

    events = subparsers.add_parser("events", help="List source events by status")
    events.add_argument(
        "--status",
        type=SourceEventStatus,
        choices=list(SourceEventStatus),
        default=SourceEventStatus.ERROR,
        help="Status to list (default: %(default)s)",
    )
    events.add_argument("--limit", type=int, help="Maximum number of events to show")

    return parser.parse_args(list(argv))


def _parse_uuid(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError as exc:
        raise ValueError(f"Invalid UUID: {value}") from exc


def _describe(activity: Activity) -> str:
    payload = activity.payload.to_data()
    label = payload.get("name") or payload.get("title") or payload.get("email") or ""
    subject = activity.provenance.source_subject or ""
    return (
        f"{activity.id}  {activity.entity_type}/{activity.action}  {label}  "
        f"(from {activity.provenance.source_sender}: {subject})"
    )


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args: argparse.Namespace
    try:
        parsed_args = _parse_args(args_list)
        configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)
        activity_ids: list[UUID] = []
        if parsed_args.command in {"accept", "reject"}:
            activity_ids = [_parse_uuid(value) for value in parsed_args.activity_ids]
        event_id = _parse_uuid(parsed_args.event_id) if parsed_args.command == "retry" else None
    except ValueError:
        log.exception("CLI validation error")
        sys.exit(2)

    try:
        if parsed_args.command == "sync":
            result = sync_communications(
                source_path=parsed_args.source,
                auto_approve=parsed_args.auto_approve,
            )
            log.info(
                "Sync finished: ingested=%s, processed=%s, errored=%s, deferred=%s, "
                "activities=%s, auto_accepted=%s",
                result.ingested,
                result.processed,
                result.errored,
                result.deferred,
                result.activities_created,
                result.auto_accepted,
            )
        elif parsed_args.command == "ingest":
            ingested = ingest_file(parsed_args.path)
            log.info("Ingest finished: created=%s, skipped=%s", ingested.created, ingested.skipped)
        elif parsed_args.command == "activities":
            for activity in pending_activities(limit=parsed_args.limit):
                print(_describe(activity))  # noqa: T201
        elif parsed_args.command in {"accept", "reject"}:
            decisions = decide_activities(
                activity_ids, accept=parsed_args.command == "accept"
            )
            for decision in decisions:
                log.info("%s: %s", decision.activity_id, decision.outcome)
                if decision.error:
                    log.error("%s: %s", decision.activity_id, decision.error)
            if not all(decision.succeeded for decision in decisions):
                sys.exit(1)
        elif parsed_args.command == "retry":
            event = retry_source_event(cast("UUID", event_id))
            log.info("Source event %s is pending again", event.external_id)
        elif parsed_args.command == "events":
            for event in source_events_by_status(parsed_args.status, limit=parsed_args.limit):
                detail = f"  {event.error_detail}" if event.error_detail else ""
                stamp = f"{event.received_at:%Y-%m-%d %H:%M}"
                print(f"{event.id}  {stamp}  {event.subject}{detail}")  # noqa: T201
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301

    except Exception:
        log.exception("Fatal error during %s", parsed_args.command)
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
