"""Command-line entrypoint for the exchange ledger."""

from __future__ import annotations

import argparse
import json
import time
from contextlib import contextmanager
from typing import List, Optional

from .config.settings import get_app_config
from .datalake.storage import SQLiteStorage
from .deployment import Deployment, build_deployment
from .ledger.errors import LedgerError
from .monitoring import bootstrap_observability
from .monitoring.event_bus import EVENT_BUS
from .monitoring.logger import get_logger
from .monitoring.metrics import METRICS

logger = get_logger(__name__)


@contextmanager
def performance_monitor(operation_name: str):
    """Record the duration and call count of a CLI step."""
    start_time = time.time()
    try:
        yield
    finally:
        duration = time.time() - start_time
        METRICS.observe(f"cli.{operation_name}.duration_seconds", duration)
        METRICS.increment(f"cli.{operation_name}.calls_total", 1.0)


def bootstrap(persist: bool = True) -> tuple[Deployment, Optional[SQLiteStorage]]:
    config = get_app_config()
    storage = SQLiteStorage(config.storage.database_path) if persist else None
    bootstrap_observability(storage, config=config)
    with performance_monitor("deployment"):
        deployment = build_deployment(config)
    EVENT_BUS.flush()
    return deployment, storage


def command_summary(args: argparse.Namespace) -> int:
    deployment, _ = bootstrap(persist=not args.no_persist)
    print(json.dumps(deployment.summary(), indent=2))
    return 0


def command_quote(args: argparse.Namespace) -> int:
    deployment, _ = bootstrap(persist=False)
    decimals = args.decimals if args.decimals is not None else deployment.config.ledger.token_decimals
    try:
        quote = deployment.swap.quote(args.token_one, decimals, args.token_two, args.amount)
    except LedgerError as exc:
        logger.warning("Quote rejected: %s", exc.message, extra={"error": exc.code})
        return 1
    print(
        json.dumps(
            {
                "token_one": quote.token_one,
                "token_two": quote.token_two,
                "token_one_amount": quote.token_one_amount,
                "ratio": quote.ratio,
                "gross_token_two_amount": quote.gross_token_two_amount,
                "royalty_fee_amount": quote.royalty_fee_amount,
                "token_two_amount": quote.token_two_amount,
            },
            indent=2,
        )
    )
    return 0


def command_events(args: argparse.Namespace) -> int:
    config = get_app_config()
    storage = SQLiteStorage(config.storage.database_path)
    for record in storage.list_event_logs(limit=args.limit, event_type=args.event_type):
        print(
            json.dumps(
                {
                    "id": record.id,
                    "timestamp": record.timestamp.isoformat(),
                    "event_type": record.event_type,
                    "severity": record.severity,
                    "source": record.source,
                    "correlation_id": record.correlation_id,
                    "payload": record.payload,
                },
                default=str,
            )
        )
    return 0


def command_metrics(args: argparse.Namespace) -> int:
    bootstrap(persist=False)
    print(METRICS.export_prometheus())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Inspect and exercise the exchange ledger")
    subparsers = parser.add_subparsers(dest="command", required=True)

    summary = subparsers.add_parser("summary", help="Build the configured deployment and print its layout")
    summary.add_argument("--no-persist", action="store_true", default=False)
    summary.set_defaults(handler=command_summary)

    quote = subparsers.add_parser("quote", help="Quote a swap against the configured ratio table")
    quote.add_argument("token_one")
    quote.add_argument("token_two")
    quote.add_argument("amount", type=int, help="Token one amount in base units")
    quote.add_argument(
        "--decimals",
        type=int,
        default=None,
        help="Token one decimals (default: ledger.token_decimals)",
    )
    quote.set_defaults(handler=command_quote)

    events = subparsers.add_parser("events", help="List persisted contract events, newest first")
    events.add_argument("--limit", type=int, default=50)
    events.add_argument("--event-type", default=None)
    events.set_defaults(handler=command_events)

    metrics = subparsers.add_parser("metrics", help="Print Prometheus metrics after bootstrapping")
    metrics.set_defaults(handler=command_metrics)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return args.handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
