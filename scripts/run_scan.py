"""
Run one scan batch from the CLI, printing events as JSON lines.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import threading

from app.scanner.config import get_scanner_settings
from app.scanner.engine import BatchRequest, build_crawl_engine
from app.scanner.enrichment import NullExpiryLookup
from app.scanner.errors import ScannerError
from app.scanner.events import CallbackEventSink, Event
from app.scanner.storage import SQLAlchemyCheckpointStore, SQLAlchemyResultStore
from app.scanner.types import BatchOutcome, ScanMode
from db.session import SessionLocal


def _print_event(event: Event) -> None:
    sys.stdout.write(json.dumps(event, default=str) + "\n")
    sys.stdout.flush()


def build_parser() -> argparse.ArgumentParser:
    settings = get_scanner_settings()
    parser = argparse.ArgumentParser(description="Crawl a site and check its outbound domains.")
    parser.add_argument("start_url", help="Seed URL; its origin bounds the crawl.")
    parser.add_argument(
        "--batch-size",
        type=int,
        default=settings.default_batch_size,
        help="Maximum pages to crawl in this invocation.",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=settings.default_concurrency,
        help="Worker pool size.",
    )
    parser.add_argument(
        "--resume",
        action="store_true",
        help="Continue from the site's checkpoint instead of starting over.",
    )
    parser.add_argument(
        "--polite",
        action="store_true",
        help="Use the longer politeness delay between page fetches.",
    )
    parser.add_argument(
        "--no-enrichment",
        action="store_true",
        help="Skip registry expiry lookups for no-dns domains.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").strip().upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        stream=sys.stderr,
    )
    args = build_parser().parse_args(argv)
    settings = get_scanner_settings()

    if not 1 <= args.concurrency <= settings.max_concurrency:
        print(f"--concurrency must be between 1 and {settings.max_concurrency}", file=sys.stderr)
        return 2
    if args.batch_size < 1:
        print("--batch-size must be at least 1", file=sys.stderr)
        return 2

    request = BatchRequest(
        start_url=args.start_url,
        batch_size=args.batch_size,
        concurrency=args.concurrency,
        mode=ScanMode.RESUME if args.resume else ScanMode.NEW,
        aggressive=not args.polite,
    )
    try:
        engine = build_crawl_engine(
            request=request,
            settings=settings,
            checkpoint_store=SQLAlchemyCheckpointStore(session_factory=SessionLocal),
            result_store=SQLAlchemyResultStore(session_factory=SessionLocal),
            sink=CallbackEventSink(_print_event),
            expiry_lookup=NullExpiryLookup() if args.no_enrichment else None,
        )
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 2

    outcome: list[BatchOutcome] = []
    failure: list[BaseException] = []

    def _run() -> None:
        try:
            outcome.append(engine.run())
        except ScannerError as exc:
            failure.append(exc)

    worker = threading.Thread(target=_run, name="scan-batch", daemon=True)
    worker.start()
    while worker.is_alive():
        try:
            worker.join(timeout=0.5)
        except KeyboardInterrupt:
            engine.interrupt()

    if failure or not outcome:
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
