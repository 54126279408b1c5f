from __future__ import annotations

import argparse
import json
import sys

from docqa.config import configure_logging, get_settings
from docqa.db import get_engine, init_schema
from docqa.services.qa.pipeline import build_pipeline
from docqa.services.qa.types import IngestionReport


def _build_parser() -> argparse.ArgumentParser:
    settings = get_settings()

    parser = argparse.ArgumentParser(
        prog="docqa-ingest",
        description="Ingest stored documents into the catalog and search index",
    )
    parser.add_argument(
        "keys",
        nargs="*",
        help="Storage keys to ingest (relative to the storage directory)",
    )
    parser.add_argument(
        "--bucket",
        default="",
        help="Bucket name recorded with each ingested key",
    )
    parser.add_argument(
        "--reindex",
        action="store_true",
        help="Re-index every catalog document instead of ingesting keys",
    )
    parser.add_argument(
        "--log-level",
        default=settings.log_level,
        help="Logging level",
    )
    return parser


def _report_payload(report: IngestionReport) -> dict[str, object]:
    return {
        "processed": report.succeeded,
        "failed": report.failed,
        "documents": [outcome.document_id for outcome in report.outcomes if outcome.ok],
        "errors": {
            outcome.document_id: outcome.error for outcome in report.outcomes if not outcome.ok
        },
    }


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not args.reindex and not args.keys:
        parser.error("provide at least one storage key or --reindex")

    configure_logging(args.log_level)

    try:
        engine = get_engine()
        init_schema(engine)
        pipeline = build_pipeline(get_settings(), engine=engine)
        if args.reindex:
            report = pipeline.reindex()
        else:
            report = pipeline.ingest_notification((args.bucket, key) for key in args.keys)
    except Exception as exc:
        print(f"[docqa-ingest] failed: {exc}", file=sys.stderr, flush=True)
        raise SystemExit(1) from exc

    print(json.dumps(_report_payload(report)), flush=True)
    if report.failed:
        raise SystemExit(2)


if __name__ == "__main__":
    main()
