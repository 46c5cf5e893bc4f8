"""
Catalog ingester operator CLI.

Usage:
    # Import a CSV/XLSX sheet (new batch id), then sync media for every SKU
    python cli.py csv data/uploads/products.csv

    # Import one product from a URL
    python cli.py url https://example.com/item/42 --sku MUG-1 --image-url https://cdn.example.com/mug.jpg

    # Recompute every cost-plus price from stored attributes
    python cli.py reprice

    # Re-sync one gallery
    python cli.py sync-media MUG-1 --prefer MUG-1/front.jpg

    # Apply pending schema migrations
    python cli.py migrate

Queued work (the import and the media syncs it triggers) runs in this
process; the command returns once the queue is idle.
"""

import argparse
import json
import os
import sys
import uuid

from dotenv import load_dotenv

_root_dir = os.path.dirname(os.path.abspath(__file__))
load_dotenv(os.path.join(_root_dir, ".env"))

import structlog

from config import settings, configure_logging, get_pricing_config
from jobs.handlers import HANDLERS
from jobs.queue import Job, WorkerPool, get_job_queue
from models.jobs import (
    JobStatus,
    QUEUE_IMPORT,
    QUEUE_MEDIA,
    JOB_IMPORT_CSV,
    JOB_IMPORT_URL,
    JOB_SYNC_MEDIA,
)
from services.pricing_service import PricingService
from services.schema_service import ensure_schema

logger = structlog.get_logger(__name__)


def _run_queued(job: Job) -> int:
    """Drain the queue and print the outcome of `job`."""
    pool = WorkerPool(
        get_job_queue(),
        HANDLERS,
        concurrency={
            QUEUE_IMPORT: settings.import_concurrency,
            QUEUE_MEDIA: settings.media_concurrency,
        }
    )
    pool.run_until_idle()

    print(json.dumps(job.to_state().model_dump(mode="json"), indent=2, ensure_ascii=False))
    return 0 if job.status == JobStatus.COMPLETED else 1


def cmd_csv(args: argparse.Namespace) -> int:
    batch_id = args.batch_id or str(uuid.uuid4())
    job = get_job_queue().enqueue(
        QUEUE_IMPORT,
        JOB_IMPORT_CSV,
        {"csvPath": args.path, "batchId": batch_id}
    )
    print(f"Queued CSV import, batch: {batch_id}")
    return _run_queued(job)


def cmd_url(args: argparse.Namespace) -> int:
    data = {
        "sourceUrl": args.url,
        "sku": args.sku,
        "price": args.price,
        "currency": args.currency,
        "stock": args.stock,
        "categories": args.categories.split("|") if args.categories else [],
        "imageUrl": args.image_url,
        "modelUrl": args.model_url,
    }
    job = get_job_queue().enqueue(
        QUEUE_IMPORT,
        JOB_IMPORT_URL,
        {k: v for k, v in data.items() if v is not None}
    )
    print(f"Queued URL import: {args.url}")
    return _run_queued(job)


def cmd_reprice(args: argparse.Namespace) -> int:
    report = PricingService(get_pricing_config()).reprice_catalog()
    print(
        f"Repriced {report.repriced} of {report.scanned} cost_plus products "
        f"({report.skipped} skipped)"
    )
    return 0


def cmd_sync_media(args: argparse.Namespace) -> int:
    job = get_job_queue().enqueue(
        QUEUE_MEDIA,
        JOB_SYNC_MEDIA,
        {"sku": args.sku, "preferUrl": args.prefer}
    )
    return _run_queued(job)


def cmd_migrate(args: argparse.Namespace) -> int:
    applied = ensure_schema()
    if applied:
        print(f"Applied migrations: {', '.join(applied)}")
    else:
        print("Schema is up to date")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Catalog import, pricing and media sync"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("csv", help="Import a CSV/XLSX file through staging")
    p.add_argument("path", help="Path to the CSV or XLSX file")
    p.add_argument("--batch-id", help="Reuse a batch id (re-run an import)")
    p.set_defaults(func=cmd_csv)

    p = sub.add_parser("url", help="Import one product from a source URL")
    p.add_argument("url", help="Source page URL")
    p.add_argument("--sku")
    p.add_argument("--price", type=float)
    p.add_argument("--currency")
    p.add_argument("--stock", type=int)
    p.add_argument("--categories", help="Pipe-delimited slugs, e.g. 'toys|home'")
    p.add_argument("--image-url")
    p.add_argument("--model-url")
    p.set_defaults(func=cmd_url)

    p = sub.add_parser("reprice", help="Recompute all cost_plus prices")
    p.set_defaults(func=cmd_reprice)

    p = sub.add_parser("sync-media", help="Re-sync the gallery of one SKU")
    p.add_argument("sku")
    p.add_argument("--prefer", help="Image that should lead the gallery")
    p.set_defaults(func=cmd_sync_media)

    p = sub.add_parser("migrate", help="Apply pending schema migrations")
    p.set_defaults(func=cmd_migrate)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()

    if args.command != "migrate":
        ensure_schema()

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
