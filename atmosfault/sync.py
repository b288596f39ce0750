"""
Telemetry sync command line.

Usage:
    python -m atmosfault.sync all            # sync all 24 hourly shards
    python -m atmosfault.sync 5              # sync shard 05 only
    python -m atmosfault.sync cleanup [days] # retention sweep (default 7 days)

Exit status is non-zero when a single-hour sync fails or arguments are bad.
"""

import argparse
import logging
import sys
from datetime import timedelta
from typing import List, Optional

from atmosfault.config import config
from atmosfault.exceptions import AtmosFaultError, ValidationError
from atmosfault.ingestion import IngestionPipeline, validate_batch_index
from atmosfault.models import init_db, utcnow
from atmosfault.store import TrackingCacheStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='python -m atmosfault.sync',
        description='Pull balloon telemetry into the local store.',
    )
    parser.add_argument(
        'command',
        help="'all', an hour 0-23, or 'cleanup'",
    )
    parser.add_argument(
        'days',
        nargs='?',
        type=int,
        default=None,
        help=f'Retention window for cleanup (default {config.retention.days})',
    )
    return parser


def run_cleanup(pipeline: IngestionPipeline, days: int) -> int:
    """Purge stale telemetry and stale cached provider payloads."""
    if days < 0:
        raise ValidationError('Retention days must be non-negative')
    samples = pipeline.purge_older_than(days)
    cached = TrackingCacheStore().purge_older_than(utcnow() - timedelta(days=days))
    logger.info(f'Cleanup removed {samples} samples and {cached} cached lookups')
    return samples + cached


def main(argv: Optional[List[str]] = None, pipeline: Optional[IngestionPipeline] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if config.debug else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )

    init_db()
    pipeline = pipeline or IngestionPipeline()
    command = args.command.lower()

    try:
        if command == 'all':
            result = pipeline.ingest_all()
            print(f'Total records processed: {result.total}')
        elif command == 'cleanup':
            days = config.retention.days if args.days is None else args.days
            removed = run_cleanup(pipeline, days)
            print(f'Removed {removed} records older than {days} days')
        else:
            try:
                hour = int(command)
            except ValueError:
                raise ValidationError(f"Unknown command '{args.command}'") from None
            count = pipeline.ingest_batch(validate_batch_index(hour))
            print(f'Hour {hour:02d}: {count} records processed')
    except AtmosFaultError as e:
        logger.error(f'Sync failed: {e}')
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
