#!/usr/bin/env python3
"""
Batch import of the SF mobile food permit + schedule feeds, followed by the
embedding backfill for new food items.

    python -m backend.ingest
    python -m backend.ingest --trucks ./rows.csv --schedules ./schedules.csv --skip-embeddings

Safe to re-run: every write is an upsert and the backfill only embeds missing rows.
"""

import argparse
import asyncio
import logging
import sys

from backend.app.config import DATABASE_URL, SCHEDULES_CSV_URL, TRUCKS_CSV_URL
from backend.app.database import Database
from backend.app.errors import FoodTruckError
from backend.app.services.backfill import EmbeddingBackfill
from backend.app.services.embeddings import get_embedding_provider
from backend.app.services.ingestion import IngestionPipeline

logger = logging.getLogger("backend.ingest")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--trucks", default=TRUCKS_CSV_URL, help="permits CSV (URL or path)")
    parser.add_argument("--schedules", default=SCHEDULES_CSV_URL, help="schedules CSV (URL or path)")
    parser.add_argument("--database-url", default=DATABASE_URL)
    parser.add_argument("--skip-embeddings", action="store_true", help="import rows only")
    return parser.parse_args(argv)


def ingest(args: argparse.Namespace) -> None:
    database = Database(args.database_url)
    try:
        database.init_schema()
        report = IngestionPipeline(database).run(args.trucks, args.schedules)
        logger.info(
            "import done: %s locations, %s trucks, %s food records, %s schedules",
            report.locations,
            report.trucks,
            report.foods,
            report.schedules,
        )
        if not args.skip_embeddings:
            asyncio.run(EmbeddingBackfill(database, get_embedding_provider()).run())
        logger.info("done")
    finally:
        database.dispose()


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        ingest(parse_args(argv))
    except FoodTruckError as e:
        logger.error("ingestion failed: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
