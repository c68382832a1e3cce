"""
Create (or recreate) the schema for local development.

Usage:

    python -m spot_tracker.scripts.init_db [--drop] [--database-url URL]
"""

import argparse
import asyncio
import logging

# Import models so that all tables are registered on Base.metadata
from .. import models  # noqa: F401
from ..database import Base, get_engine

logger = logging.getLogger(__name__)


async def init_schema(database_url: str | None = None, drop: bool = False) -> list[str]:
    engine = get_engine(database_url)
    try:
        async with engine.begin() as conn:
            if drop:
                await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
    finally:
        await engine.dispose()
    return sorted(Base.metadata.tables)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create the spot tracker tables.")
    parser.add_argument("--drop", action="store_true", help="Drop existing tables first.")
    parser.add_argument("--database-url", help="Override DATABASE_URL.")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    tables = asyncio.run(init_schema(args.database_url, drop=args.drop))
    logger.info("Schema ready: %s", ", ".join(tables))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
