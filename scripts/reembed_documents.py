"""CLI script to embed all documents that have no embedding yet.

Usage:
    cd backend
    uv run python ../scripts/reembed_documents.py --batch 100 --concurrency 2
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

# Add backend/ to path so imports work when run from backend/
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "backend"))

from healthdesk.config import settings
from healthdesk.database import async_session, engine
from healthdesk.services.ingestion import reembed_documents


async def run(batch: int, concurrency: int) -> int:
    try:
        return await reembed_documents(async_session, batch_size=batch, concurrency=concurrency)
    finally:
        await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Backfill document embeddings")
    parser.add_argument("--batch", type=int, default=settings.reembed_batch, help="Rows per page")
    parser.add_argument(
        "--concurrency", type=int, default=settings.reembed_concurrency, help="Parallel embedding calls"
    )
    args = parser.parse_args()

    total = asyncio.run(run(args.batch, args.concurrency))
    print(f"Done. Total embedded: {total}")


if __name__ == "__main__":
    main()
