"""CLI script to ingest MedQuAD and MIMIC-III demo data into the document store.

Documents are inserted without embeddings; run reembed_documents.py afterwards.

Usage:
    cd backend
    uv run python ../scripts/ingest_docs.py --medquad ../data/medquad/
    uv run python ../scripts/ingest_docs.py --mimic ../data/mimic/mimic-iii-clinical-database-demo-1.4/
"""

from __future__ import annotations

import argparse
import asyncio
import csv
import sys
from pathlib import Path

# Add backend/ to path so imports work when run from backend/
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "backend"))

from healthdesk.database import async_session, engine
from healthdesk.models.orm import Base
from healthdesk.services.ingestion import (
    IngestStats,
    ingest_chunks,
    load_icd_dictionary,
    medquad_chunks,
    mimic_chunks,
)


async def ingest_medquad(root: Path, limit: int) -> IngestStats:
    files = sorted(root.rglob("*.xml"))
    print(f"Found {len(files)} XML files")
    total = IngestStats()
    async with async_session() as session:
        for f in files:
            if limit and total.inserted >= limit:
                break
            chunks = medquad_chunks(
                f.read_text(encoding="utf-8"),
                source_folder=f.parent.name,
                file_name=f.name,
            )
            if not chunks:
                continue
            stats = await ingest_chunks(session, chunks)
            total.inserted += stats.inserted
            total.skipped += stats.skipped
    return total


async def ingest_mimic(root: Path, limit: int) -> IngestStats:
    with (root / "D_ICD_DIAGNOSES.csv").open(newline="", encoding="utf-8") as fh:
        icd = load_icd_dictionary(csv.DictReader(fh))
    print(f"ICD codes loaded: {len(icd)}")

    with (root / "DIAGNOSES_ICD.csv").open(newline="", encoding="utf-8") as fh:
        chunks = list(mimic_chunks(csv.DictReader(fh), icd))
    if limit:
        chunks = chunks[:limit]
    async with async_session() as session:
        return await ingest_chunks(session, chunks)


async def run(args: argparse.Namespace) -> IngestStats:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        if args.medquad:
            return await ingest_medquad(args.medquad, args.limit)
        return await ingest_mimic(args.mimic, args.limit)
    finally:
        await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Ingest medical datasets into the document store")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--medquad", type=Path, help="MedQuAD root directory (XML files)")
    group.add_argument("--mimic", type=Path, help="MIMIC-III demo directory (CSV files)")
    parser.add_argument("--limit", type=int, default=0, help="Stop after N inserted documents (0 = no limit)")
    args = parser.parse_args()

    target = args.medquad or args.mimic
    if not target.exists():
        print(f"Error: Directory not found: {target}")
        sys.exit(1)

    stats = asyncio.run(run(args))
    print(f"\nDone! Inserted {stats.inserted}, skipped {stats.skipped} (already present).")


if __name__ == "__main__":
    main()
