"""Dataset ingestion into the document store and the embedding backfill job.

Ingestion only inserts rows (embedding NULL). ``reembed_documents`` is the
separate batch pass that embeds whatever is still missing a vector; it never
runs on the chat path.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from lxml import etree
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from healthdesk.config import settings
from healthdesk.llm import gateway
from healthdesk.llm.gateway import GatewayError
from healthdesk.models.orm import Document
from healthdesk.models.rag import DocumentChunk
from healthdesk.services import vector_store
from healthdesk.services.text_chunker import chunk_text, clip, normalize_text

logger = logging.getLogger(__name__)

MEDQUAD_SOURCE = "MedQuAD"
MIMIC_SOURCE = "MIMIC"


@dataclass
class IngestStats:
    inserted: int = 0
    skipped: int = 0


# --- MedQuAD ---


def _node_text(node: etree._Element | None) -> str:
    if node is None:
        return ""
    return normalize_text("".join(node.itertext()))


def medquad_parent_id(source_folder: str, doc_id: str | None, pid: str | None) -> str:
    return f"medquad_{source_folder}_{doc_id or 'noid'}_{pid or 'nopid'}"


def medquad_chunks(
    xml_text: str,
    *,
    source_folder: str,
    file_name: str = "",
    chunk_size: int | None = None,
    overlap: int | None = None,
    threshold: int | None = None,
) -> list[DocumentChunk]:
    """One document per question/answer pair, chunked when too long."""
    chunk_size = chunk_size or settings.chunk_size
    overlap = settings.chunk_overlap if overlap is None else overlap
    threshold = threshold or settings.chunk_threshold

    root = etree.fromstring(xml_text.encode())
    doc_id = root.get("id")
    url = root.get("url")
    focus = _node_text(root.find("Focus"))

    chunks: list[DocumentChunk] = []
    for qa in root.iter("QAPair"):
        pid = qa.get("pid")
        question_node = qa.find("Question")
        question = _node_text(question_node)
        answer = _node_text(qa.find("Answer"))
        if not question or not answer:
            continue

        qid = question_node.get("qid") if question_node is not None else None
        qtype = question_node.get("qtype") if question_node is not None else None
        title_base = " ".join(
            part for part in (focus, f"({qtype})" if qtype else "", clip(question, 80)) if part
        )

        full_text = f"Question: {question}\n\nAnswer: {answer}"
        pieces = chunk_text(full_text, chunk_size, overlap, threshold)
        parent = medquad_parent_id(source_folder, doc_id, pid)
        total = len(pieces)

        for idx, piece in enumerate(pieces):
            chunks.append(
                DocumentChunk(
                    id=parent if total == 1 else f"{parent}_c{idx}",
                    source=MEDQUAD_SOURCE,
                    title=title_base if total == 1 else f"{title_base} (chunk {idx + 1}/{total})",
                    text=piece,
                    metadata={
                        "dataset": MEDQUAD_SOURCE,
                        "sourceFolder": source_folder,
                        "file": file_name,
                        "docId": doc_id,
                        "pid": pid,
                        "qid": qid,
                        "qtype": qtype,
                        "url": url,
                        "focus": focus,
                        "chunked": total > 1,
                        "chunk_index": idx,
                        "chunk_total": total,
                        "parent_id": parent,
                    },
                )
            )
    return chunks


# --- MIMIC-III demo diagnoses ---


def _field(row: dict[str, str], name: str) -> str:
    return str(row.get(name) or row.get(name.upper()) or "").strip()


def load_icd_dictionary(rows: Iterable[dict[str, str]]) -> dict[str, tuple[str, str]]:
    """ICD9 code -> (short title, long title)."""
    icd: dict[str, tuple[str, str]] = {}
    for row in rows:
        code = _field(row, "icd9_code")
        if code:
            icd[code] = (
                normalize_text(_field(row, "short_title")),
                normalize_text(_field(row, "long_title")),
            )
    return icd


def mimic_chunks(
    diagnosis_rows: Iterable[dict[str, str]],
    icd: dict[str, tuple[str, str]],
) -> Iterator[DocumentChunk]:
    """One short document per diagnosis row, titled by its ICD9 description."""
    for row in diagnosis_rows:
        code = _field(row, "icd9_code")
        if not code:
            continue
        row_id = _field(row, "row_id")
        subject_id = _field(row, "subject_id")
        hadm_id = _field(row, "hadm_id")
        seq_num = _field(row, "seq_num")
        short_title, long_title = icd.get(code, ("", ""))
        label = long_title or short_title

        yield DocumentChunk(
            id=f"mimic_dx_{row_id or f'{subject_id}_{hadm_id}_{seq_num}_{code}'}",
            source=MIMIC_SOURCE,
            title=f"MIMIC Diagnosis (ICD9 {code}): {label or 'Unknown diagnosis'}",
            text=(
                f"ICD9_CODE={code}\n"
                f"Diagnosis={label or 'Unknown'}\n"
                f"subject_id={subject_id} hadm_id={hadm_id} seq_num={seq_num}"
            ),
            metadata={
                "dataset": "MIMIC-III-DEMO",
                "table": "DIAGNOSES_ICD",
                "rowId": row_id,
                "subjectId": subject_id,
                "hadmId": hadm_id,
                "seqNum": seq_num,
                "icd9_code": code,
                "shortTitle": short_title,
                "longTitle": long_title,
                "pii_risk": True,
            },
        )


# --- Store ---


async def ingest_chunks(session: AsyncSession, chunks: Iterable[DocumentChunk]) -> IngestStats:
    """Insert chunks that are not stored yet. Existing ids are left untouched."""
    stats = IngestStats()
    for chunk in chunks:
        inserted = await vector_store.upsert_document(
            session,
            id=chunk.id,
            source=chunk.source,
            title=chunk.title,
            text=chunk.text,
            metadata=chunk.metadata,
        )
        if inserted:
            stats.inserted += 1
        else:
            stats.skipped += 1
    await session.commit()
    logger.info("Ingested %d documents (%d already present)", stats.inserted, stats.skipped)
    return stats


# --- Embedding backfill ---


def embedding_input(document: Document, max_chars: int | None = None) -> str:
    max_chars = max_chars or settings.embed_max_chars
    return f"{document.title or ''}\n\n{document.text}"[:max_chars]


async def reembed_documents(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    batch_size: int | None = None,
    concurrency: int | None = None,
) -> int:
    """Embed every document with a NULL embedding, oldest first.

    Works a page at a time with at most ``concurrency`` embedding calls in
    flight. Documents that fail to embed are skipped for the rest of the run.
    Returns the number of documents embedded.
    """
    batch_size = batch_size or settings.reembed_batch
    semaphore = asyncio.Semaphore(concurrency or settings.reembed_concurrency)
    failed: set[str] = set()
    collection_ready = False
    total = 0

    async def _embed(document: Document) -> tuple[str, list[float] | None]:
        async with semaphore:
            try:
                return document.id, await gateway.embed(embedding_input(document))
            except GatewayError as e:
                logger.warning("Embedding failed for %s: %s", document.id, e)
                return document.id, None

    async with session_factory() as session:
        while True:
            stmt = select(Document).where(Document.embedding.is_(None))
            if failed:
                stmt = stmt.where(Document.id.not_in(sorted(failed)))
            rows = (
                await session.execute(
                    stmt.order_by(Document.created_at, Document.id).limit(batch_size)
                )
            ).scalars().all()
            if not rows:
                break

            logger.info("Backfill batch of %d (embedded so far: %d)", len(rows), total)
            results = await asyncio.gather(*(_embed(d) for d in rows))
            for doc_id, vector in results:
                if vector is None:
                    failed.add(doc_id)
                    continue
                if not collection_ready:
                    await vector_store.ensure_collection(len(vector))
                    collection_ready = True
                await vector_store.set_embedding(session, doc_id, vector)
                total += 1

    logger.info("Backfill done: %d embedded, %d failed", total, len(failed))
    return total
