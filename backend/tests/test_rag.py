"""Retrieval debug, document lookup and doctor-slots endpoint tests."""

from __future__ import annotations

from httpx import AsyncClient
from qdrant_client import AsyncQdrantClient
from sqlalchemy.ext.asyncio import AsyncSession

from healthdesk.services import vector_store
from healthdesk.triage import prompts


async def test_rag_query(
    client: AsyncClient,
    session: AsyncSession,
    fake_embed: list[str],
    in_memory_qdrant: AsyncQdrantClient,
) -> None:
    await vector_store.ensure_collection(5)
    vectors = {
        "headache-doc": ("headache relief", [1.0, 0.0, 0.0, 0.0, 0.1]),
        "skin-doc": ("skin care", [0.0, 0.0, 0.0, 1.0, 0.1]),
    }
    for doc_id, (text, vector) in vectors.items():
        await vector_store.upsert_document(session, id=doc_id, source="MedQuAD", title=doc_id, text=text)
        await vector_store.set_embedding(session, doc_id, vector)
    await session.commit()

    response = await client.post("/api/v1/rag/query", json={"query": "bad headache", "k": 1})

    assert response.status_code == 200
    data = response.json()
    assert data["query"] == "bad headache"
    assert [d["id"] for d in data["docs"]] == ["headache-doc"]
    assert data["docs"][0]["text"] == "headache relief"


async def test_rag_query_validation(client: AsyncClient) -> None:
    response = await client.post("/api/v1/rag/query", json={"query": "x", "k": 0})
    assert response.status_code == 422


async def test_get_document(client: AsyncClient, session: AsyncSession) -> None:
    await vector_store.upsert_document(
        session, id="doc-1", source="MIMIC", title="Dx", text="ICD9_CODE=4019", metadata={"icd9_code": "4019"}
    )
    await session.commit()

    response = await client.get("/api/v1/documents/doc-1")
    assert response.status_code == 200
    data = response.json()
    assert data["source"] == "MIMIC"
    assert data["metadata"] == {"icd9_code": "4019"}


async def test_get_document_not_found(client: AsyncClient) -> None:
    response = await client.get("/api/v1/documents/missing")
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "DOCUMENT_NOT_FOUND"


class TestDoctorSlots:
    async def test_recommends_doctors(self, client: AsyncClient, seed_doctors, fake_llm) -> None:
        fake_llm.set(
            prompts.TRIAGE_SYSTEM_PROMPT,
            '{"triage_level": "MEDIUM", "recommended_specialty": "cardiologist", '
            '"red_flags": [], "follow_up_questions": ["a", "b", "c"], "short_summary": "Palpitations."}',
        )
        response = await client.post(
            "/api/v1/recommend/doctor-slots",
            json={"query": "my heart races sometimes", "from": "2026-10-19", "to": "2026-10-19", "per_doctor": 3},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["triage"]["recommended_specialty"] == "Cardiology"
        recommendation = data["recommendation"]
        assert recommendation["from"] == "2026-10-19"
        assert [d["name"] for d in recommendation["doctors"]] == ["Dr. Carlo Neri"]
        assert [s["localStart"] for s in recommendation["doctors"][0]["slots"]] == ["09:00", "09:30", "10:00"]

    async def test_per_doctor_camel_case(self, client: AsyncClient, seed_doctors, fake_llm) -> None:
        response = await client.post(
            "/api/v1/recommend/doctor-slots",
            json={"query": "a mild rash", "from": "2026-10-19", "to": "2026-10-19", "perDoctor": 2},
        )

        assert response.status_code == 200
        doctors = response.json()["recommendation"]["doctors"]
        assert [d["name"] for d in doctors] == ["Dr. Gina Rossi"]
        assert [s["localStart"] for s in doctors[0]["slots"]] == ["09:00", "09:30"]

    async def test_emergency_has_no_recommendation(self, client: AsyncClient, seed_doctors, fake_llm) -> None:
        response = await client.post(
            "/api/v1/recommend/doctor-slots",
            json={"query": "he is unconscious", "from": "2026-10-19", "to": "2026-10-25"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["triage"]["triage_level"] == "HIGH"
        assert data["recommendation"] is None

    async def test_inverted_range(self, client: AsyncClient, fake_llm) -> None:
        response = await client.post(
            "/api/v1/recommend/doctor-slots",
            json={"query": "rash", "from": "2026-10-20", "to": "2026-10-19"},
        )
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_DATE_RANGE"
        assert fake_llm.calls == []


async def test_health(client: AsyncClient) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}
