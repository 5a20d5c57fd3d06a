"""Chat endpoint tests: full turns with a stubbed model and in-memory Qdrant."""

from __future__ import annotations

from unittest.mock import AsyncMock

from httpx import AsyncClient
from qdrant_client import AsyncQdrantClient
from sqlalchemy.ext.asyncio import AsyncSession

from healthdesk.llm import gateway
from healthdesk.llm.gateway import GatewayError
from healthdesk.services import vector_store
from healthdesk.triage import engine, prompts


async def _new_chat(client: AsyncClient, patient_id: int) -> int:
    response = await client.post("/api/v1/chats", json={"patient_id": patient_id})
    assert response.status_code == 201
    return response.json()["id"]


async def _index_stomach_doc(session: AsyncSession) -> None:
    await vector_store.upsert_document(
        session,
        id="medquad_indigestion",
        source="MedQuAD",
        title="Indigestion",
        text="Stomach discomfort after meals is common.",
    )
    vector = await gateway.embed("stomach discomfort")
    await vector_store.ensure_collection(len(vector))
    await vector_store.set_embedding(session, "medquad_indigestion", vector)
    await session.commit()


class TestChatCrud:
    async def test_create_chat(self, client: AsyncClient, seed_patient) -> None:
        response = await client.post("/api/v1/chats", json={"patient_id": seed_patient.id})
        assert response.status_code == 201
        data = response.json()
        assert data["patient_id"] == seed_patient.id
        assert data["summary"] is None

    async def test_create_chat_patient_not_found(self, client: AsyncClient) -> None:
        response = await client.post("/api/v1/chats", json={"patient_id": 999})
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "PATIENT_NOT_FOUND"

    async def test_list_chats(self, client: AsyncClient, seed_patient) -> None:
        first = await _new_chat(client, seed_patient.id)
        second = await _new_chat(client, seed_patient.id)
        response = await client.get(f"/api/v1/patients/{seed_patient.id}/chats")
        assert response.status_code == 200
        assert [c["id"] for c in response.json()] == [second, first]

    async def test_messages_chat_not_found(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/chats/999/messages")
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "CHAT_NOT_FOUND"

    async def test_post_message_chat_not_found(self, client: AsyncClient, fake_llm) -> None:
        response = await client.post("/api/v1/chats/999/message", json={"content": "hello"})
        assert response.status_code == 404
        assert fake_llm.calls == []

    async def test_empty_message_rejected(self, client: AsyncClient, seed_patient) -> None:
        chat_id = await _new_chat(client, seed_patient.id)
        response = await client.post(f"/api/v1/chats/{chat_id}/message", json={"content": "   "})
        assert response.status_code == 422


class TestChatTurn:
    async def test_emergency_turn(
        self,
        client: AsyncClient,
        seed_patient,
        seed_doctors,
        fake_llm,
        fake_embed,
        in_memory_qdrant: AsyncQdrantClient,
    ) -> None:
        chat_id = await _new_chat(client, seed_patient.id)

        response = await client.post(
            f"/api/v1/chats/{chat_id}/message",
            json={"content": "I have chest pain and shortness of breath"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["user_message"]["role"] == "user"
        assistant = data["assistant_message"]
        assert assistant["role"] == "assistant"
        assert assistant["content"] == engine.emergency_message()

        sources = assistant["sources"]
        assert sources["triage"]["triage_level"] == "HIGH"
        assert sources["triage"]["recommended_specialty"] == "EMERGENCY"
        assert sources["docs"] == []
        assert sources["recommendation"] is None
        assert sources["meta"]["guardrails"] == ["emergency_phrase_pair"]
        assert sources["ui"]["emergency"] is True
        assert sources["ui"]["emergencyActions"][0]["kind"] == "call"

        # No retrieval and no answer pass for emergencies
        assert fake_embed == []
        assert fake_llm.calls_for(prompts.ANSWER_SYSTEM_PROMPT) == []

    async def test_mild_stomach_turn(
        self,
        client: AsyncClient,
        session: AsyncSession,
        seed_patient,
        seed_doctors,
        fake_llm,
        fake_embed,
        in_memory_qdrant: AsyncQdrantClient,
    ) -> None:
        await _index_stomach_doc(session)
        fake_llm.set(
            prompts.TRIAGE_SYSTEM_PROMPT,
            '{"triage_level": "MEDIUM", "recommended_specialty": "Gastroenterology", '
            '"red_flags": [], "follow_up_questions": ["a", "b", "c"], '
            '"short_summary": "Patient reports mild stomach pain."}',
        )
        fake_llm.set(prompts.ANSWER_SYSTEM_PROMPT, '{"answer": "Mild stomach pain is often harmless."}')
        chat_id = await _new_chat(client, seed_patient.id)

        response = await client.post(
            f"/api/v1/chats/{chat_id}/message",
            json={"content": "I have mild stomach pain after lunch"},
        )

        assert response.status_code == 201
        assistant = response.json()["assistant_message"]
        assert assistant["content"] == "Mild stomach pain is often harmless."

        sources = assistant["sources"]
        assert sources["triage"]["triage_level"] == "LOW"
        assert sources["triage"]["recommended_specialty"] == "General Practice"
        assert sources["meta"] == {"newIssueDetected": False, "guardrails": ["mild_digestive"]}
        assert sources["ui"]["emergency"] is False
        assert sources["ui"]["issueNote"] is None
        assert [d["id"] for d in sources["docs"]] == ["medquad_indigestion"]

        recommendation = sources["recommendation"]
        assert recommendation["specialty"] == "General Practice"
        assert [d["name"] for d in recommendation["doctors"]] == ["Dr. Gina Rossi"]
        slots = recommendation["doctors"][0]["slots"]
        assert 0 < len(slots) <= 5
        assert slots[0]["timeZone"] == "Europe/Rome"

        # The answer prompt saw the retrieved document
        assert "Stomach discomfort after meals" in fake_llm.calls_for(prompts.ANSWER_SYSTEM_PROMPT)[0]

        chats = (await client.get(f"/api/v1/patients/{seed_patient.id}/chats")).json()
        assert chats[0]["summary"] == "Patient reports a minor complaint."

    async def test_new_issue_flagged(
        self,
        client: AsyncClient,
        seed_patient,
        fake_llm,
        fake_embed,
        in_memory_qdrant: AsyncQdrantClient,
    ) -> None:
        chat_id = await _new_chat(client, seed_patient.id)
        await client.post(f"/api/v1/chats/{chat_id}/message", json={"content": "I have an itchy rash"})
        fake_llm.set(prompts.CONTINUITY_SYSTEM_PROMPT, '{"same_issue": false}')

        response = await client.post(
            f"/api/v1/chats/{chat_id}/message", json={"content": "Also my knee hurts when I run"}
        )

        sources = response.json()["assistant_message"]["sources"]
        assert sources["meta"]["newIssueDetected"] is True
        assert sources["ui"]["issueNote"] == prompts.NEW_ISSUE_NOTE
        continuity_prompt = fake_llm.calls_for(prompts.CONTINUITY_SYSTEM_PROMPT)[0]
        assert "- I have an itchy rash" in continuity_prompt
        assert "- Also my knee hurts" not in continuity_prompt

    async def test_messages_listed_in_order(
        self,
        client: AsyncClient,
        seed_patient,
        fake_llm,
        fake_embed,
        in_memory_qdrant: AsyncQdrantClient,
    ) -> None:
        chat_id = await _new_chat(client, seed_patient.id)
        await client.post(f"/api/v1/chats/{chat_id}/message", json={"content": "first"})
        await client.post(f"/api/v1/chats/{chat_id}/message", json={"content": "second"})

        response = await client.get(f"/api/v1/chats/{chat_id}/messages")
        assert response.status_code == 200
        messages = response.json()
        assert [m["role"] for m in messages] == ["user", "assistant", "user", "assistant"]
        assert messages[0]["content"] == "first"
        assert messages[0]["sources"] is None

    async def test_model_outage_still_answers(
        self,
        client: AsyncClient,
        seed_patient,
        fake_llm,
        fake_embed,
        in_memory_qdrant: AsyncQdrantClient,
    ) -> None:
        for system_prompt in list(fake_llm.replies):
            fake_llm.set(system_prompt, GatewayError("down", status_code=503))
        chat_id = await _new_chat(client, seed_patient.id)

        response = await client.post(f"/api/v1/chats/{chat_id}/message", json={"content": "my back hurts"})

        assert response.status_code == 201
        assistant = response.json()["assistant_message"]
        assert assistant["content"] == prompts.ANSWER_FALLBACK_MESSAGE
        assert assistant["sources"]["triage"]["triage_level"] == "MEDIUM"

    async def test_summary_failure_does_not_fail_turn(
        self,
        client: AsyncClient,
        seed_patient,
        fake_llm,
        fake_embed,
        in_memory_qdrant: AsyncQdrantClient,
        mocker,
    ) -> None:
        summarize = mocker.patch(
            "healthdesk.services.chat_service.summarize_chat",
            new_callable=AsyncMock,
            side_effect=RuntimeError("summary store unavailable"),
        )
        chat_id = await _new_chat(client, seed_patient.id)

        response = await client.post(f"/api/v1/chats/{chat_id}/message", json={"content": "my back hurts"})

        assert response.status_code == 201
        summarize.assert_awaited_once()
        chats = (await client.get(f"/api/v1/patients/{seed_patient.id}/chats")).json()
        assert chats[0]["summary"] is None
