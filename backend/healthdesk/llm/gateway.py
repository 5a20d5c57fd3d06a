"""Language model gateway: text generation and embeddings.

Two operations, ``generate`` and ``embed``, each routed to the backend named
in settings. Every backend failure surfaces as ``GatewayError``; retries are
left to callers.
"""

from __future__ import annotations

import logging
from typing import Any, Literal

import httpx
from claude_agent_sdk import (
    AssistantMessage,
    ClaudeAgentOptions,
    ClaudeSDKError,
    ResultMessage,
    TextBlock,
    query,
)
from google import genai
from google.auth import exceptions as auth_errors
from google.genai import errors as genai_errors
from google.genai import types

from healthdesk.config import settings

logger = logging.getLogger(__name__)

EmbedTask = Literal["document", "query"]

_VERTEX_TASK_TYPES = {"document": "RETRIEVAL_DOCUMENT", "query": "RETRIEVAL_QUERY"}


class GatewayError(Exception):
    """Raised when an LLM or embedding backend is unreachable or answers non-2xx."""

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(message)


# --- Clients (lazy init) ---

_genai_client: genai.Client | None = None


def _http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.ollama_base_url, timeout=settings.llm_timeout_seconds
    )


def get_genai_client() -> genai.Client:
    """Get or create the Google GenAI client (Vertex AI via ADC)."""
    global _genai_client
    if _genai_client is None:
        _genai_client = genai.Client(
            vertexai=True,
            project=settings.gcp_project_id,
            location=settings.gcp_location,
        )
    return _genai_client


async def _ollama_post(path: str, payload: dict) -> Any:
    try:
        async with _http_client() as client:
            resp = await client.post(path, json=payload)
    except httpx.HTTPError as e:
        raise GatewayError(f"Ollama request to {path} failed: {e}") from e

    if resp.is_error:
        raise GatewayError(
            f"Ollama {path} failed: {resp.status_code}",
            status_code=resp.status_code,
            body=resp.text,
        )
    try:
        return resp.json()
    except ValueError as e:
        raise GatewayError(
            f"Ollama {path} returned invalid JSON",
            status_code=resp.status_code,
            body=resp.text,
        ) from e


# --- Embedding ---


async def _ollama_embed(text: str) -> list[float]:
    data = await _ollama_post(
        "/api/embeddings", {"model": settings.ollama_embed_model, "prompt": text}
    )
    embedding = data.get("embedding") if isinstance(data, dict) else None
    if not isinstance(embedding, list) or not embedding:
        raise GatewayError("Ollama returned no embedding", body=str(data)[:500])
    return [float(v) for v in embedding]


async def _vertex_embed(text: str, task: EmbedTask) -> list[float]:
    try:
        client = get_genai_client()
        response = await client.aio.models.embed_content(
            model=settings.vertex_embedding_model,
            contents=[text],
            config=types.EmbedContentConfig(
                output_dimensionality=settings.embedding_dimensions,
                task_type=_VERTEX_TASK_TYPES[task],
            ),
        )
    except genai_errors.APIError as e:
        raise GatewayError(
            f"Vertex embedding failed: {e.message}", status_code=e.code, body=str(e)
        ) from e
    except httpx.HTTPError as e:
        raise GatewayError(f"Vertex embedding request failed: {e}") from e
    except auth_errors.GoogleAuthError as e:
        raise GatewayError(f"Vertex credentials unavailable: {e}") from e
    return list(response.embeddings[0].values)


async def embed(text: str, *, task: EmbedTask = "document") -> list[float]:
    """Embed ``text`` into a fixed-length vector."""
    logger.debug(
        "Embedding %s (%d chars, provider=%s)",
        task,
        len(text),
        settings.embedding_provider,
    )
    if settings.embedding_provider == "vertex":
        vector = await _vertex_embed(text, task)
    else:
        vector = await _ollama_embed(text)
    logger.debug("Embedded -> %d-dim vector", len(vector))
    return vector


# --- Generation ---


async def _ollama_generate(system_prompt: str, user_prompt: str) -> str:
    data = await _ollama_post(
        "/api/generate",
        {
            "model": settings.ollama_chat_model,
            "system": system_prompt,
            "prompt": user_prompt,
            "stream": False,
        },
    )
    if not isinstance(data, dict):
        raise GatewayError("Ollama returned an unexpected payload", body=str(data)[:500])
    return str(data.get("response", ""))


async def _claude_generate(system_prompt: str, user_prompt: str) -> str:
    options = ClaudeAgentOptions(
        system_prompt=system_prompt,
        model=settings.ai_model,
        max_turns=1,
        allowed_tools=[],
        permission_mode="bypassPermissions",
    )
    parts: list[str] = []
    try:
        async for message in query(prompt=user_prompt, options=options):
            if isinstance(message, AssistantMessage):
                parts.extend(b.text for b in message.content if isinstance(b, TextBlock))
            elif isinstance(message, ResultMessage) and message.is_error:
                raise GatewayError(
                    "Claude agent returned an error", body=message.result or ""
                )
    except ClaudeSDKError as e:
        raise GatewayError(f"Claude agent failed: {e}", body=str(e)) from e
    return "".join(parts)


async def generate(system_prompt: str, user_prompt: str) -> str:
    """Send a system/user prompt pair to the configured model, return raw text."""
    logger.debug(
        "Generating (provider=%s, system=%d chars, user=%d chars)",
        settings.llm_provider,
        len(system_prompt),
        len(user_prompt),
    )
    if settings.llm_provider == "claude":
        text = await _claude_generate(system_prompt, user_prompt)
    else:
        text = await _ollama_generate(system_prompt, user_prompt)
    logger.debug("Model returned %d chars", len(text))
    return text
