import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from ..config import (
    AI_LOG_PAYLOADS,
    AI_MAX_RETRIES,
    AI_TIMEOUT_S,
    GEMINI_API_KEY,
    GEMINI_API_VERSION,
    GEMINI_BASE_URL,
    GEMINI_MODEL,
)
from ..errors import ProviderError


logger = logging.getLogger(__name__)

_RETRY_STATUS = {408, 429, 500, 502, 503, 504}


@dataclass(frozen=True)
class ChatTurn:
    role: str  # "user" | "assistant"
    content: str


@dataclass(frozen=True)
class GeminiMeta:
    model: str
    latency_ms: int
    status_code: int | None
    retries: int


def _safe_truncate(s: str, n: int = 800) -> str:
    s = s or ""
    if len(s) <= n:
        return s
    return s[:n] + "…"


def build_contents(system_prompt: str, examples: list[ChatTurn], content: str) -> list[dict[str, Any]]:
    """
    Gemini `contents` for a system prompt, few-shot turns and the final user message.

    The system prompt is inlined into the first user turn (some API versions reject
    systemInstruction); assistant turns map to Gemini's "model" role.
    """
    turns = [*examples, ChatTurn(role="user", content=content)]
    contents: list[dict[str, Any]] = []
    for i, turn in enumerate(turns):
        text = turn.content or ""
        if i == 0 and system_prompt:
            text = f"{system_prompt.strip()}\n\n{text}"
        role = "model" if turn.role == "assistant" else "user"
        contents.append({"role": role, "parts": [{"text": text}]})
    return contents


def first_candidate_text(data: Any) -> str:
    # Typical shape:
    # { candidates: [ { content: { parts: [ { text: "..." } ] } } ], ... }
    if not isinstance(data, dict):
        raise ProviderError("failed to get chat response: malformed response", kind=ProviderError.EMPTY_RESPONSE)
    candidates = data.get("candidates") or []
    if not isinstance(candidates, list) or not candidates:
        raise ProviderError("failed to get chat response: no candidates", kind=ProviderError.EMPTY_RESPONSE)
    candidate = candidates[0] if isinstance(candidates[0], dict) else {}
    content = candidate.get("content") if isinstance(candidate.get("content"), dict) else {}
    parts = content.get("parts") if isinstance(content.get("parts"), list) else []
    text = "".join(str(p.get("text") or "") for p in parts if isinstance(p, dict)).strip()
    if not text:
        raise ProviderError("failed to get chat response: no content found", kind=ProviderError.EMPTY_RESPONSE)
    return text


class GeminiChatClient:
    """
    Calls Gemini Generative Language API (API key auth) and returns the model text.

    Endpoint:
      POST {base_url}/{api_version}/models/{model}:generateContent
    Auth:
      x-goog-api-key: {api_key}
    """

    def __init__(
        self,
        *,
        api_key: str,
        model: str = GEMINI_MODEL,
        base_url: str = GEMINI_BASE_URL,
        api_version: str = GEMINI_API_VERSION,
        temperature: float = 0.3,
        timeout_s: float = AI_TIMEOUT_S,
        max_retries: int = AI_MAX_RETRIES,
        log_payloads: bool = AI_LOG_PAYLOADS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not api_key:
            raise ProviderError("Missing GEMINI_API_KEY")
        if not model:
            raise ProviderError("Missing GEMINI_MODEL")
        model_path = model.strip()
        if model_path.startswith("models/"):
            model_path = model_path[len("models/") :]
        api_v = (api_version or "v1").strip().lstrip("/")
        self.url = f"{(base_url or '').rstrip('/')}/{api_v}/models/{model_path}:generateContent"
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.log_payloads = log_payloads
        self.transport = transport
        self.last_meta: GeminiMeta | None = None

    async def complete(self, system_prompt: str, examples: list[ChatTurn], content: str) -> str:
        body = {
            "contents": build_contents(system_prompt, examples, content),
            "generationConfig": {"temperature": float(self.temperature)},
        }
        headers = {
            "x-goog-api-key": self.api_key,
            "content-type": "application/json",
        }

        start = time.perf_counter()
        for attempt in range(self.max_retries + 1):
            try:
                async with httpx.AsyncClient(timeout=self.timeout_s, transport=self.transport) as client:
                    if self.log_payloads:
                        logger.info(
                            "Gemini request model=%s url=%s body=%s",
                            self.model,
                            self.url,
                            _safe_truncate(json.dumps(body, ensure_ascii=False)),
                        )
                    r = await client.post(self.url, json=body, headers=headers)
            except httpx.TimeoutException:
                if attempt < self.max_retries:
                    backoff = 0.5 * (2**attempt)
                    logger.warning("Gemini timeout; retrying in %.1fs", backoff)
                    await asyncio.sleep(backoff)
                    continue
                raise ProviderError("Gemini request timed out", kind=ProviderError.TRANSPORT) from None
            except httpx.RequestError as e:
                if attempt < self.max_retries:
                    backoff = 0.5 * (2**attempt)
                    logger.warning("Gemini network error (%s); retrying in %.1fs", type(e).__name__, backoff)
                    await asyncio.sleep(backoff)
                    continue
                raise ProviderError(f"Gemini request failed: {type(e).__name__}", kind=ProviderError.TRANSPORT) from e

            if r.status_code >= 400:
                # Retry only on transient server errors / rate limits.
                if r.status_code in _RETRY_STATUS and attempt < self.max_retries:
                    backoff = 0.5 * (2**attempt)
                    logger.warning("Gemini HTTP %s; retrying in %.1fs", r.status_code, backoff)
                    await asyncio.sleep(backoff)
                    continue
                raise ProviderError(
                    f"failed to get chat response: HTTP {r.status_code} {_safe_truncate(r.text, 1000)}",
                    kind=ProviderError.PROVIDER_ERROR,
                    code=r.status_code,
                )

            try:
                data = r.json() or {}
            except ValueError:
                raise ProviderError("failed to get chat response: malformed JSON", kind=ProviderError.EMPTY_RESPONSE) from None
            text = first_candidate_text(data)
            self.last_meta = GeminiMeta(
                model=self.model,
                latency_ms=int((time.perf_counter() - start) * 1000),
                status_code=r.status_code,
                retries=attempt,
            )
            logger.info(
                "Gemini ok model=%s status=%s latency_ms=%s retries=%s",
                self.last_meta.model,
                self.last_meta.status_code,
                self.last_meta.latency_ms,
                self.last_meta.retries,
            )
            return text

        # Should be unreachable
        raise ProviderError("Gemini request failed", kind=ProviderError.TRANSPORT)


def get_chat_client() -> GeminiChatClient:
    return GeminiChatClient(api_key=GEMINI_API_KEY or "")
