import asyncio
import json
import logging
import re
from typing import Any, Protocol

import httpx

from ..config import (
    AI_LOG_PAYLOADS,
    AI_MAX_RETRIES,
    AI_TIMEOUT_S,
    EMBEDDINGS_MODEL,
    EMBEDDINGS_PROVIDER,
    EMBEDEFY_ACCESS_TOKEN,
    EMBEDEFY_BASE_URL,
    EMBEDEFY_MODEL,
)
from ..errors import ProviderError


logger = logging.getLogger(__name__)

_WS_RE = re.compile(r"\s+")
_RETRY_STATUS = {408, 429, 500, 502, 503, 504}


def normalize_text(text: str) -> str:
    t = (text or "").strip()
    t = _WS_RE.sub(" ", t)
    return t


class EmbeddingProvider(Protocol):
    async def embed(self, text: str) -> list[float]: ...


def _safe_truncate(s: str, n: int = 800) -> str:
    s = s or ""
    if len(s) <= n:
        return s
    return s[:n] + "…"


class EmbedefyProvider:
    """
    Embedefy embeddings API.

    Endpoint:
      POST {base_url}/v1/embeddings  {"model": ..., "inputs": [text]}
    Auth:
      Authorization: Bearer {token}
    """

    def __init__(
        self,
        *,
        access_token: str,
        base_url: str = EMBEDEFY_BASE_URL,
        model: str = EMBEDEFY_MODEL,
        timeout_s: float = AI_TIMEOUT_S,
        max_retries: int = AI_MAX_RETRIES,
        log_payloads: bool = AI_LOG_PAYLOADS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not access_token:
            raise ProviderError("Missing EMBEDEFY_ACCESS_TOKEN")
        self.access_token = access_token
        self.url = f"{(base_url or '').rstrip('/')}/v1/embeddings"
        self.model = model
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.log_payloads = log_payloads
        self.transport = transport

    async def embed(self, text: str) -> list[float]:
        body = {"model": self.model, "inputs": [normalize_text(text)]}
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "content-type": "application/json",
        }

        for attempt in range(self.max_retries + 1):
            try:
                async with httpx.AsyncClient(timeout=self.timeout_s, transport=self.transport) as client:
                    if self.log_payloads:
                        logger.info("Embedefy request url=%s body=%s", self.url, _safe_truncate(json.dumps(body)))
                    r = await client.post(self.url, json=body, headers=headers)
            except httpx.TimeoutException:
                if attempt < self.max_retries:
                    backoff = 0.5 * (2**attempt)
                    logger.warning("Embedefy timeout; retrying in %.1fs", backoff)
                    await asyncio.sleep(backoff)
                    continue
                raise ProviderError("embedding request timed out", kind=ProviderError.TRANSPORT) from None
            except httpx.RequestError as e:
                if attempt < self.max_retries:
                    backoff = 0.5 * (2**attempt)
                    logger.warning("Embedefy network error (%s); retrying in %.1fs", type(e).__name__, backoff)
                    await asyncio.sleep(backoff)
                    continue
                raise ProviderError(f"embedding request failed: {type(e).__name__}", kind=ProviderError.TRANSPORT) from e

            if r.status_code in _RETRY_STATUS and attempt < self.max_retries:
                backoff = 0.5 * (2**attempt)
                logger.warning("Embedefy HTTP %s; retrying in %.1fs", r.status_code, backoff)
                await asyncio.sleep(backoff)
                continue
            return self._parse(r)

        # Should be unreachable
        raise ProviderError("embedding request failed", kind=ProviderError.TRANSPORT)

    @staticmethod
    def _parse(r: httpx.Response) -> list[float]:
        try:
            data: Any = r.json()
        except ValueError:
            raise ProviderError(
                f"failed to generate embedding: HTTP {r.status_code} {_safe_truncate(r.text, 200)}",
                kind=ProviderError.EMPTY_RESPONSE if r.status_code < 400 else ProviderError.PROVIDER_ERROR,
                code=r.status_code,
            ) from None
        if not isinstance(data, dict):
            raise ProviderError("failed to generate embedding: malformed response", kind=ProviderError.EMPTY_RESPONSE)

        # Typical error shape: {"error": "invalid_token", "message": "..."}
        if data.get("error") or r.status_code >= 400:
            code = data.get("error") or r.status_code
            raise ProviderError(
                f"failed to generate embedding {code}: {data.get('message') or ''}".rstrip(": "),
                kind=ProviderError.PROVIDER_ERROR,
                code=code,
            )

        # Typical shape: {"inputs": [{"data": [0.01, ...]}], ...}
        inputs = data.get("inputs") or []
        if not isinstance(inputs, list) or not inputs:
            raise ProviderError("failed to generate embedding: no inputs", kind=ProviderError.EMPTY_RESPONSE)
        vector = inputs[0].get("data") if isinstance(inputs[0], dict) else None
        if not isinstance(vector, list) or not vector:
            raise ProviderError("failed to generate embedding: empty vector", kind=ProviderError.EMPTY_RESPONSE)
        try:
            return [float(x) for x in vector]
        except (TypeError, ValueError):
            raise ProviderError("failed to generate embedding: non-numeric vector", kind=ProviderError.EMPTY_RESPONSE) from None


class LocalEmbeddingProvider:
    """fastembed on CPU; the model is downloaded on first use."""

    def __init__(self, model: str = EMBEDDINGS_MODEL):
        self.model = model
        self._embedder = None

    def _get_embedder(self):
        if self._embedder is not None:
            return self._embedder
        from fastembed import TextEmbedding

        self._embedder = TextEmbedding(model_name=self.model)
        return self._embedder

    async def embed(self, text: str) -> list[float]:
        t = normalize_text(text)
        if not t:
            raise ProviderError("failed to generate embedding: empty text", kind=ProviderError.EMPTY_RESPONSE)
        try:
            # fastembed returns an iterator of numpy arrays
            vec = next(iter(self._get_embedder().embed([t])), None)
        except Exception as e:
            raise ProviderError(f"local embedding failed: {type(e).__name__}: {e}") from e
        if vec is None or len(vec) == 0:
            raise ProviderError("failed to generate embedding: no vectors", kind=ProviderError.EMPTY_RESPONSE)
        return [float(x) for x in vec.tolist()]


def get_embedding_provider(provider: str = EMBEDDINGS_PROVIDER) -> EmbeddingProvider:
    if provider == "embedefy":
        return EmbedefyProvider(access_token=EMBEDEFY_ACCESS_TOKEN or "")
    if provider == "local":
        return LocalEmbeddingProvider()
    raise ProviderError(f"Unknown EMBEDDINGS_PROVIDER: {provider}")
