from __future__ import annotations

import hashlib
import logging
import os
import re
from math import sqrt

from app.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"[a-z0-9']+")


def _hash_to_vector(text: str, dim: int) -> list[float]:
    """Hashed bag-of-words vector, L2-normalised so texts sharing words land close together."""
    vector = [0.0] * dim
    for token in _TOKEN_RE.findall(text.lower()):
        digest = hashlib.sha256(token.encode("utf-8")).digest()
        bucket = int.from_bytes(digest[:4], "big") % dim
        sign = 1.0 if digest[4] & 1 else -1.0
        vector[bucket] += sign
    norm = sqrt(sum(value * value for value in vector))
    if norm == 0.0:
        return vector
    return [value / norm for value in vector]


def _fit_dimension(vector: list[float], dim: int) -> list[float]:
    cast = [float(value) for value in vector]
    if len(cast) == dim:
        return cast
    if len(cast) > dim:
        return cast[:dim]
    return cast + [0.0] * (dim - len(cast))


def _embed_with_openai(texts: list[str], *, model: str, dim: int, api_key: str) -> list[list[float]]:
    from openai import OpenAI

    client = OpenAI(api_key=api_key)
    request_payload: dict = {"model": model, "input": texts}
    if model.startswith("text-embedding-3"):
        request_payload["dimensions"] = dim

    response = client.embeddings.create(**request_payload)
    return [_fit_dimension(item.embedding, dim) for item in response.data]


def embedding_model_name(settings: Settings | None = None) -> str:
    settings = settings or get_settings()
    provider = settings.embedding_provider.strip().lower()
    if provider == "openai" and os.getenv("OPENAI_API_KEY", "").strip():
        return settings.embedding_model
    return "local-hash-bow"


def embed_texts(texts: list[str], settings: Settings | None = None) -> list[list[float]]:
    if not texts:
        return []

    settings = settings or get_settings()
    provider = settings.embedding_provider.strip().lower()
    if provider == "openai":
        api_key = os.getenv("OPENAI_API_KEY", "").strip()
        if api_key:
            try:
                return _embed_with_openai(
                    texts,
                    model=settings.embedding_model,
                    dim=settings.embedding_dim,
                    api_key=api_key,
                )
            except Exception:
                logger.exception(
                    "openai_embeddings_failed_fallback_hash",
                    extra={"embedding_model": settings.embedding_model},
                )
        else:
            logger.warning("openai_embeddings_missing_api_key_fallback_hash")

    return [_hash_to_vector(text, settings.embedding_dim) for text in texts]
