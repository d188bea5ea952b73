from __future__ import annotations

from math import sqrt
from types import SimpleNamespace

import pytest

from app.services.embeddings import embedder


def _settings(dim: int, provider: str = "openai") -> SimpleNamespace:
    return SimpleNamespace(embedding_provider=provider, embedding_model="text-embedding-3-small", embedding_dim=dim)


def test_openai_provider_used_when_key_present(monkeypatch) -> None:
    monkeypatch.setattr(embedder, "get_settings", lambda: _settings(3))
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    calls: list[dict] = []

    def fake_openai_embed(texts: list[str], *, model: str, dim: int, api_key: str) -> list[list[float]]:
        calls.append({"texts": texts, "model": model, "dim": dim, "api_key": api_key})
        return [[0.1, 0.2, 0.3] for _ in texts]

    monkeypatch.setattr(embedder, "_embed_with_openai", fake_openai_embed)

    assert embedder.embed_texts(["transcript one", "transcript two"]) == [[0.1, 0.2, 0.3]] * 2
    assert calls == [
        {"texts": ["transcript one", "transcript two"], "model": "text-embedding-3-small", "dim": 3, "api_key": "test-key"}
    ]
    assert embedder.embedding_model_name() == "text-embedding-3-small"


def test_openai_failure_falls_back_to_local_vectors(monkeypatch) -> None:
    monkeypatch.setattr(embedder, "get_settings", lambda: _settings(8))
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")

    def broken(*_args, **_kwargs):  # noqa: ANN002, ANN003, ANN202
        raise RuntimeError("rate limited")

    monkeypatch.setattr(embedder, "_embed_with_openai", broken)

    assert embedder.embed_texts(["price question"]) == [embedder._hash_to_vector("price question", 8)]


def test_missing_key_uses_local_model_name(monkeypatch) -> None:
    monkeypatch.setattr(embedder, "get_settings", lambda: _settings(4))
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    assert embedder.embed_texts([]) == []
    assert embedder.embed_texts(["hello"]) == [embedder._hash_to_vector("hello", 4)]
    assert embedder.embedding_model_name() == "local-hash-bow"


def test_local_vectors_are_normalised_and_word_based() -> None:
    vector = embedder._hash_to_vector("Can you share PRICING? pricing!", 64)

    assert len(vector) == 64
    assert sqrt(sum(value * value for value in vector)) == pytest.approx(1.0)
    assert embedder._hash_to_vector("pricing, can you share pricing", 64) == pytest.approx(vector)
    assert embedder._hash_to_vector("", 16) == [0.0] * 16


def test_fit_dimension_pads_and_truncates() -> None:
    assert embedder._fit_dimension([1, 2], 4) == [1.0, 2.0, 0.0, 0.0]
    assert embedder._fit_dimension([1, 2, 3], 2) == [1.0, 2.0]
