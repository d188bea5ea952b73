from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from math import sqrt
from typing import Any

from sqlalchemy import ColumnElement, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.pg.models import VectorDocument
from app.services.embeddings.embedder import embed_texts, embedding_model_name
from app.services.knowledge.errors import VectorReadError, VectorWriteError

logger = logging.getLogger(__name__)

EmbedFn = Callable[[list[str]], list[list[float]]]


def _cosine_similarity(left: Sequence[float], right: Sequence[float]) -> float:
    dot_product = sum(a * b for a, b in zip(left, right, strict=True))
    left_norm = sqrt(sum(a * a for a in left))
    right_norm = sqrt(sum(b * b for b in right))
    if left_norm == 0.0 or right_norm == 0.0:
        return 0.0
    return dot_product / (left_norm * right_norm)


def _metadata_filters(where: Mapping[str, Any] | None) -> list[ColumnElement[bool]]:
    """Equality predicates on top-level metadata keys, evaluated by the database before ranking."""
    clauses: list[ColumnElement[bool]] = []
    for key, value in (where or {}).items():
        element = VectorDocument.metadata_json[key]
        if value is None:
            clauses.append(element.as_string().is_(None))
        elif isinstance(value, bool):
            clauses.append(element.as_boolean() == value)
        elif isinstance(value, int):
            clauses.append(element.as_integer() == value)
        elif isinstance(value, float):
            clauses.append(element.as_float() == value)
        else:
            clauses.append(element.as_string() == str(value))
    return clauses


class ConversationCollection:
    """
    Named collection of embedded documents in the `vector_documents` table.

    Append-only: adding an id that already exists in the collection leaves the
    stored document untouched. On PostgreSQL ranking uses pgvector's cosine
    distance operator; other dialects rank in Python over the stored vectors.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        name: str,
        *,
        embed: EmbedFn = embed_texts,
        embedding_model: str | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.name = name
        self._embed = embed
        self._embedding_model = embedding_model

    def add(
        self,
        ids: list[str],
        documents: list[str],
        metadatas: list[dict[str, Any]] | None = None,
    ) -> int:
        metadatas = metadatas or [{} for _ in ids]
        if not (len(ids) == len(documents) == len(metadatas)):
            raise ValueError("ids, documents and metadatas must have the same length")
        if not ids:
            return 0

        try:
            with self._session_factory() as db:
                existing = set(
                    db.scalars(
                        select(VectorDocument.document_id).where(
                            VectorDocument.collection == self.name,
                            VectorDocument.document_id.in_(ids),
                        )
                    ).all()
                )
                pending = [
                    (document_id, document, metadata)
                    for document_id, document, metadata in zip(ids, documents, metadatas, strict=True)
                    if document_id not in existing
                ]
                if not pending:
                    return 0
                vectors = self._embed([document for _, document, _ in pending])
                model = self._embedding_model or embedding_model_name()
                for (document_id, document, metadata), vector in zip(pending, vectors, strict=True):
                    db.add(
                        VectorDocument(
                            collection=self.name,
                            document_id=document_id,
                            document=document,
                            metadata_json=dict(metadata),
                            embedding=vector,
                            embedding_model=model,
                        )
                    )
                db.commit()
                return len(pending)
        except SQLAlchemyError as exc:
            raise VectorWriteError(",".join(ids), exc) from exc

    def get(self, document_id: str) -> dict[str, Any] | None:
        try:
            with self._session_factory() as db:
                row = db.get(VectorDocument, (self.name, document_id))
                if row is None:
                    return None
                return {"id": row.document_id, "document": row.document, "metadata": dict(row.metadata_json or {})}
        except SQLAlchemyError as exc:
            raise VectorReadError("get", exc) from exc

    def count(self) -> int:
        try:
            with self._session_factory() as db:
                return int(
                    db.scalar(
                        select(func.count()).select_from(VectorDocument).where(VectorDocument.collection == self.name)
                    )
                    or 0
                )
        except SQLAlchemyError as exc:
            raise VectorReadError("count", exc) from exc

    def query(
        self,
        query_text: str,
        *,
        n_results: int = 10,
        where: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Nearest documents to `query_text`, closest first, as {id, document, metadata, distance} dicts."""
        query_vector = self._embed([query_text])[0]
        try:
            with self._session_factory() as db:
                filters = [VectorDocument.collection == self.name, *_metadata_filters(where)]
                if db.get_bind().dialect.name == "postgresql":
                    scored = self._ranked_in_database(db, query_vector, filters, n_results)
                else:
                    scored = self._ranked_in_python(db, query_vector, filters)
        except SQLAlchemyError as exc:
            raise VectorReadError("query", exc) from exc

        results: list[dict[str, Any]] = []
        for row, distance in scored:
            metadata = dict(row.metadata_json or {})
            results.append(
                {
                    "id": row.document_id,
                    "document": row.document,
                    "metadata": metadata,
                    "distance": round(float(distance), 6),
                }
            )
            if len(results) >= n_results:
                break
        return results

    def _ranked_in_database(
        self, db: Session, query_vector: list[float], filters: list[ColumnElement[bool]], limit: int
    ) -> list[tuple[VectorDocument, float]]:
        distance = VectorDocument.embedding.cosine_distance(query_vector).label("distance")
        rows = db.execute(
            select(VectorDocument, distance)
            .where(*filters)
            .order_by(distance.asc(), VectorDocument.document_id)
            .limit(limit)
        ).all()
        return [(row, float(distance_value)) for row, distance_value in rows]

    def _ranked_in_python(
        self, db: Session, query_vector: list[float], filters: list[ColumnElement[bool]]
    ) -> list[tuple[VectorDocument, float]]:
        rows = db.scalars(select(VectorDocument).where(*filters)).all()
        scored = []
        for row in rows:
            candidate = [float(value) for value in row.embedding]
            scored.append((row, 1.0 - _cosine_similarity(query_vector, candidate)))
        scored.sort(key=lambda item: (item[1], item[0].document_id))
        return scored
