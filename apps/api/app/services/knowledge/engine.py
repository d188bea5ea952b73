from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.db.graph_store import GraphStore
from app.db.memory_graph import InMemoryGraphStore
from app.db.neo4j.driver import get_driver
from app.db.neo4j.graph_store import Neo4jGraphStore
from app.services.embeddings.vector_store import ConversationCollection
from app.services.knowledge.analytics import KnowledgeAnalytics
from app.services.knowledge.learning import CallLearner
from app.services.knowledge.retrieval import KnowledgeRetriever

logger = logging.getLogger(__name__)


@dataclass
class KnowledgeEngine:
    graph: GraphStore
    vectors: ConversationCollection | None
    settings: Settings
    learner: CallLearner = field(init=False)
    retriever: KnowledgeRetriever = field(init=False)
    analytics: KnowledgeAnalytics = field(init=False)

    def __post_init__(self) -> None:
        self.learner = CallLearner(
            self.graph,
            self.vectors,
            success_threshold=self.settings.success_score_threshold,
            sort_strategy_types=self.settings.strategy_key_sort_types,
            merge_retry_max=self.settings.graph_merge_retry_max,
            merge_retry_backoff_seconds=self.settings.graph_merge_retry_backoff_seconds,
        )
        self.retriever = KnowledgeRetriever(self.graph, self.vectors, settings=self.settings)
        self.analytics = KnowledgeAnalytics(self.graph, self.vectors)

    def close(self) -> None:
        self.graph.close()


def build_graph_store(settings: Settings) -> GraphStore:
    driver = get_driver(settings)
    if driver is None:
        logger.warning("neo4j_not_configured_using_in_memory_graph")
        return InMemoryGraphStore()
    return Neo4jGraphStore(driver, settings.neo4j_database)


def build_knowledge_engine(
    settings: Settings | None = None,
    *,
    session_factory: Callable[[], Session] | None = None,
    graph: GraphStore | None = None,
) -> KnowledgeEngine:
    settings = settings or get_settings()
    if session_factory is None:
        from app.db.pg.session import SessionLocal

        session_factory = SessionLocal
    vectors = ConversationCollection(session_factory, settings.vector_collection_name)
    return KnowledgeEngine(
        graph=graph or build_graph_store(settings),
        vectors=vectors,
        settings=settings,
    )
