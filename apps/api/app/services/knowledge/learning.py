"""
Ingestion pipeline: fold one completed call into the knowledge graph.

A call is applied as a fixed sequence of upserts against the graph store. Each
upsert is atomic on its own; the sequence as a whole is not, so a failure part
way through leaves the earlier steps applied and is reported with the index of
the failing step. Replaying a call counts it again.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any

from app.db.graph_store import GraphStore
from app.services.embeddings.vector_store import ConversationCollection
from app.services.knowledge.errors import GraphConflictError, GraphWriteError, VectorWriteError
from app.services.knowledge.models import CallOutcome, LearnResult, is_successful_outcome, parse_call_outcome
from app.services.knowledge.patterns import extract_patterns
from app.services.knowledge.strategy_keys import buying_signal_strategy_key, objection_strategy_key

logger = logging.getLogger(__name__)

STEP_NAMES = {
    1: "classify_outcome",
    2: "merge_lead",
    3: "create_conversation",
    4: "merge_buying_signals",
    5: "merge_objections",
    6: "merge_conversation_patterns",
    7: "merge_industry",
    8: "store_transcript_vector",
    9: "merge_strategies",
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CallLearner:
    def __init__(
        self,
        graph: GraphStore,
        vectors: ConversationCollection | None = None,
        *,
        success_threshold: float = 70.0,
        sort_strategy_types: bool = False,
        merge_retry_max: int = 3,
        merge_retry_backoff_seconds: float = 0.05,
        clock: Callable[[], datetime] = _utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._graph = graph
        self._vectors = vectors
        self._success_threshold = success_threshold
        self._sort_strategy_types = sort_strategy_types
        self._merge_retry_max = merge_retry_max
        self._merge_retry_backoff_seconds = merge_retry_backoff_seconds
        self._clock = clock
        self._sleep = sleep

    def learn_from_call(self, payload: CallOutcome | Mapping[str, Any]) -> LearnResult:
        call = parse_call_outcome(payload)
        at = self._clock()

        is_successful = is_successful_outcome(call.outcome, call.qualification_score, self._success_threshold)

        self._run_step(
            call,
            2,
            lambda: self._graph.merge_lead(
                lead_id=call.lead_id,
                industry=call.industry,
                company_size=call.company_size,
                is_successful=is_successful,
                at=at,
            ),
        )
        self._run_step(
            call,
            3,
            lambda: self._graph.merge_conversation(
                conversation_id=call.conversation_id,
                lead_id=call.lead_id,
                outcome=call.outcome,
                qualification_score=call.qualification_score,
                duration=call.duration,
                is_successful=is_successful,
                at=at,
            ),
        )

        for signal in call.buying_signals:
            self._run_step(
                call,
                4,
                lambda signal=signal: self._graph.merge_buying_signal(
                    conversation_id=call.conversation_id,
                    name=signal.type,
                    confidence=signal.confidence,
                    context=signal.context,
                    is_successful=is_successful,
                    at=at,
                ),
            )

        for objection in call.objections:
            self._run_step(
                call,
                5,
                lambda objection=objection: self._graph.merge_objection(
                    conversation_id=call.conversation_id,
                    objection_type=objection.type,
                    handling_strategy=objection.handling_strategy,
                    was_overcome=objection.was_overcome,
                    at=at,
                ),
            )

        patterns = extract_patterns(call.transcript, call.engagement_metrics)
        for pattern in patterns:
            self._run_step(
                call,
                6,
                lambda pattern=pattern: self._graph.merge_conversation_pattern(
                    conversation_id=call.conversation_id,
                    pattern=pattern,
                    is_successful=is_successful,
                    at=at,
                ),
            )

        self._run_step(
            call,
            7,
            lambda: self._graph.merge_industry(
                industry=call.industry,
                company_size=call.company_size,
                is_successful=is_successful,
                qualification_score=call.qualification_score,
                at=at,
            ),
        )

        vector_stored = False
        strategies: list[str] = []
        if is_successful:
            vector_stored = self._store_transcript(call)

            keys = [
                buying_signal_strategy_key(call, sort_types=self._sort_strategy_types),
                objection_strategy_key(call, sort_types=self._sort_strategy_types),
            ]
            for key in keys:
                if key is None:
                    continue
                self._run_step(
                    call,
                    9,
                    lambda key=key: self._graph.merge_strategy(
                        conversation_id=call.conversation_id,
                        strategy=key,
                        qualification_score=call.qualification_score,
                        at=at,
                    ),
                )
                strategies.append(key.strategy_id)

        logger.info(
            "call_learned",
            extra={
                "conversation_id": call.conversation_id,
                "lead_id": call.lead_id,
                "is_successful": is_successful,
                "patterns": len(patterns),
                "strategies": strategies,
                "vector_stored": vector_stored,
            },
        )
        return LearnResult(
            conversation_id=call.conversation_id,
            is_successful=is_successful,
            patterns=len(patterns),
            strategies=strategies,
            vector_stored=vector_stored,
        )

    def _run_step(self, call: CallOutcome, step: int, merge: Callable[[], None]) -> None:
        attempt = 0
        while True:
            try:
                merge()
                return
            except GraphConflictError as exc:
                if attempt >= self._merge_retry_max:
                    raise GraphWriteError(call.conversation_id, step, STEP_NAMES[step], exc) from exc
                delay = self._merge_retry_backoff_seconds * (2**attempt)
                attempt += 1
                logger.warning(
                    "graph_merge_conflict_retry",
                    extra={
                        "conversation_id": call.conversation_id,
                        "step": step,
                        "attempt": attempt,
                        "delay_seconds": delay,
                    },
                )
                self._sleep(delay)
            except Exception as exc:
                raise GraphWriteError(call.conversation_id, step, STEP_NAMES[step], exc) from exc

    def _store_transcript(self, call: CallOutcome) -> bool:
        if self._vectors is None:
            return False
        metadata = {
            "industry": call.industry,
            "companySize": call.company_size,
            "qualificationScore": call.qualification_score,
            "buyingSignals": ",".join(signal.type for signal in call.buying_signals),
            "duration": call.duration,
        }
        try:
            self._vectors.add(ids=[call.conversation_id], documents=[call.transcript], metadatas=[metadata])
        except Exception as exc:
            error = exc if isinstance(exc, VectorWriteError) else VectorWriteError(call.conversation_id, exc)
            logger.exception(
                "vector_write_failed",
                extra={"conversation_id": call.conversation_id, "step": 8, "error": str(error)},
            )
            return False
        return True
