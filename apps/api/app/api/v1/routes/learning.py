from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.v1.deps import get_learner, get_settings_dep
from app.api.v1.schemas import BatchLearnItem, BatchLearnRequest, BatchLearnResponse, LearnResponse
from app.services.knowledge.errors import GraphWriteError, ValidationError
from app.services.knowledge.learning import CallLearner
from app.services.knowledge.models import CallOutcome, parse_call_outcome
from app.workers.queue import enqueue_learning

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/learning", tags=["learning"])


def _graph_write_detail(exc: GraphWriteError) -> dict:
    return {
        "message": "Failed to learn from call",
        "conversationId": exc.conversation_id,
        "step": exc.step,
        "stepName": exc.step_name,
    }


@router.post("/calls", response_model=LearnResponse)
def learn_call(
    payload: CallOutcome,
    learner: CallLearner = Depends(get_learner),
    settings=Depends(get_settings_dep),
) -> LearnResponse:
    if settings.queue_mode != "inline":
        try:
            job = enqueue_learning(payload.model_dump(by_alias=True))
        except GraphWriteError as exc:
            logger.exception("learn_call_fallback_failed", extra={"conversation_id": exc.conversation_id, "step": exc.step})
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=_graph_write_detail(exc),
            ) from exc
        if not job.inline:
            return LearnResponse(conversation_id=payload.conversation_id, status="enqueued", job_id=job.job_id)
        return LearnResponse(
            conversation_id=payload.conversation_id,
            status="learned",
            job_id=job.job_id,
            is_successful=job.result["isSuccessful"],
            strategies=job.result["strategies"],
            vector_stored=job.result["vectorStored"],
        )

    try:
        result = learner.learn_from_call(payload)
    except GraphWriteError as exc:
        logger.exception("learn_call_failed", extra={"conversation_id": exc.conversation_id, "step": exc.step})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_graph_write_detail(exc),
        ) from exc
    return LearnResponse(
        conversation_id=result.conversation_id,
        status="learned",
        is_successful=result.is_successful,
        strategies=result.strategies,
        vector_stored=result.vector_stored,
    )


@router.post("/batch", response_model=BatchLearnResponse)
def learn_batch(
    payload: BatchLearnRequest,
    learner: CallLearner = Depends(get_learner),
    settings=Depends(get_settings_dep),
) -> BatchLearnResponse:
    items: list[BatchLearnItem] = []
    for index, raw in enumerate(payload.calls):
        conversation_id = raw.get("conversationId") or raw.get("conversation_id")
        try:
            call = parse_call_outcome(raw)
        except ValidationError as exc:
            items.append(BatchLearnItem(index=index, conversation_id=conversation_id, status="failed", error=str(exc)))
            continue

        try:
            if settings.queue_mode != "inline":
                job = enqueue_learning(call.model_dump(by_alias=True))
                items.append(
                    BatchLearnItem(
                        index=index,
                        conversation_id=call.conversation_id,
                        status="learned" if job.inline else "enqueued",
                        job_id=job.job_id,
                    )
                )
                continue
            learner.learn_from_call(call)
        except GraphWriteError as exc:
            logger.exception("learn_batch_item_failed", extra={"conversation_id": exc.conversation_id, "step": exc.step})
            items.append(BatchLearnItem(index=index, conversation_id=call.conversation_id, status="failed", error=str(exc)))
            continue
        items.append(BatchLearnItem(index=index, conversation_id=call.conversation_id, status="learned"))

    return BatchLearnResponse(
        items=items,
        learned=sum(1 for item in items if item.status == "learned"),
        enqueued=sum(1 for item in items if item.status == "enqueued"),
        failed=sum(1 for item in items if item.status == "failed"),
    )
