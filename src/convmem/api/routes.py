"""API routes for conversation memory context and consent."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Request, Response

from ..core.exceptions import ValidationError
from ..core.schemas import (
    AddOptions,
    ConsentRecord,
    ConversationMemoryContext,
    MemoryFilter,
    MemoryItem,
)
from ..memory.service import ConversationMemory
from ..utils.logging_config import get_logger
from ..utils.metrics import CONTEXT_DEGRADED
from .schemas import (
    AddTurnsRequest,
    AddTurnsResponse,
    ClearContextRequest,
    ClearContextResponse,
    ConsentRequest,
    ContextRequest,
    UpdateMemoryRequest,
)

logger = get_logger(__name__)
router = APIRouter(tags=["memory"])


def get_memory(request: Request) -> ConversationMemory:
    """Get the conversation memory service from app state."""
    return request.app.state.memory


# ---- Context ----


@router.post("/memory/context", response_model=ConversationMemoryContext)
async def get_context(
    body: ContextRequest,
    memory: ConversationMemory = Depends(get_memory),
):
    """Memory context for a conversation. Degrades to an empty context instead of failing."""
    try:
        return await memory.get_conversation_context(
            body.conversation_id, body.session_id, body.user_id
        )
    except Exception as e:
        CONTEXT_DEGRADED.labels(reason="unexpected").inc()
        logger.error(
            "context_route_failed",
            conversation_id=body.conversation_id,
            session_id=body.session_id,
            error=str(e),
            exc_info=True,
        )
        return ConversationMemoryContext.empty(
            body.conversation_id, body.session_id, degraded=True
        )


@router.delete("/memory/context", response_model=ClearContextResponse)
async def clear_context(
    body: ClearContextRequest,
    memory: ConversationMemory = Depends(get_memory),
):
    """Sweep expired memories, or erase every memory of the session/user when ``purge`` is set."""
    flt = MemoryFilter(session_id=body.session_id, user_id=body.user_id)
    if body.purge:
        if body.dry_run:
            raise ValidationError("dryRun applies to retention cleanup only")
        result = await memory.forget(flt)
    else:
        result = await memory.cleanup(flt, dry_run=body.dry_run)
    return ClearContextResponse(deleted_count=result.deleted_count, dry_run=result.dry_run)


@router.post("/memory/turns", response_model=AddTurnsResponse)
async def add_turns(
    body: AddTurnsRequest,
    memory: ConversationMemory = Depends(get_memory),
):
    """Persist conversation turns. PII and consent rejections surface as 409 and 403."""
    options = AddOptions.model_validate(body.model_dump(exclude={"turns"}))
    ids = await memory.add(body.turns, options)
    return AddTurnsResponse(ids=ids)


@router.put("/memory/items/{item_id}", response_model=MemoryItem)
async def update_item(
    item_id: str,
    body: UpdateMemoryRequest,
    memory: ConversationMemory = Depends(get_memory),
):
    """Replace one memory's content; scope and expiry are unchanged."""
    return await memory.update(item_id, body.content, body.metadata)


# ---- Consent ----


@router.post("/memory/consent", status_code=204)
async def record_consent(
    body: ConsentRequest,
    memory: ConversationMemory = Depends(get_memory),
):
    record = ConsentRecord(
        consent_given=body.consent_given,
        consent_version=body.consent_version,
        data_processing_consent=body.data_processing_consent,
        personalized_responses_consent=body.personalized_responses_consent,
        retention_consent=body.retention_consent,
    )
    await memory.record_consent(body.user_id, record)
    return Response(status_code=204)


@router.delete("/memory/consent/{user_id}", status_code=204)
async def revoke_consent(
    user_id: str,
    memory: ConversationMemory = Depends(get_memory),
):
    await memory.revoke_consent(user_id)
    return Response(status_code=204)


@router.get("/memory/privacy-notice")
async def privacy_notice(memory: ConversationMemory = Depends(get_memory)):
    return {"notice": memory.privacy_notice()}


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": datetime.now(UTC).isoformat()}
