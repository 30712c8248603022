"""
Conversation endpoints.

Reads go through the cached read service; edits, read state and status changes through the
conversation service; sync operations require a syncable provider.
"""

from fastapi import APIRouter, Depends, Query

from chatbridge.api.dependencies import (
    get_conversation_service,
    get_read_service,
    get_sync_service,
)
from chatbridge.domain.enums import ConversationSource, ConversationStatus
from chatbridge.domain.models import (
    ConversationFilter,
    ConversationPage,
    ConversationRead,
    ConversationUpdate,
    MessageRead,
)
from chatbridge.services.conversation_service import ConversationService
from chatbridge.services.read_service import ConversationReadService
from chatbridge.services.sync_service import SyncResult, SyncService

router = APIRouter(
    prefix="/api/tenants/{tenant_id}/conversations",
    tags=["Conversations"],
    responses={404: {"description": "Conversation or provider configuration not found"}},
)


def conversation_filter(
    status: ConversationStatus | None = None,
    source: ConversationSource | None = None,
    customer_address: str | None = Query(None, max_length=64),
    customer_name: str | None = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> ConversationFilter:
    return ConversationFilter(
        status=status,
        source=source,
        customer_address=customer_address,
        customer_name=customer_name,
        page=page,
        page_size=page_size,
    )


@router.get("", response_model=ConversationPage, summary="List Conversations")
async def list_conversations(
    tenant_id: int,
    filters: ConversationFilter = Depends(conversation_filter),
    reads: ConversationReadService = Depends(get_read_service),
) -> ConversationPage:
    """Conversations ordered by last message, newest first."""
    return await reads.list_conversations(tenant_id, filters)


@router.post("/sync", response_model=SyncResult, summary="Sync Conversations From Provider")
async def sync_conversations(
    tenant_id: int, sync: SyncService = Depends(get_sync_service)
) -> SyncResult:
    return await sync.refresh(tenant_id)


@router.post(
    "/rebuild-from-messages",
    response_model=SyncResult,
    summary="Rebuild Conversations From Message History",
)
async def rebuild_conversations(
    tenant_id: int, sync: SyncService = Depends(get_sync_service)
) -> SyncResult:
    return await sync.rebuild(tenant_id)


@router.get("/{conversation_id}", response_model=ConversationRead)
async def get_conversation(
    tenant_id: int,
    conversation_id: str,
    reads: ConversationReadService = Depends(get_read_service),
) -> ConversationRead:
    return await reads.get_conversation(tenant_id, conversation_id)


@router.put("/{conversation_id}", response_model=ConversationRead)
async def update_conversation(
    tenant_id: int,
    conversation_id: str,
    update: ConversationUpdate,
    conversations: ConversationService = Depends(get_conversation_service),
) -> ConversationRead:
    return await conversations.update(tenant_id, conversation_id, update)


@router.get("/{conversation_id}/messages", response_model=list[MessageRead])
async def list_messages(
    tenant_id: int,
    conversation_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    reads: ConversationReadService = Depends(get_read_service),
) -> list[MessageRead]:
    """Latest ``page_size`` messages (page 1) or older pages, each oldest first."""
    return await reads.list_messages(tenant_id, conversation_id, page, page_size)


@router.put("/{conversation_id}/read", response_model=ConversationRead)
async def mark_conversation_read(
    tenant_id: int,
    conversation_id: str,
    conversations: ConversationService = Depends(get_conversation_service),
) -> ConversationRead:
    return await conversations.mark_conversation_read(tenant_id, conversation_id)


@router.post("/{conversation_id}/close", response_model=ConversationRead)
async def close_conversation(
    tenant_id: int,
    conversation_id: str,
    conversations: ConversationService = Depends(get_conversation_service),
) -> ConversationRead:
    return await conversations.close(tenant_id, conversation_id)


@router.post("/{conversation_id}/archive", response_model=ConversationRead)
async def archive_conversation(
    tenant_id: int,
    conversation_id: str,
    conversations: ConversationService = Depends(get_conversation_service),
) -> ConversationRead:
    return await conversations.archive(tenant_id, conversation_id)


@router.post("/{conversation_id}/enrich", response_model=ConversationRead)
async def enrich_conversation(
    tenant_id: int,
    conversation_id: str,
    sync: SyncService = Depends(get_sync_service),
) -> ConversationRead:
    """Fetch the customer's name and avatar from a syncable provider."""
    return await sync.enrich(tenant_id, conversation_id)
