"""
Messaging endpoints.

- POST /api/tenants/{tenant_id}/messages/send
- POST /api/tenants/{tenant_id}/messages/send/bulk
- PUT  /api/tenants/{tenant_id}/messages/{message_id}/read
"""

from fastapi import APIRouter, Depends

from chatbridge.api.dependencies import get_conversation_service, get_outbound_service
from chatbridge.api.schemas import BulkSendRequest, SendMessageRequest
from chatbridge.core.logging.logger import get_api_logger
from chatbridge.domain.models import BulkSendResult, MessageRead
from chatbridge.services.conversation_service import ConversationService
from chatbridge.services.outbound_service import OutboundService

logger = get_api_logger(__name__)

router = APIRouter(
    prefix="/api/tenants/{tenant_id}/messages",
    tags=["Messages"],
    responses={
        400: {"description": "Invalid address, blacklisted recipient or empty message"},
        404: {"description": "Tenant has no active provider"},
        429: {"description": "Tenant rate limit exceeded"},
        502: {"description": "Provider rejected the message or timed out"},
    },
)


@router.post("/send", response_model=MessageRead, summary="Send Message")
async def send_message(
    tenant_id: int,
    request: SendMessageRequest,
    outbound: OutboundService = Depends(get_outbound_service),
) -> MessageRead:
    """Send a text or media message through the tenant's provider and mirror it locally."""
    logger.info(f"Sending message to {request.to}")
    return await outbound.send_message(
        tenant_id,
        request.to,
        body=request.body,
        media_url=request.media_url,
        media_content_type=request.media_content_type,
        agent_name=request.agent_name,
    )


@router.post("/send/bulk", response_model=BulkSendResult, summary="Send Bulk Message")
async def send_bulk(
    tenant_id: int,
    request: BulkSendRequest,
    outbound: OutboundService = Depends(get_outbound_service),
) -> BulkSendResult:
    """Send one message to many recipients; failures are reported per recipient."""
    result = await outbound.send_bulk(
        tenant_id,
        request.recipients,
        body=request.body,
        media_url=request.media_url,
        agent_name=request.agent_name,
    )
    logger.info(f"Bulk send: {len(result.sent)} sent, {len(result.failed)} failed")
    return result


@router.put("/{message_id}/read", response_model=MessageRead, summary="Mark Message Read")
async def mark_message_read(
    tenant_id: int,
    message_id: str,
    conversations: ConversationService = Depends(get_conversation_service),
) -> MessageRead:
    return await conversations.mark_message_read(tenant_id, message_id)
