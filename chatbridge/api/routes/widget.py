"""
Website chat widget endpoints.

- POST /widget/{tenant_id}/messages: customer message
- POST /widget/{tenant_id}/conversations/{conversation_id}/respond: agent reply
- GET  /widget/{tenant_id}/sessions/{session_id}/messages: poll for replies
- POST /widget/{tenant_id}/conversations/{conversation_id}/close
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query

from chatbridge.api.dependencies import get_widget_service
from chatbridge.api.schemas import (
    WidgetCloseRequest,
    WidgetMessageRequest,
    WidgetResponseRequest,
)
from chatbridge.core.logging.context import set_request_context
from chatbridge.domain.models import ConversationRead
from chatbridge.services.widget_service import (
    WidgetMessageResult,
    WidgetPollResult,
    WidgetService,
)

router = APIRouter(prefix="/widget/{tenant_id}", tags=["Widget"])


@router.post("/messages", response_model=WidgetMessageResult)
async def receive_widget_message(
    tenant_id: int,
    request: WidgetMessageRequest,
    widget: WidgetService = Depends(get_widget_service),
) -> WidgetMessageResult:
    set_request_context(user_id=request.session_id)
    return await widget.receive(
        tenant_id,
        request.session_id,
        request.message,
        client_message_id=request.client_message_id,
        customer_name=request.customer_name,
        customer_email=request.customer_email,
    )


@router.post(
    "/conversations/{conversation_id}/respond", response_model=WidgetMessageResult
)
async def respond_to_widget(
    tenant_id: int,
    conversation_id: str,
    request: WidgetResponseRequest,
    widget: WidgetService = Depends(get_widget_service),
) -> WidgetMessageResult:
    return await widget.respond(
        tenant_id,
        conversation_id,
        request.message,
        client_message_id=request.client_message_id,
        session_id=request.session_id,
        agent_name=request.agent_name,
    )


@router.get("/sessions/{session_id}/messages", response_model=WidgetPollResult)
async def poll_widget_messages(
    tenant_id: int,
    session_id: str,
    since: datetime | None = None,
    conversation_id: str | None = Query(None, max_length=32),
    widget: WidgetService = Depends(get_widget_service),
) -> WidgetPollResult:
    set_request_context(user_id=session_id)
    return await widget.poll(tenant_id, session_id, since, conversation_id)


@router.post("/conversations/{conversation_id}/close", response_model=ConversationRead)
async def close_widget_conversation(
    tenant_id: int,
    conversation_id: str,
    request: WidgetCloseRequest | None = None,
    widget: WidgetService = Depends(get_widget_service),
) -> ConversationRead:
    request = request or WidgetCloseRequest()
    return await widget.close(
        tenant_id, conversation_id, request.status, request.closing_message
    )
