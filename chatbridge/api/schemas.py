"""Request bodies for the messaging and widget APIs."""

from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field

from chatbridge.domain.enums import ConversationStatus


class SendMessageRequest(BaseModel):
    to: str = Field(..., min_length=1, max_length=40, description="Recipient phone number")
    body: str = Field("", max_length=4096)
    media_url: str | None = Field(None, max_length=1000)
    media_content_type: str | None = Field(None, max_length=100)
    agent_name: str | None = Field(None, max_length=100)


class BulkSendRequest(BaseModel):
    recipients: list[str] = Field(..., min_length=1, max_length=100)
    body: str = Field("", max_length=4096)
    media_url: str | None = Field(None, max_length=1000)
    agent_name: str | None = Field(None, max_length=100)


class TestConnectionRequest(BaseModel):
    test_address: str | None = Field(None, max_length=40)


class BlacklistRequest(BaseModel):
    address: str = Field(..., min_length=1, max_length=40)
    reason: str | None = Field(None, max_length=255)


class BlacklistEntryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    address: str
    reason: str | None = None
    created_at: datetime


# ================================================================
# Widget
# ================================================================


class WidgetMessageRequest(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=100)
    message: str = Field(..., min_length=1, max_length=4000)
    client_message_id: str | None = Field(None, max_length=100)
    customer_name: str | None = Field(None, max_length=100)
    customer_email: str | None = Field(None, max_length=255)
    customer_phone: str | None = Field(None, max_length=20)
    page_url: str | None = Field(None, max_length=500)
    user_agent: str | None = Field(None, max_length=500)


class WidgetResponseRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=4000)
    client_message_id: str | None = Field(None, max_length=100)
    session_id: str | None = Field(None, max_length=100)
    agent_name: str | None = Field(None, max_length=100)


class WidgetCloseRequest(BaseModel):
    status: ConversationStatus = ConversationStatus.CLOSED
    closing_message: str | None = Field(None, max_length=500)
