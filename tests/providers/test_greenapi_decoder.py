"""Tests for GreenAPI webhook and history decoding."""

from chatbridge.domain.enums import MessageDirection, MessageStatus, MessageType
from chatbridge.providers.greenapi import decoder

BUSINESS = "+18095550000"


def incoming_text(id_message="BAE5F4886F6F2D05", text="Hello"):
    return {
        "typeWebhook": "incomingMessageReceived",
        "instanceData": {"idInstance": 1101, "wid": "18095550000@c.us"},
        "timestamp": 1700000000,
        "idMessage": id_message,
        "senderData": {
            "chatId": "18095551234@c.us",
            "sender": "18095551234@c.us",
            "senderName": "Ana",
        },
        "messageData": {
            "typeMessage": "textMessage",
            "textMessageData": {"textMessage": text},
        },
    }


class TestGreenApiWebhookDecoding:
    def test_incoming_text_message(self):
        event = decoder.decode_webhook(incoming_text(), BUSINESS)

        assert event.event_id == "BAE5F4886F6F2D05"
        assert event.event_type == "incomingMessageReceived"
        message = event.message
        assert message.direction == MessageDirection.INBOUND
        assert message.from_address == "+18095551234"
        assert message.to_address == BUSINESS
        assert message.body == "Hello"
        assert message.sender_name == "Ana"
        assert message.status == MessageStatus.RECEIVED
        assert message.timestamp.timestamp() == 1700000000

    def test_outgoing_message_from_phone(self):
        payload = incoming_text()
        payload["typeWebhook"] = "outgoingMessageReceived"

        message = decoder.decode_webhook(payload, BUSINESS).message

        assert message.direction == MessageDirection.OUTBOUND
        assert message.from_address == BUSINESS
        assert message.to_address == "+18095551234"
        assert message.sender_name is None

    def test_image_message(self):
        payload = incoming_text()
        payload["messageData"] = {
            "typeMessage": "imageMessage",
            "fileMessageData": {
                "downloadUrl": "https://media.example.com/photo.jpg",
                "caption": "look",
                "mimeType": "image/jpeg",
            },
        }

        message = decoder.decode_webhook(payload, BUSINESS).message

        assert message.message_type == MessageType.IMAGE
        assert message.media_url == "https://media.example.com/photo.jpg"
        assert message.body == "look"

    def test_status_callback(self):
        payload = {
            "typeWebhook": "outgoingMessageStatus",
            "idMessage": "3EB0C767D097B7C7C030",
            "status": "delivered",
            "timestamp": 1700000100,
        }

        event = decoder.decode_webhook(payload, BUSINESS)

        assert event.message is None
        assert event.event_id == "3EB0C767D097B7C7C030:delivered"
        assert event.status_update.status == MessageStatus.DELIVERED
        assert event.status_update.external_id == "3EB0C767D097B7C7C030"

    def test_group_chat_is_ignored(self):
        payload = incoming_text()
        payload["senderData"]["chatId"] = "120363043211234567@g.us"

        event = decoder.decode_webhook(payload, BUSINESS)

        assert event.message is None
        assert event.event_id == "BAE5F4886F6F2D05"

    def test_state_event_has_nothing_to_persist(self):
        event = decoder.decode_webhook(
            {"typeWebhook": "stateInstanceChanged", "stateInstance": "authorized"}, BUSINESS
        )

        assert event.event_id is None
        assert event.message is None
        assert event.status_update is None


class TestGreenApiHistoryDecoding:
    def test_outgoing_history_item(self):
        item = {
            "type": "outgoing",
            "idMessage": "3EB0A1",
            "timestamp": 1700000000,
            "typeMessage": "textMessage",
            "textMessage": "Your order shipped",
            "statusMessage": "read",
        }

        message = decoder.decode_history_item(item, "+18095551234", BUSINESS)

        assert message.direction == MessageDirection.OUTBOUND
        assert message.from_address == BUSINESS
        assert message.status == MessageStatus.READ

    def test_empty_item_is_skipped(self):
        item = {"type": "incoming", "idMessage": "X1", "typeMessage": "textMessage"}
        assert decoder.decode_history_item(item, "+18095551234", BUSINESS) is None

    def test_decode_chat_skips_groups(self):
        assert decoder.decode_chat({"id": "120363043211234567@g.us"}) is None
        chat = decoder.decode_chat({"id": "18095551234@c.us", "name": "Ana"})
        assert chat.customer_address == "+18095551234"
        assert chat.customer_name == "Ana"
