from . import conversations, health, messages, provider, webhooks, widget

__all__ = ["conversations", "health", "messages", "provider", "webhooks", "widget"]
