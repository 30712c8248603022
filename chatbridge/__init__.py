"""
chatbridge - multi-provider chat messaging integration layer.

Mirrors WhatsApp conversations from GreenAPI and Twilio, plus a website chat widget, into one
local conversation store with a cached read path and per-tenant outbound rate limiting.
"""

from .core.config.settings import settings

__version__ = settings.version

__all__ = ["__version__"]
