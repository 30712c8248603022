"""Twilio WhatsApp provider."""

from .provider import TwilioProvider

__all__ = ["TwilioProvider"]
