"""GreenAPI provider."""

from .provider import GreenApiProvider

__all__ = ["GreenApiProvider"]
