"""Application services for the messaging core."""

from .container import ServiceContainer, build_services

__all__ = ["ServiceContainer", "build_services"]
