"""Factories for domain components."""

from .provider_factory import ProviderFactory, normalize_provider_name

__all__ = ["ProviderFactory", "normalize_provider_name"]
