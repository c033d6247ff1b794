"""
Provider adapters: one class per supported third-party tool.
"""

from app.services.providers.base import ProviderAdapter, create_provider_http_client
from app.services.providers.registry import ADAPTER_CLASSES, build_adapters

__all__ = ["ADAPTER_CLASSES", "ProviderAdapter", "build_adapters", "create_provider_http_client"]
