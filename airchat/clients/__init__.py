"""Streaming provider adapters."""

from airchat.clients.base import ProviderAdapter, ProviderConfig
from airchat.clients.gemini import GeminiAdapter
from airchat.clients.kimi import KimiAdapter
from airchat.clients.openrouter import OpenRouterAdapter
from airchat.services.credentials import CredentialProvider

ADAPTERS: dict[str, type[ProviderAdapter]] = {
    OpenRouterAdapter.provider_key: OpenRouterAdapter,
    GeminiAdapter.provider_key: GeminiAdapter,
    KimiAdapter.provider_key: KimiAdapter,
}


def get_adapter(provider: str, credentials: CredentialProvider, **kwargs) -> ProviderAdapter:
    """Create the adapter serving ``provider``.

    Raises:
        ValueError: If no adapter is registered for the provider
    """
    adapter_class = ADAPTERS.get(provider)
    if adapter_class is None:
        raise ValueError(f"No adapter for provider: {provider}")
    return adapter_class(credentials, **kwargs)


__all__ = [
    "ADAPTERS",
    "GeminiAdapter",
    "KimiAdapter",
    "OpenRouterAdapter",
    "ProviderAdapter",
    "ProviderConfig",
    "get_adapter",
]
