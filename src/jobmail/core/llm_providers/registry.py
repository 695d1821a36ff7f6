from __future__ import annotations

from typing import Dict, Optional

from .base import ProviderInterface
from .openai import OpenAIProvider

_PROVIDERS: Dict[str, ProviderInterface] = {
    "openai": OpenAIProvider(),
}


def get_provider(name: str) -> Optional[ProviderInterface]:
    if not name:
        return None
    return _PROVIDERS.get(name.lower())


def register_provider(provider: ProviderInterface) -> Optional[ProviderInterface]:
    """Install a provider under its name; returns the one it replaced, if any."""
    key = provider.name.lower()
    previous = _PROVIDERS.get(key)
    _PROVIDERS[key] = provider
    return previous


def unregister_provider(name: str) -> None:
    _PROVIDERS.pop(name.lower(), None)


def list_providers() -> list[str]:
    return sorted(_PROVIDERS.keys())
