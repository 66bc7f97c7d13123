"""Credential providers handed to the provider adapters."""

import os
from collections.abc import Mapping
from typing import Protocol


class CredentialProvider(Protocol):
    """Source of provider API keys."""

    def get(self, provider_key: str) -> str | None: ...


class EnvCredentialProvider:
    """Reads API keys from environment variables."""

    ENV_VARS: dict[str, str] = {
        "openrouter": "OPENROUTER_API_KEY",
        "gemini": "GEMINI_API_KEY",
        "kimi": "KIMI_API_KEY",
    }

    def get(self, provider_key: str) -> str | None:
        env_var = self.ENV_VARS.get(provider_key)
        if env_var is None:
            return None
        value = os.getenv(env_var, "").strip()
        return value or None


class StaticCredentialProvider:
    """Fixed keys, for embedding and tests."""

    def __init__(self, keys: Mapping[str, str]):
        self._keys = dict(keys)

    def get(self, provider_key: str) -> str | None:
        return self._keys.get(provider_key)
