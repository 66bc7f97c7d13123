"""Shared HTTP plumbing for the streaming provider adapters."""

import json
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, ClassVar

import httpx

from airchat.clients.rate_limit import RequestRateLimiter, get_rate_limiter
from airchat.clients.sse import PayloadDecoder, normalize_stream
from airchat.clients.tokens import TokenEstimator, get_token_estimator, truncate_messages
from airchat.errors import AuthError, HTTPError, NetworkError
from airchat.models.catalog import AIModel, get_model
from airchat.models.messages import Conversation, Message, StreamChunk
from airchat.services.credentials import CredentialProvider
from airchat.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CONTEXT_WINDOW = 128_000
MAX_ERROR_BODY_CHARS = 500


@dataclass
class ProviderConfig:
    """Configuration for a provider adapter."""

    base_url: str
    timeout: float = 60.0
    connect_timeout: float = 10.0
    temperature: float | None = None
    max_tokens: int | None = None

    # Tokens kept free for the response when truncating history
    token_headroom: int = 8192


@dataclass
class ProviderRequest:
    """A fully built HTTP request for one streaming call."""

    url: str
    body: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)


class ProviderAdapter(ABC):
    """Translates a conversation into one backend's streaming API.

    Subclasses provide the request body and the payload decoder; this class
    owns credentials, status validation, timeouts, and error mapping.
    """

    provider_key: ClassVar[str]
    default_base_url: ClassVar[str]

    def __init__(
        self,
        credentials: CredentialProvider,
        config: ProviderConfig | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        rate_limiter: RequestRateLimiter | None = None,
        token_estimator: TokenEstimator | None = None,
    ):
        """Initialize adapter.

        Args:
            credentials: Source of the provider's API key
            config: Adapter configuration (defaults to the provider's public endpoint)
            http_client: Shared client; a short-lived one is created per call when omitted
            rate_limiter: Request limiter (defaults to global instance)
            token_estimator: Estimator used for history truncation (defaults to global instance)
        """
        self.credentials = credentials
        self.config = config or ProviderConfig(base_url=self.default_base_url)
        self.http_client = http_client
        self.rate_limiter = rate_limiter or get_rate_limiter()
        self.token_estimator = token_estimator or get_token_estimator()

    @abstractmethod
    def build_request(
        self, messages: list[Message], model: str, api_key: str, *, tools_enabled: bool, model_info: AIModel | None
    ) -> ProviderRequest:
        """Build the provider-specific request."""

    @abstractmethod
    def create_decoder(self) -> PayloadDecoder:
        """Create a fresh payload decoder for one response."""

    @property
    def timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self.config.timeout, connect=self.config.connect_timeout)

    def _require_api_key(self) -> str:
        api_key = self.credentials.get(self.provider_key)
        if not api_key or not api_key.strip():
            raise AuthError(self.provider_key)
        return api_key.strip()

    def _prepare_messages(self, conversation: Conversation, model_info: AIModel | None) -> list[Message]:
        context_window = model_info.context_window if model_info else DEFAULT_CONTEXT_WINDOW
        # The open assistant slot is still empty when a stream starts; it is never sent
        messages = [m for m in conversation.messages if not (m.role == "assistant" and m.is_blank)]
        return truncate_messages(messages, context_window, self.config.token_headroom, self.token_estimator)

    async def stream(
        self, conversation: Conversation, model: str, *, tools_enabled: bool = True
    ) -> AsyncIterator[StreamChunk]:
        """Stream one model response as normalized chunks.

        Args:
            conversation: Conversation to send
            model: Model id as the provider knows it
            tools_enabled: Whether the model may initiate tool calls

        Raises:
            AuthError: No credential is available (before any network activity)
            HTTPError: Non-200 status or provider error reported in-stream
            NetworkError: Transport failure or timeout
        """
        api_key = self._require_api_key()

        try:
            model_info = get_model(model)
        except ValueError:
            model_info = None

        messages = self._prepare_messages(conversation, model_info)
        request = self.build_request(
            messages, model, api_key, tools_enabled=tools_enabled, model_info=model_info
        )

        await self.rate_limiter.acquire(self.provider_key)

        logger.info(
            f"Streaming {len(messages)} messages to {self.provider_key} model {model} (tools enabled: {tools_enabled})"
        )

        client = self.http_client or httpx.AsyncClient(timeout=self.timeout)
        chunks = 0
        try:
            async with client.stream(
                "POST", request.url, json=request.body, headers=request.headers, timeout=self.timeout
            ) as response:
                if response.status_code != 200:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    message = self.extract_error_message(body, response)
                    logger.error(f"{self.provider_key} returned HTTP {response.status_code}: {message}")
                    raise HTTPError(response.status_code, message, body=body)

                async for chunk in normalize_stream(response.aiter_bytes(), self.create_decoder()):
                    chunks += 1
                    yield chunk

        except httpx.TimeoutException as e:
            logger.error(f"{self.provider_key} request timed out: {e!r}")
            raise NetworkError(f"{self.provider_key} did not respond in time") from e
        except httpx.TransportError as e:
            logger.error(f"{self.provider_key} transport error: {e!r}")
            raise NetworkError(f"Could not reach {self.provider_key}: {e}") from e
        finally:
            if self.http_client is None:
                await client.aclose()

        logger.debug(f"{self.provider_key} stream finished after {chunks} chunks")

    @staticmethod
    def extract_error_message(body: str, response: httpx.Response) -> str:
        """Pull a human-readable message out of an error body."""
        try:
            data = json.loads(body)
        except ValueError:
            data = None

        # Gemini wraps streaming errors in a one-element list
        if isinstance(data, list) and data:
            data = data[0]

        if isinstance(data, dict):
            error = data.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
            if isinstance(error, str) and error:
                return error
            if data.get("message"):
                return str(data["message"])

        text = body.strip()
        if text:
            return text[:MAX_ERROR_BODY_CHARS]
        return response.reason_phrase or f"HTTP {response.status_code}"
