"""Moonshot Kimi chat-completions adapter."""

from typing import Any

from pydantic import BaseModel

from airchat.clients.base import ProviderAdapter, ProviderRequest
from airchat.clients.sse import PayloadDecoder, parse_payload
from airchat.models.catalog import AIModel
from airchat.models.messages import Message, StreamChunk

DEFAULT_TEMPERATURE = 0.3


class KimiDelta(BaseModel):
    content: str | None = None


class KimiChoice(BaseModel):
    delta: KimiDelta = KimiDelta()


class KimiStreamResponse(BaseModel):
    """One ``data:`` payload of a Kimi stream."""

    choices: list[KimiChoice]


class KimiDecoder(PayloadDecoder):
    def decode(self, payload: str) -> StreamChunk | None:
        response = parse_payload(KimiStreamResponse, payload)
        if not response.choices:
            return None
        return StreamChunk(content_delta=response.choices[0].delta.content or None)


class KimiAdapter(ProviderAdapter):
    """Variant C: plain text streaming, no reasoning or tools."""

    provider_key = "kimi"
    default_base_url = "https://api.moonshot.cn/v1"

    def build_request(
        self, messages: list[Message], model: str, api_key: str, *, tools_enabled: bool, model_info: AIModel | None
    ) -> ProviderRequest:
        wire_messages: list[dict[str, str]] = []
        for message in messages:
            if message.role == "assistant" and not message.display_text:
                continue
            if message.role == "tool":
                wire_messages.append({"role": "user", "content": f"Tool result:\n{message.display_text}"})
            else:
                wire_messages.append({"role": message.role, "content": message.display_text})

        body: dict[str, Any] = {
            "model": model,
            "messages": wire_messages,
            "temperature": self.config.temperature if self.config.temperature is not None else DEFAULT_TEMPERATURE,
            "stream": True,
        }
        if self.config.max_tokens is not None:
            body["max_tokens"] = self.config.max_tokens

        return ProviderRequest(
            url=f"{self.config.base_url}/chat/completions",
            body=body,
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
        )

    def create_decoder(self) -> KimiDecoder:
        return KimiDecoder()
