"""Google Gemini streamGenerateContent adapter."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from airchat.clients.base import ProviderAdapter, ProviderRequest
from airchat.clients.sse import PayloadDecoder, parse_payload
from airchat.errors import HTTPError
from airchat.models.catalog import AIModel
from airchat.models.messages import AudioPart, ImagePart, Message, StreamChunk, TextPart
from airchat.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TEMPERATURE = 0.7
DEFAULT_TOP_K = 40
DEFAULT_TOP_P = 0.95
DEFAULT_MAX_OUTPUT_TOKENS = 8192


class GeminiPart(BaseModel):
    text: str | None = None
    thought: bool | None = None


class GeminiContent(BaseModel):
    parts: list[GeminiPart] = []
    role: str | None = None


class GeminiCandidate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: GeminiContent = GeminiContent()
    finish_reason: str | None = Field(default=None, alias="finishReason")


class GeminiError(BaseModel):
    message: str = ""
    code: int = 500
    status: str | None = None

    @property
    def description(self) -> str:
        return self.message or self.status or "Gemini reported an error"


class GeminiStreamResponse(BaseModel):
    """One ``data:`` payload of a Gemini stream."""

    candidates: list[GeminiCandidate] | None = None
    error: GeminiError | None = None


class GeminiDecoder(PayloadDecoder):
    """Maps Gemini parts onto content and thinking deltas."""

    def decode(self, payload: str) -> StreamChunk | None:
        response = parse_payload(GeminiStreamResponse, payload)

        if response.error is not None:
            logger.error(f"Gemini reported an error mid-stream: {response.error.code} {response.error.description}")
            raise HTTPError(response.error.code, response.error.description)

        if not response.candidates:
            return None

        candidate = response.candidates[0]
        content = "".join(part.text or "" for part in candidate.content.parts if not part.thought)
        thinking = "".join(part.text or "" for part in candidate.content.parts if part.thought)

        if candidate.finish_reason == "STOP":
            self.done = True

        return StreamChunk(
            content_delta=content or None,
            thinking_delta=thinking or None,
            reasoning_delta=thinking or None,
        )


def _inline_data(data_uri: str) -> dict[str, str] | None:
    """Split a base64 data URI into Gemini inlineData, or None for remote URLs."""
    if not data_uri.startswith("data:") or "," not in data_uri:
        return None
    header, data = data_uri.split(",", 1)
    mime_type = header.removeprefix("data:").split(";")[0] or "image/jpeg"
    return {"mimeType": mime_type, "data": data}


def to_gemini_parts(message: Message) -> list[dict[str, Any]]:
    if isinstance(message.content, str):
        return [{"text": message.content}] if message.content else []

    parts: list[dict[str, Any]] = []
    for part in message.content:
        if isinstance(part, TextPart) and part.text:
            parts.append({"text": part.text})
        elif isinstance(part, ImagePart):
            inline = _inline_data(part.url)
            if inline is None:
                logger.debug("Skipping remote image URL, Gemini only accepts inline image data here")
                continue
            parts.append({"inlineData": inline})
        elif isinstance(part, AudioPart):
            parts.append({"inlineData": {"mimeType": part.mime_type, "data": part.data}})
    return parts


class GeminiAdapter(ProviderAdapter):
    """Variant B: Gemini official API with thought parts."""

    provider_key = "gemini"
    default_base_url = "https://generativelanguage.googleapis.com/v1beta"

    def build_request(
        self, messages: list[Message], model: str, api_key: str, *, tools_enabled: bool, model_info: AIModel | None
    ) -> ProviderRequest:
        system_texts: list[str] = []
        contents: list[dict[str, Any]] = []

        for message in messages:
            if message.role == "system":
                if message.display_text:
                    system_texts.append(message.display_text)
                continue

            if message.role == "tool":
                parts = [{"text": f"Tool result:\n{message.display_text}"}]
            else:
                parts = to_gemini_parts(message)

            if not parts:
                continue

            # Gemini only knows "user" and "model"
            role = "model" if message.role == "assistant" else "user"
            contents.append({"role": role, "parts": parts})

        generation_config: dict[str, Any] = {
            "temperature": self.config.temperature if self.config.temperature is not None else DEFAULT_TEMPERATURE,
            "topK": DEFAULT_TOP_K,
            "topP": DEFAULT_TOP_P,
            "maxOutputTokens": self.config.max_tokens or DEFAULT_MAX_OUTPUT_TOKENS,
        }
        if model_info is not None and model_info.supports_reasoning:
            generation_config["thinkingConfig"] = {"includeThoughts": True}

        body: dict[str, Any] = {"contents": contents, "generationConfig": generation_config}
        if system_texts:
            body["systemInstruction"] = {"parts": [{"text": "\n\n".join(system_texts)}]}

        return ProviderRequest(
            url=f"{self.config.base_url}/models/{model}:streamGenerateContent?alt=sse",
            body=body,
            headers={"x-goog-api-key": api_key, "Content-Type": "application/json"},
        )

    def create_decoder(self) -> GeminiDecoder:
        return GeminiDecoder()
