"""OpenRouter chat-completions adapter (OpenAI-compatible streaming)."""

from typing import Any

from pydantic import BaseModel

from airchat.clients.base import ProviderAdapter, ProviderRequest
from airchat.clients.sse import PayloadDecoder, parse_payload
from airchat.errors import HTTPError
from airchat.models.catalog import AIModel
from airchat.models.messages import (
    AudioPart,
    ImagePart,
    Message,
    MessageContent,
    StreamChunk,
    TextPart,
    ToolCallRequest,
)
from airchat.tools.web_search import WEB_SEARCH_TOOL_DEFINITION
from airchat.utils.logging import get_logger

logger = get_logger(__name__)


class OpenRouterFunctionDelta(BaseModel):
    """Fragment of a streamed function call."""

    name: str | None = None
    arguments: str | None = None


class OpenRouterToolCallDelta(BaseModel):
    """Fragment of a streamed tool call, keyed by index."""

    index: int = 0
    id: str | None = None
    type: str | None = None
    function: OpenRouterFunctionDelta | None = None


class OpenRouterDelta(BaseModel):
    content: str | None = None
    reasoning: str | None = None
    tool_calls: list[OpenRouterToolCallDelta] | None = None


class OpenRouterChoice(BaseModel):
    delta: OpenRouterDelta = OpenRouterDelta()
    finish_reason: str | None = None


class OpenRouterError(BaseModel):
    message: str = ""
    code: int | str | None = None


class OpenRouterStreamResponse(BaseModel):
    """One ``data:`` payload of an OpenRouter stream."""

    choices: list[OpenRouterChoice] = []
    error: OpenRouterError | None = None


class OpenRouterDecoder(PayloadDecoder):
    """Decodes OpenRouter payloads and assembles fragmented tool calls."""

    def __init__(self) -> None:
        self._tool_calls: dict[int, dict[str, str]] = {}

    def decode(self, payload: str) -> StreamChunk | None:
        response = parse_payload(OpenRouterStreamResponse, payload)

        if response.error is not None:
            status = response.error.code if isinstance(response.error.code, int) else 500
            message = response.error.message or f"OpenRouter reported an error (code {response.error.code})"
            raise HTTPError(status, message)

        if not response.choices:
            return None

        choice = response.choices[0]
        for fragment in choice.delta.tool_calls or []:
            self._accumulate(fragment)

        tool_calls = self._drain_tool_calls() if choice.finish_reason == "tool_calls" else None

        return StreamChunk(
            content_delta=choice.delta.content or None,
            reasoning_delta=choice.delta.reasoning or None,
            tool_calls=tool_calls,
        )

    def finish(self) -> StreamChunk | None:
        tool_calls = self._drain_tool_calls()
        return StreamChunk(tool_calls=tool_calls) if tool_calls else None

    def _accumulate(self, fragment: OpenRouterToolCallDelta) -> None:
        entry = self._tool_calls.setdefault(fragment.index, {"id": "", "name": "", "arguments": ""})
        if fragment.id:
            entry["id"] = fragment.id
        if fragment.function is not None:
            if fragment.function.name and not entry["name"]:
                entry["name"] = fragment.function.name
            if fragment.function.arguments:
                entry["arguments"] += fragment.function.arguments

    def _drain_tool_calls(self) -> list[ToolCallRequest] | None:
        calls = [
            ToolCallRequest(
                id=entry["id"] or f"call_{index}",
                function_name=entry["name"],
                raw_arguments=entry["arguments"],
            )
            for index, entry in sorted(self._tool_calls.items())
            if entry["name"]
        ]
        self._tool_calls.clear()
        return calls or None


def _audio_format(mime_type: str) -> str:
    subtype = mime_type.split("/")[-1].lower()
    return {"mpeg": "mp3", "x-wav": "wav", "wave": "wav"}.get(subtype, subtype)


def to_openai_content(content: MessageContent) -> str | list[dict[str, Any]]:
    """Convert message content to the OpenAI content format."""
    if isinstance(content, str):
        return content

    parts: list[dict[str, Any]] = []
    for part in content:
        if isinstance(part, TextPart):
            parts.append({"type": "text", "text": part.text})
        elif isinstance(part, ImagePart):
            parts.append({"type": "image_url", "image_url": {"url": part.url, "detail": part.detail}})
        elif isinstance(part, AudioPart):
            parts.append(
                {"type": "input_audio", "input_audio": {"data": part.data, "format": _audio_format(part.mime_type)}}
            )
    return parts


class OpenRouterAdapter(ProviderAdapter):
    """Variant A: OpenRouter with reasoning and function calling."""

    provider_key = "openrouter"
    default_base_url = "https://openrouter.ai/api/v1"

    def build_request(
        self, messages: list[Message], model: str, api_key: str, *, tools_enabled: bool, model_info: AIModel | None
    ) -> ProviderRequest:
        answered = {m.tool_call_id for m in messages if m.role == "tool" and m.tool_call_id}

        wire_messages = []
        for message in messages:
            wire: dict[str, Any] = {"role": message.role, "content": to_openai_content(message.content)}

            if message.role == "assistant" and message.tool_calls:
                calls = [call for call in message.tool_calls if call.id in answered]
                if len(calls) < len(message.tool_calls):
                    logger.debug(f"Omitting {len(message.tool_calls) - len(calls)} unanswered tool calls")
                if calls:
                    wire["tool_calls"] = [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {"name": call.function_name, "arguments": call.raw_arguments},
                        }
                        for call in calls
                    ]

            if message.role == "tool":
                wire["tool_call_id"] = message.tool_call_id

            wire_messages.append(wire)

        body: dict[str, Any] = {"model": model, "messages": wire_messages, "stream": True}

        if tools_enabled and (model_info is None or model_info.supports_tools):
            body["tools"] = [WEB_SEARCH_TOOL_DEFINITION]
            body["tool_choice"] = "auto"
        if model_info is not None and model_info.supports_reasoning:
            body["include_reasoning"] = True
        if self.config.temperature is not None:
            body["temperature"] = self.config.temperature
        if self.config.max_tokens is not None:
            body["max_tokens"] = self.config.max_tokens

        return ProviderRequest(
            url=f"{self.config.base_url}/chat/completions",
            body=body,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
                "X-Title": "Airchat",
            },
        )

    def create_decoder(self) -> OpenRouterDecoder:
        return OpenRouterDecoder()
