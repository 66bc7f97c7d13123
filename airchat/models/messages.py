"""Message and conversation data models."""

from dataclasses import dataclass, field
from typing import Annotated, Literal

from cuid2 import cuid_wrapper
from pydantic import BaseModel, Field

cuid = cuid_wrapper()

Role = Literal["system", "user", "assistant", "tool"]


class TextPart(BaseModel):
    """Text content part."""

    type: Literal["text"] = "text"
    text: str


class ImagePart(BaseModel):
    """Image reference, either a remote URL or a data URI."""

    type: Literal["image_url"] = "image_url"
    url: str
    detail: str = "auto"


class AudioPart(BaseModel):
    """Base64-encoded audio clip."""

    type: Literal["audio"] = "audio"
    mime_type: str
    data: str


ContentPart = Annotated[TextPart | ImagePart | AudioPart, Field(discriminator="type")]

MessageContent = str | list[ContentPart]


def display_text(content: MessageContent) -> str:
    """Return the text a consumer should display for a message content.

    Plain text and a parts list holding a single text part are the same
    display text. Several text parts are joined with a space.
    """
    if isinstance(content, str):
        return content
    return " ".join(part.text for part in content if isinstance(part, TextPart))


class ToolCallRequest(BaseModel):
    """A tool call requested by the model."""

    id: str
    function_name: str
    raw_arguments: str = ""


class Message(BaseModel):
    """A message in a conversation."""

    id: str = Field(default_factory=lambda: cuid())
    role: Role
    content: MessageContent = ""
    reasoning: str | None = None
    tool_calls: list[ToolCallRequest] | None = None
    tool_call_id: str | None = None

    @property
    def display_text(self) -> str:
        return display_text(self.content)

    @property
    def has_images(self) -> bool:
        return isinstance(self.content, list) and any(isinstance(part, ImagePart) for part in self.content)

    @property
    def is_blank(self) -> bool:
        """True when the message carries no text, reasoning, or tool calls yet."""
        return not self.display_text and not self.reasoning and not self.tool_calls and not self.has_images

    def append_text(self, text: str) -> None:
        """Append visible text, merging into the trailing text part of multimodal content."""
        if not text:
            return
        if isinstance(self.content, str):
            self.content += text
            return
        if self.content and isinstance(self.content[-1], TextPart):
            self.content[-1].text += text
        else:
            self.content.append(TextPart(text=text))

    def append_reasoning(self, text: str) -> None:
        if not text:
            return
        self.reasoning = (self.reasoning or "") + text


class StreamChunk(BaseModel):
    """One normalized increment of a streaming model response."""

    content_delta: str | None = None
    reasoning_delta: str | None = None
    thinking_delta: str | None = None
    tool_calls: list[ToolCallRequest] | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.content_delta or self.reasoning_delta or self.thinking_delta or self.tool_calls)


class SearchResult(BaseModel):
    """One web search hit returned by the search tool."""

    title: str
    url: str
    snippet: str = ""

    def to_markdown(self) -> str:
        return f"[{self.title}]({self.url})\n{self.snippet}"


@dataclass
class Conversation:
    """Ordered message list plus the model it is sent to."""

    model: str
    system_prompt: str | None = None
    messages: list[Message] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.system_prompt and not self.messages:
            self.messages.append(Message(role="system", content=self.system_prompt))

    def __len__(self) -> int:
        return len(self.messages)

    def __iter__(self):
        return iter(self.messages)

    @property
    def last(self) -> Message | None:
        return self.messages[-1] if self.messages else None

    def append(self, message: Message) -> Message:
        """Append a message, rejecting duplicate ids."""
        if any(existing.id == message.id for existing in self.messages):
            raise ValueError(f"Message {message.id} is already part of the conversation")
        self.messages.append(message)
        return message

    def clear(self) -> None:
        """Drop every message except the system prompt."""
        self.messages = [Message(role="system", content=self.system_prompt)] if self.system_prompt else []

    def snapshot(self) -> list[Message]:
        """Deep copy of the messages for readers outside the orchestrator."""
        return [message.model_copy(deep=True) for message in self.messages]
