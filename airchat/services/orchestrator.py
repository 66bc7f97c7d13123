"""Conversation orchestrator: drives streaming turns and the tool-call loop."""

import asyncio
from collections.abc import Callable
from contextlib import aclosing
from dataclasses import dataclass
from enum import StrEnum

from airchat.clients import get_adapter
from airchat.clients.base import ProviderAdapter
from airchat.errors import (
    AuthError,
    DecodeError,
    HTTPError,
    NetworkError,
    ToolArgumentError,
    ToolError,
    ToolExecutionError,
    TurnInProgressError,
    describe_error,
)
from airchat.models.catalog import get_model
from airchat.models.messages import (
    ContentPart,
    Conversation,
    Message,
    StreamChunk,
    TextPart,
    ToolCallRequest,
)
from airchat.services.credentials import CredentialProvider
from airchat.services.pacer import DEFAULT_INTERVAL, RenderPacer
from airchat.services.scroll import DEFAULT_COALESCE_WINDOW, ScrollSignalBus
from airchat.tools.base import ToolExecutor, parse_tool_query
from airchat.tools.web_search import WEB_SEARCH_TOOL_NAME, format_search_results
from airchat.utils.logging import get_logger

logger = get_logger(__name__)

AdapterFactory = Callable[[str, CredentialProvider], ProviderAdapter]
UpdateCallback = Callable[[Conversation], None]

CANCELLED_NOTE = "⚠️ Response cancelled."
UNEXPECTED_ERROR_NOTE = "⚠️ I'm experiencing technical difficulties. Please try again."


class TurnState(StrEnum):
    IDLE = "idle"
    STREAMING = "streaming"
    TOOL_PENDING = "tool_pending"


@dataclass
class OrchestratorConfig:
    """Configuration for the conversation orchestrator."""

    pacer_interval: float = DEFAULT_INTERVAL
    scroll_window: float = DEFAULT_COALESCE_WINDOW


class ConversationOrchestrator:
    """Owns a conversation and runs one streaming turn at a time.

    A turn is ``STREAMING -> (TOOL_PENDING -> STREAMING)* -> IDLE``. Every
    continuation after tool calls is sent with tool initiation disabled, so a
    turn makes at most two provider calls. Turn-ending errors never escape
    ``submit``; they become a single assistant message describing the error.
    """

    def __init__(
        self,
        conversation: Conversation,
        credentials: CredentialProvider,
        tool_executor: ToolExecutor | None = None,
        *,
        adapter_factory: AdapterFactory = get_adapter,
        config: OrchestratorConfig | None = None,
        scroll_bus: ScrollSignalBus | None = None,
        on_update: UpdateCallback | None = None,
    ):
        """Initialize orchestrator.

        Args:
            conversation: Conversation to own; its model must be in the catalog
            credentials: Credential provider passed to the adapters
            tool_executor: Executor for model-issued tool calls
            adapter_factory: Creates the adapter for a catalog provider
            config: Pacing and scroll configuration
            scroll_bus: Bus to publish scroll signals on (one is created when omitted)
            on_update: Called after every structural change of the conversation

        Raises:
            ValueError: If the conversation's model is not in the catalog
        """
        get_model(conversation.model)

        self.conversation = conversation
        self.credentials = credentials
        self.tool_executor = tool_executor
        self.adapter_factory = adapter_factory
        self.config = config or OrchestratorConfig()
        self.scroll_bus = scroll_bus or ScrollSignalBus(window=self.config.scroll_window)
        self.pacer = RenderPacer(self.scroll_bus, interval=self.config.pacer_interval)
        self.on_update = on_update

        self.state = TurnState.IDLE
        self.adapter_calls = 0
        self._adapters: dict[str, ProviderAdapter] = {}
        self._active_message: Message | None = None
        self._turn_task: asyncio.Task | None = None
        self._cancel_requested = False
        self._turn_started = False

    @property
    def busy(self) -> bool:
        return self._turn_task is not None and not self._turn_task.done()

    async def submit(self, text: str = "", attachments: list[ContentPart] | None = None) -> None:
        """Append a user message and run the turn to completion.

        Args:
            text: User text
            attachments: Already-encoded content parts (images, audio)

        Raises:
            ValueError: If there is neither text nor an attachment
            TurnInProgressError: If a turn is already running
        """
        if self.busy:
            raise TurnInProgressError("A response is still streaming")
        if not text.strip() and not attachments:
            raise ValueError("Cannot send an empty message")

        if attachments:
            content = [TextPart(text=text), *attachments] if text.strip() else list(attachments)
            self._append(Message(role="user", content=content))
        else:
            self._append(Message(role="user", content=text))

        self._cancel_requested = False
        self._turn_started = False
        self.state = TurnState.STREAMING
        self._turn_task = asyncio.create_task(self._run_turn())
        try:
            await self._turn_task
        except asyncio.CancelledError:
            if not self._turn_started:
                # Cancelled before its first step, so _run_turn never cleaned up
                self._finish_with_error(CANCELLED_NOTE)
                self._end_turn()
            if not self._cancel_requested:
                raise
            logger.info("Turn cancelled by the user")
        finally:
            self._turn_task = None

    def cancel(self) -> bool:
        """Cancel the running turn.

        Returns:
            True if a turn was running
        """
        if not self.busy:
            return False
        self._cancel_requested = True
        self._turn_task.cancel()
        return True

    def switch_model(self, model_id: str) -> None:
        """Send subsequent turns to another catalog model.

        Raises:
            TurnInProgressError: If a turn is running
            ValueError: If the model is not in the catalog
        """
        if self.busy:
            raise TurnInProgressError("Cannot switch models while a response is streaming")
        model = get_model(model_id)
        self.conversation.model = model.id
        logger.info(f"Switched conversation to {model.id} ({model.provider})")

    def clear(self) -> None:
        """Reset the conversation to its system prompt."""
        if self.busy:
            raise TurnInProgressError("Cannot clear the conversation while a response is streaming")
        self.pacer.flush()
        self.pacer.target = None
        self._active_message = None
        self.conversation.clear()
        self.scroll_bus.emit_normal()
        self._notify()

    async def _run_turn(self) -> None:
        self._turn_started = True
        tools_enabled = True
        calls_before = self.adapter_calls

        try:
            adapter = self._get_adapter(get_model(self.conversation.model).provider)

            while True:
                self.state = TurnState.STREAMING
                tool_calls = await self._stream_phase(adapter, tools_enabled)

                if not tool_calls:
                    break
                if not tools_enabled:
                    logger.warning(f"Ignoring {len(tool_calls)} tool calls requested by a continuation call")
                    break

                self.state = TurnState.TOOL_PENDING
                self.pacer.flush()
                await self._run_tool_calls(tool_calls)
                tools_enabled = False

            logger.info(f"Turn completed after {self.adapter_calls - calls_before} provider calls")

        except (AuthError, HTTPError, NetworkError, DecodeError) as e:
            logger.warning(f"Turn failed: {e}")
            self._finish_with_error(describe_error(e))
        except asyncio.CancelledError:
            self._finish_with_error(CANCELLED_NOTE)
            raise
        except Exception as e:
            logger.error(f"Unexpected error during turn: {e}", exc_info=True)
            self._finish_with_error(UNEXPECTED_ERROR_NOTE)
        finally:
            self._end_turn()

    def _end_turn(self) -> None:
        self.pacer.flush()
        self.pacer.stop()
        self._active_message = None
        self.state = TurnState.IDLE
        self.scroll_bus.emit_normal()
        self._notify()

    async def _stream_phase(self, adapter: ProviderAdapter, tools_enabled: bool) -> list[ToolCallRequest]:
        """Consume one provider stream into the active assistant message.

        Returns:
            Tool calls requested during the stream, in arrival order
        """
        message = self._open_assistant_slot()
        self.pacer.attach(message)
        requested: list[ToolCallRequest] = []

        self.adapter_calls += 1
        stream = adapter.stream(self.conversation, self.conversation.model, tools_enabled=tools_enabled)
        async with aclosing(stream) as chunks:
            async for chunk in chunks:
                self._apply_chunk(message, chunk, requested)

        return requested

    def _apply_chunk(self, message: Message, chunk: StreamChunk, requested: list[ToolCallRequest]) -> None:
        if chunk.content_delta:
            self.pacer.enqueue(chunk.content_delta)

        # Gemini surfaces thoughts on both channels; take one so reasoning is not doubled
        reasoning = chunk.reasoning_delta if chunk.reasoning_delta else chunk.thinking_delta
        if reasoning:
            message.append_reasoning(reasoning)
            self.scroll_bus.emit_immediate()

        if chunk.tool_calls:
            message.tool_calls = [*(message.tool_calls or []), *chunk.tool_calls]
            requested.extend(chunk.tool_calls)
            self._notify()

    async def _run_tool_calls(self, tool_calls: list[ToolCallRequest]) -> None:
        """Execute tool calls sequentially.

        Results are appended as tool messages directly after the assistant
        message that requested them; failures become assistant-visible notes
        appended after all results.
        """
        logger.info(f"Model requested {len(tool_calls)} tool calls")
        notes: list[str] = []

        for call in tool_calls:
            if call.function_name != WEB_SEARCH_TOOL_NAME:
                logger.info(f"Skipping unsupported tool call: {call.function_name}")
                continue

            try:
                query = parse_tool_query(call.raw_arguments)
            except ToolArgumentError as e:
                logger.warning(f"Tool call {call.id} has unusable arguments: {e}")
                notes.append(describe_error(e))
                continue

            try:
                if self.tool_executor is None:
                    raise ToolExecutionError("No tool executor is configured")
                results = await self.tool_executor.execute(call.function_name, query)
            except ToolError as e:
                logger.warning(f"Tool call {call.id} failed: {e}")
                notes.append(describe_error(e))
                continue
            except Exception as e:
                logger.error(f"Tool executor raised unexpectedly for {call.id}: {e}", exc_info=True)
                notes.append(describe_error(ToolExecutionError(str(e))))
                continue

            self._append(Message(role="tool", content=format_search_results(results), tool_call_id=call.id))

        for note in notes:
            self._append(Message(role="assistant", content=note))

    def _open_assistant_slot(self) -> Message:
        last = self.conversation.last
        if last is not None and last is self._active_message and last.role == "assistant":
            return last

        message = self._append(Message(role="assistant", content=""))
        self._active_message = message
        return message

    def _finish_with_error(self, text: str) -> None:
        """Record exactly one assistant message describing a turn-ending error."""
        self.pacer.flush()
        slot = self._active_message
        if slot is not None and slot is self.conversation.last and slot.is_blank:
            slot.content = text
            self._notify()
        else:
            self._append(Message(role="assistant", content=text))

    def _get_adapter(self, provider: str) -> ProviderAdapter:
        if provider not in self._adapters:
            self._adapters[provider] = self.adapter_factory(provider, self.credentials)
        return self._adapters[provider]

    def _append(self, message: Message) -> Message:
        self.conversation.append(message)
        self.scroll_bus.emit_normal()
        self._notify()
        return message

    def _notify(self) -> None:
        if self.on_update is None:
            return
        try:
            self.on_update(self.conversation)
        except Exception as e:
            logger.error(f"Update subscriber failed: {e}", exc_info=True)
