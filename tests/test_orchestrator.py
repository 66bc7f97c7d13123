"""Tests for the conversation orchestrator."""

import asyncio
import json
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from airchat.clients import OpenRouterAdapter
from airchat.clients.rate_limit import RequestRateLimiter
from airchat.clients.tokens import TokenEstimator
from airchat.errors import HTTPError, NetworkError, ToolExecutionError, TurnInProgressError
from airchat.models.messages import Conversation, ImagePart, SearchResult, StreamChunk, TextPart, ToolCallRequest
from airchat.services.credentials import StaticCredentialProvider
from airchat.services.orchestrator import (
    CANCELLED_NOTE,
    UNEXPECTED_ERROR_NOTE,
    ConversationOrchestrator,
    OrchestratorConfig,
    TurnState,
)

FAST = OrchestratorConfig(pacer_interval=0, scroll_window=0)


class ScriptedAdapter:
    """Replays one scripted response per stream call.

    A script entry is a list of chunks; an exception in the list is raised
    at that point of the stream.
    """

    def __init__(self, *scripts):
        self.scripts = list(scripts)
        self.calls: list[dict] = []

    async def stream(self, conversation, model, *, tools_enabled=True):
        self.calls.append({"model": model, "tools_enabled": tools_enabled, "messages": conversation.snapshot()})
        for item in self.scripts.pop(0):
            if isinstance(item, Exception):
                raise item
            yield item


class BlockingAdapter:
    """Streams one chunk, then waits until released."""

    def __init__(self):
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def stream(self, conversation, model, *, tools_enabled=True):
        self.started.set()
        yield StreamChunk(content_delta="Partial")
        await self.release.wait()
        yield StreamChunk(content_delta=" answer")


def make_orchestrator(adapter, tool_executor=None, model="openai/gpt-4o", **kwargs):
    conversation = Conversation(model=model, system_prompt="You are helpful.")
    return ConversationOrchestrator(
        conversation,
        StaticCredentialProvider({}),
        tool_executor,
        adapter_factory=lambda provider, credentials: adapter,
        config=FAST,
        **kwargs,
    )


def openrouter_factory(handler, keys):
    def factory(provider, credentials):
        return OpenRouterAdapter(
            StaticCredentialProvider(keys),
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            rate_limiter=RequestRateLimiter(),
            token_estimator=TokenEstimator(tokenizer=None),
        )

    return factory


def web_search_call(call_id="1", arguments='{"query":"cats"}', name="web_search"):
    return StreamChunk(tool_calls=[ToolCallRequest(id=call_id, function_name=name, raw_arguments=arguments)])


def search_executor(*results):
    executor = Mock()
    executor.execute = AsyncMock(return_value=list(results))
    return executor


class TestEndToEnd:
    """End-to-end turns through a real adapter on a mock transport."""

    @pytest.mark.asyncio
    async def test_streamed_text_becomes_assistant_message(self):
        """Test that content chunks become the visible assistant reply."""
        body = (
            b'data: {"choices":[{"delta":{"content":"Hi"}}]}\n\n'
            b'data: {"choices":[{"delta":{"content":" there"}}]}\n\n'
            b"data: [DONE]\n\n"
        )
        conversation = Conversation(model="openai/gpt-4o")
        orchestrator = ConversationOrchestrator(
            conversation,
            StaticCredentialProvider({}),
            adapter_factory=openrouter_factory(lambda request: httpx.Response(200, content=body), {"openrouter": "k"}),
            config=FAST,
        )

        await orchestrator.submit("hello")

        assert [m.role for m in conversation] == ["user", "assistant"]
        assert conversation.last.display_text == "Hi there"
        assert orchestrator.state == TurnState.IDLE
        assert not orchestrator.busy

    @pytest.mark.asyncio
    async def test_rejected_key_records_one_error_message(self):
        """Test that HTTP 401 produces exactly one assistant message describing it."""
        requests = []

        def handler(request):
            requests.append(json.loads(request.content))
            return httpx.Response(401, json={"error": {"message": "No auth credentials found", "code": 401}})

        conversation = Conversation(model="openai/gpt-4o", system_prompt="You are helpful.")
        orchestrator = ConversationOrchestrator(
            conversation,
            StaticCredentialProvider({}),
            adapter_factory=openrouter_factory(handler, {"openrouter": "bad-key"}),
            config=FAST,
        )

        await orchestrator.submit("hello")

        assert [m.role for m in conversation] == ["system", "user", "assistant"]
        assert "API key" in conversation.last.display_text
        assert "No auth credentials found" in conversation.last.display_text
        assert orchestrator.state == TurnState.IDLE
        assert len(requests) == 1

    @pytest.mark.asyncio
    async def test_missing_key_records_error_without_request(self):
        """Test that a missing credential is reported without any network call."""
        handler = Mock(return_value=httpx.Response(200))
        conversation = Conversation(model="openai/gpt-4o")
        orchestrator = ConversationOrchestrator(
            conversation,
            StaticCredentialProvider({}),
            adapter_factory=openrouter_factory(handler, {}),
            config=FAST,
        )

        await orchestrator.submit("hello")

        handler.assert_not_called()
        assert "No API key configured for openrouter" in conversation.last.display_text


class TestToolLoop:
    """Tests for tool calls within a turn."""

    @pytest.mark.asyncio
    async def test_tool_call_then_continuation(self):
        """Test that a tool result is appended and exactly one continuation follows."""
        adapter = ScriptedAdapter(
            [web_search_call()],
            [StreamChunk(content_delta="Cats are mammals.")],
        )
        executor = search_executor(SearchResult(title="Cat", url="https://example.com/cat", snippet="A mammal."))
        orchestrator = make_orchestrator(adapter, executor)

        await orchestrator.submit("tell me about cats")

        messages = orchestrator.conversation.messages
        assert [m.role for m in messages] == ["system", "user", "assistant", "tool", "assistant"]
        assert messages[2].tool_calls[0].id == "1"
        assert messages[3].tool_call_id == "1"
        assert messages[3].content == "[Cat](https://example.com/cat)\nA mammal."
        assert messages[4].display_text == "Cats are mammals."

        executor.execute.assert_awaited_once_with("web_search", "cats")
        assert orchestrator.adapter_calls == 2
        assert [call["tools_enabled"] for call in adapter.calls] == [True, False]
        assert orchestrator.state == TurnState.IDLE

    @pytest.mark.asyncio
    async def test_continuation_sees_tool_result(self):
        """Test that the continuation call is sent the tool message."""
        adapter = ScriptedAdapter([web_search_call()], [StreamChunk(content_delta="Done.")])
        orchestrator = make_orchestrator(adapter, search_executor())

        await orchestrator.submit("cats?")

        sent = adapter.calls[1]["messages"]
        assert sent[-2].role == "tool"
        assert sent[-2].content == "No results found."

    @pytest.mark.asyncio
    async def test_tool_calls_on_continuation_ignored(self):
        """Test that the loop ends even if the continuation asks for more tools."""
        adapter = ScriptedAdapter(
            [web_search_call("1")],
            [StreamChunk(content_delta="Let me search again."), web_search_call("2")],
        )
        executor = search_executor()
        orchestrator = make_orchestrator(adapter, executor)

        await orchestrator.submit("cats?")

        assert orchestrator.adapter_calls == 2
        executor.execute.assert_awaited_once()
        assert orchestrator.conversation.last.display_text == "Let me search again."

    @pytest.mark.asyncio
    async def test_unknown_tool_skipped(self):
        """Test that calls to tools other than web_search are not executed."""
        adapter = ScriptedAdapter(
            [web_search_call(name="calculator", arguments='{"expression":"1+1"}')],
            [StreamChunk(content_delta="It is 2.")],
        )
        executor = search_executor()
        orchestrator = make_orchestrator(adapter, executor)

        await orchestrator.submit("1+1?")

        executor.execute.assert_not_awaited()
        assert "tool" not in [m.role for m in orchestrator.conversation]
        assert orchestrator.conversation.last.display_text == "It is 2."

    @pytest.mark.asyncio
    async def test_unusable_arguments_noted(self):
        """Test that bad arguments fail that call only, with a visible note."""
        adapter = ScriptedAdapter(
            [
                StreamChunk(
                    tool_calls=[
                        ToolCallRequest(id="1", function_name="web_search", raw_arguments='{"bogus":1}'),
                        ToolCallRequest(id="2", function_name="web_search", raw_arguments="weather tomorrow"),
                    ]
                )
            ],
            [StreamChunk(content_delta="Sunny.")],
        )
        executor = search_executor()
        orchestrator = make_orchestrator(adapter, executor)

        await orchestrator.submit("weather?")

        messages = orchestrator.conversation.messages
        assert [m.role for m in messages] == ["system", "user", "assistant", "tool", "assistant", "assistant"]
        assert messages[3].tool_call_id == "2"
        assert "tool arguments" in messages[4].display_text
        assert messages[5].display_text == "Sunny."
        executor.execute.assert_awaited_once_with("web_search", "weather tomorrow")

    @pytest.mark.asyncio
    async def test_executor_failure_noted(self):
        """Test that an executor failure becomes a note and the turn continues."""
        adapter = ScriptedAdapter([web_search_call()], [StreamChunk(content_delta="Sorry, no search today.")])
        executor = Mock()
        executor.execute = AsyncMock(side_effect=ToolExecutionError("search backend down"))
        orchestrator = make_orchestrator(adapter, executor)

        await orchestrator.submit("cats?")

        roles = [m.role for m in orchestrator.conversation]
        assert roles == ["system", "user", "assistant", "assistant", "assistant"]
        assert "search backend down" in orchestrator.conversation.messages[3].display_text
        assert orchestrator.adapter_calls == 2

    @pytest.mark.asyncio
    async def test_no_executor_configured(self):
        """Test that a tool call without an executor is noted, not fatal."""
        adapter = ScriptedAdapter([web_search_call()], [StreamChunk(content_delta="OK.")])
        orchestrator = make_orchestrator(adapter)

        await orchestrator.submit("cats?")

        assert "No tool executor" in orchestrator.conversation.messages[3].display_text
        assert orchestrator.conversation.last.display_text == "OK."


class TestStreamingTurn:
    """Tests for chunk handling and turn errors."""

    @pytest.mark.asyncio
    async def test_reasoning_not_doubled(self):
        """Test that a delta carried on both reasoning channels is recorded once."""
        adapter = ScriptedAdapter(
            [
                StreamChunk(reasoning_delta="Think", thinking_delta="Think"),
                StreamChunk(thinking_delta="ing"),
                StreamChunk(content_delta="Answer"),
            ]
        )
        orchestrator = make_orchestrator(adapter)

        await orchestrator.submit("why?")

        assert orchestrator.conversation.last.reasoning == "Thinking"
        assert orchestrator.conversation.last.display_text == "Answer"

    @pytest.mark.asyncio
    async def test_visible_reasoning_and_text_are_prefixes(self):
        """Test that every scroll signal observes prefixes of what was delivered."""
        reasoning_deltas = ["Let ", "me ", "think"]
        adapter = ScriptedAdapter(
            [*(StreamChunk(reasoning_delta=delta) for delta in reasoning_deltas), StreamChunk(content_delta="Done")]
        )
        orchestrator = make_orchestrator(adapter)
        observed: list[tuple[str, str]] = []

        def observe():
            message = orchestrator.conversation.last
            observed.append((message.reasoning or "", message.display_text))

        orchestrator.scroll_bus.subscribe_immediate(observe)

        await orchestrator.submit("why?")

        full_reasoning = "".join(reasoning_deltas)
        assert [reasoning for reasoning, _ in observed][:3] == ["Let ", "Let me ", "Let me think"]
        for reasoning, text in observed:
            assert full_reasoning.startswith(reasoning)
            assert "Done".startswith(text)
        lengths = [len(reasoning) + len(text) for reasoning, text in observed]
        assert lengths == sorted(lengths)

    @pytest.mark.asyncio
    async def test_error_after_partial_text(self):
        """Test that partial text is kept and the error is noted after it."""
        adapter = ScriptedAdapter([StreamChunk(content_delta="Partial"), HTTPError(500, "Internal error")])
        orchestrator = make_orchestrator(adapter)

        await orchestrator.submit("hello")

        messages = orchestrator.conversation.messages
        assert messages[-2].display_text == "Partial"
        assert "HTTP 500" in messages[-1].display_text
        assert orchestrator.state == TurnState.IDLE

    @pytest.mark.asyncio
    async def test_network_error_before_text(self):
        """Test that an error before any text fills the empty reply slot."""
        adapter = ScriptedAdapter([NetworkError("connection reset")])
        orchestrator = make_orchestrator(adapter)

        await orchestrator.submit("hello")

        assert [m.role for m in orchestrator.conversation] == ["system", "user", "assistant"]
        assert "Network error" in orchestrator.conversation.last.display_text

    @pytest.mark.asyncio
    async def test_unexpected_error(self):
        """Test that unexpected exceptions end the turn with a generic note."""
        adapter = ScriptedAdapter([RuntimeError("bug")])
        orchestrator = make_orchestrator(adapter)

        await orchestrator.submit("hello")

        assert orchestrator.conversation.last.display_text == UNEXPECTED_ERROR_NOTE
        assert orchestrator.state == TurnState.IDLE

    @pytest.mark.asyncio
    async def test_attachments(self):
        """Test that attachments are sent as content parts after the text."""
        adapter = ScriptedAdapter([StreamChunk(content_delta="A cat.")])
        orchestrator = make_orchestrator(adapter)

        await orchestrator.submit("What is this?", attachments=[ImagePart(url="data:image/png;base64,AAAA")])

        user = orchestrator.conversation.messages[1]
        assert isinstance(user.content[0], TextPart)
        assert isinstance(user.content[1], ImagePart)
        assert user.display_text == "What is this?"

    @pytest.mark.asyncio
    async def test_empty_submission_rejected(self):
        """Test that empty input is rejected before anything is appended."""
        orchestrator = make_orchestrator(ScriptedAdapter())

        with pytest.raises(ValueError, match="empty"):
            await orchestrator.submit("   ")
        assert len(orchestrator.conversation) == 1

    @pytest.mark.asyncio
    async def test_updates_and_scroll_signals(self):
        """Test that subscribers hear about structural changes."""
        on_update = Mock()
        adapter = ScriptedAdapter([StreamChunk(content_delta="Hi")])
        orchestrator = make_orchestrator(adapter, on_update=on_update)
        scrolled = Mock()
        orchestrator.scroll_bus.subscribe_normal(scrolled)

        await orchestrator.submit("hello")
        await asyncio.sleep(0.01)

        assert on_update.call_count >= 2
        on_update.assert_called_with(orchestrator.conversation)
        assert scrolled.call_count >= 1

    @pytest.mark.asyncio
    async def test_failing_update_subscriber(self):
        """Test that a failing update callback does not break the turn."""
        adapter = ScriptedAdapter([StreamChunk(content_delta="Hi")])
        orchestrator = make_orchestrator(adapter, on_update=Mock(side_effect=RuntimeError("ui gone")))

        await orchestrator.submit("hello")

        assert orchestrator.conversation.last.display_text == "Hi"


class TestTurnControl:
    """Tests for busy rejection, cancellation and conversation control."""

    @pytest.mark.asyncio
    async def test_submit_while_busy_rejected(self):
        """Test that a second submission during a turn is rejected."""
        adapter = BlockingAdapter()
        orchestrator = make_orchestrator(adapter)

        turn = asyncio.create_task(orchestrator.submit("first"))
        await adapter.started.wait()

        assert orchestrator.busy
        with pytest.raises(TurnInProgressError):
            await orchestrator.submit("second")

        adapter.release.set()
        await turn

        assert [m.role for m in orchestrator.conversation] == ["system", "user", "assistant"]
        assert orchestrator.conversation.last.display_text == "Partial answer"

    @pytest.mark.asyncio
    async def test_cancel(self):
        """Test that cancelling ends the turn with a note and returns to idle."""
        adapter = BlockingAdapter()
        orchestrator = make_orchestrator(adapter)

        turn = asyncio.create_task(orchestrator.submit("hello"))
        await adapter.started.wait()

        assert orchestrator.cancel()
        await turn

        assert orchestrator.conversation.last.display_text == CANCELLED_NOTE
        assert orchestrator.state == TurnState.IDLE
        assert not orchestrator.busy
        assert not orchestrator.cancel()

    @pytest.mark.asyncio
    async def test_cancel_before_turn_starts(self):
        """Test that cancelling right after submitting still ends with a note and idle state."""
        adapter = ScriptedAdapter([StreamChunk(content_delta="never")])
        orchestrator = make_orchestrator(adapter)

        turn = asyncio.create_task(orchestrator.submit("hello"))
        await asyncio.sleep(0)

        assert orchestrator.cancel()
        await turn

        assert [m.role for m in orchestrator.conversation] == ["system", "user", "assistant"]
        assert orchestrator.conversation.last.display_text == CANCELLED_NOTE
        assert orchestrator.state == TurnState.IDLE
        assert not orchestrator.busy
        assert adapter.calls == []

    @pytest.mark.asyncio
    async def test_cancel_keeps_pending_text(self):
        """Test that text still waiting in the pacer is revealed before the cancel note."""
        adapter = BlockingAdapter()
        orchestrator = ConversationOrchestrator(
            Conversation(model="openai/gpt-4o", system_prompt="You are helpful."),
            StaticCredentialProvider({}),
            adapter_factory=lambda provider, credentials: adapter,
            config=OrchestratorConfig(pacer_interval=10, scroll_window=0),
        )

        turn = asyncio.create_task(orchestrator.submit("hello"))
        await adapter.started.wait()
        for _ in range(100):
            if orchestrator.pacer.pending_text == "Partial":
                break
            await asyncio.sleep(0)
        assert orchestrator.pacer.pending_text == "Partial"

        orchestrator.cancel()
        await turn

        messages = orchestrator.conversation.messages
        assert [m.role for m in messages] == ["system", "user", "assistant", "assistant"]
        assert messages[2].display_text == "Partial"
        assert messages[3].display_text == CANCELLED_NOTE
        assert orchestrator.pacer.pending_text == ""

    @pytest.mark.asyncio
    async def test_switch_model_changes_adapter(self):
        """Test that turns after a switch go to the new model's provider."""
        openrouter = ScriptedAdapter([StreamChunk(content_delta="from openrouter")])
        kimi = ScriptedAdapter([StreamChunk(content_delta="from kimi")])
        factory = Mock(side_effect=lambda provider, credentials: {"openrouter": openrouter, "kimi": kimi}[provider])
        orchestrator = ConversationOrchestrator(
            Conversation(model="openai/gpt-4o"), StaticCredentialProvider({}), adapter_factory=factory, config=FAST
        )

        await orchestrator.submit("one")
        orchestrator.switch_model("kimi-k2-0711-preview")
        await orchestrator.submit("two")

        assert kimi.calls[0]["model"] == "kimi-k2-0711-preview"
        assert orchestrator.conversation.last.display_text == "from kimi"
        assert [call.args[0] for call in factory.call_args_list] == ["openrouter", "kimi"]

    def test_switch_to_unknown_model(self):
        """Test that unknown models are rejected."""
        orchestrator = make_orchestrator(ScriptedAdapter())
        with pytest.raises(ValueError, match="Unknown model"):
            orchestrator.switch_model("made-up/model")

    def test_unknown_initial_model(self):
        """Test that the orchestrator requires a catalog model."""
        with pytest.raises(ValueError, match="Unknown model"):
            make_orchestrator(ScriptedAdapter(), model="made-up/model")

    @pytest.mark.asyncio
    async def test_clear(self):
        """Test that clearing keeps only the system prompt."""
        orchestrator = make_orchestrator(ScriptedAdapter([StreamChunk(content_delta="Hi")]))
        await orchestrator.submit("hello")

        orchestrator.clear()

        assert [m.role for m in orchestrator.conversation] == ["system"]
