"""Token estimation and context-window truncation."""

import tiktoken

from airchat.models.messages import Message
from airchat.utils.logging import get_logger

logger = get_logger(__name__)

_UNLOADED = object()


class TokenEstimator:
    """Approximate token counts with tiktoken, falling back to ~4 characters per token."""

    def __init__(self, encoding_name: str = "cl100k_base", tokenizer=_UNLOADED):
        """Initialize estimator.

        Args:
            encoding_name: tiktoken encoding to load on first use
            tokenizer: Preloaded tokenizer, or None to always use the character fallback
        """
        self.encoding_name = encoding_name
        self._tokenizer = tokenizer

    @property
    def tokenizer(self) -> tiktoken.Encoding | None:
        if self._tokenizer is _UNLOADED:
            try:
                self._tokenizer = tiktoken.get_encoding(self.encoding_name)
            except Exception as e:
                logger.warning(f"tiktoken encoding {self.encoding_name} unavailable, using character estimate: {e}")
                self._tokenizer = None
        return self._tokenizer

    def estimate(self, text: str) -> int:
        """Estimate token count for a piece of text."""
        try:
            return len(self.tokenizer.encode(text)) if self.tokenizer else len(text) // 4
        except Exception:
            # Fallback: roughly 4 characters per token
            return len(text) // 4

    def estimate_message(self, message: Message) -> int:
        text = message.display_text
        if message.tool_calls:
            text += "".join(call.function_name + call.raw_arguments for call in message.tool_calls)
        return self.estimate(text)


def truncate_messages(
    messages: list[Message], context_window: int, headroom: int, estimator: TokenEstimator
) -> list[Message]:
    """Drop the oldest non-system messages until the rest fits the context window.

    System messages are always kept. The most recent message is kept even
    when it alone exceeds the budget; the provider reports that case.

    Args:
        messages: Conversation messages in order
        context_window: Model context window in tokens
        headroom: Tokens reserved for the response
        estimator: Token estimator

    Returns:
        Message list that fits within the limit
    """
    if not messages:
        return messages

    available_tokens = context_window - headroom
    system_messages = [m for m in messages if m.role == "system"]
    available_tokens -= sum(estimator.estimate_message(m) for m in system_messages)

    kept: list[Message] = []
    current_tokens = 0

    for message in reversed([m for m in messages if m.role != "system"]):
        message_tokens = estimator.estimate_message(message)
        if kept and current_tokens + message_tokens > available_tokens:
            break
        kept.append(message)
        current_tokens += message_tokens

    kept_ids = {m.id for m in kept} | {m.id for m in system_messages}
    truncated = [m for m in messages if m.id in kept_ids]

    # A tool result must not lead the history without the assistant call that produced it
    while len(kept) > 1:
        leading = next(i for i, m in enumerate(truncated) if m.role != "system")
        if truncated[leading].role != "tool":
            break
        kept = [m for m in kept if m.id != truncated[leading].id]
        truncated.pop(leading)

    if len(truncated) < len(messages):
        logger.warning(
            f"Truncated conversation from {len(messages)} to {len(truncated)} messages "
            f"to fit within {context_window - headroom} token limit"
        )

    return truncated


_token_estimator: TokenEstimator | None = None


def get_token_estimator() -> TokenEstimator:
    """Get or create the shared token estimator instance."""
    global _token_estimator
    if _token_estimator is None:
        _token_estimator = TokenEstimator()
    return _token_estimator
