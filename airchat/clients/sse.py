"""Line-oriented SSE decoding shared by the provider adapters."""

import codecs
from collections.abc import AsyncIterable, AsyncIterator
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from airchat.errors import DecodeError
from airchat.models.messages import StreamChunk
from airchat.utils.logging import get_logger

logger = get_logger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"

T = TypeVar("T", bound=BaseModel)


class PayloadDecoder:
    """Turns one provider ``data:`` payload into a StreamChunk.

    Subclasses set ``done`` when a payload carries a provider-specific end
    marker, and may return a trailing chunk from ``finish`` once the body ends.
    """

    done: bool = False

    def decode(self, payload: str) -> StreamChunk | None:
        raise NotImplementedError

    def finish(self) -> StreamChunk | None:
        return None


def parse_payload(model: type[T], payload: str) -> T:
    """Validate a JSON payload against a wire model.

    Raises:
        DecodeError: If the payload is not valid JSON or does not match the model
    """
    try:
        return model.model_validate_json(payload)
    except ValidationError as e:
        raise DecodeError(f"Malformed {model.__name__} frame ({e.error_count()} errors)") from e


async def iter_lines(byte_stream: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Split a byte stream into text lines.

    Multi-byte characters split across deliveries are held back by an
    incremental decoder until complete.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""

    async for raw in byte_stream:
        buffer += decoder.decode(raw)
        *lines, buffer = buffer.split("\n")
        for line in lines:
            yield line.removesuffix("\r")

    buffer += decoder.decode(b"", final=True)
    if buffer:
        yield buffer.removesuffix("\r")


async def iter_sse_data(byte_stream: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Yield the payload of every ``data:`` line, ignoring everything else."""
    async for line in iter_lines(byte_stream):
        if not line.startswith(DATA_PREFIX):
            continue
        payload = line[len(DATA_PREFIX) :]
        yield payload.removeprefix(" ")


async def normalize_stream(byte_stream: AsyncIterable[bytes], decoder: PayloadDecoder) -> AsyncIterator[StreamChunk]:
    """Decode an SSE body into normalized chunks.

    Ends on the ``[DONE]`` sentinel, on the decoder's own end marker, or at
    EOF. Frames that fail with DecodeError are skipped; any other error from
    the decoder ends the stream with that error.
    """
    frames = 0
    skipped = 0

    async for payload in iter_sse_data(byte_stream):
        if payload.strip() == DONE_SENTINEL:
            logger.debug("Stream reached [DONE] sentinel")
            break
        if not payload.strip():
            continue

        frames += 1
        try:
            chunk = decoder.decode(payload)
        except DecodeError as e:
            skipped += 1
            logger.debug(f"Skipping malformed frame: {e}")
            continue

        if chunk is not None and not chunk.is_empty:
            yield chunk

        if decoder.done:
            logger.debug("Stream reached provider end marker")
            break

    trailing = decoder.finish()
    if trailing is not None and not trailing.is_empty:
        yield trailing

    if skipped:
        logger.warning(f"Skipped {skipped} of {frames} malformed stream frames")
