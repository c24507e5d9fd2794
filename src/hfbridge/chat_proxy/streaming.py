"""Synthesized server-sent-event streaming.

The upstream returns one complete generation, so a "stream" here is the final
text re-segmented on word boundaries after generation has finished. The whole
text is always available before the first chunk goes out.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import (
    Any,
    AsyncGenerator,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
)

from .errors import ProxyError, err_internal

logger = logging.getLogger(__name__)

DONE_EVENT = b"data: [DONE]\n\n"


@dataclass(frozen=True)
class StreamChunk:
    index: int
    content: str
    is_last: bool

    @property
    def finish_reason(self) -> Optional[str]:
        return "stop" if self.is_last else None


def split_words(text: str) -> List[str]:
    """Split on whitespace, keeping one trailing space on all but the last word."""
    words = text.split()
    return [w + " " for w in words[:-1]] + words[-1:]


async def emulate_stream(
    final_text: str, *, delay_s: float = 0.0
) -> AsyncIterator[StreamChunk]:
    words = split_words(final_text) or [""]
    last = len(words) - 1
    for index, word in enumerate(words):
        if index and delay_s > 0:
            await asyncio.sleep(delay_s)
        yield StreamChunk(index=index, content=word, is_last=index == last)


def sse_event(payload: Dict[str, Any]) -> bytes:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n".encode()


async def sse_stream(
    text_source: Callable[[], Awaitable[str]],
    chunk_builder: Callable[[StreamChunk], Dict[str, Any]],
    *,
    delay_s: float = 0.0,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
) -> AsyncGenerator[bytes, None]:
    """Yield SSE frames for one synthesized completion.

    ``text_source`` performs the single upstream call. If it fails, exactly one
    error event is emitted and the stream ends without ``[DONE]``.
    """
    try:
        text = await text_source()
    except ProxyError as exc:
        logger.warning("[stream] upstream failed: %s", exc.detail["error"]["message"])
        yield sse_event(exc.detail)
        return
    except Exception:  # noqa: BLE001
        logger.exception("[stream] unexpected failure before first chunk")
        yield sse_event(err_internal().detail)
        return

    async for chunk in emulate_stream(text, delay_s=delay_s):
        if is_disconnected is not None and await is_disconnected():
            logger.info("[stream] client disconnected after %d chunk(s)", chunk.index)
            return
        yield sse_event(chunk_builder(chunk))
    yield DONE_EVENT
