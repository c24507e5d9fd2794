from __future__ import annotations

import re
import time
from typing import Any, Dict, Iterable, Optional

from .config import DEFAULT_FALLBACK_TEXT, ProxyConfig
from .models import (
    ChatChoice,
    ChatCompletionChunk,
    ChatCompletionResponse,
    ChatMessage,
    ChoiceMessage,
    ChunkChoice,
    ChunkDelta,
    Usage,
)
from .normalization import classify_payload, payload_text
from .streaming import StreamChunk

ROLE_PREFIXES = {
    "system": "System",
    "user": "User",
    "assistant": "Assistant",
}
ASSISTANT_CUE = "Assistant:"


def new_completion_id() -> str:
    return f"chatcmpl-{int(time.time() * 1000)}"


def word_count(text: str) -> int:
    return len(text.split())


class Translator:
    """Convert between the chat-completion schema and plain text generation."""

    def __init__(
        self,
        *,
        show_reasoning: bool = False,
        reasoning_open: str = "<think>",
        reasoning_close: str = "</think>",
        fallback_text: str = DEFAULT_FALLBACK_TEXT,
        model_alias: str = "deepseek-r1",
        include_usage: bool = True,
    ):
        self.show_reasoning = show_reasoning
        self.fallback_text = fallback_text
        self.model_alias = model_alias
        self.include_usage = include_usage
        self._reasoning_re = re.compile(
            re.escape(reasoning_open) + r".*?" + re.escape(reasoning_close),
            re.DOTALL,
        )

    @classmethod
    def from_config(cls, cfg: ProxyConfig) -> "Translator":
        return cls(
            show_reasoning=cfg.show_reasoning,
            reasoning_open=cfg.reasoning_open_tag,
            reasoning_close=cfg.reasoning_close_tag,
            fallback_text=cfg.fallback_text,
            model_alias=cfg.model_alias,
            include_usage=cfg.include_usage,
        )

    @staticmethod
    def build_prompt(messages: Iterable[ChatMessage]) -> str:
        parts = []
        for msg in messages:
            prefix = ROLE_PREFIXES.get(msg.role)
            if prefix is None:
                continue
            parts.append(f"{prefix}: {msg.content}\n\n")
        parts.append(ASSISTANT_CUE)
        return "".join(parts)

    def extract_text(self, payload: Any) -> str:
        text = payload_text(classify_payload(payload))
        if not text.strip():
            return self.fallback_text
        return text

    def strip_reasoning(self, text: str, show_reasoning: Optional[bool] = None) -> str:
        show = self.show_reasoning if show_reasoning is None else show_reasoning
        if show:
            return text
        return self._reasoning_re.sub("", text).strip()

    def final_text(self, payload: Any, show_reasoning: Optional[bool] = None) -> str:
        text = self.strip_reasoning(self.extract_text(payload), show_reasoning)
        # A reply made only of reasoning would otherwise surface as empty.
        return text if text.strip() else self.fallback_text

    def usage(self, prompt: str, text: str) -> Usage:
        prompt_tokens = word_count(prompt)
        completion_tokens = word_count(text)
        return Usage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        )

    def assemble_response(
        self,
        text: str,
        prompt: str,
        *,
        completion_id: Optional[str] = None,
        created: Optional[int] = None,
    ) -> Dict[str, Any]:
        response = ChatCompletionResponse(
            id=completion_id or new_completion_id(),
            created=created if created is not None else int(time.time()),
            model=self.model_alias,
            choices=[
                ChatChoice(
                    index=0,
                    message=ChoiceMessage(role="assistant", content=text),
                    finish_reason="stop",
                )
            ],
            usage=self.usage(prompt, text) if self.include_usage else None,
        )
        return response.model_dump(exclude_none=True)

    def assemble_chunk(
        self, chunk: StreamChunk, completion_id: str, created: int
    ) -> Dict[str, Any]:
        delta = ChunkDelta(
            role="assistant" if chunk.index == 0 else None,
            content=chunk.content,
        )
        payload = ChatCompletionChunk(
            id=completion_id,
            created=created,
            model=self.model_alias,
            choices=[
                ChunkChoice(index=0, delta=delta, finish_reason=chunk.finish_reason)
            ],
        )
        data = payload.model_dump()
        if delta.role is None:
            data["choices"][0]["delta"].pop("role")
        return data
