from __future__ import annotations

import logging
import time
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, Optional

import httpx

from .config import ProxyConfig
from .errors import (
    ProxyError,
    err_configuration,
    err_rate_limited,
    err_upstream,
    err_upstream_unavailable,
)
from .logging_utils import JsonlLogger
from .metrics import MetricsAggregator, MetricSample
from .models import ChatCompletionRequest
from .streaming import sse_stream
from .translator import Translator, new_completion_id, word_count

logger = logging.getLogger(__name__)


def _error_detail(resp: httpx.Response) -> tuple[Optional[str], Any]:
    """Return (message, estimated_time) from an upstream error body."""
    try:
        body = resp.json()
    except ValueError:
        text = resp.text.strip()
        return (text[:200] or None), None
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, list):
            err = "; ".join(str(e) for e in err)
        elif isinstance(err, dict):
            err = err.get("message") or str(err)
        return (str(err) if err else None), body.get("estimated_time")
    return None, None


class ChatForwarder:
    def __init__(
        self,
        cfg: ProxyConfig,
        metrics: MetricsAggregator,
        request_log: JsonlLogger,
        translator: Translator | None = None,
    ):
        self.cfg = cfg
        self.metrics = metrics
        self.request_log = request_log
        self.translator = translator or Translator.from_config(cfg)
        self.client = httpx.AsyncClient(
            timeout=cfg.backend_timeout_ms / 1000, follow_redirects=True
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    def require_credentials(self) -> None:
        if not self.cfg.has_credentials:
            raise err_configuration()

    def _show_reasoning(self, req: ChatCompletionRequest) -> Optional[bool]:
        if req.show_reasoning is not None and self.cfg.allow_reasoning_override:
            return req.show_reasoning
        return None

    def upstream_payload(self, prompt: str, req: ChatCompletionRequest) -> Dict[str, Any]:
        return {
            "inputs": prompt,
            "parameters": {
                "max_new_tokens": req.max_tokens or self.cfg.max_new_tokens,
                "temperature": (
                    req.temperature
                    if req.temperature is not None
                    else self.cfg.temperature
                ),
                "top_p": req.top_p if req.top_p is not None else self.cfg.top_p,
                "do_sample": self.cfg.do_sample,
                "return_full_text": False,
            },
            "options": {"wait_for_model": True, "use_cache": False},
        }

    def _raise_for_upstream_status(self, resp: httpx.Response) -> None:
        if resp.is_success:
            return
        detail, estimated = _error_detail(resp)
        if resp.is_redirect:
            # Redirects are followed, so one reaching here was not resolvable.
            detail = f"Upstream redirected ({resp.status_code}) without a result"
        logger.error(
            "[upstream] %s returned %s: %s", self.cfg.model_id, resp.status_code, detail
        )
        loading = bool(detail and "loading" in detail.lower())
        if resp.status_code == 503 or loading:
            raise err_upstream_unavailable(self.cfg.model_id, estimated, detail)
        if resp.status_code == 429:
            raise err_rate_limited(detail)
        raise err_upstream(detail)

    async def call_upstream(self, prompt: str, req: ChatCompletionRequest) -> Any:
        headers = {
            "Authorization": f"Bearer {self.cfg.api_key}",
            "Content-Type": "application/json",
        }
        payload = self.upstream_payload(prompt, req)
        logger.info(
            "[upstream] POST %s (prompt_chars=%d, max_new_tokens=%s)",
            self.cfg.upstream_url,
            len(prompt),
            payload["parameters"]["max_new_tokens"],
        )
        try:
            resp = await self.client.post(
                self.cfg.upstream_url, json=payload, headers=headers
            )
        except httpx.TimeoutException as exc:
            logger.error("[upstream] timeout: %s", exc)
            raise err_upstream(
                f"Upstream timed out after {self.cfg.backend_timeout_ms / 1000:.0f}s"
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("[upstream] request failed: %s", exc)
            raise err_upstream(str(exc) or None) from exc
        self._raise_for_upstream_status(resp)
        try:
            return resp.json()
        except ValueError:
            return resp.text

    async def generate(self, prompt: str, req: ChatCompletionRequest) -> str:
        """Run the single upstream call and return the caller-facing text."""
        started_at = time.time()
        stream = bool(req.stream)
        try:
            raw = await self.call_upstream(prompt, req)
        except ProxyError as exc:
            self.record(prompt, started_at, stream, exc.status_code, error_type=exc.err_type)
            raise
        text = self.translator.final_text(raw, self._show_reasoning(req))
        self.record(prompt, started_at, stream, 200, completion=text)
        return text

    async def handle_chat(self, req: ChatCompletionRequest) -> Dict[str, Any]:
        self.require_credentials()
        prompt = self.translator.build_prompt(req.messages)
        text = await self.generate(prompt, req)
        return self.translator.assemble_response(text, prompt)

    def stream_chat(
        self,
        req: ChatCompletionRequest,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> AsyncGenerator[bytes, None]:
        self.require_credentials()
        prompt = self.translator.build_prompt(req.messages)
        completion_id = new_completion_id()
        created = int(time.time())

        def build(chunk):
            return self.translator.assemble_chunk(chunk, completion_id, created)

        return sse_stream(
            lambda: self.generate(prompt, req),
            build,
            delay_s=self.cfg.stream_chunk_delay_ms / 1000,
            is_disconnected=is_disconnected,
        )

    def record(
        self,
        prompt: str,
        started_at: float,
        stream: bool,
        status: int,
        completion: Optional[str] = None,
        error_type: Optional[str] = None,
    ):
        latency_ms = (time.time() - started_at) * 1000
        completion_tokens = word_count(completion) if completion is not None else 0
        self.metrics.add(
            MetricSample(
                ts=time.time(),
                model=self.cfg.model_alias,
                status=status,
                latency_ms=latency_ms,
                prompt_tokens=word_count(prompt),
                completion_tokens=completion_tokens,
                stream=stream,
            )
        )
        self.request_log.log_completion(
            model=self.cfg.model_alias,
            stream=stream,
            status=status,
            latency_ms=latency_ms,
            prompt=prompt,
            completion_tokens=completion_tokens if completion is not None else None,
            error_type=error_type,
        )
