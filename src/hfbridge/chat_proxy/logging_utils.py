from __future__ import annotations

import json
import logging
import os
import time
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class JsonlLogger:
    """Append one JSON line per chat completion, rotating by size."""

    def __init__(self, path: str, max_bytes: int = 25_000_000, log_prompts: bool = False):
        self.path = path
        self.max_bytes = max_bytes
        self.log_prompts = log_prompts
        log_dir = os.path.dirname(path)
        if log_dir:
            try:
                os.makedirs(log_dir, exist_ok=True)
            except OSError as exc:
                logger.warning("[request-log] cannot create %s: %s", log_dir, exc)

    def _rotate_if_needed(self):
        try:
            if os.path.exists(self.path) and os.path.getsize(self.path) > self.max_bytes:
                ts = time.strftime("%Y%m%d-%H%M%S")
                os.rename(self.path, f"{self.path}.{ts}")
        except OSError as exc:
            logger.warning("[request-log] rotation failed: %s", exc)

    def log(self, record: Dict[str, Any]):
        self._rotate_if_needed()
        try:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(record, ensure_ascii=False) + "\n")
        except OSError as exc:
            logger.warning("[request-log] write failed: %s", exc)

    def log_completion(
        self,
        *,
        model: str,
        stream: bool,
        status: int,
        latency_ms: float,
        prompt: str,
        completion_tokens: Optional[int] = None,
        error_type: Optional[str] = None,
    ):
        record: Dict[str, Any] = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime()),
            "model": model,
            "stream": stream,
            "status": status,
            "latency_ms": round(latency_ms, 1),
            "prompt_chars": len(prompt),
            "completion_tokens": completion_tokens,
        }
        if error_type:
            record["error_type"] = error_type
        if self.log_prompts:
            record["prompt"] = prompt
        self.log(record)
