from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

DEFAULT_FALLBACK_TEXT = (
    "I apologize, but I was unable to generate a response. Please try again."
)


@dataclass
class ProxyConfig:
    host: str = "0.0.0.0"
    port: int = 3000
    service_name: str = "Hugging Face DeepSeek R1 Proxy"
    cors_allow_origins: List[str] = field(default_factory=lambda: ["*"])
    enable_metrics: bool = False
    # Upstream
    api_key: Optional[str] = None
    model_id: str = "deepseek-ai/DeepSeek-R1-0528"
    model_alias: str = "deepseek-r1"
    owned_by: str = "hf"
    upstream_base_url: str = "https://api-inference.huggingface.co/models"
    backend_timeout_ms: int = 120_000
    # Generation defaults (request values win when present)
    max_new_tokens: int = 1024
    temperature: float = 0.7
    top_p: float = 0.9
    do_sample: bool = True
    include_usage: bool = True
    fallback_text: str = DEFAULT_FALLBACK_TEXT
    # Reasoning markup emitted by R1-style models
    show_reasoning: bool = False
    allow_reasoning_override: bool = True
    reasoning_open_tag: str = "<think>"
    reasoning_close_tag: str = "</think>"
    # Synthesized streaming
    stream_chunk_delay_ms: int = 20
    # Request log
    log_path: str = "logs/hfbridge.jsonl"
    max_log_bytes: int = 25_000_000
    log_prompts: bool = False
    config_file_path: Optional[str] = None

    @property
    def upstream_url(self) -> str:
        return f"{self.upstream_base_url.rstrip('/')}/{self.model_id}"

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key and self.api_key.strip())

    @classmethod
    def load(cls) -> "ProxyConfig":
        from .config_loader import load_proxy_config

        return load_proxy_config()
