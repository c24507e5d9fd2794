from __future__ import annotations

from typing import Any

from fastapi import HTTPException


class ProxyError(HTTPException):
    def __init__(
        self, status_code: int, err_type: str, message: str, hint: str | None = None
    ):
        payload = {"error": {"type": err_type, "code": status_code, "message": message}}
        if hint:
            payload["error"]["hint"] = hint
        super().__init__(status_code=status_code, detail=payload)

    @property
    def err_type(self) -> str:
        return self.detail["error"]["type"]


def err_configuration(missing: str = "HF_API_KEY") -> ProxyError:
    return ProxyError(
        500,
        "configuration_error",
        f"{missing} not set",
        "Export the Hugging Face access token before starting the proxy",
    )


def err_upstream_unavailable(
    model: str, estimated_time: Any = None, detail: str | None = None
) -> ProxyError:
    hint = "The model is loading on the upstream service; retry shortly"
    if isinstance(estimated_time, (int, float)):
        hint = f"{hint} (estimated wait {estimated_time:.0f}s)"
    message = detail or f"Model '{model}' is currently unavailable"
    return ProxyError(503, "upstream_unavailable", message, hint)


def err_rate_limited(detail: str | None = None) -> ProxyError:
    return ProxyError(
        429,
        "rate_limited",
        detail or "Upstream rate limit reached",
        "Slow down requests or upgrade the upstream plan",
    )


def err_upstream(detail: str | None = None) -> ProxyError:
    return ProxyError(500, "upstream_error", detail or "Upstream request failed")


def err_not_found(method: str, path: str) -> ProxyError:
    return ProxyError(404, "invalid_request_error", f"Path {method} {path} not found")


def err_invalid_request(message: str) -> ProxyError:
    return ProxyError(400, "invalid_request_error", message)


def err_internal(message: str = "Internal proxy error") -> ProxyError:
    return ProxyError(500, "internal_error", message)
