from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import ProxyConfig
from .config_loader import CONFIG_PRECEDENCE, list_env_overrides, redacted
from .errors import ProxyError, err_internal, err_invalid_request, err_not_found
from .forwarder import ChatForwarder
from .logging_utils import JsonlLogger
from .metrics import MetricsAggregator
from .models import ChatCompletionRequest, HealthStatus, ModelCard, ModelList
from .translator import Translator

logger = logging.getLogger(__name__)


def _error_response(exc: ProxyError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.detail)


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc or 'body'}: {err.get('msg', 'invalid')}")
    return "Invalid request: " + "; ".join(parts)


def create_app(cfg: ProxyConfig | None = None) -> FastAPI:
    cfg = cfg or ProxyConfig.load()
    metrics = MetricsAggregator()
    request_log = JsonlLogger(cfg.log_path, cfg.max_log_bytes, cfg.log_prompts)
    forwarder = ChatForwarder(cfg, metrics, request_log, Translator.from_config(cfg))

    app = FastAPI(title="hfbridge Chat Proxy", version="0.1")
    app.state.cfg = cfg
    app.state.metrics = metrics
    app.state.forwarder = forwarder

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ProxyError)
    async def _proxy_error(request: Request, exc: ProxyError):
        return _error_response(exc)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code in (404, 405):
            logger.info("[app] unknown route %s %s", request.method, request.url.path)
            return _error_response(err_not_found(request.method, request.url.path))
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": {
                    "type": "invalid_request_error",
                    "code": exc.status_code,
                    "message": str(exc.detail),
                }
            },
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        return _error_response(err_invalid_request(_validation_message(exc)))

    @app.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception):
        logger.exception("[app] unhandled error on %s", request.url.path)
        return _error_response(err_internal())

    @app.on_event("startup")
    async def _startup():  # pragma: no cover
        if not cfg.has_credentials:
            logger.warning(
                "[app] HF_API_KEY not set; chat requests will fail with configuration_error"
            )
        logger.info(
            "[app] proxying %s as '%s' (reasoning_display=%s)",
            cfg.model_id,
            cfg.model_alias,
            cfg.show_reasoning,
        )

    @app.on_event("shutdown")
    async def _shutdown():  # pragma: no cover
        await forwarder.aclose()

    @app.get("/health")
    async def health():
        return HealthStatus(
            service=cfg.service_name,
            model=cfg.model_id,
            reasoning_display=cfg.show_reasoning,
        ).model_dump()

    @app.get("/v1/models")
    async def list_models_api():
        card = ModelCard(
            id=cfg.model_alias,
            created=int(metrics.start_ts),
            owned_by=cfg.owned_by,
        )
        return ModelList(data=[card]).model_dump()

    @app.post("/v1/chat/completions")
    @app.post("/chat/completions")
    async def chat_completions(body: ChatCompletionRequest, request: Request):
        logger.info(
            "[app] chat request path=%s messages=%d stream=%s",
            request.url.path,
            len(body.messages),
            bool(body.stream),
        )
        if body.stream:
            events = forwarder.stream_chat(body, request.is_disconnected)
            return StreamingResponse(
                events,
                media_type="text/event-stream",
                headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
            )
        return JSONResponse(content=await forwarder.handle_chat(body))

    @app.get("/v1/metrics")
    async def metrics_api():
        if not cfg.enable_metrics:
            return JSONResponse(
                status_code=404,
                content={
                    "error": {
                        "type": "disabled",
                        "code": 404,
                        "message": "Metrics disabled",
                    }
                },
            )
        return metrics.summary()

    @app.get("/v1/config")
    async def read_config():
        runtime: dict[str, Any] = redacted(cfg)
        return {
            "runtime": runtime,
            "config_file_path": runtime.pop("config_file_path", None),
            "env_overrides": sorted(list_env_overrides()),
            "precedence": CONFIG_PRECEDENCE,
        }

    return app


def main():  # pragma: no cover
    import uvicorn

    cfg = ProxyConfig.load()
    uvicorn.run(create_app(cfg), host=cfg.host, port=cfg.port, log_config=None)


if __name__ == "__main__":  # pragma: no cover
    main()
