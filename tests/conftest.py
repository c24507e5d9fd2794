import os
import sys
from contextlib import ExitStack
from pathlib import Path

import httpx
import pytest

ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from hfbridge.chat_proxy import forwarder as forwarder_module  # noqa: E402
from hfbridge.chat_proxy.config import ProxyConfig  # noqa: E402


@pytest.fixture(autouse=True)
def clean_proxy_env(monkeypatch):
    """Keep developer shells (HF_API_KEY, PORT, HFBRIDGE_*) out of the tests."""
    for key in list(os.environ.keys()):
        if key.startswith("HFBRIDGE_") or key in {"HF_API_KEY", "PORT"}:
            monkeypatch.delenv(key, raising=False)
    yield


@pytest.fixture
def proxy_config(tmp_path):
    return ProxyConfig(
        api_key="hf_test_token",
        stream_chunk_delay_ms=0,
        log_path=str(tmp_path / "logs" / "requests.jsonl"),
    )


class FakeUpstream:
    """Stands in for the Hugging Face endpoint behind httpx.AsyncClient.post."""

    def __init__(self):
        self.calls = []
        self.response = httpx.Response(200, json=[{"generated_text": "Hello there"}])
        self.exc = None

    def reply(self, status_code=200, json=None, text=None, headers=None):
        if text is not None:
            self.response = httpx.Response(status_code, text=text, headers=headers)
        else:
            self.response = httpx.Response(status_code, json=json, headers=headers)

    def fail(self, exc):
        self.exc = exc


@pytest.fixture
def upstream(monkeypatch):
    fake = FakeUpstream()

    async def fake_post(self, url, json=None, headers=None, **kwargs):  # noqa: A002
        fake.calls.append({"url": url, "json": json, "headers": headers})
        if fake.exc is not None:
            raise fake.exc
        return fake.response

    monkeypatch.setattr(forwarder_module.httpx.AsyncClient, "post", fake_post)
    return fake


@pytest.fixture
def make_client(proxy_config, upstream):
    """Build started TestClients; each is shut down when the test ends."""
    from fastapi.testclient import TestClient

    from hfbridge.chat_proxy.app import create_app

    with ExitStack() as stack:

        def _make(cfg=None):
            return stack.enter_context(TestClient(create_app(cfg or proxy_config)))

        yield _make


@pytest.fixture
def client(make_client):
    return make_client()
