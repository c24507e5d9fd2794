

HI = {"messages": [{"role": "user", "content": "Hi"}]}


def test_metrics_disabled_by_default(client):
    r = client.get("/v1/metrics")
    assert r.status_code == 404
    assert r.json()["error"]["type"] == "disabled"


def test_metrics_after_requests(proxy_config, upstream, make_client):
    proxy_config.enable_metrics = True
    client = make_client()

    for _ in range(3):
        r = client.post("/v1/chat/completions", json=HI)
        assert r.status_code == 200
    r = client.post("/v1/chat/completions", json={**HI, "stream": True})
    assert r.status_code == 200

    upstream.reply(429, json={"error": "Rate limit reached"})
    assert client.post("/v1/chat/completions", json=HI).status_code == 429

    m = client.get("/v1/metrics")
    assert m.status_code == 200
    body = m.json()
    assert body["rolling"]["count"] == 5
    assert body["rolling"]["avg_latency_ms"] >= 0
    assert body["rolling"]["avg_completion_tokens"] == 2
    ok = body["requests_by_status"]["200"]
    assert ok == {"total_requests": 4, "streaming_requests": 1}
    assert body["requests_by_status"]["429"]["total_requests"] == 1
