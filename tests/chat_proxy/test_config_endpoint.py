def test_read_proxy_config_endpoint(client, monkeypatch):
    monkeypatch.setenv("HF_API_KEY", "hf_secret")

    response = client.get("/v1/config")
    assert response.status_code == 200

    payload = response.json()
    assert payload["runtime"]["api_key"] == "***"
    assert payload["runtime"]["model_alias"] == "deepseek-r1"
    assert "config_file_path" in payload
    assert "config_file_path" not in payload["runtime"]
    assert payload["env_overrides"] == ["HF_API_KEY"]
    assert payload["precedence"][-1] == "Built-in defaults"
    assert "hf_secret" not in response.text
    assert "hf_test_token" not in response.text
