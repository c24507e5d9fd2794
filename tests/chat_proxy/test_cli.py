import json
from pathlib import Path

from typer.testing import CliRunner

from hfbridge.chat_proxy import config_loader
from hfbridge.chat_proxy.cli import app as proxy_app

runner = CliRunner()


def test_cli_prompt_renders_request_file(tmp_path: Path):
    request = {
        "messages": [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "Hi"},
        ]
    }
    path = tmp_path / "request.json"
    path.write_text(json.dumps(request))

    res = runner.invoke(proxy_app, ["prompt", str(path)])
    assert res.exit_code == 0
    assert res.stdout.rstrip("\n") == "System: Be brief.\n\nUser: Hi\n\nAssistant:"


def test_cli_prompt_rejects_malformed_messages(tmp_path: Path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps([{"role": "user"}]))

    res = runner.invoke(proxy_app, ["prompt", str(path)])
    assert res.exit_code == 2


def test_cli_init_config(tmp_path: Path):
    target = tmp_path / "configs" / "hfbridge.toml"

    res = runner.invoke(proxy_app, ["init-config", str(target)])
    assert res.exit_code == 0
    assert target.exists()
    assert config_loader.load_file_config(target)["port"] == 3000

    again = runner.invoke(proxy_app, ["init-config", str(target)])
    assert again.exit_code == 1

    forced = runner.invoke(proxy_app, ["init-config", str(target), "--force"])
    assert forced.exit_code == 0


def test_cli_config_redacts_credential(tmp_path: Path, monkeypatch):
    monkeypatch.setenv(config_loader.CONFIG_FILE_ENV, str(tmp_path / "missing.toml"))
    monkeypatch.setenv("HF_API_KEY", "hf_secret")

    res = runner.invoke(proxy_app, ["config"])
    assert res.exit_code == 0
    assert "api_key" in res.stdout
    assert "hf_secret" not in res.stdout


def test_cli_set_config_persists_values(tmp_path: Path):
    target = tmp_path / "hfbridge.toml"

    res = runner.invoke(
        proxy_app,
        [
            "set-config",
            "port=8101",
            "show_reasoning=true",
            "cors_allow_origins=http://a,http://b",
            "--file",
            str(target),
        ],
    )
    assert res.exit_code == 0
    assert "port = 8101" in res.stdout
    assert "show_reasoning = true" in res.stdout

    stored = config_loader.load_file_config(target)
    assert stored["port"] == 8101
    assert stored["show_reasoning"] is True
    assert stored["cors_allow_origins"] == ["http://a", "http://b"]
    assert config_loader.load_proxy_config(target).port == 8101


def test_cli_set_config_rejects_unknown_and_secret_fields(tmp_path: Path):
    target = tmp_path / "hfbridge.toml"

    res = runner.invoke(proxy_app, ["set-config", "api_key=hf_secret", "--file", str(target)])
    assert res.exit_code == 1
    assert not target.exists()

    res = runner.invoke(proxy_app, ["set-config", "no_such_field=1", "--file", str(target)])
    assert res.exit_code == 1

    res = runner.invoke(proxy_app, ["set-config", "port", "--file", str(target)])
    assert res.exit_code == 2
