from __future__ import annotations

import os
import tempfile
from dataclasses import asdict
from pathlib import Path
from typing import Any, Callable, Union, get_args, get_origin, get_type_hints

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[no-redef]

from .config import ProxyConfig

CONFIG_FILE_ENV = "HFBRIDGE_CONFIG_FILE"
ENV_PREFIX = "HFBRIDGE_"
DEFAULT_CONFIG_PATH = Path("configs/hfbridge.toml")

# Fields never written to (or read from) the config file.
_SECRET_FIELDS = {"api_key"}

# Conventional names honoured ahead of the prefixed form.
_ENV_ALIASES: dict[str, tuple[str, ...]] = {
    "api_key": ("HF_API_KEY", "HFBRIDGE_API_KEY"),
    "port": ("PORT", "HFBRIDGE_PORT"),
}

_SECTION_MAP: dict[str, list[str]] = {
    "server": [
        "host",
        "port",
        "service_name",
        "cors_allow_origins",
        "enable_metrics",
    ],
    "upstream": [
        "model_id",
        "model_alias",
        "owned_by",
        "upstream_base_url",
        "backend_timeout_ms",
    ],
    "generation": [
        "max_new_tokens",
        "temperature",
        "top_p",
        "do_sample",
        "include_usage",
        "fallback_text",
    ],
    "reasoning": [
        "show_reasoning",
        "allow_reasoning_override",
        "reasoning_open_tag",
        "reasoning_close_tag",
    ],
    "streaming": ["stream_chunk_delay_ms"],
    "logging": ["log_path", "max_log_bytes", "log_prompts"],
}

CONFIG_PRECEDENCE = [
    "Environment variables (HF_API_KEY, PORT, HFBRIDGE_*)",
    "Config file (configs/hfbridge.toml)",
    "Built-in defaults",
]


def _field_types() -> dict[str, Any]:
    return get_type_hints(ProxyConfig)


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _coerce_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return int(str(value).strip())


def _coerce_float(value: Any) -> float:
    if isinstance(value, (int, float)):
        return float(value)
    return float(str(value).strip())


def _coerce_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _coerce_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return [str(item) for item in value]


def _coerce_optional(value: Any, caster: Callable[[Any], Any]) -> Any:
    if value in ("", None):
        return None
    return caster(value)


_CASTERS: dict[Any, Callable[[Any], Any]] = {
    bool: _coerce_bool,
    int: _coerce_int,
    float: _coerce_float,
    str: _coerce_str,
}


def _coerce_value(field_type: Any, value: Any) -> Any:
    origin = get_origin(field_type)
    if origin is None:
        caster = _CASTERS.get(field_type)
        return caster(value) if caster else value

    if origin is list:
        return _coerce_list(value)

    if origin is Union:
        args = [arg for arg in get_args(field_type) if arg is not type(None)]
        if len(args) == 1:
            caster = _CASTERS.get(args[0])
            if caster:
                return _coerce_optional(value, caster)
    return value


def config_file_path() -> Path:
    return Path(os.environ.get(CONFIG_FILE_ENV, DEFAULT_CONFIG_PATH)).expanduser()


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("rb") as fh:
        data = tomllib.load(fh)

    out: dict[str, Any] = {}
    for section, keys in _SECTION_MAP.items():
        section_values = data.get(section, {})
        if not isinstance(section_values, dict):
            continue
        for key in keys:
            if key in section_values:
                out[key] = section_values[key]
    return out


def _env_name(field_name: str) -> str:
    return f"{ENV_PREFIX}{field_name.upper()}"


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    env = os.environ
    field_types = _field_types()
    for key in field_types:
        if key == "config_file_path":
            continue
        names = _ENV_ALIASES.get(key, (_env_name(key),))
        for name in names:
            raw = env.get(name)
            if raw is None:
                continue
            try:
                config[key] = _coerce_value(field_types[key], raw)
            except ValueError:
                # Unparseable override keeps the current value.
                continue
            break
    return config


def _default_config_dict() -> dict[str, Any]:
    data = asdict(ProxyConfig())
    data.pop("config_file_path", None)
    return data


def _normalize(config: dict[str, Any]) -> dict[str, Any]:
    field_types = _field_types()
    normalized = {}
    for key, default_value in _default_config_dict().items():
        value = config.get(key, default_value)
        try:
            normalized[key] = _coerce_value(field_types.get(key), value)
        except (TypeError, ValueError):
            normalized[key] = default_value
    return normalized


def load_file_config(path: Path | None = None) -> dict[str, Any]:
    base = _default_config_dict()
    base.update(_read_config_file(path or config_file_path()))
    normalized = _normalize(base)
    for secret in _SECRET_FIELDS:
        normalized.pop(secret, None)
    return normalized


def load_proxy_config(path: Path | None = None) -> ProxyConfig:
    candidate = path or config_file_path()
    normalized = _normalize(_read_config_file(candidate))
    normalized = _apply_env_overrides(normalized)
    cfg = ProxyConfig(**normalized)
    cfg.config_file_path = str(candidate)
    return cfg


def _format_value(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        inner = ", ".join(_format_value(item) for item in value)
        return f"[{inner}]"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if value is None:
        return '""'
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _ordered_sections(config: ProxyConfig) -> dict[str, dict[str, Any]]:
    config_dict = asdict(config)
    sections: dict[str, dict[str, Any]] = {}
    for section, keys in _SECTION_MAP.items():
        section_values = {key: config_dict[key] for key in keys if key in config_dict}
        if section_values:
            sections[section] = section_values
    return sections


def write_config(config: ProxyConfig, path: Path | None = None) -> Path:
    path = Path(path or config_file_path()).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    lines: list[str] = [
        "# hfbridge chat proxy configuration.",
        "# The Hugging Face credential is read from HF_API_KEY and never stored here.",
    ]
    for section, values in _ordered_sections(config).items():
        lines.append("")
        lines.append(f"[{section}]")
        for key, value in values.items():
            lines.append(f"{key} = {_format_value(value)}")

    tmp_fd, tmp_path = tempfile.mkstemp(
        prefix="hfbridge_config_", suffix=".toml", dir=str(path.parent)
    )
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
            handle.write("\n".join(lines) + "\n")
        Path(tmp_path).replace(path)
    finally:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
    return path


def update_config_file(updates: dict[str, Any], path: Path | None = None) -> ProxyConfig:
    path = path or config_file_path()
    base = _default_config_dict()
    base.update(_read_config_file(path))

    unknown = [key for key in updates if key not in base or key in _SECRET_FIELDS]
    if unknown:
        raise KeyError(f"Unknown configuration field(s): {', '.join(sorted(unknown))}")

    base.update(updates)
    file_config = ProxyConfig(**_normalize(base))
    write_config(file_config, path)
    return load_proxy_config(path)


def list_env_overrides() -> dict[str, str]:
    """Return active overrides, with the credential value masked."""
    secret_names = {name for f in _SECRET_FIELDS for name in _ENV_ALIASES.get(f, ())}
    known = {"PORT", "HF_API_KEY"}
    out = {}
    for key, value in os.environ.items():
        if not (key.startswith(ENV_PREFIX) or key in known):
            continue
        out[key] = "***" if key in secret_names else value
    return out


def redacted(config: ProxyConfig) -> dict[str, Any]:
    data = asdict(config)
    for secret in _SECRET_FIELDS:
        data[secret] = "***" if data.get(secret) else None
    return data


__all__ = [
    "CONFIG_FILE_ENV",
    "CONFIG_PRECEDENCE",
    "ENV_PREFIX",
    "list_env_overrides",
    "load_file_config",
    "load_proxy_config",
    "redacted",
    "update_config_file",
    "write_config",
]
