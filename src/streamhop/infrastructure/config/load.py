from __future__ import annotations

from copy import deepcopy
from pathlib import Path
from typing import Any, Mapping

import yaml
from dotenv import load_dotenv

from .defaults import DEFAULT_CONFIG
from .schema import AppConfig, EnvOverrides

_SECTION_KEYS: set[str] = {
    "http",
    "playwright",
    "throttle",
    "resolve",
    "proxy",
    "logging",
}

# Flat key -> (section, key); mirrors the validation aliases in schema.py.
_FLAT_MAP: dict[str, tuple[str, str]] = {
    "http_timeout_seconds": ("http", "timeout_seconds"),
    "http_follow_redirects": ("http", "follow_redirects"),
    "http_user_agent": ("http", "user_agent"),
    "playwright_enabled": ("playwright", "enabled"),
    "playwright_headless": ("playwright", "headless"),
    "playwright_timeout_ms": ("playwright", "timeout_ms"),
    "playwright_max_sessions": ("playwright", "max_sessions"),
    "playwright_settle_seconds": ("playwright", "settle_seconds"),
    "throttle_burst_limit": ("throttle", "burst_limit"),
    "throttle_window_seconds": ("throttle", "window_seconds"),
    "throttle_min_delay_ms": ("throttle", "min_delay_ms"),
    "throttle_max_delay_ms": ("throttle", "max_delay_ms"),
    "resolve_request_timeout_seconds": ("resolve", "request_timeout_seconds"),
    "resolve_max_transient_attempts": ("resolve", "max_transient_attempts"),
    "resolve_backoff_base": ("resolve", "backoff_base"),
    "resolve_max_backoff": ("resolve", "max_backoff"),
    "resolve_candidates": ("resolve", "candidates"),
    "resolve_default_server": ("resolve", "default_server"),
    "resolve_debug_errors": ("resolve", "debug_errors"),
    "proxy_public_base_url": ("proxy", "public_base_url"),
    "proxy_timeout_seconds": ("proxy", "timeout_seconds"),
    "proxy_chunk_size": ("proxy", "chunk_size"),
    "log_level": ("logging", "level"),
    "log_format": ("logging", "format"),
}


def _deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """
    Recursively merge `override` into `base` and return `base`.

    Rules:
    - dict + dict => deep merge
    - otherwise => override wins (lists are replaced, not concatenated)
    """
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, Mapping):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _normalize_layer(data: Mapping[str, Any]) -> dict[str, Any]:
    """
    Normalize a layer (defaults/YAML/ENV/CLI) into the canonical *sectioned* shape.

    Sectioned blocks pass through; flat keys (``resolve_candidates``,
    ``log_level``, ...) are moved into their section.
    """
    out: dict[str, Any] = {}

    for section in _SECTION_KEYS:
        if section in data and isinstance(data[section], Mapping):
            out[section] = dict(data[section])

    if "app_name" in data:
        out["app_name"] = data["app_name"]
    if "environment" in data:
        out["environment"] = data["environment"]

    for flat_key, (section, section_key) in _FLAT_MAP.items():
        if flat_key in data:
            out.setdefault(section, {})
            out[section][section_key] = data[flat_key]

    return out


def _read_yaml_config(config_path: Path) -> dict[str, Any]:
    raw = config_path.read_text(encoding="utf-8")
    parsed = yaml.safe_load(raw)
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ValueError(f"Config YAML must be a mapping, got: {type(parsed)!r}")
    return parsed


def load_config(
    *,
    config_path: Path | None = None,
    dotenv_path: Path | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> AppConfig:
    """
    Load configuration with strict precedence:
    defaults < YAML file < env vars < cli overrides

    This function MUST NOT create files or directories (no filesystem side-effects).
    """
    cli_overrides = cli_overrides or {}

    # Load .env first so it participates as "env vars" layer.
    if dotenv_path is not None:
        if not dotenv_path.exists():
            raise FileNotFoundError(dotenv_path)
        load_dotenv(dotenv_path, override=False)

    base = _normalize_layer(deepcopy(DEFAULT_CONFIG))

    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(config_path)
        _deep_merge(base, _normalize_layer(_read_yaml_config(config_path)))

    _deep_merge(base, _normalize_layer(EnvOverrides().to_update_dict()))
    _deep_merge(base, _normalize_layer(cli_overrides))

    # Validate final merged config (single source of truth).
    return AppConfig.model_validate(base)
