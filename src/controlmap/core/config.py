"""Layered configuration for controlmap.

Loads and merges configuration from:
1. Default settings (built-in)
2. Config file (controlmap.yaml or --config)
3. Environment (OLLAMA_BASE_URL, OLLAMA_MODEL)
4. CLI parameters (override)
"""

from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG_FILE = "controlmap.yaml"

ISM_CATALOG_URL = (
    "https://www.cyber.gov.au/ism/oscal/v2025.09.10/artifacts/ISM_catalog.json"
)
NIST_CATALOG_URL = (
    "https://raw.githubusercontent.com/usnistgov/oscal-content/main/"
    "nist.gov/SP800-53/rev5/json/NIST_SP-800-53_rev5_catalog.json"
)

DEFAULT_CONFIG: dict = {
    "catalogs": {
        "timeout_seconds": 30,
        "ism": {"url": ISM_CATALOG_URL, "path": ""},
        "nist": {"url": NIST_CATALOG_URL, "path": ""},
    },
    "ai": {
        "provider": "ollama",
        "temperature": 0.1,
        "top_p": 0.9,
        "max_tokens": 500,
        "context_window": 2048,
        "timeout_seconds": 180,
        "retry_attempts": 1,
        "retry_delay_seconds": 5,
        "ollama": {
            "endpoint": "http://localhost:11434",
            "model": "llama3.1",
        },
        "openai-compatible": {
            "endpoint": "http://localhost:8000",
            "model": "llama3.1",
            "api_key_env": "LOCAL_LLM_API_KEY",
        },
    },
    "processing": {
        "concurrency": 1,
        "item_delay_seconds": 0.05,
        "window_delay_seconds": 0.2,
        "sample_size": 15,
        "max_candidates": 3,
        "high_confidence_threshold": 70,
    },
    "output": {
        "format": "json",
        "include_reasoning": True,
        "confidence_threshold": None,
        "families": [],
    },
}


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dicts. Arrays are replaced, not merged."""
    result = {}
    for key in base:
        result[key] = base[key]
    for key, value in override.items():
        base_value = result.get(key)
        if isinstance(base_value, dict) and isinstance(value, dict):
            result[key] = deep_merge(base_value, value)
        else:
            result[key] = value
    return result


def load_config_file(config_path: Path) -> dict:
    """Load a YAML config file. Missing or unreadable files yield {}."""
    if not config_path.exists():
        return {}
    try:
        content = config_path.read_text(encoding="utf-8-sig")  # utf-8-sig strips BOM
        data = yaml.safe_load(content)
    except (OSError, yaml.YAMLError):
        return {}
    return data if isinstance(data, dict) else {}


def get_env_overrides(environ: Optional[dict] = None) -> dict:
    """Translate supported environment variables into a config fragment."""
    env = os.environ if environ is None else environ
    ollama: dict = {}
    if env.get("OLLAMA_BASE_URL"):
        ollama["endpoint"] = env["OLLAMA_BASE_URL"]
    if env.get("OLLAMA_MODEL"):
        ollama["model"] = env["OLLAMA_MODEL"]
    return {"ai": {"ollama": ollama}} if ollama else {}


def get_effective_config(
    config_path: Optional[Path] = None,
    cli_overrides: Optional[dict] = None,
    environ: Optional[dict] = None,
) -> dict:
    """Get the fully resolved configuration."""
    config = copy.deepcopy(DEFAULT_CONFIG)

    path = config_path or Path.cwd() / DEFAULT_CONFIG_FILE
    file_config = load_config_file(Path(path))
    if file_config:
        config = deep_merge(config, file_config)

    env_config = get_env_overrides(environ)
    if env_config:
        config = deep_merge(config, env_config)

    if cli_overrides:
        config = deep_merge(config, cli_overrides)

    config["_config_path"] = str(path)
    return config
