"""
callguard/config.py
JSON config with environment overrides. Persists to callguard_config.json.
Also builds the configured classifier and store.
"""

from __future__ import annotations

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from callguard.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "callguard_config.json"

BACKENDS = ("ollama", "openai")
STORAGES = ("memory", "sqlite")

DEFAULT_CONFIG = {
    "backend": "ollama",
    "model": None,           # None → the backend's own default
    "ollama_host": "http://localhost:11434",
    "openai_base_url": None,
    "timeout_sec": 60,
    "temperature": 0.1,
    # Product-owner policy knobs. The browser hook used 10; an earlier
    # revision used 5.
    "min_transcription_length": 10,
    "block_threshold": 60,
    "warn_threshold": 30,
    "storage": "memory",
    "db_path": "callguard.db",
    "api_prefix": "/api",
    "host": "127.0.0.1",
    "port": 8765,
    "allowed_origins": [
        "http://localhost",
        "http://localhost:5173",
        "http://127.0.0.1",
        "http://127.0.0.1:5173",
    ],
}

# env var → config key
ENV_OVERRIDES = {
    "CALLGUARD_BACKEND": "backend",
    "CALLGUARD_MODEL": "model",
    "CALLGUARD_STORAGE": "storage",
    "CALLGUARD_DB_PATH": "db_path",
    "OLLAMA_HOST": "ollama_host",
}


def _config_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path.cwd()
    return root / CONFIG_FILENAME


def load_config(project_root: Optional[Path] = None) -> Dict[str, Any]:
    """Load config from callguard_config.json. Returns defaults if missing."""
    path = _config_path(project_root)
    config = copy.deepcopy(DEFAULT_CONFIG)
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            config.update(data)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Config load failed: {e}")
    for env_var, key in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            config[key] = value
    return config


def save_config(config: Dict[str, Any], project_root: Optional[Path] = None) -> Path:
    """Persist config to callguard_config.json."""
    path = _config_path(project_root)
    path.write_text(json.dumps(config, indent=2), encoding="utf-8")
    return path


def validate_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Raise ConfigError on values the service cannot run with."""
    if config.get("backend") not in BACKENDS:
        raise ConfigError(f"backend must be one of {BACKENDS}, got {config.get('backend')!r}")
    if config.get("storage") not in STORAGES:
        raise ConfigError(f"storage must be one of {STORAGES}, got {config.get('storage')!r}")

    try:
        min_len = int(config.get("min_transcription_length", 0))
        block = int(config.get("block_threshold", 0))
        warn = int(config.get("warn_threshold", 0))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"numeric setting is not an integer: {e}") from e

    if min_len < 0:
        raise ConfigError("min_transcription_length must be >= 0")
    for name, value in (("block_threshold", block), ("warn_threshold", warn)):
        if not 0 <= value <= 100:
            raise ConfigError(f"{name} must be within 0-100, got {value}")
    if warn > block:
        raise ConfigError("warn_threshold must not exceed block_threshold")
    return config


def build_classifier(config: Dict[str, Any]):
    """Instantiate the configured classifier adapter."""
    backend = config.get("backend", "ollama")
    timeout = int(config.get("timeout_sec", 60))
    temperature = float(config.get("temperature", 0.1))
    if backend == "ollama":
        from callguard.llm.ollama_adapter import OllamaAdapter
        return OllamaAdapter(
            model=config.get("model") or "llama3.1:8b",
            host=config.get("ollama_host", DEFAULT_CONFIG["ollama_host"]),
            timeout_sec=timeout,
            temperature=temperature,
        )
    if backend == "openai":
        from callguard.llm.openai_adapter import OpenAIAdapter
        return OpenAIAdapter(
            model=config.get("model") or "gpt-4o-mini",
            base_url=config.get("openai_base_url"),
            timeout_sec=timeout,
            temperature=temperature,
        )
    raise ConfigError(f"Unknown backend: {backend!r}")


def build_store(config: Dict[str, Any], project_root: Optional[Path] = None):
    """Instantiate the configured record store."""
    storage = config.get("storage", "memory")
    if storage == "memory":
        from callguard.storage.memory_store import MemoryStore
        return MemoryStore()
    if storage == "sqlite":
        from callguard.storage.sqlite_store import SqliteStore
        db_path = Path(config.get("db_path") or DEFAULT_CONFIG["db_path"])
        if not db_path.is_absolute() and project_root is not None:
            db_path = project_root / db_path
        logger.info(f"Using SQLite store at {db_path}")
        return SqliteStore(db_path=db_path)
    raise ConfigError(f"Unknown storage: {storage!r}")
