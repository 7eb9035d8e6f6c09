"""
Load the static source catalogue (`trends/sources.yaml`) with `${ENV}` expansion.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_SOURCES_FILE = Path(__file__).resolve().parent / "sources.yaml"


def load_sources_config(path: Optional[Path] = None) -> Dict[str, Any]:
    config_path = Path(path or os.getenv("TRENDS_SOURCES_FILE") or DEFAULT_SOURCES_FILE)
    if not config_path.exists():
        logger.warning("Source catalogue not found at %s", config_path)
        return {}
    data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Source catalogue {config_path} must be a mapping at the top level")
    return _expand_env(data)


def _expand_env(data: Dict[str, Any]) -> Dict[str, Any]:
    def replace(value: Any) -> Any:
        if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
            env_key = value[2:-1]
            return os.getenv(env_key, "")
        if isinstance(value, dict):
            return {k: replace(v) for k, v in value.items()}
        if isinstance(value, list):
            return [replace(item) for item in value]
        return value

    return replace(data)  # type: ignore[return-value]
