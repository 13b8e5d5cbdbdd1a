"""Configuration loader with YAML and environment variable support.

This module provides a configuration loader that reads from ~/.config/saynote/config.yaml
and allows environment variable overrides using the SAYNOTE_* prefix.

Environment variables:
- SAYNOTE_LLM_ENDPOINT: Override LLM API endpoint
- SAYNOTE_LLM_API_KEY: Override LLM API key
- SAYNOTE_LLM_MODEL: Override LLM model name
- SAYNOTE_STORAGE_DATA_DIR: Override the data directory
- SAYNOTE_EDITOR_AUTOSAVE_DELAY: Override the autosave debounce delay (seconds)
- SAYNOTE_HISTORY_MAX_ENTRIES: Override the undo/redo stack bound
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from saynote.models.config import Config, check_permissions

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "saynote" / "config.yaml"


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Unlike the LLM settings, nothing in saynote's configuration is mandatory:
    a missing file and no environment variables yields the defaults, with the
    NLU provider disabled.

    Args:
        config_path: Path to config file. If None, uses ~/.config/saynote/config.yaml

    Returns:
        Validated Config object

    Raises:
        PermissionError: If the file holds an API key and is group/world readable
        ValueError: If config file is invalid
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if config_path.exists():
        with config_path.open() as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {config_path} must contain a mapping")
        check_permissions(config_path, data)
    else:
        data = {}

    data = _apply_env_overrides(data)

    # An llm section with nothing usable in it means "no LLM"
    llm = data.get("llm")
    if not llm or not llm.get("endpoint") or not llm.get("model"):
        data.pop("llm", None)

    return Config(**data)


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides to configuration data.

    Environment variables use the format: SAYNOTE_SECTION_KEY
    For example: SAYNOTE_LLM_ENDPOINT sets data['llm']['endpoint']

    Args:
        data: Base configuration dictionary from YAML

    Returns:
        Configuration dictionary with environment overrides applied
    """
    for section in ("llm", "editor", "history", "storage"):
        if not isinstance(data.get(section), dict):
            data[section] = {}

    # LLM configuration overrides
    if env_endpoint := os.getenv("SAYNOTE_LLM_ENDPOINT"):
        data["llm"]["endpoint"] = env_endpoint

    if env_api_key := os.getenv("SAYNOTE_LLM_API_KEY"):
        data["llm"]["api_key"] = env_api_key

    if env_model := os.getenv("SAYNOTE_LLM_MODEL"):
        data["llm"]["model"] = env_model

    # Storage overrides
    if env_data_dir := os.getenv("SAYNOTE_STORAGE_DATA_DIR"):
        data["storage"]["data_dir"] = env_data_dir

    # Editor overrides
    if env_delay := os.getenv("SAYNOTE_EDITOR_AUTOSAVE_DELAY"):
        try:
            data["editor"]["autosave_delay_seconds"] = float(env_delay)
        except ValueError:
            pass  # Invalid value, ignore

    # History overrides
    if env_max_entries := os.getenv("SAYNOTE_HISTORY_MAX_ENTRIES"):
        try:
            data["history"]["max_entries"] = int(env_max_entries)
        except ValueError:
            pass  # Invalid value, ignore

    return data
