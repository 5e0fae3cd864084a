"""YAML configuration loader layered underneath environment settings.

Configuration is resolved in layers (later layers win):

  1. config/config.yaml  -- static defaults checked into the repo
  2. .env file           -- local developer overrides (not committed)
  3. Environment vars    -- set at deploy time

The YAML file is organised in sections for readability::

    llm:
      default_provider: anthropic
    jobs:
      concurrency: 2

Section and key are joined with an underscore to find the matching
:class:`Settings` field, except where ``_ALIASES`` says otherwise.  Values
only fill fields that the environment / .env left unset.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
import yaml

from docmap.config.settings import Settings
from docmap.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)

# (section, key) pairs whose Settings field is not simply "section_key".
_ALIASES: dict[tuple[str, str], str] = {
    ("llm", "priority"): "llm_provider_priority",
    ("llm", "default_provider"): "default_llm_provider",
    ("chunker", "max_chars"): "chunk_max_chars",
    ("chunker", "min_chars"): "chunk_min_chars",
    ("chunker", "overlap_chars"): "chunk_overlap_chars",
    ("chunker", "split_strategy"): "chunk_split_strategy",
    ("jobs", "concurrency"): "job_concurrency",
    ("jobs", "chunk_concurrency"): "chunk_concurrency",
    ("jobs", "max_attempts"): "job_max_attempts",
    ("jobs", "backoff_base_seconds"): "job_backoff_base_seconds",
    ("jobs", "backoff_max_seconds"): "job_backoff_max_seconds",
    ("jobs", "stuck_timeout_seconds"): "job_stuck_timeout_seconds",
    ("jobs", "stuck_check_interval_seconds"): "job_stuck_check_interval_seconds",
    ("jobs", "max_retained"): "job_max_retained",
    ("jobs", "min_success_ratio"): "min_success_ratio",
    ("storage", "backend"): "storage_backend",
    ("storage", "sqlite_db_path"): "sqlite_db_path",
    ("storage", "blob_dir"): "blob_dir",
    ("app", "env"): "app_env",
    ("logging", "level"): "log_level",
}


def read_yaml_config(path: str | Path) -> dict[str, Any]:
    """Read a YAML file into a dict; a missing file yields ``{}``."""
    config_path = Path(path)
    if not config_path.exists():
        return {}
    try:
        with open(config_path, encoding="utf-8") as f:
            # safe_load: no arbitrary object construction from YAML tags.
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Top level of {config_path} must be a mapping")
    return data


def flatten_config(data: dict[str, Any]) -> dict[str, Any]:
    """Map sectioned YAML keys onto flat :class:`Settings` field names.

    Unknown keys are logged and ignored.
    """
    flat: dict[str, Any] = {}
    for section, values in data.items():
        if not isinstance(values, dict):
            flat[str(section)] = values
            continue
        for key, value in values.items():
            field = _ALIASES.get((section, key), f"{section}_{key}")
            flat[field] = value

    known = set(Settings.model_fields)
    unknown = sorted(k for k in flat if k not in known)
    if unknown:
        logger.warning("config_keys_ignored", keys=unknown)
    return {k: v for k, v in flat.items() if k in known}


def load_settings(path: str | Path = "config/config.yaml") -> Settings:
    """Build :class:`Settings` from YAML defaults overlaid by the environment.

    Parameters
    ----------
    path:
        Location of the YAML file.  A missing file is not an error.

    Returns
    -------
    Settings
        Environment / .env values where set, YAML values for any field the
        environment left alone, class defaults otherwise.
    """
    env_settings = Settings()
    yaml_values = flatten_config(read_yaml_config(path))
    # Fields explicitly set by env/.env keep their value.
    fill = {k: v for k, v in yaml_values.items() if k not in env_settings.model_fields_set}
    if not fill:
        return env_settings
    merged = {**env_settings.model_dump(), **fill}
    try:
        return Settings.model_validate(merged)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid configuration in {path}: {exc}") from exc
