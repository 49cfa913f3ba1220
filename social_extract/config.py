from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import ValidationError

from .config_schema import AppConfig
from .errors import ConfigError


@dataclass(frozen=True)
class RuntimeSecrets:
    openai_api_key: str
    apify_token: str | None = None

    @property
    def has_apify(self) -> bool:
        return bool(self.apify_token)


def _read_yaml_mapping(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except OSError as e:
        raise ConfigError(f"Could not read config file {path}: {e}") from e

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: the top level must be a mapping of sections")
    return data


def load_config(path: str | Path) -> AppConfig:
    """
    Read a YAML config file into a validated AppConfig.

    Every section is optional; omitted keys take their defaults. Problems are raised
    as ConfigError listing each offending key.
    """
    p = Path(path)
    data = _read_yaml_mapping(p)
    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(_describe_validation_error(e, p)) from e


def resolve_runtime_secrets(
    config: AppConfig, *, environ: Mapping[str, str] | None = None
) -> RuntimeSecrets:
    """
    Read credentials from the environment variables named in config.

    The OpenAI key is required (transcription and OCR). The Apify token is optional:
    when absent, the credentialed provider strategy is simply not scheduled.
    """
    env = os.environ if environ is None else environ

    openai_env = config.openai.api_key_env
    openai_key = (env.get(openai_env) or "").strip()
    if not openai_key:
        raise ConfigError(f"Missing required environment variables: {openai_env}")

    apify_token = (env.get(config.apify.token_env) or "").strip() or None

    return RuntimeSecrets(openai_api_key=openai_key, apify_token=apify_token)


def _describe_validation_error(err: ValidationError, path: Path) -> str:
    details = [
        f"- {'.'.join(str(part) for part in item.get('loc', ())) or '<root>'}: "
        f"{item.get('msg', 'invalid value')}"
        for item in err.errors()
    ]
    return "\n".join([f"Invalid configuration in {path}:", *details])
