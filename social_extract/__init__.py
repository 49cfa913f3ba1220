from __future__ import annotations

from .assembler import assemble_content
from .config import load_config, resolve_runtime_secrets
from .config_schema import AppConfig
from .errors import ConfigError, ExtractionError, UnsupportedPlatformError
from .models import ExtractionResult
from .orchestrator import ExtractionOrchestrator
from .platforms import detect_platform

__all__ = [
    "AppConfig",
    "ConfigError",
    "ExtractionError",
    "ExtractionOrchestrator",
    "ExtractionResult",
    "UnsupportedPlatformError",
    "assemble_content",
    "detect_platform",
    "load_config",
    "resolve_runtime_secrets",
]
