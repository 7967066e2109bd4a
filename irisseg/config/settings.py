"""Configuration dataclass and loading utilities.

Provides a strongly-typed configuration object that is injected into
services (through ``AppContext``) instead of relying on a global
module-level dictionary.

Precedence, lowest to highest: ``DEFAULT_CONFIG``, ``config.json``,
``IRISSEG_*`` environment variables.
"""
from __future__ import annotations
from dataclasses import dataclass, field, asdict, fields
from typing import Any, Dict, List, Optional
import json, os, logging, shlex
from .defaults import DEFAULT_CONFIG
from .env_config import (
    load_environment_config, EnvironmentConfig, EnvironmentConfigError, EnvironmentValidator,
    RUNTIME_MODES
)

logger = logging.getLogger(__name__)


def _default(key: str):
    return field(default_factory=lambda: list(DEFAULT_CONFIG[key]))


@dataclass(slots=True)
class Config:
    # Deployment
    environment: str = DEFAULT_CONFIG["environment"]
    runtime_mode: str = DEFAULT_CONFIG["runtime_mode"]

    # Detection engine
    engine_timeout_seconds: float = DEFAULT_CONFIG["engine_timeout_seconds"]
    engine_launcher: List[str] = _default("engine_launcher")
    engine_base_dir: str = DEFAULT_CONFIG["engine_base_dir"]
    engine_resources_dir: str = DEFAULT_CONFIG["engine_resources_dir"]
    engine_candidates_dev: List[str] = _default("engine_candidates_dev")
    engine_candidates_prod: List[str] = _default("engine_candidates_prod")
    engine_max_output_bytes: int = DEFAULT_CONFIG["engine_max_output_bytes"]

    # Network backend
    api_base_url: str = DEFAULT_CONFIG["api_base_url"]
    api_timeout_seconds: float = DEFAULT_CONFIG["api_timeout_seconds"]

    # Overlay editor
    overlay_margin: int = DEFAULT_CONFIG["overlay_margin"]
    low_confidence_threshold: float = DEFAULT_CONFIG["low_confidence_threshold"]

    # Debug and logging
    debug: bool = DEFAULT_CONFIG["debug"]
    log_level: str = DEFAULT_CONFIG["log_level"]
    log_dir: str = DEFAULT_CONFIG["log_dir"]
    enable_file_logging: bool = DEFAULT_CONFIG["enable_file_logging"]
    structured_logging: bool = DEFAULT_CONFIG["structured_logging"]

    # Arbitrary extra values retained for forward compatibility
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        extra = d.pop("extra", {})
        d.update(extra)
        return d


_FIELD_NAMES = tuple(f.name for f in fields(Config) if f.name != "extra")


def load_config(path: str = "config.json", env_file: Optional[str] = None) -> Config:
    """Load configuration from a JSON file plus environment overrides.

    A missing, unreadable or malformed file is not fatal: the problem is
    logged and the defaults are used, so the application still starts.

    Args:
        path: Path to config.json file
        env_file: Path to .env file (optional)

    Returns:
        Config: Loaded and sanitized configuration
    """
    data: Dict[str, Any] = {}
    env_config: Optional[EnvironmentConfig] = None

    try:
        env_config = load_environment_config(env_file)
    except EnvironmentConfigError as e:
        logger.warning(f"Environment configuration ignored: {e}")

    if os.path.isfile(path):
        try:
            with open(path, "r", encoding="utf-8") as f:
                loaded_data = json.load(f)
            if isinstance(loaded_data, dict):
                data = loaded_data
                logger.info(f"Loaded configuration from '{path}'")
            else:
                logger.error(f"Configuration file '{path}' does not contain a JSON object, using defaults")
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse JSON configuration file '{path}': {e}. Using defaults.")
        except OSError as e:
            logger.error(f"Could not read configuration file '{path}': {e}. Using defaults.")
    else:
        logger.debug(f"Configuration file '{path}' does not exist. Using defaults.")

    merged = {**DEFAULT_CONFIG, **data}
    if env_config:
        merged = _apply_environment_overrides(merged, env_config)
    merged = _sanitize_config_values(merged)

    extra = {k: v for k, v in merged.items() if k not in _FIELD_NAMES}
    if extra:
        logger.info(f"Found extra configuration keys: {list(extra.keys())}")

    return Config(**{k: merged[k] for k in _FIELD_NAMES}, extra=extra)


def _apply_environment_overrides(config_dict: Dict[str, Any], env_config: EnvironmentConfig) -> Dict[str, Any]:
    """Apply environment variable overrides to configuration.

    Args:
        config_dict: Base configuration dictionary
        env_config: Environment configuration object

    Returns:
        dict: Updated configuration with environment overrides
    """
    overrides = {
        "environment": env_config.environment,
        "runtime_mode": env_config.runtime_mode,
        "api_base_url": env_config.api_base_url,
        "engine_timeout_seconds": env_config.engine_timeout_seconds,
        "engine_launcher": env_config.engine_launcher,
        "engine_base_dir": env_config.engine_base_dir,
        "engine_resources_dir": env_config.engine_resources_dir,
    }
    updated = dict(config_dict)
    updated.update({k: v for k, v in overrides.items() if v is not None})

    if env_config.debug_logging:
        updated["debug"] = True
        updated["log_level"] = "DEBUG"

    return updated


def _sanitize_config_values(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Replace out-of-range or mistyped values with their defaults."""
    sanitized = config_dict.copy()

    numeric_validations = {
        'engine_timeout_seconds': (1, 600),
        'api_timeout_seconds': (1, 600),
        'overlay_margin': (1, 100),
        'low_confidence_threshold': (0.0, 1.0),
        'engine_max_output_bytes': (1024, 1024 ** 3),
    }

    for key, (min_val, max_val) in numeric_validations.items():
        value = sanitized.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            logger.warning(f"Value {key}={value!r} is not numeric, using default")
            sanitized[key] = DEFAULT_CONFIG[key]
        elif not (min_val <= value <= max_val):
            logger.warning(f"Value {key}={value} out of range [{min_val}, {max_val}], using default")
            sanitized[key] = DEFAULT_CONFIG[key]

    if sanitized.get('runtime_mode') not in RUNTIME_MODES:
        logger.warning(f"Unknown runtime_mode {sanitized.get('runtime_mode')!r}, using default")
        sanitized['runtime_mode'] = DEFAULT_CONFIG['runtime_mode']

    if sanitized.get('environment') not in ("development", "production"):
        logger.warning(f"Unknown environment {sanitized.get('environment')!r}, using default")
        sanitized['environment'] = DEFAULT_CONFIG['environment']

    launcher = sanitized.get('engine_launcher')
    if isinstance(launcher, str):
        sanitized['engine_launcher'] = shlex.split(launcher)
    elif not isinstance(launcher, list) or not all(isinstance(part, str) for part in launcher):
        logger.warning("engine_launcher must be a list of strings, using default")
        sanitized['engine_launcher'] = list(DEFAULT_CONFIG['engine_launcher'])

    for key in ('engine_candidates_dev', 'engine_candidates_prod'):
        candidates = sanitized.get(key)
        if not isinstance(candidates, list) or not all(isinstance(c, str) for c in candidates):
            logger.warning(f"{key} must be a list of paths, using default")
            sanitized[key] = list(DEFAULT_CONFIG[key])

    try:
        sanitized['api_base_url'] = EnvironmentValidator.validate_url(str(sanitized.get('api_base_url')))
    except EnvironmentConfigError as e:
        logger.warning(f"{e}, using default")
        sanitized['api_base_url'] = DEFAULT_CONFIG['api_base_url']

    return sanitized
