"""Environment variable configuration.

Loads ``IRISSEG_*`` variables (optionally from a ``.env`` file), validates
them and exposes the result as an immutable ``EnvironmentConfig`` whose
fields override the JSON configuration file.
"""
import logging
import os
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union
from urllib.parse import urlparse

from ..core.exceptions import ConfigError

logger = logging.getLogger(__name__)

RUNTIME_MODES = ("auto", "embedded", "detached")
ENVIRONMENTS = ("development", "production")


@dataclass(frozen=True)
class EnvironmentConfig:
    """Immutable environment configuration object.

    ``None`` means "not set in the environment, keep the file/default value".
    """
    environment: Optional[str] = None
    runtime_mode: Optional[str] = None
    api_base_url: Optional[str] = None
    engine_timeout_seconds: Optional[float] = None
    engine_launcher: Optional[List[str]] = None
    engine_base_dir: Optional[str] = None
    engine_resources_dir: Optional[str] = None
    debug_logging: bool = False


class EnvironmentConfigError(ConfigError):
    """Environment variable has an invalid value."""
    pass


class EnvironmentValidator:
    """Validates environment variable values."""

    @classmethod
    def validate_url(cls, url: str) -> str:
        try:
            parsed = urlparse(url)
            parsed.port  # raises ValueError for a malformed port
        except ValueError as e:
            raise EnvironmentConfigError(f"Invalid backend URL: {url} ({e})") from e
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise EnvironmentConfigError(f"Invalid backend URL: {url}")
        return url.rstrip("/")

    @classmethod
    def validate_choice(cls, value: str, choices: tuple, name: str) -> str:
        value = value.strip().lower()
        if value not in choices:
            raise EnvironmentConfigError(f"{name} must be one of {', '.join(choices)}, got '{value}'")
        return value

    @classmethod
    def validate_numeric_range(cls, value: Union[str, int, float],
                               min_val: Optional[Union[int, float]] = None,
                               max_val: Optional[Union[int, float]] = None,
                               value_type: type = int) -> Union[int, float]:
        """Validate numeric value within specified range.

        Raises:
            EnvironmentConfigError: If validation fails
        """
        try:
            numeric_value = value_type(value)
        except (ValueError, TypeError):
            raise EnvironmentConfigError(f"Invalid {value_type.__name__} value: {value}")

        if min_val is not None and numeric_value < min_val:
            raise EnvironmentConfigError(f"Value {numeric_value} below minimum {min_val}")

        if max_val is not None and numeric_value > max_val:
            raise EnvironmentConfigError(f"Value {numeric_value} above maximum {max_val}")

        return numeric_value


def load_env_file(env_path: Optional[str] = None) -> Dict[str, str]:
    """Load KEY=VALUE pairs from a .env file.

    Args:
        env_path: Path to .env file. Defaults to .env in current directory.

    Returns:
        dict: Loaded environment variables
    """
    env_file_path = Path(env_path or ".env")
    env_vars: Dict[str, str] = {}

    if not env_file_path.exists():
        logger.debug(f"Environment file {env_file_path} not found, using system environment only")
        return env_vars

    with open(env_file_path, 'r', encoding='utf-8') as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()

            # Skip comments and empty lines
            if not line or line.startswith('#'):
                continue

            if '=' not in line:
                logger.warning(f"Invalid line format in {env_file_path}:{line_num}: {line}")
                continue

            key, value = line.split('=', 1)
            value = value.strip()
            if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
                value = value[1:-1]
            env_vars[key.strip()] = value

    logger.info(f"Loaded {len(env_vars)} variables from {env_file_path}")
    return env_vars


def get_env_var(key: str, default: Optional[str] = None,
                env_vars: Optional[Dict[str, str]] = None) -> Optional[str]:
    """Get an environment variable, preferring values loaded from the .env file."""
    if env_vars and key in env_vars:
        return env_vars[key]
    return os.getenv(key, default)


def load_environment_config(env_file_path: Optional[str] = None) -> EnvironmentConfig:
    """Load and validate environment configuration.

    Raises:
        EnvironmentConfigError: If a variable is set to an invalid value
    """
    env_vars = load_env_file(env_file_path)
    validator = EnvironmentValidator()

    environment = get_env_var("IRISSEG_ENV", env_vars=env_vars)
    if environment:
        environment = validator.validate_choice(environment, ENVIRONMENTS, "IRISSEG_ENV")

    runtime_mode = get_env_var("IRISSEG_RUNTIME_MODE", env_vars=env_vars)
    if runtime_mode:
        runtime_mode = validator.validate_choice(runtime_mode, RUNTIME_MODES, "IRISSEG_RUNTIME_MODE")

    api_base_url = get_env_var("IRISSEG_API_URL", env_vars=env_vars)
    if api_base_url:
        api_base_url = validator.validate_url(api_base_url)

    timeout = get_env_var("IRISSEG_ENGINE_TIMEOUT", env_vars=env_vars)
    engine_timeout = validator.validate_numeric_range(timeout, 1, 600, float) if timeout else None

    launcher = get_env_var("IRISSEG_ENGINE_LAUNCHER", env_vars=env_vars)
    engine_launcher = shlex.split(launcher) if launcher else None

    debug_str = get_env_var("IRISSEG_DEBUG", "false", env_vars=env_vars)

    config = EnvironmentConfig(
        environment=environment or None,
        runtime_mode=runtime_mode or None,
        api_base_url=api_base_url or None,
        engine_timeout_seconds=engine_timeout,
        engine_launcher=engine_launcher,
        engine_base_dir=get_env_var("IRISSEG_ENGINE_BASE_DIR", env_vars=env_vars) or None,
        engine_resources_dir=get_env_var("IRISSEG_RESOURCES_DIR", env_vars=env_vars) or None,
        debug_logging=debug_str.lower() in ('true', '1', 'yes', 'on'),
    )
    logger.debug("Environment configuration loaded")
    return config


__all__ = [
    "EnvironmentConfig",
    "EnvironmentConfigError",
    "EnvironmentValidator",
    "load_environment_config",
    "load_env_file",
    "get_env_var",
    "RUNTIME_MODES",
]
