"""Default configuration values."""

from typing import Any, Dict

DEFAULT_CONFIG: Dict[str, Any] = {
    # Deployment
    "environment": "development",  # development | production
    "runtime_mode": "auto",  # auto | embedded | detached

    # Detection engine (embedded routing)
    "engine_timeout_seconds": 30.0,
    "engine_launcher": ["java", "-jar"],
    "engine_base_dir": ".",
    "engine_resources_dir": "resources",
    # Searched in order; development paths are relative to engine_base_dir,
    # production paths to engine_resources_dir
    "engine_candidates_dev": [
        "java-backend/target/iris-engine-1.0.0-cli.jar",
        "java-backend/target/iris-engine-1.0.0.jar",
        "backend/target/iris-engine-1.0.0-cli.jar",
    ],
    "engine_candidates_prod": [
        "app/java-backend/iris-engine-1.0.0-cli.jar",
        "java-backend/iris-engine-1.0.0-cli.jar",
    ],
    "engine_max_output_bytes": 10 * 1024 * 1024,

    # Network backend (detached routing)
    "api_base_url": "http://localhost:8080",
    "api_timeout_seconds": 35.0,

    # Overlay editor
    "overlay_margin": 10,
    "low_confidence_threshold": 0.7,

    # Debug and Logging Settings
    "debug": False,
    "log_level": "INFO",
    "log_dir": "logs",
    "enable_file_logging": False,
    "structured_logging": False,
}
