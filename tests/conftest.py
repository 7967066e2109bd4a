"""Pytest configuration and shared fixtures for the iris segmentation workbench.

Fake detection engines are small Python scripts written to a temporary
directory and launched with the current interpreter, so the bridge runs its
real subprocess path without a JVM.
"""
import json
import logging
import sys
import textwrap
from pathlib import Path
from typing import Callable

import numpy as np
import pytest

from irisseg.config.settings import Config
from irisseg.core.entities import DetectionResult, ImagePayload
from irisseg.services.detection_bridge import DetectionBridge
from irisseg.services.engine_locator import EngineLocator


# Configure logging for tests
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler()]
)

# Disable some verbose loggers during testing
logging.getLogger('PIL').setLevel(logging.WARNING)
logging.getLogger('httpx').setLevel(logging.WARNING)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: tests that spawn real processes end to end")
    config.addinivalue_line("markers", "slow: tests that wait on real deadlines")


@pytest.fixture
def test_config():
    """Provide a default configuration object."""
    return Config()


@pytest.fixture
def sample_payload():
    """Provide a small data URI payload."""
    return ImagePayload.from_data_uri("data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAE=")


@pytest.fixture
def sample_result():
    """Provide the canonical detection result used across tests."""
    return DetectionResult(
        pupil_center_x=100, pupil_center_y=100, pupil_radius=20,
        iris_center_x=100, iris_center_y=100, iris_radius=60,
        eye_confidence=0.92,
    )


@pytest.fixture
def success_body():
    """Engine output matching ``sample_result``."""
    return {
        "pupilCenterX": 100, "pupilCenterY": 100, "pupilRadius": 20,
        "irisCenterX": 100, "irisCenterY": 100, "irisRadius": 60,
        "eyeConfidence": 0.92,
    }


@pytest.fixture
def not_an_eye_body():
    """Engine output for a rejected image."""
    return {"errorCode": "NOT_AN_EYE", "message": "no iris detected"}


@pytest.fixture
def sample_image():
    """Provide a sample BGR image for rendering tests."""
    image = np.zeros((200, 200, 3), dtype=np.uint8)
    image[:, :] = (40, 60, 80)
    return image


@pytest.fixture
def engine_script(tmp_path) -> Callable[[str], Path]:
    """Factory writing a fake engine script and returning its path."""
    counter = {"n": 0}

    def _write(body: str) -> Path:
        counter["n"] += 1
        script = tmp_path / f"engine_{counter['n']}.py"
        script.write_text(textwrap.dedent(body), encoding="utf-8")
        return script

    return _write


@pytest.fixture
def fake_bridge(engine_script) -> Callable[..., DetectionBridge]:
    """Factory building a bridge that runs a fake engine script."""

    def _build(body: str, timeout_seconds: float = 10.0, **kwargs) -> DetectionBridge:
        script = engine_script(body)
        return DetectionBridge(
            EngineLocator([script]),
            launcher=[sys.executable],
            timeout_seconds=timeout_seconds,
            **kwargs,
        )

    return _build


@pytest.fixture
def engine_printing() -> Callable[[dict], str]:
    """Factory for engine source that consumes stdin, prints a body and exits 0."""

    def _source(body: dict) -> str:
        return f"""
            import sys
            sys.stdin.buffer.read()
            sys.stdout.write({json.dumps(json.dumps(body))})
            sys.stdout.flush()
        """

    return _source
