"""
Test configuration and fixtures for colorextract.
"""
import os

# Memory-pressure cleanups would clear caches mid-test on a busy machine
os.environ.setdefault("COLOREXTRACT_MEMORY_MONITOR", "false")

import numpy as np
import pytest
from fastapi.testclient import TestClient

from colorextract.main import app
from colorextract.services.imaging import ImageSource, PixelBuffer
from colorextract.services.observability.metrics import get_metrics_collector
from colorextract.services.orchestrator import ExtractionOrchestrator
from synthetic_images import encode_png, solid_rgba


@pytest.fixture
def test_client():
    """Create test client for the FastAPI app (runs the lifespan)."""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def orchestrator():
    """Thread-pool orchestrator, closed after the test."""
    orch = ExtractionOrchestrator(executor="thread", max_workers=2, monitor_memory=False)
    yield orch
    orch.close()


@pytest.fixture
def sync_orchestrator():
    """Orchestrator without an executor."""
    orch = ExtractionOrchestrator(executor="sync", monitor_memory=False)
    yield orch
    orch.close()


@pytest.fixture
def four_color_source():
    """2x2 opaque red, green, blue, yellow."""
    pixels = np.array([
        [[255, 0, 0, 255], [0, 255, 0, 255]],
        [[0, 0, 255, 255], [255, 255, 0, 255]],
    ], dtype=np.uint8)
    return ImageSource.from_buffer(PixelBuffer.from_array(pixels), identity="four-colors")


@pytest.fixture
def striped_source():
    """64x64 image: left half navy, right half camel, top rows white."""
    pixels = solid_rgba(64, 64, rgb=(31, 78, 121))
    pixels[:, 32:, :3] = (211, 181, 143)
    pixels[:8, :, :3] = (255, 255, 255)
    return ImageSource.from_buffer(PixelBuffer.from_array(pixels), identity="stripes")


@pytest.fixture
def png_bytes():
    """Small PNG with two colors."""
    pixels = solid_rgba(40, 20, rgb=(200, 10, 10))
    pixels[:, 20:, :3] = (10, 10, 200)
    return encode_png(pixels)


@pytest.fixture(autouse=True)
def reset_metrics():
    """Reset metrics before each test."""
    get_metrics_collector().reset()
