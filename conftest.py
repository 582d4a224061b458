"""
Pytest configuration and shared fixtures for RoastTemp tests.

This module MUST be loaded before main.py to set up test environment variables.
"""

import base64
import json
import os
import shutil
import tempfile
from io import BytesIO

import httpx
import pytest
from PIL import Image

# Set test environment variables BEFORE main.py is imported
os.environ["TEST_MODE"] = "true"

test_data_dir = tempfile.mkdtemp(prefix="roasttemp_test_")
os.environ["DATA_DIR"] = test_data_dir
os.environ["LOG_DIR"] = os.path.join(test_data_dir, "logs")

# Tests must never reach a real upstream
os.environ.pop("ABACUS_API_KEY", None)

from config import AnalysisConfig
from services.analysis_service import AnalysisService


@pytest.fixture(scope="session", autouse=True)
def cleanup_test_data():
    """Clean up temporary test data directory after all tests complete."""
    yield
    if os.path.exists(test_data_dir):
        try:
            shutil.rmtree(test_data_dir)
        except (PermissionError, OSError):
            pass


def completion(content: str) -> dict:
    """Chat-completion response body wrapping ``content``."""
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


DARK_ROAST_JSON = {
    "roastLevel": "Dark",
    "temperature": "82",
    "temperatureRange": "80-85°C",
    "notes": "Use a shorter steep to keep bitterness in check.",
}


class FakeUpstream:
    """Scripted upstream: each call pops the next outcome.

    An outcome is an httpx.Response, an exception instance to raise, or a
    coroutine function (for slow responses). The last outcome repeats.
    """

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes) or [httpx.Response(200, json=completion(json.dumps(DARK_ROAST_JSON)))]
        self.requests = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests) - 1, len(self.outcomes) - 1)
        outcome = self.outcomes[index]
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return await outcome(request)
        return outcome

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.fixture
def analysis_config():
    return AnalysisConfig(
        api_key="test_api_key",
        url="https://upstream.test/v1/chat/completions",
        timeout_seconds=0.5,
    )


@pytest.fixture
def make_service(analysis_config):
    """Build an AnalysisService wired to a FakeUpstream."""
    def _make(upstream: FakeUpstream, config: AnalysisConfig = None) -> AnalysisService:
        return AnalysisService(config or analysis_config, http_client=upstream.client())
    return _make


@pytest.fixture
def sample_image_b64():
    """A small real JPEG, base64 encoded the way the camera hands it over."""
    img = Image.new('RGB', (64, 48), color=(92, 61, 30))
    img_bytes = BytesIO()
    img.save(img_bytes, format='JPEG')
    return base64.b64encode(img_bytes.getvalue()).decode('ascii')


@pytest.fixture(autouse=True)
def _reset_app_service():
    """Drop any AnalysisService a test installed on the app."""
    yield
    from main import app
    app.state.analysis_service = None
