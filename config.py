"""Configuration management for the RoastTemp server.

This module centralizes all configuration constants and environment variables
for easier management and testing.

Usage:
    from config import config, AnalysisConfig, MAX_IMAGE_KB

    # Access via config object
    api_key = config.ABACUS_API_KEY

    # Or build the explicit value handed to the analysis service
    analysis_config = AnalysisConfig.from_env()

Attributes:
    TEST_MODE: Boolean flag for test environment (affects DATA_DIR)
    DATA_DIR: Path to data directory (temp dir in test mode, /app/data otherwise)
    LOG_DIR: Path to log directory
    ABACUS_API_KEY: Bearer token for the upstream chat-completion endpoint
    UPSTREAM_URL: Chat-completion endpoint URL
    UPSTREAM_MODEL: Model name sent with every request
    UPSTREAM_PROVIDER: Provider name accepted by /api/health/{provider}
    UPSTREAM_TIMEOUT_SECONDS: Per-attempt timeout (default: 15)
    UPSTREAM_MAX_RETRIES: Additional attempts on transient failure (default: 2)
    HEALTH_TIMEOUT_SECONDS: Timeout of the single liveness attempt (default: 5)
    MAX_IMAGE_KB: Ceiling on the estimated decoded image size (default: 4500)
    HISTORY_LIMIT: Number of history entries kept by the client (default: 50)

Note:
    DATA_DIR is automatically set to a temporary directory when TEST_MODE="true",
    enabling isolated testing without affecting production data.
"""

import os
import tempfile
from dataclasses import dataclass, replace
from pathlib import Path


class Config:
    """Central configuration for the RoastTemp server."""

    # Test Mode
    TEST_MODE = os.environ.get("TEST_MODE") == "true"

    # Data Directories
    if TEST_MODE:
        DATA_DIR = Path(os.environ.get("DATA_DIR", Path(tempfile.gettempdir()) / "roasttemp_test_data"))
        DATA_DIR.mkdir(parents=True, exist_ok=True)
    else:
        DATA_DIR = Path(os.environ.get("DATA_DIR", "/app/data"))

    LOG_DIR = Path(os.environ.get("LOG_DIR", "/app/logs"))
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Upstream model
    ABACUS_API_KEY = os.environ.get("ABACUS_API_KEY", "")
    UPSTREAM_URL = os.environ.get("UPSTREAM_URL", "https://api.abacus.ai/v0/chat/completions")
    UPSTREAM_MODEL = os.environ.get("UPSTREAM_MODEL", "gpt-4o")
    UPSTREAM_PROVIDER = os.environ.get("UPSTREAM_PROVIDER", "abacus")
    UPSTREAM_TIMEOUT_SECONDS = float(os.environ.get("UPSTREAM_TIMEOUT_SECONDS", "15"))
    UPSTREAM_MAX_RETRIES = int(os.environ.get("UPSTREAM_MAX_RETRIES", "2"))
    UPSTREAM_MAX_TOKENS = 500
    UPSTREAM_TEMPERATURE = 0.3

    # Liveness checks use a single short attempt
    HEALTH_TIMEOUT_SECONDS = 5.0
    HEALTH_MAX_RETRIES = 0

    # Application Settings
    MAX_IMAGE_KB = int(os.environ.get("MAX_IMAGE_KB", "4500"))
    HISTORY_LIMIT = 50


# Convenience access to config
config = Config()


@dataclass(frozen=True)
class AnalysisConfig:
    """Everything the analysis pipeline needs from its environment.

    Passed explicitly into AnalysisService so tests can use fake
    credentials and endpoints without touching os.environ.
    """

    api_key: str
    url: str = Config.UPSTREAM_URL
    model: str = Config.UPSTREAM_MODEL
    provider: str = Config.UPSTREAM_PROVIDER
    timeout_seconds: float = Config.UPSTREAM_TIMEOUT_SECONDS
    max_retries: int = Config.UPSTREAM_MAX_RETRIES
    max_tokens: int = Config.UPSTREAM_MAX_TOKENS
    temperature: float = Config.UPSTREAM_TEMPERATURE
    max_image_kb: int = Config.MAX_IMAGE_KB

    @classmethod
    def from_env(cls) -> "AnalysisConfig":
        """Build a config from the current process environment."""
        return cls(
            api_key=os.environ.get("ABACUS_API_KEY", ""),
            url=os.environ.get("UPSTREAM_URL", Config.UPSTREAM_URL),
            model=os.environ.get("UPSTREAM_MODEL", Config.UPSTREAM_MODEL),
            provider=os.environ.get("UPSTREAM_PROVIDER", Config.UPSTREAM_PROVIDER),
            timeout_seconds=float(os.environ.get("UPSTREAM_TIMEOUT_SECONDS", Config.UPSTREAM_TIMEOUT_SECONDS)),
            max_retries=int(os.environ.get("UPSTREAM_MAX_RETRIES", Config.UPSTREAM_MAX_RETRIES)),
            max_image_kb=int(os.environ.get("MAX_IMAGE_KB", Config.MAX_IMAGE_KB)),
        )

    def for_health_check(self) -> "AnalysisConfig":
        """Return the zero-retry, short-timeout variant used for liveness."""
        return replace(
            self,
            timeout_seconds=Config.HEALTH_TIMEOUT_SECONDS,
            max_retries=Config.HEALTH_MAX_RETRIES,
        )


# Backward compatibility - export commonly used constants
DATA_DIR = config.DATA_DIR
LOG_DIR = config.LOG_DIR
TEST_MODE = config.TEST_MODE
MAX_IMAGE_KB = config.MAX_IMAGE_KB
HISTORY_LIMIT = config.HISTORY_LIMIT
