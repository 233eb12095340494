"""
Configuration settings for Homework Analyzer.

This module provides the Config class with all settings.
Values are read from environment variables (optionally loaded from a .env
file) and fall back to the defaults below.
"""

import os
from pathlib import Path

# Load environment variables from .env file if it exists
try:
    from dotenv import load_dotenv

    # Try multiple locations for .env
    for env_path in [
        Path.cwd() / ".env",  # Current working directory
        Path(__file__).parent.parent / ".env",  # Package root (when running from source)
        Path.home() / ".homework-analyzer" / ".env",  # User config directory
    ]:
        if env_path.exists():
            load_dotenv(env_path, override=True)
            break
except ImportError:
    # python-dotenv not installed, will use system environment variables only
    pass


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


class Config:
    """Main configuration class for Homework Analyzer."""

    BASE_DIR = Path(__file__).parent.parent
    CONFIG_DIR = Path(__file__).parent

    # Segmentation Settings (normalized fractions of page height)
    GAP_THRESHOLD = float(os.getenv("HOMEWORK_GAP_THRESHOLD", "0.05"))
    MIN_SEGMENT_HEIGHT = float(os.getenv("HOMEWORK_MIN_SEGMENT_HEIGHT", "0.03"))
    MERGE_PADDING = float(os.getenv("HOMEWORK_MERGE_PADDING", "0.02"))  # Re-crop padding for merged segments
    EDGE_PADDING = (
        float(os.getenv("HOMEWORK_EDGE_PADDING")) if os.getenv("HOMEWORK_EDGE_PADDING") else None
    )  # None = first/last segments extend to the page edges

    # Routing Settings (snapshot inputs for the analysis router)
    USE_AGENTIC_ANALYSIS = _env_flag("HOMEWORK_USE_AGENTIC_ANALYSIS")
    USE_CLOUD_ANALYSIS = _env_flag("HOMEWORK_USE_CLOUD_ANALYSIS")
    HAS_CLOUD_SUBSCRIPTION = _env_flag("HOMEWORK_HAS_CLOUD_SUBSCRIPTION")
    ROUTING_CONFIG_PATH = (
        Path(os.getenv("HOMEWORK_ROUTING_CONFIG"))
        if os.getenv("HOMEWORK_ROUTING_CONFIG")
        else CONFIG_DIR / "routing.yaml"
    )

    # Cloud backends analyze the whole page unless this is enabled
    SEGMENT_CLOUD_ANALYSIS = _env_flag("HOMEWORK_SEGMENT_CLOUD_ANALYSIS")

    # On-device Settings (local Ollama vision model)
    OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
    ON_DEVICE_MODEL = os.getenv("HOMEWORK_ON_DEVICE_MODEL", "llama3.2-vision:11b")
    ON_DEVICE_TIMEOUT = int(os.getenv("HOMEWORK_ON_DEVICE_TIMEOUT", "300"))
    ON_DEVICE_TEMPERATURE = float(os.getenv("HOMEWORK_ON_DEVICE_TEMPERATURE", "0.1"))

    # Cloud Settings
    CLOUD_BASE_URL = os.getenv(
        "HOMEWORK_CLOUD_BASE_URL", "http://127.0.0.1:5001/homework-daef1/us-central1"
    )
    CLOUD_APP_CHECK_TOKEN = os.getenv("HOMEWORK_APP_CHECK_TOKEN", "emulator-bypass-token")
    CLOUD_REQUEST_TIMEOUT = int(os.getenv("HOMEWORK_CLOUD_TIMEOUT", "120"))  # seconds
    AGENTIC_REQUEST_TIMEOUT = int(os.getenv("HOMEWORK_AGENTIC_TIMEOUT", "180"))  # seconds
    CLOUD_MAX_RETRIES = int(os.getenv("HOMEWORK_CLOUD_MAX_RETRIES", "2"))
    CLOUD_RETRY_DELAY = float(os.getenv("HOMEWORK_CLOUD_RETRY_DELAY", "2.0"))  # seconds
    AGENTIC_DETAIL_LEVEL = os.getenv("HOMEWORK_AGENTIC_DETAIL_LEVEL", "detailed")
    AGENTIC_INCLUDE_EXTRA_PRACTICE = _env_flag("HOMEWORK_AGENTIC_EXTRA_PRACTICE", "true")
    PREFERRED_LANGUAGE = os.getenv("HOMEWORK_LANGUAGE", "en")

    # Image Settings
    JPEG_QUALITY = int(os.getenv("HOMEWORK_JPEG_QUALITY", "50"))  # Aggressive compression for upload

    # Logging
    LOG_LEVEL = os.getenv("HOMEWORK_LOG_LEVEL", "INFO")

    @classmethod
    def endpoint_url(cls, endpoint: str) -> str:
        """Full URL for a cloud function endpoint."""
        return f"{cls.CLOUD_BASE_URL.rstrip('/')}/{endpoint}"
