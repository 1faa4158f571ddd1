"""
Configuration management for the CoupleQuest AI service layer.
"""

import os
from pathlib import Path
from typing import List
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
env_file = Path(__file__).parent.parent / ".env"
if env_file.exists():
    load_dotenv(env_file)


class Config:
    """Configuration class for the application."""

    # Project paths
    PROJECT_ROOT = Path(__file__).parent.parent
    LOGS_DIR = Path(os.getenv("LOGS_DIR", str(PROJECT_ROOT / "logs")))

    # Logging Configuration
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_TO_FILE = os.getenv("LOG_TO_FILE", "false").lower() == "true"

    # Primary AI provider (iFlow, OpenAI-compatible API)
    IFLOW_BASE_URL = os.getenv("IFLOW_BASE_URL", "https://api.iflow.cn/v1")
    IFLOW_API_KEY = os.getenv("IFLOW_API_KEY")
    IFLOW_MODEL = os.getenv("IFLOW_MODEL", "qwen3-max")
    IFLOW_TIMEOUT = float(os.getenv("IFLOW_TIMEOUT", "30"))

    # Secondary AI provider (local Ollama)
    OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
    OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "qwen2:7b")
    OLLAMA_ENABLED = os.getenv("OLLAMA_ENABLED", "false").lower() == "true"
    OLLAMA_TIMEOUT = float(os.getenv("OLLAMA_TIMEOUT", "60"))

    # Resilience configuration file (optional)
    RESILIENCE_CONFIG_FILE = Path(os.getenv("RESILIENCE_CONFIG_FILE",
                                            str(PROJECT_ROOT / "resilience_config.json")))

    @classmethod
    def validate_config(cls) -> List[str]:
        """Validate configuration and return list of invalid settings."""
        issues = []

        if cls.IFLOW_TIMEOUT <= 0:
            issues.append("IFLOW_TIMEOUT must be > 0")
        if cls.OLLAMA_TIMEOUT <= 0:
            issues.append("OLLAMA_TIMEOUT must be > 0")

        return issues

    @classmethod
    def get_missing_credentials(cls) -> List[str]:
        """Credentials whose absence leaves a provider permanently unavailable."""
        missing = []

        if not cls.IFLOW_API_KEY:
            missing.append("IFLOW_API_KEY")

        return missing
