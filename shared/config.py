"""
Configuration management for services.
"""

import json
import os
from typing import Any

import yaml

from dotenv import load_dotenv


class ServiceConfig:
    """Configuration management for services using environment variables."""

    def __init__(self) -> None:
        """Initialize configuration by loading environment variables."""
        # Always load .env from the repository root (where app.py is located)
        env_path = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.env"))
        load_dotenv(dotenv_path=env_path, override=False)
        self.config: dict[str, Any] = {}
        self.pipeline_config: dict[str, Any] = {}
        self.pipeline_config_path = os.getenv(
            "PIPELINE_CONFIG_PATH",
            os.path.join(os.path.dirname(__file__), "../config/pipeline.yaml"),
        )
        self.load_from_env()
        self.load_pipeline_config()

    def load_from_env(self) -> None:
        """Load configuration from environment variables."""
        self.config = {
            "openai_api_key": os.getenv("OPENAI_API_KEY"),
            "openai_script_model": os.getenv("OPENAI_SCRIPT_MODEL", "gpt-4-turbo-preview"),
            "openai_fast_model": os.getenv("OPENAI_FAST_MODEL", "gpt-3.5-turbo"),
            "openai_tts_model": os.getenv("OPENAI_TTS_MODEL", "tts-1"),
            "script_driver": os.getenv("SCRIPT_DRIVER", "openai"),
            "tts_driver": os.getenv("TTS_DRIVER", "openai"),
            "azure_speech_key": os.getenv("AZURE_SPEECH_KEY"),
            "azure_speech_region": os.getenv("AZURE_SPEECH_REGION", "eastus"),
            "composer_driver": os.getenv("COMPOSER_DRIVER", "ffmpeg"),
            "ffmpeg_binary": os.getenv("FFMPEG_BINARY", "ffmpeg"),
            "storage_driver": os.getenv("STORAGE_DRIVER", "local"),
            "aws_region": os.getenv("AWS_REGION", "us-east-1"),
            "aws_access_key_id": os.getenv("AWS_ACCESS_KEY_ID"),
            "aws_secret_access_key": os.getenv("AWS_SECRET_ACCESS_KEY"),
            "s3_bucket": os.getenv("S3_BUCKET"),
            "cdn_base_url": os.getenv("CDN_BASE_URL"),
            "media_root": os.getenv("MEDIA_ROOT", "/app/media"),
            "job_store": os.getenv("JOB_STORE", "database"),
            "database_url": os.getenv("DATABASE_URL"),
            "redis_url": os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            "queue_max_concurrency": int(os.getenv("QUEUE_MAX_CONCURRENCY", "3")),
            "queue_max_attempts": int(os.getenv("QUEUE_MAX_ATTEMPTS", "3")),
            "queue_retry_delay": float(os.getenv("QUEUE_RETRY_DELAY", "5.0")),
            "queue_priority_levels": int(os.getenv("QUEUE_PRIORITY_LEVELS", "5")),
            "queue_poll_interval": float(os.getenv("QUEUE_POLL_INTERVAL", "0.1")),
            "queue_idle_interval": float(os.getenv("QUEUE_IDLE_INTERVAL", "1.0")),
            "debug": os.getenv("DEBUG", "false").lower() == "true",
            "allowed_origins": json.loads(os.getenv("ALLOWED_ORIGINS", '["*"]')),
        }

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by key.

        Args:
            key: Configuration key
            default: Default value if key not found

        Returns:
            Configuration value
        """
        value = self.config.get(key, default)
        return default if value is None else value

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value.

        Args:
            key: Configuration key
            value: Configuration value
        """
        self.config[key] = value

    def reload(self) -> None:
        """Reload configuration from environment variables."""
        self.load_from_env()
        self.load_pipeline_config()

    def load_pipeline_config(self) -> None:
        """Load pipeline configuration from YAML file."""
        path = os.path.abspath(self.pipeline_config_path)
        try:
            with open(path, "r", encoding="utf-8") as stream:
                data = yaml.safe_load(stream) or {}
        except FileNotFoundError:
            data = {}
        self.pipeline_config = data

    def get_pipeline_value(self, path: str, default: Any = None) -> Any:
        """Retrieve a pipeline configuration value via dotted path."""
        env_override_key = f"PIPELINE_FLAG_{path.replace('.', '_').upper()}"
        env_value = os.getenv(env_override_key)
        if env_value is not None:
            return self._coerce_env_value(env_value, default)

        node: Any = self.pipeline_config
        for part in path.split("."):
            if isinstance(node, dict) and part in node:
                node = node[part]
            else:
                return default
        return node if node is not None else default

    def set_pipeline_config(self, pipeline_config: dict[str, Any]) -> None:
        """Override pipeline configuration (useful for tests)."""
        self.pipeline_config = pipeline_config

    @staticmethod
    def _coerce_env_value(raw: str, default: Any) -> Any:
        lowered = raw.lower()
        if lowered in {"true", "false"}:
            return lowered == "true"
        if lowered.replace(".", "", 1).isdigit():
            try:
                return float(lowered) if "." in lowered else int(lowered)
            except ValueError:
                return raw
        return raw or default


# Global configuration instance
config = ServiceConfig()
