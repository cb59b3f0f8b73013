"""
Configuration Management
Loads settings from YAML files and environment variables
"""
import yaml
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

# Seconds a callee's client rings before the call is recorded as missed
RINGING_TIMEOUT_SECONDS = 30.0

# Seconds between two ring cues while ringing
RING_INTERVAL_SECONDS = 1.5


class Settings(BaseSettings):
    """Application settings loaded from environment"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = "development"
    debug: bool = True

    # API Settings
    api_prefix: str = "/api/v1"
    cors_origins: list[str] = ["http://localhost:3000"]

    # Supabase
    supabase_url: Optional[str] = None
    supabase_service_key: Optional[str] = None

    # Collaborators
    signaling_transport: str = "supabase"
    media_engine: str = "simulated"


@dataclass
class CallSettings:
    """Typed view of the `calls` and `signaling` config sections"""
    ringing_timeout_seconds: float = RINGING_TIMEOUT_SECONDS
    ring_interval_seconds: float = RING_INTERVAL_SECONDS
    room_channel_prefix: str = "call-signal:"
    personal_channel_prefix: str = "user-calls:"
    push_function_name: str = "send-push-notification"
    notifications_table: str = "notifications"
    broadcast_self: bool = False


class ConfigManager:
    """Manages loading and merging configuration from multiple sources"""

    def __init__(self, env: Optional[str] = None, config_dir: Optional[Path] = None):
        self.env = env or os.getenv("ENVIRONMENT", "development")
        self.config_dir = config_dir or Path(__file__).parent.parent.parent / "config"
        self._config: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration files in order of precedence"""
        default_path = self.config_dir / "default.yaml"
        if default_path.exists():
            self._config = self._load_yaml(default_path)

        env_path = self.config_dir / f"{self.env}.yaml"
        if env_path.exists():
            env_config = self._load_yaml(env_path)
            self._deep_merge(self._config, env_config)

        self._substitute_env_vars(self._config)

    def _load_yaml(self, path: Path) -> Dict:
        """Load YAML file"""
        with open(path, 'r') as f:
            return yaml.safe_load(f) or {}

    def _substitute_env_vars(self, config: Dict) -> None:
        """Replace ${VAR_NAME} with environment variable values"""
        for key, value in config.items():
            if isinstance(value, dict):
                self._substitute_env_vars(value)
            elif isinstance(value, str) and value.startswith("${") and value.endswith("}"):
                env_var = value[2:-1]
                config[key] = os.getenv(env_var, value)

    def _deep_merge(self, base: Dict, override: Dict) -> None:
        """Recursively merge override into base"""
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation
        Example: config.get("calls.ringing_timeout_seconds") -> 30
        """
        keys = key_path.split('.')
        value = self._config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def get_call_settings(self) -> CallSettings:
        """Build CallSettings from the loaded configuration"""
        defaults = CallSettings()
        return CallSettings(
            ringing_timeout_seconds=float(
                self.get("calls.ringing_timeout_seconds", defaults.ringing_timeout_seconds)
            ),
            ring_interval_seconds=float(
                self.get("calls.ring_interval_seconds", defaults.ring_interval_seconds)
            ),
            room_channel_prefix=self.get(
                "signaling.room_channel_prefix", defaults.room_channel_prefix
            ),
            personal_channel_prefix=self.get(
                "signaling.personal_channel_prefix", defaults.personal_channel_prefix
            ),
            push_function_name=self.get(
                "notifications.push_function", defaults.push_function_name
            ),
            notifications_table=self.get(
                "notifications.table", defaults.notifications_table
            ),
            broadcast_self=bool(
                self.get("signaling.broadcast_self", defaults.broadcast_self)
            ),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get cached application settings"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
