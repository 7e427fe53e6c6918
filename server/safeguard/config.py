"""Server configuration.

Loads from config.yaml if present, with environment variable overrides.
Environment variables use the pattern: SAFEGUARD_<SECTION>_<KEY> (uppercase).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

ENV_PREFIX = "SAFEGUARD"


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8000
    env: str = "dev"  # "dev" or "prod"


@dataclass
class EngineConfig:
    history_capacity: int = 50
    sensitivity_window: int = 10
    initial_sensitivity: float = 1.0
    cooldown_seconds: float = 300.0
    session_timeout_seconds: float = 3600.0
    capture_timeout_seconds: float = 5.0
    timezone: str = "Asia/Kolkata"
    active_window_seconds: float = 120.0


@dataclass
class AlertsConfig:
    max_retries: int = 5
    retry_delay_seconds: float = 30.0
    default_channels: str = "both"
    country_code: str = "91"
    request_timeout_seconds: float = 10.0
    sms_provider_order: list[str] = field(default_factory=lambda: ["twilio", "gateway"])
    sharing_interval_seconds: float = 10.0
    sharing_duration_seconds: float = 3600.0
    map_link_base: str = "https://maps.google.com/?q="


@dataclass
class ProvidersConfig:
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_from_number: str = ""
    twilio_whatsapp_from: str = ""
    sms_gateway_url: str = ""
    sms_gateway_api_key: str = ""
    sms_gateway_sender: str = ""
    sendgrid_api_key: str = ""
    email_from: str = ""
    telegram_bot_token: str = ""
    push_relay_url: str = ""
    push_relay_token: str = ""


@dataclass
class QueueConfig:
    max_size: int = 10_000


@dataclass
class StorageConfig:
    base_dir: str = "data/sessions"


@dataclass
class LoggingConfig:
    level: str = "info"
    format: str = "console"  # "console" or "json"


@dataclass
class AppConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    alerts: AlertsConfig = field(default_factory=AlertsConfig)
    providers: ProvidersConfig = field(default_factory=ProvidersConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _coerce(current: object, raw: str) -> object:
    """Convert an environment string to the type of the current value."""
    if isinstance(current, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    if isinstance(current, list):
        return [item.strip() for item in raw.split(",") if item.strip()]
    return raw


def _apply_env_overrides(config: AppConfig) -> None:
    """Override config values from environment variables."""
    for section_field in fields(config):
        section = getattr(config, section_field.name)
        for f in fields(section):
            env_key = f"{ENV_PREFIX}_{section_field.name}_{f.name}".upper()
            val = os.environ.get(env_key)
            if val is not None:
                setattr(section, f.name, _coerce(getattr(section, f.name), val))


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load configuration from YAML file + environment overrides."""
    config = AppConfig()

    # Try to load YAML
    if config_path is None:
        config_path = Path("config.yaml")
    else:
        config_path = Path(config_path)

    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}

        for section_field in fields(config):
            values = raw.get(section_field.name) or {}
            section = getattr(config, section_field.name)
            for k, v in values.items():
                if hasattr(section, k):
                    setattr(section, k, v)

    # Environment overrides always win
    _apply_env_overrides(config)
    return config
