"""
Application configuration using Pydantic Settings.
"""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings."""

    # MQTT ingestion
    mqtt_enabled: bool = True
    mqtt_host: str = "localhost"
    mqtt_port: int = 1883
    mqtt_username: str = ""
    mqtt_password: str = ""
    mqtt_topic: str = "parkingo/scanner/image"
    mqtt_client_prefix: str = "parkingo-relay"
    mqtt_keepalive: int = 60

    # Shared secret expected in the X-API-KEY field of every frame (empty disables the check)
    mqtt_api_key: str = ""

    # API Security
    api_key: str = "development-key"
    viewer_token: str = ""

    # WebSocket sessions
    ws_channel_capacity: int = 20
    ws_keepalive_interval: float = 30.0
    ws_refresh_interval: float = 15.0

    # Duplicate filter: "sha256" or "prefix"
    fingerprint_mode: str = "sha256"
    fingerprint_prefix_length: int = 100

    # Status report interval in seconds (0 disables)
    status_log_interval: float = 60.0

    log_level: str = "INFO"

    class Config:
        env_file = ".env"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
