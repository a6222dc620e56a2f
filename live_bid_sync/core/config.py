"""
Application Configuration
"""
from functools import lru_cache
from typing import Dict, List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # App
    APP_NAME: str = "Live Bid Sync"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Live channel (Socket.IO)
    SOCKET_URL: str = "http://localhost:5000"
    SOCKET_PATH: str = "socket.io"
    SOCKET_TRANSPORTS: List[str] = ["websocket"]
    CONNECT_WAIT_TIMEOUT: float = 5.0  # seconds

    # Reconnection
    RECONNECTION_ATTEMPTS: int = 5
    RECONNECTION_DELAY: float = 1.0  # seconds
    RECONNECTION_DELAY_MAX: float = 5.0  # seconds
    RANDOMIZATION_FACTOR: float = 0.5

    # REST API
    API_BASE_URL: str = "http://localhost:5000/api/v1"
    API_TIMEOUT: float = 10.0  # seconds
    BID_PLACEMENT_TIMEOUT: float = 10.0  # seconds

    # Credentials
    AUTH_TOKEN: Optional[str] = None

    # Persisted bid cache
    REDIS_URL: str = "redis://localhost:6379/0"
    BID_CACHE_ENABLED: bool = True
    BID_CACHE_TTL: int = 300  # seconds

    def auth_headers(self) -> Dict[str, str]:
        """Headers carrying the user's credentials, empty when anonymous"""
        if not self.AUTH_TOKEN:
            return {}
        return {"Authorization": f"Bearer {self.AUTH_TOKEN}"}


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
