"""
Client configuration settings
客户端配置设置
"""

from pydantic_settings import BaseSettings
from typing import Optional
import os


class Settings(BaseSettings):
    """Settings for the Undercover API client and its development server"""

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # Remote API
    API_BASE_URL: str = "http://localhost:3000"
    API_PREFIX: str = "/api/v1"
    REQUEST_TIMEOUT: float = 30.0  # seconds

    # Credential persistence (单一 token 字符串)
    TOKEN_FILE: str = os.path.join("~", ".undercover", "auth_token")

    # Entity cache
    CACHE_STALE_SECONDS: int = 300  # 5 minutes, same as the browser client
    ROUND_REFRESH_INTERVAL: float = 3.0  # periodic round refresh

    # Game rules enforced before anything is sent
    MIN_PLAYERS: int = 3

    # Development server
    DEV_HOST: str = "127.0.0.1"
    DEV_PORT: int = 3000
    SECRET_KEY: str = "dev-secret-key-change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_FILE: Optional[str] = None

    @property
    def api_url(self) -> str:
        """Base URL every request path is appended to"""
        return self.API_BASE_URL.rstrip("/") + "/" + self.API_PREFIX.strip("/")

    @property
    def token_path(self) -> str:
        return os.path.expanduser(self.TOKEN_FILE)

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
