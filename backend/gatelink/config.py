from typing import Dict, List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Database
    DATABASE_URL: str = "sqlite:///./gatelink.db"

    # Domain
    BASE_URL: str = "http://localhost:8000"

    # Short codes
    SHORT_CODE_LENGTH: int = 7
    SHORT_CODE_MAX_ATTEMPTS: int = 3

    # Expiry applied when the request carries neither expiresIn nor expiresAt
    DEFAULT_EXPIRY_DAYS: int = 30

    # Rate limiting. Unset storage means the creation limiter fails open.
    RATE_LIMIT_STORAGE_URI: Optional[str] = None
    ANON_DAILY_LIMIT: int = 5
    ANON_MINUTE_LIMIT: int = 3
    WALLET_DAILY_LIMIT: int = 50
    WALLET_MINUTE_LIMIT: int = 15
    UNLOCK_RATE_LIMIT: str = "30/minute"

    # Google Safe Browsing. Unset key means every URL is treated as safe.
    SAFE_BROWSING_API_KEY: Optional[str] = None
    SAFE_BROWSING_URL: str = "https://safebrowsing.googleapis.com/v4/threatMatches:find"
    SAFE_BROWSING_TIMEOUT: float = 3.0
    SAFE_BROWSING_CLIENT_ID: str = "gatelink"

    # On-chain verification, chain id -> JSON-RPC endpoint
    CHAIN_RPC_URLS: Dict[int, str] = {8453: "https://mainnet.base.org"}
    CHAIN_RPC_TIMEOUT: float = 10.0

    # Frontend pages the redirect endpoint sends visitors to
    EXPIRED_PATH: str = "/expired"
    UNLOCK_PATH: str = "/unlock"
    ERROR_PATH: str = "/"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    CORS_ORIGINS: List[str] = ["*"]


settings = Settings()
