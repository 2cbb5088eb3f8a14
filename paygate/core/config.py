# paygate/core/config.py
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import AnyHttpUrl # AnyHttpUrl stays in pydantic core
from functools import lru_cache
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()

class Settings(BaseSettings):
    PROJECT_NAME: str = "Paygate"
    API_PREFIX: str = "/api"
    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Service being sold
    SERVICE_NAME: str = "web-scraper"
    SERVICE_DESCRIPTION: str = (
        "Fetch any webpage through a real 4G/5G mobile IP. Returns clean text content."
    )
    PRICE_USDC: float = 0.005  # per request

    # Payment recipients. Base falls back to WALLET_ADDRESS when unset.
    WALLET_ADDRESS: Optional[str] = None
    WALLET_ADDRESS_BASE: Optional[str] = None

    # Chain RPC
    SOLANA_RPC_URL: AnyHttpUrl = "https://api.mainnet-beta.solana.com"
    BASE_RPC_URL: AnyHttpUrl = "https://mainnet.base.org"
    RPC_TIMEOUT_SECONDS: float = 10.0
    VERIFY_TIMEOUT_SECONDS: float = 20.0
    PAYMENT_AMOUNT_TOLERANCE: float = 0.02  # accept >= 98% of price

    # Rate limiting
    RATE_LIMIT_PER_IP: int = 60
    RATE_LIMIT_WINDOW_SECONDS: int = 60

    # Outbound fetch
    FETCH_TIMEOUT_MS: int = 30000
    FETCH_MAX_RETRIES: int = 2
    FETCH_BACKOFF_MS: int = 1000
    FETCH_BACKOFF_STRATEGY: str = "exponential"  # or "fixed"
    FETCH_MAX_REDIRECTS: int = 5
    FETCH_MAX_BODY_CHARS: int = 50000
    FETCH_MAX_DOWNLOAD_BYTES: int = 200000  # stop reading the target body here

    # Only honour X-Forwarded-For / X-Real-IP behind a trusted reverse proxy
    TRUST_PROXY_HEADERS: bool = False

    # Upstream mobile proxy
    PROXY_HOST: Optional[str] = None
    PROXY_HTTP_PORT: Optional[int] = None
    PROXY_USER: Optional[str] = None
    PROXY_PASS: Optional[str] = None
    PROXY_COUNTRY: str = "US"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields from .env

    def wallet_for(self, network: str) -> Optional[str]:
        """Recipient wallet for a network name ("solana" or "base")."""
        if network == "base":
            return self.WALLET_ADDRESS_BASE or self.WALLET_ADDRESS
        return self.WALLET_ADDRESS

    @property
    def proxy_url(self) -> Optional[str]:
        """Proxy URL with credentials, or None when no proxy is configured."""
        if not self.PROXY_HOST:
            return None
        port = f":{self.PROXY_HTTP_PORT}" if self.PROXY_HTTP_PORT else ""
        if self.PROXY_USER:
            return f"http://{self.PROXY_USER}:{self.PROXY_PASS or ''}@{self.PROXY_HOST}{port}"
        return f"http://{self.PROXY_HOST}{port}"

@lru_cache() # Cache the settings object for performance
def get_settings() -> Settings:
    return Settings()

settings = get_settings()
