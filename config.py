from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class GatewaySettings(BaseSettings):
    """Gateway service configuration."""

    url: str = Field(
        default="http://localhost:15888",
        description="Gateway service URL (use 'http://gateway:15888' when running in Docker)"
    )
    chain: str = Field(default="solana", description="Chain the DLMM pool lives on")
    network: str = Field(default="mainnet-beta", description="Chain network name")
    wallet_address: str = Field(default="", description="Wallet that owns the position")
    timeout: float = Field(default=30.0, description="HTTP timeout in seconds")
    swap_connector: str = Field(default="jupiter/router", description="Connector used for swaps")

    model_config = SettingsConfigDict(env_prefix="GATEWAY_", extra="ignore")


class PriceFeedSettings(BaseSettings):
    """USD price feed configuration."""

    url: str = Field(default="https://lite-api.jup.ag", description="Jupiter price API base URL")
    api_key: Optional[str] = Field(default=None, description="Optional Jupiter API key")
    cache_ttl_sec: float = Field(default=60.0, description="How long a fetched price stays valid")
    timeout: float = Field(default=10.0, description="HTTP timeout in seconds")

    model_config = SettingsConfigDict(env_prefix="PRICE_FEED_", extra="ignore")


class LoggingSettings(BaseSettings):
    """Process logging configuration."""

    level: str = Field(default="INFO", description="Root log level")
    file: Optional[str] = Field(default=None, description="Optional log file path")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="logging format string"
    )

    model_config = SettingsConfigDict(env_prefix="LOG_", extra="ignore")


class AppSettings(BaseSettings):
    """Main application settings."""

    # Static paths
    controllers_path: str = "dlmm_bot/conf/controllers"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


class Settings(BaseSettings):
    """Combined application settings."""

    gateway: GatewaySettings = Field(default_factory=GatewaySettings)
    price_feed: PriceFeedSettings = Field(default_factory=PriceFeedSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    app: AppSettings = Field(default_factory=AppSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        extra="ignore"
    )


# Create global settings instance
settings = Settings()
