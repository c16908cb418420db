"""Configuration system using pydantic-settings with environment variable loading."""

from decimal import Decimal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class SecuritySettings(BaseSettings):
    """Credential vault settings."""

    model_config = SettingsConfigDict(env_prefix="SECURITY_")

    encryption_key: SecretStr = SecretStr("")  # url-safe base64 Fernet key
    previous_keys: list[SecretStr] = []  # decrypt-only, for key rotation
    validate_key_format: bool = True  # per-venue API key shape checks on attach


class ExchangeSettings(BaseSettings):
    """Venue connection settings, applied to every supported venue."""

    model_config = SettingsConfigDict(env_prefix="EXCHANGE_")

    sandbox_mode: bool = True
    request_timeout_seconds: float = 10.0
    venue_timeouts: dict[str, float] = {}  # e.g. {"kraken": 20.0}
    probe_on_connect: bool = True

    def timeout_for(self, venue: str) -> float:
        """Return the outbound call timeout for a venue in seconds."""
        return self.venue_timeouts.get(venue, self.request_timeout_seconds)


class TradingSettings(BaseSettings):
    """Pre-trade limits for order validation."""

    model_config = SettingsConfigDict(env_prefix="TRADING_")

    supported_venues: list[str] = ["binance", "coinbase", "kraken"]
    max_order_size: Decimal = Decimal("1000")  # base-asset units per order
    daily_volume_limit: Decimal = Decimal("10000")  # quote-currency value per UTC day
    # Fixed estimate used to value MARKET orders against the daily limit
    market_reference_price: Decimal = Decimal("50000")


class RateLimitSettings(BaseSettings):
    """Token bucket capacity and refill period per operation category."""

    model_config = SettingsConfigDict(env_prefix="RATE_LIMIT_")

    api_capacity: int = 60
    api_period_seconds: float = 60.0
    trading_capacity: int = 10
    trading_period_seconds: float = 60.0
    login_capacity: int = 5
    login_period_seconds: float = 900.0
    credentials_capacity: int = 5
    credentials_period_seconds: float = 300.0


class DatabaseSettings(BaseSettings):
    """Record store location."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    path: str = "data/tradegate.db"


class ApiSettings(BaseSettings):
    """HTTP server configuration."""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = "0.0.0.0"
    port: int = 8080
    enabled: bool = True


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    security: SecuritySettings = SecuritySettings()
    exchange: ExchangeSettings = ExchangeSettings()
    trading: TradingSettings = TradingSettings()
    rate_limit: RateLimitSettings = RateLimitSettings()
    database: DatabaseSettings = DatabaseSettings()
    api: ApiSettings = ApiSettings()
