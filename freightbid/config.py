from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache
from pathlib import Path
import json


DATA_DIR = Path(__file__).parent / "data"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./freightbid.db"

    # Database Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # App Settings
    APP_NAME: str = "FreightBid Quote & Auction Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False  # JSON log lines for log shippers

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Road distance provider (Google Distance Matrix compatible)
    GOOGLE_MAPS_API_KEY: str = ""  # Empty disables the provider; haversine is used
    DISTANCE_API_URL: str = "https://maps.googleapis.com/maps/api/distancematrix/json"
    DISTANCE_API_TIMEOUT: float = 5.0  # Seconds, single attempt

    # Static reference data (loaded once at startup)
    PINCODE_CENTROIDS_PATH: str = str(DATA_DIR / "pincode_centroids.json")
    PINCODE_ZONES_PATH: str = str(DATA_DIR / "pincode_zones.json")

    # Tariff
    DEFAULT_K_FACTOR: float = 5000  # Volumetric divisor when the rate card has none
    INVOICE_VALUE_MIN: float = 1
    INVOICE_VALUE_MAX: float = 100_000_000
    INVOICE_RULE_MAX_DEPTH: int = 10

    # Auctions
    AUCTION_MIN_LEAD_DAYS: int = 2  # end time / pickup must be at least this far out
    AUCTION_MAX_BIDS_PER_BIDDER: int = 3

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @property
    def distance_provider_enabled(self) -> bool:
        return bool(self.GOOGLE_MAPS_API_KEY)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
