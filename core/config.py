"""
Environment-driven configuration for the data layer and the remote store.

All values come from environment variables so the same code runs in a
browser-like client, a native client and the reference backend without
changes.
"""

import os
from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel, Field

DEFAULT_TIMEOUT_SECONDS = 5.0
FREE_GENERATION_LIMIT = 10
MAX_LOCAL_HISTORY_ITEMS = 50
REMOTE_HISTORY_LIMIT = 20


class Settings(BaseModel):
    """Runtime settings"""

    environment: str = "development"
    data_api_url: str = "http://localhost:8002/api"
    data_api_timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    local_store_path: Optional[str] = None
    free_generation_limit: int = Field(default=FREE_GENERATION_LIMIT, ge=0)
    max_local_history_items: int = Field(default=MAX_LOCAL_HISTORY_ITEMS, gt=0)
    remote_history_limit: int = Field(default=REMOTE_HISTORY_LIMIT, gt=0)
    database_url: str = "sqlite+aiosqlite:///./hypeakz_data.db"
    app_base_url: str = "http://localhost:3000"
    allowed_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000"]
    )
    checkout_price_id: Optional[str] = None
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        values = {
            "environment": os.getenv("ENVIRONMENT"),
            "data_api_url": os.getenv("DATA_API_URL"),
            "data_api_timeout_seconds": os.getenv("DATA_API_TIMEOUT_SECONDS"),
            "local_store_path": os.getenv("LOCAL_STORE_PATH"),
            "free_generation_limit": os.getenv("FREE_GENERATION_LIMIT"),
            "max_local_history_items": os.getenv("MAX_LOCAL_HISTORY_ITEMS"),
            "database_url": os.getenv("DATABASE_URL"),
            "app_base_url": os.getenv("APP_BASE_URL"),
            "checkout_price_id": os.getenv("CHECKOUT_PRICE_ID"),
            "stripe_secret_key": os.getenv("STRIPE_SECRET_KEY"),
            "stripe_webhook_secret": os.getenv("STRIPE_WEBHOOK_SECRET"),
        }
        origins = os.getenv("ALLOWED_ORIGINS")
        if origins:
            values["allowed_origins"] = [
                origin.strip() for origin in origins.split(",") if origin.strip()
            ]
        # Unset variables fall back to the model defaults
        return cls(**{key: value for key, value in values.items() if value})


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
