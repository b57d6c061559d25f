"""Stock engine configuration loaded from environment variables."""

import os
from dataclasses import dataclass

BACKEND_SUPABASE = "supabase"
BACKEND_MEMORY = "memory"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class StockSettings:
    """Runtime settings for the record store and the stock engine."""

    store_backend: str = BACKEND_SUPABASE
    supabase_url: str = ""
    supabase_key: str = ""
    redis_url: str = ""
    redis_token: str = ""
    # Same ceiling the hosted document stores use for their transaction runners
    txn_max_attempts: int = 5
    txn_backoff_secs: float = 0.05
    txn_backoff_max_secs: float = 1.0
    # Reducing a listing's quantity leaves the excess out of inventory unless enabled
    return_reduced_listing_stock: bool = False

    @classmethod
    def from_env(cls) -> "StockSettings":
        return cls(
            store_backend=os.environ.get("STOCK_STORE_BACKEND", BACKEND_SUPABASE).lower(),
            supabase_url=os.environ.get("SUPABASE_URL", ""),
            supabase_key=os.environ.get("SUPABASE_SERVICE_ROLE_KEY", ""),
            redis_url=os.environ.get("UPSTASH_REDIS_REST_URL", ""),
            redis_token=os.environ.get("UPSTASH_REDIS_REST_TOKEN", ""),
            txn_max_attempts=int(os.environ.get("STOCK_TXN_MAX_ATTEMPTS", "5")),
            txn_backoff_secs=float(os.environ.get("STOCK_TXN_BACKOFF_SECS", "0.05")),
            txn_backoff_max_secs=float(os.environ.get("STOCK_TXN_BACKOFF_MAX_SECS", "1.0")),
            return_reduced_listing_stock=_env_bool("STOCK_RETURN_REDUCED_LISTING_STOCK"),
        )

    @property
    def redis_configured(self) -> bool:
        return bool(self.redis_url and self.redis_token)
