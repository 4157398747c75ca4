"""
Nursery API Configuration Module

Loads environment variables for the order & payment reconciliation backend.
"""
from pydantic_settings import BaseSettings
from typing import Literal, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Notes:
    - Stripe secrets are environment-based and never committed
    - Demo mode seeds a small nursery catalog on first startup
    - Delivery fee is a first-class setting so it can vary later without a schema change
    """

    # Stripe Configuration
    stripe_secret_key: str = "sk_test_change_me"
    stripe_webhook_secret: str = "whsec_change_me"
    stripe_api_version: Optional[str] = None
    currency: str = "usd"

    # Demo Configuration
    demo_mode: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Pricing
    default_tax_state: str = "NY"
    delivery_fee: float = 0.0

    # Pending orders
    pending_order_ttl_minutes: int = 60
    pending_order_sweep_interval_minutes: int = 15
    scheduler_enabled: bool = True

    # Push notifications (Expo)
    expo_push_url: str = "https://exp.host/--/api/v2/push/send"
    expo_access_token: Optional[str] = None
    push_timeout_seconds: float = 10.0

    # Database
    database_url: str = "sqlite+aiosqlite:///./nursery.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
