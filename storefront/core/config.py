"""Storefront Checkout Configuration"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment"""

    # Application
    app_name: str = "Storefront Checkout"
    debug: bool = True
    host: str = "0.0.0.0"
    port: int = 8000

    # Backend services (cart, catalog, orders, payments)
    backend_base_url: str = "http://localhost:5000"
    backend_timeout_seconds: float = 30.0

    # Checkout
    store_name: str = "Storefront"
    currency: str = "INR"
    address_debounce_ms: int = 300
    generic_order_failure_message: str = "Failed to place order"

    # Sessions
    session_max_age_hours: int = 24
    session_expiry_interval_seconds: float = 300.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    @property
    def address_debounce_seconds(self) -> float:
        return self.address_debounce_ms / 1000.0


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
