"""Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API
    api_version: str = "0.1.0"
    debug: bool = False

    # Authentication
    seller_portal_api_key: str = "dev-api-key-change-in-production"

    # Storage: "memory" or "sql"
    storage_backend: str = "memory"
    database_url: str = "postgresql+asyncpg://sellerportal:sellerportal_dev_password@db:5432/sellerportal"

    # Shipping provider
    shiprocket_base_url: str = "https://apiv2.shiprocket.in/v1/external"
    shiprocket_email: str = ""
    shiprocket_password: str = ""
    shiprocket_timeout_seconds: float = 30.0
    shiprocket_token_ttl_hours: float = 216.0
    shipment_id_propagation_delay_seconds: float = 2.0

    # Payment gateway
    cashfree_base_url: str = "https://sandbox.cashfree.com/pg"
    cashfree_client_id: str = ""
    cashfree_client_secret: str = ""
    cashfree_api_version: str = "2023-08-01"
    payment_timeout_seconds: float = 30.0

    # Side effects (notifications, emails, audit)
    side_effect_timeout_seconds: float = 5.0

    # Logging
    log_level: str = "INFO"

    class Config:
        """Pydantic configuration."""

        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
