"""
Configuration management.
Simple .env based config for VPS deployment.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Server
    host: str = "0.0.0.0"
    port: int = 8080

    # Security
    session_secret: str = "change-me-in-production-use-random-string"
    admin_password_hash: str = ""  # bcrypt hash, see scripts/hash_password.py
    session_cookie_secure: bool = False

    # Database
    database_path: str = "./data/app.db"

    # Logging
    log_level: str = "INFO"

    # Shopify (storefront)
    shopify_store_domain: str = ""  # e.g., "mystore.myshopify.com"
    shopify_access_token: str = ""  # Admin API token (shpat_...)
    shopify_api_version: str = "2024-10"
    shopify_timeout: float = 15.0  # seconds
    catalog_page_size: int = 100
    catalog_page_delay: float = 0.2

    # CJ Dropshipping (supplier)
    cj_api_token: str = ""
    cj_api_base_url: str = "https://developers.cjdropshipping.com/api2.0/v1"
    cj_timeout: float = 10.0  # seconds

    # Metafield holding the CJ product id on each Shopify product
    supplier_link_namespace: str = "custom"
    supplier_link_key: str = "cj_product_id"

    # Price sync pacing
    supplier_lookup_delay: float = 0.3  # between CJ calls
    storefront_update_delay: float = 0.5  # between Shopify price writes
    link_delay: float = 0.2  # between metafield writes / CJ searches

    # CJ quota protection
    price_cache_ttl: int = 24 * 60 * 60
    not_found_cache_ttl: int = 60 * 60
    rate_limit_cooldown: int = 60 * 60

    # Preview sizing
    preview_limit: int = 20
    preview_unmatched_sample: int = 10


# Global settings instance
settings = Settings()
