"""
Service settings, read from the environment (or a .env file).

Import tunables are prefixed IMPORT_ so they can be set per deployment
without touching code, e.g. IMPORT_PREVIEW_PAGE_SIZE=100.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Price-list import service settings.

    SUPABASE_URL and SUPABASE_KEY are required; everything else has a default.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ===================
    # CATALOG STORE
    # ===================
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_key: str = Field(..., description="Anon key, used when no service key is set")
    supabase_service_key: Optional[str] = Field(
        None,
        description="Service role key; overwrite imports delete rows across tables"
    )

    # ===================
    # IMPORT PIPELINE
    # ===================
    import_preview_page_size: int = Field(50, ge=5, le=500, description="Sample rows per preview page")
    import_pdf_max_pages: int = Field(50, ge=1, le=500, description="Widest PDF page window per request")
    import_max_file_mb: int = Field(20, ge=1, le=200, description="Upload size limit")

    # Parsed-table cache (services/source_cache_service.py)
    import_parse_cache_ttl_minutes: int = Field(10, ge=0, le=120, description="0 turns the cache off")
    import_parse_cache_max_entries: int = Field(16, ge=1, le=256)

    # Sell price fallbacks for tenants without a settings row
    import_default_vat_percent: float = Field(18.0, ge=0, le=100)
    import_default_margin_percent: float = Field(0.0, ge=0, le=500)

    # ===================
    # SERVER
    # ===================
    environment: str = Field("development", pattern="^(development|staging|production)$")
    debug: bool = Field(True, description="Exposes /docs and error details")
    log_level: str = Field("INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    api_host: str = "0.0.0.0"
    api_port: int = Field(8000, ge=1000, le=65535)
    cors_origins: str = Field(
        "http://localhost:3000,http://localhost:5173",
        description="Comma separated origins allowed to call the wizard API"
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def import_max_file_bytes(self) -> int:
        """Upload size limit in bytes."""
        return self.import_max_file_mb * 1024 * 1024

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache()
def get_settings() -> Settings:
    """
    Load settings once per process.

    Raises:
        ValidationError: If SUPABASE_URL/SUPABASE_KEY are missing or a value is out of range
    """
    return Settings()


settings = get_settings()
