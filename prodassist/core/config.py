"""
ProdAssist Configuration

Pydantic settings for the API service, the document store and the
generation client.
"""

from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings

from prodassist.core.constants import DEFAULT_ENDPOINTS


class Settings(BaseSettings):
    """Application settings."""

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default=None)  # Also write logs to this file

    # CORS
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://127.0.0.1:3000"]
    )

    # Document store: "supabase" or "memory"
    store_backend: str = Field(default="supabase")

    # Supabase
    supabase_url: str = Field(default="")
    supabase_anon_key: str = Field(default="")
    supabase_service_key: str = Field(default="")
    preproduction_table: str = Field(default="preproduction")
    story_bible_table: str = Field(default="story_bibles")

    # Generation endpoints
    generation_base_url: str = Field(default="http://localhost:3000")
    generation_timeout: float = Field(default=300.0)
    generation_endpoints: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_ENDPOINTS))

    # Regenerate-all: persist the sections that succeeded even when others failed
    apply_partial_regeneration: bool = Field(default=True)

    # Rate limits (slowapi syntax)
    rate_limit_enabled: bool = Field(default=True)
    generation_rate_limit: str = Field(default="5/minute")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "PRODASSIST_"
        extra = "ignore"

    def endpoint_url(self, name: str) -> str:
        """Absolute URL of a generation endpoint."""
        path = self.generation_endpoints.get(name) or DEFAULT_ENDPOINTS[name]
        return f"{self.generation_base_url.rstrip('/')}{path}"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
