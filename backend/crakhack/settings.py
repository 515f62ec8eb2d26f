from __future__ import annotations
import os
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    """
    Centralized configuration for the CRAK HACK site.
    Loads from .env file or environment variables.
    """
    model_config = SettingsConfigDict(
        env_file=os.path.join(os.path.dirname(__file__), ".env"),
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Screener gate
    SCREENER_PASSWORD: str = ""
    SCREENER_PREFIX: str = "/crakhackscreener666"
    LEGACY_SCREENER_PREFIX: str = "/screener"
    SCREENER_HOSTS_STR: str = "screener.crakhack.com,screener.crackhack.com"
    SCREENER_EMBED_URL: str = "https://www.youtube.com/embed/fFvuAAQw5b4"
    ALLOW_PREVIEW_BOTS: bool = True

    # Cloudflare GraphQL Analytics
    CLOUDFLARE_GRAPHQL_URL: str = "https://api.cloudflare.com/client/v4/graphql"
    CLOUDFLARE_API_TOKEN: Optional[str] = None
    CLOUDFLARE_ZONE_ID: Optional[str] = None
    CLOUDFLARE_HOSTNAME: Optional[str] = None
    CLOUDFLARE_SCREENER_HOSTNAME: Optional[str] = None
    CLOUDFLARE_TIMEOUT_SECONDS: float = 30.0
    CLOUDFLARE_MAX_CONCURRENCY: int = 8

    # R2 storage stats
    CLOUDFLARE_ACCOUNT_ID: Optional[str] = None
    R2_BUCKET_NAME: Optional[str] = None

    # CORS
    ALLOWED_ORIGINS_STR: str = "https://crakhack.com"

    @field_validator(
        "CLOUDFLARE_API_TOKEN",
        "CLOUDFLARE_ZONE_ID",
        "CLOUDFLARE_HOSTNAME",
        "CLOUDFLARE_SCREENER_HOSTNAME",
        "CLOUDFLARE_ACCOUNT_ID",
        "R2_BUCKET_NAME",
        mode="before",
    )
    @classmethod
    def blank_as_missing(cls, value):
        """Treat empty env values the same as unset ones"""
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def SCREENER_PREFIXES(self) -> List[str]:
        """Every protected namespace, primary first"""
        prefixes = [self.SCREENER_PREFIX.rstrip("/")]
        legacy = self.LEGACY_SCREENER_PREFIX.rstrip("/")
        if legacy and legacy not in prefixes:
            prefixes.append(legacy)
        return prefixes

    @property
    def SCREENER_HOSTS(self) -> List[str]:
        """Parse comma-separated screener hostnames into a normalized list"""
        return [host.strip().lower() for host in self.SCREENER_HOSTS_STR.split(",") if host.strip()]

    @property
    def ALLOWED_ORIGINS(self) -> List[str]:
        """Parse comma-separated origins into a list"""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS_STR.split(",") if origin.strip()]

settings = Settings()
