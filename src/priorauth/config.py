"""
Server Configuration

Settings groups for the application, matching, record store and auth hook.
Each group reads its own environment prefix and an optional .env file.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from priorauth.mpi.models import Profile

IDENTITY_MATCHING_SD = "http://hl7.org/fhir/us/identity-matching/StructureDefinition"


class AppSettings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="PRIORAUTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    env: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: str = "INFO"
    json_logs: bool = True
    redact_phi: bool = True

    # Fixed service base URL; derived per request when unset
    base_url: str | None = None

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 9015


class MatchSettings(BaseSettings):
    """Patient/$match scoring and profile settings."""

    model_config = SettingsConfigDict(
        env_prefix="MATCH_",
        env_file=".env",
        extra="ignore",
    )

    score_floor: int = 0
    max_results: int | None = Field(default=None, ge=1)
    include_photo_in_composite_weight: bool = True
    scoring_scheme: Literal["default", "extended"] = "default"
    timeout_seconds: float = Field(default=30.0, gt=0)

    # Profile StructureDefinition URLs
    profile_base_url: str = f"{IDENTITY_MATCHING_SD}/IDI-Patient"
    profile_l0_url: str = f"{IDENTITY_MATCHING_SD}/IDI-Patient-L0"
    profile_l1_url: str = f"{IDENTITY_MATCHING_SD}/IDI-Patient-L1"

    @property
    def profile_urls(self) -> dict[Profile, str]:
        """Map each recognized profile to its URL."""
        return {
            Profile.BASE: self.profile_base_url,
            Profile.L0: self.profile_l0_url,
            Profile.L1: self.profile_l1_url,
        }


class StoreSettings(BaseSettings):
    """Patient record store settings."""

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        env_file=".env",
        extra="ignore",
    )

    backend: Literal["memory", "postgres"] = "memory"
    seed_bundle: Path | None = None

    # PostgreSQL
    host: str = "localhost"
    port: int = 5432
    user: str = "priorauth"
    password: SecretStr = Field(default=SecretStr("priorauth_dev_password"))
    database: str = "priorauth"
    min_pool_size: int = 2
    max_pool_size: int = 10

    @property
    def connection_url(self) -> str:
        """Get the PostgreSQL connection URL."""
        pwd = self.password.get_secret_value()
        return f"postgresql://{self.user}:{pwd}@{self.host}:{self.port}/{self.database}"


class AuthSettings(BaseSettings):
    """Bearer-token authorization hook settings."""

    model_config = SettingsConfigDict(
        env_prefix="AUTH_",
        env_file=".env",
        extra="ignore",
    )

    enabled: bool = False
    jwt_secret_key: SecretStr = Field(default=SecretStr("jwt-secret-change-me"))
    jwt_algorithm: str = "HS256"
    audience: str | None = None


class Settings:
    """
    Aggregated settings container.

    Usage:
        from priorauth.config import get_settings
        settings = get_settings()
        print(settings.match.score_floor)
        print(settings.store.connection_url)
    """

    def __init__(
        self,
        app: AppSettings | None = None,
        match: MatchSettings | None = None,
        store: StoreSettings | None = None,
        auth: AuthSettings | None = None,
    ):
        self.app = app or AppSettings()
        self.match = match or MatchSettings()
        self.store = store or StoreSettings()
        self.auth = auth or AuthSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: The application settings
    """
    return Settings()
