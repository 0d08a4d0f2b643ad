"""
Application settings for the TTP gateway service.

- Defaults are intended for development use against a local TTP stack.
- For local runs, override via a .env file in the working directory.
- For production, set environment variables to override fields.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """TTP gateway configuration."""

    log_level: str = Field(default="INFO", description="Root log level")

    # E-PIX Configuration
    epix_url: str = Field(
        default="http://localhost:8080",
        description="Base URL of the E-PIX deployment (TTP-FHIR and SOAP)",
    )
    epix_domain: str = Field(
        default="kks",
        description="E-PIX domain identities are matched in",
    )
    epix_domain_description: str = Field(
        default="Study participants",
        description="Description used when creating the E-PIX domain",
    )
    epix_identifier_domain: str = Field(
        default="MPI",
        description="E-PIX identifier domain issuing MPI ids",
    )
    epix_data_source: str = Field(
        default="gateway",
        description="E-PIX data source identities are submitted from",
    )
    epix_matching_config: Path = Field(
        default=Path("resources/matching_config.xml"),
        description="Matching configuration sent when creating the E-PIX domain",
    )

    # gPAS Configuration
    gpas_url: str = Field(
        default="http://localhost:8081",
        description="Base URL of the gPAS deployment (TTP-FHIR and SOAP)",
    )

    # Shared TTP transport
    ttp_username: str | None = Field(
        default=None,
        description="Basic auth user for E-PIX and gPAS",
    )
    ttp_password: str | None = Field(
        default=None,
        description="Basic auth password for E-PIX and gPAS",
    )
    ttp_timeout: float = Field(
        default=30.0,
        description="Timeout for a single TTP request in seconds",
    )
    retry_count: int = Field(
        default=3,
        description="Maximum number of retries for transient TTP failures",
    )
    retry_wait: float = Field(
        default=0.5,
        description="Initial backoff between retries in seconds",
    )
    retry_max_wait: float = Field(
        default=10.0,
        description="Upper bound for the backoff between retries in seconds",
    )
    request_timeout: float = Field(
        default=120.0,
        description="Timeout for a complete create/read workflow in seconds",
    )

    # OIDC Configuration
    oidc_issuer_url: str | None = Field(
        default=None,
        description="OIDC issuer; bearer auth is disabled when unset",
    )
    oidc_client_id: str | None = Field(
        default=None,
        description="Client id expected in the token audience",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def model_post_init(self, __context: object) -> None:
        """Normalize derived settings after model construction."""
        self.epix_url = self.epix_url.rstrip("/")
        self.gpas_url = self.gpas_url.rstrip("/")
        if self.retry_max_wait < self.retry_wait:
            self.retry_max_wait = self.retry_wait


settings = Settings()
