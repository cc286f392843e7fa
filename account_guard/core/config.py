"""Library configuration using Pydantic Settings.

Configuration is loaded from environment variables prefixed with
``ACCOUNT_GUARD_``. Optionally, point ``ENV_FILE`` at a local env file for
development; nothing is read from disk unless it is set.
"""

import os
from enum import Enum

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from solders.pubkey import Pubkey

TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"


class AppEnvironment(str, Enum):
    """Application environment values."""

    LOCAL = "local"
    TEST = "test"
    PROD = "prod"


class Settings(BaseSettings):
    """
    Library settings with type validation.

    Rent constants default to the host platform's published values; the
    expression limits bound the work done at policy-definition time.
    """

    model_config = SettingsConfigDict(
        env_file=os.getenv("ENV_FILE") or None, env_prefix="ACCOUNT_GUARD_", extra="ignore"
    )

    # Application
    app_env: AppEnvironment = AppEnvironment.LOCAL
    app_name: str = "account-guard"
    app_log_level: str = "INFO"

    # Observability
    observability_structured_logs: bool = True
    metrics_enabled: bool = True

    # OpenTelemetry Configuration
    otel_enabled: bool = False
    otel_service_name: str = "account-guard"
    otel_exporter_otlp_endpoint: str = "http://localhost:4317"
    otel_exporter_otlp_headers: str | None = None
    otel_traces_sampler: str = "parent_trace_always"
    otel_traces_sampler_arg: float = 1.0

    # Expression engine limits
    expression_max_length: int = 4096
    expression_max_depth: int = 64
    expression_cache_size: int = 512

    # Rent (lamports per byte-year, years to exemption, per-account overhead bytes)
    rent_lamports_per_byte_year: int = 3480
    rent_exemption_threshold: float = 2.0
    rent_account_storage_overhead: int = 128

    # Token program assumed when a token/mint constraint names none
    default_token_program: str = TOKEN_PROGRAM_ID

    @field_validator("app_env", mode="before")
    @classmethod
    def validate_app_env(cls, v: str | AppEnvironment) -> AppEnvironment:
        """Validate and parse app_env to AppEnvironment enum."""
        if isinstance(v, AppEnvironment):
            return v
        try:
            return AppEnvironment(v.lower())
        except ValueError:
            raise ValueError(
                f"app_env must be one of {[e.value for e in AppEnvironment]}, got '{v}'"
            )

    @field_validator("app_log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"app_log_level must be a standard logging level, got '{v}'")
        return level

    @field_validator(
        "expression_max_length",
        "expression_max_depth",
        "expression_cache_size",
        "rent_lamports_per_byte_year",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"value must be positive, got {v}")
        return v

    @field_validator("rent_account_storage_overhead")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"value must not be negative, got {v}")
        return v

    @field_validator("default_token_program")
    @classmethod
    def validate_token_program(cls, v: str) -> str:
        """Reject a default token program that is not a base58 public key."""
        try:
            Pubkey.from_string(v)
        except ValueError as exc:
            raise ValueError(f"default_token_program is not a valid public key: '{v}'") from exc
        return v

    @property
    def default_token_program_key(self) -> Pubkey:
        return Pubkey.from_string(self.default_token_program)

    @model_validator(mode="after")
    def validate_rent_settings(self) -> "Settings":
        if self.rent_exemption_threshold <= 0:
            raise ValueError("rent_exemption_threshold must be positive")
        if not 0.0 <= self.otel_traces_sampler_arg <= 1.0:
            raise ValueError("otel_traces_sampler_arg must be between 0.0 and 1.0")
        return self


settings = Settings()
