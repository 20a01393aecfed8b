"""Configuration for the reconciliation engine.

Pydantic-based settings; every field can be overridden through an environment
variable with the ``CLUBPAY_`` prefix or a ``.env`` file.

Environment Variables:
- CLUBPAY_DATABASE_URL: SQLAlchemy URL of the persistence store
- CLUBPAY_LOOKAHEAD_DAYS: How far ahead recurring obligations are created (default: 30)
- CLUBPAY_MAX_GENERATIONS_PER_RUN: Safety bound per template and run (default: 12)
- CLUBPAY_AMOUNT_EPSILON: Tolerance for allocation sums (default: 0.01)
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings.

    Example:
        >>> settings = Settings(lookahead_days=14)
        >>> settings.lookahead_days
        14
    """

    model_config = SettingsConfigDict(
        env_prefix="CLUBPAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    database_url: str = Field(
        default="sqlite:///./clubpay.db",
        description="SQLAlchemy database URL used by the persistence backend",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    json_logs: bool = Field(default=False, description="Emit JSON logs instead of console output")

    # Money
    default_currency: str = Field(
        default="EUR",
        min_length=3,
        max_length=3,
        description="Currency assumed when a statement amount carries no Ccy attribute",
    )
    amount_epsilon: Decimal = Field(
        default=Decimal("0.01"),
        gt=0,
        description="Tolerance used when comparing allocation sums with amounts",
    )

    # Recurring obligations
    lookahead_days: int = Field(
        default=30,
        ge=0,
        le=366,
        description="Instances due further than this many days ahead are not generated",
    )
    max_generations_per_run: int = Field(
        default=12,
        ge=1,
        le=120,
        description="Maximum instances generated per template in one scheduler run",
    )

    # Matching
    min_name_length: int = Field(
        default=3,
        ge=1,
        description="Shortest last name used by the substring matching rules",
    )

    # Texts
    unknown_payer_name: str = Field(
        default="Unknown payer",
        description="Payer name stored when the statement does not provide one",
    )
    club_name: str = Field(default="The Club", description="Signature of overdue notices")

    @field_validator("default_currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
