from functools import lru_cache

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="forbid",
        validate_by_name=True,
        populate_by_name=True,
    )
    database_url: str = ""

    supabase_jwt_secret: str = ""
    supabase_jwt_audience: str = "authenticated"

    docs_enabled: bool = Field(default=True, validation_alias=AliasChoices("DOCS_ENABLED"))
    openapi_enabled: bool = Field(default=True, validation_alias=AliasChoices("OPENAPI_ENABLED"))
    expose_error_details: bool = False
    log_level: str = "INFO"

    pii_redaction_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("PII_REDACTION_ENABLED"),
    )
    pii_redaction_fields: list[str] = Field(
        default_factory=lambda: [
            "phone",
            "email",
            "e_mail",
            "iban",
            "bic",
            "address",
        ],
        validation_alias=AliasChoices("PII_REDACTION_FIELDS"),
    )

    # Invoice policy. Deposit is a percentage of the invoiced total and the
    # payment-due date is the invoice date plus the grace period.
    invoice_deposit_percent: float = Field(default=30.0, ge=0, le=100)
    invoice_payment_grace_days: int = Field(default=30, ge=0)
    invoice_reference_prefix: str = Field(default="FAC", min_length=1, max_length=8)
    invoice_reference_max_attempts: int = Field(default=5, ge=1)

    cors_allow_origins: list[str] = Field(default_factory=list)
    cors_allow_methods: list[str] = Field(default_factory=lambda: [
        "GET",
        "POST",
        "OPTIONS",
    ])
    cors_allow_headers: list[str] = Field(default_factory=lambda: [
        "Authorization",
        "Content-Type",
        "Accept",
    ])

    @field_validator(
        "cors_allow_origins",
        "cors_allow_methods",
        "cors_allow_headers",
        "pii_redaction_fields",
        mode="before",
    )
    @classmethod
    def _split_csv(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            if value.strip() == "":
                return []
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value):
        return str(value or "INFO").strip().upper()


@lru_cache
def get_settings() -> Settings:
    return Settings()
