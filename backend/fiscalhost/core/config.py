from functools import lru_cache
import json
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_list_value(value: str) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        raw = value.strip()
        if raw == "":
            return []
        try:
            parsed = json.loads(raw)
            if isinstance(parsed, list):
                return [str(item).strip() for item in parsed if str(item).strip()]
        except ValueError:
            pass
        return [item.strip() for item in raw.split(",") if item.strip()]
    if isinstance(value, list):
        return [str(item).strip() for item in value if str(item).strip()]
    return []


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="forbid",
        validate_by_name=True,
        populate_by_name=True,
    )
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("ENVIRONMENT", "APP_ENV"),
    )
    database_url: str = ""

    docs_enabled: bool = Field(default=True)
    openapi_enabled: bool = Field(default=True)
    expose_error_details: bool = Field(
        default=False,
        validation_alias=AliasChoices("EXPOSE_ERROR_DETAILS"),
    )

    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: str = ""
    expense_attachments_bucket: str = Field(
        default="expense-attachments",
        validation_alias=AliasChoices("EXPENSE_ATTACHMENTS_BUCKET"),
    )

    # Legal documents: amount in cents, summed per submitter, host and calendar year.
    us_tax_form_threshold: int = Field(
        default=600_00,
        ge=0,
        validation_alias=AliasChoices("US_TAX_FORM_THRESHOLD"),
    )

    enable_collective_search: bool = Field(
        default=True,
        validation_alias=AliasChoices("ENABLE_COLLECTIVE_SEARCH"),
    )
    algolia_app_id: str = Field(default="", validation_alias=AliasChoices("ALGOLIA_APP_ID"))
    algolia_api_key: str = Field(default="", validation_alias=AliasChoices("ALGOLIA_API_KEY", "ALGOLIA_APP_KEY"))
    algolia_index: str = Field(default="", validation_alias=AliasChoices("ALGOLIA_INDEX"))
    search_timeout_seconds: float = 5.0

    # Platform tips settlement
    platform_collective_id: str = Field(default="", validation_alias=AliasChoices("PLATFORM_COLLECTIVE_ID"))
    platform_settlement_user_id: str = Field(
        default="",
        validation_alias=AliasChoices("PLATFORM_SETTLEMENT_USER_ID"),
    )
    platform_wise_payout_method_id: str = Field(
        default="",
        validation_alias=AliasChoices("PLATFORM_WISE_PAYOUT_METHOD_ID", "PLATFORM_TRANSFERWISE_PAYOUT_METHOD_ID"),
    )
    platform_paypal_payout_method_id: str = Field(
        default="",
        validation_alias=AliasChoices("PLATFORM_PAYPAL_PAYOUT_METHOD_ID"),
    )

    pii_redaction_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("PII_REDACTION_ENABLED"),
    )
    pii_redaction_fields: list[str] = Field(
        default_factory=lambda: [
            "phone",
            "email",
            "address",
            "ssn",
            "tax_id",
            "passport",
            "national_id",
            "id_number",
        ],
        validation_alias=AliasChoices("PII_REDACTION_FIELDS"),
    )

    cors_allow_origins_raw: str = Field(
        default="",
        validation_alias=AliasChoices("CORS_ALLOW_ORIGINS"),
    )
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

    @property
    def cors_allow_origins(self) -> list[str]:
        return _parse_list_value(self.cors_allow_origins_raw)

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    @property
    def algolia_configured(self) -> bool:
        return bool(self.algolia_app_id and self.algolia_api_key and self.algolia_index)

    def validate_required_config(self) -> list[str]:
        errors: list[str] = []
        if not self.database_url:
            errors.append("DATABASE_URL is not set")
        algolia_parts = [self.algolia_app_id, self.algolia_api_key, self.algolia_index]
        if any(algolia_parts) and not all(algolia_parts):
            errors.append("ALGOLIA_APP_ID, ALGOLIA_API_KEY and ALGOLIA_INDEX must be set together")
        if not self.platform_collective_id:
            errors.append("PLATFORM_COLLECTIVE_ID is not set")
        return errors

@lru_cache

def get_settings() -> Settings:
    return Settings()
