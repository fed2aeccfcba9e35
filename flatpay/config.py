from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ---- App ----
    app_env: str = "local"  # local|dev|prod
    app_version: str = "0.1.0"
    database_url: str = "sqlite:///./flatpay.db"

    # ---- CORS (used by main.py) ----
    cors_allow_origins: list[str] | str = ["*"]

    # ---- Auth ----
    auth_mode: str = "dev"  # dev|jwt
    dev_header_user_id: str = "X-User-Id"

    # Tokens come from the hosted auth provider (HS256, sub = profile id)
    jwt_secret: str = "dev-change-me"
    jwt_audience: str | None = "authenticated"
    jwt_algorithms: list[str] = ["HS256"]

    # ---- Billing ----
    # per_sqft charges on units without size_sqft: fail generation (True) or skip + warn (False)
    strict_unit_sizes: bool = True
    default_due_date_days: int = 15
    default_timezone: str = "Asia/Kolkata"
    currency_code: str = "INR"
    currency_label: str = "Rs."

    # ---- Object storage ----
    storage_backend: str = "local"  # local|supabase
    storage_bucket: str = "invoices"
    storage_dir: str = "./storage"
    storage_public_base_url: str = "http://localhost:8000/api/storage"
    storage_signing_secret: str = "dev-storage-secret"
    pdf_url_ttl_seconds: int = 60 * 60 * 24 * 30  # 30 days

    supabase_url: str | None = None
    supabase_service_role_key: str | None = None
    storage_timeout_seconds: float = 20.0

    # ---- Messaging webhook ----
    messaging_webhook_url: str | None = None
    messaging_api_key: str | None = None
    messaging_event_name: str = "InvoiceSent"
    default_country_code: str = "91"
    webhook_timeout_seconds: float = 15.0
    webhook_max_concurrency: int = 10

    def model_post_init(self, __context) -> None:
        env = (self.app_env or "local").strip().lower()
        is_prod = env in ("prod", "production")

        if is_prod:
            if (self.auth_mode or "").strip().lower() == "dev":
                raise ValueError("SECURITY: auth_mode=dev is not allowed in prod")
            if self.jwt_secret == "dev-change-me":
                raise ValueError("SECURITY: jwt_secret must be set in prod")
            if self.storage_signing_secret == "dev-storage-secret":
                raise ValueError("SECURITY: storage_signing_secret must be set in prod")

            origins = self.cors_allow_origins
            if origins == "*" or origins == ["*"] or (isinstance(origins, str) and "*" in origins):
                raise ValueError("SECURITY: cors_allow_origins wildcard is not allowed in prod")


settings = Settings()
