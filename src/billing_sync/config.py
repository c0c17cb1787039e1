from pydantic_settings import BaseSettings, SettingsConfigDict

from billing_sync.services.errors import ConfigurationError


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    stripe_secret_key: str | None = None
    stripe_webhook_secret: str | None = None
    webhook_tolerance_seconds: int = 300

    supabase_url: str | None = None
    supabase_service_key: str | None = None

    acknowledge_reconcile_failures: bool = True

    provider_timeout_seconds: float = 10.0
    storage_timeout_seconds: float = 10.0

    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    def require_webhook_secret(self) -> str:
        """Return the signing secret or fail with a configuration error."""
        if not self.stripe_webhook_secret:
            raise ConfigurationError("STRIPE_WEBHOOK_SECRET is not configured")
        return self.stripe_webhook_secret

    def require_stripe_key(self) -> str:
        if not self.stripe_secret_key:
            raise ConfigurationError("STRIPE_SECRET_KEY is not configured")
        return self.stripe_secret_key


settings = Settings()
