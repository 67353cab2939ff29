"""Central environment-driven settings for the checkout gateway.

The process loads this once at startup. Gateway behavior (API keys, test/live
mode, deferred capture, extra form fields) is controlled by environment
variables (see `.env.example`).
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GatewaySettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "checkout-gateway"
    log_level: str = "INFO"
    database_dsn: str
    api_key: str
    redis_url: str = "redis://redis:6379/0"
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318/v1/traces"
    tracing_enabled: bool = True
    store_url: str = "http://localhost:8000"
    processor_api_url: str = "https://api.stripe.com/"
    processor_timeout_seconds: float = 70.0

    enabled: bool = True
    title: str = "Credit Card Payment"
    description: str = ""
    testmode: bool = False
    capture: bool = False
    additional_fields: bool = False
    test_secret_key: str = ""
    test_publishable_key: str = ""
    live_secret_key: str = ""
    live_publishable_key: str = ""
    force_ssl_checkout: bool = False

    submission_lock_enabled: bool = False
    submission_lock_ttl_seconds: int = 120

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("test_secret_key", "live_secret_key")
    @classmethod
    def _check_secret_key(cls, value: str) -> str:
        value = value.strip()
        if value and not value.startswith(("sk_", "rk_")):
            raise ValueError("secret keys must start with sk_ or rk_")
        return value

    @field_validator("test_publishable_key", "live_publishable_key")
    @classmethod
    def _check_publishable_key(cls, value: str) -> str:
        value = value.strip()
        if value and not value.startswith("pk_"):
            raise ValueError("publishable keys must start with pk_")
        return value

    @property
    def secret_key(self) -> str:
        """Secret key for the active mode."""

        return self.test_secret_key if self.testmode else self.live_secret_key

    @property
    def publishable_key(self) -> str:
        """Publishable key for the active mode."""

        return self.test_publishable_key if self.testmode else self.live_publishable_key


settings = GatewaySettings()
