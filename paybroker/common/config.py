"""Central environment-driven settings for the broker process.

The process loads this once at startup. Deployment-specific behavior is
controlled by environment variables (see `.env.example`).
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class BrokerSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "payment-broker"
    log_level: str = "INFO"
    redis_url: str = "redis://redis:6379/0"
    api_key: str = "dev-secret"
    gateway_base_url: str = "http://payment-gateway:8080"
    gateway_client_id: str = ""
    gateway_client_secret: str = ""
    gateway_timeout_seconds: float = 10.0
    payment_page_base_url: str = "http://payment-gateway:8080/pay"
    transaction_id_ttl_seconds: int = 86400
    transaction_id_max_sequence: int = 99
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318/v1/traces"
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = BrokerSettings()
