"""Configuración centralizada del kbsync con pydantic-settings."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Todas las variables se leen desde env vars con prefijo KBSYNC_."""

    # --- Postgres (content assets) ---
    database_url: str

    # --- Salesforce OAuth ---
    sf_login_url: str = "https://login.salesforce.com"
    sf_grant_type: str = "password"
    sf_client_id: str = ""
    sf_client_secret: str = ""
    sf_username: str = ""
    sf_password: str = ""
    sf_security_token: str = ""
    sf_api_version: str = "v58.0"
    sf_service_id: str = "salesforce.knowledge.api"
    sf_timeout_seconds: float = 30.0

    # --- Export ---
    site_id: str = "default"
    site_configurations: str = ""
    article_language: str = "en_US"

    # --- API ---
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    model_config = {"env_prefix": "KBSYNC_", "env_file": ".env"}


def get_settings() -> Settings:
    """Singleton perezoso para la configuración."""
    return Settings()  # type: ignore[call-arg]
