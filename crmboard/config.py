"""All settings, loaded from the .env file."""
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    app_env: str = "development"
    app_url: str = "http://localhost:8000"

    # Backend-as-a-Service (auth, REST tables, storage)
    baas_url: str = "http://localhost:54321"
    baas_anon_key: str = ""
    baas_service_key: str = ""

    # "rest" talks to the BaaS, "sql" goes straight to database_url
    gateway_backend: str = "rest"
    database_url: str = "sqlite:///./crmboard.db"

    # Workflow webhooks
    campaign_webhook_url_stage: str = "https://n8n.advcrm.com.br/webhook/campanhas_crm"
    campaign_webhook_url_tags: str = "https://n8n.advcrm.com.br/webhook/campanhas_crm_tags"
    greeting_upload_webhook_url: str = "https://n8n.advcrm.com.br/webhook/greeting-upload"
    message_webhook_url: str = ""
    media_bucket: str = "chatmedia"

    # Board behavior
    persistence_timeout_seconds: float = 10.0
    virtualization_threshold: int = 10
    virtualization_overscan: int = 3
    estimated_row_height: int = 96

    # Client-local preferences file
    preferences_path: str = ".crmboard/preferences.json"

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    class Config:
        env_file = ".env"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
