from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Literal, Optional


class Settings(BaseSettings):
    # App
    app_name: str = "CMS Workflow"
    debug: bool = False

    # CMS links used in notification emails
    cms_base_url: str = "http://localhost:8080"

    @property
    def cms_admin_url(self) -> str:
        return f"{self.cms_base_url.rstrip('/')}/admin"

    # Database
    database_url: str = "sqlite:///./cmsworkflow.db"
    database_echo: bool = False

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # Celery
    celery_broker_url: Optional[str] = None
    celery_result_backend: Optional[str] = None

    @property
    def celery_broker(self) -> str:
        return self.celery_broker_url or self.redis_url

    @property
    def celery_backend(self) -> str:
        return self.celery_result_backend or self.redis_url

    # Notifications
    notification_mode: Literal["inline", "celery"] = "inline"
    mail_admin_email: str = "admin@cmsworkflow.local"
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_from_name: str = "CMS Workflow"
    smtp_use_tls: bool = True
    smtp_timeout: int = 30

    # Logging
    log_level: str = "INFO"
    log_dir: str = "/var/log/cmsworkflow"
    log_to_file: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"  # Allow extra env vars without raising validation errors
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
