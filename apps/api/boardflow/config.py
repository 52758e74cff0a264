from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore")

  database_url: str = "postgresql+asyncpg://boardflow:boardflow@db:5432/boardflow"
  app_secret: str = "dev-secret-change-me"
  app_version: str = "v2026-10-17"
  build_sha: str = "dev"
  api_docs_enabled: bool = True
  log_level: str = "INFO"

  cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
  cors_origin_regex: str = r"^http://(localhost|127\.0\.0\.1):3000$"
  trusted_hosts: str = "localhost,127.0.0.1,api,web,test"

  automation_enabled: bool = True
  automation_poll_interval_seconds: int = 60
  automation_timezone: str = "UTC"
  automation_allow_skip_override: bool = True

  notification_dispatch_enabled: bool = True
  notification_dispatch_interval_seconds: int = 60
  notification_webhook_timeout_seconds: float = 15.0
  notification_batch_limit: int = 100

  # Bearer token for the scheduled job endpoints (cron / pg_cron / external scheduler).
  job_token: str | None = None

  def cors_origin_list(self) -> list[str]:
    return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

  def trusted_host_list(self) -> list[str]:
    return [h.strip() for h in self.trusted_hosts.split(",") if h.strip()]


settings = Settings()
