from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore")

  database_url: str = "postgresql+asyncpg://tasklane:tasklane@db:5432/tasklane"
  fernet_key: str = "AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA="
  app_version: str = "v2026-10-17"
  build_sha: str = "dev"
  api_docs_enabled: bool = True
  log_level: str = "INFO"
  api_host: str = "0.0.0.0"
  api_port: int = 8000

  cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
  cors_origin_regex: str = r"^http://(localhost|127\.0\.0\.1):3000$"
  trusted_hosts: str = "localhost,127.0.0.1,api,web,test"

  github_api_url: str = "https://api.github.com"
  github_user_agent: str = "Tasklane/1.0"
  github_timeout_seconds: float = 15.0
  github_webhook_secret: str | None = None
  github_label_color: str = "0e8a16"
  github_project_items_page_size: int = 100
  github_project_items_max_pages: int = 10

  def cors_origin_list(self) -> list[str]:
    return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

  def trusted_host_list(self) -> list[str]:
    return [h.strip() for h in self.trusted_hosts.split(",") if h.strip()]


settings = Settings()
