from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


PLACEHOLDER_SECRETS = {"dev-secret-change-me", "replace_with_strong_random_secret"}
PLACEHOLDER_FERNET_KEYS = {"AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA=", "REPLACE_WITH_FERNET_KEY"}


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore")

  database_url: str = "sqlite+aiosqlite:///./data/geminiflow.db"
  db_auto_create: bool = True
  app_secret: str = "dev-secret-change-me"
  fernet_key: str = "AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA="
  app_version: str = "v2026-10-19"
  build_sha: str = "dev"
  log_level: str = "INFO"

  token_ttl_days: int = 7
  rate_limit_login_ip_per_minute: int = 60
  rate_limit_login_username_per_minute: int = 20
  redis_url: str | None = None

  cors_origins: str = "*"

  upload_dir: str = "data/uploads"
  max_upload_bytes_hard: int = 50 * 1024 * 1024
  static_dir: str | None = None

  ai_timeout_seconds: float = 60.0
  gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
  openai_base_url: str = "https://api.openai.com/v1"

  def cors_origin_list(self) -> list[str]:
    return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

  def is_sqlite(self) -> bool:
    return self.database_url.startswith("sqlite")


settings = Settings()
