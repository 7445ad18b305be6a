from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore")

  database_url: str = "postgresql+asyncpg://collabtask:collabtask@db:5432/collabtask"
  database_echo: bool = False
  app_version: str = "v2025-10-25+r1"
  build_sha: str = "dev"
  api_docs_enabled: bool = True

  jwt_secret: str = "dev-secret-change-me"
  jwt_algorithm: str = "HS256"
  jwt_issuer: str = "collabtask"
  jwt_ttl_minutes: int = 60

  cors_origins: str = "http://localhost:5173,http://127.0.0.1:5173"
  cors_origin_regex: str = r"^http://(localhost|127\.0\.0\.1):5173$"
  trusted_hosts: str = "localhost,127.0.0.1,0.0.0.0,api,web,testserver"

  # Upper bound for a single storage round trip on the write path.
  storage_timeout_seconds: float = 10.0
  event_queue_size: int = 256

  log_level: str = "INFO"
  log_format: str = "json"  # json | console

  def cors_origin_list(self) -> list[str]:
    return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

  def trusted_host_list(self) -> list[str]:
    return [h.strip() for h in self.trusted_hosts.split(",") if h.strip()]


settings = Settings()
