from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore")

  database_url: str = "postgresql+asyncpg://trelloai:trelloai@db:5432/trelloai"
  app_secret: str = "dev-secret-change-me"
  jwt_algorithm: str = "HS256"
  session_ttl_days: int = 7
  app_version: str = "v2026-10-19"
  build_sha: str = "dev"
  environment: str = "development"  # development | production
  log_level: str = "INFO"
  api_docs_enabled: bool = True

  cookie_secure: bool = False
  cookie_domain: str | None = None

  rate_limit_login_ip_per_minute: int = 60
  rate_limit_login_email_per_minute: int = 20
  rate_limit_register_ip_per_minute: int = 20
  rate_limit_register_email_per_minute: int = 5
  redis_url: str | None = None

  cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
  cors_origin_regex: str = r"^http://(localhost|127\.0\.0\.1):3000$"
  trusted_hosts: str = "localhost,127.0.0.1,0.0.0.0,api,web"

  ai_provider: str = "local"  # local | openai
  openai_api_key: str | None = None
  openai_base_url: str = "https://api.openai.com/v1"
  openai_chat_model: str = "gpt-4o-mini"
  openai_timeout_seconds: float = 60

  embedding_provider: str = "local"  # local | openai
  embedding_model: str = "text-embedding-3-small"
  embedding_dimensions: int = 1024

  vector_provider: str = "local"  # local | pinecone
  pinecone_api_key: str | None = None
  pinecone_index_host: str | None = None
  pinecone_namespace: str = ""

  search_top_k: int = 10
  search_min_score: float = 0.7
  search_timeout_seconds: float = 10
  # Unset: the chat router reaches the search endpoint in-process.
  internal_api_base_url: str | None = None

  vector_sync_enabled: bool = True
  vector_sync_interval_seconds: int = 15
  vector_sync_max_attempts: int = 5

  def is_production(self) -> bool:
    return self.environment.strip().lower() == "production"

  def cors_origin_list(self) -> list[str]:
    return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

  def trusted_host_list(self) -> list[str]:
    return [h.strip() for h in self.trusted_hosts.split(",") if h.strip()]


settings = Settings()
