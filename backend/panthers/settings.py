"""Settings for the Panthers hub service."""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_field(default, *env_names: str):
	if env_names:
		alias = AliasChoices(*env_names) if len(env_names) > 1 else env_names[0]
		return Field(default=default, validation_alias=alias)
	return Field(default=default)


class Settings(BaseSettings):
	# Managed backend (auth, tables, procedures, functions)
	backend_url: str = _env_field("http://127.0.0.1:54321", "SUPABASE_URL", "BACKEND_URL")
	backend_anon_key: str = _env_field("", "SUPABASE_ANON_KEY", "BACKEND_ANON_KEY")
	backend_service_key: Optional[str] = _env_field(None, "SUPABASE_SERVICE_ROLE_KEY", "BACKEND_SERVICE_KEY")
	backend_jwt_secret: str = _env_field("super-secret-jwt-token-with-at-least-32-characters-long", "SUPABASE_JWT_SECRET", "BACKEND_JWT_SECRET")
	backend_jwt_audience: str = _env_field("authenticated", "BACKEND_JWT_AUDIENCE")
	backend_timeout_seconds: float = _env_field(10.0, "BACKEND_TIMEOUT_SECONDS")

	# Change feed fan-out
	redis_url: str = _env_field("redis://localhost:6379/0", "REDIS_URL")
	change_feed_backend: str = _env_field("memory", "CHANGE_FEED_BACKEND")
	change_feed_channel_prefix: str = _env_field("changes:", "CHANGE_FEED_CHANNEL_PREFIX")
	change_feed_webhook_secret: Optional[str] = _env_field(None, "CHANGE_FEED_WEBHOOK_SECRET")

	# Read-path retries (mutations are never retried)
	retry_max_retries: int = _env_field(3, "RETRY_MAX_RETRIES")
	retry_base_delay_seconds: float = _env_field(1.0, "RETRY_BASE_DELAY_SECONDS")
	retry_backoff_multiplier: float = _env_field(2.0, "RETRY_BACKOFF_MULTIPLIER")

	# Local TTL caches
	role_cache_ttl_seconds: float = 30.0
	teams_cache_ttl_seconds: float = 300.0
	teams_cache_max_entries: int = 50
	request_cache_ttl_seconds: float = 300.0

	# Auth-state bursts collapse into one role refetch after this delay
	refresh_debounce_seconds: float = 0.1
	chat_edit_window_seconds: int = 15 * 60
	chat_recall_window_seconds: int = 2 * 60
	schedule_upcoming_limit: int = 10
	schedule_stream_keepalive_seconds: float = 15.0

	environment: str = _env_field("production", "ENV", "APP_ENV", "ENVIRONMENT")
	service_name: str = _env_field("panthers-hub", "SERVICE_NAME")
	git_commit: str = _env_field("unknown", "GIT_COMMIT", "COMMIT_SHA", "SOURCE_VERSION")
	obs_enabled: bool = _env_field(True, "OBS_ENABLED")
	obs_log_level: str = _env_field("INFO", "LOG_LEVEL")
	obs_log_sampling_rate_info: float = _env_field(1.0, "LOG_SAMPLING_RATE_INFO")
	critical_alert_recipient: str = _env_field("admin@panthersbasketball.com", "CRITICAL_ALERT_RECIPIENT")
	obs_admin_token: Optional[str] = _env_field(None, "OBS_ADMIN_TOKEN")
	cors_allow_origins: list[str] = _env_field(["http://localhost:5173", "http://localhost:3000"], "CORS_ALLOW_ORIGINS")

	model_config = SettingsConfigDict(
		env_prefix="",
		env_file=".env",
		case_sensitive=False,
		extra="ignore",
	)

	@field_validator("backend_url", mode="before")
	def _strip_trailing_slash(cls, value):  # type: ignore[override]
		if isinstance(value, str):
			return value.rstrip("/")
		return value

	@field_validator("change_feed_backend", mode="before")
	def _normalise_feed_backend(cls, value):  # type: ignore[override]
		if value in (None, ""):
			return "memory"
		text = str(value).strip().lower()
		if text not in {"memory", "redis"}:
			raise ValueError("change_feed_backend must be 'memory' or 'redis'")
		return text

	def is_prod(self) -> bool:
		return self.environment.lower() in ("prod", "production", "live")

	def is_dev(self) -> bool:
		return self.environment.lower() in ("dev", "development")


def _normalise_level(level: str) -> str:
	return level.upper()


settings = Settings()
settings.obs_log_level = _normalise_level(settings.obs_log_level)
