from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# Provider can be "vertex" (Vertex AI Express) or "ai_studio" (Generative Language API)
	gemini_provider: str = Field(default="ai_studio", validation_alias="GEMINI_PROVIDER")
	gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
	# Vertex configuration
	vertex_region: str = Field(default="us-central1", validation_alias="GEMINI_VERTEX_REGION")
	vertex_project: str | None = Field(default=None, validation_alias="GEMINI_VERTEX_PROJECT")
	# Refuse to boot without a key; the tutor/guardrail/evaluator endpoints cannot work without it
	require_llm_credentials: bool = Field(default=True, validation_alias="REQUIRE_LLM_CREDENTIALS")

	# OpenRouter fallback configuration (optional)
	openrouter_api_key: str | None = Field(default=None, validation_alias="OPENROUTER_API_KEY")
	openrouter_model: str = Field(default="x-ai/grok-4-fast:free", validation_alias="OPENROUTER_MODEL")
	openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1/chat/completions", validation_alias="OPENROUTER_BASE_URL")
	openrouter_referer: str = Field(default="https://localhost", validation_alias="OPENROUTER_HTTP_REFERER")
	openrouter_title: str = Field(default="Math Tutor", validation_alias="OPENROUTER_TITLE")

	# Session policy
	session_duration_seconds: int = Field(default=30 * 60, validation_alias="SESSION_DURATION_SECONDS")
	inactivity_threshold_seconds: float = Field(default=30, validation_alias="INACTIVITY_THRESHOLD_SECONDS")
	max_warnings: int = Field(default=2, validation_alias="MAX_WARNINGS")
	termination_severity: int = Field(default=3, validation_alias="TERMINATION_SEVERITY")
	context_window: int = Field(default=5, validation_alias="CONTEXT_WINDOW")
	# "additive" adds each raw 1-5 evaluator score to the running total, "delta" adds its distance
	# from the neutral 3, "absolute" replaces the total
	score_mode: str = Field(default="additive", validation_alias="SCORE_MODE")
	show_termination_notice: bool = Field(default=True, validation_alias="SHOW_TERMINATION_NOTICE")
	# Finished sessions stay readable (and restartable) this long before the sweep drops them
	session_retention_seconds: float = Field(default=600, validation_alias="SESSION_RETENTION_SECONDS")
	session_sweep_seconds: float = Field(default=60, validation_alias="SESSION_SWEEP_SECONDS")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
