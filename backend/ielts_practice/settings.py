from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# Provider can be "vertex" (Vertex AI Express) or "ai_studio" (Generative Language API)
	gemini_provider: str = Field(default="ai_studio", validation_alias="GEMINI_PROVIDER")
	# Free tier scoring model and the higher-tier model used for Pro scoring
	gemini_model_free: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL_FREE")
	gemini_model_pro: str = Field(default="gemini-2.5-pro", validation_alias="GEMINI_MODEL_PRO")
	# Operator override: every request is scored with the Pro model
	ai_pro_mode: bool = Field(default=False, validation_alias="AI_PRO_MODE")
	scoring_max_output_tokens: int = Field(default=1024, validation_alias="SCORING_MAX_OUTPUT_TOKENS")
	# Vertex configuration
	vertex_region: str = Field(default="us-central1", validation_alias="GEMINI_VERTEX_REGION")
	vertex_project: str | None = Field(default=None, validation_alias="GEMINI_VERTEX_PROJECT")

	# Shared secret required by the manual upgrade endpoint
	admin_upgrade_secret: str | None = Field(default=None, validation_alias="ADMIN_UPGRADE_SECRET")

	# Comma separated list; "*" allows any origin
	allowed_origins: str = Field(default="*", validation_alias="ALLOWED_ORIGINS")
	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

	@property
	def origins(self) -> list[str]:
		return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]

settings = Settings()
