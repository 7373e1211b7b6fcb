from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	# "production" hides diagnostic traces from 500 responses
	environment: str = Field(default="development", validation_alias="ENVIRONMENT")
	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
	cors_origins_str: str = Field(default="http://localhost:3000", validation_alias="CORS_ORIGINS")

	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# Provider can be "vertex" (Vertex AI Express) or "ai_studio" (Generative Language API)
	gemini_provider: str = Field(default="ai_studio", validation_alias="GEMINI_PROVIDER")
	gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
	gemini_timeout_seconds: float = Field(default=60.0, validation_alias="GEMINI_TIMEOUT_SECONDS")
	# Vertex configuration
	vertex_region: str = Field(default="us-central1", validation_alias="GEMINI_VERTEX_REGION")
	vertex_project: str | None = Field(default=None, validation_alias="GEMINI_VERTEX_PROJECT")

	# Auth configuration
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=120, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")
	allow_admin_signup: bool = Field(default=False, validation_alias="ALLOW_ADMIN_SIGNUP")
	# Seed admin, created at startup when both email and password are set
	seed_admin_email: str | None = Field(default=None, validation_alias="SEED_ADMIN_EMAIL")
	seed_admin_password: str | None = Field(default=None, validation_alias="SEED_ADMIN_PASSWORD")
	seed_admin_name: str = Field(default="Administrator", validation_alias="SEED_ADMIN_NAME")

	# Uploads
	upload_dir: str = Field(default="./uploads", validation_alias="UPLOAD_DIR")
	max_upload_mb: int = Field(default=10, validation_alias="MAX_UPLOAD_MB")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

	@property
	def is_production(self) -> bool:
		return self.environment.lower() == "production"

	@property
	def cors_origins(self) -> list[str]:
		return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

settings = Settings()
