from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	# "development" shows internal error messages, anything else masks them
	environment: str = Field(default="development", validation_alias="ENVIRONMENT")
	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# Gemini is the primary AI provider
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	gemini_model: str = Field(default="gemini-2.0-flash", validation_alias="GEMINI_MODEL")
	gemini_base_url: str = Field(default="https://generativelanguage.googleapis.com/v1beta/models", validation_alias="GEMINI_BASE_URL")

	# OpenAI fallback (chat completions API)
	openai_api_key: str | None = Field(default=None, validation_alias="OPENAI_API_KEY")
	openai_model: str = Field(default="gpt-4o-mini", validation_alias="OPENAI_MODEL")
	openai_base_url: str = Field(default="https://api.openai.com/v1/chat/completions", validation_alias="OPENAI_BASE_URL")
	ai_timeout_seconds: float = Field(default=60, validation_alias="AI_TIMEOUT_SECONDS")

	# Google Cloud Speech-to-Text (uses application default credentials)
	google_speech_enabled: bool = Field(default=False, validation_alias="GOOGLE_SPEECH_ENABLED")
	speech_language_code: str = Field(default="ar-SA", validation_alias="SPEECH_LANGUAGE_CODE")

	# Google sign-in
	google_client_id: str | None = Field(default=None, validation_alias="GOOGLE_CLIENT_ID")

	# Auth configuration
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_refresh_secret_key: str = Field(default="change-me-too", validation_alias="JWT_REFRESH_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=15, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")
	refresh_token_expire_days: int = Field(default=7, validation_alias="REFRESH_TOKEN_EXPIRE_DAYS")
	reset_token_expire_minutes: int = Field(default=60, validation_alias="RESET_TOKEN_EXPIRE_MINUTES")

	frontend_url: str = Field(default="http://localhost:5173", validation_alias="FRONTEND_URL")

	# Click payment gateway
	click_merchant_id: str = Field(default="", validation_alias="CLICK_MERCHANT_ID")
	click_service_id: str = Field(default="", validation_alias="CLICK_SERVICE_ID")
	click_secret_key: str = Field(default="", validation_alias="CLICK_SECRET_KEY")

	# Contact form delivery
	telegram_bot_token: str | None = Field(default=None, validation_alias="TELEGRAM_BOT_TOKEN")
	telegram_chat_id: str | None = Field(default=None, validation_alias="TELEGRAM_CHAT_ID")

	# Uploaded audio
	uploads_dir: str = Field(default="uploads", validation_alias="UPLOADS_DIR")
	max_audio_bytes: int = Field(default=10 * 1024 * 1024, validation_alias="MAX_AUDIO_BYTES")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

	def is_production(self) -> bool:
		return self.environment.lower() == "production"

settings = Settings()
