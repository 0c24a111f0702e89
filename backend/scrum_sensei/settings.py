from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
	# Gemini is used for lecture scripts and text-to-speech
	gemini_api_key: str | None = Field(default=None, validation_alias=AliasChoices("GEMINI_API_KEY", "GOOGLE_API_KEY"))
	gemini_model: str = Field(default="gemini-1.5-flash", validation_alias="GEMINI_MODEL")
	gemini_base_url: str = Field(default="https://generativelanguage.googleapis.com/v1beta/models", validation_alias="GEMINI_BASE_URL")
	gemini_tts_model: str = Field(default="gemini-2.5-flash-preview-tts", validation_alias="GEMINI_TTS_MODEL")
	gemini_tts_voice: str = Field(default="Kore", validation_alias="GEMINI_TTS_VOICE")
	gemini_tts_language: str = Field(default="ja-JP", validation_alias="GEMINI_TTS_LANGUAGE")
	gemini_tts_style: str = Field(default="clear and friendly", validation_alias="GEMINI_TTS_STYLE")

	# OpenAI chat completions drive quiz generation and coaching
	openai_api_key: str | None = Field(default=None, validation_alias="OPENAI_API_KEY")
	openai_model: str = Field(default="gpt-4o-mini", validation_alias="OPENAI_MODEL")
	openai_base_url: str = Field(default="https://api.openai.com/v1/chat/completions", validation_alias="OPENAI_BASE_URL")

	request_timeout: float = Field(default=60.0, validation_alias="AI_REQUEST_TIMEOUT")

	# Database
	database_url: str = Field(default="sqlite:///./memory.db", validation_alias="DATABASE_URL")

	# Public static directory holding uploads/ and audio/
	public_dir: Path = Field(default=Path("./public"), validation_alias="PUBLIC_DIR")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
	host: str = Field(default="127.0.0.1", validation_alias="HOST")
	port: int = Field(default=8000, validation_alias="PORT")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)


def get_settings() -> Settings:
	return Settings()
