from pathlib import Path
from typing import Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )
    name: str = Field(default="flashdeck", alias="APP_NAME")
    version: str = Field(default="v1", alias="API_VERSION")
    port: int = Field(default=9000, alias="APP_PORT")
    mode: str = Field(default="prod", alias="MODE")

    @computed_field
    def is_production(self) -> bool:
        return self.mode != "dev"


class ApiClientSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )
    base_url: str = Field(
        default="http://localhost:9000/api", alias="FLASHDECK_API_BASE_URL"
    )
    timeout_seconds: float = Field(default=30.0, alias="FLASHDECK_API_TIMEOUT")
    # The processing trigger waits for the model call on the server side
    process_timeout_seconds: float = Field(
        default=240.0, alias="FLASHDECK_PROCESS_TIMEOUT"
    )
    access_token: Optional[str] = Field(default=None, alias="FLASHDECK_ACCESS_TOKEN")


class ReviewSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )
    max_cards_per_session: int = Field(default=100, alias="REVIEW_MAX_CARDS")
    submit_max_retries: int = Field(default=2, alias="REVIEW_SUBMIT_RETRIES")
    submit_retry_delay_seconds: float = Field(
        default=1.0, alias="REVIEW_SUBMIT_RETRY_DELAY"
    )
    allow_skip: bool = Field(default=False, alias="REVIEW_ALLOW_SKIP")


class GenerationSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )
    polling_interval_seconds: float = Field(
        default=5.0, alias="GENERATION_POLL_INTERVAL"
    )
    default_temperature: float = Field(
        default=0.7, alias="GENERATION_DEFAULT_TEMPERATURE"
    )
    state_file: Path = Field(
        default=Path("~/.flashdeck/state.json"), alias="FLASHDECK_STATE_FILE"
    )

    # Model provider selection: "google" or "test"
    model_provider: str = Field(default="test", alias="MODEL_PROVIDER")
    model_name: str = Field(default="gemini-2.0-flash", alias="GENERATION_MODEL")
    gemini_api_key: Optional[str] = Field(default=None, alias="GEMINI_API_KEY")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    app: AppSettings = Field(default_factory=lambda: AppSettings())
    api: ApiClientSettings = Field(default_factory=lambda: ApiClientSettings())
    review: ReviewSettings = Field(default_factory=lambda: ReviewSettings())
    generation: GenerationSettings = Field(
        default_factory=lambda: GenerationSettings()
    )


settings = Settings()
