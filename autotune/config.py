from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    AUTOTUNE_APP_KEY: str = Field(
        default="",
        validation_alias=AliasChoices("AUTOTUNE_APP_KEY", "APP_KEY"),
    )
    AUTOTUNE_OUTCOMES_FILE: str | None = None

    # Сервисы аналитики
    API_BASE_URL: str = "https://2vyiuehl9j.execute-api.us-east-2.amazonaws.com/prod/"
    OUTCOMES_BASE_URL: str = "https://s3.us-east-2.amazonaws.com/autotune-outcomes/"

    # Окна дебаунса (секунды)
    START_BATCH_DELAY: float = 0.1
    COMPLETE_BATCH_DELAY: float = 0.01
    PICKS_WRITE_DELAY: float = 0.1

    # Хранилище выбранных вариантов
    STORAGE_DIR: str = "var/autotune"
    STORAGE_NAMESPACE: str = "autotune.v1"

    DEFAULT_LANGUAGE: str = "en-US"

    # Логи
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    # Прокси (если нужно)
    HTTP_PROXY_URL: str | None = None

    # HTTP клиенты
    HTTP_TIMEOUT_CONNECT: float = 3.0
    HTTP_TIMEOUT_READ: float = 10.0
    HTTP_TIMEOUT_WRITE: float = 10.0
    HTTP_TIMEOUT_TOTAL: float = 15.0
    HTTP_RETRY_ATTEMPTS: int = 2
    HTTP_RETRY_BACKOFF_INITIAL: float = 0.5
    HTTP_RETRY_BACKOFF_MAX: float = 8.0
    HTTP_RETRY_STATUS_CODES: tuple[int, ...] = (500, 502, 503, 504)
    HTTP_CIRCUIT_BREAKER_MAX_FAILURES: int = 5
    HTTP_CIRCUIT_BREAKER_BASE_DELAY: float = 1.0
    HTTP_CIRCUIT_BREAKER_MAX_DELAY: float = 30.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator("START_BATCH_DELAY", "COMPLETE_BATCH_DELAY", "PICKS_WRITE_DELAY")
    @classmethod
    def _non_negative_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("batch delays must be non-negative")
        return v

    @field_validator("API_BASE_URL", "OUTCOMES_BASE_URL")
    @classmethod
    def _trailing_slash(cls, v: str) -> str:
        # httpx joins relative paths against the last path segment
        return v if v.endswith("/") else f"{v}/"

    @field_validator("AUTOTUNE_OUTCOMES_FILE", mode="before")
    @classmethod
    def _empty_outcomes_file(cls, v):
        if v in (None, ""):
            return None
        return str(v)


settings = Settings()
