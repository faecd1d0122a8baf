from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL_CLASSIFY: str = "gpt-4o-mini"
    OPENAI_TEMPERATURE_CLASSIFY: float = 0.0
    SEMANTIC_TIMEOUT_SECONDS: float = 10.0

    CONFIDENCE_HIGH: float = 0.85
    CONFIDENCE_MEDIUM: float = 0.6
    FUZZY_THRESHOLD: float = 0.6

    BREAKER_FAILURE_THRESHOLD: int = 5
    BREAKER_SUCCESS_THRESHOLD: int = 2
    BREAKER_COOLDOWN_SECONDS: float = 60.0

    REDIS_URL: str | None = None
    CONTEXT_CACHE_TTL_SECONDS: float = 5.0
    BUSINESS_CACHE_TTL_SECONDS: float = 300.0
    CACHE_SWEEP_INTERVAL_SECONDS: float = 60.0

    HISTORY_LIMIT: int = 20
    PROMPT_HISTORY_TURNS: int = 15
    PROMPT_MAX_PRODUCTS: int = 20

    BUSINESS_TIMEZONE: str = "America/Bogota"
    BUSINESSES_FILE: str | None = None
    DATA_DIR: str = "./data/conversations"
    PAYMENT_BASE_URL: str = "https://pay.example.com/checkout"

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"


settings = Settings()
