from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "SubTracker"
    LOG_LEVEL: str = "INFO"
    DEFAULT_CURRENCY: str = "USD"

    # Analytics windows
    UPCOMING_RENEWAL_DAYS: int = 7
    UNDERUTILIZED_AFTER_DAYS: int = 30
    HISTORY_MONTHS: int = 6
    STREAK_MAX_MONTHS: int = 12
    LOW_VALUE_MAX_RATING: int = 2

    # Write boundary
    MIN_NAME_LENGTH: int = 2

    # "rules" or "score"
    DEFAULT_RECOMMENDER: str = "rules"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
