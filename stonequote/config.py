from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./stonequote.db"

    # Calculation cache: entries older than the TTL are treated as missing
    CALCULATION_CACHE_ENABLED: bool = True
    CALCULATION_CACHE_TTL_SECONDS: float = 300.0
    CALCULATION_WORKERS: int = 6

    # Pricing defaults used when the organisation's settings leave them blank
    STANDARD_SLAB_LENGTH_MM: int = 3200
    DEFAULT_WASTE_FACTOR: float = 1.15

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    class Config:
        env_file = ".env"


settings = Settings()
