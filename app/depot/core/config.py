from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env")

    APP_NAME: str = "DEPOT-TRANSFERS"
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    DATABASE_URL: str = "sqlite+pysqlite:///./depot.db"
    LOG_LEVEL: str = "INFO"
    TRANSFER_NUMBER_PREFIX: str = "TRF"
    TRANSFER_NUMBER_MAX_ATTEMPTS: int = 20
    DEFAULT_CURRENCY: str = "USD"
    TRANSFER_LIST_MAX_PAGE_SIZE: int = 200
    OPS_ENABLE_INTEGRITY_SCAN: bool = True
    METRICS_ENABLED: bool = True

settings = Settings()
