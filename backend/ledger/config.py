from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql+asyncpg://ledger_admin:ledger_secret@db:5432/ledger_db"
    DB_CREATE_ALL: bool = True
    JWT_SECRET: str = "ledger-jwt-secret-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRY_MINUTES: int = 480
    LOG_LEVEL: str = "INFO"
    DEFAULT_BASE_CURRENCY: str = "USD"
    INTEGRITY_AUDIT_DEFAULT_LIMIT: int = 200
    INTEGRITY_AUDIT_MAX_LIMIT: int = 500
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    class Config:
        env_file = ".env"


settings = Settings()
