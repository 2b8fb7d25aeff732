from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # SurrealDB document store
    SURREALDB_URL: str = "ws://localhost:8000/rpc"
    SURREALDB_NS: str = "finance"
    SURREALDB_DB: str = "main"
    SURREALDB_USER: str = "root"
    SURREALDB_PASS: str = "root"

    # Auth secrets (NO DEFAULTS)
    ENV_SECRET: str
    ENV_RESET_PASSWORD_TOKEN_SECRET: str
    ENV_VERIFICATION_TOKEN_SECRET: str
    JWT_LIFETIME_SECONDS: int = 60 * 60 * 24

    # Runtime
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    CORS_ALLOW_ORIGINS: List[str] = ["*"]

    # Request body ceilings, in bytes
    MAX_BODY_REGISTER: int = 1024
    MAX_BODY_LOGIN: int = 512
    MAX_BODY_TRANSACTION: int = 2048
    MAX_BODY_DEFAULT: int = 1024

    # Business policy
    MAX_DAILY_TRANSACTIONS: int = 50
    MAX_TRANSACTION_AMOUNT: float = 1_000_000
    MAX_FUTURE_DAYS: int = 30
    MAX_INACTIVE_DAYS: int = 90

    # Plan tiers; -1 means unlimited
    PLAN_FREE_MAX_TRANSACTIONS: int = 100
    PLAN_FREE_MAX_TAGS: int = 5
    PLAN_PREMIUM_MAX_TRANSACTIONS: int = 1000
    PLAN_PREMIUM_MAX_TAGS: int = 20
    PLAN_ENTERPRISE_MAX_TRANSACTIONS: int = -1
    PLAN_ENTERPRISE_MAX_TAGS: int = -1

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

settings = Settings()
