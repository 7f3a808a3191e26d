from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # Security
    PADDOCK_SECRET_KEY: str = "dev-secret-change-me"
    PADDOCK_SESSION_MAX_AGE: int = 60 * 60 * 12
    PADDOCK_COOKIE_SECURE: bool = False  # set True behind HTTPS
    PADDOCK_BCRYPT_ROUNDS: int = 12

    # Bootstrap superadmin
    PADDOCK_ADMIN_EMAIL: str = "admin@paddock.local"
    PADDOCK_ADMIN_PASSWORD: str = "change-me"
    PADDOCK_ADMIN_NAME: str = "Administrator"

    # Database
    PADDOCK_DB_URL: str = "sqlite:///./paddock.db"

    PADDOCK_LOG_LEVEL: str = "INFO"

    # Realtime
    SSE_HEARTBEAT_SECONDS: float = 30.0
    SSE_HISTORY_SIZE: int = 100
    SSE_QUEUE_SIZE: int = 256

    # Processing
    INSPECTION_CRITICAL_DAYS: int = 365
    DEFAULT_HEAT: str = "TRAINING"

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
