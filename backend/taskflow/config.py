from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # MongoDB
    MONGODB_URI: str = "mongodb://localhost:27017"
    MONGODB_DB_NAME: str = "taskflow"
    # Multi-document transactions need a replica set
    MONGODB_USE_TRANSACTIONS: bool = False

    # JWT
    JWT_SECRET: str = "change-this-secret"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_MINUTES: int = 1440

    # App
    APP_NAME: str = "TaskFlow"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Invitations
    INVITATION_EXPIRY_DAYS: int = 7
    INVITATION_MAX_REMINDERS: int = 5

    # Reminders
    REMINDER_POLL_SECONDS: int = 60
    REMINDER_MAX_SNOOZES: int = 3
    SCHEDULER_ENABLED: bool = True

    # Workspace plan limits
    WORKSPACE_MAX_MEMBERS: int = 10
    WORKSPACE_MAX_SPACES: int = 5
    WORKSPACE_MAX_BOARDS: int = 50

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def cors_origins(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
