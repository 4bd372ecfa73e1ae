from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Core
    ENVIRONMENT: str = Field(default="production")
    LOG_LEVEL: str = Field(default="INFO")
    FIRESTORE_PROJECT_ID: str = Field(default="")

    # Operator/admin auth (Google OIDC ID token, e.g. from Cloud Scheduler)
    OPERATOR_AUTH_AUDIENCE: str = Field(default="")
    OPERATOR_INVOKER_SUBS: str = Field(default="")  # comma-separated
    OPERATOR_INVOKER_EMAILS: str = Field(default="")  # comma-separated

    # Scheduling
    REMINDER_SCHEDULE: str = Field(default="every 5 minutes")
    REMINDER_TIME_ZONE: str = Field(default="Europe/Dublin")
    REMINDER_LOOKAHEAD_MINUTES: int = Field(default=5)  # keep equal to the scheduler cadence
    DELETE_ORPHAN_REMINDERS: bool = Field(default=True)  # reminders without userId

    # FCM
    FCM_PROJECT_ID: str = Field(default="")
    FCM_CREDENTIALS_JSON: str = Field(default="")  # path or inline JSON
    FCM_MAX_BATCH_SIZE: int = Field(default=500)  # send_each hard limit
    FCM_DRY_RUN: bool = Field(default=False)


settings = Settings()
