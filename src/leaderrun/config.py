from __future__ import annotations

import os

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LEADERRUN_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    # Participant identity, defaults to the pod/host name
    identity: str = Field(default_factory=lambda: os.environ.get("HOSTNAME", ""))

    # Shared lock
    namespace: str = "default"
    lock_name: str = ""
    lock_backend: str = "redis"  # redis or memory
    lock_key_prefix: str = "leaderrun:lock:"

    # Redis
    redis_url: str = Field(default="redis://localhost:6379/0", validation_alias="REDIS_URL")

    # Election timing (seconds)
    lease_duration: float = 10.0
    renew_deadline: float = 7.0
    retry_period: float = 2.0

    # Commands run on leadership events
    exec_start: str | None = None
    exec_stop: str | None = None
    exec_elect: str | None = None

    # Companion process to follow
    pid_file: str | None = None
    pid_poll_interval: float = 2.0

    # Logging
    log_level: str = "INFO"
    log_json: bool = False
