from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

VERSION = "5.0.0"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AI_AGENTGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    version: str = VERSION
    build: str = ""
    rate_limit: int = Field(default=120, ge=1)  # requests per window
    rate_window: int = Field(default=600, ge=1)  # seconds
    db_path: str = Field(default="/data/agentgate.sqlite", min_length=1)
    bucket_store: Literal["sqlite", "memory"] = "sqlite"
    admin_username: str | None = Field(default=None, min_length=1)
    admin_password: str | None = Field(default=None, min_length=8)
    transient_cleanup_interval: int = Field(default=300, ge=1)

    @model_validator(mode="after")
    def _default_build(self) -> "Settings":
        if not self.build:
            self.build = self.version
        return self


settings = Settings()
