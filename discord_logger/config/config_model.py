from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator

from discord_logger.utils import split_identifiers

__all__ = [
    "GlobalConfig",
    "NotificationsConfig",
    "DiscordConfig",
    "AppriseConfig",
    "Settings",
    "SecretStr",
    "ValidationError",
]

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class BaseConfigModel(BaseModel):
    model_config = ConfigDict(extra="ignore", validate_default=True)


class DiscordConfig(BaseConfigModel):
    webhook_url: SecretStr


class AppriseConfig(BaseConfigModel):
    url: SecretStr


class NotificationsConfig(BaseConfigModel):
    discord: DiscordConfig | None = None
    apprise: AppriseConfig | None = None

    @property
    def configured(self) -> bool:
        return self.discord is not None or self.apprise is not None


class Settings(BaseConfigModel):
    log_level: str = "INFO"
    disable_start_message: bool = False
    disable_shutdown_message: bool = False
    disable_container_event_message: bool = False
    notification_workers: int = Field(default=4, ge=1)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = str(v).strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return level


class GlobalConfig(BaseConfigModel):
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)
    settings: Settings = Field(default_factory=Settings)
    containers: list[str] = Field(default_factory=list)

    @field_validator("containers", mode="before")
    @classmethod
    def split_containers(cls, v: Any) -> Any:
        """Accept a colon-delimited string as well as a list."""
        if v is None:
            return []
        if isinstance(v, str):
            return split_identifiers(v)
        if isinstance(v, list):
            return [str(item).strip() for item in v if item is not None and str(item).strip()]
        return v
