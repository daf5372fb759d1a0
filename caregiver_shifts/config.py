import logging
from datetime import tzinfo
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # seconds to wait on any single store call
    store_timeout_seconds: float = 5.0
    # IANA name for the patient's local clock; None uses the clock's own tz
    timezone: str | None = None
    week_starts_on: int = 0  # Monday
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="CAREGIVER_SHIFTS_", extra="ignore"
    )

    @property
    def tz(self) -> tzinfo | None:
        return ZoneInfo(self.timezone) if self.timezone else None


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    logging.getLogger("caregiver_shifts").setLevel(settings.log_level.upper())
