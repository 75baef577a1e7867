"""Global settings and per-program schedule configuration."""

import tomllib
from datetime import time, timedelta
from pathlib import Path
from typing import Optional, Union
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict
from .exceptions import ConfigError

PROGRAM_CONFIG_NAME = "config.toml"


class ProgramConfig(BaseModel):
    """Schedule overrides read from a program's config.toml."""
    daily_at: Optional[time] = None
    retry_delay_seconds: Optional[float] = Field(default=None, gt=0)
    run_timeout_seconds: Optional[float] = Field(default=None, gt=0)


class ProgramSchedule(BaseModel):
    """Effective schedule values for one program."""
    daily_at: time
    retry_delay_seconds: float
    run_timeout_seconds: Optional[float] = None

    @property
    def retry_delay(self) -> timedelta:
        return timedelta(seconds=self.retry_delay_seconds)


class Settings(BaseSettings):
    """Service configuration, read from DAILYCTL_* environment variables."""
    model_config = SettingsConfigDict(env_prefix="DAILYCTL_")

    daily_at: time = time(9, 0)
    retry_delay_seconds: float = Field(default=600.0, gt=0)
    # Unset means a hung program blocks its own schedule until killed externally.
    run_timeout_seconds: Optional[float] = Field(default=None, gt=0)
    message_buffer: int = Field(default=1000, gt=0)
    poll_interval_seconds: float = Field(default=60.0, gt=0)
    log_level: str = "INFO"

    def schedule_for(self, config: Optional[ProgramConfig] = None) -> ProgramSchedule:
        """Merge a program's overrides over the global values."""
        config = config or ProgramConfig()
        return ProgramSchedule(
            daily_at=config.daily_at or self.daily_at,
            retry_delay_seconds=config.retry_delay_seconds or self.retry_delay_seconds,
            run_timeout_seconds=config.run_timeout_seconds or self.run_timeout_seconds,
        )


def load_program_config(path: Union[str, Path]) -> ProgramConfig:
    """Read the [schedule] table of a program config file.

    A missing file means no overrides.

    Raises:
        ConfigError: the file exists but is not valid TOML or holds bad values.
    """
    path = Path(path)
    if not path.exists():
        return ProgramConfig()

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
        return ProgramConfig(**data.get("schedule", {}))
    except (OSError, tomllib.TOMLDecodeError, ValidationError, TypeError) as e:
        raise ConfigError(f"{path}: {e}") from e
