"""Runtime configuration, read from the environment (prefix ``ASSESSMENT_``)."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="ASSESSMENT_", env_file=".env", extra="ignore")

    app_name: str = "Assessment Engine"
    database_url: str = Field(default="sqlite:///./assessment.db")
    # echo=False to avoid noisy logs; toggle for debugging
    echo_sql: bool = False
    log_level: str = "INFO"

    default_timezone: str = "UTC"
    # How long before schedule end the "window closing" event fires
    window_closing_lead_minutes: int = Field(default=15, ge=0)


def get_settings() -> Settings:
    return Settings()
