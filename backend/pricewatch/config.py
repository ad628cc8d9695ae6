from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    env: str = "dev"
    database_url: str = "sqlite:///./data/pricewatch.db"

    scheduler_enabled: bool = True
    scheduler_timezone: str = ""  # Empty = TZ env var, then host local time
    morning_check_hour: int = 6
    evening_check_hour: int = 18
    check_on_startup: bool = True
    sweep_throttle_seconds: float = 2.0

    history_window_days: int = 30

    duffel_api_key: str = ""
    duffel_base_url: str = "https://api.duffel.com"
    preferred_carrier: str = "Air Canada"  # Empty = any carrier
    currency: str = "CAD"
    cabin_class: str = "economy"
    alternative_dates_range: int = 3

    notification_channel: str = "ntfy"  # ntfy, sms, log
    ntfy_url: str = "http://localhost:8080"
    ntfy_topic: str = "pricewatch-alerts"

    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_from_number: str = ""
    alert_phone_number: str = ""

    base_url: str = "http://localhost:8000"

    def model_post_init(self, __context):
        if self.env == "prod" and self.database_url.startswith("sqlite"):
            raise ValueError(
                "Production requires explicit DATABASE_URL (not SQLite)"
            )

    class Config:
        env_file = ".env"


@lru_cache
def get_settings() -> Settings:
    return Settings()
