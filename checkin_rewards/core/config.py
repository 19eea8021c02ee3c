from __future__ import annotations
from pydantic_settings import BaseSettings
from pydantic import Field

class Settings(BaseSettings):
    database_url: str = Field(..., alias="DATABASE_URL")

    auth_jwks_url: str = Field(..., alias="AUTH_JWKS_URL")
    token_issuer: str = Field("authentication-svc", alias="TOKEN_ISSUER")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # Proximity
    default_radius_m: float = Field(default=100.0, alias="DEFAULT_RADIUS_M")
    low_accuracy_threshold_m: float = Field(default=50.0, alias="LOW_ACCURACY_THRESHOLD_M")

    # Rewards and caps
    user_checkin_points: int = Field(default=10, alias="USER_CHECKIN_POINTS")
    business_checkin_points: int = Field(default=5, alias="BUSINESS_CHECKIN_POINTS")
    max_checkins_per_day: int = Field(default=5, alias="MAX_CHECKINS_PER_DAY")

    # Redis
    redis_url: str = Field("redis://127.0.0.1:6379/0", alias="REDIS_URL")
    rl_enabled: bool = Field(default=True, alias="RL_ENABLED")
    rl_window_seconds: int = Field(default=60, alias="RL_WINDOW_SECONDS")
    rl_max_reqs: int = Field(default=60, alias="RL_MAX_REQS")

    # NATS
    nats_urls: str = Field("nats://127.0.0.1:4222", alias="NATS_URLS")
    nats_subject_checkin: str = Field("checkins.recorded", alias="NATS_SUBJECT_CHECKIN")
    nats_enabled: bool = Field(default=True, alias="NATS_ENABLED")

    class Config:
        env_file = ".env"
        env_prefix = ""
        case_sensitive = False

_settings: Settings | None = None
def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
