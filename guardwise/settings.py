from functools import lru_cache
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = "sqlite:///./guardwise.db"
    admin_user: str = "admin"
    admin_pass_hash: str = ""
    jwt_secret: str = ""
    jwt_issuer: str = "guardwise"
    jwt_audience: str = "guardwise-admin"
    access_token_minutes: int = 30
    app_name: str = "GuardWise"
    log_level: str = "INFO"
    cors_allow_origins: str = "http://127.0.0.1:5173,http://localhost:5173"
    site_timezone: str = "UTC"
    seed_demo_data: bool = True
    auto_create_schema: bool = True
    schema_guard_strict: bool = False
    default_grace_minutes: int = 10
    default_qr_rotate_minutes: int = 10
    qr_image_endpoint: str = "https://api.qrserver.com/v1/create-qr-code/"
    qr_display_min_size: int = 420
    qr_token_grace_slots: int = 1
    late_minutes_basis: Literal["grace_window", "scheduled_time"] = "grace_window"
    scan_early_window_minutes: int = 15

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()


def get_cors_origins() -> list[str]:
    raw = get_settings().cors_allow_origins
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def get_site_timezone() -> ZoneInfo:
    try:
        return ZoneInfo(get_settings().site_timezone)
    except ZoneInfoNotFoundError:
        return ZoneInfo("UTC")
