from __future__ import annotations

import os
from dataclasses import dataclass
from zoneinfo import ZoneInfo

from dotenv import load_dotenv


load_dotenv()


def _env(name: str, default: str | None = None) -> str | None:
    return os.getenv(name, default)


def _csv(name: str, default: str) -> tuple[str, ...]:
    value = _env(name, default) or ""
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    postgres_dsn: str
    jwt_secret: str
    jwt_leeway_seconds: int
    stripe_secret_key: str
    payment_currency: str
    payment_capture_timeout_seconds: float
    payment_poll_interval_seconds: float
    business_timezone: str
    cors_allow_origins: tuple[str, ...]
    log_level: str

    @property
    def business_tz(self) -> ZoneInfo:
        return ZoneInfo(self.business_timezone)


def get_settings() -> Settings:
    return Settings(
        postgres_dsn=_env("POSTGRES_DSN", ""),
        jwt_secret=_env("JWT_SECRET", ""),
        jwt_leeway_seconds=int(_env("JWT_LEEWAY_SECONDS", "0")),
        stripe_secret_key=_env("STRIPE_SECRET_KEY", ""),
        payment_currency=_env("PAYMENT_CURRENCY", "inr").lower(),
        payment_capture_timeout_seconds=float(_env("PAYMENT_CAPTURE_TIMEOUT_SECONDS", "300")),
        payment_poll_interval_seconds=float(_env("PAYMENT_POLL_INTERVAL_SECONDS", "2")),
        business_timezone=_env("BUSINESS_TIMEZONE", "Asia/Kolkata"),
        cors_allow_origins=_csv("CORS_ALLOW_ORIGINS", "*"),
        log_level=_env("LOG_LEVEL", "INFO").upper(),
    )
