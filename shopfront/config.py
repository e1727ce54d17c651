from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[1]  # .../shopfront project root
load_dotenv(dotenv_path=ROOT_DIR / ".env")


def _get_env(*keys: str, default: str | None = None) -> str | None:
    for k in keys:
        v = os.getenv(k)
        if v is not None and str(v).strip() != "":
            return v.strip()
    return default


def _get_int(*keys: str, default: int | None = None) -> int | None:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return int(v)


def _get_float(*keys: str, default: float | None = None) -> float | None:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return float(v)


def _get_path(*keys: str, default: str) -> str:
    v = _get_env(*keys, default=default)
    return str(v)


@dataclass(frozen=True)
class FirebaseSettings:
    api_key: str = ""
    auth_domain: str = ""
    project_id: str = ""
    storage_bucket: str = ""
    messaging_sender_id: str = ""
    app_id: str = ""
    measurement_id: str = ""


@dataclass(frozen=True)
class Settings:
    api_base_url: str
    api_timeout: float
    bot_token: str
    storage_path: str
    export_dir: str
    currency: str
    decimals: int
    session_cookie: str
    facebook_app_id: str
    firebase: FirebaseSettings = field(default_factory=FirebaseSettings)


settings = Settings(
    api_base_url=_get_env("API_BASE_URL", "NEXT_PUBLIC_API_URL", default="http://localhost:5000/api")
    or "http://localhost:5000/api",
    api_timeout=_get_float("API_TIMEOUT", default=10.0) or 10.0,
    bot_token=_get_env("BOT_TOKEN", "TELEGRAM_BOT_TOKEN", default="") or "",
    storage_path=_get_path("STORAGE_PATH", "DB_PATH", default=str(ROOT_DIR / "data" / "storage.db")),
    export_dir=_get_path("EXPORT_DIR", default=str(ROOT_DIR / "exports")),
    currency=_get_env("CURRENCY", default="USD") or "USD",
    decimals=_get_int("DECIMALS", default=2),
    session_cookie=_get_env("SESSION_COOKIE", default="shopfront_sid") or "shopfront_sid",
    facebook_app_id=_get_env("FACEBOOK_APP_ID", "NEXT_PUBLIC_FACEBOOK_APP_ID", default="") or "",
    firebase=FirebaseSettings(
        api_key=_get_env("FIREBASE_API_KEY", "NEXT_PUBLIC_FIREBASE_API_KEY", default="") or "",
        auth_domain=_get_env("FIREBASE_AUTH_DOMAIN", "NEXT_PUBLIC_FIREBASE_AUTH_DOMAIN", default="") or "",
        project_id=_get_env("FIREBASE_PROJECT_ID", "NEXT_PUBLIC_FIREBASE_PROJECT_ID", default="") or "",
        storage_bucket=_get_env("FIREBASE_STORAGE_BUCKET", "NEXT_PUBLIC_FIREBASE_STORAGE_BUCKET", default="") or "",
        messaging_sender_id=_get_env(
            "FIREBASE_MESSAGING_SENDER_ID", "NEXT_PUBLIC_FIREBASE_MESSAGING_SENDER_ID", default=""
        )
        or "",
        app_id=_get_env("FIREBASE_APP_ID", "NEXT_PUBLIC_FIREBASE_APP_ID", default="") or "",
        measurement_id=_get_env("FIREBASE_MEASUREMENT_ID", "NEXT_PUBLIC_FIREBASE_MEASUREMENT_ID", default="") or "",
    ),
)
