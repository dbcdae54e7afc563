from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from checkin_scanner.config.user_settings_store import UserSettingsStore

BASE_DIR = Path(__file__).resolve().parents[3]
ENV_PATH = BASE_DIR / ".env"
load_dotenv(ENV_PATH)

APP_NAME = os.getenv("APP_NAME", "Event Check-in Scanner")
user_settings_store = UserSettingsStore()


def _optional_float(name: str) -> float | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return float(raw)


@dataclass(frozen=True)
class Settings:
    app_name: str = APP_NAME
    api_base_url: str = os.getenv("API_BASE_URL") or user_settings_store.get("api_base_url", "http://localhost:8080")
    api_token: str | None = os.getenv("API_TOKEN") or None
    confirm_path: str = os.getenv("CONFIRM_PATH", "/api/v1/event-attendances/confirm")
    confirm_timeout_seconds: float | None = _optional_float("CONFIRM_TIMEOUT_SECONDS")
    qr_camera_index: int = int(os.getenv("QR_CAMERA_INDEX", "0"))
    qr_camera_probe_limit: int = int(os.getenv("QR_CAMERA_PROBE_LIMIT", "4"))
    preferred_camera_id: str | None = user_settings_store.get("preferred_camera_id")
    auto_resume_ms: int = int(os.getenv("AUTO_RESUME_MS", "2000"))
    restart_debounce_ms: int = int(os.getenv("RESTART_DEBOUNCE_MS", "800"))
    orientation_settle_ms: int = int(os.getenv("ORIENTATION_SETTLE_MS", "200"))
    restart_delay_ms: int = int(os.getenv("RESTART_DELAY_MS", "500"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

    def describe(self) -> str:
        return (
            f"Settings(app_name={self.app_name}, "
            f"api_base_url={self.api_base_url}, "
            f"confirm_path={self.confirm_path}, "
            f"api_token={'set' if self.api_token else 'unset'}, "
            f"confirm_timeout_seconds={self.confirm_timeout_seconds}, "
            f"qr_camera_index={self.qr_camera_index}, "
            f"preferred_camera_id={self.preferred_camera_id}, "
            f"auto_resume_ms={self.auto_resume_ms}, "
            f"restart_debounce_ms={self.restart_debounce_ms})"
        )


settings = Settings()

