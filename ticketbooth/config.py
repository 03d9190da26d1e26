"""Global configuration for Ticketbooth."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable

ENVIRONMENTS = {"development", "test", "production"}

DEFAULTS: dict[str, Any] = {
    "environment": "development",
    "app_base_url": "http://localhost:8000",
    "app_host": "0.0.0.0",
    "app_port": 8000,
    "currency": "usd",
    "stripe_secret_key": "",
    "payment_webhook_secret": "",
    "webhook_tolerance_seconds": 300,
    "resend_api_key": "",
    "email_from": "Ticketbooth <noreply@example.com>",
    "sms_username": "sandbox",
    "sms_api_key": "",
    "sms_sender_id": "",
    "storage_bucket": "",
    "storage_endpoint_url": "",
    "storage_region": "auto",
    "storage_access_key_id": "",
    "storage_secret_access_key": "",
    "storage_public_url": "",
    "upload_url_ttl_seconds": 3600,
    "pending_reservation_ttl_hours": 24,
    "sweep_interval_minutes": 30,
    "enable_scheduler": True,
}

TYPE_CASTERS: dict[str, Callable[[Any], Any]] = {
    "environment": str,
    "app_base_url": str,
    "app_host": str,
    "app_port": int,
    "currency": str,
    "stripe_secret_key": str,
    "payment_webhook_secret": str,
    "webhook_tolerance_seconds": int,
    "resend_api_key": str,
    "email_from": str,
    "sms_username": str,
    "sms_api_key": str,
    "sms_sender_id": str,
    "storage_bucket": str,
    "storage_endpoint_url": str,
    "storage_region": str,
    "storage_access_key_id": str,
    "storage_secret_access_key": str,
    "storage_public_url": str,
    "upload_url_ttl_seconds": int,
    "pending_reservation_ttl_hours": int,
    "sweep_interval_minutes": int,
    "enable_scheduler": bool,
}

SECRET_KEYS = {
    "stripe_secret_key",
    "payment_webhook_secret",
    "resend_api_key",
    "sms_api_key",
    "storage_secret_access_key",
}


@dataclass(frozen=True)
class Settings:
    base_dir: Path
    data_dir: Path
    database_path: Path
    environment: str
    app_base_url: str
    app_host: str
    app_port: int
    currency: str
    stripe_secret_key: str
    payment_webhook_secret: str
    webhook_tolerance_seconds: int
    resend_api_key: str
    email_from: str
    sms_username: str
    sms_api_key: str
    sms_sender_id: str
    storage_bucket: str
    storage_endpoint_url: str
    storage_region: str
    storage_access_key_id: str
    storage_secret_access_key: str
    storage_public_url: str
    upload_url_ttl_seconds: int
    pending_reservation_ttl_hours: int
    sweep_interval_minutes: int
    enable_scheduler: bool
    config_path: Path

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def webhook_verification_enabled(self) -> bool:
        return bool(self.payment_webhook_secret)

    @property
    def pending_reservation_ttl(self) -> timedelta:
        return timedelta(hours=self.pending_reservation_ttl_hours)


def _boolify(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"Cannot parse boolean value from {value!r}")


def _cast_value(key: str, value: Any) -> Any:
    if key not in TYPE_CASTERS:
        return value
    caster = TYPE_CASTERS[key]
    if caster is bool:
        return _boolify(value)
    return caster(value)


def _load_toml_config(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        return {}
    with config_path.open("rb") as handle:
        return tomllib.load(handle)


def _config_layered_value(key: str, *, toml_config: dict[str, Any]) -> Any:
    env_key = f"TICKETBOOTH_{key.upper()}"
    if env_key in os.environ:
        return _cast_value(key, os.environ[env_key])
    if key in toml_config:
        return _cast_value(key, toml_config[key])
    return DEFAULTS[key]


def _resolve_paths(
    *,
    base_dir: Path,
    data_dir: str | Path | None,
    database_path: str | Path | None,
):
    resolved_base = Path(base_dir)
    resolved_data = Path(data_dir) if data_dir else resolved_base / "data"
    if not resolved_data.is_absolute():
        resolved_data = resolved_base / resolved_data
    resolved_db = (
        Path(database_path) if database_path else resolved_data / "ticketbooth.db"
    )
    if not resolved_db.is_absolute():
        resolved_db = resolved_base / resolved_db
    return resolved_base, resolved_data, resolved_db


def load_settings(config_override: Path | None = None) -> Settings:
    base_dir = Path(os.getenv("TICKETBOOTH_BASE_DIR", Path.cwd()))
    env_config = os.getenv("TICKETBOOTH_CONFIG")
    config_path = Path(config_override or env_config or base_dir / "ticketbooth.toml")
    toml_config = _load_toml_config(config_path)

    base_dir_value, data_dir_value, database_path_value = _resolve_paths(
        base_dir=base_dir,
        data_dir=os.getenv("TICKETBOOTH_DATA_DIR", toml_config.get("data_dir")),
        database_path=os.getenv("TICKETBOOTH_DB", toml_config.get("database_path")),
    )

    values = {
        key: _config_layered_value(key, toml_config=toml_config) for key in DEFAULTS
    }
    values["environment"] = str(values["environment"]).strip().lower()
    if values["environment"] not in ENVIRONMENTS:
        raise ValueError(f"Unknown environment {values['environment']!r}")
    values["app_base_url"] = values["app_base_url"].rstrip("/")
    values["storage_public_url"] = values["storage_public_url"].rstrip("/")

    settings = Settings(
        base_dir=base_dir_value,
        data_dir=data_dir_value,
        database_path=database_path_value,
        config_path=config_path,
        **values,
    )
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    return settings


def require_production_settings(settings: Settings) -> None:
    """Refuse to start a production deployment without payment secrets."""
    if not settings.is_production:
        return
    missing = [
        f"TICKETBOOTH_{key.upper()}"
        for key in ("payment_webhook_secret", "stripe_secret_key")
        if not getattr(settings, key)
    ]
    if missing:
        raise RuntimeError(
            "Missing required production settings: " + ", ".join(missing)
        )


def settings_as_dict(settings: Settings, *, reveal_secrets: bool = False) -> dict[str, Any]:
    data: dict[str, Any] = {
        "base_dir": str(settings.base_dir),
        "data_dir": str(settings.data_dir),
        "database_path": str(settings.database_path),
    }
    for key in DEFAULTS:
        value = getattr(settings, key)
        if key in SECRET_KEYS and not reveal_secrets:
            value = "****" if value else ""
        data[key] = value
    return data


def _toml_literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def write_config_file(config: dict[str, Any], *, path: Path) -> None:
    lines = ["# Ticketbooth configuration\n"]
    for key in sorted(config.keys()):
        lines.append(f"{key} = {_toml_literal(config[key])}\n")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(lines), encoding="utf-8")


def update_config_file(updates: dict[str, Any], *, path: Path | None = None) -> Settings:
    current_settings = settings if "settings" in globals() else load_settings()
    target_path = path or current_settings.config_path
    existing = _load_toml_config(target_path)
    merged = {**existing}
    for key, value in updates.items():
        if key not in DEFAULTS:
            continue
        merged[key] = _cast_value(key, value)
    write_config_file(merged, path=target_path)
    new_settings = load_settings(target_path)
    globals()["settings"] = new_settings
    return new_settings


settings = load_settings()
