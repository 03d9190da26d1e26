from __future__ import annotations

import dataclasses
import os

import pytest

from ticketbooth import config
from ticketbooth.config import (
    load_settings,
    require_production_settings,
    settings_as_dict,
    update_config_file,
)


@pytest.fixture()
def isolated_env(monkeypatch, tmp_path):
    for key in list(os.environ):
        if key.startswith("TICKETBOOTH_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("TICKETBOOTH_BASE_DIR", str(tmp_path))
    return tmp_path


def test_defaults_resolve_paths_under_base_dir(isolated_env):
    settings = load_settings()

    assert settings.environment == "development"
    assert settings.data_dir == isolated_env / "data"
    assert settings.database_path == isolated_env / "data" / "ticketbooth.db"
    assert settings.data_dir.is_dir()
    assert settings.webhook_verification_enabled is False


def test_env_overrides_toml(isolated_env, monkeypatch):
    (isolated_env / "ticketbooth.toml").write_text(
        'currency = "eur"\n'
        "sweep_interval_minutes = 5\n"
        'app_base_url = "https://toml.example.com/"\n'
        "enable_scheduler = true\n"
    )
    monkeypatch.setenv("TICKETBOOTH_SWEEP_INTERVAL_MINUTES", "15")
    monkeypatch.setenv("TICKETBOOTH_ENABLE_SCHEDULER", "off")

    settings = load_settings()

    assert settings.currency == "eur"
    assert settings.sweep_interval_minutes == 15
    assert settings.enable_scheduler is False
    assert settings.app_base_url == "https://toml.example.com"


def test_invalid_boolean_rejected(isolated_env, monkeypatch):
    monkeypatch.setenv("TICKETBOOTH_ENABLE_SCHEDULER", "maybe")
    with pytest.raises(ValueError):
        load_settings()


def test_unknown_environment_rejected(isolated_env, monkeypatch):
    monkeypatch.setenv("TICKETBOOTH_ENVIRONMENT", "staging")
    with pytest.raises(ValueError):
        load_settings()


def test_production_requires_payment_secrets(isolated_env, monkeypatch):
    monkeypatch.setenv("TICKETBOOTH_ENVIRONMENT", "production")
    settings = load_settings()

    with pytest.raises(RuntimeError) as excinfo:
        require_production_settings(settings)
    assert "TICKETBOOTH_PAYMENT_WEBHOOK_SECRET" in str(excinfo.value)

    ready = dataclasses.replace(
        settings, payment_webhook_secret="whsec_x", stripe_secret_key="sk_live_x"
    )
    require_production_settings(ready)


def test_settings_as_dict_masks_secrets(isolated_env, monkeypatch):
    monkeypatch.setenv("TICKETBOOTH_STRIPE_SECRET_KEY", "sk_test_secret")
    settings = load_settings()

    masked = settings_as_dict(settings)
    revealed = settings_as_dict(settings, reveal_secrets=True)

    assert masked["stripe_secret_key"] == "****"
    assert masked["resend_api_key"] == ""
    assert revealed["stripe_secret_key"] == "sk_test_secret"


def test_update_config_file_round_trips(isolated_env, monkeypatch):
    monkeypatch.setattr(config, "settings", config.settings)
    path = isolated_env / "custom.toml"

    updated = update_config_file(
        {"currency": "gbp", "enable_scheduler": "false", "unknown": "ignored"},
        path=path,
    )

    text = path.read_text()
    assert 'currency = "gbp"' in text
    assert "enable_scheduler = false" in text
    assert "unknown" not in text
    assert updated.currency == "gbp"
    assert updated.enable_scheduler is False
