import importlib

import pytest

from pharmacy_orders.common import config


@pytest.mark.parametrize("raw, expected", [("1", True), ("Yes", True), (" on ", True), ("0", False), ("nope", False)])
def test_get_bool(monkeypatch, raw, expected):
    monkeypatch.setenv("POLL_ENABLED", raw)
    assert config._get_bool("POLL_ENABLED") is expected


def test_get_bool_default(monkeypatch):
    monkeypatch.delenv("POLL_ENABLED", raising=False)
    assert config._get_bool("POLL_ENABLED", True) is True


def test_get_float(monkeypatch):
    monkeypatch.setenv("POLL_INTERVAL", "0.5")
    assert config._get_float("POLL_INTERVAL", 2.0) == 0.5
    monkeypatch.setenv("POLL_INTERVAL", "")
    assert config._get_float("POLL_INTERVAL", 2.0) == 2.0


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("API_BASE_URL", "https://api.example.test/api")
    monkeypatch.setenv("POLL_INTERVAL", "5")
    monkeypatch.setenv("POLL_ENABLED", "false")
    try:
        reloaded = importlib.reload(config)
        assert reloaded.settings.API_BASE_URL == "https://api.example.test/api"
        assert reloaded.settings.POLL_INTERVAL == 5.0
        assert reloaded.settings.POLL_ENABLED is False
    finally:
        monkeypatch.undo()
        importlib.reload(config)
