from decimal import Decimal

import pytest

from rental_booking.config import settings as settings_module
from rental_booking.config.settings import Settings, get_settings, reset_settings


def test_defaults(monkeypatch, tmp_path):
    for name in ("RENTAL_TAX_RATE", "RENTAL_DB_URL", "RENTAL_REJECT_PAST_START"):
        monkeypatch.delenv(name, raising=False)
    loaded = Settings.load(project_root=tmp_path)

    assert loaded.tax_rate == Decimal("0.08")
    assert loaded.database_url.endswith("rental_data/rental.db")
    assert loaded.reject_past_start is True
    assert loaded.excluded_statuses == frozenset({"cancelled", "completed"})


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("RENTAL_TAX_RATE", "0.0725")
    monkeypatch.setenv("RENTAL_DB_URL", "sqlite://")
    monkeypatch.setenv("RENTAL_REJECT_PAST_START", "false")
    loaded = Settings.load(project_root=tmp_path)

    assert loaded.tax_rate == Decimal("0.0725")
    assert loaded.database_url == "sqlite://"
    assert loaded.reject_past_start is False


@pytest.mark.parametrize("raw", ["eight percent", "-0.01"])
def test_bad_tax_rate(monkeypatch, tmp_path, raw):
    monkeypatch.setenv("RENTAL_TAX_RATE", raw)
    with pytest.raises(ValueError):
        Settings.load(project_root=tmp_path)


def test_get_settings_is_cached(monkeypatch):
    monkeypatch.setattr(settings_module, "_settings", None)
    monkeypatch.setenv("RENTAL_TAX_RATE", "0.05")
    first = get_settings()
    monkeypatch.setenv("RENTAL_TAX_RATE", "0.06")
    assert get_settings() is first

    reset_settings()
    assert get_settings().tax_rate == Decimal("0.06")
    reset_settings()
