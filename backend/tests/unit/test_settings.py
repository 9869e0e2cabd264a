"""
Unit tests for settings and the booking policy derived from them.
"""
import pytest
from pydantic import ValidationError

from barbershop.lib.settings import Settings
from barbershop.services.types import BookingConfig


@pytest.mark.unit
def test_policy_defaults():
    """BookingConfig defaults match the shop's published policy."""
    config = BookingConfig()

    assert config.buffer_minutes == 10
    assert config.slot_interval_minutes == 15
    assert config.refund_cutoff_hours == 24
    assert config.late_cancellation_hours == 6
    assert config.no_show_grace_period_minutes == 10
    assert config.max_no_show_count == 3
    assert config.stale_booking_minutes == 30
    assert config.deposit_amount_cents == 500


@pytest.mark.unit
def test_config_from_environment(monkeypatch):
    monkeypatch.setenv("BUFFER_MINUTES", "5")
    monkeypatch.setenv("SHOP_TIMEZONE", "Europe/London")
    monkeypatch.setenv("MAX_NO_SHOW_COUNT", "4")

    config = BookingConfig.from_settings(Settings())

    assert config.buffer_minutes == 5
    assert config.shop_timezone == "Europe/London"
    assert config.max_no_show_count == 4


@pytest.mark.unit
@pytest.mark.parametrize("amount", [0, -500])
def test_deposit_must_be_positive(amount):
    with pytest.raises(ValidationError):
        Settings(deposit_amount_cents=amount)


@pytest.mark.unit
@pytest.mark.parametrize(
    "field, value",
    [("slot_interval_minutes", 0), ("buffer_minutes", -1), ("max_no_show_count", 0)],
)
def test_out_of_range_policy_values(field, value):
    with pytest.raises(ValidationError):
        Settings(**{field: value})
