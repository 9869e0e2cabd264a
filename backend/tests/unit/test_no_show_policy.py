"""
Tests for the no-show blocking threshold.
"""
import pytest

from barbershop.services.no_show_policy import is_blocked


@pytest.mark.unit
@pytest.mark.parametrize("count, blocked", [(0, False), (2, False), (3, True), (7, True)])
def test_default_threshold_is_three(count, blocked):
    assert is_blocked(count) is blocked


@pytest.mark.unit
def test_custom_threshold():
    assert not is_blocked(4, max_no_show_count=5)
    assert is_blocked(5, max_no_show_count=5)
