from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from finverno.services.delivery_service import clamp_dispute_window, dispute_window_state


@pytest.mark.parametrize(
    "value,expected",
    [
        (None, 48),
        (10, 24),
        (100, 72),
        (48, 48),
        (36, 36),
        (24, 24),
        (72, 72),
        ("60", 60),
        (" 30 ", 30),
        ("abc", 48),
        ("", 48),
        (True, 48),
        ([], 48),
        (float("nan"), 48),
        (float("inf"), 72),
        (-5, 24),
        (0, 24),
        (36.4, 36),
        (10**400, 72),
        (-10**400, 24),
    ],
)
def test_clamp_dispute_window(value, expected):
    assert clamp_dispute_window(value) == expected


def _pr(status, deadline):
    return SimpleNamespace(delivery_status=status, dispute_deadline=deadline)


def test_window_open_before_deadline():
    now = datetime(2026, 1, 1, 12, 0)
    state = dispute_window_state(_pr("dispatched", now + timedelta(hours=6)), now)
    assert state == {"can_dispute": True, "hours_remaining": 6.0}


def test_window_closed_at_deadline():
    now = datetime(2026, 1, 1, 12, 0)
    state = dispute_window_state(_pr("dispatched", now), now)
    assert state == {"can_dispute": False, "hours_remaining": None}


def test_window_closed_when_not_dispatched():
    now = datetime(2026, 1, 1, 12, 0)
    state = dispute_window_state(_pr("disputed", now + timedelta(hours=6)), now)
    assert state["can_dispute"] is False
