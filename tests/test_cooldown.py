from datetime import datetime, timedelta, timezone

from spot_tracker.services.spots import cooldown_state, next_available_at

from conftest import START


class _Claimed:
    def __init__(self, last_claimed_at):
        self.last_claimed_at = last_claimed_at


def test_cooldown_boundary():
    claimed = _Claimed(START)
    available_at = datetime(2025, 4, 30, 9, 30, tzinfo=timezone.utc)

    assert cooldown_state(claimed, 3, START).in_cooldown is True
    assert cooldown_state(claimed, 3, available_at - timedelta(microseconds=1)).in_cooldown is True

    at_boundary = cooldown_state(claimed, 3, available_at)
    assert at_boundary.in_cooldown is False
    assert at_boundary.available_at == available_at


def test_never_claimed_is_always_available():
    state = cooldown_state(_Claimed(None), 3, START)

    assert state.in_cooldown is False
    assert state.available_at is None


def test_naive_storage_timestamps_are_treated_as_utc():
    naive = _Claimed(START.replace(tzinfo=None))

    assert cooldown_state(naive, 3, START).available_at == datetime(
        2025, 4, 30, 9, 30, tzinfo=timezone.utc
    )


def test_next_available_at():
    assert next_available_at(_Claimed(None), 3) is None
    assert next_available_at(_Claimed(START), 1) == datetime(2025, 2, 28, 9, 30, tzinfo=timezone.utc)
