from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from app.core.errors import ValidationError
from app.models.issue import IssueStatus
from app.services.sla import compute_sla_deadline, is_nearing_deadline, is_overdue

BASE = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("sla,days", [("3 Days", 3), ("1 Day", 1), ("7", 7), ("  2 days ", 2)])
def test_relative_sla(sla, days):
    assert compute_sla_deadline(BASE, sla) == BASE + timedelta(days=days)


def test_absolute_sla_dates():
    assert compute_sla_deadline(BASE, "2026-03-05") == datetime(2026, 3, 5, tzinfo=timezone.utc)
    assert compute_sla_deadline(BASE, "2026-03-05T17:30:00Z") == datetime(2026, 3, 5, 17, 30, tzinfo=timezone.utc)


def test_past_absolute_date_is_accepted():
    assert compute_sla_deadline(BASE, "2026-01-01") < BASE


def test_naive_base_is_treated_as_utc():
    assert compute_sla_deadline(datetime(2026, 3, 1, 9, 0), "1 Day") == BASE + timedelta(days=1)


@pytest.mark.parametrize("sla", [
    "", "   ", "soon", "three days", "2026-13-45",
    "3000000 Days", "99999999999 Days", "9999-12-31T23:00:00-05:00",
])
def test_bad_sla_rejected(sla):
    with pytest.raises(ValidationError):
        compute_sla_deadline(BASE, sla)


def _issue(deadline, status=IssueStatus.in_progress):
    return SimpleNamespace(sla_deadline=deadline, status=status)


def test_overdue_only_when_deadline_passed_and_open():
    assert is_overdue(_issue(BASE - timedelta(minutes=1)), BASE)
    assert not is_overdue(_issue(BASE + timedelta(minutes=1)), BASE)
    assert not is_overdue(_issue(BASE - timedelta(days=1), IssueStatus.resolved), BASE)
    assert not is_overdue(_issue(None), BASE)


def test_nearing_deadline_window():
    assert is_nearing_deadline(_issue(BASE + timedelta(hours=23)), BASE)
    assert not is_nearing_deadline(_issue(BASE + timedelta(hours=25)), BASE)
    assert is_nearing_deadline(_issue(BASE + timedelta(hours=30)), BASE, window=timedelta(hours=48))


def test_overdue_issue_is_not_nearing():
    assert not is_nearing_deadline(_issue(BASE - timedelta(hours=1)), BASE)
    assert not is_nearing_deadline(_issue(BASE + timedelta(hours=1), IssueStatus.resolved), BASE)


def test_naive_stored_deadline_is_compared_as_utc():
    naive = (BASE - timedelta(hours=2)).replace(tzinfo=None)
    assert is_overdue(_issue(naive), BASE)
