# app/services/sla.py
"""SLA deadline helpers used by the admin triage views."""
import re
from datetime import datetime, timedelta
from typing import Optional

from app.core.errors import ValidationError
from app.models.issue import IssueStatus
from app.schemas.issue import to_utc

NEARING_WINDOW = timedelta(hours=24)

_RELATIVE_SLA = re.compile(r"^\s*(\d+)(?:\s+days?)?\s*$", re.IGNORECASE)


def compute_sla_deadline(base: datetime, sla: str) -> datetime:
    """Turn "3 Days" (relative to ``base``) or "2026-03-01" (absolute) into a deadline."""
    if not sla or not sla.strip():
        raise ValidationError("SLA must not be empty")
    m = _RELATIVE_SLA.match(sla)
    try:
        if m:
            return to_utc(base) + timedelta(days=int(m.group(1)))
        return to_utc(sla)
    except OverflowError:
        raise ValidationError(f"SLA '{sla.strip()}' is out of range")
    except ValueError:
        raise ValidationError(f"Unrecognised SLA '{sla}'; use 'N Days' or an ISO date")


def _deadline_of(issue) -> Optional[datetime]:
    deadline = getattr(issue, "sla_deadline", None)
    return to_utc(deadline) if deadline is not None else None


def is_overdue(issue, now: datetime) -> bool:
    deadline = _deadline_of(issue)
    if deadline is None or issue.status == IssueStatus.resolved:
        return False
    return deadline < to_utc(now)


def is_nearing_deadline(issue, now: datetime, window: timedelta = NEARING_WINDOW) -> bool:
    deadline = _deadline_of(issue)
    if deadline is None or issue.status == IssueStatus.resolved:
        return False
    if is_overdue(issue, now):
        return False
    remaining = deadline - to_utc(now)
    return timedelta(0) < remaining < window
