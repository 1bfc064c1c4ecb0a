# app/routers/issues_stats.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from datetime import datetime, timedelta, timezone
from sqlalchemy import func
from app.db.session import get_db
from app.core.config import settings
from app.models.issue import Issue, IssueCategory, IssueStatus
from app.services.sla import is_nearing_deadline, is_overdue

router = APIRouter(prefix="/issues/stats", tags=["issues:stats"])

def range_to_dt(range_key: str):
    now = datetime.now(timezone.utc)
    if range_key == "today": return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if range_key == "7d": return now - timedelta(days=7)
    if range_key == "30d": return now - timedelta(days=30)
    if range_key == "90d": return now - timedelta(days=90)
    if range_key == "year": return now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    return None

@router.get("/summary")
def summary(range: str = Query("all"), db: Session = Depends(get_db)):
    since = range_to_dt(range)
    q = db.query(Issue.status, func.count(Issue.id))
    if since:
        q = q.filter(Issue.created_at >= since)
    by_status = {s.value: 0 for s in IssueStatus}
    for status_obj, n in q.group_by(Issue.status).all():
        by_status[IssueStatus(status_obj).value] = n

    # SLA counters: only open issues that carry a deadline
    now = datetime.now(timezone.utc)
    window = timedelta(hours=settings.sla_nearing_window_hours)
    sla_q = db.query(Issue).filter(Issue.sla_deadline.isnot(None), Issue.status != IssueStatus.resolved)
    if since:
        sla_q = sla_q.filter(Issue.created_at >= since)
    open_with_sla = sla_q.all()
    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "overdue": sum(1 for i in open_with_sla if is_overdue(i, now)),
        "nearing_deadline": sum(1 for i in open_with_sla if is_nearing_deadline(i, now, window)),
    }

@router.get("/by-category")
def by_category(range: str = Query("all"), db: Session = Depends(get_db)):
    since = range_to_dt(range)
    q = db.query(Issue.category, Issue.status, func.count(Issue.id))
    if since:
        q = q.filter(Issue.created_at >= since)
    rows = q.group_by(Issue.category, Issue.status).all()

    by_cat = {c.value: {"total": 0, "resolved": 0} for c in IssueCategory}
    for cat, status_obj, n in rows:
        data = by_cat[IssueCategory(cat).value]
        data["total"] += n
        if IssueStatus(status_obj) == IssueStatus.resolved:
            data["resolved"] += n
    return [{"category": cat, **data} for cat, data in by_cat.items()]
