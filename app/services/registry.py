# app/services/registry.py
"""SQLAlchemy-backed issue registry.

The lifecycle engine reads and writes issues only through this class. Each
write is a single commit: scalar fields and the appended history / note rows
land together or not at all.
"""
from __future__ import annotations

import logging
import uuid
from typing import Callable, Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.errors import ConflictError, NotFoundError, UpstreamUnavailableError
from app.models.issue import Issue, IssueCategory, IssuePriority, IssueStatus
from app.models.issue_history import IssueHistory
from app.models.issue_note import IssueNote
from app.schemas.issue import AdminNote, EscalationDetails, HistoryEntry, IssueRecord
from app.services import subscriptions
from app.services.subscriptions import Subscription, SubscriptionHub

logger = logging.getLogger(__name__)

# scalar fields a lifecycle operation may change after creation
MUTABLE_FIELDS = frozenset({
    "status",
    "assigned_department",
    "assigned_officer_id",
    "sla_deadline",
    "resolution_notes",
    "updated_at",
    "escalation_details",
})


def new_issue_id() -> str:
    return uuid.uuid4().hex


def _to_record(row: Issue) -> IssueRecord:
    escalation = None
    if row.escalated_to:
        escalation = EscalationDetails(
            escalated_to=row.escalated_to,
            escalated_at=row.escalated_at,
            reason=row.escalation_reason or "",
            reference_id=row.escalation_reference_id,
        )
    return IssueRecord(
        id=row.id,
        title=row.title,
        description=row.description,
        category=row.category,
        latitude=row.latitude,
        longitude=row.longitude,
        image_url=row.image_url,
        status=row.status,
        priority=row.priority,
        reported_by=row.reported_by,
        reporter_name=row.reporter_name,
        assigned_department=row.assigned_department,
        assigned_officer_id=row.assigned_officer_id,
        sla_deadline=row.sla_deadline,
        resolution_notes=row.resolution_notes,
        created_at=row.created_at,
        updated_at=row.updated_at,
        upvotes=row.upvotes or 0,
        history=[
            HistoryEntry(status=h.status, updated_by=h.updated_by, timestamp=h.timestamp, comment=h.comment)
            for h in row.history
        ],
        notes=[
            AdminNote(id=n.note_id, author=n.author, content=n.content, timestamp=n.timestamp)
            for n in row.notes
        ],
        escalation_details=escalation,
        version=row.version,
    )


def _history_row(entry: HistoryEntry) -> IssueHistory:
    return IssueHistory(
        status=entry.status,
        updated_by=entry.updated_by,
        timestamp=entry.timestamp,
        comment=entry.comment,
    )


def _note_row(note: AdminNote) -> IssueNote:
    return IssueNote(note_id=note.id, author=note.author, content=note.content, timestamp=note.timestamp)


def _apply_escalation(row: Issue, details: Optional[EscalationDetails]) -> None:
    row.escalated_to = details.escalated_to if details else None
    row.escalated_at = details.escalated_at if details else None
    row.escalation_reason = details.reason if details else None
    row.escalation_reference_id = details.reference_id if details else None


class IssueRegistry:
    def __init__(self, db: Session, hub: Optional[SubscriptionHub] = None):
        self.db = db
        self.hub = hub if hub is not None else subscriptions.hub

    # ---- reads ----

    def get(self, issue_id: str) -> Optional[IssueRecord]:
        try:
            row = self.db.get(Issue, issue_id)
        except SQLAlchemyError as e:
            logger.error("Registry read failed for issue %s: %s", issue_id, e, exc_info=True)
            raise UpstreamUnavailableError("Issue registry is unavailable")
        return _to_record(row) if row else None

    def _query(
        self,
        reporter_id: Optional[str] = None,
        status: Optional[list[IssueStatus]] = None,
        category: Optional[IssueCategory] = None,
        priority: Optional[IssuePriority] = None,
        search: Optional[str] = None,
        bbox: Optional[tuple[float, float, float, float]] = None,
    ):
        q = self.db.query(Issue)
        if reporter_id:
            q = q.filter(Issue.reported_by == reporter_id)
        if status:
            q = q.filter(Issue.status.in_(status))
        if category:
            q = q.filter(Issue.category == category)
        if priority:
            q = q.filter(Issue.priority == priority)
        if search:
            term = f"%{search.strip()}%"
            q = q.filter(or_(Issue.id == search.strip(), Issue.title.ilike(term), Issue.description.ilike(term)))
        if bbox:
            min_lat, min_lng, max_lat, max_lng = bbox
            q = q.filter(
                Issue.latitude >= min_lat,
                Issue.latitude <= max_lat,
                Issue.longitude >= min_lng,
                Issue.longitude <= max_lng,
            )
        return q

    def list(self, limit: Optional[int] = None, offset: int = 0, **filters) -> list[IssueRecord]:
        """Issues matching ``filters``, newest first."""
        try:
            q = self._query(**filters).order_by(Issue.created_at.desc(), Issue.id)
            if offset:
                q = q.offset(offset)
            if limit is not None:
                q = q.limit(limit)
            rows = q.all()
        except SQLAlchemyError as e:
            logger.error("Registry listing failed: %s", e, exc_info=True)
            raise UpstreamUnavailableError("Issue registry is unavailable")
        return [_to_record(r) for r in rows]

    def count(self, **filters) -> int:
        try:
            return self._query(**filters).count()
        except SQLAlchemyError as e:
            logger.error("Registry count failed: %s", e, exc_info=True)
            raise UpstreamUnavailableError("Issue registry is unavailable")

    # ---- writes ----

    def create(self, record: IssueRecord) -> str:
        issue_id = record.id or new_issue_id()
        row = Issue(
            id=issue_id,
            title=record.title,
            description=record.description,
            category=record.category,
            priority=record.priority,
            status=record.status,
            latitude=record.latitude,
            longitude=record.longitude,
            image_url=record.image_url,
            reported_by=record.reported_by,
            reporter_name=record.reporter_name,
            assigned_department=record.assigned_department,
            assigned_officer_id=record.assigned_officer_id,
            sla_deadline=record.sla_deadline,
            resolution_notes=record.resolution_notes,
            upvotes=record.upvotes,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
        _apply_escalation(row, record.escalation_details)
        row.history = [_history_row(h) for h in record.history]
        row.notes = [_note_row(n) for n in record.notes]
        self.db.add(row)
        self._commit(issue_id)
        self._publish(issue_id, record.reported_by)
        return issue_id

    def update(
        self,
        issue_id: str,
        patch: dict,
        history: Optional[HistoryEntry] = None,
        note: Optional[AdminNote] = None,
        expected_version: Optional[int] = None,
    ) -> IssueRecord:
        """Apply ``patch`` (record field names) plus optional appends in one commit."""
        unknown = set(patch) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")

        row = self._load_for_write(issue_id, expected_version)
        for key, value in patch.items():
            if key == "escalation_details":
                _apply_escalation(row, value)
            else:
                setattr(row, key, value)
        if history is not None:
            row.history.append(_history_row(history))
        if note is not None:
            row.notes.append(_note_row(note))

        self._commit(issue_id)
        self.db.refresh(row)
        self._publish(issue_id, row.reported_by)
        return _to_record(row)

    def increment_upvotes(self, issue_id: str) -> IssueRecord:
        """Add one upvote in SQL. The counter bypasses the version check and leaves ``version`` alone."""
        stmt = (
            update(Issue)
            .where(Issue.id == issue_id)
            .values(upvotes=Issue.upvotes + 1)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Upvote failed for issue %s: %s", issue_id, e, exc_info=True)
            raise UpstreamUnavailableError("Issue registry is unavailable")
        if result.rowcount == 0:
            self.db.rollback()
            raise NotFoundError(issue_id)
        self._commit(issue_id)
        record = self.get(issue_id)
        self._publish(issue_id, record.reported_by)
        return record

    def _load_for_write(self, issue_id: str, expected_version: Optional[int] = None) -> Issue:
        try:
            row = self.db.get(Issue, issue_id)
        except SQLAlchemyError as e:
            logger.error("Registry read failed for issue %s: %s", issue_id, e, exc_info=True)
            raise UpstreamUnavailableError("Issue registry is unavailable")
        if not row:
            raise NotFoundError(issue_id)
        if expected_version is not None and row.version != expected_version:
            raise ConflictError(
                f"Issue {issue_id} is at version {row.version}, expected {expected_version}"
            )
        return row

    def _commit(self, issue_id: str) -> None:
        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            raise ConflictError(f"Issue {issue_id} was modified concurrently")
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Registry write failed for issue %s: %s", issue_id, e, exc_info=True)
            raise UpstreamUnavailableError("Issue registry is unavailable")

    # ---- subscriptions ----

    def subscribe_all(
        self,
        callback: Callable[[list[IssueRecord]], None],
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> Callable[[], None]:
        return self._subscribe(Subscription(subscriptions.ALL, None, callback, on_error))

    def subscribe_by_reporter(
        self,
        reporter_id: str,
        callback: Callable[[list[IssueRecord]], None],
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> Callable[[], None]:
        return self._subscribe(Subscription(subscriptions.REPORTER, reporter_id, callback, on_error))

    def subscribe_one(
        self,
        issue_id: str,
        callback: Callable[[Optional[IssueRecord]], None],
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> Callable[[], None]:
        return self._subscribe(Subscription(subscriptions.ONE, issue_id, callback, on_error))

    def _subscribe(self, sub: Subscription) -> Callable[[], None]:
        unsubscribe = self.hub.add(sub)
        subscriptions.deliver(sub, lambda: self._snapshot(sub))
        return unsubscribe

    def _snapshot(self, sub: Subscription):
        if sub.kind == subscriptions.ONE:
            return self.get(sub.key)
        if sub.kind == subscriptions.REPORTER:
            return self.list(reporter_id=sub.key)
        return self.list()

    def _publish(self, issue_id: str, reporter_id: Optional[str]) -> None:
        for sub in self.hub.matching(issue_id, reporter_id):
            subscriptions.deliver(sub, lambda sub=sub: self._snapshot(sub))
