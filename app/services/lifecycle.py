# app/services/lifecycle.py
"""Issue lifecycle: creation, status transitions, escalation and admin notes.

Every operation receives the acting ``ActorSession`` explicitly and commits
through the registry exactly once, so status, history, assignment and notes
change together or not at all.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from app.core.errors import (
    IllegalTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from app.models.issue import IssueCategory, IssueStatus
from app.schemas.auth import ActorSession
from app.schemas.issue import (
    COMMENT_MAX,
    ESCALATED_TO_MAX,
    REASON_MAX,
    REFERENCE_ID_MAX,
    TEXT_MAX,
    TITLE_MAX,
    AdminNote,
    AssignmentPatch,
    EscalationDetails,
    HistoryEntry,
    IssueRecord,
    to_utc,
)
from app.services import storage
from app.services.priority import classify
from app.services.registry import IssueRegistry

logger = logging.getLogger(__name__)

REPORTED_COMMENT = "Issue reported by citizen"

ALLOWED_TRANSITIONS: dict[IssueStatus, frozenset[IssueStatus]] = {
    IssueStatus.reported: frozenset({IssueStatus.acknowledged, IssueStatus.rejected, IssueStatus.escalated}),
    IssueStatus.acknowledged: frozenset({IssueStatus.verified, IssueStatus.escalated}),
    IssueStatus.verified: frozenset({IssueStatus.in_progress, IssueStatus.escalated}),
    IssueStatus.in_progress: frozenset({IssueStatus.resolved, IssueStatus.escalated}),
    IssueStatus.resolved: frozenset(),
    IssueStatus.rejected: frozenset(),
    IssueStatus.escalated: frozenset(),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Attachment:
    data: bytes
    content_type: str
    filename: str = "upload.jpg"


def _parse_status(value) -> IssueStatus:
    try:
        return IssueStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown status '{value}'")


def _parse_category(value) -> IssueCategory:
    if not value:
        raise ValidationError("Category is required")
    try:
        return IssueCategory(value)
    except ValueError:
        raise ValidationError(f"Unknown category '{value}'")


def _required_text(value: Optional[str], label: str, max_length: int) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{label} is required")
    if len(text) > max_length:
        raise ValidationError(f"{label} must be at most {max_length} characters")
    return text


def _optional_text(value: Optional[str], label: str, max_length: int) -> Optional[str]:
    text = (value or "").strip()
    if len(text) > max_length:
        raise ValidationError(f"{label} must be at most {max_length} characters")
    return text or None


class IssueLifecycle:
    def __init__(
        self,
        registry: IssueRegistry,
        strict_transitions: bool = True,
        clock: Callable[[], datetime] = utcnow,
        uploader: Callable[[bytes, str, str], str] = storage.upload_image,
    ):
        self.registry = registry
        self.strict_transitions = strict_transitions
        self.clock = clock
        self.uploader = uploader

    def can_transition(self, current: IssueStatus, target: IssueStatus) -> bool:
        if not self.strict_transitions:
            return True
        return target in ALLOWED_TRANSITIONS[current]

    def create(
        self,
        session: ActorSession,
        title: str,
        description: str,
        category,
        latitude: float,
        longitude: float,
        image: Optional[Attachment] = None,
    ) -> IssueRecord:
        title = _required_text(title, "Title", TITLE_MAX)
        description = _required_text(description, "Description", TEXT_MAX)
        category = _parse_category(category)
        if latitude is None or longitude is None:
            raise ValidationError("Location is required")
        if not (-90 <= latitude <= 90 and -180 <= longitude <= 180):
            raise ValidationError("Location is out of range")

        image_url = None
        if image is not None:
            image_url = self._upload(image)

        now = to_utc(self.clock())
        record = IssueRecord(
            title=title,
            description=description,
            category=category,
            latitude=latitude,
            longitude=longitude,
            image_url=image_url,
            status=IssueStatus.reported,
            priority=classify(category, description),
            reported_by=session.id,
            reporter_name=session.name,
            created_at=now,
            updated_at=now,
            upvotes=0,
            history=[
                HistoryEntry(
                    status=IssueStatus.reported,
                    updated_by=session.name,
                    timestamp=now,
                    comment=REPORTED_COMMENT,
                )
            ],
            notes=[],
        )
        issue_id = self.registry.create(record)
        logger.info("Issue %s reported by %s (%s, priority %s)",
                    issue_id, session.id, category.value, record.priority.value)
        return self.get(issue_id)

    def transition(
        self,
        session: ActorSession,
        issue_id: str,
        new_status,
        comment: Optional[str] = None,
        assignment: Optional[AssignmentPatch] = None,
        expected_version: Optional[int] = None,
    ) -> IssueRecord:
        self._require_admin(session, "change issue status")
        new_status = _parse_status(new_status)
        comment = _optional_text(comment, "Comment", COMMENT_MAX)
        if new_status == IssueStatus.escalated and self.strict_transitions:
            raise ValidationError("Escalation needs a target and a reason; use the escalate operation")

        current = self.get(issue_id)
        self._check_transition(current, new_status)
        now = self._now(current)

        patch = {"status": new_status, "updated_at": now}
        if assignment is not None:
            patch.update(assignment.model_dump(exclude_unset=True))
        entry = HistoryEntry(status=new_status, updated_by=session.name, timestamp=now, comment=comment)

        updated = self.registry.update(
            issue_id, patch, history=entry, expected_version=self._version(current, expected_version)
        )
        logger.info("Issue %s moved %s -> %s by %s",
                    issue_id, current.status.value, new_status.value, session.id)
        return updated

    def escalate(
        self,
        session: ActorSession,
        issue_id: str,
        escalated_to: str,
        reason: str,
        reference_id: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> IssueRecord:
        self._require_admin(session, "escalate issues")
        escalated_to = _required_text(escalated_to, "Escalation target", ESCALATED_TO_MAX)
        reason = _required_text(reason, "Escalation reason", REASON_MAX)
        reference_id = _optional_text(reference_id, "Reference id", REFERENCE_ID_MAX)

        current = self.get(issue_id)
        self._check_transition(current, IssueStatus.escalated)
        now = self._now(current)

        details = EscalationDetails(
            escalated_to=escalated_to,
            escalated_at=now,
            reason=reason,
            reference_id=reference_id,
        )
        entry = HistoryEntry(
            status=IssueStatus.escalated,
            updated_by=session.name,
            timestamp=now,
            comment=f"Escalated to {escalated_to}: {reason}",
        )
        updated = self.registry.update(
            issue_id,
            {"status": IssueStatus.escalated, "updated_at": now, "escalation_details": details},
            history=entry,
            expected_version=self._version(current, expected_version),
        )
        logger.info("Issue %s escalated to %s by %s", issue_id, escalated_to, session.id)
        return updated

    def add_note(self, session: ActorSession, issue_id: str, content: str) -> AdminNote:
        self._require_admin(session, "add notes")
        content = _required_text(content, "Note content", TEXT_MAX)
        current = self.get(issue_id)
        note = AdminNote(
            id=uuid.uuid4().hex,
            author=session.name,
            content=content,
            timestamp=self._now(current),
        )
        self.registry.update(issue_id, {"updated_at": note.timestamp}, note=note)
        logger.info("Note %s added to issue %s by %s", note.id, issue_id, session.id)
        return note

    def upvote(self, session: ActorSession, issue_id: str) -> IssueRecord:
        updated = self.registry.increment_upvotes(issue_id)
        logger.debug("Issue %s upvoted by %s", issue_id, session.id)
        return updated

    # ---- helpers ----

    def _upload(self, image: Attachment) -> str:
        if image.content_type not in storage.ALLOWED:
            raise ValidationError("Unsupported image type")
        if not image.data:
            raise ValidationError("Image is empty")
        if len(image.data) > storage.MAX_BYTES:
            raise ValidationError("Image exceeds 2MB")
        return self.uploader(image.data, image.content_type, storage.make_object_key(image.filename))

    def get(self, issue_id: str) -> IssueRecord:
        issue = self.registry.get(issue_id)
        if issue is None:
            raise NotFoundError(issue_id)
        return issue

    def _require_admin(self, session: ActorSession, action: str) -> None:
        if not session.is_admin:
            raise PermissionDeniedError(f"Only administrators can {action}")

    def _check_transition(self, current: IssueRecord, target: IssueStatus) -> None:
        if not self.can_transition(current.status, target):
            raise IllegalTransitionError(current.status.value, target.value)

    def _now(self, current: IssueRecord) -> datetime:
        # updatedAt never goes behind createdAt, even with a skewed clock
        return max(to_utc(self.clock()), current.created_at)

    def _version(self, current: IssueRecord, expected: Optional[int]) -> Optional[int]:
        # the legality check above was made against this version
        if expected is not None:
            return expected
        return current.version if self.strict_transitions else None
