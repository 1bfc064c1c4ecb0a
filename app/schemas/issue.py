from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from typing import Annotated, Optional, List
from datetime import datetime, timezone

from app.models.issue import IssueCategory, IssuePriority, IssueStatus


def to_utc(value):
    """Normalise the timestamp shapes the store hands back into an aware UTC datetime.

    Accepts aware or naive datetimes (naive means UTC), ISO-8601 strings with
    or without a trailing ``Z``, and epoch seconds.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str):
        raw = value.strip()
        if raw.endswith(("Z", "z")):
            raw = raw[:-1] + "+00:00"
        value = datetime.fromisoformat(raw)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return value


Timestamp = Annotated[datetime, BeforeValidator(to_utc)]

# column widths in app/models; inputs longer than these are rejected up front
TITLE_MAX = 200
TEXT_MAX = 4000
NAME_MAX = 120
ACTOR_ID_MAX = 128
DEPARTMENT_MAX = 120
OFFICER_ID_MAX = 64
COMMENT_MAX = 1000
ESCALATED_TO_MAX = 200
REASON_MAX = 1000
REFERENCE_ID_MAX = 120
SLA_MAX = 64
# an escalation comment is "Escalated to <target>: <reason>"
HISTORY_COMMENT_MAX = 1300


class CamelModel(BaseModel):
    """Field names on the wire match the persisted record (``reportedBy``, ``slaDeadline``...)."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class HistoryEntry(CamelModel):
    status: IssueStatus
    updated_by: str = Field(max_length=NAME_MAX)
    timestamp: Timestamp
    comment: Optional[str] = Field(default=None, max_length=HISTORY_COMMENT_MAX)


class AdminNote(CamelModel):
    id: str
    author: str = Field(max_length=NAME_MAX)
    content: str = Field(max_length=TEXT_MAX)
    timestamp: Timestamp


class EscalationDetails(CamelModel):
    escalated_to: str = Field(max_length=ESCALATED_TO_MAX)
    escalated_at: Timestamp
    reason: str = Field(max_length=REASON_MAX)
    reference_id: Optional[str] = Field(default=None, max_length=REFERENCE_ID_MAX)


class IssueRecord(CamelModel):
    """An issue in its persisted record shape."""
    id: Optional[str] = None
    title: str = Field(min_length=1, max_length=TITLE_MAX)
    description: str = Field(min_length=1, max_length=TEXT_MAX)
    category: IssueCategory
    latitude: float
    longitude: float
    image_url: Optional[str] = None
    status: IssueStatus = IssueStatus.reported
    priority: IssuePriority
    reported_by: str = Field(max_length=ACTOR_ID_MAX)
    reporter_name: Optional[str] = Field(default=None, max_length=NAME_MAX)

    assigned_department: Optional[str] = Field(default=None, max_length=DEPARTMENT_MAX)
    assigned_officer_id: Optional[str] = Field(default=None, max_length=OFFICER_ID_MAX)
    sla_deadline: Optional[Timestamp] = None
    resolution_notes: Optional[str] = Field(default=None, max_length=TEXT_MAX)

    created_at: Timestamp
    updated_at: Timestamp
    upvotes: int = Field(default=0, ge=0)

    history: List[HistoryEntry] = Field(min_length=1)
    notes: List[AdminNote] = Field(default_factory=list)
    escalation_details: Optional[EscalationDetails] = None

    version: Optional[int] = None

    @model_validator(mode="after")
    def check_lifecycle(self):
        if self.history[0].status != IssueStatus.reported:
            raise ValueError("history must start with a 'reported' entry")
        if self.updated_at < self.created_at:
            raise ValueError("updatedAt cannot be earlier than createdAt")
        return self


class AssignmentPatch(CamelModel):
    """Partial assignment update; only fields explicitly set are applied."""
    assigned_department: Optional[str] = Field(default=None, max_length=DEPARTMENT_MAX)
    assigned_officer_id: Optional[str] = Field(default=None, max_length=OFFICER_ID_MAX)
    sla_deadline: Optional[Timestamp] = None
    resolution_notes: Optional[str] = Field(default=None, max_length=TEXT_MAX)


class StatusUpdateIn(CamelModel):
    status: IssueStatus
    comment: Optional[str] = Field(default=None, max_length=COMMENT_MAX)
    assigned_department: Optional[str] = Field(default=None, max_length=DEPARTMENT_MAX)
    assigned_officer_id: Optional[str] = Field(default=None, max_length=OFFICER_ID_MAX)
    # "3 Days" or "2026-03-01"
    sla: Optional[str] = Field(default=None, max_length=SLA_MAX)
    resolution_notes: Optional[str] = Field(default=None, max_length=TEXT_MAX)
    expected_version: Optional[int] = None


class EscalateIn(CamelModel):
    escalated_to: str = Field(min_length=1, max_length=ESCALATED_TO_MAX)
    reason: str = Field(min_length=1, max_length=REASON_MAX)
    reference_id: Optional[str] = Field(default=None, max_length=REFERENCE_ID_MAX)
    expected_version: Optional[int] = None


class NoteIn(CamelModel):
    content: str = Field(min_length=1, max_length=TEXT_MAX)


class BulkStatusIn(CamelModel):
    issue_ids: List[str] = Field(min_length=1, max_length=100)
    status: IssueStatus
    comment: Optional[str] = Field(default=None, max_length=COMMENT_MAX)


class BulkFailure(CamelModel):
    id: str
    code: str
    detail: str


class BulkResult(CamelModel):
    updated: List[str] = []
    failed: List[BulkFailure] = []


class PaginatedIssuesOut(CamelModel):
    items: List[IssueRecord]
    total: int
    offset: int
    limit: int


class DuplicateIssueResponse(CamelModel):
    duplicate: bool = True
    existing_issue_ids: List[str]
    message: str


class GovernmentPortal(CamelModel):
    name: str
    url: str
    description: str
