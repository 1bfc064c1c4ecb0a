# File: app/routers/issues.py
from fastapi import APIRouter, Depends, Query, UploadFile, File, Request, Form, Response
from sqlalchemy.orm import Session
from typing import List, Optional, Union
from app.db.session import get_db
from app.core.config import settings
from app.core.errors import IssueError, PermissionDeniedError
from app.core.ratelimit import limiter
from app.core.security import get_current_actor, get_optional_actor
from app.models.issue import IssueCategory, IssuePriority, IssueStatus, STATUS_LABELS
from app.schemas.auth import ActorSession
from app.schemas.issue import (
    AdminNote,
    AssignmentPatch,
    BulkFailure,
    BulkResult,
    BulkStatusIn,
    DuplicateIssueResponse,
    EscalateIn,
    HistoryEntry,
    IssueRecord,
    NoteIn,
    PaginatedIssuesOut,
    StatusUpdateIn,
    to_utc,
)
from app.services.duplicates import bounding_box, find_duplicates
from app.services.lifecycle import Attachment, IssueLifecycle
from app.services.registry import IssueRegistry
from app.services.sla import compute_sla_deadline, is_nearing_deadline, is_overdue
from datetime import timedelta

router = APIRouter(prefix="/issues", tags=["issues"])

CATEGORY_VALUES = {c.value for c in IssueCategory}


def get_registry(db: Session = Depends(get_db)) -> IssueRegistry:
    return IssueRegistry(db)


def get_lifecycle(registry: IssueRegistry = Depends(get_registry)) -> IssueLifecycle:
    return IssueLifecycle(registry, strict_transitions=settings.strict_transitions)


def _parse_statuses(raw: Optional[str]) -> list[IssueStatus]:
    valid = []
    for s in (raw or "").split(","):
        s = s.strip()
        if not s:
            continue
        try:
            valid.append(IssueStatus(s))
        except ValueError:
            # ignore invalid values
            pass
    return valid


def _nearby(registry: IssueRegistry, lat: float, lng: float, category: IssueCategory, radius_km: float):
    candidates = registry.list(category=category, bbox=bounding_box(lat, lng, radius_km))
    return find_duplicates(lat, lng, category, radius_km, candidates)


@router.post("", response_model=Union[IssueRecord, DuplicateIssueResponse], status_code=201)
@limiter.limit("10/minute")
def create_issue(
    request: Request,
    response: Response,
    title: str = Form(""),
    description: str = Form(""),
    category: str = Form(""),
    latitude: float = Form(...),
    longitude: float = Form(...),
    bypass_duplicate_check: Optional[str] = Form(None, alias="bypassDuplicateCheck"),
    image: Optional[UploadFile] = File(default=None),
    registry: IssueRegistry = Depends(get_registry),
    lifecycle: IssueLifecycle = Depends(get_lifecycle),
    actor: ActorSession = Depends(get_current_actor),
):
    # Duplicate detection: same category within the configured radius
    bypass_duplicate = (bypass_duplicate_check or "").lower() == "true"
    if not bypass_duplicate and category in CATEGORY_VALUES:
        if -90 <= latitude <= 90 and -180 <= longitude <= 180:
            dups = _nearby(registry, latitude, longitude, IssueCategory(category), settings.duplicate_radius_km)
            if dups:
                response.status_code = 200
                return DuplicateIssueResponse(
                    existing_issue_ids=[d.id for d in dups],
                    message=(
                        f"{len(dups)} similar {category} report(s) found within "
                        f"{int(settings.duplicate_radius_km * 1000)}m of this location. "
                        "Would you like to view them instead?"
                    ),
                )

    attachment = None
    if image is not None and image.filename:
        attachment = Attachment(
            data=image.file.read(),
            content_type=image.content_type or "",
            filename=image.filename,
        )

    return lifecycle.create(
        actor,
        title=title,
        description=description,
        category=category,
        latitude=latitude,
        longitude=longitude,
        image=attachment,
    )


@router.get("", response_model=PaginatedIssuesOut)
@limiter.limit("60/minute")
def list_issues(
    request: Request,
    status: Optional[str] = Query(default=None, description="Comma-separated list of statuses"),
    category: Optional[IssueCategory] = Query(default=None),
    priority: Optional[IssuePriority] = Query(default=None),
    search: Optional[str] = Query(default=None),
    mine_only: int = Query(default=0, ge=0, le=1),
    overdue: int = Query(default=0, ge=0, le=1),
    nearing_deadline: int = Query(default=0, ge=0, le=1),
    limit: int = Query(default=20, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    registry: IssueRegistry = Depends(get_registry),
    lifecycle: IssueLifecycle = Depends(get_lifecycle),
    actor: Optional[ActorSession] = Depends(get_optional_actor),
):
    filters = {
        "status": _parse_statuses(status),
        "category": category,
        "priority": priority,
        "search": search,
    }
    # --------- MINE ONLY (issues reported by the caller) ---------
    if mine_only and actor:
        filters["reporter_id"] = actor.id

    # --------- OVERDUE / NEARING DEADLINE QUICK FILTERS ---------
    if overdue or nearing_deadline:
        now = to_utc(lifecycle.clock())
        window = timedelta(hours=settings.sla_nearing_window_hours)
        items = [
            i for i in registry.list(**filters)
            if (not overdue or is_overdue(i, now))
            and (not nearing_deadline or is_nearing_deadline(i, now, window))
        ]
        return PaginatedIssuesOut(items=items[offset:offset + limit], total=len(items), offset=offset, limit=limit)

    total = registry.count(**filters)
    items = registry.list(limit=limit, offset=offset, **filters)
    return PaginatedIssuesOut(items=items, total=total, offset=offset, limit=limit)


@router.get("/duplicates", response_model=List[IssueRecord])
def find_duplicate_issues(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    category: IssueCategory = Query(...),
    radius_km: Optional[float] = Query(default=None, ge=0, le=50),
    registry: IssueRegistry = Depends(get_registry),
):
    radius = settings.duplicate_radius_km if radius_km is None else radius_km
    return _nearby(registry, latitude, longitude, category, radius)


@router.post("/bulk", response_model=BulkResult)
def bulk_status_update(
    body: BulkStatusIn,
    lifecycle: IssueLifecycle = Depends(get_lifecycle),
    actor: ActorSession = Depends(get_current_actor),
):
    if not actor.is_admin:
        raise PermissionDeniedError("Only administrators can run bulk updates")
    result = BulkResult()
    label = STATUS_LABELS[body.status]
    for issue_id in dict.fromkeys(body.issue_ids):
        try:
            lifecycle.transition(
                actor,
                issue_id,
                body.status,
                comment=body.comment or f"Bulk update: transitioned to {label}",
            )
            result.updated.append(issue_id)
        except IssueError as e:
            result.failed.append(BulkFailure(id=issue_id, code=e.code, detail=e.message))
    return result


@router.get("/{issue_id}", response_model=IssueRecord)
def get_issue(issue_id: str, lifecycle: IssueLifecycle = Depends(get_lifecycle)):
    return lifecycle.get(issue_id)


@router.get("/{issue_id}/history", response_model=List[HistoryEntry])
def get_issue_history(issue_id: str, lifecycle: IssueLifecycle = Depends(get_lifecycle)):
    return lifecycle.get(issue_id).history


@router.patch("/{issue_id}/status", response_model=IssueRecord)
def update_status(
    issue_id: str,
    body: StatusUpdateIn,
    lifecycle: IssueLifecycle = Depends(get_lifecycle),
    actor: ActorSession = Depends(get_current_actor),
):
    fields = body.model_fields_set
    assignment_data = {
        k: getattr(body, k)
        for k in ("assigned_department", "assigned_officer_id", "resolution_notes")
        if k in fields
    }
    if body.sla:
        assignment_data["sla_deadline"] = compute_sla_deadline(to_utc(lifecycle.clock()), body.sla)
    assignment = AssignmentPatch(**assignment_data) if assignment_data else None

    comment = (body.comment or "").strip() or (
        f"Incident transitioned to {STATUS_LABELS[body.status]}"
        + (f" with {body.sla} SLA" if body.sla else "")
    )
    return lifecycle.transition(
        actor,
        issue_id,
        body.status,
        comment=comment,
        assignment=assignment,
        expected_version=body.expected_version,
    )


@router.post("/{issue_id}/escalate", response_model=IssueRecord)
def escalate_issue(
    issue_id: str,
    body: EscalateIn,
    lifecycle: IssueLifecycle = Depends(get_lifecycle),
    actor: ActorSession = Depends(get_current_actor),
):
    return lifecycle.escalate(
        actor,
        issue_id,
        escalated_to=body.escalated_to,
        reason=body.reason,
        reference_id=body.reference_id,
        expected_version=body.expected_version,
    )


@router.post("/{issue_id}/notes", response_model=AdminNote, status_code=201)
def add_note(
    issue_id: str,
    body: NoteIn,
    lifecycle: IssueLifecycle = Depends(get_lifecycle),
    actor: ActorSession = Depends(get_current_actor),
):
    return lifecycle.add_note(actor, issue_id, body.content)


@router.post("/{issue_id}/upvote", response_model=IssueRecord)
@limiter.limit("30/minute")
def upvote_issue(
    request: Request,
    issue_id: str,
    lifecycle: IssueLifecycle = Depends(get_lifecycle),
    actor: ActorSession = Depends(get_current_actor),
):
    return lifecycle.upvote(actor, issue_id)
