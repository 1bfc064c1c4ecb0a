# File: app/models/issue.py
from __future__ import annotations
from datetime import datetime
from enum import Enum as PyEnum
from typing import TYPE_CHECKING
from sqlalchemy import String, Text, Float, Integer, DateTime, Enum, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.db.base import Base

if TYPE_CHECKING:
    from app.models.issue_history import IssueHistory
    from app.models.issue_note import IssueNote

class IssueStatus(str, PyEnum):
    reported = "reported"
    acknowledged = "acknowledged"
    verified = "verified"
    in_progress = "in-progress"
    resolved = "resolved"
    rejected = "rejected"
    escalated = "escalated"

STATUS_LABELS = {
    IssueStatus.reported: "Reported",
    IssueStatus.acknowledged: "Acknowledged",
    IssueStatus.verified: "Verified",
    IssueStatus.in_progress: "In Progress",
    IssueStatus.resolved: "Resolved",
    IssueStatus.rejected: "Rejected",
    IssueStatus.escalated: "Escalated",
}

class IssueCategory(str, PyEnum):
    roads = "Roads & Infrastructure"
    garbage = "Garbage & Sanitation"
    water = "Water Supply"
    electricity = "Electricity"
    street_lights = "Street Lights"
    public_safety = "Public Safety"
    traffic = "Traffic Issues"
    others = "Others"

class IssuePriority(str, PyEnum):
    high = "high"
    medium = "medium"
    low = "low"

def enum_column(enum_cls):
    """Store enum *values* ("in-progress", "Water Supply") rather than member names."""
    return Enum(
        enum_cls,
        values_callable=lambda e: [m.value for m in e],
        native_enum=False,
        validate_strings=True,
    )

class Issue(Base):
    __tablename__ = "issues"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    title: Mapped[str] = mapped_column(String(200), index=True)
    description: Mapped[str] = mapped_column(String(4000))
    category: Mapped[IssueCategory] = mapped_column(enum_column(IssueCategory), index=True)
    priority: Mapped[IssuePriority] = mapped_column(enum_column(IssuePriority), index=True)
    status: Mapped[IssueStatus] = mapped_column(enum_column(IssueStatus), default=IssueStatus.reported, index=True)

    latitude: Mapped[float] = mapped_column(Float)
    longitude: Mapped[float] = mapped_column(Float)
    # public URL, or an inline data: URL when storage is not configured
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    reported_by: Mapped[str] = mapped_column(String(128), index=True)
    reporter_name: Mapped[str | None] = mapped_column(String(120), nullable=True)

    assigned_department: Mapped[str | None] = mapped_column(String(120), nullable=True)
    assigned_officer_id: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    sla_deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    upvotes: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    escalated_to: Mapped[str | None] = mapped_column(String(200), nullable=True)
    escalated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    escalation_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    escalation_reference_id: Mapped[str | None] = mapped_column(String(120), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # child tables live in issue_history.py / issue_note.py; resolved by name
    history: Mapped[list[IssueHistory]] = relationship(
        "IssueHistory", order_by="IssueHistory.id", cascade="all, delete-orphan", lazy="selectin"
    )
    notes: Mapped[list[IssueNote]] = relationship(
        "IssueNote", order_by="IssueNote.seq", cascade="all, delete-orphan", lazy="selectin"
    )

    __mapper_args__ = {"version_id_col": version}

Index("ix_issues_lat_lng", Issue.latitude, Issue.longitude)
