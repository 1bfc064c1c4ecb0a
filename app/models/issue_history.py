# File: app/models/issue_history.py
from __future__ import annotations
from datetime import datetime
from sqlalchemy import String, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base
from app.models.issue import IssueStatus, enum_column

class IssueHistory(Base):
    __tablename__ = "issue_history"

    # insertion order is the history order
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    issue_id: Mapped[str] = mapped_column(ForeignKey("issues.id", ondelete="CASCADE"), index=True, nullable=False)
    status: Mapped[IssueStatus] = mapped_column(enum_column(IssueStatus), nullable=False)
    updated_by: Mapped[str] = mapped_column(String(120), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # long enough for "Escalated to <target>: <reason>"
    comment: Mapped[str | None] = mapped_column(String(1300), nullable=True)
