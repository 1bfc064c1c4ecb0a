# File: app/models/issue_note.py

from datetime import datetime
from sqlalchemy import String, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base

class IssueNote(Base):
    __tablename__ = "issue_notes"

    seq: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    note_id: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    issue_id: Mapped[str] = mapped_column(ForeignKey("issues.id", ondelete="CASCADE"), index=True)
    author: Mapped[str] = mapped_column(String(120))
    content: Mapped[str] = mapped_column(String(4000))
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True))
