"""
Commit Job Model

Database model for ad-hoc commit generation requests from the editor.
"""

import enum
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gitfarm.db.base import Base


class JobStatus(str, enum.Enum):
    """Status of a commit job."""
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class CommitJob(Base):
    """
    Commit Job Model.

    ``pattern`` holds the contribution-grid cells (``{"week", "day",
    "selected"}``); one commit is generated per selected cell.
    """

    __tablename__ = "commit_jobs"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=JobStatus.PENDING.value,
        index=True,
    )
    total_commits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_commits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    repository: Mapped[str] = mapped_column(String(255), nullable=False)
    pattern: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    user: Mapped["User"] = relationship("User", back_populates="commit_jobs")

    def __repr__(self) -> str:
        return f"<CommitJob(id={self.id}, status={self.status}, repository={self.repository})>"
