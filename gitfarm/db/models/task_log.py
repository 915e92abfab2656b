"""
Task Log Model

Append-only record of one execution attempt against one repository.
"""

import enum
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gitfarm.db.base import Base, utcnow


class LogStatus(str, enum.Enum):
    """Status of a task log entry."""
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PENDING = "PENDING"
    RUNNING = "RUNNING"


class TaskLog(Base):
    """
    Task Log Model.

    Written once with its final status and never updated afterwards.
    ``details`` lists the stages the attempt went through.
    """

    __tablename__ = "task_logs"

    task_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    commits_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    credits_deducted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    repository: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    details: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        index=True,
    )

    task: Mapped["Task"] = relationship("Task", back_populates="logs")

    def __repr__(self) -> str:
        return f"<TaskLog(task_id={self.task_id}, status={self.status}, repository={self.repository})>"
