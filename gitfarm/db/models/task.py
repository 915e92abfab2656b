"""
Scheduled Task Model

Database model for recurring commit tasks.
"""

import enum
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, JSON, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gitfarm.db.base import Base


class Distribution(str, enum.Enum):
    """How a task's repository list is sampled on each run."""
    RANDOM = "RANDOM"
    EQUAL = "EQUAL"


class Task(Base):
    """
    Scheduled Task Model.

    ``repositories`` is an ordered list of ``{"full_name": "owner/name",
    "commits": n}`` entries. ``credits_used`` is mutated only by the task
    runner; the task is deactivated once it reaches ``credit_limit``.
    ``next_run_at`` is computed from ``schedule`` after every run and gates
    which tasks a runner invocation picks up.
    """

    __tablename__ = "tasks"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    repositories: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    distribution: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=Distribution.EQUAL.value,
    )
    schedule: Mapped[str] = mapped_column(String(100), nullable=False)

    credit_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    credits_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    next_run_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
    )
    last_run_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    user: Mapped["User"] = relationship("User", back_populates="tasks")
    logs: Mapped[List["TaskLog"]] = relationship(
        "TaskLog",
        back_populates="task",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="TaskLog.timestamp.desc()",
    )

    @property
    def limit_reached(self) -> bool:
        return self.credit_limit is not None and self.credits_used >= self.credit_limit

    def __repr__(self) -> str:
        return f"<Task(id={self.id}, name={self.name}, active={self.active})>"
