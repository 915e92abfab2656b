"""
User Model

Account holder owning tasks, commit jobs and a credit balance.
"""

from typing import List, Optional

from sqlalchemy import CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gitfarm.db.base import Base


class User(Base):
    """
    User Model.

    ``credits`` is the spendable balance. It is never allowed to go
    negative; debits go through ``CreditLedger.debit_if_sufficient``.
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("credits >= 0", name="ck_users_credits_non_negative"),
    )

    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False, index=True)
    credits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    accounts: Mapped[List["Account"]] = relationship(
        "Account",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    tasks: Mapped[List["Task"]] = relationship(
        "Task",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    commit_jobs: Mapped[List["CommitJob"]] = relationship(
        "CommitJob",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, credits={self.credits})>"
