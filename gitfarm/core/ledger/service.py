"""
Credit Ledger

Owns every read and write of ``User.credits``.
"""

import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gitfarm.db.models import User
from gitfarm.monitoring.metrics import credits_debited_counter

logger = logging.getLogger(__name__)


class InsufficientCreditsError(Exception):
    """Raised when a debit cannot be covered by the current balance."""

    def __init__(self, required: int, available: int):
        super().__init__(f"Insufficient credits. Required: {required}, Available: {available}")
        self.required = required
        self.available = available


class CreditLedger:
    """
    Credit balance operations.

    Debits are a single conditional UPDATE, so the balance check and the
    decrement happen in one statement and concurrent debits cannot take the
    balance below zero.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def balance(self, user_id: uuid.UUID) -> int:
        """Current balance read from the database (0 for unknown users)."""
        result = await self.session.execute(select(User.credits).where(User.id == user_id))
        return result.scalar_one_or_none() or 0

    async def debit_if_sufficient(self, user_id: uuid.UUID, amount: int) -> bool:
        """
        Atomically subtract ``amount`` if the balance covers it.

        Returns:
            True if the debit was applied, False if the balance was too low
        """
        if amount <= 0:
            raise ValueError("Debit amount must be positive")

        result = await self.session.execute(
            update(User)
            .where(User.id == user_id, User.credits >= amount)
            .values(credits=User.credits - amount)
            .execution_options(synchronize_session=False)
        )
        applied = result.rowcount == 1
        if applied:
            credits_debited_counter.inc(amount)
            logger.info(f"Debited {amount} credits from user {user_id}")
        else:
            logger.warning(f"Debit of {amount} credits refused for user {user_id}")
        return applied

    async def debit(self, user_id: uuid.UUID, amount: int) -> None:
        """Like ``debit_if_sufficient`` but raises ``InsufficientCreditsError``."""
        if not await self.debit_if_sufficient(user_id, amount):
            raise InsufficientCreditsError(amount, await self.balance(user_id))

    async def grant(self, user_id: uuid.UUID, amount: int) -> None:
        """Add ``amount`` credits (plan grants, refunds)."""
        if amount <= 0:
            raise ValueError("Grant amount must be positive")

        await self.session.execute(
            update(User)
            .where(User.id == user_id)
            .values(credits=User.credits + amount)
            .execution_options(synchronize_session=False)
        )
        logger.info(f"Granted {amount} credits to user {user_id}")
