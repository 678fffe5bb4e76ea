# backend/app/services/ledger.py
"""
Credit Ledger

Sole authority for mutating User.credits. Every movement is a conditional
UPDATE on the materialized balance plus an append-only CreditTransaction row,
committed together so the balance and the log never diverge.

Architecture:
- CreditStore: storage contract (atomic delta, balance read, log append)
- Ledger: debit / credit / refund on top of the store

Concurrency:
- Debits are a single `UPDATE ... WHERE credits + delta >= floor`, so two
  concurrent debits can never both pass the funds check.
- No in-process locks; the database serializes writers on the user row.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Union
from uuid import UUID

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import User, CreditTransaction

logger = logging.getLogger(__name__)


# ============================================================================
# RESULT TYPES
# ============================================================================

@dataclass
class InsufficientFunds:
    """Debit rejected. No balance change, no transaction written."""
    user_id: UUID
    requested: int
    available: int

    @property
    def shortfall(self) -> int:
        return self.requested - self.available


class UserNotFoundError(Exception):
    """Raised when a credit operation targets a user that does not exist."""

    def __init__(self, user_id: UUID):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


# ============================================================================
# STORAGE CONTRACT
# ============================================================================

class CreditStore:
    """SQLAlchemy-backed storage for balances and the transaction log."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_balance(self, user_id: UUID) -> Optional[int]:
        result = await self.db.execute(
            select(User.credits).where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    async def apply_atomic_delta(
        self,
        user_id: UUID,
        delta: int,
        floor: int = 0
    ) -> Optional[int]:
        """
        Apply `delta` to the balance only if the result stays >= floor.

        Returns the new balance, or None when the update was rejected
        (insufficient funds or unknown user). Runs in the caller's transaction.
        """
        result = await self.db.execute(
            update(User)
            .where(User.id == user_id, User.credits + delta >= floor)
            .values(credits=User.credits + delta)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            return None

        return await self.get_balance(user_id)

    async def append_transaction(self, record: CreditTransaction) -> CreditTransaction:
        self.db.add(record)
        await self.db.flush()
        return record

    async def list_transactions(self, user_id: UUID) -> List[CreditTransaction]:
        result = await self.db.execute(
            select(CreditTransaction)
            .where(CreditTransaction.user_id == user_id)
            .order_by(CreditTransaction.id.desc())
        )
        return list(result.scalars().all())


# ============================================================================
# LEDGER
# ============================================================================

class Ledger:
    """
    Credit ledger over a single AsyncSession.

    debit() is the only operation with a non-exceptional failure
    (InsufficientFunds). Each call commits its own transaction and is
    never retried.
    """

    def __init__(self, db: AsyncSession, store: Optional[CreditStore] = None):
        self.db = db
        self.store = store or CreditStore(db)

    async def debit(
        self,
        user_id: UUID,
        amount: int,
        description: str
    ) -> Union[int, InsufficientFunds]:
        """
        Charge `amount` credits.

        Returns:
            New balance, or InsufficientFunds if the balance is too low.

        Raises:
            ValueError: amount is not a positive integer
            UserNotFoundError: user does not exist
        """
        self._check_amount(amount)

        try:
            new_balance = await self.store.apply_atomic_delta(user_id, -amount, floor=0)

            if new_balance is None:
                await self.db.rollback()
                available = await self.store.get_balance(user_id)
                if available is None:
                    raise UserNotFoundError(user_id)

                logger.info(
                    f"❌ Debit rejected for user {user_id}: "
                    f"requested {amount}, available {available}"
                )
                return InsufficientFunds(
                    user_id=user_id,
                    requested=amount,
                    available=available
                )

            await self.store.append_transaction(CreditTransaction(
                user_id=user_id,
                amount=-amount,
                type="debit",
                description=description
            ))
            await self.db.commit()

        except UserNotFoundError:
            raise
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Debit failed for user {user_id}: {e}")
            raise

        logger.info(f"💳 Debited {amount} from user {user_id} ({description}), balance {new_balance}")
        return new_balance

    async def credit(self, user_id: UUID, amount: int, description: str) -> int:
        """Unconditionally add `amount` credits. Used for grants and refunds."""
        self._check_amount(amount)

        try:
            new_balance = await self.store.apply_atomic_delta(
                user_id, amount, floor=-amount
            )
            if new_balance is None:
                raise UserNotFoundError(user_id)

            await self.store.append_transaction(CreditTransaction(
                user_id=user_id,
                amount=amount,
                type="credit",
                description=description
            ))
            await self.db.commit()

        except Exception as e:
            await self.db.rollback()
            logger.error(f"Credit failed for user {user_id}: {e}")
            raise

        logger.info(f"💰 Credited {amount} to user {user_id} ({description}), balance {new_balance}")
        return new_balance

    async def refund(self, user_id: UUID, amount: int, reason: str) -> int:
        """Compensating credit for a paid operation that produced nothing."""
        return await self.credit(user_id, amount, f"refund: {reason}")

    async def balance(self, user_id: UUID) -> int:
        """Current balance from the materialized column."""
        balance = await self.store.get_balance(user_id)
        if balance is None:
            raise UserNotFoundError(user_id)
        return balance

    async def history(self, user_id: UUID) -> List[CreditTransaction]:
        """All transactions, most recent first."""
        return await self.store.list_transactions(user_id)

    async def reconstruct_balance(self, user_id: UUID) -> int:
        """Sum of the transaction log. Consistency checks only, never the hot path."""
        result = await self.db.execute(
            select(func.coalesce(func.sum(CreditTransaction.amount), 0))
            .where(CreditTransaction.user_id == user_id)
        )
        return int(result.scalar_one())

    @staticmethod
    def _check_amount(amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValueError(f"Credit amount must be a positive integer, got {amount!r}")
