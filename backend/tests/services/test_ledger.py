# tests/services/test_ledger.py
"""
Tests for the credit Ledger

Coverage:
- Debit / credit / refund bookkeeping
- Rejection leaves no trace
- Concurrent debits against one balance
- Balance == sum(history) invariant
- Argument validation

Run with: pytest tests/services/test_ledger.py -v
"""

import asyncio
import pytest
from uuid import uuid4

from app.services.ledger import InsufficientFunds, Ledger, UserNotFoundError


# ============================================================================
# TEST: Debit
# ============================================================================

class TestDebit:

    @pytest.mark.asyncio
    async def test_debit_decrements_and_logs(self, db, make_user):
        """Successful debit returns new balance and appends a negative transaction"""
        user = await make_user(credits=20)
        ledger = Ledger(db)

        new_balance = await ledger.debit(user.id, 5, "Contact enrichment")

        assert new_balance == 15
        assert await ledger.balance(user.id) == 15

        history = await ledger.history(user.id)
        assert history[0].amount == -5
        assert history[0].type == "debit"
        assert history[0].description == "Contact enrichment"

    @pytest.mark.asyncio
    async def test_rejection_is_a_no_op(self, db, make_user):
        """User has 3 credits, debit 5 -> InsufficientFunds, nothing changes"""
        user = await make_user(credits=3)
        ledger = Ledger(db)
        history_before = await ledger.history(user.id)

        result = await ledger.debit(user.id, 5, "x")

        assert isinstance(result, InsufficientFunds)
        assert result.requested == 5
        assert result.available == 3
        assert result.shortfall == 2
        assert await ledger.balance(user.id) == 3
        assert len(await ledger.history(user.id)) == len(history_before)

    @pytest.mark.asyncio
    async def test_debit_exact_balance_reaches_zero(self, db, make_user):
        user = await make_user(credits=10)
        ledger = Ledger(db)

        assert await ledger.debit(user.id, 10, "all of it") == 0
        assert isinstance(await ledger.debit(user.id, 1, "one more"), InsufficientFunds)

    @pytest.mark.asyncio
    async def test_debit_unknown_user_raises(self, db):
        with pytest.raises(UserNotFoundError):
            await Ledger(db).debit(uuid4(), 1, "ghost")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -3, 1.5, True])
    async def test_debit_rejects_non_positive_amounts(self, db, user, amount):
        with pytest.raises(ValueError):
            await Ledger(db).debit(user.id, amount, "bad")


# ============================================================================
# TEST: Credit & Refund
# ============================================================================

class TestCredit:

    @pytest.mark.asyncio
    async def test_credit_increments_and_logs(self, db, make_user):
        user = await make_user(credits=0)
        ledger = Ledger(db)

        assert await ledger.credit(user.id, 7, "Top-up") == 7

        history = await ledger.history(user.id)
        assert len(history) == 1
        assert history[0].amount == 7
        assert history[0].type == "credit"

    @pytest.mark.asyncio
    async def test_refund_prefixes_description(self, db, make_user):
        user = await make_user(credits=10)
        ledger = Ledger(db)

        await ledger.debit(user.id, 4, "Contact enrichment")
        assert await ledger.refund(user.id, 4, "enrichment failed") == 10

        latest = (await ledger.history(user.id))[0]
        assert latest.description == "refund: enrichment failed"
        assert latest.amount == 4

    @pytest.mark.asyncio
    async def test_credit_unknown_user_raises(self, db):
        with pytest.raises(UserNotFoundError):
            await Ledger(db).credit(uuid4(), 5, "ghost")

    @pytest.mark.asyncio
    async def test_credit_rejects_zero(self, db, user):
        with pytest.raises(ValueError):
            await Ledger(db).credit(user.id, 0, "nothing")


# ============================================================================
# TEST: Invariants
# ============================================================================

class TestInvariants:

    @pytest.mark.asyncio
    async def test_balance_equals_sum_of_history(self, db, make_user):
        """Any sequence of debits / credits keeps balance == sum(history) >= 0"""
        user = await make_user(credits=10)
        ledger = Ledger(db)

        operations = [
            ("debit", 4), ("debit", 7), ("credit", 3), ("debit", 9),
            ("debit", 1), ("credit", 20), ("debit", 25), ("debit", 5),
        ]
        for op, amount in operations:
            if op == "debit":
                await ledger.debit(user.id, amount, "op")
            else:
                await ledger.credit(user.id, amount, "op")

            balance = await ledger.balance(user.id)
            assert balance >= 0
            assert balance == await ledger.reconstruct_balance(user.id)

        history = await ledger.history(user.id)
        assert sum(tx.amount for tx in history) == await ledger.balance(user.id)

    @pytest.mark.asyncio
    async def test_history_is_most_recent_first(self, db, make_user):
        user = await make_user(credits=10)
        ledger = Ledger(db)

        await ledger.debit(user.id, 1, "first")
        await ledger.debit(user.id, 2, "second")
        await ledger.credit(user.id, 3, "third")

        descriptions = [tx.description for tx in await ledger.history(user.id)]
        assert descriptions[:3] == ["third", "second", "first"]

    @pytest.mark.asyncio
    async def test_history_is_scoped_to_user(self, db, make_user):
        alice = await make_user(credits=5)
        bob = await make_user(credits=9)
        ledger = Ledger(db)

        await ledger.debit(alice.id, 2, "alice spend")

        assert all(tx.user_id == bob.id for tx in await ledger.history(bob.id))
        assert await ledger.balance(bob.id) == 9


# ============================================================================
# TEST: Concurrency
# ============================================================================

class TestConcurrentDebits:

    @pytest.mark.asyncio
    async def test_two_debits_one_balance(self, session_factory, make_user):
        """Balance 10, two concurrent debits of 10 -> exactly one succeeds"""
        user = await make_user(credits=10)

        async def spend():
            async with session_factory() as session:
                return await Ledger(session).debit(user.id, 10, "race")

        results = await asyncio.gather(spend(), spend())

        successes = [r for r in results if not isinstance(r, InsufficientFunds)]
        rejections = [r for r in results if isinstance(r, InsufficientFunds)]
        assert successes == [0]
        assert len(rejections) == 1

        async with session_factory() as session:
            ledger = Ledger(session)
            assert await ledger.balance(user.id) == 0
            assert await ledger.reconstruct_balance(user.id) == 0
