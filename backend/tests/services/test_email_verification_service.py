# tests/services/test_email_verification_service.py
"""
Tests for the metered Email Verifier / Finder

Coverage:
- Syntax check is free
- Verify: charged on completion and on timeout, refunded if the job never starts
- Find: refunded whenever no email comes back
- Result written back to the contact
- Foreign contact -> NotFound, nothing charged
- Unexpected provider crash: refunded per policy, then re-raised

Run with: pytest tests/services/test_email_verification_service.py -v
"""

import pytest
from uuid import uuid4
from unittest.mock import AsyncMock, Mock

from app.models import Contact
from app.services.email_verification_service import (
    EmailVerificationService,
    FIND_REFUND_POLICY,
    RefundPolicy,
    VerificationOutcome,
    is_valid_email_syntax,
)
from app.services.errors import NotFound
from app.services.ledger import InsufficientFunds, Ledger
from app.services.verification_poller import JobStatus, StartFailed, VerificationPoller


# ============================================================================
# FIXTURES
# ============================================================================

def fake_provider(*reports, start=None):
    """Provider that starts job "job-1" and walks through the given status reports"""
    provider = Mock()
    provider.start_email_verification = AsyncMock(return_value=start or "job-1")
    provider.start_email_search = AsyncMock(return_value=start or "job-1")
    provider.get_status = AsyncMock(side_effect=list(reports))
    return provider


def make_service(db, provider, max_attempts=3):
    return EmailVerificationService(
        db,
        provider,
        poller=VerificationPoller(provider, sleep=AsyncMock()),
        verify_cost=1,
        find_cost=3,
        verify_max_attempts=max_attempts,
        find_max_attempts=max_attempts,
        poll_interval_ms=0
    )


def found_payload(email="jane.doe@acme.com"):
    return {"results": {"emails": [{"email": email, "certainty": "ultra_sure", "mxProvider": "google"}]}}


@pytest.fixture
def contact_factory(db):
    async def _create(user_id, **fields):
        contact = Contact(user_id=user_id, full_name="Jane Doe", **fields)
        db.add(contact)
        await db.commit()
        return contact
    return _create


# ============================================================================
# TEST: Syntax
# ============================================================================

class TestSyntax:

    @pytest.mark.parametrize("email, expected", [
        ("jane@acme.com", True),
        ("jane.doe+tag@sub.acme.io", True),
        ("  jane@acme.com  ", True),
        ("jane@acme", False),
        ("@acme.com", False),
        ("not an email", False),
        ("", False),
    ])
    def test_is_valid_email_syntax(self, email, expected):
        assert is_valid_email_syntax(email) is expected

    @pytest.mark.asyncio
    async def test_bad_syntax_is_free(self, db, user):
        provider = fake_provider()

        outcome = await make_service(db, provider).verify_email(user.id, "nope@")

        assert outcome.status == "INVALID_SYNTAX"
        assert outcome.credits_used == 0
        assert outcome.credits_remaining == 100
        provider.start_email_verification.assert_not_called()


# ============================================================================
# TEST: Verify
# ============================================================================

class TestVerify:

    @pytest.mark.asyncio
    async def test_valid_email_is_charged(self, db, user):
        provider = fake_provider(
            JobStatus(status="IN_PROGRESS"),
            JobStatus(status="FOUND", payload={"mxProvider": "google", "verificationLevel": "high"}),
        )

        outcome = await make_service(db, provider).verify_email(user.id, "jane@acme.com")

        assert isinstance(outcome, VerificationOutcome)
        assert outcome.is_valid is True
        assert outcome.status == "FOUND"
        assert outcome.credits_used == 1
        assert outcome.credits_remaining == 99
        assert outcome.refunded is False
        assert outcome.details == {"mxProvider": "google", "verificationLevel": "high"}

    @pytest.mark.asyncio
    async def test_negative_result_still_charged(self, db, user):
        provider = fake_provider(JobStatus(status="DEBITED_NOT_FOUND"))

        outcome = await make_service(db, provider).verify_email(user.id, "ghost@acme.com")

        assert outcome.is_valid is False
        assert outcome.message == "Email address not found or invalid"
        assert outcome.credits_used == 1
        assert await Ledger(db).balance(user.id) == 99

    @pytest.mark.asyncio
    async def test_timeout_is_charged_by_default(self, db, user):
        provider = fake_provider(*[JobStatus(status="SCHEDULED")] * 3)

        outcome = await make_service(db, provider, max_attempts=3).verify_email(user.id, "slow@acme.com")

        assert outcome.status == "TIMEOUT"
        assert outcome.is_valid is False
        assert outcome.refunded is False
        assert outcome.details == {"job_id": "job-1", "attempts": 3}
        assert await Ledger(db).balance(user.id) == 99

    @pytest.mark.asyncio
    async def test_timeout_refund_is_configurable(self, db, user):
        provider = fake_provider(*[JobStatus(status="SCHEDULED")] * 2)

        outcome = await make_service(db, provider, max_attempts=2).verify_email(
            user.id, "slow@acme.com", refund_policy=RefundPolicy(on_exhausted=True)
        )

        assert outcome.refunded is True
        assert outcome.credits_used == 0
        assert await Ledger(db).balance(user.id) == 100

    @pytest.mark.asyncio
    async def test_start_failure_refunds(self, db, user):
        provider = fake_provider(start=StartFailed(reason="provider rejected request"))

        outcome = await make_service(db, provider).verify_email(user.id, "jane@acme.com")

        assert isinstance(outcome, StartFailed)
        provider.get_status.assert_not_called()
        assert await Ledger(db).balance(user.id) == 100

        latest = (await Ledger(db).history(user.id))[0]
        assert latest.description.startswith("refund: ")

    @pytest.mark.asyncio
    async def test_updates_contact_verification_flag(self, db, user, contact_factory):
        contact = await contact_factory(user.id, email="jane@acme.com", email_verified=True)
        provider = fake_provider(JobStatus(status="NOT_FOUND"))

        await make_service(db, provider).verify_email(user.id, "jane@acme.com", contact_id=contact.id)

        await db.refresh(contact)
        assert contact.email_verified is False

    @pytest.mark.asyncio
    async def test_foreign_contact_not_found(self, db, user, other_user, contact_factory):
        contact = await contact_factory(other_user.id)
        provider = fake_provider(JobStatus(status="FOUND"))

        outcome = await make_service(db, provider).verify_email(user.id, "jane@acme.com", contact_id=contact.id)

        assert isinstance(outcome, NotFound)
        provider.start_email_verification.assert_not_called()
        assert await Ledger(db).balance(user.id) == 100

    @pytest.mark.asyncio
    async def test_insufficient_funds(self, db, make_user):
        broke = await make_user(credits=0)
        provider = fake_provider(JobStatus(status="FOUND"))

        outcome = await make_service(db, provider).verify_email(broke.id, "jane@acme.com")

        assert isinstance(outcome, InsufficientFunds)
        assert outcome.requested == 1
        provider.start_email_verification.assert_not_called()


# ============================================================================
# TEST: Find
# ============================================================================

class TestFind:

    @pytest.mark.asyncio
    async def test_found_email_is_charged(self, db, user):
        provider = fake_provider(JobStatus(status="DEBITED", payload=found_payload()))

        outcome = await make_service(db, provider).find_email(user.id, "Jane", "Doe", "acme.com")

        assert outcome.email == "jane.doe@acme.com"
        assert outcome.is_valid is True
        assert outcome.credits_used == 3
        assert outcome.credits_remaining == 97
        assert outcome.details["certainty"] == "ultra_sure"
        assert outcome.details["domain"] == "acme.com"
        provider.start_email_search.assert_awaited_once_with("Jane", "Doe", "acme.com")

    @pytest.mark.asyncio
    async def test_not_found_is_refunded(self, db, user):
        provider = fake_provider(JobStatus(status="NOT_FOUND"))

        outcome = await make_service(db, provider).find_email(user.id, "Jane", "Doe", "acme.com")

        assert outcome.email is None
        assert outcome.refunded is True
        assert outcome.credits_used == 0
        assert await Ledger(db).balance(user.id) == 100

    @pytest.mark.asyncio
    async def test_success_without_email_is_a_miss(self, db, user):
        """FOUND with an empty result list counts as not found"""
        provider = fake_provider(JobStatus(status="FOUND", payload={"results": {"emails": []}}))

        outcome = await make_service(db, provider).find_email(user.id, "Jane", "Doe", "acme.com")

        assert outcome.email is None
        assert outcome.status == "NOT_FOUND"
        assert outcome.message == "No email found"
        assert outcome.refunded is True
        assert await Ledger(db).balance(user.id) == 100

    @pytest.mark.asyncio
    async def test_timeout_is_refunded(self, db, user):
        provider = fake_provider(*[JobStatus(status="IN_PROGRESS")] * 3)

        outcome = await make_service(db, provider, max_attempts=3).find_email(user.id, "Jane", "Doe", "acme.com")

        assert outcome.status == "TIMEOUT"
        assert outcome.refunded is True
        assert await Ledger(db).balance(user.id) == 100

    @pytest.mark.asyncio
    async def test_found_email_saved_on_contact(self, db, user, contact_factory):
        contact = await contact_factory(user.id, email="old@acme.com", email_verified=True)
        provider = fake_provider(JobStatus(status="FOUND", payload=found_payload("jane@acme.com")))

        await make_service(db, provider).find_email(
            user.id, "Jane", "Doe", "acme.com", contact_id=contact.id
        )

        await db.refresh(contact)
        assert contact.email == "jane@acme.com"
        assert contact.email_verified is False

    def test_find_policy_refunds_every_miss(self):
        assert FIND_REFUND_POLICY.on_start_failure
        assert FIND_REFUND_POLICY.on_negative
        assert FIND_REFUND_POLICY.on_permanent_error
        assert FIND_REFUND_POLICY.on_exhausted


# ============================================================================
# TEST: Unexpected provider errors
# ============================================================================

class TestProviderCrash:

    @pytest.mark.asyncio
    async def test_find_poll_crash_refunds_then_raises(self, db, user):
        provider = fake_provider()
        provider.get_status = AsyncMock(side_effect=AttributeError("'list' object has no attribute 'get'"))

        with pytest.raises(AttributeError):
            await make_service(db, provider).find_email(user.id, "Jane", "Doe", "acme.com")

        assert await Ledger(db).balance(user.id) == 100

    @pytest.mark.asyncio
    async def test_find_start_crash_refunds_then_raises(self, db, user):
        provider = fake_provider()
        provider.start_email_search = AsyncMock(side_effect=TypeError("bad payload"))

        with pytest.raises(TypeError):
            await make_service(db, provider).find_email(user.id, "Jane", "Doe", "acme.com")

        assert await Ledger(db).balance(user.id) == 100
        provider.get_status.assert_not_called()

    @pytest.mark.asyncio
    async def test_verify_start_crash_refunds_then_raises(self, db, user):
        provider = fake_provider()
        provider.start_email_verification = AsyncMock(side_effect=KeyError("item"))

        with pytest.raises(KeyError):
            await make_service(db, provider).verify_email(user.id, "jane@acme.com")

        assert await Ledger(db).balance(user.id) == 100

    @pytest.mark.asyncio
    async def test_verify_poll_crash_keeps_charge_by_default(self, db, user):
        provider = fake_provider()
        provider.get_status = AsyncMock(side_effect=AttributeError("boom"))

        with pytest.raises(AttributeError):
            await make_service(db, provider).verify_email(user.id, "jane@acme.com")

        assert await Ledger(db).balance(user.id) == 99

    @pytest.mark.asyncio
    async def test_verify_poll_crash_refund_follows_policy(self, db, user):
        provider = fake_provider()
        provider.get_status = AsyncMock(side_effect=AttributeError("boom"))

        with pytest.raises(AttributeError):
            await make_service(db, provider).verify_email(
                user.id, "jane@acme.com", refund_policy=RefundPolicy(on_permanent_error=True)
            )

        assert await Ledger(db).balance(user.id) == 100
