# backend/app/services/email_verification_service.py
"""
Metered Email Finder / Verifier

Both operations follow the same flow:
1. Local checks (FREE): syntax, contact ownership
2. Debit the operation cost
3. Start the external job (Icypeas)
4. Poll it to a terminal result with a bounded attempt budget
5. Refund according to the RefundPolicy of the call site
6. Write the result back to the contact, if one was given

Refund policies differ per call site:
- find:   refund whenever no email comes back
- verify: refund only if the job never started; a completed or timed-out
          verification is still charged

An unexpected provider error is refunded per policy, then re-raised.
"""

import re
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, Optional, Union
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models import Contact
from app.services.errors import NotFound
from app.services.ledger import InsufficientFunds, Ledger
from app.services.verification_poller import (
    Exhausted,
    ResolvedResult,
    StartFailed,
    VerificationPoller,
    VerificationProvider,
    VerificationStatus,
)

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')

TIMEOUT_STATUS = "TIMEOUT"
INVALID_SYNTAX_STATUS = "INVALID_SYNTAX"


@dataclass(frozen=True)
class RefundPolicy:
    """Which terminal outcomes give the user their credits back."""
    on_start_failure: bool = True
    on_negative: bool = False
    on_permanent_error: bool = False
    on_exhausted: bool = False

    def applies_to(self, result: Union[ResolvedResult, Exhausted]) -> bool:
        if isinstance(result, Exhausted):
            return self.on_exhausted
        if result.status == VerificationStatus.NEGATIVE:
            return self.on_negative
        if result.status in (VerificationStatus.PERMANENT_ERROR, VerificationStatus.UNKNOWN):
            return self.on_permanent_error
        return False


FIND_REFUND_POLICY = RefundPolicy(
    on_start_failure=True,
    on_negative=True,
    on_permanent_error=True,
    on_exhausted=True,
)

VERIFY_REFUND_POLICY = RefundPolicy(on_start_failure=True)


@dataclass
class VerificationOutcome:
    """Final result of a find / verify call"""
    email: Optional[str]
    is_valid: bool
    status: str
    message: Optional[str]
    credits_used: int
    credits_remaining: int
    refunded: bool
    details: Dict[str, Any] = field(default_factory=dict)


def is_valid_email_syntax(email: str) -> bool:
    return bool(email) and bool(EMAIL_PATTERN.match(email.strip()))


class EmailVerificationService:
    """Credit-gated email verification and email search on top of VerificationPoller."""

    def __init__(
        self,
        db: AsyncSession,
        provider: VerificationProvider,
        ledger: Optional[Ledger] = None,
        poller: Optional[VerificationPoller] = None,
        verify_cost: Optional[int] = None,
        find_cost: Optional[int] = None,
        verify_max_attempts: Optional[int] = None,
        find_max_attempts: Optional[int] = None,
        poll_interval_ms: Optional[int] = None
    ):
        self.db = db
        self.provider = provider
        self.ledger = ledger or Ledger(db)
        self.poller = poller or VerificationPoller(provider)
        self.verify_cost = verify_cost or settings.EMAIL_VERIFY_COST
        self.find_cost = find_cost or settings.EMAIL_FIND_COST
        self.verify_max_attempts = verify_max_attempts or settings.EMAIL_VERIFY_MAX_ATTEMPTS
        self.find_max_attempts = find_max_attempts or settings.EMAIL_FIND_MAX_ATTEMPTS
        self.poll_interval_ms = (
            poll_interval_ms if poll_interval_ms is not None else settings.POLL_INTERVAL_MS
        )

    # ========================================================================
    # VERIFY
    # ========================================================================

    async def verify_email(
        self,
        user_id: UUID,
        email: str,
        contact_id: Optional[UUID] = None,
        refund_policy: RefundPolicy = VERIFY_REFUND_POLICY
    ) -> Union[VerificationOutcome, InsufficientFunds, NotFound, StartFailed]:
        email = (email or "").strip()
        logger.info(f"📧 Email verification requested for: {email}")

        if not is_valid_email_syntax(email):
            logger.info(f"❌ Syntax check failed, nothing charged: {email}")
            return VerificationOutcome(
                email=email,
                is_valid=False,
                status=INVALID_SYNTAX_STATUS,
                message="Invalid email format",
                credits_used=0,
                credits_remaining=await self.ledger.balance(user_id),
                refunded=False
            )

        contact = None
        if contact_id is not None:
            contact = await self._get_owned_contact(user_id, contact_id)
            if contact is None:
                return NotFound(resource="contact", resource_id=contact_id)

        cost = self.verify_cost
        charge = await self.ledger.debit(user_id, cost, f"Email verification for {email}")
        if isinstance(charge, InsufficientFunds):
            return charge

        result = await self._run_job(
            user_id, cost, refund_policy,
            lambda: self.provider.start_email_verification(email),
            self.verify_max_attempts,
            "email verification could not start"
        )
        if isinstance(result, StartFailed):
            return result

        refunded = refund_policy.applies_to(result)
        remaining = await self._settle(user_id, cost, refunded, "email verification unsuccessful")

        if isinstance(result, Exhausted):
            return VerificationOutcome(
                email=email,
                is_valid=False,
                status=TIMEOUT_STATUS,
                message="Verification did not complete in time",
                credits_used=0 if refunded else cost,
                credits_remaining=remaining,
                refunded=refunded,
                details={"job_id": result.job_id, "attempts": result.attempts}
            )

        if contact is not None:
            contact.email_verified = result.is_valid
            await self.db.commit()

        logger.info(f"✅ Verification finished for {email}: {result.status_code} (valid={result.is_valid})")
        return VerificationOutcome(
            email=email,
            is_valid=result.is_valid,
            status=result.status_code,
            message=result.message,
            credits_used=0 if refunded else cost,
            credits_remaining=remaining,
            refunded=refunded,
            details={
                k: result.payload.get(k)
                for k in ("verificationLevel", "mxProvider")
                if result.payload.get(k) is not None
            }
        )

    # ========================================================================
    # FIND
    # ========================================================================

    async def find_email(
        self,
        user_id: UUID,
        first_name: str,
        last_name: str,
        domain_or_company: str,
        contact_id: Optional[UUID] = None,
        refund_policy: RefundPolicy = FIND_REFUND_POLICY
    ) -> Union[VerificationOutcome, InsufficientFunds, NotFound, StartFailed]:
        contact = None
        if contact_id is not None:
            contact = await self._get_owned_contact(user_id, contact_id)
            if contact is None:
                return NotFound(resource="contact", resource_id=contact_id)

        cost = self.find_cost
        charge = await self.ledger.debit(
            user_id, cost, f"Email finder for {first_name} {last_name}"
        )
        if isinstance(charge, InsufficientFunds):
            return charge

        result = await self._run_job(
            user_id, cost, refund_policy,
            lambda: self.provider.start_email_search(first_name, last_name, domain_or_company),
            self.find_max_attempts,
            "email search could not start"
        )
        if isinstance(result, StartFailed):
            return result

        found = self._extract_found_email(result)
        if isinstance(result, ResolvedResult) and result.is_valid and found is None:
            # Completed search with no address is a miss
            result = replace(
                result,
                is_valid=False,
                status=VerificationStatus.NEGATIVE,
                status_code="NOT_FOUND",
                message="No email found"
            )

        refunded = refund_policy.applies_to(result)
        remaining = await self._settle(user_id, cost, refunded, "unsuccessful email find")

        if isinstance(result, Exhausted):
            return VerificationOutcome(
                email=None,
                is_valid=False,
                status=TIMEOUT_STATUS,
                message="Email search did not complete in time",
                credits_used=0 if refunded else cost,
                credits_remaining=remaining,
                refunded=refunded,
                details={"job_id": result.job_id, "attempts": result.attempts, "domain": domain_or_company}
            )

        if found is None:
            return VerificationOutcome(
                email=None,
                is_valid=False,
                status=result.status_code,
                message=result.message or "Email not found",
                credits_used=0 if refunded else cost,
                credits_remaining=remaining,
                refunded=refunded,
                details={"domain": domain_or_company}
            )

        if contact is not None and contact.email != found["email"]:
            contact.email = found["email"]
            contact.email_verified = False
            await self.db.commit()

        logger.info(f"✅ Email found for {first_name} {last_name}: {found['email']}")
        return VerificationOutcome(
            email=found["email"],
            is_valid=True,
            status=result.status_code,
            message=None,
            credits_used=0 if refunded else cost,
            credits_remaining=remaining,
            refunded=refunded,
            details={
                "certainty": found.get("certainty"),
                "mxProvider": found.get("mxProvider"),
                "domain": domain_or_company,
            }
        )

    # ========================================================================
    # HELPERS
    # ========================================================================

    async def _run_job(
        self,
        user_id: UUID,
        cost: int,
        refund_policy: RefundPolicy,
        start: Callable[[], Awaitable[Union[str, StartFailed]]],
        max_attempts: int,
        start_failure_reason: str
    ) -> Union[ResolvedResult, Exhausted, StartFailed]:
        """
        Start the job and poll it to a terminal result.

        A start failure is refunded per policy and returned. An unexpected
        error while starting counts as a start failure, one while polling as a
        permanent error; either is refunded per policy and re-raised.
        """
        try:
            job = await start()
        except Exception:
            logger.exception(f"❌ Job start crashed for user {user_id}")
            if refund_policy.on_start_failure:
                await self.ledger.refund(user_id, cost, start_failure_reason)
            raise

        if isinstance(job, StartFailed):
            if refund_policy.on_start_failure:
                await self.ledger.refund(user_id, cost, start_failure_reason)
            return job

        try:
            return await self.poller.poll_until_resolved(job, max_attempts, self.poll_interval_ms)
        except Exception:
            logger.exception(f"❌ Polling job {job} crashed for user {user_id}")
            if refund_policy.on_permanent_error:
                await self.ledger.refund(user_id, cost, "email job failed")
            raise

    async def _settle(self, user_id: UUID, cost: int, refund: bool, reason: str) -> int:
        if refund:
            logger.info(f"Refunding {cost} credits to user {user_id} ({reason})")
            return await self.ledger.refund(user_id, cost, reason)
        return await self.ledger.balance(user_id)

    @staticmethod
    def _extract_found_email(result: Union[ResolvedResult, Exhausted]) -> Optional[Dict[str, Any]]:
        if not isinstance(result, ResolvedResult) or not result.is_valid:
            return None

        emails = (result.payload.get("results") or {}).get("emails") or []
        if not emails or not emails[0].get("email"):
            return None
        return emails[0]

    async def _get_owned_contact(self, user_id: UUID, contact_id: UUID) -> Optional[Contact]:
        result = await self.db.execute(
            select(Contact).where(Contact.id == contact_id, Contact.user_id == user_id)
        )
        return result.scalar_one_or_none()
