# backend/app/services/verification_poller.py
"""
Verification Job Poller

Drives an external verification / lookup job to a terminal result without
blocking forever.

Vendor status strings are classified exactly once, at this boundary, into the
closed VerificationStatus set. Nothing downstream inspects vendor strings.

Poll loop:
- PENDING -> sleep interval, query again
- SUCCESS / NEGATIVE / PERMANENT_ERROR / UNKNOWN -> ResolvedResult
- max_attempts queries without a terminal status -> Exhausted
- ProviderError on a query consumes one attempt and is retried
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from app.services.errors import ProviderError

logger = logging.getLogger(__name__)


class VerificationStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    NEGATIVE = "negative"
    PERMANENT_ERROR = "permanent_error"
    UNKNOWN = "unknown"


# Icypeas status vocabulary
VENDOR_STATUS_MAP: Dict[str, VerificationStatus] = {
    "FOUND": VerificationStatus.SUCCESS,
    "DEBITED": VerificationStatus.SUCCESS,
    "COMPLETED": VerificationStatus.SUCCESS,
    "NOT_FOUND": VerificationStatus.NEGATIVE,
    "DEBITED_NOT_FOUND": VerificationStatus.NEGATIVE,
    "BAD_INPUT": VerificationStatus.PERMANENT_ERROR,
    "INSUFFICIENT_FUNDS": VerificationStatus.PERMANENT_ERROR,
    "ABORTED": VerificationStatus.PERMANENT_ERROR,
    "NONE": VerificationStatus.PENDING,
    "SCHEDULED": VerificationStatus.PENDING,
    "IN_PROGRESS": VerificationStatus.PENDING,
}

STATUS_MESSAGES: Dict[str, str] = {
    "NOT_FOUND": "Email address not found or invalid",
    "DEBITED_NOT_FOUND": "Email address not found or invalid",
    "BAD_INPUT": "Invalid input provided",
    "INSUFFICIENT_FUNDS": "Insufficient funds in provider account",
    "ABORTED": "Verification was aborted",
    "UNKNOWN": "Unknown verification status",
}


def classify_status(vendor_status: Optional[str]) -> VerificationStatus:
    """Map a vendor status string to VerificationStatus. No status yet counts as pending."""
    if vendor_status is None:
        return VerificationStatus.PENDING
    return VENDOR_STATUS_MAP.get(str(vendor_status).upper(), VerificationStatus.UNKNOWN)


# ============================================================================
# PROVIDER CONTRACT
# ============================================================================

@dataclass
class JobStatus:
    """Raw status report for an external job."""
    status: Optional[str]
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StartFailed:
    """External job could not be created."""
    reason: str
    details: Dict[str, Any] = field(default_factory=dict)


class VerificationProvider(ABC):
    """External service running asynchronous email verification / search jobs."""

    name: str = "base"

    @abstractmethod
    async def start_email_verification(self, email: str) -> Union[str, StartFailed]:
        """Returns the external job id."""
        pass

    @abstractmethod
    async def start_email_search(
        self,
        first_name: str,
        last_name: str,
        domain_or_company: str
    ) -> Union[str, StartFailed]:
        """Returns the external job id."""
        pass

    @abstractmethod
    async def get_status(self, job_id: str) -> JobStatus:
        """Raises ProviderError on transport failure."""
        pass


# ============================================================================
# RESULTS
# ============================================================================

@dataclass
class ResolvedResult:
    """Terminal result. Success and failure are both resolved; is_valid tells them apart."""
    is_valid: bool
    status: VerificationStatus
    status_code: str
    message: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    attempts: int = 0


@dataclass
class Exhausted:
    """Poll budget spent without a terminal status. Not an error."""
    job_id: str
    attempts: int


# ============================================================================
# POLLER
# ============================================================================

class VerificationPoller:
    """Bounded polling of one external job."""

    def __init__(
        self,
        provider: VerificationProvider,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.provider = provider
        self._sleep = sleep

    async def poll_until_resolved(
        self,
        job_id: str,
        max_attempts: int,
        interval_ms: int
    ) -> Union[ResolvedResult, Exhausted]:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        for attempt in range(1, max_attempts + 1):
            try:
                report = await self.provider.get_status(job_id)
            except ProviderError as e:
                logger.warning(f"Poll {attempt}/{max_attempts} for job {job_id} failed: {e}")
            else:
                status = classify_status(report.status)
                logger.info(f"⏳ Poll {attempt}/{max_attempts} for job {job_id}: {report.status} -> {status.value}")

                if status != VerificationStatus.PENDING:
                    return self._resolve(status, report, attempt)

            if attempt < max_attempts:
                await self._sleep(interval_ms / 1000)

        logger.warning(f"Job {job_id} still unresolved after {max_attempts} attempts")
        return Exhausted(job_id=job_id, attempts=max_attempts)

    @staticmethod
    def _resolve(status: VerificationStatus, report: JobStatus, attempts: int) -> ResolvedResult:
        if status == VerificationStatus.UNKNOWN:
            status_code = "UNKNOWN"
        else:
            status_code = str(report.status).upper()

        if status == VerificationStatus.SUCCESS:
            # COMPLETED carries its own validity flag
            if status_code == "COMPLETED":
                is_valid = bool(report.payload.get("isValid", False))
            else:
                is_valid = True
        else:
            is_valid = False

        return ResolvedResult(
            is_valid=is_valid,
            status=status,
            status_code=status_code,
            message=STATUS_MESSAGES.get(status_code),
            payload=report.payload,
            attempts=attempts
        )
