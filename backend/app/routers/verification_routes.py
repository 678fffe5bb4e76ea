"""Email finder and verifier (Icypeas)."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from dataclasses import asdict
import logging

from app.database import get_db
from app.models import User
from app.auth import get_current_user
from app.schemas import EmailFindRequest, EmailVerificationResponse, EmailVerifyRequest
from app.services.email_verification_service import EmailVerificationService
from app.services.icypeas_client import IcypeasClient
from app.services.verification_poller import VerificationProvider
from app.routers.outcomes import raise_for_outcome

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/email", tags=["Email"])


def get_verification_provider() -> VerificationProvider:
    return IcypeasClient()


@router.post("/verify", response_model=EmailVerificationResponse)
async def verify_email(
    request: EmailVerifyRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    provider: VerificationProvider = Depends(get_verification_provider)
):
    """
    Verify a single address.

    Invalid syntax is rejected without charge. A verification that completes
    or times out is charged; a job that cannot be started is refunded.
    """
    service = EmailVerificationService(db, provider)
    outcome = await service.verify_email(current_user.id, request.email, contact_id=request.contact_id)

    raise_for_outcome(outcome)
    return EmailVerificationResponse(**asdict(outcome))


@router.post("/find", response_model=EmailVerificationResponse)
async def find_email(
    request: EmailFindRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    provider: VerificationProvider = Depends(get_verification_provider)
):
    """Find an address from a name and company domain. Refunded when nothing is found."""
    service = EmailVerificationService(db, provider)
    outcome = await service.find_email(
        current_user.id,
        request.first_name,
        request.last_name,
        request.domain_or_company,
        contact_id=request.contact_id
    )

    raise_for_outcome(outcome)
    return EmailVerificationResponse(**asdict(outcome))
