"""AI message writer (credit-gated)."""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from app.database import get_db
from app.models import User
from app.auth import get_current_user
from app.schemas import MessageGenerateRequest, MessageGenerateResponse
from app.services.message_generation_service import GenerationFailed, MessageGenerationService
from app.services.message_generator import MessageGenerator, create_message_generator
from app.routers.outcomes import raise_for_outcome

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/ai", tags=["AI Writer"])


def get_message_generator() -> MessageGenerator:
    return create_message_generator()


@router.post("/generate", response_model=MessageGenerateResponse)
async def generate_message(
    request: MessageGenerateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    generator: MessageGenerator = Depends(get_message_generator)
):
    """Write an outreach message for a contact. Refunded if the writer fails."""
    service = MessageGenerationService(db, generator)
    outcome = await service.generate(
        current_user,
        request.contact_id,
        request.purpose,
        request.tone,
        request.custom_prompt
    )

    raise_for_outcome(outcome)

    if isinstance(outcome, GenerationFailed):
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={
                "message": "Failed to generate message. Please try again.",
                "reason": outcome.reason,
                "credits_refunded": outcome.credits_refunded,
                "credits_remaining": outcome.credits_remaining,
            }
        )

    return MessageGenerateResponse(
        message=outcome.message,
        credits_used=outcome.credits_used,
        credits_remaining=outcome.credits_remaining
    )
