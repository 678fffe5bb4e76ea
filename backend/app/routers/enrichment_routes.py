"""Metered contact enrichment."""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID
import logging

from app.database import get_db
from app.models import User
from app.auth import get_current_user
from app.schemas import ContactResponse, EnrichmentRequest, EnrichmentResponse
from app.services.enrichment_orchestrator import EnrichmentFailed, EnrichmentOrchestrator
from app.services.enrichment_providers import EnrichmentProvider, create_enrichment_provider
from app.routers.outcomes import raise_for_outcome

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/enrichment", tags=["Enrichment"])


def get_enrichment_provider() -> EnrichmentProvider:
    return create_enrichment_provider()


@router.post("/contacts/{contact_id}", response_model=EnrichmentResponse)
async def enrich_contact(
    contact_id: UUID,
    request: EnrichmentRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    provider: EnrichmentProvider = Depends(get_enrichment_provider)
):
    """
    Enrich a contact.

    Cost is the sum of the per-field prices and is charged even when only
    some fields are found. Nothing found means a full refund.
    """
    orchestrator = EnrichmentOrchestrator(db, provider)
    outcome = await orchestrator.enrich(current_user.id, contact_id, request.fields)

    raise_for_outcome(outcome)

    if isinstance(outcome, EnrichmentFailed):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "message": "No enrichment data found",
                "reason": outcome.reason,
                "credits_refunded": outcome.credits_refunded,
                "credits_remaining": outcome.credits_remaining,
            }
        )

    return EnrichmentResponse(
        contact=ContactResponse.model_validate(outcome.contact),
        fields_updated=outcome.fields_updated,
        credits_used=outcome.credits_used,
        credits_remaining=outcome.credits_remaining
    )
