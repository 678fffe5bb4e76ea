"""Translate service outcome types into HTTP errors."""

from fastapi import HTTPException, status

from app.services.errors import NotFound
from app.services.ledger import InsufficientFunds
from app.services.verification_poller import StartFailed


def raise_for_outcome(outcome) -> None:
    """Raise the matching HTTPException for a non-success outcome, otherwise return."""

    if isinstance(outcome, InsufficientFunds):
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail={
                "message": "Insufficient credits",
                "required": outcome.requested,
                "available": outcome.available,
            }
        )

    if isinstance(outcome, NotFound):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{outcome.resource.rstrip('s').capitalize()} not found"
        )

    if isinstance(outcome, StartFailed):
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"message": "Failed to start external job", "reason": outcome.reason}
        )
