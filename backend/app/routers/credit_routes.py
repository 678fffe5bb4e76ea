"""Credit balance and ledger history."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from app.database import get_db
from app.models import User
from app.auth import get_current_user
from app.schemas import CreditBalanceResponse, CreditTransactionResponse
from app.services.ledger import Ledger

router = APIRouter(prefix="/api/v1/credits", tags=["Credits"])


@router.get("", response_model=CreditBalanceResponse)
async def get_credits(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return CreditBalanceResponse(credits=await Ledger(db).balance(current_user.id))


@router.get("/transactions", response_model=List[CreditTransactionResponse])
async def get_transactions(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Ledger entries, most recent first."""
    return await Ledger(db).history(current_user.id)
