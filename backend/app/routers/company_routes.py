"""
Company Routes
Company names are unique per user, case-insensitively.
"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from typing import List
from uuid import UUID
import logging

from app.database import get_db
from app.models import Company, Contact, User
from app.auth import get_current_user
from app.schemas import CompanyCreate, CompanyResponse, ContactResponse
from app.services.contact_reconciler import ContactCompanyReconciler

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/companies", tags=["Companies"])


async def _get_owned_company(db: AsyncSession, user_id: UUID, company_id: UUID) -> Company:
    company = await ContactCompanyReconciler(db).get_owned_company(user_id, company_id)
    if company is None:
        raise HTTPException(status_code=404, detail="Company not found")
    return company


@router.get("", response_model=List[CompanyResponse])
async def list_companies(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    result = await db.execute(
        select(Company)
        .where(Company.user_id == current_user.id)
        .order_by(Company.name)
        .offset(offset)
        .limit(limit)
    )
    return result.scalars().all()


@router.post("", response_model=CompanyResponse, status_code=status.HTTP_201_CREATED)
async def create_company(
    payload: CompanyCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    user_id = current_user.id

    existing = await ContactCompanyReconciler(db).find_company_by_name(user_id, payload.name)
    if existing is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Company '{existing.name}' already exists"
        )

    company = Company(user_id=user_id, **payload.model_dump(exclude_none=True))
    db.add(company)

    try:
        await db.commit()
        await db.refresh(company)
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Company '{payload.name}' already exists"
        )

    logger.info(f"Company created: {company.id} ({company.name})")
    return company


@router.get("/{company_id}", response_model=CompanyResponse)
async def get_company(
    company_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await _get_owned_company(db, current_user.id, company_id)


@router.get("/{company_id}/contacts", response_model=List[ContactResponse])
async def list_company_contacts(
    company_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    company = await _get_owned_company(db, current_user.id, company_id)
    result = await db.execute(
        select(Contact)
        .where(Contact.company_id == company.id, Contact.user_id == current_user.id)
        .order_by(Contact.full_name)
    )
    return result.scalars().all()


@router.delete("/{company_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_company(
    company_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    company = await _get_owned_company(db, current_user.id, company_id)

    # Contacts keep their company_name but lose the link
    await db.execute(
        update(Contact)
        .where(Contact.company_id == company.id)
        .values(company_id=None)
        .execution_options(synchronize_session=False)
    )
    await db.delete(company)
    await db.commit()
    logger.info(f"Company deleted: {company_id}")
