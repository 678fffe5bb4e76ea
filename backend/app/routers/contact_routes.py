"""
Contact Routes
Every create / update runs through ContactCompanyReconciler before it is persisted.
"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from typing import Optional, List
from uuid import UUID
import logging

from app.database import get_db
from app.models import Contact, User
from app.auth import get_current_user
from app.schemas import ContactCreate, ContactPatch, ContactResponse
from app.services.contact_reconciler import ContactCompanyReconciler

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/contacts", tags=["Contacts"])


async def _get_owned_contact(db: AsyncSession, user_id: UUID, contact_id: UUID) -> Contact:
    result = await db.execute(
        select(Contact).where(Contact.id == contact_id, Contact.user_id == user_id)
    )
    contact = result.scalar_one_or_none()
    if contact is None:
        raise HTTPException(status_code=404, detail="Contact not found")
    return contact


# ============================================================================
# LIST / GET
# ============================================================================

@router.get("", response_model=List[ContactResponse])
async def list_contacts(
    company_id: Optional[UUID] = Query(None),
    search: Optional[str] = Query(None, max_length=255),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    query = select(Contact).where(Contact.user_id == current_user.id)

    if company_id:
        query = query.where(Contact.company_id == company_id)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(
            Contact.full_name.ilike(pattern),
            Contact.email.ilike(pattern),
            Contact.company_name.ilike(pattern)
        ))

    result = await db.execute(
        query.order_by(Contact.created_at.desc()).offset(offset).limit(limit)
    )
    return result.scalars().all()


@router.get("/{contact_id}", response_model=ContactResponse)
async def get_contact(
    contact_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await _get_owned_contact(db, current_user.id, contact_id)


# ============================================================================
# CREATE / UPDATE
# ============================================================================

@router.post("", response_model=ContactResponse, status_code=status.HTTP_201_CREATED)
async def create_contact(
    payload: ContactCreate,
    skip_company_creation: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    user_id = current_user.id

    patch = await ContactCompanyReconciler(db).reconcile(
        user_id, payload, skip_company_creation=skip_company_creation
    )

    contact = Contact(user_id=user_id, **patch.model_dump(exclude_unset=True))
    db.add(contact)

    try:
        await db.commit()
        await db.refresh(contact)
    except Exception as e:
        await db.rollback()
        logger.error(f"Contact creation failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to create contact")

    logger.info(f"Contact created: {contact.id} (company={contact.company_id})")
    return contact


@router.patch("/{contact_id}", response_model=ContactResponse)
async def update_contact(
    contact_id: UUID,
    payload: ContactPatch,
    skip_company_creation: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    user_id = current_user.id

    if "full_name" in payload.model_fields_set and not payload.full_name:
        raise HTTPException(status_code=422, detail="full_name cannot be empty")

    contact = await _get_owned_contact(db, user_id, contact_id)

    patch = await ContactCompanyReconciler(db).reconcile(
        user_id, payload, existing=contact, skip_company_creation=skip_company_creation
    )

    for column, value in patch.model_dump(exclude_unset=True).items():
        setattr(contact, column, value)

    try:
        await db.commit()
        await db.refresh(contact)
    except Exception as e:
        await db.rollback()
        logger.error(f"Contact update failed for {contact_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to update contact")

    return contact


@router.delete("/{contact_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_contact(
    contact_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    contact = await _get_owned_contact(db, current_user.id, contact_id)
    await db.delete(contact)
    await db.commit()
    logger.info(f"Contact deleted: {contact_id}")
