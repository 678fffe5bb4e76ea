# backend/app/services/contact_reconciler.py
"""
Contact ↔ Company Reconciliation

Runs on every contact write (create, update, CRM import, company enrichment)
so that a contact's company_id / company_name pair always points at a single
Company row owned by the same user.

Steps:
1. A company_id that is missing or owned by another user is dropped
2. A new or changed company_name resolves to an existing company
   (case-insensitive) or creates one
3. A resolved company wins: company_name becomes its canonical name,
   industry / location are back-filled
4. Company creation failure never blocks the contact write
5. The adjusted ContactPatch is returned for the caller to persist

Invariant: if the result carries company_id, its company_name equals
Company.name exactly.
"""

import logging
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Company, Contact
from app.schemas import ContactPatch

logger = logging.getLogger(__name__)


class ContactCompanyReconciler:
    """Resolves a contact patch against the owner's companies."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def reconcile(
        self,
        user_id: UUID,
        payload: ContactPatch,
        existing: Optional[Contact] = None,
        skip_company_creation: bool = False
    ) -> ContactPatch:
        data = payload.model_dump(exclude_unset=True)

        # Snapshot before any commit/rollback can expire the instance
        previous = self._snapshot(existing)

        company: Optional[Company] = None

        # Step 1: only trust company_id if the caller owns it
        if data.get("company_id") is not None:
            company = await self.get_owned_company(user_id, data["company_id"])
            if company is None:
                logger.warning(
                    f"Dropping company_id {data['company_id']} for user {user_id}: "
                    f"missing or owned by another user"
                )
                del data["company_id"]

        # Step 2: resolve a new / changed company name
        company_name = data.get("company_name")
        name_changed = (
            "company_name" in data
            and (existing is None or company_name != previous.get("company_name"))
        )

        if company is None and company_name and name_changed and not skip_company_creation:
            company = await self.find_company_by_name(user_id, company_name)

            if company is not None:
                logger.info(f"Reusing company '{company.name}' ({company.id}) for user {user_id}")
            else:
                company = await self._create_company(
                    user_id,
                    company_name,
                    industry=self._pick("industry", data, previous),
                    location=self._pick("location", data, previous),
                    size=self._pick("team_size", data, previous),
                )
                if existing is not None:
                    await self.db.refresh(existing)

        # Step 3: the company record wins
        if company is not None:
            data["company_id"] = company.id
            data["company_name"] = company.name

            if not data.get("industry") and not previous.get("industry") and company.industry:
                data["industry"] = company.industry
            if not data.get("location") and not previous.get("location") and company.location:
                data["location"] = company.location

        elif existing is not None and name_changed and previous.get("company_id") is not None:
            # Renamed away from the linked company with nothing to link to
            data["company_id"] = None

        return ContactPatch(**data)

    # ========================================================================
    # COMPANY LOOKUPS
    # ========================================================================

    async def get_owned_company(self, user_id: UUID, company_id: UUID) -> Optional[Company]:
        result = await self.db.execute(
            select(Company).where(Company.id == company_id, Company.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def find_company_by_name(self, user_id: UUID, name: str) -> Optional[Company]:
        """Case-insensitive lookup within one user's companies."""
        result = await self.db.execute(
            select(Company)
            .where(
                Company.user_id == user_id,
                func.lower(Company.name) == func.lower(name.strip())
            )
            .order_by(Company.created_at)
            .limit(1)
        )
        return result.scalars().first()

    async def find_or_create_company(self, user_id: UUID, name: str, **fields) -> Optional[Company]:
        company = await self.find_company_by_name(user_id, name)
        if company is not None:
            return company
        return await self._create_company(user_id, name.strip(), **fields)

    async def _create_company(self, user_id: UUID, name: str, **fields) -> Optional[Company]:
        """
        Insert a company. Returns None on failure (logged, never raised).

        A unique-index violation means a concurrent request created the same
        name first; the winning row is returned instead.
        """
        company = Company(
            user_id=user_id,
            name=name,
            **{k: v for k, v in fields.items() if v is not None}
        )
        self.db.add(company)

        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            winner = await self.find_company_by_name(user_id, name)
            if winner is not None:
                logger.info(f"Company '{name}' created concurrently, using {winner.id}")
                return winner
            logger.error(f"❌ Company creation failed for '{name}' (integrity error, no winner found)")
            return None
        except Exception as e:
            await self.db.rollback()
            logger.error(f"❌ Company creation failed for '{name}': {e}")
            return None

        logger.info(f"✅ Created company '{name}' ({company.id}) for user {user_id}")
        return company

    # ========================================================================
    # HELPERS
    # ========================================================================

    @staticmethod
    def _snapshot(existing: Optional[Contact]) -> Dict[str, Any]:
        if existing is None:
            return {}
        return {
            "company_id": existing.company_id,
            "company_name": existing.company_name,
            "industry": existing.industry,
            "location": existing.location,
            "team_size": existing.team_size,
        }

    @staticmethod
    def _pick(field: str, data: Dict[str, Any], previous: Dict[str, Any]) -> Optional[str]:
        """Payload value first, then the existing contact's."""
        return data.get(field) or previous.get(field)
