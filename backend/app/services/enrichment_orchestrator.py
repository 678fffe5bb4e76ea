# backend/app/services/enrichment_orchestrator.py
"""
Metered Contact Enrichment

Debit-then-refund flow:
1. Price the request from the per-field cost table
2. Verify the contact exists and belongs to the caller (no charge otherwise)
3. Debit the full cost up front (InsufficientFunds stops here)
4. Ask the provider for the requested fields, under an outer timeout
5. Apply only requested, non-empty values and stamp enrichment metadata
6. Nothing found or applied / provider failure / timeout -> full refund

Partial results still cost the full requested price.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set, Union, Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models import Contact
from app.schemas import ContactPatch, EnrichmentField
from app.services.contact_reconciler import ContactCompanyReconciler
from app.services.enrichment_providers import ContactSnapshot, EnrichmentProvider
from app.services.errors import NotFound, ProviderError
from app.services.ledger import InsufficientFunds, Ledger

logger = logging.getLogger(__name__)


# Contact column written for each scalar field
FIELD_COLUMNS = {
    EnrichmentField.EMAIL: "email",
    EnrichmentField.PHONE: "phone",
    EnrichmentField.SOCIAL: "linkedin_url",
}


@dataclass
class EnrichmentOutcome:
    contact: Contact
    fields_updated: List[str]
    credits_used: int
    credits_remaining: int


@dataclass
class EnrichmentFailed:
    """Provider produced nothing usable. The charge has been refunded."""
    contact_id: UUID
    reason: str
    credits_refunded: int
    credits_remaining: int


class EnrichmentOrchestrator:
    """All-or-nothing credit accounting around a single provider lookup."""

    def __init__(
        self,
        db: AsyncSession,
        provider: EnrichmentProvider,
        ledger: Optional[Ledger] = None,
        reconciler: Optional[ContactCompanyReconciler] = None,
        cost_table: Optional[Dict[str, int]] = None,
        timeout_seconds: Optional[float] = None
    ):
        self.db = db
        self.provider = provider
        self.ledger = ledger or Ledger(db)
        self.reconciler = reconciler or ContactCompanyReconciler(db)
        self.cost_table = cost_table if cost_table is not None else settings.ENRICHMENT_COSTS
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None
            else settings.ENRICHMENT_PROVIDER_TIMEOUT_SECONDS
        )

    def price(self, requested_fields: Iterable[EnrichmentField]) -> int:
        return sum(self.cost_table[EnrichmentField(f).value] for f in set(requested_fields))

    async def enrich(
        self,
        user_id: UUID,
        contact_id: UUID,
        requested_fields: Iterable[EnrichmentField]
    ) -> Union[EnrichmentOutcome, InsufficientFunds, NotFound, EnrichmentFailed]:
        fields: Set[EnrichmentField] = {EnrichmentField(f) for f in requested_fields}
        if not fields:
            raise ValueError("At least one enrichment field is required")

        cost = self.price(fields)

        contact = await self._get_owned_contact(user_id, contact_id)
        if contact is None:
            logger.warning(f"Enrichment refused: contact {contact_id} not found for user {user_id}")
            return NotFound(resource="contact", resource_id=contact_id)

        snapshot = await self._snapshot(user_id, contact)
        field_names = ", ".join(sorted(f.value for f in fields))

        charge = await self.ledger.debit(
            user_id, cost, f"Contact enrichment for {snapshot.full_name} ({field_names})"
        )
        if isinstance(charge, InsufficientFunds):
            return charge

        failure_reason: Optional[str] = None
        try:
            found = await asyncio.wait_for(
                self.provider.lookup(snapshot, fields),
                timeout=self.timeout_seconds
            )
            found = {
                EnrichmentField(f): v for f, v in (found or {}).items()
                if v and EnrichmentField(f) in fields
            }

            fields_updated = await self._apply(user_id, contact, found) if found else []

            if not found:
                failure_reason = "no fields found"
            elif not fields_updated:
                # e.g. a company value without a name
                await self.db.rollback()
                failure_reason = "no usable fields found"
            else:
                contact.is_enriched = True
                contact.enrichment_date = datetime.utcnow()
                contact.enrichment_source = self.provider.name
                await self.db.commit()

        except ProviderError as e:
            await self.db.rollback()
            logger.error(f"❌ Provider {self.provider.name} failed for contact {contact_id}: {e}")
            failure_reason = f"provider error: {e}"
        except asyncio.TimeoutError:
            await self.db.rollback()
            logger.error(f"❌ Provider {self.provider.name} timed out after {self.timeout_seconds}s for contact {contact_id}")
            failure_reason = "provider timed out"
        except Exception:
            await self.db.rollback()
            await self.ledger.refund(user_id, cost, "enrichment failed")
            raise

        if failure_reason is not None:
            remaining = await self.ledger.refund(user_id, cost, "enrichment failed")
            logger.info(f"Enrichment of contact {contact_id} refunded {cost} credits ({failure_reason})")
            return EnrichmentFailed(
                contact_id=contact_id,
                reason=failure_reason,
                credits_refunded=cost,
                credits_remaining=remaining
            )

        await self.db.refresh(contact)
        remaining = await self.ledger.balance(user_id)

        logger.info(f"✅ Enriched contact {contact_id}: {fields_updated} ({cost} credits)")
        return EnrichmentOutcome(
            contact=contact,
            fields_updated=fields_updated,
            credits_used=cost,
            credits_remaining=remaining
        )

    async def _apply(
        self,
        user_id: UUID,
        contact: Contact,
        found: Dict[EnrichmentField, Any]
    ) -> List[str]:
        fields_updated: List[str] = []

        # Company goes first: the reconciler may commit a new Company row
        company = found.get(EnrichmentField.COMPANY)
        if isinstance(company, dict) and company.get("name"):
            values = {"company_name": company["name"]}
            if not contact.industry and company.get("industry"):
                values["industry"] = company["industry"]
            if not contact.location and company.get("location"):
                values["location"] = company["location"]
            if not contact.team_size and company.get("size"):
                values["team_size"] = company["size"]

            reconciled = await self.reconciler.reconcile(user_id, ContactPatch(**values), existing=contact)
            for column, value in reconciled.model_dump(exclude_unset=True).items():
                setattr(contact, column, value)
            fields_updated.append(EnrichmentField.COMPANY.value)

        for enrichment_field, column in FIELD_COLUMNS.items():
            value = found.get(enrichment_field)
            if value:
                setattr(contact, column, value)
                fields_updated.append(enrichment_field.value)

        return fields_updated

    async def _get_owned_contact(self, user_id: UUID, contact_id: UUID) -> Optional[Contact]:
        result = await self.db.execute(
            select(Contact).where(Contact.id == contact_id, Contact.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def _snapshot(self, user_id: UUID, contact: Contact) -> ContactSnapshot:
        company = None
        if contact.company_id is not None:
            company = await self.reconciler.get_owned_company(user_id, contact.company_id)

        return ContactSnapshot(
            full_name=contact.full_name,
            company_name=contact.company_name,
            company_website=company.website if company else None,
            company_phone=company.phone if company else None,
            company_industry=company.industry if company else contact.industry,
            company_location=company.location if company else contact.location,
            company_size=company.size if company else contact.team_size,
            known_fields={
                "email": contact.email,
                "phone": contact.phone,
                "linkedin_url": contact.linkedin_url,
                "job_title": contact.job_title,
            }
        )
