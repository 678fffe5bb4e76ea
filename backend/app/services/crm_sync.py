# backend/app/services/crm_sync.py
"""
Credit-gated CRM import / export.

Import:
- Flat charge per run (CRM_IMPORT_COST)
- Every contact goes through ContactCompanyReconciler like any other write
- Records already imported (same CRM id) are skipped

Export:
- Flat charge per run (CRM_EXPORT_COST), only for records the caller owns
- Successful items get the CRM id, source and sync time stamped locally

A gateway transport failure before anything was transferred refunds the
run's charge. An export interrupted part-way keeps the charge, stamps the
records that made it and reports the rest as failed.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Union
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models import Company, Contact
from app.schemas import ContactPatch, CRMType
from app.services.contact_reconciler import ContactCompanyReconciler
from app.services.crm.base import CRMGateway, ImportedRecord
from app.services.errors import NotFound, ProviderError
from app.services.ledger import InsufficientFunds, Ledger

logger = logging.getLogger(__name__)

CRM_LABELS = {
    CRMType.HUBSPOT: "HubSpot",
    CRMType.SALESFORCE: "Salesforce",
}


@dataclass
class SyncReport:
    crm_type: CRMType
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)
    credits_used: int = 0
    credits_remaining: int = 0


@dataclass
class SyncFailed:
    """Gateway unreachable before anything was transferred. The charge has been refunded."""
    crm_type: CRMType
    reason: str
    credits_remaining: int


@dataclass
class CRMNotConfigured:
    crm_type: CRMType


@dataclass
class ConnectionStatus:
    crm_type: CRMType
    connected: bool
    error: Optional[str] = None


SyncResult = Union[SyncReport, SyncFailed, CRMNotConfigured, InsufficientFunds, NotFound]


class CrmSyncService:
    """Metered sync between local contacts/companies and external CRMs."""

    def __init__(
        self,
        db: AsyncSession,
        gateways: Dict[CRMType, CRMGateway],
        ledger: Optional[Ledger] = None,
        reconciler: Optional[ContactCompanyReconciler] = None,
        import_cost: Optional[int] = None,
        export_cost: Optional[int] = None
    ):
        self.db = db
        self.gateways = gateways
        self.ledger = ledger or Ledger(db)
        self.reconciler = reconciler or ContactCompanyReconciler(db)
        self.import_cost = import_cost or settings.CRM_IMPORT_COST
        self.export_cost = export_cost or settings.CRM_EXPORT_COST

    async def connection_status(self) -> List[ConnectionStatus]:
        statuses = []
        for crm_type, gateway in self.gateways.items():
            if not gateway.is_configured():
                statuses.append(ConnectionStatus(crm_type, False, "Credentials not configured"))
                continue

            connected = await gateway.test_connection()
            statuses.append(ConnectionStatus(
                crm_type,
                connected,
                None if connected else "Connection test failed"
            ))
        return statuses

    # ========================================================================
    # IMPORT
    # ========================================================================

    async def import_contacts(self, user_id: UUID, crm_type: CRMType, limit: int = 100) -> SyncResult:
        gateway = self._gateway(crm_type)
        if gateway is None:
            return CRMNotConfigured(crm_type)

        label = CRM_LABELS[crm_type]
        charge = await self.ledger.debit(user_id, self.import_cost, f"{label} contact import")
        if isinstance(charge, InsufficientFunds):
            return charge

        try:
            records = await gateway.import_contacts(limit=limit)
        except ProviderError as e:
            return await self._fail(user_id, crm_type, self.import_cost, e)

        report = SyncReport(crm_type=crm_type, credits_used=self.import_cost)
        id_column = self._id_column(Contact, crm_type)

        for record in records:
            report.processed += 1

            if await self._already_imported(Contact, id_column, user_id, record.external_id):
                report.skipped += 1
                continue

            try:
                await self._import_contact(user_id, crm_type, record)
                report.succeeded += 1
            except (ValidationError, ValueError, SQLAlchemyError) as e:
                await self.db.rollback()
                report.failed += 1
                report.errors.append(f"{record.external_id}: {e}")
                logger.warning(f"Skipping {label} contact {record.external_id}: {e}")

        report.credits_remaining = await self.ledger.balance(user_id)
        logger.info(
            f"✅ {label} contact import for user {user_id}: "
            f"{report.succeeded} imported, {report.skipped} skipped, {report.failed} failed"
        )
        return report

    async def _import_contact(self, user_id: UUID, crm_type: CRMType, record: ImportedRecord) -> Contact:
        data = {k: v for k, v in record.data.items() if v is not None}
        if not data.get("full_name"):
            raise ValueError("missing contact name")

        patch = await self.reconciler.reconcile(user_id, ContactPatch(**data))

        contact = Contact(
            user_id=user_id,
            **patch.model_dump(exclude_unset=True),
            is_imported=True,
            crm_source=crm_type.value,
            crm_last_synced=datetime.utcnow()
        )
        setattr(contact, self._id_column(Contact, crm_type).key, record.external_id)
        contact.tags = [f"{CRM_LABELS[crm_type]} Import"]

        self.db.add(contact)
        await self.db.commit()
        return contact

    async def import_companies(self, user_id: UUID, crm_type: CRMType, limit: int = 100) -> SyncResult:
        gateway = self._gateway(crm_type)
        if gateway is None:
            return CRMNotConfigured(crm_type)

        label = CRM_LABELS[crm_type]
        charge = await self.ledger.debit(user_id, self.import_cost, f"{label} company import")
        if isinstance(charge, InsufficientFunds):
            return charge

        try:
            records = await gateway.import_companies(limit=limit)
        except ProviderError as e:
            return await self._fail(user_id, crm_type, self.import_cost, e)

        report = SyncReport(crm_type=crm_type, credits_used=self.import_cost)
        id_column = self._id_column(Company, crm_type)

        for record in records:
            report.processed += 1

            if await self._already_imported(Company, id_column, user_id, record.external_id):
                report.skipped += 1
                continue

            fields = {k: v for k, v in record.data.items() if v is not None and k != "name"}
            company = await self.reconciler.find_or_create_company(user_id, record.data["name"], **fields)
            if company is None:
                report.failed += 1
                report.errors.append(f"{record.external_id}: could not create company '{record.data['name']}'")
                continue

            # Existing same-name company: link it and fill gaps only
            for column, value in fields.items():
                if getattr(company, column) is None:
                    setattr(company, column, value)
            setattr(company, id_column.key, record.external_id)
            company.is_imported = True
            company.crm_source = crm_type.value
            company.crm_last_synced = datetime.utcnow()
            await self.db.commit()
            report.succeeded += 1

        report.credits_remaining = await self.ledger.balance(user_id)
        logger.info(
            f"✅ {label} company import for user {user_id}: "
            f"{report.succeeded} imported, {report.skipped} skipped, {report.failed} failed"
        )
        return report

    # ========================================================================
    # EXPORT
    # ========================================================================

    async def export_contacts(self, user_id: UUID, crm_type: CRMType, contact_ids: Sequence[UUID]) -> SyncResult:
        return await self._export(user_id, crm_type, Contact, contact_ids)

    async def export_companies(self, user_id: UUID, crm_type: CRMType, company_ids: Sequence[UUID]) -> SyncResult:
        return await self._export(user_id, crm_type, Company, company_ids)

    async def _export(self, user_id: UUID, crm_type: CRMType, model, record_ids: Sequence[UUID]) -> SyncResult:
        gateway = self._gateway(crm_type)
        if gateway is None:
            return CRMNotConfigured(crm_type)

        requested = list(dict.fromkeys(record_ids))
        result = await self.db.execute(
            select(model).where(model.id.in_(requested), model.user_id == user_id)
        )
        records = list(result.scalars().all())

        if not records:
            logger.warning(f"Export refused: none of {len(requested)} {model.__tablename__} owned by user {user_id}")
            return NotFound(resource=model.__tablename__, resource_id=requested[0])

        label = CRM_LABELS[crm_type]
        charge = await self.ledger.debit(
            user_id, self.export_cost, f"{label} export of {len(records)} {model.__tablename__}"
        )
        if isinstance(charge, InsufficientFunds):
            return charge

        try:
            if model is Contact:
                results = await gateway.export_contacts(records)
            else:
                results = await gateway.export_companies(records)
        except ProviderError as e:
            return await self._fail(user_id, crm_type, self.export_cost, e)

        report = SyncReport(
            crm_type=crm_type,
            processed=len(records),
            skipped=len(requested) - len(records),
            credits_used=self.export_cost
        )
        id_column = self._id_column(model, crm_type)
        synced_at = datetime.utcnow()

        for record, item in zip(records, results):
            if item.success:
                setattr(record, id_column.key, item.external_id)
                record.crm_source = crm_type.value
                record.crm_last_synced = synced_at
                report.succeeded += 1
            else:
                report.failed += 1
                report.errors.append(f"{record.id}: {item.error}")

        await self.db.commit()
        report.credits_remaining = await self.ledger.balance(user_id)

        logger.info(
            f"✅ {label} export for user {user_id}: "
            f"{report.succeeded}/{report.processed} {model.__tablename__} exported"
        )
        return report

    # ========================================================================
    # HELPERS
    # ========================================================================

    def _gateway(self, crm_type: CRMType) -> Optional[CRMGateway]:
        gateway = self.gateways.get(crm_type)
        if gateway is None or not gateway.is_configured():
            logger.warning(f"CRM {crm_type.value} is not configured")
            return None
        return gateway

    async def _fail(self, user_id: UUID, crm_type: CRMType, cost: int, error: ProviderError) -> SyncFailed:
        logger.error(f"❌ {CRM_LABELS[crm_type]} sync failed for user {user_id}: {error}")
        remaining = await self.ledger.refund(user_id, cost, f"{crm_type.value} sync failed")
        return SyncFailed(crm_type=crm_type, reason=str(error), credits_remaining=remaining)

    async def _already_imported(self, model, id_column, user_id: UUID, external_id: str) -> bool:
        result = await self.db.execute(
            select(model.id).where(model.user_id == user_id, id_column == external_id).limit(1)
        )
        return result.scalar_one_or_none() is not None

    @staticmethod
    def _id_column(model, crm_type: CRMType):
        if crm_type == CRMType.HUBSPOT:
            return model.hubspot_id
        return model.salesforce_id
