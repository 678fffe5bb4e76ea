"""CRM integration routes (Salesforce / HubSpot import and export)."""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, List
import logging

from app.database import get_db
from app.models import User
from app.auth import get_current_user
from app.schemas import (
    CRMConnectionStatus, CRMExportRequest, CRMImportRequest, CRMSyncResponse, CRMType
)
from app.services.crm import CRMGateway, create_gateways
from app.services.crm_sync import CRMNotConfigured, CrmSyncService, SyncFailed, SyncReport
from app.routers.outcomes import raise_for_outcome

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/crm", tags=["CRM"])


def get_crm_gateways() -> Dict[CRMType, CRMGateway]:
    return create_gateways()


def _to_response(result) -> CRMSyncResponse:
    raise_for_outcome(result)

    if isinstance(result, CRMNotConfigured):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{result.crm_type.value} integration is not configured"
        )

    if isinstance(result, SyncFailed):
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={
                "message": f"{result.crm_type.value} sync failed",
                "reason": result.reason,
                "credits_remaining": result.credits_remaining,
            }
        )

    report: SyncReport = result
    return CRMSyncResponse(
        crm_type=report.crm_type,
        processed=report.processed,
        succeeded=report.succeeded,
        failed=report.failed,
        skipped=report.skipped,
        errors=report.errors,
        credits_used=report.credits_used,
        credits_remaining=report.credits_remaining
    )


@router.get("/connections", response_model=List[CRMConnectionStatus])
async def get_connections(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    gateways: Dict[CRMType, CRMGateway] = Depends(get_crm_gateways)
):
    statuses = await CrmSyncService(db, gateways).connection_status()
    return [
        CRMConnectionStatus(crm_type=s.crm_type, connected=s.connected, error=s.error)
        for s in statuses
    ]


@router.post("/import/contacts", response_model=CRMSyncResponse)
async def import_contacts(
    request: CRMImportRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    gateways: Dict[CRMType, CRMGateway] = Depends(get_crm_gateways)
):
    result = await CrmSyncService(db, gateways).import_contacts(
        current_user.id, request.crm_type, limit=request.limit
    )
    return _to_response(result)


@router.post("/import/companies", response_model=CRMSyncResponse)
async def import_companies(
    request: CRMImportRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    gateways: Dict[CRMType, CRMGateway] = Depends(get_crm_gateways)
):
    result = await CrmSyncService(db, gateways).import_companies(
        current_user.id, request.crm_type, limit=request.limit
    )
    return _to_response(result)


@router.post("/export/contacts", response_model=CRMSyncResponse)
async def export_contacts(
    request: CRMExportRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    gateways: Dict[CRMType, CRMGateway] = Depends(get_crm_gateways)
):
    result = await CrmSyncService(db, gateways).export_contacts(
        current_user.id, request.crm_type, request.ids
    )
    return _to_response(result)


@router.post("/export/companies", response_model=CRMSyncResponse)
async def export_companies(
    request: CRMExportRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    gateways: Dict[CRMType, CRMGateway] = Depends(get_crm_gateways)
):
    result = await CrmSyncService(db, gateways).export_companies(
        current_user.id, request.crm_type, request.ids
    )
    return _to_response(result)
