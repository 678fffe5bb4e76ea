"""
CRM integrations (Salesforce, HubSpot).

Gateways are thin REST clients behind the CRMGateway interface. Credit
metering and reconciliation live in app.services.crm_sync, not here.

Usage:
    from app.services.crm import create_gateways

    gateways = create_gateways()
    records = await gateways[CRMType.HUBSPOT].import_contacts(limit=50)
"""

from typing import Dict

from app.schemas import CRMType
from app.services.crm.base import CRMGateway, ExportItemResult, ImportedRecord
from app.services.crm.hubspot import HubSpotGateway
from app.services.crm.salesforce import SalesforceGateway


def create_gateways() -> Dict[CRMType, CRMGateway]:
    """One gateway per supported CRM, configured from settings."""
    return {
        CRMType.HUBSPOT: HubSpotGateway(),
        CRMType.SALESFORCE: SalesforceGateway(),
    }


__all__ = [
    "CRMGateway",
    "ExportItemResult",
    "ImportedRecord",
    "HubSpotGateway",
    "SalesforceGateway",
    "create_gateways",
]
