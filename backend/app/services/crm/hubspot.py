"""HubSpot CRM v3 integration (private app access token)."""

import logging
from typing import Any, Dict, List, Optional, Sequence

from app.config import settings
from app.models import Company, Contact
from app.schemas import CRMType
from app.services.crm.base import CRMGateway, ExportItemResult, ImportedRecord, split_full_name
from app.services.errors import ProviderError

logger = logging.getLogger(__name__)

CONTACT_PROPERTIES = ["firstname", "lastname", "jobtitle", "email", "phone", "company", "city", "industry"]
COMPANY_PROPERTIES = ["name", "domain", "industry", "phone", "description", "city", "numberofemployees"]


class HubSpotGateway(CRMGateway):
    """Service for syncing contacts and companies with HubSpot."""

    crm_type = CRMType.HUBSPOT

    def __init__(self, access_token: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.access_token = access_token or settings.HUBSPOT_ACCESS_TOKEN

    @property
    def base_url(self) -> str:
        return "https://api.hubapi.com"

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

    def is_configured(self) -> bool:
        return bool(self.access_token)

    async def test_connection(self) -> bool:
        try:
            await self._get_json("/crm/v3/objects/contacts", params={"limit": 1})
            return True
        except ProviderError as e:
            logger.error(f"HubSpot connection test failed: {e}")
            return False

    async def import_contacts(self, limit: int = 100) -> List[ImportedRecord]:
        data = await self._get_json("/crm/v3/objects/contacts", params={
            "limit": limit,
            "properties": ",".join(CONTACT_PROPERTIES),
        })

        records = []
        for item in data.get("results", []):
            props = item.get("properties") or {}
            full_name = f"{props.get('firstname') or ''} {props.get('lastname') or ''}".strip()
            records.append(ImportedRecord(
                external_id=str(item["id"]),
                data={
                    "full_name": full_name or None,
                    "email": props.get("email"),
                    "phone": props.get("phone"),
                    "job_title": props.get("jobtitle"),
                    "company_name": props.get("company"),
                    "location": props.get("city"),
                    "industry": props.get("industry"),
                }
            ))

        logger.info(f"Fetched {len(records)} contacts from HubSpot")
        return records

    async def import_companies(self, limit: int = 100) -> List[ImportedRecord]:
        data = await self._get_json("/crm/v3/objects/companies", params={
            "limit": limit,
            "properties": ",".join(COMPANY_PROPERTIES),
        })

        records = []
        for item in data.get("results", []):
            props = item.get("properties") or {}
            records.append(ImportedRecord(
                external_id=str(item["id"]),
                data={
                    "name": props.get("name") or "Unknown Company",
                    "website": props.get("domain"),
                    "industry": props.get("industry"),
                    "phone": props.get("phone"),
                    "description": props.get("description"),
                    "location": props.get("city"),
                    "size": props.get("numberofemployees"),
                }
            ))

        logger.info(f"Fetched {len(records)} companies from HubSpot")
        return records

    async def export_contacts(self, contacts: Sequence[Contact]) -> List[ExportItemResult]:
        bodies = []
        for contact in contacts:
            first_name, last_name = split_full_name(contact.full_name)
            bodies.append({"properties": self._clean({
                "firstname": first_name,
                "lastname": last_name,
                "email": contact.email,
                "phone": contact.phone,
                "jobtitle": contact.job_title,
                "company": contact.company_name,
                "city": contact.location,
            })})
        return await self._create_each("/crm/v3/objects/contacts", bodies)

    async def export_companies(self, companies: Sequence[Company]) -> List[ExportItemResult]:
        bodies = [
            {"properties": self._clean({
                "name": company.name,
                "domain": company.website,
                "industry": company.industry,
                "phone": company.phone,
                "description": company.description,
                "city": company.location,
            })}
            for company in companies
        ]
        return await self._create_each("/crm/v3/objects/companies", bodies)

    @staticmethod
    def _clean(properties: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in properties.items() if v}
