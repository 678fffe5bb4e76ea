"""Salesforce REST API integration (OAuth access token + instance URL)."""

import logging
from typing import Any, Dict, List, Optional, Sequence

from app.config import settings
from app.models import Company, Contact
from app.schemas import CRMType
from app.services.crm.base import CRMGateway, ExportItemResult, ImportedRecord, split_full_name
from app.services.errors import ProviderError

logger = logging.getLogger(__name__)


class SalesforceGateway(CRMGateway):
    """Service for syncing Contacts and Accounts with Salesforce."""

    crm_type = CRMType.SALESFORCE

    def __init__(
        self,
        instance_url: Optional[str] = None,
        access_token: Optional[str] = None,
        api_version: Optional[str] = None,
        **kwargs
    ):
        super().__init__(**kwargs)
        self.instance_url = (instance_url or settings.SALESFORCE_INSTANCE_URL or "").rstrip("/")
        self.access_token = access_token or settings.SALESFORCE_ACCESS_TOKEN
        self.api_version = api_version or settings.SALESFORCE_API_VERSION

    @property
    def base_url(self) -> str:
        return f"{self.instance_url}/services/data/{self.api_version}"

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

    def is_configured(self) -> bool:
        return bool(self.instance_url and self.access_token)

    async def test_connection(self) -> bool:
        try:
            await self._get_json("/limits")
            return True
        except ProviderError as e:
            logger.error(f"Salesforce connection test failed: {e}")
            return False

    async def import_contacts(self, limit: int = 100) -> List[ImportedRecord]:
        rows = await self._query(
            "SELECT Id, FirstName, LastName, Email, Phone, Title, MailingCity, "
            f"Account.Name, Account.Industry FROM Contact LIMIT {int(limit)}"
        )

        records = []
        for row in rows:
            account = row.get("Account") or {}
            full_name = f"{row.get('FirstName') or ''} {row.get('LastName') or ''}".strip()
            records.append(ImportedRecord(
                external_id=row["Id"],
                data={
                    "full_name": full_name or None,
                    "email": row.get("Email"),
                    "phone": row.get("Phone"),
                    "job_title": row.get("Title"),
                    "location": row.get("MailingCity"),
                    "company_name": account.get("Name"),
                    "industry": account.get("Industry"),
                }
            ))

        logger.info(f"Fetched {len(records)} contacts from Salesforce")
        return records

    async def import_companies(self, limit: int = 100) -> List[ImportedRecord]:
        rows = await self._query(
            "SELECT Id, Name, Website, Industry, Phone, Description, BillingCity, "
            f"NumberOfEmployees FROM Account LIMIT {int(limit)}"
        )

        records = [
            ImportedRecord(
                external_id=row["Id"],
                data={
                    "name": row.get("Name") or "Unknown Company",
                    "website": row.get("Website"),
                    "industry": row.get("Industry"),
                    "phone": row.get("Phone"),
                    "description": row.get("Description"),
                    "location": row.get("BillingCity"),
                    "size": str(row["NumberOfEmployees"]) if row.get("NumberOfEmployees") else None,
                }
            )
            for row in rows
        ]

        logger.info(f"Fetched {len(records)} accounts from Salesforce")
        return records

    async def export_contacts(self, contacts: Sequence[Contact]) -> List[ExportItemResult]:
        bodies = []
        for contact in contacts:
            first_name, last_name = split_full_name(contact.full_name)
            bodies.append(self._clean({
                "FirstName": first_name,
                "LastName": last_name or "Unknown",
                "Email": contact.email,
                "Phone": contact.phone,
                "Title": contact.job_title,
                "MailingCity": contact.location,
            }))
        return await self._create_each("/sobjects/Contact/", bodies)

    async def export_companies(self, companies: Sequence[Company]) -> List[ExportItemResult]:
        bodies = [
            self._clean({
                "Name": company.name,
                "Website": company.website,
                "Industry": company.industry,
                "Phone": company.phone,
                "Description": company.description,
                "BillingCity": company.location,
            })
            for company in companies
        ]
        return await self._create_each("/sobjects/Account/", bodies)

    async def _query(self, soql: str) -> List[Dict[str, Any]]:
        data = await self._get_json("/query", params={"q": soql})
        return data.get("records", [])

    @staticmethod
    def _clean(fields: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in fields.items() if v}
