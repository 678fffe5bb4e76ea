"""Icypeas API integration - email verification and email search jobs."""

import httpx
import logging
from typing import Any, Dict, Optional, Union

from app.config import settings
from app.services.errors import ProviderError
from app.services.verification_poller import JobStatus, StartFailed, VerificationProvider

logger = logging.getLogger(__name__)


class IcypeasClient(VerificationProvider):
    """
    Async client for Icypeas single-search jobs.

    Jobs are created with /email-verification or /email-search and read back
    through /bulk-single-searchs/read. The API key goes in the Authorization
    header as-is (no Bearer prefix).
    """

    name = "icypeas"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_key = api_key or settings.ICYPEAS_API_KEY
        self.base_url = (base_url or settings.ICYPEAS_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self.transport = transport

        if not self.api_key:
            logger.warning("⚠️ ICYPEAS_API_KEY not configured")

        self.headers = {
            "Authorization": self.api_key or "",
            "Content-Type": "application/json",
        }

    async def start_email_verification(self, email: str) -> Union[str, StartFailed]:
        return await self._start_job("/email-verification", {"email": email})

    async def start_email_search(
        self,
        first_name: str,
        last_name: str,
        domain_or_company: str
    ) -> Union[str, StartFailed]:
        return await self._start_job("/email-search", {
            "firstname": first_name,
            "lastname": last_name,
            "domainOrCompany": domain_or_company,
        })

    async def get_status(self, job_id: str) -> JobStatus:
        data = await self._post("/bulk-single-searchs/read", {"id": job_id})

        items = data.get("items") or []
        if not items:
            return JobStatus(status=None, payload={})

        item = items[0]
        return JobStatus(status=item.get("status"), payload=item)

    async def _start_job(self, path: str, body: Dict[str, Any]) -> Union[str, StartFailed]:
        try:
            data = await self._post(path, body)
        except ProviderError as e:
            logger.error(f"❌ Icypeas job start failed ({path}): {e}")
            return StartFailed(reason=str(e))

        job_id = (data.get("item") or {}).get("_id")
        if not data.get("success") or not job_id:
            logger.error(f"❌ Icypeas did not accept job ({path}): {data}")
            return StartFailed(reason="Provider did not accept the job", details=data)

        logger.info(f"🔍 Icypeas job started: {job_id}")
        return job_id

    async def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    f"{self.base_url}{path}",
                    headers=self.headers,
                    json=body
                )
        except httpx.HTTPError as e:
            raise ProviderError(f"Icypeas request failed: {e}", provider=self.name) from e

        if response.status_code >= 400:
            raise ProviderError(
                f"Icypeas returned {response.status_code}: {response.text[:200]}",
                provider=self.name,
                status_code=response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(f"Icypeas returned invalid JSON: {e}", provider=self.name) from e

        if not isinstance(data, dict):
            raise ProviderError(f"Icypeas returned unexpected body: {response.text[:200]}", provider=self.name)
        return data
