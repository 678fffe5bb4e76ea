"""
Base gateway interface for CRM systems.
All CRM gateways must implement this interface.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from app.config import settings
from app.models import Company, Contact
from app.schemas import CRMType
from app.services.errors import ProviderError

logger = logging.getLogger(__name__)


@dataclass
class ImportedRecord:
    """
    Record pulled from a CRM, already mapped to local field names.

    Contact records use ContactPatch keys, company records use Company
    column names.
    """
    external_id: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ExportItemResult:
    """Per-record export outcome."""
    success: bool
    external_id: Optional[str] = None
    error: Optional[str] = None


def split_full_name(full_name: str) -> Tuple[str, str]:
    parts = (full_name or "").split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


class CRMGateway(ABC):
    """
    Abstract base class for CRM gateways.

    Transport failures (network, auth, 5xx on reads) raise ProviderError.
    Export reports per-record failures in ExportItemResult instead.
    """

    crm_type: CRMType

    def __init__(self, timeout: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self.transport = transport

    @property
    @abstractmethod
    def base_url(self) -> str:
        pass

    @property
    @abstractmethod
    def headers(self) -> Dict[str, str]:
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        """True when credentials are present."""
        pass

    @abstractmethod
    async def test_connection(self) -> bool:
        """
        Test if connection/authentication works.

        Returns:
            True if connection successful, False otherwise
        """
        pass

    @abstractmethod
    async def import_contacts(self, limit: int = 100) -> List[ImportedRecord]:
        pass

    @abstractmethod
    async def import_companies(self, limit: int = 100) -> List[ImportedRecord]:
        pass

    @abstractmethod
    async def export_contacts(self, contacts: Sequence[Contact]) -> List[ExportItemResult]:
        """One result per input contact, same order."""
        pass

    @abstractmethod
    async def export_companies(self, companies: Sequence[Company]) -> List[ExportItemResult]:
        """One result per input company, same order."""
        pass

    # ========================================================================
    # HTTP HELPERS
    # ========================================================================

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self.transport
        )

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.get(path, params=params)
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.crm_type.value} request failed: {e}", provider=self.crm_type.value) from e

        if response.status_code != 200:
            raise ProviderError(
                f"{self.crm_type.value} returned {response.status_code}: {response.text[:200]}",
                provider=self.crm_type.value,
                status_code=response.status_code
            )
        return response.json()

    async def _create_each(self, path: str, bodies: List[Dict[str, Any]]) -> List[ExportItemResult]:
        """
        POST each body and report one result per body.

        Non-2xx and unreadable 2xx bodies are per-item failures. A transport
        error before anything was created raises ProviderError; after that,
        the items already created are kept and the unsent ones are failed.
        """
        results: List[ExportItemResult] = []
        try:
            async with self._client() as client:
                for body in bodies:
                    response = await client.post(path, json=body)
                    results.append(self._item_result(response))
        except httpx.HTTPError as e:
            if not any(item.success for item in results):
                raise ProviderError(f"{self.crm_type.value} export failed: {e}", provider=self.crm_type.value) from e

            logger.error(
                f"{self.crm_type.value} export interrupted after {len(results)}/{len(bodies)} records: {e}"
            )
            unsent = len(bodies) - len(results)
            results.extend(
                ExportItemResult(success=False, error=f"transport error: {e}") for _ in range(unsent)
            )

        return results

    def _item_result(self, response: httpx.Response) -> ExportItemResult:
        if response.status_code not in (200, 201):
            logger.warning(f"{self.crm_type.value} rejected record: {response.status_code} {response.text[:200]}")
            return ExportItemResult(
                success=False,
                error=f"HTTP {response.status_code}: {response.text[:200]}"
            )

        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict) or not data.get("id"):
            logger.warning(f"{self.crm_type.value} accepted record without an id: {response.text[:200]}")
            return ExportItemResult(success=False, error=f"HTTP {response.status_code}: no record id in response")

        return ExportItemResult(success=True, external_id=str(data["id"]))
