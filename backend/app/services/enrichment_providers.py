# backend/app/services/enrichment_providers.py
"""
Enrichment data sources.

A provider receives what is already known about a contact and returns a
partial map of field -> value for the requested fields. "Nothing found" is an
empty map, never an exception; only transport failures raise ProviderError.
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set
from urllib.parse import urlparse

from app.config import settings
from app.schemas import EnrichmentField
from app.services.errors import ProviderError

logger = logging.getLogger(__name__)


@dataclass
class ContactSnapshot:
    """Read-only view of a contact (plus its linked company) handed to providers."""
    full_name: str
    company_name: Optional[str] = None
    company_website: Optional[str] = None
    company_phone: Optional[str] = None
    company_industry: Optional[str] = None
    company_location: Optional[str] = None
    company_size: Optional[str] = None
    known_fields: Dict[str, Any] = field(default_factory=dict)


class EnrichmentProvider(ABC):
    """Base class for all enrichment providers."""

    name: str = "base"

    @abstractmethod
    async def lookup(
        self,
        contact: ContactSnapshot,
        requested_fields: Set[EnrichmentField]
    ) -> Dict[EnrichmentField, Any]:
        """
        Produce best-effort values for the requested fields.

        Returns:
            Subset of requested_fields mapped to values. The COMPANY value is
            a dict of company attributes (name, industry, location, size).

        Raises:
            ProviderError: transport-level failure only
        """
        pass


class PatternEnrichmentProvider(EnrichmentProvider):
    """
    Synthetic provider that derives values from naming conventions.

    - email: first.last@<company domain>
    - social: https://linkedin.com/in/first-last
    - phone: the linked company's phone, if any
    - company: attributes already known for the linked company
    """

    name = "AI-CRM"

    async def lookup(
        self,
        contact: ContactSnapshot,
        requested_fields: Set[EnrichmentField]
    ) -> Dict[EnrichmentField, Any]:
        found: Dict[EnrichmentField, Any] = {}
        name_parts = self._name_parts(contact.full_name)

        if EnrichmentField.EMAIL in requested_fields:
            domain = self._company_domain(contact)
            if name_parts and domain:
                found[EnrichmentField.EMAIL] = f"{'.'.join(name_parts)}@{domain}"

        if EnrichmentField.PHONE in requested_fields and contact.company_phone:
            found[EnrichmentField.PHONE] = contact.company_phone

        if EnrichmentField.SOCIAL in requested_fields and name_parts:
            found[EnrichmentField.SOCIAL] = f"https://linkedin.com/in/{'-'.join(name_parts)}"

        if EnrichmentField.COMPANY in requested_fields and contact.company_name:
            company = {
                "name": contact.company_name,
                "industry": contact.company_industry,
                "location": contact.company_location,
                "size": contact.company_size,
            }
            found[EnrichmentField.COMPANY] = {k: v for k, v in company.items() if v}

        logger.debug(f"Pattern lookup for '{contact.full_name}': {sorted(f.value for f in found)}")
        return found

    @staticmethod
    def _name_parts(full_name: str):
        return [p for p in re.split(r"[^a-z0-9]+", (full_name or "").lower()) if p]

    @staticmethod
    def _company_domain(contact: ContactSnapshot) -> Optional[str]:
        """Website host if known, otherwise <companyname>.com"""
        if contact.company_website:
            website = contact.company_website.strip()
            if "://" not in website:
                website = f"https://{website}"
            host = urlparse(website).hostname
            if host:
                return host[4:] if host.startswith("www.") else host

        if contact.company_name:
            slug = re.sub(r"[^a-z0-9]", "", contact.company_name.lower())
            if slug:
                return f"{slug}.com"

        return None


class CompositeEnrichmentProvider(EnrichmentProvider):
    """
    Asks several sources at once and merges their answers.

    Sources are queried concurrently. For each field the first non-empty value
    in source order wins. A source raising ProviderError is skipped; the
    lookup only fails when every source did.
    """

    def __init__(self, providers: Sequence[EnrichmentProvider]):
        if not providers:
            raise ValueError("At least one enrichment provider is required")
        self.providers: List[EnrichmentProvider] = list(providers)
        self.name = "+".join(p.name for p in self.providers)

    async def lookup(
        self,
        contact: ContactSnapshot,
        requested_fields: Set[EnrichmentField]
    ) -> Dict[EnrichmentField, Any]:
        results = await asyncio.gather(
            *(p.lookup(contact, requested_fields) for p in self.providers),
            return_exceptions=True
        )

        merged: Dict[EnrichmentField, Any] = {}
        errors: List[ProviderError] = []

        for provider, result in zip(self.providers, results):
            if isinstance(result, ProviderError):
                logger.warning(f"⚠️ Enrichment source {provider.name} failed: {result}")
                errors.append(result)
                continue
            if isinstance(result, BaseException):
                raise result

            for enrichment_field, value in (result or {}).items():
                if value and enrichment_field not in merged:
                    merged[enrichment_field] = value

        if len(errors) == len(self.providers):
            raise ProviderError(
                f"All enrichment sources failed: {'; '.join(str(e) for e in errors)}",
                provider=self.name
            )

        return merged


PROVIDERS = {
    "pattern": PatternEnrichmentProvider,
}


def create_enrichment_provider(name: Optional[str] = None) -> EnrichmentProvider:
    """
    Factory: provider selected by ENRICHMENT_PROVIDER.

    A comma-separated list ("pattern,other") builds a CompositeEnrichmentProvider
    over the named sources, in that order.
    """
    names = [n.strip().lower() for n in (name or settings.ENRICHMENT_PROVIDER).split(",") if n.strip()]

    unknown = [n for n in names if n not in PROVIDERS]
    if not names or unknown:
        raise ValueError(f"Unknown enrichment provider: {', '.join(unknown) or name}")

    providers = [PROVIDERS[n]() for n in names]
    if len(providers) == 1:
        return providers[0]
    return CompositeEnrichmentProvider(providers)
