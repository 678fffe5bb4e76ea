"""Shared failure types for the metered services."""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID


class ProviderError(Exception):
    """Transport-level failure talking to an external provider (network, 5xx, bad payload)."""

    def __init__(self, message: str, provider: Optional[str] = None, status_code: Optional[int] = None):
        self.provider = provider
        self.status_code = status_code
        super().__init__(message)


@dataclass
class NotFound:
    """Record missing or not owned by the caller. Returned before any credit action."""
    resource: str
    resource_id: UUID
