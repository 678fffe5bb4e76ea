"""Pydantic schemas for request/response validation."""

from pydantic import BaseModel, EmailStr, Field, ConfigDict, field_validator, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from uuid import UUID

from enum import Enum


class EnrichmentField(str, Enum):
    EMAIL = "email"
    PHONE = "phone"
    SOCIAL = "social"
    COMPANY = "company"


class CRMType(str, Enum):
    SALESFORCE = "salesforce"
    HUBSPOT = "hubspot"


# Authentication Schemas
class SignupRequest(BaseModel):
    """Self-service account creation."""
    email: EmailStr
    password: str = Field(..., min_length=8)
    full_name: str = Field(..., min_length=1, max_length=255)
    company_name: Optional[str] = Field(None, max_length=255)
    industry: Optional[str] = Field(None, max_length=255)
    role: Optional[str] = Field(None, max_length=100)


class LoginRequest(BaseModel):
    """Login request with email and password."""
    email: EmailStr
    password: str = Field(..., min_length=8)


class TokenResponse(BaseModel):
    """JWT token response."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class UserResponse(BaseModel):
    """User information response."""
    id: UUID
    email: str
    full_name: str
    company_name: Optional[str]
    industry: Optional[str]
    role: Optional[str]
    credits: int
    is_active: bool
    verified: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Credit Schemas
class CreditBalanceResponse(BaseModel):
    credits: int


class CreditTransactionResponse(BaseModel):
    """Single ledger entry. Debits carry a negative amount."""
    id: int
    amount: int
    type: str
    description: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Contact Schemas
class ContactPatch(BaseModel):
    """
    Partial contact write.

    Every field is optional; only fields explicitly provided (model_fields_set)
    are applied. This is the one shape the reconciler consumes and returns.
    """
    full_name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    job_title: Optional[str] = Field(None, max_length=255)
    linkedin_url: Optional[str] = Field(None, max_length=500)
    location: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None
    tags: Optional[List[str]] = None
    company_id: Optional[UUID] = None
    company_name: Optional[str] = Field(None, max_length=255)
    industry: Optional[str] = Field(None, max_length=255)
    team_size: Optional[str] = Field(None, max_length=50)

    @field_validator('company_name')
    @classmethod
    def strip_company_name(cls, v):
        if v is None:
            return v
        v = v.strip()
        return v or None


class ContactCreate(ContactPatch):
    """Create contact request. full_name is mandatory."""
    full_name: str = Field(..., min_length=1, max_length=255)


class ContactResponse(BaseModel):
    """Contact information response."""
    id: UUID
    full_name: str
    email: Optional[str]
    phone: Optional[str]
    job_title: Optional[str]
    linkedin_url: Optional[str]
    location: Optional[str]
    notes: Optional[str]
    tags: Optional[List[str]]
    company_id: Optional[UUID]
    company_name: Optional[str]
    industry: Optional[str]
    team_size: Optional[str]
    is_enriched: bool
    email_verified: bool
    enrichment_source: Optional[str]
    enrichment_date: Optional[datetime]
    hubspot_id: Optional[str]
    salesforce_id: Optional[str]
    crm_source: Optional[str]
    crm_last_synced: Optional[datetime]
    created_at: datetime
    updated_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


# Company Schemas
class CompanyCreate(BaseModel):
    """Create company request."""
    name: str = Field(..., min_length=1, max_length=255)
    industry: Optional[str] = Field(None, max_length=255)
    website: Optional[str] = Field(None, max_length=500)
    size: Optional[str] = Field(None, max_length=50)
    location: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=50)
    linkedin_url: Optional[str] = Field(None, max_length=500)

    @field_validator('name')
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Company name cannot be blank')
        return v


class CompanyResponse(BaseModel):
    """Company information response."""
    id: UUID
    name: str
    industry: Optional[str]
    website: Optional[str]
    size: Optional[str]
    location: Optional[str]
    description: Optional[str]
    phone: Optional[str]
    linkedin_url: Optional[str]
    is_enriched: bool
    hubspot_id: Optional[str]
    salesforce_id: Optional[str]
    crm_source: Optional[str]
    crm_last_synced: Optional[datetime]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Enrichment Schemas
class EnrichmentRequest(BaseModel):
    """Fields to enrich on a contact. Each field is priced separately."""
    fields: List[EnrichmentField] = Field(..., min_length=1)


class EnrichmentResponse(BaseModel):
    contact: ContactResponse
    fields_updated: List[str]
    credits_used: int
    credits_remaining: int


# Email Finder / Verifier Schemas
class EmailVerifyRequest(BaseModel):
    email: str = Field(..., min_length=1, max_length=255)
    contact_id: Optional[UUID] = None


class EmailFindRequest(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=255)
    last_name: str = Field(..., min_length=1, max_length=255)
    domain_or_company: str = Field(..., min_length=1, max_length=255)
    contact_id: Optional[UUID] = None


class EmailVerificationResponse(BaseModel):
    email: Optional[str]
    is_valid: bool
    status: str
    message: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    credits_used: int
    credits_remaining: int
    refunded: bool


# CRM Schemas
class CRMConnectionStatus(BaseModel):
    crm_type: CRMType
    connected: bool
    error: Optional[str] = None


class CRMImportRequest(BaseModel):
    crm_type: CRMType
    limit: int = Field(default=100, ge=1, le=1000)


class CRMExportRequest(BaseModel):
    crm_type: CRMType
    ids: List[UUID] = Field(..., min_length=1, max_length=1000)


class CRMSyncResponse(BaseModel):
    """Result of an import or export run."""
    crm_type: CRMType
    processed: int
    succeeded: int
    failed: int
    skipped: int = 0
    errors: List[str] = Field(default_factory=list)
    credits_used: int
    credits_remaining: int


# AI Message Writer Schemas
class MessagePurpose(str, Enum):
    INTRODUCTION = "introduction"
    FOLLOWUP = "followup"
    PROPOSAL = "proposal"
    CUSTOM = "custom"


class MessageTone(str, Enum):
    PROFESSIONAL = "professional"
    FRIENDLY = "friendly"
    CASUAL = "casual"
    FORMAL = "formal"
    PERSUASIVE = "persuasive"
    ENTHUSIASTIC = "enthusiastic"


class MessageGenerateRequest(BaseModel):
    """Generate an outreach message for one of the caller's contacts."""
    contact_id: UUID
    purpose: MessagePurpose
    tone: MessageTone
    custom_prompt: Optional[str] = Field(None, max_length=2000)

    @field_validator("custom_prompt")
    @classmethod
    def blank_prompt_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def custom_needs_prompt(self):
        if self.purpose == MessagePurpose.CUSTOM and not self.custom_prompt:
            raise ValueError("custom_prompt is required for a custom message")
        return self


class MessageGenerateResponse(BaseModel):
    message: str
    credits_used: int
    credits_remaining: int
