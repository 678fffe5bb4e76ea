# backend/app/models.py
"""
SQLAlchemy ORM models.

KEY RULES:
1. Every Company / Contact row belongs to exactly one User (owner scope)
2. User.credits is only ever mutated by the Ledger (conditional UPDATEs)
3. CreditTransaction rows are append-only - never updated or deleted
4. Foreign keys only, no ORM relationships (async sessions never lazy-load)
"""

from sqlalchemy import (
    Column, String, Boolean, Integer, Text, DateTime, JSON, Index, Uuid,
    ForeignKey, CheckConstraint, func
)
from app.database import Base
from datetime import datetime
import uuid


# ============================================================================
# USER & CREDIT LEDGER MODELS
# ============================================================================

class User(Base):
    """User account. Owns contacts, companies and a credit balance."""
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=False)
    company_name = Column(String(255))
    industry = Column(String(255))
    role = Column(String(100))

    # Materialized balance - see app.services.ledger
    credits = Column(Integer, nullable=False, default=0)

    is_active = Column(Boolean, default=True, nullable=False)
    verified = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("credits >= 0", name="chk_user_credits_non_negative"),
    )

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', credits={self.credits})>"


class CreditTransaction(Base):
    """Immutable credit ledger entry. Signed amount: debits are negative."""
    __tablename__ = "credit_transactions"

    # Monotonic id gives a stable most-recent-first ordering
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    type = Column(String(10), nullable=False)
    description = Column(String(500), nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("type IN ('credit', 'debit')", name="chk_credit_transaction_type"),
        Index("idx_credit_tx_user_id_desc", "user_id", "id"),
    )

    def __repr__(self):
        return f"<CreditTransaction(id={self.id}, user_id={self.user_id}, amount={self.amount}, type='{self.type}')>"


# ============================================================================
# COMPANY MODEL
# ============================================================================

class Company(Base):
    """Company record, unique per owner by case-insensitive name."""
    __tablename__ = "companies"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # ========================================================================
    # BASIC INFO
    # ========================================================================
    name = Column(String(255), nullable=False)
    industry = Column(String(255))
    website = Column(String(500))
    size = Column(String(50))
    location = Column(String(255))
    description = Column(Text)
    phone = Column(String(50))
    linkedin_url = Column(String(500))

    # ========================================================================
    # ENRICHMENT STATUS
    # ========================================================================
    is_enriched = Column(Boolean, default=False, nullable=False)
    enrichment_source = Column(String(100))
    enrichment_date = Column(DateTime(timezone=True))

    # ========================================================================
    # CRM INTEGRATION
    # ========================================================================
    salesforce_id = Column(String(100))
    hubspot_id = Column(String(100))
    is_imported = Column(Boolean, default=False, nullable=False)
    crm_source = Column(String(50))  # salesforce, hubspot
    crm_last_synced = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<Company(id={self.id}, name='{self.name}')>"


# Backs the reconciler's find-or-create: no two companies per owner share a name
Index(
    "uq_companies_user_lower_name",
    Company.user_id,
    func.lower(Company.name),
    unique=True,
)


# ============================================================================
# CONTACT MODEL
# ============================================================================

class Contact(Base):
    """
    Contact record.
    company_name is denormalized and must equal Company.name whenever
    company_id is set (enforced by ContactCompanyReconciler).
    """
    __tablename__ = "contacts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # ========================================================================
    # CONTACT INFO
    # ========================================================================
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), index=True)
    phone = Column(String(50))
    job_title = Column(String(255))
    linkedin_url = Column(String(500))
    location = Column(String(255))
    notes = Column(Text)
    tags = Column(JSON, default=list)

    # ========================================================================
    # COMPANY INFO
    # ========================================================================
    company_id = Column(Uuid(as_uuid=True), ForeignKey("companies.id", ondelete="SET NULL"), nullable=True, index=True)
    company_name = Column(String(255))
    industry = Column(String(255))
    team_size = Column(String(50))

    # ========================================================================
    # ENRICHMENT STATUS
    # ========================================================================
    is_enriched = Column(Boolean, default=False, nullable=False)
    email_verified = Column(Boolean, default=False, nullable=False)
    enrichment_source = Column(String(100))
    enrichment_date = Column(DateTime(timezone=True))

    # ========================================================================
    # CRM INTEGRATION
    # ========================================================================
    salesforce_id = Column(String(100))
    hubspot_id = Column(String(100))
    is_imported = Column(Boolean, default=False, nullable=False)
    crm_source = Column(String(50))
    crm_last_synced = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Contact(id={self.id}, full_name='{self.full_name}', company='{self.company_name}')>"
