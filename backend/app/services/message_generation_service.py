# backend/app/services/message_generation_service.py
"""
Credit-gated AI message writer.

1. Verify the contact belongs to the caller (no charge otherwise)
2. Debit MESSAGE_GENERATION_COST
3. Ask the generator for a message, under an outer timeout
4. Generator failure / timeout / empty text -> full refund
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Union
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models import Contact, User
from app.schemas import MessagePurpose, MessageTone
from app.services.errors import NotFound, ProviderError
from app.services.ledger import InsufficientFunds, Ledger
from app.services.message_generator import MessageContext, MessageGenerator

logger = logging.getLogger(__name__)


@dataclass
class GeneratedMessage:
    message: str
    credits_used: int
    credits_remaining: int


@dataclass
class GenerationFailed:
    """Generator produced nothing. The charge has been refunded."""
    reason: str
    credits_refunded: int
    credits_remaining: int


class MessageGenerationService:

    def __init__(
        self,
        db: AsyncSession,
        generator: MessageGenerator,
        ledger: Optional[Ledger] = None,
        cost: Optional[int] = None,
        timeout_seconds: Optional[float] = None
    ):
        self.db = db
        self.generator = generator
        self.ledger = ledger or Ledger(db)
        self.cost = cost if cost is not None else settings.MESSAGE_GENERATION_COST
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None
            else settings.MESSAGE_GENERATION_TIMEOUT_SECONDS
        )

    async def generate(
        self,
        user: User,
        contact_id: UUID,
        purpose: MessagePurpose,
        tone: MessageTone,
        custom_prompt: Optional[str] = None
    ) -> Union[GeneratedMessage, GenerationFailed, InsufficientFunds, NotFound]:
        result = await self.db.execute(
            select(Contact).where(Contact.id == contact_id, Contact.user_id == user.id)
        )
        contact = result.scalar_one_or_none()
        if contact is None:
            return NotFound(resource="contact", resource_id=contact_id)

        context = MessageContext(
            contact_full_name=contact.full_name,
            contact_job_title=contact.job_title,
            contact_company_name=contact.company_name,
            sender_full_name=user.full_name,
            sender_job_title=user.role,
            sender_company_name=user.company_name,
            purpose=MessagePurpose(purpose),
            tone=MessageTone(tone),
            custom_prompt=custom_prompt
        )

        charge = await self.ledger.debit(
            user.id, self.cost, f"AI message generation for contact ID: {contact_id}"
        )
        if isinstance(charge, InsufficientFunds):
            return charge

        failure_reason: Optional[str] = None
        try:
            message = await asyncio.wait_for(
                self.generator.generate(context),
                timeout=self.timeout_seconds
            )
            if not message or not message.strip():
                failure_reason = "empty message"
        except ProviderError as e:
            logger.error(f"❌ Message generator {self.generator.name} failed for contact {contact_id}: {e}")
            failure_reason = f"generator error: {e}"
        except asyncio.TimeoutError:
            logger.error(f"❌ Message generator {self.generator.name} timed out after {self.timeout_seconds}s")
            failure_reason = "generator timed out"
        except Exception:
            await self.ledger.refund(user.id, self.cost, "message generation failed")
            raise

        if failure_reason is not None:
            remaining = await self.ledger.refund(user.id, self.cost, "message generation failed")
            return GenerationFailed(
                reason=failure_reason,
                credits_refunded=self.cost,
                credits_remaining=remaining
            )

        logger.info(f"✅ Generated {context.purpose.value} message for contact {contact_id} ({self.cost} credits)")
        return GeneratedMessage(
            message=message.strip(),
            credits_used=self.cost,
            credits_remaining=charge
        )
