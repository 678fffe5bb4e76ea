# backend/app/services/message_generator.py
"""
AI outreach message writers.

A generator turns a MessageContext (who writes to whom, why, in which tone)
into message text. Transport failures and unusable responses raise
ProviderError; credits are handled by MessageGenerationService.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from app.config import settings
from app.schemas import MessagePurpose, MessageTone
from app.services.errors import ProviderError

logger = logging.getLogger(__name__)


@dataclass
class MessageContext:
    contact_full_name: str
    sender_full_name: str
    purpose: MessagePurpose
    tone: MessageTone
    contact_job_title: Optional[str] = None
    contact_company_name: Optional[str] = None
    sender_job_title: Optional[str] = None
    sender_company_name: Optional[str] = None
    custom_prompt: Optional[str] = None


PURPOSE_INSTRUCTIONS = {
    MessagePurpose.INTRODUCTION: (
        "Write a concise introduction message (less than 200 words) that introduces "
        "{sender} to {contact}, briefly says why they are reaching out and ends with "
        "a soft call to action. It must not sound templated."
    ),
    MessagePurpose.FOLLOWUP: (
        "Write a brief follow-up message (less than 200 words) that references a "
        "previous interaction, politely checks in with {contact} and proposes a "
        "gentle next step."
    ),
    MessagePurpose.PROPOSAL: (
        "Write a proposal message (less than 300 words) addressed to {contact} that "
        "outlines a business opportunity, highlights one or two benefits for "
        "{company} and ends with a clear call to action."
    ),
    MessagePurpose.CUSTOM: (
        "Write a message addressed to {contact} following these instructions:\n{custom}"
    ),
}

TONE_GUIDANCE = {
    MessageTone.PROFESSIONAL: "clear, courteous business language without slang",
    MessageTone.FRIENDLY: "warm, conversational language with a personal touch",
    MessageTone.CASUAL: "relaxed language, contractions and simple sentences",
    MessageTone.FORMAL: "traditional business language, no contractions or colloquialisms",
    MessageTone.PERSUASIVE: "benefit-led language with mild urgency, never pushy",
    MessageTone.ENTHUSIASTIC: "energetic, positive language that stays credible",
}


def build_prompt(context: MessageContext) -> str:
    """Render the writer prompt for a context."""
    lines = [
        "You are helping a sales professional write a personalized message to a potential contact.",
        "",
        "Contact details:",
        f"- Name: {context.contact_full_name}",
    ]
    if context.contact_job_title:
        lines.append(f"- Job title: {context.contact_job_title}")
    if context.contact_company_name:
        lines.append(f"- Company: {context.contact_company_name}")

    lines += ["", "Sender details:", f"- Name: {context.sender_full_name}"]
    if context.sender_job_title:
        lines.append(f"- Job title: {context.sender_job_title}")
    if context.sender_company_name:
        lines.append(f"- Company: {context.sender_company_name}")

    instructions = PURPOSE_INSTRUCTIONS[context.purpose].format(
        sender=context.sender_full_name,
        contact=context.contact_full_name,
        company=context.contact_company_name or "the recipient's company",
        custom=context.custom_prompt or "",
    )
    lines += [
        "",
        instructions,
        f"Tone: {context.tone.value} ({TONE_GUIDANCE[context.tone]}).",
        f"Write in the first person as {context.sender_full_name}. Return only the message body.",
    ]
    return "\n".join(lines)


class MessageGenerator(ABC):
    """Base class for message writers."""

    name: str = "base"

    @abstractmethod
    async def generate(self, context: MessageContext) -> str:
        """
        Write one message.

        Raises:
            ProviderError: transport failure or a response without text
        """
        pass


class GeminiMessageGenerator(MessageGenerator):
    """Google Gemini generateContent over REST."""

    name = "gemini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_key = api_key or settings.GEMINI_API_KEY
        self.model = model or settings.GEMINI_MODEL
        self.base_url = (base_url or settings.GEMINI_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.MESSAGE_GENERATION_TIMEOUT_SECONDS
        self.transport = transport
        self.headers = {
            "x-goog-api-key": self.api_key or "",
            "Content-Type": "application/json",
        }

    async def generate(self, context: MessageContext) -> str:
        if not self.api_key:
            raise ProviderError("GEMINI_API_KEY is not configured", provider=self.name)

        body = {"contents": [{"role": "user", "parts": [{"text": build_prompt(context)}]}]}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    f"{self.base_url}/models/{self.model}:generateContent",
                    headers=self.headers,
                    json=body
                )
        except httpx.HTTPError as e:
            raise ProviderError(f"Gemini request failed: {e}", provider=self.name) from e

        if response.status_code >= 400:
            raise ProviderError(
                f"Gemini returned {response.status_code}: {response.text[:200]}",
                provider=self.name,
                status_code=response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(f"Gemini returned invalid JSON: {e}", provider=self.name) from e

        text = self._extract_text(data)
        if not text:
            raise ProviderError("Gemini returned no message text", provider=self.name)

        logger.info(f"✍️ Gemini wrote a {context.purpose.value} message for {context.contact_full_name}")
        return text

    @staticmethod
    def _extract_text(data: Any) -> Optional[str]:
        if not isinstance(data, dict):
            return None
        candidates = data.get("candidates") or []
        if not candidates:
            return None
        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts if isinstance(part, dict))
        return text.strip() or None


def create_message_generator() -> MessageGenerator:
    return GeminiMessageGenerator()
