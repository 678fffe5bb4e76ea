# tests/services/test_message_generation_service.py
"""
Tests for the credit-gated AI message writer

Coverage:
- Ownership checked before any charge
- Successful generation costs MESSAGE_GENERATION_COST
- Refund on generator error / timeout / empty text / crash
- Gemini REST client request shape and response parsing
- Prompt rendering per purpose

Run with: pytest tests/services/test_message_generation_service.py -v
"""

import asyncio
import json
import pytest
import httpx
from uuid import uuid4
from unittest.mock import AsyncMock, Mock

from app.config import settings
from app.models import Contact
from app.schemas import MessagePurpose, MessageTone
from app.services.errors import NotFound, ProviderError
from app.services.ledger import InsufficientFunds, Ledger
from app.services.message_generation_service import (
    GeneratedMessage,
    GenerationFailed,
    MessageGenerationService,
)
from app.services.message_generator import GeminiMessageGenerator, MessageContext, build_prompt


# ============================================================================
# FIXTURES
# ============================================================================

def fake_generator(text="Hi Jane, quick intro.", side_effect=None):
    generator = Mock()
    generator.name = "fake-writer"
    generator.generate = AsyncMock(return_value=text, side_effect=side_effect)
    return generator


def make_service(db, generator, timeout_seconds=5.0):
    return MessageGenerationService(db, generator, cost=3, timeout_seconds=timeout_seconds)


@pytest.fixture
def contact_factory(db):
    async def _create(user_id, **fields):
        contact = Contact(user_id=user_id, full_name=fields.pop("full_name", "Jane Doe"), **fields)
        db.add(contact)
        await db.commit()
        return contact
    return _create


def context(**overrides):
    values = dict(
        contact_full_name="Jane Doe",
        sender_full_name="Sam Seller",
        purpose=MessagePurpose.INTRODUCTION,
        tone=MessageTone.PROFESSIONAL,
    )
    values.update(overrides)
    return MessageContext(**values)


# ============================================================================
# TEST: Credit gate
# ============================================================================

class TestMessageGeneration:

    @pytest.mark.asyncio
    async def test_generate_charges_cost(self, db, user, contact_factory):
        contact = await contact_factory(user.id, job_title="CTO", company_name="Acme")
        generator = fake_generator("  Hi Jane, quick intro.  ")

        outcome = await make_service(db, generator).generate(
            user, contact.id, MessagePurpose.INTRODUCTION, MessageTone.FRIENDLY
        )

        assert isinstance(outcome, GeneratedMessage)
        assert outcome.message == "Hi Jane, quick intro."
        assert outcome.credits_used == 3
        assert outcome.credits_remaining == 97

        sent = generator.generate.await_args.args[0]
        assert sent.contact_job_title == "CTO"
        assert sent.contact_company_name == "Acme"
        assert sent.sender_full_name == "Test User"

        history = await Ledger(db).history(user.id)
        assert history[0].amount == -3
        assert history[0].description == f"AI message generation for contact ID: {contact.id}"

    @pytest.mark.asyncio
    async def test_missing_contact_charges_nothing(self, db, user):
        generator = fake_generator()

        outcome = await make_service(db, generator).generate(
            user, uuid4(), MessagePurpose.FOLLOWUP, MessageTone.CASUAL
        )

        assert isinstance(outcome, NotFound)
        generator.generate.assert_not_called()
        assert await Ledger(db).balance(user.id) == 100

    @pytest.mark.asyncio
    async def test_foreign_contact_is_not_found(self, db, user, other_user, contact_factory):
        contact = await contact_factory(other_user.id)

        outcome = await make_service(db, fake_generator()).generate(
            user, contact.id, MessagePurpose.FOLLOWUP, MessageTone.CASUAL
        )

        assert isinstance(outcome, NotFound)

    @pytest.mark.asyncio
    async def test_insufficient_funds_skips_generator(self, db, make_user, contact_factory):
        poor = await make_user(credits=2)
        contact = await contact_factory(poor.id)
        generator = fake_generator()

        outcome = await make_service(db, generator).generate(
            poor, contact.id, MessagePurpose.PROPOSAL, MessageTone.FORMAL
        )

        assert isinstance(outcome, InsufficientFunds)
        generator.generate.assert_not_called()

    @pytest.mark.asyncio
    async def test_generator_error_refunds(self, db, user, contact_factory):
        contact = await contact_factory(user.id)
        generator = fake_generator(side_effect=ProviderError("Gemini returned 503"))

        outcome = await make_service(db, generator).generate(
            user, contact.id, MessagePurpose.INTRODUCTION, MessageTone.PROFESSIONAL
        )

        assert isinstance(outcome, GenerationFailed)
        assert outcome.credits_refunded == 3
        assert outcome.credits_remaining == 100
        assert "503" in outcome.reason

    @pytest.mark.asyncio
    async def test_empty_text_refunds(self, db, user, contact_factory):
        contact = await contact_factory(user.id)

        outcome = await make_service(db, fake_generator("   ")).generate(
            user, contact.id, MessagePurpose.INTRODUCTION, MessageTone.PROFESSIONAL
        )

        assert isinstance(outcome, GenerationFailed)
        assert outcome.reason == "empty message"
        assert await Ledger(db).balance(user.id) == 100

    @pytest.mark.asyncio
    async def test_timeout_refunds(self, db, user, contact_factory):
        contact = await contact_factory(user.id)

        async def hang(*args, **kwargs):
            await asyncio.sleep(10)

        outcome = await make_service(db, fake_generator(side_effect=hang), timeout_seconds=0.05).generate(
            user, contact.id, MessagePurpose.INTRODUCTION, MessageTone.PROFESSIONAL
        )

        assert isinstance(outcome, GenerationFailed)
        assert outcome.reason == "generator timed out"
        assert await Ledger(db).balance(user.id) == 100

    @pytest.mark.asyncio
    async def test_unexpected_error_refunds_then_raises(self, db, user, contact_factory):
        contact = await contact_factory(user.id)

        with pytest.raises(KeyError):
            await make_service(db, fake_generator(side_effect=KeyError("candidates"))).generate(
                user, contact.id, MessagePurpose.INTRODUCTION, MessageTone.PROFESSIONAL
            )

        assert await Ledger(db).balance(user.id) == 100


# ============================================================================
# TEST: Gemini client
# ============================================================================

class TestGeminiMessageGenerator:

    @pytest.mark.asyncio
    async def test_request_and_response(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["key"] = request.headers["x-goog-api-key"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"candidates": [{
                "content": {"parts": [{"text": "Hi Jane,"}, {"text": " let's talk."}]}
            }]})

        generator = GeminiMessageGenerator(
            api_key="g-key",
            model="gemini-test",
            base_url="https://gemini.test/v1beta",
            transport=httpx.MockTransport(handler)
        )

        text = await generator.generate(context())

        assert text == "Hi Jane, let's talk."
        assert seen["url"] == "https://gemini.test/v1beta/models/gemini-test:generateContent"
        assert seen["key"] == "g-key"
        assert "Jane Doe" in seen["body"]["contents"][0]["parts"][0]["text"]

    @pytest.mark.asyncio
    async def test_http_error_raises(self):
        generator = GeminiMessageGenerator(
            api_key="g-key",
            transport=httpx.MockTransport(lambda request: httpx.Response(429, text="quota"))
        )

        with pytest.raises(ProviderError):
            await generator.generate(context())

    @pytest.mark.asyncio
    async def test_no_candidates_raises(self):
        generator = GeminiMessageGenerator(
            api_key="g-key",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"candidates": []}))
        )

        with pytest.raises(ProviderError):
            await generator.generate(context())

    @pytest.mark.asyncio
    async def test_missing_key_raises(self, monkeypatch):
        monkeypatch.setattr(settings, "GEMINI_API_KEY", None)

        with pytest.raises(ProviderError):
            await GeminiMessageGenerator().generate(context())


# ============================================================================
# TEST: Prompt
# ============================================================================

class TestPrompt:

    def test_optional_details_only_when_known(self):
        prompt = build_prompt(context(contact_job_title="CTO"))

        assert "- Job title: CTO" in prompt
        assert "- Company:" not in prompt
        assert "Tone: professional" in prompt

    def test_custom_instructions_included(self):
        prompt = build_prompt(context(purpose=MessagePurpose.CUSTOM, custom_prompt="Ask about the Q3 launch"))

        assert "Ask about the Q3 launch" in prompt

    def test_proposal_falls_back_to_generic_company(self):
        prompt = build_prompt(context(purpose=MessagePurpose.PROPOSAL))

        assert "the recipient's company" in prompt
