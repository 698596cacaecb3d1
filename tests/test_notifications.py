"""Tests for the Resend sender and the notification dispatcher."""

from __future__ import annotations

import json

import httpx
import pytest

from src.app.config import Settings
from src.app.notifications.dispatcher import NotificationDispatcher
from src.app.notifications.email import (
    EmailDeliveryError,
    LoggingEmailSender,
    ResendEmailSender,
    build_email_sender,
)
from src.app.notifications.models import EmailMessage, NotificationStatus
from src.app.notifications.templates import contract_signing_request, proposal_decision
from tests.conftest import ADMIN_EMAIL, PUBLIC_BASE_URL
from tests.fakes import FailingEmailSender, RecordingEmailSender

MESSAGE = EmailMessage(
    to="dana@northwind.test",
    subject="Your contract is ready",
    body_html="<p>Hello</p>",
    body_text="Hello",
    tags={"template": "contract_signing_request"},
)


def _sender(handler) -> ResendEmailSender:
    return ResendEmailSender(
        api_key="re_test",
        from_address="Bookings <bookings@agency.test>",
        timeout=1.0,
        transport=httpx.MockTransport(handler),
    )


# ── ResendEmailSender ────────────────────────────────────────────────────────


class TestResendEmailSender:
    async def test_posts_message(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": "em_123"})

        result = await _sender(handler).send(MESSAGE)

        assert result.message_id == "em_123"
        assert result.provider == "resend"
        request = seen[0]
        assert request.headers["authorization"] == "Bearer re_test"
        payload = json.loads(request.content)
        assert payload["to"] == ["dana@northwind.test"]
        assert payload["from"] == "Bookings <bookings@agency.test>"
        assert payload["text"] == "Hello"
        assert payload["tags"] == [{"name": "template", "value": "contract_signing_request"}]

    async def test_provider_error(self):
        sender = _sender(lambda request: httpx.Response(500, text="upstream broke"))
        with pytest.raises(EmailDeliveryError, match="500"):
            await sender.send(MESSAGE)

    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(EmailDeliveryError, match="timed out"):
            await _sender(handler).send(MESSAGE)

    async def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(EmailDeliveryError, match="request failed"):
            await _sender(handler).send(MESSAGE)


def test_build_email_sender_picks_provider():
    assert isinstance(build_email_sender(Settings(RESEND_API_KEY="re_live")), ResendEmailSender)
    assert isinstance(build_email_sender(Settings(RESEND_API_KEY="")), LoggingEmailSender)


# ── NotificationDispatcher ───────────────────────────────────────────────────


class TestDispatcher:
    async def test_contract_sent_gives_each_party_their_own_link(self, dispatcher, email_sender):
        results = await dispatcher.contract_sent(
            contract_number="CTR-20260302-0001",
            event_title="Northwind Leadership Summit",
            event_date="2026-06-18",
            total_amount=25000.0,
            client_name="Dana Whitfield",
            client_email="dana@northwind.test",
            client_signing_url="https://book.agency.test/contracts/sign/CLIENTTOKEN",
            speaker_name="Dr. Maya Chen",
            speaker_email="maya@speakers.test",
            speaker_signing_url="https://book.agency.test/contracts/sign/SPEAKERTOKEN",
        )

        assert [r.status for r in results] == [NotificationStatus.SENT] * 2
        client_mail, speaker_mail = email_sender.sent
        assert "CLIENTTOKEN" in client_mail.body_html
        assert "SPEAKERTOKEN" not in client_mail.body_html
        assert "SPEAKERTOKEN" in speaker_mail.body_html
        assert "CLIENTTOKEN" not in speaker_mail.body_html

    async def test_missing_recipient_is_skipped(self, dispatcher, email_sender):
        results = await dispatcher.firm_offer_to_speaker(
            speaker_email=None,
            speaker_name="Dr. Maya Chen",
            event_name="Summit",
            event_date=None,
            speaker_fee=None,
            review_url=f"{PUBLIC_BASE_URL}/speaker-review/x",
        )
        assert results[0].status == NotificationStatus.SKIPPED
        assert email_sender.sent == []

    async def test_delivery_failure_is_reported_not_raised(self):
        failing = FailingEmailSender()
        dispatcher = NotificationDispatcher(failing, ADMIN_EMAIL, PUBLIC_BASE_URL)

        results = await dispatcher.contract_executed(
            contract_number="CTR-20260302-0001",
            event_title="Summit",
            client_name="Dana Whitfield",
            speaker_name=None,
        )

        assert results[0].status == NotificationStatus.FAILED
        assert "timed out" in results[0].error
        assert failing.attempts == 1

    async def test_unconfigured_provider_is_skipped(self):
        dispatcher = NotificationDispatcher(LoggingEmailSender(), ADMIN_EMAIL, PUBLIC_BASE_URL)
        results = await dispatcher.proposal_decision(
            proposal_number="PROP-20260302-0001",
            event_title="Summit",
            accepted=True,
            decided_by="Dana",
            note=None,
        )
        assert results[0].status == NotificationStatus.SKIPPED
        assert results[0].recipient == ADMIN_EMAIL

    async def test_admin_links_use_public_base_url(self):
        sender = RecordingEmailSender()
        dispatcher = NotificationDispatcher(sender, ADMIN_EMAIL, PUBLIC_BASE_URL + "/")
        await dispatcher.firm_offer_submitted(
            offer_id="offer-1", company_name="Northwind", event_name="Summit", event_date=None
        )
        assert f"{PUBLIC_BASE_URL}/admin/firm-offers/offer-1" in sender.sent[0].body_html


def test_templates_escape_names():
    rendered = contract_signing_request(
        recipient_name="<script>alert(1)</script>",
        role="client",
        contract_number="CTR-1",
        event_title="Summit & Gala",
        event_date=None,
        total_amount=None,
        signing_url="https://book.agency.test/contracts/sign/abc",
    )
    assert "<script>" not in rendered.html
    assert "Summit &amp; Gala" in rendered.html


def test_text_body_is_not_escaped():
    rendered = contract_signing_request(
        recipient_name="Dana",
        role="speaker",
        contract_number="CTR-1",
        event_title="Summit & Gala",
        event_date="2026-06-18",
        total_amount=25000.0,
        signing_url="https://book.agency.test/contracts/sign/abc",
    )
    assert "Summit & Gala (2026-06-18)" in rendered.text
    assert "as the speaker" in rendered.text
    assert "Total: $25,000.00" in rendered.text
    assert rendered.text.endswith("Review and sign: https://book.agency.test/contracts/sign/abc\n")
    assert 'href="https://book.agency.test/contracts/sign/abc"' in rendered.html


@pytest.mark.parametrize("note", [None, "Budget moved to Q3"])
def test_optional_note(note):
    rendered = proposal_decision(
        proposal_number="PROP-1",
        event_title=None,
        accepted=False,
        decided_by=None,
        note=note,
    )
    assert rendered.subject == "Proposal PROP-1 rejected"
    assert "Proposal PROP-1 for the event was rejected." in rendered.text
    assert ("Budget moved to Q3" in rendered.html) is bool(note)
    assert ("Budget moved to Q3" in rendered.text) is bool(note)
