"""DealPipeline tests: status rules, history notes and webhook ingestion."""

from __future__ import annotations

import pytest

from src.app.core.errors import InvalidTransitionError, NotFoundError
from src.app.deals.pipeline import (
    DealPipeline,
    company_from_headline,
    map_labels,
    should_track,
    validate_status_transition,
)
from src.app.deals.schemas import (
    DealPriority,
    DealStatus,
    DealUpdate,
    WebhookPayload,
)
from tests.conftest import make_deal


@pytest.fixture
def pipeline(deal_repo) -> DealPipeline:
    return DealPipeline(deal_repo)


def _payload(labels: list[str], **data) -> WebhookPayload:
    email = data.pop("email", None)
    return WebhookPayload.model_validate({
        "event": {"type": "conversation_updated", "email": email},
        "data": {
            "contact_first_name": "Jordan",
            "contact_last_name": "Reyes",
            "contact_headline": "Head of Events at Contoso",
            "conversation_latest_content": "Can we talk dates for October?",
            "kondo_labels": [{"kondo_label_name": name} for name in labels],
            **data,
        },
    })


# ── Transition Rules ─────────────────────────────────────────────────────────


class TestTransitions:
    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            (DealStatus.LEAD, DealStatus.WON),
            (DealStatus.QUALIFIED, DealStatus.PROPOSAL),
            (DealStatus.PROPOSAL, DealStatus.QUALIFIED),
            (DealStatus.NEGOTIATION, DealStatus.PROPOSAL),
            (DealStatus.WON, DealStatus.LOST),
            (DealStatus.LOST, DealStatus.LOST),
        ],
    )
    def test_allowed(self, from_status, to_status):
        validate_status_transition(from_status, to_status)

    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            (DealStatus.LOST, DealStatus.LEAD),
            (DealStatus.WON, DealStatus.NEGOTIATION),
            (DealStatus.NEGOTIATION, DealStatus.QUALIFIED),
            (DealStatus.QUALIFIED, DealStatus.LEAD),
        ],
    )
    def test_rejected(self, from_status, to_status):
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_status_transition(from_status, to_status)
        assert exc_info.value.from_status == from_status.value

    async def test_change_status_appends_history(self, pipeline, lead_deal):
        deal = await pipeline.change_status(lead_deal.id, DealStatus.QUALIFIED, "intro call")
        deal = await pipeline.change_status(deal.id, DealStatus.PROPOSAL)

        lines = deal.notes.split("\n\n")
        assert lines[0].endswith("Status: lead -> qualified (intro call)")
        assert lines[1].endswith("Status: qualified -> proposal")
        assert deal.last_contact is not None

    async def test_same_status_is_noop(self, pipeline, lead_deal):
        deal = await pipeline.change_status(lead_deal.id, DealStatus.LEAD)
        assert deal.notes is None

    async def test_lost_is_terminal(self, pipeline, lead_deal):
        await pipeline.mark_lost(lead_deal.id)
        with pytest.raises(InvalidTransitionError):
            await pipeline.change_status(lead_deal.id, DealStatus.QUALIFIED)

    async def test_mark_lost_records_reason(self, pipeline, lead_deal):
        deal = await pipeline.mark_lost(lead_deal.id, "budget cut")
        assert deal.status == DealStatus.LOST
        assert "(budget cut)" in deal.notes

    async def test_unknown_deal(self, pipeline):
        with pytest.raises(NotFoundError):
            await pipeline.change_status("0d7f0000-0000-4000-8000-000000000000", DealStatus.WON)


class TestUpdate:
    async def test_field_edit_keeps_status(self, pipeline, lead_deal):
        deal = await pipeline.update_deal(lead_deal.id, DealUpdate(attendee_count=650))
        assert deal.attendee_count == 650
        assert deal.status == DealStatus.LEAD
        assert deal.notes is None

    async def test_status_edit_is_validated(self, pipeline, deal_repo):
        won = await deal_repo.create_deal(make_deal(status=DealStatus.WON))
        with pytest.raises(InvalidTransitionError):
            await pipeline.update_deal(won.id, DealUpdate(status=DealStatus.LEAD))

    async def test_status_edit_with_reason(self, pipeline, lead_deal):
        deal = await pipeline.update_deal(
            lead_deal.id, DealUpdate(status=DealStatus.WON, status_reason="signed LOI")
        )
        assert deal.status == DealStatus.WON
        assert deal.notes.endswith("Status: lead -> won (signed LOI)")

    async def test_commission_is_recomputed(self, pipeline, lead_deal):
        deal = await pipeline.update_deal(
            lead_deal.id, DealUpdate(deal_value=40000, commission_percentage=20)
        )
        assert deal.commission_amount == 8000.0

    async def test_create_fills_commission_amount(self, pipeline):
        deal = await pipeline.create_deal(make_deal(commission_percentage=15))
        assert deal.commission_amount == 3750.0


# ── Webhook Labels ───────────────────────────────────────────────────────────


class TestLabels:
    @pytest.mark.parametrize(
        "labels,expected",
        [
            (["SQL"], (DealStatus.NEGOTIATION, DealPriority.MEDIUM)),
            (["MQL - High"], (DealStatus.QUALIFIED, DealPriority.HIGH)),
            (["mql - low"], (DealStatus.QUALIFIED, DealPriority.LOW)),
            (["Disqualified"], (DealStatus.LOST, DealPriority.MEDIUM)),
            (["MQL - Medium", "SQL"], (DealStatus.NEGOTIATION, DealPriority.MEDIUM)),
            (["Client"], (DealStatus.LEAD, DealPriority.MEDIUM)),
            ([], (DealStatus.LEAD, DealPriority.MEDIUM)),
        ],
    )
    def test_map_labels(self, labels, expected):
        assert map_labels(labels) == expected

    def test_should_track(self):
        assert should_track(["Client"])
        assert should_track([" sql "])
        assert not should_track(["Newsletter"])
        assert not should_track([])

    @pytest.mark.parametrize(
        "headline,company",
        [
            ("Head of Events at Contoso", "Contoso"),
            ("Founder at  Fabrikam at Large ", "Fabrikam at Large"),
            ("Independent consultant", None),
            (None, None),
            ("Speaker at ", None),
        ],
    )
    def test_company_from_headline(self, headline, company):
        assert company_from_headline(headline) == company


# ── Webhook Ingestion ────────────────────────────────────────────────────────


class TestWebhook:
    async def test_unlabelled_contact_is_ignored(self, pipeline, deal_repo):
        outcome = await pipeline.ingest_webhook(_payload(["Newsletter"]))
        assert outcome.action == "ignored"
        assert outcome.should_create_deal is False
        assert await deal_repo.list_deals() == []

    async def test_creates_deal(self, pipeline, deal_repo):
        outcome = await pipeline.ingest_webhook(
            _payload(["MQL - High"], email="jordan@contoso.test", contact_linkedin_uid="li-42")
        )

        assert outcome.action == "created"
        deal = await deal_repo.get_deal(outcome.deal_id)
        assert deal.client_name == "Jordan Reyes"
        assert deal.company == "Contoso"
        assert deal.status == DealStatus.QUALIFIED
        assert deal.priority == DealPriority.HIGH
        assert deal.source == "kondo_linkedin"
        assert deal.external_id == "li-42"
        assert deal.notes == "Can we talk dates for October?"

    async def test_unknown_company_placeholder(self, pipeline, deal_repo):
        outcome = await pipeline.ingest_webhook(_payload(["Client"], contact_headline="Speaker"))
        deal = await deal_repo.get_deal(outcome.deal_id)
        assert deal.company == "Unknown Company"
        assert deal.event_title == "Potential Event - Unknown Company"

    async def test_external_id_wins_over_email(self, pipeline, deal_repo):
        by_uid = await deal_repo.create_deal(make_deal(external_id="li-42", client_email=None))
        await deal_repo.create_deal(make_deal(client_email="jordan@contoso.test"))

        outcome = await pipeline.ingest_webhook(
            _payload(["SQL"], email="jordan@contoso.test", contact_linkedin_uid="li-42")
        )

        assert outcome.action == "updated"
        assert outcome.matched_by == "external_id"
        assert outcome.deal_id == by_uid.id

    async def test_email_match_backfills_external_id(self, pipeline, deal_repo):
        existing = await deal_repo.create_deal(make_deal(client_email="Jordan@Contoso.test"))

        outcome = await pipeline.ingest_webhook(
            _payload(["SQL"], email="jordan@contoso.test", contact_linkedin_uid="li-77")
        )

        deal = await deal_repo.get_deal(existing.id)
        assert outcome.matched_by == "email"
        assert deal.external_id == "li-77"
        assert deal.status == DealStatus.NEGOTIATION
        assert "Status: lead -> negotiation (webhook label)" in deal.notes
        assert deal.notes.endswith("Kondo Update: Can we talk dates for October?")

    async def test_fuzzy_match_on_name_and_company(self, pipeline, deal_repo):
        existing = await deal_repo.create_deal(
            make_deal(client_name="Jordan Reyes", company="Contoso", client_email=None)
        )
        outcome = await pipeline.ingest_webhook(_payload(["MQL - Low"]))
        assert outcome.matched_by == "fuzzy"
        assert outcome.deal_id == existing.id

    async def test_disqualified_replay_does_not_reopen(self, pipeline, deal_repo):
        first = await pipeline.ingest_webhook(
            _payload(["Disqualified"], contact_linkedin_uid="li-9")
        )
        assert first.status == DealStatus.LOST

        replay = await pipeline.ingest_webhook(_payload(["SQL"], contact_linkedin_uid="li-9"))

        deal = await deal_repo.get_deal(first.deal_id)
        assert replay.action == "updated"
        assert replay.details == {"skipped_status": "negotiation"}
        assert deal.status == DealStatus.LOST
        assert deal.notes.endswith("Kondo Update: Can we talk dates for October?")

    async def test_repeat_delivery_updates_in_place(self, pipeline, deal_repo):
        await pipeline.ingest_webhook(_payload(["Client"], contact_linkedin_uid="li-5"))
        await pipeline.ingest_webhook(_payload(["Client"], contact_linkedin_uid="li-5"))
        assert len(await deal_repo.list_deals()) == 1
