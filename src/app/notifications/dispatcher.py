"""NotificationDispatcher -- best-effort email fan-out for lifecycle events.

Each public method renders a template per recipient, hands it to the
configured EmailSender and returns one NotificationResult per recipient.
Delivery errors are logged, counted in Prometheus and reported in the
result; they are never raised, so a caller that has already committed a
status change cannot be turned into a failure by the email provider.
"""

from __future__ import annotations

import structlog

from src.app.core.monitoring import record_notification
from src.app.notifications import templates
from src.app.notifications.email import EmailNotConfiguredError, EmailSender
from src.app.notifications.models import (
    EmailMessage,
    NotificationResult,
    NotificationStatus,
)

logger = structlog.get_logger(__name__)


class NotificationDispatcher:
    """Sends lifecycle emails to clients, speakers and the operator.

    Args:
        sender: EmailSender implementation (Resend or logging stand-in).
        admin_email: Operator address for internal notifications.
        public_base_url: Base URL for links back into the admin UI.
    """

    def __init__(self, sender: EmailSender, admin_email: str, public_base_url: str) -> None:
        self._sender = sender
        self._admin_email = admin_email
        self._base_url = public_base_url.rstrip("/")

    async def _deliver(
        self,
        template: str,
        role: str,
        recipient: str | None,
        rendered: templates.RenderedEmail,
    ) -> NotificationResult:
        if not recipient:
            record_notification(template, NotificationStatus.SKIPPED.value)
            logger.info("notifications.no_recipient", template=template, role=role)
            return NotificationResult(
                recipient=None,
                role=role,
                template=template,
                status=NotificationStatus.SKIPPED,
                error="No email address on file",
            )

        message = EmailMessage(
            to=recipient,
            subject=rendered.subject,
            body_html=rendered.html,
            body_text=rendered.text,
            tags={"template": template},
        )
        try:
            sent = await self._sender.send(message)
        except EmailNotConfiguredError as exc:
            record_notification(template, NotificationStatus.SKIPPED.value)
            return NotificationResult(
                recipient=recipient,
                role=role,
                template=template,
                status=NotificationStatus.SKIPPED,
                error=str(exc),
            )
        except Exception as exc:
            record_notification(template, NotificationStatus.FAILED.value)
            logger.warning(
                "notifications.send_failed",
                template=template,
                role=role,
                error=str(exc),
                exc_info=True,
            )
            return NotificationResult(
                recipient=recipient,
                role=role,
                template=template,
                status=NotificationStatus.FAILED,
                error=str(exc),
            )

        record_notification(template, NotificationStatus.SENT.value)
        return NotificationResult(
            recipient=recipient,
            role=role,
            template=template,
            status=NotificationStatus.SENT,
            message_id=sent.message_id,
        )

    # ── Contracts ──────────────────────────────────────────────────────────

    async def contract_sent(
        self,
        *,
        contract_number: str,
        event_title: str,
        event_date: str | None,
        total_amount: float | None,
        client_name: str,
        client_email: str | None,
        client_signing_url: str,
        speaker_name: str | None,
        speaker_email: str | None,
        speaker_signing_url: str,
    ) -> list[NotificationResult]:
        """Send each party their own signing link."""
        results = []
        for role, name, email, url in (
            ("client", client_name, client_email, client_signing_url),
            ("speaker", speaker_name or "Speaker", speaker_email, speaker_signing_url),
        ):
            rendered = templates.contract_signing_request(
                recipient_name=name,
                role=role,
                contract_number=contract_number,
                event_title=event_title,
                event_date=event_date,
                total_amount=total_amount,
                signing_url=url,
            )
            results.append(
                await self._deliver("contract_signing_request", role, email, rendered)
            )
        return results

    async def contract_executed(
        self,
        *,
        contract_number: str,
        event_title: str,
        client_name: str,
        speaker_name: str | None,
    ) -> list[NotificationResult]:
        rendered = templates.contract_fully_executed(
            contract_number=contract_number,
            event_title=event_title,
            client_name=client_name,
            speaker_name=speaker_name,
        )
        return [await self._deliver("contract_fully_executed", "admin", self._admin_email, rendered)]

    # ── Firm Offers ────────────────────────────────────────────────────────

    async def firm_offer_submitted(
        self,
        *,
        offer_id: str,
        company_name: str | None,
        event_name: str | None,
        event_date: str | None,
    ) -> list[NotificationResult]:
        rendered = templates.firm_offer_submitted(
            company_name=company_name,
            event_name=event_name,
            event_date=event_date,
            admin_url=f"{self._base_url}/admin/firm-offers/{offer_id}",
        )
        return [await self._deliver("firm_offer_submitted", "admin", self._admin_email, rendered)]

    async def firm_offer_to_speaker(
        self,
        *,
        speaker_email: str | None,
        speaker_name: str | None,
        event_name: str | None,
        event_date: str | None,
        speaker_fee: float | None,
        review_url: str,
    ) -> list[NotificationResult]:
        rendered = templates.firm_offer_review_request(
            speaker_name=speaker_name,
            event_name=event_name,
            event_date=event_date,
            speaker_fee=speaker_fee,
            review_url=review_url,
        )
        return [await self._deliver("firm_offer_review_request", "speaker", speaker_email, rendered)]

    async def firm_offer_speaker_response(
        self,
        *,
        speaker_name: str | None,
        event_name: str | None,
        confirmed: bool,
        speaker_notes: str | None,
    ) -> list[NotificationResult]:
        rendered = templates.firm_offer_speaker_response(
            speaker_name=speaker_name,
            event_name=event_name,
            confirmed=confirmed,
            speaker_notes=speaker_notes,
        )
        return [
            await self._deliver("firm_offer_speaker_response", "admin", self._admin_email, rendered)
        ]

    # ── Proposals ──────────────────────────────────────────────────────────

    async def proposal_decision(
        self,
        *,
        proposal_number: str,
        event_title: str | None,
        accepted: bool,
        decided_by: str | None,
        note: str | None,
    ) -> list[NotificationResult]:
        rendered = templates.proposal_decision(
            proposal_number=proposal_number,
            event_title=event_title,
            accepted=accepted,
            decided_by=decided_by,
            note=note,
        )
        return [await self._deliver("proposal_decision", "admin", self._admin_email, rendered)]
