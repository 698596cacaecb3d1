"""Email templates for contract, firm offer and proposal notifications.

Each message has an ``.html`` and a ``.txt`` jinja2 template in one
DictLoader environment. ``select_autoescape`` escapes the HTML variants only,
so names and event titles typed by clients cannot inject markup while the
plain-text bodies stay readable. Templates never include a token other than
the one meant for that recipient.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from jinja2 import DictLoader, Environment, StrictUndefined, select_autoescape


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


def _money(amount: float | None) -> str:
    return f"${amount:,.2f}" if amount is not None else "TBD"


_BUTTON_STYLE = (
    "display:inline-block;padding:12px 24px;background:#1E68C6;"
    "color:#ffffff;text-decoration:none;border-radius:6px"
)

_TEMPLATES: dict[str, str] = {
    "layout.html": (
        '<div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto">'
        "<h2>{{ heading }}</h2>"
        "{% block body %}{% endblock %}"
        "{% if action_url %}"
        '<p><a href="{{ action_url }}" style="' + _BUTTON_STYLE + '">{{ action_label }}</a></p>'
        "{% endif %}"
        "</div>"
    ),
    # ── Contracts ──
    "contract_signing_request.html": """{% extends "layout.html" %}{% block body %}
<p>Hi {{ recipient_name }},</p>
<p>The speaking agreement for <strong>{{ event_title }}</strong> ({{ event_date or "date TBD" }}) is ready for your review as the {{ party }}.</p>
<p>Contract number: {{ contract_number }}<br>Total: {{ total_amount|money }}</p>
<p>This link is personal to you. Please do not forward it.</p>
{% endblock %}""",
    "contract_signing_request.txt": """Hi {{ recipient_name }},

The speaking agreement for {{ event_title }} ({{ event_date or "date TBD" }}) is ready for your review as the {{ party }}.
Contract number: {{ contract_number }}
Total: {{ total_amount|money }}

Review and sign: {{ action_url }}
""",
    "contract_fully_executed.html": """{% extends "layout.html" %}{% block body %}
<p>Both parties have signed contract <strong>{{ contract_number }}</strong>.</p>
<p>Client: {{ client_name }}<br>Speaker: {{ speaker_name or "TBD" }}</p>
{% endblock %}""",
    "contract_fully_executed.txt": """Both parties have signed contract {{ contract_number }} for {{ event_title }}.
Client: {{ client_name }}
Speaker: {{ speaker_name or "TBD" }}
""",
    # ── Firm offers ──
    "firm_offer_submitted.html": """{% extends "layout.html" %}{% block body %}
<p>{{ company_name or "A client" }} completed the firm offer for <strong>{{ event }}</strong> ({{ event_date or "date TBD" }}).</p>
<p>Review the details and forward it to the speaker when ready.</p>
{% endblock %}""",
    "firm_offer_submitted.txt": """{{ company_name or "A client" }} completed the firm offer for {{ event }} ({{ event_date or "date TBD" }}).
Review: {{ action_url }}
""",
    "firm_offer_review_request.html": """{% extends "layout.html" %}{% block body %}
<p>Hi {{ speaker_name or "there" }},</p>
<p>You have a firm offer for <strong>{{ event }}</strong> ({{ event_date or "date TBD" }}). Fee: {{ speaker_fee|money }}.</p>
<p>Please review the event details and confirm or decline.</p>
{% endblock %}""",
    "firm_offer_review_request.txt": """Hi {{ speaker_name or "there" }},

You have a firm offer for {{ event }} ({{ event_date or "date TBD" }}). Fee: {{ speaker_fee|money }}.

Review and respond: {{ action_url }}
""",
    "firm_offer_speaker_response.html": """{% extends "layout.html" %}{% block body %}
<p>{{ speaker_name or "The speaker" }} has <strong>{{ outcome }}</strong> the firm offer for {{ event }}.</p>
{% if speaker_notes %}<p>Notes: {{ speaker_notes }}</p>{% endif %}
{% endblock %}""",
    "firm_offer_speaker_response.txt": """{{ speaker_name or "The speaker" }} has {{ outcome }} the firm offer for {{ event }}.
{% if speaker_notes %}
Notes: {{ speaker_notes }}
{% endif %}
""",
    # ── Proposals ──
    "proposal_decision.html": """{% extends "layout.html" %}{% block body %}
<p>Proposal <strong>{{ proposal_number }}</strong> for {{ event_title or "the event" }} was {{ outcome }}{% if decided_by %} by {{ decided_by }}{% endif %}.</p>
{% if note %}<p>{{ note }}</p>{% endif %}
{% endblock %}""",
    "proposal_decision.txt": """Proposal {{ proposal_number }} for {{ event_title or "the event" }} was {{ outcome }}{% if decided_by %} by {{ decided_by }}{% endif %}.
{% if note %}
{{ note }}
{% endif %}
""",
}

_env = Environment(
    loader=DictLoader(_TEMPLATES),
    autoescape=select_autoescape(["html"]),
    undefined=StrictUndefined,
    trim_blocks=True,
    keep_trailing_newline=True,
)
_env.filters["money"] = _money


def _render(
    name: str,
    *,
    subject: str,
    heading: str,
    action_url: str | None = None,
    action_label: str | None = None,
    **context: Any,
) -> RenderedEmail:
    context.update(heading=heading, action_url=action_url, action_label=action_label or "Open")
    return RenderedEmail(
        subject=subject,
        html=_env.get_template(f"{name}.html").render(**context),
        text=_env.get_template(f"{name}.txt").render(**context),
    )


def contract_signing_request(
    *,
    recipient_name: str,
    role: str,
    contract_number: str,
    event_title: str,
    event_date: str | None,
    total_amount: float | None,
    signing_url: str,
) -> RenderedEmail:
    """Ask a client or speaker to review and sign a contract."""
    return _render(
        "contract_signing_request",
        subject=f"Contract {contract_number} ready for your signature - {event_title}",
        heading="Your contract is ready",
        action_url=signing_url,
        action_label="Review & Sign",
        recipient_name=recipient_name,
        party="client" if role == "client" else "speaker",
        contract_number=contract_number,
        event_title=event_title,
        event_date=event_date,
        total_amount=total_amount,
    )


def contract_fully_executed(
    *,
    contract_number: str,
    event_title: str,
    client_name: str,
    speaker_name: str | None,
) -> RenderedEmail:
    return _render(
        "contract_fully_executed",
        subject=f"Contract {contract_number} fully executed - {event_title}",
        heading="Contract executed",
        contract_number=contract_number,
        event_title=event_title,
        client_name=client_name,
        speaker_name=speaker_name,
    )


def firm_offer_submitted(
    *,
    company_name: str | None,
    event_name: str | None,
    event_date: str | None,
    admin_url: str,
) -> RenderedEmail:
    event = event_name or "Unnamed event"
    return _render(
        "firm_offer_submitted",
        subject=f"Firm offer submitted - {event}",
        heading="Firm offer submitted",
        action_url=admin_url,
        action_label="Review Firm Offer",
        company_name=company_name,
        event=event,
        event_date=event_date,
    )


def firm_offer_review_request(
    *,
    speaker_name: str | None,
    event_name: str | None,
    event_date: str | None,
    speaker_fee: float | None,
    review_url: str,
) -> RenderedEmail:
    event = event_name or "an upcoming event"
    return _render(
        "firm_offer_review_request",
        subject=f"Booking confirmation needed - {event}",
        heading="Firm offer for your review",
        action_url=review_url,
        action_label="Review Offer",
        speaker_name=speaker_name,
        event=event,
        event_date=event_date,
        speaker_fee=speaker_fee,
    )


def firm_offer_speaker_response(
    *,
    speaker_name: str | None,
    event_name: str | None,
    confirmed: bool,
    speaker_notes: str | None,
) -> RenderedEmail:
    event = event_name or "Unnamed event"
    outcome = "confirmed" if confirmed else "declined"
    return _render(
        "firm_offer_speaker_response",
        subject=f"Speaker {outcome} - {event}",
        heading=f"Speaker {outcome}",
        speaker_name=speaker_name,
        event=event,
        outcome=outcome,
        speaker_notes=speaker_notes,
    )


def proposal_decision(
    *,
    proposal_number: str,
    event_title: str | None,
    accepted: bool,
    decided_by: str | None,
    note: str | None,
) -> RenderedEmail:
    outcome = "accepted" if accepted else "rejected"
    return _render(
        "proposal_decision",
        subject=f"Proposal {proposal_number} {outcome}",
        heading=f"Proposal {outcome}",
        proposal_number=proposal_number,
        event_title=event_title,
        outcome=outcome,
        decided_by=decided_by,
        note=note,
    )
