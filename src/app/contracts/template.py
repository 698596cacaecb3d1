"""Speaker engagement agreement template and renderer.

generate_content() is a pure function of ContractTerms: no clock reads, no
randomness, so identical terms always render to identical text. The only
branch on event type is the logistics paragraph (virtual vs. in-person);
financial language is the same for every contract.

Section bodies are jinja2 templates compiled once at import. The environment
uses StrictUndefined so a missing variable fails loudly instead of rendering
an empty clause, and autoescape is off because the output is markdown.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from jinja2 import Environment, StrictUndefined

from src.app.contracts.schemas import ContractTerms

TEMPLATE_VERSION = "v1.0"
TEMPLATE_TITLE = "Speaker Engagement Agreement"

DEFAULT_PAYMENT_TERMS = "Payment due within 30 days of event completion"
DEFAULT_ADDITIONAL_TERMS = "No additional terms specified"

_VIRTUAL_MARKERS = ("virtual", "online", "remote", "webinar", "zoom")

_env = Environment(undefined=StrictUndefined, autoescape=False)

# (section id, heading, jinja2 body)
SECTIONS: list[tuple[str, str, str]] = [
    (
        "parties",
        "Parties",
        """This Speaker Engagement Agreement ("Agreement") is made on {{ contract_date }} between:

**Client:** {{ client_name }} ({{ client_company }})
**Email:** {{ client_email }}
**Phone:** {{ client_phone }}

**Speaker:** {{ speaker_name }}
**Email:** {{ speaker_email }}

**Event Details:**
- **Event Title:** {{ event_title }}
- **Event Date:** {{ event_date }}
- **Event Location:** {{ event_location }}
- **Event Type:** {{ event_type }}
- **Expected Attendees:** {{ attendee_count }}""",
    ),
    (
        "services",
        "Services to be Provided",
        """The Speaker will:

1. **Engagement:** Deliver a presentation or keynote on topics agreed with the Client
2. **Format:** Present in a {{ event_type }} format suited to the venue and audience
3. **Preparation:** Prepare material appropriate for an audience of {{ attendee_count }}

**Logistics:**
{% if is_virtual -%}
The engagement is delivered virtually. The Client will provide the streaming platform, a private access link for the Speaker and a technical check before the event. The Speaker will supply a stable connection, camera and microphone.
{%- else -%}
The engagement takes place in person at {{ event_location }}. The Client will provide a suitable venue with audio-visual equipment, a presenter microphone and on-site technical support.
{%- endif %}""",
    ),
    (
        "compensation",
        "Compensation and Payment Terms",
        """**Speaker Fee:** ${{ speaker_fee }} USD

**Payment Terms:**
{{ payment_terms }}

**Expenses:**
- Travel and accommodation, where applicable, are agreed separately
- Other reasonable expenses require prior written approval

**Total Contract Value:** ${{ total_amount }} USD""",
    ),
    (
        "obligations",
        "Speaker Obligations",
        """The Speaker agrees to:

1. **Preparation:** Prepare adequately for the agreed topic and audience
2. **Punctuality:** Be ready in time for setup and technical checks
3. **Professionalism:** Conduct the engagement to a professional standard
4. **Materials:** Share presentation materials in advance when requested
5. **Q&A:** Take part in a reasonable question and answer session
6. **Confidentiality:** Keep proprietary Client information confidential""",
    ),
    (
        "client_obligations",
        "Client Obligations",
        """The Client agrees to:

1. **Payment:** Pay according to the terms above
2. **Information:** Share event details and audience information in good time
3. **Support:** Provide technical support during the event
4. **Promotion:** Manage event promotion and attendee registration
5. **Communication:** Keep the Speaker informed of logistics changes""",
    ),
    (
        "cancellation",
        "Cancellation Policy",
        """**Cancellation by Client:**
- More than 30 days before the event: full refund less a 10% processing fee
- 15 to 30 days before the event: 50% of the speaker fee is retained
- Fewer than 15 days before the event: the full speaker fee is retained

**Cancellation by Speaker:**
- Permitted for illness, emergency or force majeure, with reasonable notice
- The Client is refunded in full if no suitable replacement speaker is provided

**Force Majeure:**
Neither party is liable for failure to perform caused by circumstances beyond its reasonable control.""",
    ),
    (
        "intellectual_property",
        "Intellectual Property",
        """**Speaker's IP:** The Speaker keeps all rights in presentation materials and methods.

**Recording:** The Client may record the presentation for internal use only with prior written consent.

**Attribution:** Any use of the Speaker's materials must credit the Speaker.""",
    ),
    (
        "liability",
        "Limitation of Liability",
        """Each party's liability under this Agreement is limited to the total amount payable under it.

Neither party is liable for indirect, incidental or consequential damages.""",
    ),
    (
        "general_terms",
        "General Terms",
        """**Governing Law:** The laws of the jurisdiction where the event takes place govern this Agreement.

**Entire Agreement:** This Agreement is the entire agreement between the parties.

**Amendments:** Changes must be in writing and accepted by both parties.

**Assignment:** Neither party may assign this Agreement without written consent.

**Additional Terms:**
{{ additional_terms }}""",
    ),
    (
        "signatures",
        "Electronic Signatures",
        """By signing, both parties accept the terms of this Agreement. Electronic signatures have the same effect as handwritten ones.

**Contract Number:** {{ contract_number }}
**Generated Date:** {{ contract_date }}

**CLIENT SIGNATURE:**
_________________________________
{{ client_signer_name }}
{{ client_company }}

**SPEAKER SIGNATURE:**
_________________________________
{{ speaker_name }}""",
    ),
]

_COMPILED_SECTIONS = [(heading, _env.from_string(body)) for _id, heading, body in SECTIONS]


def is_virtual_event(event_type: str | None, event_location: str | None) -> bool:
    """True when the event type or location marks the engagement as remote."""
    haystack = f"{event_type or ''} {event_location or ''}".lower()
    return any(marker in haystack for marker in _VIRTUAL_MARKERS)


def format_long_date(value: date | datetime | None) -> str:
    if value is None:
        return "TBD"
    return f"{value:%B} {value.day}, {value.year}"


def format_amount(value: float) -> str:
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"


def template_variables(terms: ContractTerms) -> dict[str, Any]:
    """Flatten ContractTerms into the values the section templates expect."""
    return {
        "contract_number": terms.contract_number,
        "contract_date": format_long_date(terms.contract_date),
        "client_name": terms.client_name,
        "client_email": terms.client_email or "N/A",
        "client_phone": terms.client_phone or "N/A",
        "client_company": terms.client_company or terms.client_name,
        "client_signer_name": terms.client_signer_name or terms.client_name,
        "event_title": terms.event_title,
        "event_date": format_long_date(terms.event_date),
        "event_location": terms.event_location or "TBD",
        "event_type": terms.event_type or "Speaking Engagement",
        "attendee_count": str(terms.attendee_count) if terms.attendee_count else "TBD",
        "speaker_name": terms.speaker_name or "TBD",
        "speaker_email": terms.speaker_email or "TBD",
        "speaker_fee": format_amount(terms.speaker_fee),
        "total_amount": format_amount(terms.total_amount),
        "payment_terms": terms.payment_terms or DEFAULT_PAYMENT_TERMS,
        "additional_terms": terms.additional_terms or DEFAULT_ADDITIONAL_TERMS,
        "is_virtual": is_virtual_event(terms.event_type, terms.event_location),
    }


def generate_content(terms: ContractTerms) -> str:
    """Render the full agreement as markdown text.

    Args:
        terms: Snapshot of the contract's parties, event and financial terms.

    Returns:
        The contract body. Identical ``terms`` always give identical output.

    Raises:
        jinja2.UndefinedError: If a section references a variable that
            template_variables() does not provide.
    """
    variables = template_variables(terms)
    parts = [f"# {TEMPLATE_TITLE}"]
    for heading, template in _COMPILED_SECTIONS:
        parts.append(f"## {heading}")
        parts.append(template.render(**variables))
    return "\n\n".join(parts) + "\n"
