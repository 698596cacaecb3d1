"""Flat intake form <-> typed firm offer sections.

The client-facing form posts one flat object (``company_name``,
``billing_contact_email``, ``audience_size`` ...). build_sections() regroups
it into the eight typed sections, coercing form strings on the way:

- empty or whitespace-only strings become None
- numeric strings become int / float for numeric fields
- "true"/"false"/"yes"/"no"/"1"/"0"/"on"/"off" become bools for flag fields

flatten() is the inverse used to pre-fill the form, and
missing_required_fields() decides whether an intake may be submitted.
"""

from __future__ import annotations

import types
import typing
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

from src.app.core.errors import ValidationError
from src.app.firm_offers.schemas import SECTION_MODELS, Contact, FirmOfferSections

CONTACT_FIELDS = ("billing_contact", "logistics_contact")

# Alternate spellings accepted from older form versions
FIELD_ALIASES = {
    "billing_address": "billing_contact_address",
    "program_length_minutes": "program_length",
    "qa_length_minutes": "qa_length",
}

REQUIRED_FIELDS = (
    "company_name",
    "event_name",
    "event_date",
    "billing_contact_name",
    "billing_contact_email",
    "logistics_contact_name",
    "logistics_contact_email",
    "speaker_name",
    "program_topic",
    "speaker_fee",
)

_TRUE_STRINGS = frozenset({"true", "yes", "y", "1", "on"})
_FALSE_STRINGS = frozenset({"false", "no", "n", "0", "off"})


def _field_kind(annotation: Any) -> type:
    """Base scalar type of a field annotation such as ``int | None``."""
    if typing.get_origin(annotation) in (typing.Union, types.UnionType):
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        annotation = args[0] if args else str
    return annotation


def coerce_value(value: Any, kind: type) -> Any:
    """Coerce one form value to ``kind``.

    Raises:
        ValueError: If the value cannot be read as ``kind``.
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None

    if kind is bool:
        if isinstance(value, bool):
            return value
        lowered = str(value).lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
        raise ValueError(f"not a boolean: {value!r}")

    if kind is int:
        if isinstance(value, bool):
            raise ValueError("boolean is not a number")
        number = float(value)
        if not number.is_integer():
            raise ValueError(f"not a whole number: {value!r}")
        return int(number)

    if kind is float:
        if isinstance(value, bool):
            raise ValueError("boolean is not a number")
        return float(value)

    return value if isinstance(value, str) else str(value)


def _flat_key_map() -> dict[str, tuple[str, str, str | None]]:
    """flat key -> (section, field, contact sub-field or None)."""
    mapping: dict[str, tuple[str, str, str | None]] = {}
    for section, model in SECTION_MODELS.items():
        for name in model.model_fields:
            if name in CONTACT_FIELDS:
                for sub in Contact.model_fields:
                    mapping[f"{name}_{sub}"] = (section, name, sub)
            else:
                mapping[name] = (section, name, None)
    return mapping


FLAT_KEYS = _flat_key_map()


def build_sections(flat: Mapping[str, Any]) -> FirmOfferSections:
    """Regroup a flat intake payload into typed sections with defaults.

    Every section is returned populated (defaults applied) even if the
    payload had nothing for it. Keys that are not intake fields are ignored.

    Raises:
        ValidationError: A value could not be coerced; ``fields`` lists them.
    """
    grouped: dict[str, dict[str, Any]] = {section: {} for section in SECTION_MODELS}
    invalid: list[str] = []

    for raw_key, raw_value in flat.items():
        key = FIELD_ALIASES.get(raw_key, raw_key)
        target = FLAT_KEYS.get(key)
        if target is None:
            continue
        section, name, sub = target
        model = SECTION_MODELS[section]
        if sub is not None:
            kind = _field_kind(Contact.model_fields[sub].annotation)
        else:
            kind = _field_kind(model.model_fields[name].annotation)

        try:
            value = coerce_value(raw_value, kind)
        except (TypeError, ValueError):
            invalid.append(key)
            continue

        if sub is not None:
            grouped[section].setdefault(name, {})[sub] = value
        elif value is not None:
            grouped[section][name] = value

    if invalid:
        raise ValidationError(
            f"Invalid values for: {', '.join(sorted(invalid))}", fields=sorted(invalid)
        )

    return FirmOfferSections(
        **{
            section: SECTION_MODELS[section].model_validate(values)
            for section, values in grouped.items()
        }
    )


def flatten(sections: FirmOfferSections) -> dict[str, Any]:
    """Flatten sections back to form field names, defaults filled in."""
    flat: dict[str, Any] = {}
    for section, model in SECTION_MODELS.items():
        current: BaseModel = getattr(sections, section) or model()
        for name in model.model_fields:
            value = getattr(current, name)
            if name in CONTACT_FIELDS:
                for sub in Contact.model_fields:
                    flat[f"{name}_{sub}"] = getattr(value, sub)
            else:
                flat[name] = value
    return flat


def missing_required_fields(sections: FirmOfferSections) -> list[str]:
    """Required intake fields that are still empty, in form order."""
    flat = flatten(sections)
    return [key for key in REQUIRED_FIELDS if flat.get(key) in (None, "")]
