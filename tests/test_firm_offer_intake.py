"""Tests for flat intake <-> section mapping."""

from __future__ import annotations

import pytest

from src.app.core.errors import ValidationError
from src.app.firm_offers.intake import (
    REQUIRED_FIELDS,
    build_sections,
    coerce_value,
    flatten,
    missing_required_fields,
)
from src.app.firm_offers.schemas import FirmOfferSections


COMPLETE_INTAKE = {
    "company_name": "Northwind Events",
    "event_name": "Northwind Leadership Summit",
    "event_date": "2026-06-18",
    "billing_contact_name": "Dana Whitfield",
    "billing_contact_email": "dana@northwind.test",
    "logistics_contact_name": "Lee Park",
    "logistics_contact_email": "lee@northwind.test",
    "speaker_name": "Dr. Maya Chen",
    "program_topic": "Leading through uncertainty",
    "speaker_fee": "25000",
}


class TestCoerceValue:
    @pytest.mark.parametrize("raw", ["", "   ", None])
    def test_blank_becomes_none(self, raw):
        assert coerce_value(raw, str) is None
        assert coerce_value(raw, int) is None

    @pytest.mark.parametrize(
        "raw,expected",
        [("true", True), ("Yes", True), ("1", True), ("on", True),
         ("false", False), ("NO", False), ("0", False), ("off", False), (True, True)],
    )
    def test_booleans(self, raw, expected):
        assert coerce_value(raw, bool) is expected

    def test_numbers(self):
        assert coerce_value("400", int) == 400
        assert coerce_value("400.0", int) == 400
        assert coerce_value(" 2500.50 ", float) == 2500.5

    @pytest.mark.parametrize(
        "raw,kind",
        [("maybe", bool), ("lots", int), ("12.5", int), (True, int), ("abc", float)],
    )
    def test_rejects_unreadable_values(self, raw, kind):
        with pytest.raises(ValueError):
            coerce_value(raw, kind)

    def test_strings_are_trimmed(self):
        assert coerce_value("  Keynote  ", str) == "Keynote"
        assert coerce_value(42, str) == "42"


class TestBuildSections:
    def test_groups_fields_and_applies_defaults(self):
        sections = build_sections({
            "company_name": "Northwind Events",
            "billing_contact_email": "dana@northwind.test",
            "audience_size": "400",
            "recording_allowed": "yes",
            "speaker_fee": "25000",
        })

        assert sections.event_overview.company_name == "Northwind Events"
        assert sections.event_overview.billing_contact.email == "dana@northwind.test"
        assert sections.event_overview.event_classification == "travel"
        assert sections.speaker_program.audience_size == 400
        assert sections.speaker_program.program_type == "keynote"
        assert sections.technical_requirements.recording_allowed is True
        assert sections.financial_details.speaker_fee == 25000.0
        assert sections.financial_details.payment_terms == "net_30"
        assert sections.event_schedule.timezone == "America/Los_Angeles"
        assert sections.confirmation is not None

    def test_aliases(self):
        sections = build_sections({
            "billing_address": "1 Market St",
            "program_length_minutes": "45",
            "qa_length_minutes": "15",
        })
        assert sections.event_overview.billing_contact.address == "1 Market St"
        assert sections.event_schedule.program_length == 45
        assert sections.event_schedule.qa_length == 15

    def test_unknown_keys_are_ignored(self):
        sections = build_sections({"favourite_colour": "teal", "event_name": "Summit"})
        assert sections.event_overview.event_name == "Summit"

    def test_blank_values_keep_defaults(self):
        sections = build_sections({"program_type": "", "speaker_attire": "  "})
        assert sections.speaker_program.program_type == "keynote"
        assert sections.speaker_program.speaker_attire == "business_casual"

    def test_invalid_values_are_all_reported(self):
        with pytest.raises(ValidationError) as exc_info:
            build_sections({
                "audience_size": "lots",
                "recording_allowed": "perhaps",
                "speaker_fee": "25000",
            })
        assert exc_info.value.fields == ["audience_size", "recording_allowed"]


class TestFlatten:
    def test_empty_sections_flatten_to_defaults(self):
        flat = flatten(FirmOfferSections())
        assert flat["company_name"] is None
        assert flat["billing_contact_email"] is None
        assert flat["program_type"] == "keynote"
        assert flat["travel_expenses_type"] == "flat_buyout"

    def test_flatten_inverts_build(self):
        flat = flatten(build_sections(COMPLETE_INTAKE))
        assert flat["logistics_contact_email"] == "lee@northwind.test"
        assert flat["speaker_fee"] == 25000.0
        assert flat["event_date"] == "2026-06-18"


class TestMissingRequiredFields:
    def test_complete_intake(self):
        assert missing_required_fields(build_sections(COMPLETE_INTAKE)) == []

    def test_reports_in_form_order(self):
        partial = {k: v for k, v in COMPLETE_INTAKE.items() if k not in ("speaker_fee", "event_name")}
        assert missing_required_fields(build_sections(partial)) == ["event_name", "speaker_fee"]

    def test_everything_missing(self):
        assert missing_required_fields(FirmOfferSections()) == list(REQUIRED_FIELDS)
