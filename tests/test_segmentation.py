"""
Tests for splitting bills into independently billed sections.
"""

import time

import pytest

from bill_text import compile_pattern
from provider_parsers import (
    BcHydroParser,
    CityOfKelownaParser,
    CreativeEnergyParser,
    EnmaxParser,
    FortisBCElecParser,
    sections_by_terminator,
    single_section,
)


def test_single_section():
    assert single_section("whole bill") == ["whole bill"]
    assert single_section("  \n ") == []


def test_terminator_split_drops_trailing_text():
    terminator = compile_pattern(r"END")
    assert sections_by_terminator("a END b END tail", terminator) == ["a END", "b END"]


def test_terminator_split_without_markers():
    assert sections_by_terminator("no markers here", compile_pattern(r"END")) == []


class TestBcHydroSections:
    def test_one_section_per_member_account(self, bill_text):
        sections = BcHydroParser.sections(bill_text("bc_hydro_consolidated.txt"))

        assert len(sections) == 2
        assert "Member account # 1234 5678 901" in sections[0]
        assert sections[0].endswith("CURRENT CHARGES $1,155.18")
        assert "Member account # 9876 5432 100" in sections[1]
        assert sections[1].endswith("CURRENT CHARGES $156.02")

    def test_page_footers_removed(self, bill_text):
        sections = BcHydroParser.sections(bill_text("bc_hydro_consolidated.txt"))
        assert all("of 3" not in section for section in sections)

    def test_idempotent(self, bill_text):
        text = bill_text("bc_hydro_consolidated.txt")
        assert BcHydroParser.sections(text) == BcHydroParser.sections(text)

    def test_context_billing_date(self, bill_text):
        context = BcHydroParser.context(bill_text("bc_hydro_consolidated.txt"))
        assert context.billing_date.isoformat() == "2025-02-05"


class TestEnmaxSections:
    def test_one_section_per_commodity(self, bill_text):
        sections = EnmaxParser.sections(bill_text("enmax.txt"))

        assert len(sections) == 2
        assert sections[0].startswith("ELECTRICITY Provided by")
        assert sections[0].endswith("Summary $410.95")
        assert sections[1].startswith("WATER TREATMENT AND SUPPLY")
        assert sections[1].endswith("Summary $323.93")

    def test_no_commodity_headers(self):
        assert EnmaxParser.sections("enmax.com\nnothing billed") == []

    def test_many_headers_without_summary(self):
        text = "enmax.com\n" + "ELECTRICITY Provided by ENMAX\nEnergy Charge 1.000 kWh @ $0.1\n" * 2000

        started = time.monotonic()
        sections = EnmaxParser.sections(text)
        elapsed = time.monotonic() - started

        assert sections == []
        assert elapsed < 5


@pytest.mark.parametrize(
    "parser, fixture",
    [
        (CreativeEnergyParser, "creative_energy.txt"),
        (FortisBCElecParser, "fortisbc.txt"),
        (CityOfKelownaParser, "city_of_kelowna.txt"),
    ],
)
def test_single_section_providers(bill_text, parser, fixture):
    text = bill_text(fixture)
    assert parser.sections(text) == [text]
