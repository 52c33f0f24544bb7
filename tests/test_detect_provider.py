"""
Tests for provider detection from bill text.
"""

import pytest

from bill_models import (
    BILL_PROVIDER_KEYWORDS,
    BillProvider,
    InvalidBillTextError,
    ProviderNotDetectedError,
)
from provider_parsers import detect_provider


@pytest.mark.parametrize("provider", list(BillProvider))
def test_keywords_alone_detect_provider(provider):
    text = "Statement\n" + " ".join(BILL_PROVIDER_KEYWORDS[provider]) + "\nPage 1"
    assert detect_provider(text) is provider


def test_detection_is_case_insensitive():
    assert detect_provider("Visit BCHYDRO.COM for details") is BillProvider.BC_HYDRO


@pytest.mark.parametrize(
    "fixture, provider",
    [
        ("bc_hydro_consolidated.txt", BillProvider.BC_HYDRO),
        ("enmax.txt", BillProvider.ENMAX),
        ("fortisbc.txt", BillProvider.FORTISBC_ELEC),
        ("direct_energy.txt", BillProvider.DIRECT_ENERGY),
        ("creative_energy.txt", BillProvider.CREATIVE_ENERGY),
        ("city_of_vancouver.txt", BillProvider.CITY_OF_VANCOUVER),
        ("city_of_kelowna.txt", BillProvider.CITY_OF_KELOWNA),
        ("city_of_williams_lake.txt", BillProvider.CITY_OF_WILLIAMS_LAKE),
    ],
)
def test_sample_bills(bill_text, fixture, provider):
    assert detect_provider(bill_text(fixture)) is provider


def test_first_match_wins():
    # Both keyword sets present: the earlier entry in the table is chosen
    text = "fortisbc.com bchydro.com"
    assert detect_provider(text) is BillProvider.FORTISBC_ELEC


@pytest.mark.parametrize("text", ["", "   ", "\n\t\r\n"])
def test_blank_text_is_rejected(text):
    with pytest.raises(InvalidBillTextError):
        detect_provider(text)


def test_unknown_provider():
    with pytest.raises(ProviderNotDetectedError, match="not detected"):
        detect_provider("ACME Power Co. acme-power.example")
