"""
Billing record model and provider metadata.

This module holds the normalized record every provider parser produces, the
document-level context shared between sections of one bill, and the static
tables used to detect providers and to pair usage types with their units.

When supporting a new bill provider, add it to ``BillProvider``, give it a
keyword set in ``BILL_PROVIDER_KEYWORDS`` and an expected usage type in
``PROVIDER_USAGE_TYPES``, then register its parser in ``provider_parsers``.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Optional


class BillProvider(str, Enum):
    """Supported utility bill issuers."""

    FORTISBC_ELEC = "fortisbc_elec"
    BC_HYDRO = "bc_hydro"
    ENMAX = "enmax"
    DIRECT_ENERGY = "direct_energy"
    CREATIVE_ENERGY = "creative_energy"
    CITY_OF_VANCOUVER = "city_of_vancouver"
    CITY_OF_WILLIAMS_LAKE = "city_of_williams_lake"
    CITY_OF_KELOWNA = "city_of_kelowna"


class UsageType(str, Enum):
    ELECTRICITY = "electricity"
    GAS = "gas"
    WATER = "water"
    STEAM = "steam"


class UsageUnit(str, Enum):
    KWH = "kWh"
    GJ = "GJ"
    M3 = "m3"
    CCF = "CCF"
    LBS = "lbs"


# Keywords that must ALL appear (case-insensitive) for a provider to match.
# Checked in this order; the first provider whose full set matches wins, so keep
# the sets specific (domain names, footer text) and free of overlap.
BILL_PROVIDER_KEYWORDS = MappingProxyType(
    {
        BillProvider.FORTISBC_ELEC: ("fortisbc.com",),
        BillProvider.BC_HYDRO: ("bchydro.com",),
        BillProvider.ENMAX: ("enmax.com",),
        BillProvider.DIRECT_ENERGY: ("directenergy.com",),
        BillProvider.CREATIVE_ENERGY: ("creativeenergycanada.com",),
        BillProvider.CITY_OF_VANCOUVER: ("vancouver.ca/utilitybilling",),
        BillProvider.CITY_OF_WILLIAMS_LAKE: ("www.williamslake.ca",),
        BillProvider.CITY_OF_KELOWNA: ("kelowna.ca",),
    }
)

USAGE_UNITS = MappingProxyType(
    {
        UsageType.ELECTRICITY: UsageUnit.KWH,
        UsageType.GAS: UsageUnit.GJ,
        UsageType.WATER: UsageUnit.M3,
        UsageType.STEAM: UsageUnit.LBS,
    }
)

# Bootstrap icon classes used by the bill listing UI
USAGE_TYPE_ICONS = MappingProxyType(
    {
        UsageType.ELECTRICITY: "bi bi-plug",
        UsageType.GAS: "bi bi-fuel-pump",
        UsageType.WATER: "bi bi-droplet",
        UsageType.STEAM: "bi bi-wind",
    }
)

DEFAULT_ICON = "bi bi-question-circle"

# The usage type a provider bills when a section does not say otherwise
PROVIDER_USAGE_TYPES = MappingProxyType(
    {
        BillProvider.FORTISBC_ELEC: UsageType.ELECTRICITY,
        BillProvider.BC_HYDRO: UsageType.ELECTRICITY,
        BillProvider.ENMAX: UsageType.ELECTRICITY,
        BillProvider.DIRECT_ENERGY: UsageType.GAS,
        BillProvider.CREATIVE_ENERGY: UsageType.STEAM,
        BillProvider.CITY_OF_VANCOUVER: UsageType.WATER,
        BillProvider.CITY_OF_WILLIAMS_LAKE: UsageType.WATER,
        BillProvider.CITY_OF_KELOWNA: UsageType.WATER,
    }
)


def get_usage_unit(usage_type: UsageType) -> UsageUnit:
    return USAGE_UNITS[usage_type]


def get_icon_class(usage_type: Optional[UsageType]) -> str:
    """Return the Bootstrap icon class for a usage type, or a neutral fallback."""
    return USAGE_TYPE_ICONS.get(usage_type, DEFAULT_ICON)


class BillParseError(ValueError):
    """Base class for document-level parsing failures."""


class InvalidBillTextError(BillParseError):
    """The document text is empty or blank."""


class ProviderNotDetectedError(BillParseError):
    """No provider's keyword set is fully present in the document text."""


@dataclass(frozen=True)
class DocumentContext:
    """
    Facts read once per document and shared by all of its sections.

    Example: BC Hydro prints a single billing date for a consolidated bill, and
    Enmax prints the account holder and address once above every commodity.
    """

    billing_date: Optional[date] = None
    account_number: Optional[str] = None
    name: Optional[str] = None
    service_address: Optional[str] = None


@dataclass
class BillData:
    """
    One billed account or commodity extracted from a bill.

    Missing values are left as None (strings, dates) or zero (consumption,
    charges); flagging incomplete records is up to the consumer. The usage unit
    is derived from the usage type so the two can never disagree.
    """

    usage_type: UsageType
    account_number: Optional[str] = None
    name: Optional[str] = None
    service_address: Optional[str] = None
    billing_date: Optional[date] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    consumption: Optional[float] = 0.0
    charges: Optional[Decimal] = field(default_factory=lambda: Decimal("0.00"))
    is_metered: bool = True
    provider: Optional[BillProvider] = None

    @property
    def usage_unit(self) -> UsageUnit:
        return get_usage_unit(self.usage_type)

    def to_dict(self) -> dict:
        """Render the record with JSON-friendly values."""

        def _iso(value: Optional[date]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            "provider": self.provider.value if self.provider else None,
            "usage_type": self.usage_type.value,
            "usage_unit": self.usage_unit.value,
            "account_number": self.account_number,
            "name": self.name,
            "service_address": self.service_address,
            "billing_date": _iso(self.billing_date),
            "period_start": _iso(self.period_start),
            "period_end": _iso(self.period_end),
            "consumption": self.consumption,
            "charges": f"{self.charges:.2f}" if self.charges is not None else None,
            "is_metered": self.is_metered,
        }
