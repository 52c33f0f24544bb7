"""
Provider-specific parsers for utility bill text.

Each provider prints its bills in its own layout, so each gets a parser class
that knows the anchors, date formats and units that provider uses. Every parser
exposes the same three static methods:

- ``sections(text)``: split the document into independently billed sections
- ``context(text)``: read facts printed once per document (shared by sections)
- ``extract(section, context)``: build a ``BillData`` record for one section,
  or return None when the section has no account anchor

Parsers never raise on a malformed section; fields that cannot be read are
left empty for the reviewer to fill in.
"""

import logging
from datetime import date
from decimal import Decimal
from types import MappingProxyType
from typing import List, Optional, Tuple

import regex

from bill_models import (
    BILL_PROVIDER_KEYWORDS,
    PROVIDER_USAGE_TYPES,
    BillData,
    BillProvider,
    DocumentContext,
    InvalidBillTextError,
    ProviderNotDetectedError,
    UsageType,
)
from bill_text import (
    compile_pattern,
    find_all,
    join_lines,
    line_after,
    line_containing,
    month_bounds,
    normalize_newlines,
    parse_amount,
    parse_date,
    parse_quantity,
    previous_year,
    search,
    split_lines,
    strip_spaces,
    substitute,
)

logger = logging.getLogger(__name__)

MONTH_NAMES = "Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec"


# ============================================================================
# Segmentation strategies
# ============================================================================


def single_section(text: str) -> List[str]:
    """The whole document is one bill."""
    return [text] if text.strip() else []


def sections_by_header(text: str, pattern) -> List[str]:
    """One section per match of a header-through-summary pattern, in document order."""
    return [m.group(0).strip() for m in find_all(pattern, text)]


def sections_by_terminator(text: str, terminator) -> List[str]:
    """
    One section per terminal marker, each running from the end of the previous
    marker (or the start of the document) through the marker itself.
    """
    sections = []
    start = 0
    for match in find_all(terminator, text):
        section = text[start : match.end()].strip()
        if section:
            sections.append(section)
        start = match.end()
    return sections


def empty_context(text: str) -> DocumentContext:
    return DocumentContext()


def _order_period(
    start: Optional[date], end: Optional[date], reference: Optional[date] = None
) -> Tuple[Optional[date], Optional[date]]:
    """
    Fix the year of a period printed without one.

    A window that wraps past December gets its start moved back a year, and a
    window ending after the bill was issued is moved back as a whole.
    """
    if start and end and start > end:
        start = previous_year(start)
    if reference and end and end > reference:
        end = previous_year(end)
        start = previous_year(start) if start else None
    return start, end


# ============================================================================
# Provider parsers
# ============================================================================


class BcHydroParser:
    """Parser for BC Hydro bills - consolidated statements, one section per member account."""

    ACCOUNT_PATTERN = compile_pattern(r"Member\s+account\s*#\s*([0-9\s]+)", regex.IGNORECASE)

    ADDRESS_PATTERN = compile_pattern(
        r"Service\s+address:\s*(.*?)(?=(?:\d+%|UNMETERED\s+CHARGES|Meter\s+reading"
        r"|Your\s+bill\s+has\s+been\s+corrected|No\s+change\s+in\s+e"
        r"|Your\s+account\s+has\s+a\s+charge\s+o|ELECTRICITY\s+CHARGES)|$)",
        regex.IGNORECASE,
    )

    METERED_USAGE_PATTERN = compile_pattern(
        r"(\d[\d,]*(?:\.\d+)?)\s*kWh\s+used\s+over", regex.IGNORECASE
    )

    UNMETERED_USAGE_PATTERN = compile_pattern(
        r"Energy\s+charges?\s*(\d[\d,]*(?:\.\d+)?)\s*kWh", regex.IGNORECASE
    )

    START_PATTERN = compile_pattern(
        r"Starting\s+([A-Za-z]{3,9}\s+\d{1,2},\s*\d{4})", regex.IGNORECASE
    )
    END_PATTERN = compile_pattern(
        r"Ending\s+([A-Za-z]{3,9}\s+\d{1,2},\s*\d{4})", regex.IGNORECASE
    )

    CHARGES_PATTERN = compile_pattern(
        r"CURRENT\s+CHARGES\s*(-?\$\s*\d[\d,]*\.\d{2})", regex.IGNORECASE
    )

    # Ends every member account section
    TERMINATOR_PATTERN = compile_pattern(
        r"CURRENT\s+CHARGES\s*-?\$\s*\d[\d,]*\.\d{2}", regex.IGNORECASE
    )

    PAGE_COUNT_PATTERN = compile_pattern(r"\bof\s+(\d+)\b", regex.IGNORECASE)

    BILLING_DATE_PATTERN = compile_pattern(r"([A-Za-z]{3,9}\s+\d{1,2},\s*\d{4})")

    # Unmetered accounts print "Based on <rate> <code> ... <date> to <date>"
    RATE_KINDS = [
        "Small General Service Rate",
        "Medium General Service Rate",
        "Large General Service Rate",
        "Traffic Service Rate",
        "Ornamental Street Lighting Rate",
        "Overhead Street Lighting Rate",
        "Residential Tiered Rate",
        "Transformer Owner discount",
    ]
    _DATE = rf"(?:{MONTH_NAMES})\s+\d{{1,2}},\s*\d{{4}}"
    UNMETERED_PERIOD_PATTERN = compile_pattern(
        r"(?:Based\s+on\s+(?:"
        + "|".join(regex.escape(kind) for kind in RATE_KINDS)
        + rf")\s*\d+|Continued).*?({_DATE})\s*to\s*({_DATE})",
        regex.IGNORECASE | regex.DOTALL,
    )

    NAME_TAIL_PATTERNS = [
        compile_pattern(r"\d+%.*$"),
        compile_pattern(r"\d+\s*kW\s*Peak.*$", regex.IGNORECASE),
        compile_pattern(r"No change.*$", regex.IGNORECASE),
    ]
    PAGE_REMNANT_PATTERN = compile_pattern(r"^Page\s+\d+$", regex.IGNORECASE)

    @staticmethod
    def context(text: str) -> DocumentContext:
        """
        Read the billing date shared by every member account.

        Format: the second line of the statement carries the bill date,
        e.g. "Bill date: Feb 5, 2025 Page 1 of 3"
        """
        lines = split_lines(text)
        if len(lines) < 2:
            return DocumentContext()
        match = search(BcHydroParser.BILLING_DATE_PATTERN, lines[1])
        return DocumentContext(billing_date=parse_date(match.group(1)) if match else None)

    @staticmethod
    def sections(text: str) -> List[str]:
        """
        Split a consolidated statement into member account sections.

        Page footers ("Page 2 of 3") are printed between accounts, so every
        "of N" for the statement's page count is removed before splitting.
        """
        total_pages = BcHydroParser._total_pages(text)
        if total_pages:
            text = substitute(
                compile_pattern(rf"of\s*{total_pages}(?![\d,])", regex.IGNORECASE), "", text
            )
        return sections_by_terminator(text, BcHydroParser.TERMINATOR_PATTERN)

    @staticmethod
    def _total_pages(text: str) -> int:
        lines = split_lines(text)
        if len(lines) < 2:
            return 0
        match = search(BcHydroParser.PAGE_COUNT_PATTERN, lines[1])
        return int(match.group(1)) if match else 0

    @staticmethod
    def extract(section: str, context: DocumentContext) -> Optional[BillData]:
        account_line = line_containing(section, "Member account #")
        if account_line is None:
            return None
        account_match = search(BcHydroParser.ACCOUNT_PATTERN, account_line)
        if not account_match:
            return None
        account_number = strip_spaces(account_match.group(1))
        if not account_number:
            return None

        is_metered = "meter reading information" in section.lower()

        if is_metered:
            consumption = BcHydroParser._usage(
                section, "kWh used", BcHydroParser.METERED_USAGE_PATTERN
            )
            period_start, period_end = BcHydroParser._metered_period(section)
        else:
            consumption = BcHydroParser._usage(
                section, "Energy charge", BcHydroParser.UNMETERED_USAGE_PATTERN
            )
            period_start, period_end = BcHydroParser._unmetered_period(section)

        charges = Decimal("0.00")
        charges_line = line_containing(section, "CURRENT CHARGES")
        if charges_line:
            match = search(BcHydroParser.CHARGES_PATTERN, charges_line)
            if match:
                charges = parse_amount(match.group(1))

        return BillData(
            usage_type=PROVIDER_USAGE_TYPES[BillProvider.BC_HYDRO],
            account_number=account_number,
            name=BcHydroParser._member_name(section),
            service_address=BcHydroParser._service_address(section),
            billing_date=context.billing_date,
            period_start=period_start,
            period_end=period_end,
            consumption=consumption,
            charges=charges,
            is_metered=is_metered,
        )

    @staticmethod
    def _member_name(section: str) -> Optional[str]:
        """
        Join the name lines printed above "Member account #".

        The first section also carries the statement header, so collection
        starts after the "Total due for consolidated account" line when there
        is one. Trailing usage notes ("12% higher...", "40 kW Peak...",
        "No change...") are cut off.
        """
        lines = [line.strip() for line in split_lines(section)]
        lowered = [line.lower() for line in lines]

        member_idx = next(
            (i for i, line in enumerate(lowered) if "member account #" in line), -1
        )
        if member_idx <= 0:
            return None

        consolidated_idx = next(
            (i for i, line in enumerate(lowered) if "total due for consolidated account" in line),
            -1,
        )
        start_idx = consolidated_idx + 1 if 0 <= consolidated_idx < member_idx else 0

        name_parts = []
        for line in lines[start_idx:member_idx]:
            if "bill details for member accounts" in line.lower():
                continue
            if search(BcHydroParser.PAGE_REMNANT_PATTERN, line):
                continue
            for tail in BcHydroParser.NAME_TAIL_PATTERNS:
                line = substitute(tail, "", line).strip()
            if line:
                name_parts.append(line)

        return " ".join(name_parts) or None

    @staticmethod
    def _service_address(section: str) -> Optional[str]:
        line = line_containing(section, "Service address:")
        if line is None:
            return None
        match = search(BcHydroParser.ADDRESS_PATTERN, line)
        return match.group(1).strip() or None if match else None

    @staticmethod
    def _usage(section: str, anchor: str, pattern) -> float:
        line = line_containing(section, anchor)
        if line is None:
            return 0.0
        match = search(pattern, line)
        return parse_quantity(match.group(1)) if match else 0.0

    @staticmethod
    def _metered_period(section: str) -> Tuple[Optional[date], Optional[date]]:
        start = end = None

        start_line = line_containing(section, "Starting ")
        if start_line:
            match = search(BcHydroParser.START_PATTERN, start_line)
            if match:
                start = parse_date(match.group(1))

        end_line = line_containing(section, "Ending ")
        if end_line:
            match = search(BcHydroParser.END_PATTERN, end_line)
            if match:
                end = parse_date(match.group(1))

        return start, end

    @staticmethod
    def _unmetered_period(section: str) -> Tuple[Optional[date], Optional[date]]:
        # The rate line and the date range are usually printed on separate lines
        prefix_line = line_containing(section, "Based on")
        date_line = line_containing(section, " to ")
        if prefix_line is None or date_line is None:
            return None, None

        match = search(BcHydroParser.UNMETERED_PERIOD_PATTERN, f"{prefix_line}\n{date_line}")
        if not match:
            return None, None
        return parse_date(match.group(1)), parse_date(match.group(2))


class EnmaxParser:
    """Parser for ENMAX bills - one section per commodity (electricity, water)."""

    ACCOUNT_NUMBER_PATTERN = compile_pattern(r"Account Number:\s*(\d+)", regex.IGNORECASE)

    BILLING_DATE_PATTERN = compile_pattern(
        r"Current Bill Date:\s*([0-9]{4}\s+[A-Za-z]+\s+\d{1,2})", regex.IGNORECASE
    )

    SERVICE_ADDRESS_PATTERN = compile_pattern(
        r"Current Bill Date:[^\n]*\n(?P<address>.*?)\nYou are on:",
        regex.IGNORECASE | regex.DOTALL,
    )

    NAME_PATTERN = compile_pattern(r"^(?P<name>.+?)\s*Account Number:", regex.MULTILINE)

    # From a commodity header down through its "Summary ... $410.95" line
    SECTION_PATTERN = compile_pattern(
        r"^(?:ELECTRICITY\s*Provided by|WATER TREATMENT AND SUPPLY)"
        r".*?"
        r"^Summary[^\n]*\$\s*[\d,]+\.\d{2}",
        regex.MULTILINE | regex.DOTALL,
    )

    ELECTRICITY_USAGE_PATTERN = compile_pattern(r"([\d,]+\.\d+)\s*kWh\s*@")
    WATER_USAGE_PATTERN = compile_pattern(r"([\d,]+\.\d+)\s*m3\s*@")

    SECTION_TOTAL_PATTERN = compile_pattern(
        r"^Summary[^\$\n]*\$\s*([\d,]+\.\d{2})", regex.MULTILINE
    )

    # "(Mar6toApr3)"
    PERIOD_PATTERN = compile_pattern(
        r"\(\s*(?P<start_mon>[A-Za-z]{3})(?P<start_day>\d{1,2})to"
        r"(?P<end_mon>[A-Za-z]{3})(?P<end_day>\d{1,2})\s*\)"
    )

    BILLING_DATE_FORMATS = ("%Y %B %d", "%Y %b %d")

    @staticmethod
    def sections(text: str) -> List[str]:
        return sections_by_header(text, EnmaxParser.SECTION_PATTERN)

    @staticmethod
    def context(text: str) -> DocumentContext:
        """
        Read the account holder details printed once above every commodity.

        Example:
            PR SALY CENTRE LTD. Account Number: 501722953
            Current Bill Date: 2025 April 3
            1400 SALY AVE SW
            CALGARY AB T2R 0X1
            You are on: ...
        """
        account = search(EnmaxParser.ACCOUNT_NUMBER_PATTERN, text)
        billing = search(EnmaxParser.BILLING_DATE_PATTERN, text)
        address = search(EnmaxParser.SERVICE_ADDRESS_PATTERN, text)
        name = search(EnmaxParser.NAME_PATTERN, text)

        return DocumentContext(
            account_number=account.group(1) if account else None,
            billing_date=(
                parse_date(billing.group(1), EnmaxParser.BILLING_DATE_FORMATS)
                if billing
                else None
            ),
            service_address=join_lines(address.group("address")) if address else None,
            name=name.group("name").strip() or None if name else None,
        )

    @staticmethod
    def extract(section: str, context: DocumentContext) -> Optional[BillData]:
        if not context.account_number:
            return None

        header = section.lstrip().upper()
        if header.startswith("ELECTRICITY"):
            usage_type = UsageType.ELECTRICITY
            usage_pattern = EnmaxParser.ELECTRICITY_USAGE_PATTERN
        elif header.startswith("WATER TREATMENT AND SUPPLY"):
            usage_type = UsageType.WATER
            usage_pattern = EnmaxParser.WATER_USAGE_PATTERN
        else:
            return None

        usage = search(usage_pattern, section)
        total = search(EnmaxParser.SECTION_TOTAL_PATTERN, section)
        period_start, period_end = EnmaxParser._period(section, context.billing_date)

        return BillData(
            usage_type=usage_type,
            account_number=context.account_number,
            name=context.name,
            service_address=context.service_address,
            billing_date=context.billing_date,
            period_start=period_start,
            period_end=period_end,
            consumption=parse_quantity(usage.group(1)) if usage else 0.0,
            charges=parse_amount(total.group(1)) if total else Decimal("0.00"),
            is_metered=True,
        )

    @staticmethod
    def _period(
        section: str, billing_date: Optional[date]
    ) -> Tuple[Optional[date], Optional[date]]:
        """The period is printed without a year; borrow it from the bill date."""
        match = search(EnmaxParser.PERIOD_PATTERN, section)
        if not match or billing_date is None:
            return None, None

        year = billing_date.year
        start = parse_date(f"{match.group('start_mon')} {match.group('start_day')} {year}", ("%b %d %Y",))
        end = parse_date(f"{match.group('end_mon')} {match.group('end_day')} {year}", ("%b %d %Y",))
        return _order_period(start, end, billing_date)


class FortisBCElecParser:
    """Parser for FortisBC electricity bills - single account per bill."""

    ACCOUNT_PATTERN = compile_pattern(r"Account number[:\s]+([0-9\-]+)", regex.IGNORECASE)
    NAME_PATTERN = compile_pattern(r"Name:\s*(.*?)\s+Service address:", regex.IGNORECASE)
    ADDRESS_PATTERN = compile_pattern(
        r"Service address:\s*(.*?)\s*(?=\bDue\b|$)", regex.IGNORECASE | regex.MULTILINE
    )
    BILLING_DATE_PATTERN = compile_pattern(
        r"Billing date[:\s]+([A-Za-z]{3,9} \d{1,2}, \d{4})", regex.IGNORECASE
    )
    # "Billing period: May 02-Jun 02, 2025"
    PERIOD_PATTERN = compile_pattern(
        r"Billing period[:\s]+([A-Za-z]{3,9} \d{1,2})\s*[-–]\s*([A-Za-z]{3,9} \d{1,2}),\s*(\d{4})",
        regex.IGNORECASE,
    )
    AMOUNT_PATTERN = compile_pattern(
        r"Amount due[:\s]*(-?\$\s*[0-9,]+(?:\.[0-9]{1,2})?)", regex.IGNORECASE
    )
    USAGE_AT_PATTERN = compile_pattern(r"You used\s*([0-9,]+)\s*kWh\s*at", regex.IGNORECASE)
    USAGE_PATTERN = compile_pattern(r"You used\s*([0-9,]+)\s*kWh", regex.IGNORECASE)

    sections = staticmethod(single_section)
    context = staticmethod(empty_context)

    @staticmethod
    def extract(section: str, context: DocumentContext) -> Optional[BillData]:
        if line_containing(section, "Account number") is None:
            return None

        account = search(FortisBCElecParser.ACCOUNT_PATTERN, section)
        name = search(FortisBCElecParser.NAME_PATTERN, section)
        address = search(FortisBCElecParser.ADDRESS_PATTERN, section)
        billing = search(FortisBCElecParser.BILLING_DATE_PATTERN, section)
        amount = search(FortisBCElecParser.AMOUNT_PATTERN, section)
        period_start, period_end = FortisBCElecParser._period(section)

        return BillData(
            usage_type=PROVIDER_USAGE_TYPES[BillProvider.FORTISBC_ELEC],
            account_number=strip_spaces(account.group(1)) if account else None,
            name=name.group(1).strip() or None if name else None,
            service_address=address.group(1).strip() or None if address else None,
            billing_date=parse_date(billing.group(1)) if billing else None,
            period_start=period_start,
            period_end=period_end,
            consumption=FortisBCElecParser._usage(section),
            charges=parse_amount(amount.group(1)) if amount else Decimal("0.00"),
            is_metered=True,
        )

    @staticmethod
    def _period(section: str) -> Tuple[Optional[date], Optional[date]]:
        match = search(FortisBCElecParser.PERIOD_PATTERN, section)
        if not match:
            return None, None
        start_text, end_text, year = (group.strip() for group in match.groups())
        start = parse_date(f"{start_text}, {year}")
        end = parse_date(f"{end_text}, {year}")
        return _order_period(start, end)

    @staticmethod
    def _usage(section: str) -> float:
        # "You used N kWh at ..." is the billed figure; other "You used" lines are comparisons
        match = search(FortisBCElecParser.USAGE_AT_PATTERN, section) or search(
            FortisBCElecParser.USAGE_PATTERN, section
        )
        return parse_quantity(match.group(1)) if match else 0.0


class DirectEnergyParser:
    """Parser for Direct Energy natural gas invoices - single account per invoice."""

    BILLING_DATE_PATTERN = compile_pattern(
        r"^Invoice Date:\s*(\d{1,2}-[A-Za-z]{3}-\d{2})", regex.MULTILINE | regex.IGNORECASE
    )
    BILLING_PERIOD_PATTERN = compile_pattern(
        r"Billing Period:\s*([A-Za-z]+\s+\d{4})", regex.IGNORECASE
    )
    AMOUNT_DUE_PATTERN = compile_pattern(
        r"Subtotal:\s*(-?\$\s*[\d,]+\.\d{2})", regex.IGNORECASE
    )
    USAGE_PATTERN = compile_pattern(
        r"Total Usage \(GJs\):\s*([\d,]+(?:\.\d+)?)", regex.IGNORECASE
    )
    ACCOUNT_PATTERN = compile_pattern(r"Utility Account:\s*(.*)$", regex.IGNORECASE)
    NAME_PATTERN = compile_pattern(r"^(.*?)\s*Product:", regex.IGNORECASE)

    sections = staticmethod(single_section)
    context = staticmethod(empty_context)

    @staticmethod
    def extract(section: str, context: DocumentContext) -> Optional[BillData]:
        """
        Format:
            MOUNTAIN VIEW APARTMENTS Product: Fixed Price Natural Gas
            Utility Account: 0040 1234 5678
            Invoice Date: 05-Mar-25
            Billing Period: February 2025
        """
        account_line = line_containing(section, "Utility Account:")
        if account_line is None:
            return None
        account = search(DirectEnergyParser.ACCOUNT_PATTERN, account_line)

        billing = search(DirectEnergyParser.BILLING_DATE_PATTERN, section)
        period_start, period_end = DirectEnergyParser._period(section)

        return BillData(
            usage_type=PROVIDER_USAGE_TYPES[BillProvider.DIRECT_ENERGY],
            account_number=strip_spaces(account.group(1)) if account else None,
            name=DirectEnergyParser._name(section),
            billing_date=parse_date(billing.group(1), ("%d-%b-%y",)) if billing else None,
            period_start=period_start,
            period_end=period_end,
            consumption=DirectEnergyParser._labeled_value(
                section, "Total Usage (GJs):", DirectEnergyParser.USAGE_PATTERN, parse_quantity
            ),
            charges=DirectEnergyParser._labeled_value(
                section, "Subtotal:", DirectEnergyParser.AMOUNT_DUE_PATTERN, parse_amount
            ),
            is_metered=True,
        )

    @staticmethod
    def _period(section: str) -> Tuple[Optional[date], Optional[date]]:
        # Billed by calendar month: "Billing Period: February 2025"
        line = line_containing(section, "Billing Period:")
        if line is None:
            return None, None
        match = search(DirectEnergyParser.BILLING_PERIOD_PATTERN, line)
        return month_bounds(match.group(1)) if match else (None, None)

    @staticmethod
    def _name(section: str) -> Optional[str]:
        line = line_containing(section, "Product:")
        if line is None:
            return None
        match = search(DirectEnergyParser.NAME_PATTERN, line)
        return match.group(1).strip() or None if match else None

    @staticmethod
    def _labeled_value(section: str, anchor: str, pattern, convert):
        line = line_containing(section, anchor)
        match = search(pattern, line) if line else None
        return convert(match.group(1) if match else None)


class CreativeEnergyParser:
    """Parser for Creative Energy steam invoices - meter data in a single table row."""

    BILLING_DATE_PATTERN = compile_pattern(
        r"BILLING\s+DATE:\s*(\d{1,2}/\d{1,2}/\d{4})", regex.IGNORECASE
    )
    ACCOUNT_PATTERN = compile_pattern(r"ACCT\s*#\s*([0-9]+)", regex.IGNORECASE)

    HEADER_PATTERN = compile_pattern(
        r"^Building\s+Date\s+From\s+Date\s+To\s+Reading\s+Prior\s+Reading\s+Current\s+Mult\s+Consumption",
        regex.IGNORECASE | regex.MULTILINE,
    )

    # name, start date, end date, prior, current, multiplier, consumption
    DATA_LINE_PATTERN = compile_pattern(
        r"^(.*?)\s+(\d{1,2}/\d{1,2}/\d{4})\s+(\d{1,2}/\d{1,2}/\d{4})"
        r"\s+[\d,]+\.\d{2}\s+[\d,]+\.\d{2}\s+\d+\s+([\d,]+\.\d{2})",
        regex.MULTILINE,
    )

    DUE_AMOUNT_PATTERN = compile_pattern(
        r"Total\s+Due\s*(-?\$\s*[\d,]+\.\d{2})", regex.IGNORECASE
    )

    DATE_FORMATS = ("%m/%d/%Y",)

    sections = staticmethod(single_section)
    context = staticmethod(empty_context)

    @staticmethod
    def extract(section: str, context: DocumentContext) -> Optional[BillData]:
        """
        Format:
            Building Date From Date To Reading Prior Reading Current Mult Consumption
            ROYAL CENTRE TOWER 4/30/2021 5/31/2021 1,234,567.00 1,456,789.00 1 222,222.00
        """
        account_line = line_containing(section, "ACCT #")
        if account_line is None:
            return None
        account = search(CreativeEnergyParser.ACCOUNT_PATTERN, account_line)

        data = BillData(
            usage_type=PROVIDER_USAGE_TYPES[BillProvider.CREATIVE_ENERGY],
            account_number=account.group(1).strip() if account else None,
            billing_date=CreativeEnergyParser._billing_date(section),
            charges=CreativeEnergyParser._due_amount(section),
            is_metered=True,
        )

        header = search(CreativeEnergyParser.HEADER_PATTERN, section)
        if header:
            row = search(CreativeEnergyParser.DATA_LINE_PATTERN, section, header.end())
            if row:
                # Name is everything before the first date
                data.name = row.group(1).strip() or None
                data.service_address = data.name
                data.period_start = parse_date(row.group(2), CreativeEnergyParser.DATE_FORMATS)
                data.period_end = parse_date(row.group(3), CreativeEnergyParser.DATE_FORMATS)
                data.consumption = parse_quantity(row.group(4))

        return data

    @staticmethod
    def _billing_date(section: str) -> Optional[date]:
        line = line_containing(section, "BILLING DATE:")
        if line is None:
            return None
        match = search(CreativeEnergyParser.BILLING_DATE_PATTERN, line)
        return parse_date(match.group(1), CreativeEnergyParser.DATE_FORMATS) if match else None

    @staticmethod
    def _due_amount(section: str) -> Decimal:
        line = line_containing(section, "Total Due")
        if line is None:
            return Decimal("0.00")
        match = search(CreativeEnergyParser.DUE_AMOUNT_PATTERN, line)
        return parse_amount(match.group(1)) if match else Decimal("0.00")


# ----------------------------------------------------------------------------
# Municipal utility statements (Vancouver and Kelowna share one layout)
# ----------------------------------------------------------------------------

CITY_ACCOUNT_PATTERN = compile_pattern(r"ACCT\s*NUMBER:\s*([0-9]+)", regex.IGNORECASE)
CITY_BILLING_DATE_PATTERN = compile_pattern(
    r"BILLING\s*DATE:\s*([A-Za-z]{3,9}\s+\d{1,2},\s*\d{4})", regex.IGNORECASE
)
CITY_NAME_PATTERN = compile_pattern(r"NAME:\s*(.*?)\s*\*", regex.IGNORECASE | regex.DOTALL)
CITY_SERVICE_ADDRESS_PATTERN = compile_pattern(r"FOR\s*SERVICE\s*AT:\s*(.+)", regex.IGNORECASE)
CITY_PERIOD_START_PATTERN = compile_pattern(
    r"BILLING\s*PERIOD:\s*([A-Za-z]{3,9}\s+\d{1,2},\s*\d{4})", regex.IGNORECASE
)
CITY_PERIOD_END_PATTERN = compile_pattern(
    r"TO:\s*([A-Za-z]{3,9}\s+\d{1,2},\s*\d{4})", regex.IGNORECASE
)


def _city_field(text: str, anchor: str, pattern) -> Optional[str]:
    line = line_containing(text, anchor)
    if line is None:
        return None
    match = search(pattern, line)
    return match.group(1).strip() or None if match else None


def _city_billing_date(text: str) -> Optional[date]:
    return parse_date(_city_field(text, "BILLING DATE:", CITY_BILLING_DATE_PATTERN))


def _city_period(text: str) -> Tuple[Optional[date], Optional[date]]:
    start = parse_date(_city_field(text, "BILLING PERIOD:", CITY_PERIOD_START_PATTERN))
    end = parse_date(_city_field(text, "TO:", CITY_PERIOD_END_PATTERN))
    return start, end


class CityOfVancouverParser:
    """Parser for City of Vancouver utility statements - metered water."""

    CONSUMPTION_PATTERN = compile_pattern(r"(\d[\d,]*)\s+UNITS", regex.IGNORECASE)
    AMOUNT_DUE_PATTERN = compile_pattern(
        r"IF\s*PAID\s*ON\s*OR\s*BEFORE\s*DUE\s*DATE:\s*(-?\$?\s*[\d,]+\.\d{2})", regex.IGNORECASE
    )

    sections = staticmethod(single_section)
    context = staticmethod(empty_context)

    @staticmethod
    def extract(section: str, context: DocumentContext) -> Optional[BillData]:
        if line_containing(section, "ACCT NUMBER:") is None:
            return None

        period_start, period_end = _city_period(section)

        # Consumption sits on the line below its caption: "842 UNITS"
        consumption = 0.0
        consumption_line = line_after(section, "CONSUMPTION AMOUNT")
        if consumption_line:
            match = search(CityOfVancouverParser.CONSUMPTION_PATTERN, consumption_line)
            if match:
                consumption = parse_quantity(match.group(1))

        return BillData(
            usage_type=PROVIDER_USAGE_TYPES[BillProvider.CITY_OF_VANCOUVER],
            account_number=_city_field(section, "ACCT NUMBER:", CITY_ACCOUNT_PATTERN),
            name=_city_field(section, "NAME:", CITY_NAME_PATTERN),
            service_address=_city_field(section, "FOR SERVICE AT:", CITY_SERVICE_ADDRESS_PATTERN),
            billing_date=_city_billing_date(section),
            period_start=period_start,
            period_end=period_end,
            consumption=consumption,
            charges=parse_amount(
                _city_field(
                    section,
                    "IF PAID ON OR BEFORE DUE DATE:",
                    CityOfVancouverParser.AMOUNT_DUE_PATTERN,
                )
            ),
            is_metered=True,
        )


class CityOfKelownaParser:
    """Parser for City of Kelowna utility statements - several meters and dated charge rows."""

    # "METER 100234 WATER 188 CM"
    LINE_END_CM_PATTERN = compile_pattern(r"(\d[\d,]*)\s*CM\s*$", regex.IGNORECASE)
    TRAILING_MONEY_PATTERN = compile_pattern(r"(-?\d[\d,]*\.\d{2})\s*$")

    sections = staticmethod(single_section)
    context = staticmethod(empty_context)

    @staticmethod
    def extract(section: str, context: DocumentContext) -> Optional[BillData]:
        if line_containing(section, "ACCT NUMBER:") is None:
            return None

        billing_date = _city_billing_date(section)
        period_start, period_end = _city_period(section)

        return BillData(
            usage_type=PROVIDER_USAGE_TYPES[BillProvider.CITY_OF_KELOWNA],
            account_number=_city_field(section, "ACCT NUMBER:", CITY_ACCOUNT_PATTERN),
            name=_city_field(section, "NAME:", CITY_NAME_PATTERN),
            service_address=_city_field(section, "FOR SERVICE AT:", CITY_SERVICE_ADDRESS_PATTERN),
            billing_date=billing_date,
            period_start=period_start,
            period_end=period_end,
            consumption=CityOfKelownaParser._consumption(section),
            charges=CityOfKelownaParser._charges(section, billing_date),
            is_metered=True,
        )

    @staticmethod
    def _consumption(section: str) -> float:
        """Sum every meter line ending in "CM" (cubic metres)."""
        total = 0.0
        for raw in split_lines(section):
            line = raw.rstrip()
            if not line.upper().endswith("CM"):
                continue
            match = search(CityOfKelownaParser.LINE_END_CM_PATTERN, line)
            if match:
                total += parse_quantity(match.group(1))
        return total

    @staticmethod
    def _charges(section: str, billing_date: Optional[date]) -> Decimal:
        """
        Sum the trailing amounts on rows dated the billing date.

        Example: "Apr 6, 2025 WATER CONSUMPTION CHARGE 161.33"
        Rows carried from earlier statements (penalties) have other dates.
        """
        if billing_date is None:
            return Decimal("0.00")

        prefix = f"{billing_date:%b} {billing_date.day}, {billing_date.year}".lower()
        total = Decimal("0.00")
        for raw in split_lines(section):
            line = raw.strip()
            if not line.lower().startswith(prefix):
                continue
            match = search(CityOfKelownaParser.TRAILING_MONEY_PATTERN, line)
            if match:
                total += parse_amount(match.group(1))
        return total


class CityOfWilliamsLakeParser:
    """Parser for City of Williams Lake utility statements - metered water."""

    NAME_PATTERN = compile_pattern(r"OWNER:\s*(.*?)\s+Amoun", regex.IGNORECASE | regex.DOTALL)
    SERVICE_ADDRESS_PATTERN = compile_pattern(
        r"SERVICE ADDRESS:\s*(.*?)\s+Payments", regex.IGNORECASE
    )
    # "Jan 01/25 Mar 31/25"
    SERVICE_PERIOD_PATTERN = compile_pattern(
        r"([A-Za-z]{3}\s+\d{2}/\d{2})\s+([A-Za-z]{3}\s+\d{2}/\d{2})", regex.IGNORECASE
    )
    # "Mar 31/25 100482"
    BILLING_INFO_PATTERN = compile_pattern(r"^([A-Za-z]{3}\s+\d{2}/\d{2})\s+(\d+)$", regex.IGNORECASE)
    AMOUNT_DUE_PATTERN = compile_pattern(r"(-?\d[\d,]*\.\d{2})")
    CONSUMPTION_PATTERN = compile_pattern(r"(\d[\d,]*)\s+units", regex.IGNORECASE)

    DATE_FORMATS = ("%b %d/%y",)

    sections = staticmethod(single_section)
    context = staticmethod(empty_context)

    @staticmethod
    def extract(section: str, context: DocumentContext) -> Optional[BillData]:
        """
        Format: the billing date and account number sit two lines under
        their column captions.

            BILLING DATE ACCOUNT NUMBER
            UTILITY STATEMENT
            Mar 31/25 100482
        """
        if line_containing(section, "BILLING DATE ACCOUNT NUMBER") is None:
            return None

        billing_date = account_number = None
        info_line = line_after(section, "BILLING DATE ACCOUNT NUMBER", offset=2)
        if info_line:
            match = search(CityOfWilliamsLakeParser.BILLING_INFO_PATTERN, info_line)
            if match:
                billing_date = parse_date(match.group(1), CityOfWilliamsLakeParser.DATE_FORMATS)
                account_number = match.group(2).strip()

        period_start, period_end = CityOfWilliamsLakeParser._period(section)

        return BillData(
            usage_type=PROVIDER_USAGE_TYPES[BillProvider.CITY_OF_WILLIAMS_LAKE],
            account_number=account_number,
            name=_city_field(section, "OWNER:", CityOfWilliamsLakeParser.NAME_PATTERN),
            service_address=_city_field(
                section, "SERVICE ADDRESS:", CityOfWilliamsLakeParser.SERVICE_ADDRESS_PATTERN
            ),
            billing_date=billing_date,
            period_start=period_start,
            period_end=period_end,
            consumption=parse_quantity(
                _city_field(section, "units", CityOfWilliamsLakeParser.CONSUMPTION_PATTERN)
            ),
            charges=parse_amount(
                _city_field(section, "TOTAL CURRENT", CityOfWilliamsLakeParser.AMOUNT_DUE_PATTERN)
            ),
            is_metered=True,
        )

    @staticmethod
    def _period(section: str) -> Tuple[Optional[date], Optional[date]]:
        line = line_after(section, "SERVICE PERIOD")
        if line is None:
            return None, None
        match = search(CityOfWilliamsLakeParser.SERVICE_PERIOD_PATTERN, line)
        if not match:
            return None, None
        formats = CityOfWilliamsLakeParser.DATE_FORMATS
        return parse_date(match.group(1), formats), parse_date(match.group(2), formats)


# ============================================================================
# Registry and entry points
# ============================================================================

PROVIDER_PARSERS = MappingProxyType(
    {
        BillProvider.FORTISBC_ELEC: FortisBCElecParser,
        BillProvider.BC_HYDRO: BcHydroParser,
        BillProvider.ENMAX: EnmaxParser,
        BillProvider.DIRECT_ENERGY: DirectEnergyParser,
        BillProvider.CREATIVE_ENERGY: CreativeEnergyParser,
        BillProvider.CITY_OF_VANCOUVER: CityOfVancouverParser,
        BillProvider.CITY_OF_WILLIAMS_LAKE: CityOfWilliamsLakeParser,
        BillProvider.CITY_OF_KELOWNA: CityOfKelownaParser,
    }
)


def detect_provider(text: str) -> BillProvider:
    """
    Detect the bill provider from the document text.

    Args:
        text: Full text of the bill

    Returns:
        The first provider (in ``BILL_PROVIDER_KEYWORDS`` order) whose keywords
        all appear in the text

    Raises:
        InvalidBillTextError: text is empty or blank
        ProviderNotDetectedError: no provider's keywords all appear
    """
    if not text or not text.strip():
        raise InvalidBillTextError("Bill text cannot be empty")

    normalized = text.lower()
    for provider, keywords in BILL_PROVIDER_KEYWORDS.items():
        if all(keyword.lower() in normalized for keyword in keywords):
            logger.debug("Detected bill provider %s", provider.value)
            return provider

    raise ProviderNotDetectedError("Bill provider not detected")


def parse_bill_text(text: str) -> List[BillData]:
    """
    Extract every billed account or commodity from a bill's text.

    Args:
        text: Full text of the bill (LF or CRLF line breaks)

    Returns:
        One record per recognized section, in document order. An empty list
        means the provider was detected but no section could be read.
    """
    provider = detect_provider(text)
    parser_class = PROVIDER_PARSERS[provider]
    logger.info("Using %s parser", provider.value.replace("_", " ").title())

    text = normalize_newlines(text)
    sections = parser_class.sections(text)
    context = parser_class.context(text)
    logger.debug("Found %d section(s)", len(sections))

    records = []
    for index, section in enumerate(sections, 1):
        record = parser_class.extract(section, context)
        if record is None:
            logger.debug("Skipping section %d: no account number anchor", index)
            continue
        record.provider = provider
        records.append(record)

    return records
