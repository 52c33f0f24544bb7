"""
Main entry point for utility bill documents (PDF or extracted text)
"""

import json
import logging
from pathlib import Path
import sys
from typing import List
import warnings

import pdfplumber

from bill_models import BillData
from provider_parsers import detect_provider, parse_bill_text

# Suppress Pillow warnings about invalid ICC profiles
warnings.filterwarnings("ignore", message=".*Invalid profile.*")
warnings.filterwarnings("ignore", category=UserWarning, module="PIL")

# Suppress logging noise from pdfminer
logging.getLogger("pdfminer").setLevel(logging.ERROR)

logger = logging.getLogger(__name__)

# Files with these suffixes are read as already-extracted text
TEXT_SUFFIXES = {".txt", ".text"}


def read_document_text(path: Path) -> str:
    """
    Return the full text of a bill.

    PDFs are read page by page with pdfplumber and joined with newlines so
    that anchors spanning a page break still sit on their own lines.
    """
    if path.suffix.lower() in TEXT_SUFFIXES:
        return path.read_text(encoding="utf-8")

    with pdfplumber.open(path) as pdf:
        pages = [page.extract_text() or "" for page in pdf.pages]
    logger.debug("Extracted text from %d page(s) of %s", len(pages), path.name)
    return "\n".join(pages)


class BillParser:
    """Parse a utility bill document into normalized billing records."""

    def __init__(self, bill_path: str):
        self.bill_path = Path(bill_path)
        if not self.bill_path.exists():
            raise FileNotFoundError(f"Bill not found: {bill_path}")

    def read_text(self) -> str:
        return read_document_text(self.bill_path)

    def extract_bills(self) -> List[BillData]:
        """Detect the provider and extract one record per billed section."""
        return parse_bill_text(self.read_text())


# ============================================================================
# Command Line Interface
# ============================================================================


def main():
    """
    Usage: parse_bill.py <bill.pdf|bill.txt> <output_json>

    Output JSON format:
    {
        "success": true,
        "provider": "bc_hydro",
        "records": [
            {"account_number": "12345678901", "usage_type": "electricity", ...},
            ...
        ],
        "record_count": 2
    }

    On failure the output holds {"success": false, "error": ..., "error_type": ...}
    and the exit status is 1.
    """
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    if len(sys.argv) != 3:
        print("Usage: parse_bill.py <bill.pdf|bill.txt> <output_json>", file=sys.stderr)
        sys.exit(1)

    bill_path = sys.argv[1]
    output_path = sys.argv[2]

    try:
        parser = BillParser(bill_path)
        text = parser.read_text()

        records = parse_bill_text(text)
        provider = records[0].provider if records else detect_provider(text)

        result = {
            "success": True,
            "provider": provider.value,
            "records": [record.to_dict() for record in records],
            "record_count": len(records),
        }

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(result, f, indent=2)

    except (FileNotFoundError, OSError, ValueError, KeyError) as e:
        error_result = {
            "success": False,
            "error": str(e),
            "error_type": type(e).__name__,
        }

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(error_result, f, indent=2)

        print(f"Error parsing bill: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
