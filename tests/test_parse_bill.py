"""
Tests for the document reader and the JSON command line interface.
"""

import json
import sys
from pathlib import Path

import pytest

import parse_bill
from bill_models import BillProvider
from parse_bill import BillParser, main, read_document_text

FIXTURES_DIR = Path(__file__).parent / "fixtures"


class FakePage:
    def __init__(self, text):
        self._text = text

    def extract_text(self):
        return self._text


class FakePdf:
    def __init__(self, pages):
        self.pages = [FakePage(text) for text in pages]

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False


def run_cli(monkeypatch, *args):
    monkeypatch.setattr(sys, "argv", ["parse_bill.py", *[str(a) for a in args]])
    main()


# =============================================================================
# DOCUMENT READING
# =============================================================================


def test_text_file_is_read_directly():
    text = read_document_text(FIXTURES_DIR / "fortisbc.txt")
    assert "fortisbc.com" in text


def test_pdf_pages_are_joined(monkeypatch, tmp_path):
    pdf_path = tmp_path / "bill.pdf"
    pdf_path.write_bytes(b"%PDF-1.4")
    monkeypatch.setattr(
        parse_bill.pdfplumber,
        "open",
        lambda path: FakePdf(["bchydro.com\nPage one", None, "Page three"]),
    )

    assert read_document_text(pdf_path) == "bchydro.com\nPage one\n\nPage three"


def test_missing_bill_file():
    with pytest.raises(FileNotFoundError, match="Bill not found"):
        BillParser("/nonexistent/bill.pdf")


def test_bill_parser_extracts_records():
    records = BillParser(str(FIXTURES_DIR / "enmax.txt")).extract_bills()
    assert [r.provider for r in records] == [BillProvider.ENMAX, BillProvider.ENMAX]


# =============================================================================
# COMMAND LINE
# =============================================================================


def test_success_output(monkeypatch, tmp_path):
    output = tmp_path / "out.json"
    run_cli(monkeypatch, FIXTURES_DIR / "bc_hydro_consolidated.txt", output)

    result = json.loads(output.read_text(encoding="utf-8"))
    assert result["success"] is True
    assert result["provider"] == "bc_hydro"
    assert result["record_count"] == 2
    first = result["records"][0]
    assert first["account_number"] == "12345678901"
    assert first["usage_unit"] == "kWh"
    assert first["charges"] == "1155.18"
    assert first["period_start"] == "2025-01-01"


def test_provider_taken_from_records(monkeypatch, tmp_path):
    calls = []
    detect = parse_bill.detect_provider

    def counting_detect(text):
        calls.append(text)
        return detect(text)

    monkeypatch.setattr(parse_bill, "detect_provider", counting_detect)
    output = tmp_path / "out.json"
    run_cli(monkeypatch, FIXTURES_DIR / "enmax.txt", output)

    assert json.loads(output.read_text(encoding="utf-8"))["provider"] == "enmax"
    assert calls == []


def test_provider_reported_without_records(monkeypatch, tmp_path):
    bill = tmp_path / "fortis.txt"
    bill.write_text("fortisbc.com\nAmount due: $5.00", encoding="utf-8")
    output = tmp_path / "out.json"
    run_cli(monkeypatch, bill, output)

    result = json.loads(output.read_text(encoding="utf-8"))
    assert result["provider"] == "fortisbc_elec"
    assert result["record_count"] == 0
    assert result["records"] == []


def test_blank_document(monkeypatch, tmp_path):
    bill = tmp_path / "blank.txt"
    bill.write_text("   \n", encoding="utf-8")
    output = tmp_path / "out.json"

    with pytest.raises(SystemExit) as exc_info:
        run_cli(monkeypatch, bill, output)

    assert exc_info.value.code == 1
    result = json.loads(output.read_text(encoding="utf-8"))
    assert result == {
        "success": False,
        "error": "Bill text cannot be empty",
        "error_type": "InvalidBillTextError",
    }


def test_unknown_provider(monkeypatch, tmp_path, capsys):
    bill = tmp_path / "other.txt"
    bill.write_text("ACME Power\nAmount due $5.00", encoding="utf-8")
    output = tmp_path / "out.json"

    with pytest.raises(SystemExit):
        run_cli(monkeypatch, bill, output)

    result = json.loads(output.read_text(encoding="utf-8"))
    assert result["error_type"] == "ProviderNotDetectedError"
    assert "Error parsing bill" in capsys.readouterr().err


def test_missing_input(monkeypatch, tmp_path):
    output = tmp_path / "out.json"

    with pytest.raises(SystemExit) as exc_info:
        run_cli(monkeypatch, tmp_path / "missing.pdf", output)

    assert exc_info.value.code == 1
    assert json.loads(output.read_text(encoding="utf-8"))["error_type"] == "FileNotFoundError"


def test_usage_message(monkeypatch, capsys):
    with pytest.raises(SystemExit) as exc_info:
        run_cli(monkeypatch, "only-one-arg")

    assert exc_info.value.code == 1
    assert "Usage:" in capsys.readouterr().err
