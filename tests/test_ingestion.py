"""
Tests for format detection, cell normalisation and statement parsing.
"""

from datetime import date
from decimal import Decimal

import pytest

from bankrec.exceptions import ErrorCode, NoTransactionsFound
from bankrec.ingestion import BankFormat, StatementParser, detect_format
from bankrec.ingestion.normalize import (
    is_amount_like,
    is_date_like,
    parse_amount,
    parse_date,
    to_cents,
)
from bankrec.ingestion.statement_parser import supported_formats
from bankrec.models import TransactionType


@pytest.fixture
def parser(settings):
    return StatementParser(settings)


class TestNormalize:
    """Amount and date cell helpers."""

    @pytest.mark.parametrize("text,expected", [
        ("5000", Decimal("5000")),
        ("₹1,234.50", Decimal("1234.50")),
        ("Rs. 2,500", Decimal("2500")),
        ("(123.45)", Decimal("-123.45")),
        ("500.00 CR", Decimal("500.00")),
        ("-75.10", Decimal("-75.10")),
        ("abc", Decimal("0")),
        ("", Decimal("0")),
    ])
    def test_parse_amount(self, text, expected):
        assert parse_amount(text) == expected

    def test_to_cents_rounds_half_up(self):
        assert to_cents(Decimal("10.005")) == 1001
        assert to_cents(Decimal("5000")) == 500000

    @pytest.mark.parametrize("text,expected", [
        ("01/03/2024", date(2024, 3, 1)),
        ("15-08-2023", date(2023, 8, 15)),
        ("05/06/24", date(2024, 6, 5)),
        ("2024-03-01", date(2024, 3, 1)),
        ("31/02/2024", None),
        ("March 1", None),
        ("", None),
    ])
    def test_parse_date(self, text, expected):
        assert parse_date(text) == expected

    def test_date_and_amount_detection(self):
        assert is_date_like("01/03/2024")
        assert is_date_like("01Mar2024")
        assert not is_date_like("ACME")
        assert is_amount_like("1,500.00")
        assert not is_amount_like("01/03/2024")
        assert not is_amount_like("")


class TestFormatDetector:
    """Advisory bank layout detection."""

    def test_identifier_in_header(self):
        content = "HDFC Bank Statement\nDate,Narration,Amount\n"
        detection = detect_format(content, "hdfc.csv")
        assert detection.format == BankFormat.HDFC
        assert detection.confidence == 0.95

    def test_state_bank_identifier(self):
        detection = detect_format("STATE BANK OF INDIA\nTxn Date,Description\n")
        assert detection.format == BankFormat.SBI

    def test_generic_with_data_row(self):
        content = "Date,Description,Amount,Type,Balance\n01/03/2024,ACME PAYMENT,5000,credit,15000\n"
        detection = detect_format(content)
        assert detection.format == BankFormat.DEFAULT
        assert detection.confidence == 0.7

    def test_generic_without_data_row(self):
        detection = detect_format("foo,bar\nbaz,qux\n")
        assert detection.format == BankFormat.DEFAULT
        assert detection.confidence == 0.3

    def test_single_line_never_raises(self):
        detection = detect_format("just one line")
        assert detection.format == BankFormat.DEFAULT
        assert detection.confidence == 0.5

    def test_supported_formats_lists_every_bank(self):
        names = supported_formats()
        assert len(names) == len(BankFormat)
        assert any(n.startswith("AXIS") for n in names)


class TestStatementParser:
    """Template-free delimited statement parsing."""

    def test_single_credit_row(self, parser):
        content = (
            "Date,Description,Amount,Type,Balance\n"
            "01/03/2024,ACME PAYMENT,5000,credit,15000\n"
        )
        result = parser.parse(content, detect_format(content))

        assert len(result.records) == 1
        line = result.records[0]
        assert line.transaction_date == date(2024, 3, 1)
        assert line.amount_cents == 500000
        assert line.transaction_type == TransactionType.CREDIT
        assert line.balance_cents == 1500000
        assert line.description == "ACME PAYMENT"
        assert result.header_row == 0
        assert result.skipped_count == 0

    def test_debit_and_credit_columns(self, parser):
        content = (
            "Txn Date,Narration,Withdrawal,Deposit,Closing Balance\n"
            "05/03/2024,RENT MARCH,1200.00,,8800.00\n"
            "06/03/2024,SALARY,,5000.00,13800.00\n"
        )
        result = parser.parse(content)

        rent, salary = result.records
        assert rent.transaction_type == TransactionType.DEBIT
        assert rent.amount_cents == 120000
        assert salary.transaction_type == TransactionType.CREDIT
        assert salary.amount_cents == 500000
        assert result.total_debits_cents == 120000
        assert result.total_credits_cents == 500000

    def test_bank_preamble_before_header(self, parser):
        content = (
            "STATE BANK OF INDIA\n"
            "Txn Date,Value Date,Description,Ref No,Debit,Credit,Balance\n"
            "01/04/2024,01/04/2024,NEFT ACME,REF1,,25000.00,125000.00\n"
        )
        detection = detect_format(content)
        result = parser.parse(content, detection)

        assert detection.format == BankFormat.SBI
        assert result.header_row == 1
        line = result.records[0]
        assert line.description == "NEFT ACME"
        assert line.amount_cents == 2500000
        assert line.transaction_type == TransactionType.CREDIT
        assert line.balance_cents == 12500000

    def test_semicolon_delimiter_with_dr_cr_markers(self, parser):
        content = (
            "Date;Description;Amount;Type\n"
            "01/03/2024;ACME;1234.50;CR\n"
            "02/03/2024;VENDOR;99.99;DR\n"
        )
        result = parser.parse(content)

        assert result.delimiter == ";"
        assert [r.transaction_type for r in result.records] == [
            TransactionType.CREDIT,
            TransactionType.DEBIT,
        ]
        assert result.records[0].amount_cents == 123450

    def test_tab_delimiter_sign_gives_direction(self, parser):
        content = "Date\tDescription\tAmount\n01/03/2024\tBANK FEE\t-250.00\n"
        result = parser.parse(content)

        assert result.delimiter == "\t"
        line = result.records[0]
        assert line.transaction_type == TransactionType.DEBIT
        assert line.amount_cents == 25000

    def test_quoted_cells(self, parser):
        content = 'Date,Description,Amount,Type\n01/03/2024,"ACME, INC",5000,credit\n'
        result = parser.parse(content)
        assert result.records[0].description == "ACME, INC"

    def test_malformed_rows_are_skipped_not_fatal(self, parser):
        content = (
            "Date,Description,Amount,Type,Balance\n"
            "01/03/2024,FIRST,100,credit,100\n"
            "short,row\n"
            "02/03/2024,ZERO FEE,0,debit,100\n"
            "03/03/2024,SECOND,200,debit,-100\n"
        )
        result = parser.parse(content)

        assert [r.description for r in result.records] == ["FIRST", "SECOND"]
        assert result.skipped_count == 2
        assert len(result.warnings) == 2

    def test_unparseable_date_is_nulled(self, parser):
        content = (
            "Date,Description,Amount\n"
            "01/03/2024,GOOD,100\n"
            "31/02/2024,BAD DATE,200\n"
        )
        result = parser.parse(content)

        assert len(result.records) == 2
        assert result.records[1].transaction_date is None
        assert any("unparseable date" in w for w in result.warnings)

    def test_headerless_file_uses_positions(self, parser):
        content = (
            "01/03/2024,ACME,5000,credit,15000\n"
            "02/03/2024,BETA,300,debit,14700\n"
        )
        result = parser.parse(content)

        assert result.header_row is None
        assert len(result.records) == 2
        assert result.records[1].transaction_type == TransactionType.DEBIT

    def test_no_rows_raises(self, parser):
        with pytest.raises(NoTransactionsFound) as exc_info:
            parser.parse("Date,Description,Amount\n")
        assert exc_info.value.code == ErrorCode.NO_TRANSACTIONS_FOUND

    def test_iter_records_matches_parse(self, parser):
        content = (
            "Date,Description,Amount,Type,Balance\n"
            "01/03/2024,A,100,credit,100\n"
            "02/03/2024,B,200,debit,-100\n"
        )
        lazy = list(parser.iter_records(content))
        eager = parser.parse(content).records
        assert [(r.description, r.amount_cents) for r in lazy] == [
            (r.description, r.amount_cents) for r in eager
        ]

    def test_amount_column_never_taken_from_balance(self, parser):
        columns = parser.resolve_columns(
            ["Date", "Particulars", "Balance Amount", "Amount"],
            detect_format("x").profile,
        )
        assert columns.balance_col == 2
        assert columns.amount_col == 3

    def test_opening_balance_row_below_header(self, parser):
        content = (
            "Date,Description,Amount,Type,Balance\n"
            ",OPENING BALANCE,,,10000\n"
            "01/03/2024,ACME PAYMENT,5000,credit,15000\n"
        )
        result = parser.parse(content)

        assert result.header_row == 0
        assert result.column_mapping.amount_col == 2
        assert [r.description for r in result.records] == ["ACME PAYMENT"]
        assert result.records[0].amount_cents == 500000
        assert result.skipped_count == 1

    def test_unreadable_first_date_keeps_header(self, parser):
        content = (
            "Date,Description,Amount,Type,Balance\n"
            "31-Mar-2024,ACME PAYMENT,5000,credit,15000\n"
            "01/04/2024,BETA,300,debit,14700\n"
        )
        result = parser.parse(content)

        assert result.header_row == 0
        assert [r.description for r in result.records] == ["ACME PAYMENT", "BETA"]
        assert result.records[0].transaction_date is None
        assert result.records[1].transaction_date == date(2024, 4, 1)
        assert any("unparseable date" in w for w in result.warnings)

    def test_dr_cr_suffix_on_amount_gives_direction(self, parser):
        content = (
            "Date,Description,Amount,Balance\n"
            '01/03/2024,RENT,"1,000.00 Dr",14000\n'
            '02/03/2024,REFUND,"250.00 Cr",14250\n'
        )
        rent, refund = parser.parse(content).records

        assert rent.transaction_type == TransactionType.DEBIT
        assert rent.amount_cents == 100000
        assert refund.transaction_type == TransactionType.CREDIT
        assert refund.amount_cents == 25000
