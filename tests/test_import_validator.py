"""
Tests del parser de imports (CSV / JSON) y del export CSV.
No requieren base de datos.
"""

import json
import uuid
from datetime import date
from decimal import Decimal

import pytest

from portfolio_vision.core.exceptions import ValidationError
from portfolio_vision.schemas.domain import legacy_uuid
from portfolio_vision.services.import_validator import (
    ImportedSnapshot,
    generate_csv,
    parse_csv,
    parse_date,
    parse_json,
    parse_number,
    validate_imported_snapshots,
)

# ===========================================================================
# Tests: primitivas
# ===========================================================================


class TestParseDate:
    def test_iso(self):
        assert parse_date("2024-01-02") == date(2024, 1, 2)

    def test_iso_with_time(self):
        assert parse_date("2024-01-02T10:30:00Z") == date(2024, 1, 2)

    def test_day_first_slash(self):
        assert parse_date("02/01/2024") == date(2024, 1, 2)

    def test_day_first_dash_single_digits(self):
        assert parse_date("2-1-2024") == date(2024, 1, 2)

    def test_month_first_is_never_guessed(self):
        # 01/13/2024 solo tendría sentido como MM/DD → inválida
        assert parse_date("01/13/2024") is None

    def test_explicit_format(self):
        assert parse_date("01/13/2024", date_format="%m/%d/%Y") == date(2024, 1, 13)

    def test_garbage_returns_none(self):
        assert parse_date("not-a-date") is None
        assert parse_date("") is None
        assert parse_date(None) is None

    def test_impossible_date_returns_none(self):
        assert parse_date("2024-02-30") is None


class TestParseNumber:
    def test_currency_and_spaces(self):
        assert parse_number("$ 1 234.50") == Decimal("1234.50")

    def test_decimal_comma(self):
        assert parse_number("1234,56") == Decimal("1234.56")

    def test_european_thousands(self):
        assert parse_number("1.234,56 €") == Decimal("1234.56")

    def test_us_thousands(self):
        assert parse_number("1,234.56") == Decimal("1234.56")

    def test_numeric_types(self):
        assert parse_number(10) == Decimal("10")
        assert parse_number(0.1) == Decimal("0.1")

    def test_invalid(self):
        assert parse_number("abc") is None
        assert parse_number(None) is None
        assert parse_number(True) is None


# ===========================================================================
# Tests: CSV
# ===========================================================================


class TestParseCsv:
    def test_wallet_columns_and_total(self):
        content = "Date,Main,Cold,Total\n2024-01-01,600,400,1000\n2024-01-02,700,400,1100\n"
        rows = parse_csv(content)

        assert len(rows) == 2
        assert rows[0].date == date(2024, 1, 1)
        assert rows[0].wallets == {"Main": Decimal("600"), "Cold": Decimal("400")}
        assert rows[1].total == Decimal("1100")

    def test_semicolon_delimiter_and_decimal_comma(self):
        content = "date;Main;Cold\n01/02/2024;600,50;399,50\n"
        rows = parse_csv(content)

        assert rows[0].date == date(2024, 2, 1)
        assert rows[0].wallets["Main"] == Decimal("600.50")
        # Sin columna total: suma de wallets
        assert rows[0].total == Decimal("1000.00")

    def test_missing_date_column_raises(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_csv("Main,Cold\n1,2\n")
        assert exc_info.value.message == 'CSV must have a "date" column'

    def test_invalid_date_row_is_kept_for_reporting(self):
        content = "Date,Main\n2024-01-01,100\n2024-01-02,200\nnot-a-date,300\n"
        rows = parse_csv(content)

        assert len(rows) == 3
        assert rows[2].date is None
        assert rows[2].raw_date == "not-a-date"

    def test_header_only_returns_empty(self):
        assert parse_csv("Date,Main\n") == []

    def test_bom_is_ignored(self):
        rows = parse_csv("\ufeffDate,Main\n2024-01-01,100\n")
        assert rows[0].date == date(2024, 1, 1)


# ===========================================================================
# Tests: JSON
# ===========================================================================


class TestParseJson:
    def test_snapshot_list(self):
        content = json.dumps([{"date": "2024-01-01", "wallets": {"Main": "100", "Cold": 50}}])
        parsed = parse_json(content)

        assert parsed.kind == "snapshots"
        assert parsed.snapshots[0].wallets == {"Main": Decimal("100"), "Cold": Decimal("50")}
        assert parsed.snapshots[0].total == Decimal("150")

    def test_full_backup(self):
        portfolio_id = str(uuid.uuid4())
        content = json.dumps(
            {
                "version": "2.0",
                "portfolios": [{"id": portfolio_id, "name": "Main"}],
                "wallets": [],
                "snapshots": [],
            }
        )
        parsed = parse_json(content)

        assert parsed.kind == "full"
        assert parsed.backup.portfolios[0].name == "Main"
        assert str(parsed.backup.portfolios[0].id) == portfolio_id

    def test_v1_export_with_camel_case_and_text_ids(self):
        content = json.dumps(
            {
                "portfolios": [{"id": "default", "name": "Main", "createdAt": "2024-01-01T00:00:00.000Z"}],
                "wallets": [{"id": "w-cold", "portfolioId": "default", "name": "Cold", "color": "#22c55e"}],
                "snapshots": [
                    {
                        "id": "s-1",
                        "portfolioId": "default",
                        "date": "2024-01-01",
                        "walletBalances": [{"walletId": "w-cold", "valueUsd": 1000}],
                        "totalUsd": 1000,
                        "variationPercent": 0,
                        "variationUsd": 0,
                    }
                ],
                "exportedAt": "2024-01-02T10:00:00.000Z",
                "version": "1.0",
            }
        )
        parsed = parse_json(content)

        backup = parsed.backup
        assert parsed.kind == "full"
        assert backup.version == "1.0"
        assert backup.portfolios[0].id == legacy_uuid("default")
        assert backup.wallets[0].portfolio_id == backup.portfolios[0].id
        assert backup.snapshots[0].wallet_balances[0].wallet_id == backup.wallets[0].id
        assert backup.snapshots[0].total_usd == Decimal("1000")
        assert backup.exported_at is not None

    def test_uuid_ids_are_kept_as_is(self):
        portfolio_id = uuid.uuid4()

        assert legacy_uuid(str(portfolio_id)) == portfolio_id
        assert legacy_uuid("default") == legacy_uuid("default")
        assert legacy_uuid("default") != legacy_uuid("other")

    def test_unknown_shape_raises(self):
        with pytest.raises(ValidationError):
            parse_json(json.dumps({"foo": "bar"}))

    def test_malformed_json_raises(self):
        with pytest.raises(ValidationError):
            parse_json("{not json")


# ===========================================================================
# Tests: validación
# ===========================================================================


class TestValidateImportedSnapshots:
    def test_reports_invalid_date_with_one_based_row(self):
        rows = parse_csv("Date,Main\n2024-01-01,100\n2024-01-02,200\nnot-a-date,300\n")
        result = validate_imported_snapshots(rows)

        assert len(result.valid) == 2
        assert result.errors == ["Row 3: Invalid date"]

    def test_reports_rows_without_wallet_data(self):
        rows = [ImportedSnapshot(date=date(2024, 1, 1), wallets={})]
        result = validate_imported_snapshots(rows)

        assert result.valid == []
        assert result.errors == ["Row 1: No wallet data"]

    def test_never_raises_on_empty_input(self):
        result = validate_imported_snapshots([])
        assert result.valid == []
        assert result.errors == []


# ===========================================================================
# Tests: export CSV
# ===========================================================================


class TestGenerateCsv:
    def test_header_sorted_wallets_and_two_decimals(self):
        rows = [
            (date(2024, 1, 1), {"Main": Decimal("600"), "Cold": Decimal("400")}, Decimal("1000")),
            (date(2024, 1, 2), {"Main": Decimal("700.005")}, Decimal("700.005")),
        ]
        content = generate_csv(rows)

        assert content.split("\n") == [
            "Date,Cold,Main,Total",
            "2024-01-01,400.00,600.00,1000.00",
            "2024-01-02,0.00,700.01,700.01",
        ]

    def test_empty(self):
        assert generate_csv([]) == ""

    def test_export_can_be_reimported(self):
        rows = [(date(2024, 1, 1), {"Main": Decimal("600")}, Decimal("600"))]
        parsed = parse_csv(generate_csv(rows))

        assert parsed[0].date == date(2024, 1, 1)
        assert parsed[0].wallets == {"Main": Decimal("600.00")}
        assert parsed[0].total == Decimal("600.00")
