"""
Parser y validador de imports (CSV / JSON) y generador de export CSV.

- CSV: cabecera obligatoria con una columna "date"; las columnas que contienen
  "total" son el total; el resto son nombres de wallet. Separador , o ;
- Fechas: ISO (YYYY-MM-DD), DD/MM/YYYY y DD-MM-YYYY. Día primero SIEMPRE;
  nunca se adivina MM/DD. Con date_format explícito se usa solo ese formato.
- La validación nunca lanza por fila: devuelve {valid, errors} con el índice de fila
"""

import csv
import datetime as dt
import io
import json
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Literal

import structlog
from pydantic import ValidationError as PydanticValidationError

from portfolio_vision.core.exceptions import ValidationError
from portfolio_vision.schemas.domain import BackupPayload

logger = structlog.get_logger(__name__)

ZERO = Decimal("0")
CENTS = Decimal("0.01")

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_DAY_FIRST = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4})$")
_CURRENCY_NOISE = re.compile(r"[$€£¥\s]")


# ---------------------------------------------------------------------------
# Tipos
# ---------------------------------------------------------------------------


@dataclass
class ImportedSnapshot:
    date: dt.date | None                      # None = fecha no parseable
    wallets: dict[str, Decimal] = field(default_factory=dict)
    total: Decimal | None = None
    raw_date: str = ""


@dataclass
class ImportValidation:
    valid: list[ImportedSnapshot]
    errors: list[str]


@dataclass
class ParsedJson:
    kind: Literal["full", "snapshots"]
    backup: BackupPayload | None = None
    snapshots: list[ImportedSnapshot] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Primitivas
# ---------------------------------------------------------------------------


def parse_date(value: str | None, date_format: str | None = None) -> dt.date | None:
    """Normaliza una fecha a date. Devuelve None si no es parseable (nunca lanza)."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    if date_format:
        try:
            return dt.datetime.strptime(text, date_format).date()
        except ValueError:
            return None

    # ISO, con o sin hora ("2024-01-02T10:00:00Z")
    iso_match = _ISO_DATE.match(text[:10])
    if iso_match:
        year, month, day = (int(part) for part in iso_match.groups())
    else:
        day_first = _DAY_FIRST.match(text)
        if not day_first:
            return None
        day, month, year = (int(part) for part in day_first.groups())

    try:
        return dt.date(year, month, day)
    except ValueError:
        return None


def parse_number(value: Any) -> Decimal | None:
    """
    Importe a Decimal: quita símbolos de moneda y espacios; la coma decimal pasa a punto.
    "1.234,56" se interpreta con la última marca como separador decimal.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, Decimal)):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))

    cleaned = _CURRENCY_NOISE.sub("", str(value))
    if not cleaned:
        return None
    if "," in cleaned and "." in cleaned:
        # El separador que aparece el último es el decimal
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    else:
        cleaned = cleaned.replace(",", ".")

    try:
        number = Decimal(cleaned)
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------


def _sniff_delimiter(header_line: str) -> str:
    return ";" if header_line.count(";") > header_line.count(",") else ","


def parse_csv(content: str, date_format: str | None = None) -> list[ImportedSnapshot]:
    """
    Filas del CSV → ImportedSnapshot. Las filas con fecha inválida se conservan
    con date=None para que validate_imported_snapshots las reporte por índice.
    Lanza ValidationError si falta la columna de fecha.
    """
    text = content.strip().lstrip("\ufeff")
    if not text:
        return []

    lines = text.splitlines()
    reader = csv.reader(io.StringIO(text), delimiter=_sniff_delimiter(lines[0]))
    rows = [[cell.strip() for cell in row] for row in reader]
    if len(rows) < 2:
        return []

    headers = rows[0]
    date_index = next((i for i, h in enumerate(headers) if "date" in h.lower()), None)
    if date_index is None:
        raise ValidationError('CSV must have a "date" column')

    total_index = next(
        (i for i, h in enumerate(headers) if i != date_index and "total" in h.lower()), None
    )
    wallet_columns = [
        (i, h) for i, h in enumerate(headers) if i != date_index and "total" not in h.lower() and h
    ]

    snapshots: list[ImportedSnapshot] = []
    for row in rows[1:]:
        if not any(row):
            continue
        raw_date = row[date_index] if date_index < len(row) else ""
        wallets: dict[str, Decimal] = {}
        for index, name in wallet_columns:
            if index < len(row) and row[index]:
                amount = parse_number(row[index])
                if amount is not None:
                    wallets[name] = amount
        total = None
        if total_index is not None and total_index < len(row):
            total = parse_number(row[total_index])
        if total is None and wallets:
            total = sum(wallets.values(), ZERO)
        snapshots.append(
            ImportedSnapshot(date=parse_date(raw_date, date_format), wallets=wallets, total=total, raw_date=raw_date)
        )

    logger.debug("import.csv_parsed", rows=len(snapshots), wallets=[name for _, name in wallet_columns])
    return snapshots


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


def _snapshot_from_item(item: Any, date_format: str | None) -> ImportedSnapshot:
    if not isinstance(item, dict):
        return ImportedSnapshot(date=None, raw_date=str(item))
    raw_date = str(item.get("date", ""))
    wallets: dict[str, Decimal] = {}
    raw_wallets = item.get("wallets") or {}
    if isinstance(raw_wallets, dict):
        for name, value in raw_wallets.items():
            amount = parse_number(value)
            if amount is not None:
                wallets[str(name)] = amount
    total = parse_number(item.get("total"))
    if total is None and wallets:
        total = sum(wallets.values(), ZERO)
    return ImportedSnapshot(date=parse_date(raw_date, date_format), wallets=wallets, total=total, raw_date=raw_date)


def parse_json(content: str, date_format: str | None = None) -> ParsedJson:
    """
    Detecta el formato:
    - backup completo: objeto con portfolios, wallets y snapshots
    - lista simple: [{"date": ..., "wallets": {nombre: valor}, "total": ...}]
    Lanza ValidationError si el JSON no es ninguno de los dos.
    """
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Invalid JSON: {exc.msg}") from exc

    if isinstance(data, dict) and all(key in data for key in ("portfolios", "wallets", "snapshots")):
        try:
            backup = BackupPayload.model_validate(data)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid backup payload: {exc.error_count()} errors") from exc
        return ParsedJson(kind="full", backup=backup)

    if isinstance(data, list):
        return ParsedJson(kind="snapshots", snapshots=[_snapshot_from_item(item, date_format) for item in data])

    raise ValidationError("Invalid JSON format")


# ---------------------------------------------------------------------------
# Validación
# ---------------------------------------------------------------------------


def validate_imported_snapshots(snapshots: Sequence[ImportedSnapshot]) -> ImportValidation:
    """Partición {valid, errors}. Los mensajes usan índice de fila 1-based."""
    valid: list[ImportedSnapshot] = []
    errors: list[str] = []
    for index, snapshot in enumerate(snapshots, start=1):
        if snapshot.date is None:
            errors.append(f"Row {index}: Invalid date")
            continue
        if not snapshot.wallets:
            errors.append(f"Row {index}: No wallet data")
            continue
        valid.append(snapshot)
    if errors:
        logger.info("import.validation_errors", valid=len(valid), errors=len(errors))
    return ImportValidation(valid=valid, errors=errors)


# ---------------------------------------------------------------------------
# Export CSV
# ---------------------------------------------------------------------------


def _money(value: Decimal) -> str:
    return str(value.quantize(CENTS, ROUND_HALF_UP))


def generate_csv(rows: Iterable[tuple[dt.date, dict[str, Decimal], Decimal]]) -> str:
    """
    rows: (fecha, {wallet: valor}, total). Cabecera: Date, wallets ordenadas, Total.
    Una wallet ausente en una fila se escribe como 0.00.
    """
    materialized = list(rows)
    if not materialized:
        return ""

    wallet_names = sorted({name for _, wallets, _ in materialized for name in wallets})
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["Date", *wallet_names, "Total"])
    for date, wallets, total in materialized:
        writer.writerow(
            [date.isoformat(), *(_money(wallets.get(name, ZERO)) for name in wallet_names), _money(total)]
        )
    return buffer.getvalue().rstrip("\n")
