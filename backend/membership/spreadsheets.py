from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
import io
from pathlib import Path
from typing import Iterable

import numpy as np
import pandas as pd

CSV_ENCODINGS = [
    "utf-8-sig",
    "utf-8",
    "gb18030",
    "cp932",
    "latin-1",
]

# canonical field -> column header used by the chapter's weekly export
DEFAULT_WEEKLY_MAPPING: dict[str, str] = {
    "member_name": "名称",
    "identity": "身份",
    "attendance": "出席情况",
    "provide_inside_ref": "提供内部引荐",
    "provide_outside_ref": "提供外部引荐",
    "received_inside_ref": "收到内部引荐",
    "received_outside_ref": "收到外部引荐",
    "visitors": "来宾",
    "one_to_one_visit": "一对一会面",
    "tyfcb": "交易价值",
    "ceu": "CEU",
}

ACTIVITY_FIELDS = list(DEFAULT_WEEKLY_MAPPING)
REQUIRED_ACTIVITY_FIELDS = ["member_name", "attendance"]

INTEGER_ACTIVITY_FIELDS = [
    "provide_inside_ref",
    "provide_outside_ref",
    "received_inside_ref",
    "received_outside_ref",
    "visitors",
    "one_to_one_visit",
    "ceu",
]

# Literal values for canonical fields left unset after the explicit mapping pass.
ACTIVITY_FIELD_DEFAULTS: dict[str, object] = {
    "identity": None,
    **{name: 0 for name in INTEGER_ACTIVITY_FIELDS},
    "tyfcb": 0,
}

MEMBER_REQUIRED_COLUMNS = ["Phone_ID", "Member_Number", "Name", "Industry", "Join_Date", "Status"]


class SpreadsheetError(Exception):
    """Raised when an uploaded spreadsheet cannot be read."""


@dataclass(frozen=True)
class ExcelColumn:
    name: str
    index: int

    def as_dict(self) -> dict:
        return {"name": self.name, "index": self.index}


@dataclass(frozen=True)
class ColumnMapping:
    excel_column: str
    database_field: str


@dataclass
class RowValidation:
    valid: bool
    errors: list[str] = field(default_factory=list)


def read_spreadsheet(source, *, filename: str | None = None) -> list[dict]:
    """Read the first sheet of an Excel (or CSV) file into a list of row dicts.

    ``source`` is a path or a binary file object such as a Django upload.
    Blank cells come back as ``None`` and fully blank rows are skipped.
    """
    name = filename or getattr(source, "name", None) or str(source)
    suffix = Path(str(name)).suffix.lower()

    try:
        if suffix == ".csv":
            df = _read_csv_with_fallback(source)
        else:
            df = pd.read_excel(source, sheet_name=0, engine="openpyxl")
    except SpreadsheetError:
        raise
    except Exception as exc:  # noqa: BLE001 - openpyxl/zipfile raise many types
        raise SpreadsheetError(f"Failed to read spreadsheet {name}: {exc}") from exc

    df = df.rename(columns=lambda col: str(col).lstrip("\ufeff"))
    df = df.dropna(how="all")

    rows = []
    for record in df.to_dict(orient="records"):
        rows.append({str(key): _to_native(value) for key, value in record.items()})
    return rows


def _read_csv_with_fallback(source) -> pd.DataFrame:
    if isinstance(source, (str, Path)):
        raw = Path(source).read_bytes()
    else:
        raw = source.read()

    last_error = None
    for enc in CSV_ENCODINGS:
        try:
            text = raw.decode(enc, errors="strict")
        except UnicodeDecodeError as exc:
            last_error = exc
            continue
        return pd.read_csv(io.StringIO(text))

    raise SpreadsheetError(f"Failed to detect CSV encoding. last_error={last_error}")


def _to_native(value):
    if value is None:
        return None
    if isinstance(value, float) and np.isnan(value):
        return None
    if value is pd.NaT:
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if hasattr(value, "item"):
        value = value.item()
        if isinstance(value, float) and np.isnan(value):
            return None
    return value


def get_excel_columns(rows: list[dict]) -> list[ExcelColumn]:
    if not rows:
        return []
    return [ExcelColumn(name=name, index=index) for index, name in enumerate(rows[0].keys())]


def mapping_pairs(mapping: dict[str, str]) -> list[ColumnMapping]:
    """Convert ``{canonical field: column header}`` into mapping pairs."""
    return [
        ColumnMapping(excel_column=excel_column, database_field=database_field)
        for database_field, excel_column in mapping.items()
    ]


def normalize_row(
    row: dict,
    mapping: Iterable[ColumnMapping],
    defaults: dict[str, object] | None = None,
) -> dict:
    """Rename a raw row into canonical fields.

    Explicit pairs copy the raw value found under their header (``None`` when
    the header is missing from the row). Any field named in ``defaults`` that
    is still unset afterwards receives the literal default value. Values are
    not coerced here.
    """
    mapped: dict[str, object] = {}
    for pair in mapping:
        mapped[pair.database_field] = row.get(pair.excel_column)

    for database_field, value in (defaults or {}).items():
        if mapped.get(database_field) is None:
            mapped[database_field] = value
    return mapped


def validate_activity_row(row: dict) -> RowValidation:
    """Required-field check on a raw row that still carries the export's headers."""
    errors = []
    if not row.get(DEFAULT_WEEKLY_MAPPING["member_name"]):
        errors.append("名称 (Name) is required")
    if not row.get(DEFAULT_WEEKLY_MAPPING["attendance"]):
        errors.append("出席情况 (Attendance) is required")
    return RowValidation(valid=not errors, errors=errors)


def validate_mapped_activity_row(record: dict) -> RowValidation:
    """Required-field check on a canonical record."""
    errors = [f"{name} is required" for name in REQUIRED_ACTIVITY_FIELDS if not record.get(name)]
    return RowValidation(valid=not errors, errors=errors)


def validate_member_row(row: dict) -> RowValidation:
    errors = [f"{name} is required" for name in MEMBER_REQUIRED_COLUMNS if not row.get(name)]
    return RowValidation(valid=not errors, errors=errors)


def auto_map_columns(columns: Iterable[ExcelColumn | str]) -> dict[str, str]:
    """Suggest ``{canonical field: header}`` for headers that match the default export."""
    by_header = {header: name for name, header in DEFAULT_WEEKLY_MAPPING.items()}
    suggested = {}
    for column in columns:
        header = column.name if isinstance(column, ExcelColumn) else str(column)
        database_field = by_header.get(header)
        if database_field:
            suggested[database_field] = header
    return suggested


def to_int(value) -> int:
    """Blank, missing and non-numeric cells count as zero."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, str):
        value = value.strip().replace(",", "")
        if not value:
            return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not np.isfinite(number):
        return 0
    return int(number)


def to_amount(value) -> Decimal:
    """Monetary cell as a non-negative Decimal with two places."""
    if value is None or isinstance(value, bool):
        return Decimal("0.00")
    if isinstance(value, str):
        value = value.strip().replace(",", "")
        if not value:
            return Decimal("0.00")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0.00")
    if not amount.is_finite() or amount < 0:
        return Decimal("0.00")
    return amount.quantize(Decimal("0.01"))


def to_text(value) -> str | None:
    """Cell as text; integral floats lose their ``.0`` (phone numbers, ids)."""
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.date().isoformat()
    return str(value)
