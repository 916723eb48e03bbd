"""
Normalization of DIVI register CSV rows.

The register changed its export several times. Columns came and went, so
the header of each file decides which fields are read. Every record comes
out with the same keys, see FIELDS.

Missing values: an empty optional numeric cell becomes None (JSON null).
A required one rejects the row. Zero is never made up.
"""
from __future__ import annotations

import re
from datetime import date, datetime
from typing import Iterable, Sequence

from common.errors import SchemaError

FIELDS = (
    "state",
    "ags",
    "num_report_areas",
    "cases_current",
    "cases_ventilated",
    "num_locations",
    "beds_available",
    "beds_occupied",
    "timestamp",
    "beds_occupied_adults",
    "beds_available_adults",
)

# header cell -> canonical column name
HEADER_MAP = {
    "bundesland": "bundesland",
    "gemeindeschluessel": "gemeindeschluessel",
    "kreis": "kreis",
    "anzahl_meldebereiche": "anzahl_meldebereiche",
    "faelle_covid_aktuell": "faelle_covid_aktuell",
    "faelle_covid_aktuell_invasiv_beatmet": "faelle_covid_aktuell_invasiv_beatmet",
    "faelle_covid_aktuell_beatmet": "faelle_covid_aktuell_beatmet",
    "anzahl_standorte": "anzahl_standorte",
    "betten_frei": "betten_frei",
    "betten_belegt": "betten_belegt",
    "daten_stand": "daten_stand",
    "betten_belegt_nur_erwachsen": "betten_belegt_nur_erwachsen",
    "betten_frei_nur_erwachsen": "betten_frei_nur_erwachsen",
}

REQUIRED = ("anzahl_standorte", "betten_frei", "betten_belegt")

MISSING = {"", "na", "nan", "null", "none", "-"}

TIMESTAMP_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M",
    "%d.%m.%Y %H:%M:%S",
    "%d.%m.%Y %H:%M",
    "%Y-%m-%d",
)

_GROUPED = re.compile(r"^[0-9]{1,3}([,_ ][0-9]{3})+$")
_DECIMAL = re.compile(r"^([0-9]+)(\.[0-9]*)?$")
_TZ_SUFFIX = re.compile(r"(Z|[+-]\d{2}:?\d{2})$")
_URL_STAMP = re.compile(r"(\d{4})-(\d{2})-(\d{2})-(\d{2})-(\d{2})")


def _norm(s: str) -> str:
    return (s or "").replace("\ufeff", "").strip().lower()


class Header:
    """Column positions of one CSV file, resolved from its header row."""

    def __init__(self, cells: Sequence[str]):
        self.width = len(cells)
        self.columns: dict[str, int] = {}
        for i, cell in enumerate(cells):
            key = HEADER_MAP.get(_norm(cell))
            if key and key not in self.columns:
                self.columns[key] = i

        missing = [c for c in REQUIRED if c not in self.columns]
        if "gemeindeschluessel" not in self.columns and "kreis" not in self.columns:
            missing.append("gemeindeschluessel")
        if missing:
            raise SchemaError(0, f"header lacks required columns: {', '.join(missing)}")

    def get(self, row: Sequence[str], column: str) -> str | None:
        i = self.columns.get(column)
        if i is None:
            return None
        return row[i].strip()


def parse_int(
    value: str | None, row_index: int, column: str, required: bool = False, decimals: bool = False
) -> int | None:
    """
    Parse a count. Accepts "1,234" and "1 234". With `decimals`, "12.0"
    (the bed columns are exported as floats) is accepted and truncated.
    """
    v = (value or "").strip()
    if v.lower() in MISSING:
        if required:
            raise SchemaError(row_index, f"{column} is empty")
        return None
    if _GROUPED.match(v):
        v = re.sub(r"[,_ ]", "", v)
    m = _DECIMAL.match(v)
    if not m or (m.group(2) and not decimals):
        raise SchemaError(row_index, f"{column} is not a non-negative integer: {value!r}")
    return int(m.group(1))


def parse_timestamp(value: str, row_index: int) -> datetime:
    v = _TZ_SUFFIX.sub("", value.strip())
    for fmt in TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(v, fmt)
        except ValueError:
            continue
    raise SchemaError(row_index, f"unrecognized daten_stand: {value!r}")


def timestamp_hint_from_url(url: str) -> datetime | None:
    """Archive links carry their publication time as YYYY-MM-DD-HH-MM."""
    m = _URL_STAMP.search(url or "")
    if not m:
        return None
    try:
        return datetime(*(int(g) for g in m.groups()))
    except ValueError:
        return None


def normalize(
    row: Sequence[str],
    date: date,
    *,
    header: Header,
    row_index: int,
    timestamp_hint: datetime | None = None,
) -> dict:
    """Turn one raw CSV row into a record with the keys in FIELDS."""
    if len(row) != header.width:
        raise SchemaError(row_index, f"expected {header.width} columns, got {len(row)}")

    ags = header.get(row, "gemeindeschluessel") or header.get(row, "kreis") or ""
    if not ags:
        raise SchemaError(row_index, "missing gemeindeschluessel")
    if ags.isascii() and ags.isdigit():
        ags = ags.zfill(5)

    state = parse_int(header.get(row, "bundesland"), row_index, "bundesland")
    if state is None:
        if not (ags[:2].isascii() and ags[:2].isdigit()):
            raise SchemaError(row_index, f"cannot derive state from {ags!r}")
        state = int(ags[:2])

    raw_ts = header.get(row, "daten_stand")
    if raw_ts:
        ts = parse_timestamp(raw_ts, row_index)
    elif timestamp_hint is not None:
        ts = timestamp_hint
    else:
        raise SchemaError(row_index, f"no daten_stand and no timestamp hint for {date.isoformat()}")

    ventilated = parse_int(
        header.get(row, "faelle_covid_aktuell_invasiv_beatmet"), row_index, "faelle_covid_aktuell_invasiv_beatmet"
    )
    if ventilated is None:
        ventilated = parse_int(header.get(row, "faelle_covid_aktuell_beatmet"), row_index, "faelle_covid_aktuell_beatmet")

    return {
        "state": state,
        "ags": ags,
        "num_report_areas": parse_int(header.get(row, "anzahl_meldebereiche"), row_index, "anzahl_meldebereiche"),
        "cases_current": parse_int(header.get(row, "faelle_covid_aktuell"), row_index, "faelle_covid_aktuell"),
        "cases_ventilated": ventilated,
        "num_locations": parse_int(header.get(row, "anzahl_standorte"), row_index, "anzahl_standorte", required=True),
        "beds_available": parse_int(
            header.get(row, "betten_frei"), row_index, "betten_frei", required=True, decimals=True
        ),
        "beds_occupied": parse_int(
            header.get(row, "betten_belegt"), row_index, "betten_belegt", required=True, decimals=True
        ),
        "timestamp": ts.strftime("%Y-%m-%dT%H:%M:%S"),
        "beds_occupied_adults": parse_int(
            header.get(row, "betten_belegt_nur_erwachsen"), row_index, "betten_belegt_nur_erwachsen"
        ),
        "beds_available_adults": parse_int(
            header.get(row, "betten_frei_nur_erwachsen"), row_index, "betten_frei_nur_erwachsen"
        ),
    }


def normalize_rows(rows: Iterable[Sequence[str]], date: date, *, timestamp_hint: datetime | None = None) -> list[dict]:
    """
    Normalize a whole CSV, header first. Row 0 is the header;
    blank lines are skipped but still counted.
    """
    it = iter(rows)
    try:
        header = Header(next(it))
    except StopIteration:
        raise SchemaError(0, "empty report, no header row") from None

    records = []
    for i, row in enumerate(it, start=1):
        if not any((c or "").strip() for c in row):
            continue
        records.append(normalize(row, date, header=header, row_index=i, timestamp_hint=timestamp_hint))
    return records
