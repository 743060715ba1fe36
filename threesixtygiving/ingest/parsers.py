"""
Parsers turning downloaded 360Giving files into SourceBatches.

This module handles:
1. Nested JSON documents with a top-level "grants" list
2. Tabular files (CSV, XLSX, XLS, ODS) with a header row
3. Shared record normalization: canonical field names, amount coercion,
   ISO dates and warnings for anything that could not be normalized
"""

import io
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Tuple

import pandas as pd

from threesixtygiving.core.domain_models import (
    DataType,
    DatasetDescriptor,
    GrantRecord,
    ParseWarning,
    RawSourcePayload,
    SourceBatch,
)
from threesixtygiving.core.errors import ParseError
from threesixtygiving.core.money import parse_amount
from threesixtygiving.core.utils import canonical_key, clean_scalar, dedupe_keys, normalize_date

logger = logging.getLogger(__name__)


# Joins the values of multi-valued nested fields (e.g. several classifications)
MULTI_VALUE_DELIMITER = "; "

REQUIRED_FIELDS = ("identifier", "funding_org_name")

_EXCEL_ENGINES = {
    DataType.XLSX: "openpyxl",
    DataType.XLS: "xlrd",
    DataType.ODS: "odf",
}


def is_amount_field(key: str) -> bool:
    return key == "amount" or key.startswith("amount_")


def is_date_field(key: str) -> bool:
    return key == "date" or key.endswith("_date")


class GrantsParser(ABC):
    """Common contract: parse(payload) -> SourceBatch, raising ParseError."""

    @abstractmethod
    def parse(self, payload: RawSourcePayload) -> SourceBatch:
        ...

    def _build_batch(
        self,
        descriptor: DatasetDescriptor,
        rows: List[Dict[str, Any]],
        columns: List[str],
    ) -> SourceBatch:
        """Normalize raw rows into GrantRecords, collecting warnings."""
        batch = SourceBatch(descriptor=descriptor, columns=list(columns))
        for row in rows:
            record = _normalize_record(row, descriptor, batch.warnings)
            if record:
                batch.records.append(record)

        if not batch.records:
            raise ParseError("No grant rows after removing empty rows", descriptor)

        if batch.warnings:
            logger.warning(
                f"{descriptor.identifier}: {len(batch.warnings)} field(s) could not be normalized"
            )
        logger.info(f"Parsed {len(batch.records)} grants from {descriptor.identifier}")
        return batch


def _normalize_record(
    row: Dict[str, Any],
    descriptor: DatasetDescriptor,
    warnings: List[ParseWarning],
) -> GrantRecord:
    record: GrantRecord = {}
    problems = []
    for key, raw_value in row.items():
        value = clean_scalar(raw_value)
        if value is None:
            continue
        if is_amount_field(key):
            amount = parse_amount(value)
            if amount is None:
                # Raw text is kept; the core projection drops it
                record[key] = value
                problems.append((key, "Amount is not numeric", value))
            else:
                record[key] = amount
        elif is_date_field(key):
            record[key] = normalize_date(value)
        else:
            record[key] = value

    # Fully blank row
    if not record:
        return record

    for field_name in REQUIRED_FIELDS:
        if record.get(field_name) is None:
            problems.append((field_name, "Required field is missing", None))

    record_id = record.get("identifier")
    for field_name, message, value in problems:
        warnings.append(ParseWarning(
            dataset_identifier=descriptor.identifier,
            field=field_name,
            message=message,
            record_identifier=str(record_id) if record_id is not None else None,
            value=value,
        ))
    return record


# =============================================================================
# JSON
# =============================================================================

class JsonGrantsParser(GrantsParser):
    """
    Parse a 360Giving JSON document.

    Nested objects are flattened with "_" joins and canonical_key(), so
    {"recipientOrganization": [{"id": "GB-CHC-1"}]} becomes
    {"recipient_org_identifier": "GB-CHC-1"}. When a list holds several
    objects, each sub-field's values are joined with MULTI_VALUE_DELIMITER
    rather than keeping only the first. Objects missing a sub-field leave an
    empty slot, so "classifications_code" and "classifications_title" stay
    paired position by position.
    """

    def parse(self, payload: RawSourcePayload) -> SourceBatch:
        descriptor = payload.descriptor
        try:
            data = json.loads(payload.content.decode("utf-8-sig"))
        except (UnicodeDecodeError, ValueError) as e:
            raise ParseError(f"Invalid JSON: {e}", descriptor) from e

        if isinstance(data, dict):
            grants = data.get("grants")
        elif isinstance(data, list):
            grants = data
        else:
            grants = None

        if not isinstance(grants, list):
            raise ParseError("Document has no grants list", descriptor)
        if not grants:
            raise ParseError("Grants list is empty", descriptor)

        rows = []
        columns: Dict[str, None] = {}
        skipped = 0
        for grant in grants:
            if not isinstance(grant, dict):
                skipped += 1
                continue
            row = flatten_grant(grant)
            columns.update((key, None) for key in row)
            rows.append(row)

        batch = self._build_batch(descriptor, rows, list(columns))
        if skipped:
            batch.warnings.append(ParseWarning(
                dataset_identifier=descriptor.identifier,
                field="grants",
                message=f"{skipped} grants list entries were not objects and were skipped",
            ))
        return batch


def flatten_grant(grant: Dict[str, Any]) -> Dict[str, Any]:
    """
    Flatten one nested grant object to canonical keys.

    Examples:
        >>> flatten_grant({"id": "g1", "classifications": [{"title": "Arts"}, {"title": "Youth"}]})
        {'identifier': 'g1', 'classifications_title': 'Arts; Youth'}
    """
    flat: Dict[str, Any] = {}
    _flatten_into(grant, "", flat)
    return flat


def _flatten_into(value: Any, path: str, out: Dict[str, Any]):
    if isinstance(value, dict):
        for key, child in value.items():
            _flatten_into(child, f"{path}_{key}" if path else str(key), out)
        return

    if isinstance(value, list):
        if not value:
            _set_value(out, canonical_key(path), None)
            return
        if all(isinstance(item, dict) for item in value):
            merged: Dict[str, List[Any]] = {}
            for position, item in enumerate(value):
                item_flat: Dict[str, Any] = {}
                _flatten_into(item, path, item_flat)
                for key, child in item_flat.items():
                    # Pad so the n-th value of every sub-field comes from the n-th object
                    merged.setdefault(key, [None] * position).append(child)
                for values in merged.values():
                    if len(values) < position + 1:
                        values.append(None)
            for key, values in merged.items():
                _set_value(out, key, _join_aligned(values) if len(value) > 1 else values[0])
            return
        _set_value(out, canonical_key(path), _join_values(
            [json.dumps(item) if isinstance(item, (dict, list)) else item for item in value]
        ))
        return

    _set_value(out, canonical_key(path), value)


def _join_values(values: List[Any]) -> Any:
    present = [v for v in values if v is not None and v != ""]
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return MULTI_VALUE_DELIMITER.join(str(v) for v in present)


def _join_aligned(values: List[Any]) -> Any:
    """Join one value per list entry, keeping an empty slot where an entry lacks it."""
    if all(v is None or v == "" for v in values):
        return None
    return MULTI_VALUE_DELIMITER.join("" if v is None else str(v) for v in values)


def _set_value(out: Dict[str, Any], key: str, value: Any):
    # Two source paths normalizing to the same key keep both values
    if key in out and out[key] is not None and value is not None:
        out[key] = f"{out[key]}{MULTI_VALUE_DELIMITER}{value}"
    elif key not in out or value is not None:
        out[key] = value


# =============================================================================
# TABULAR
# =============================================================================

class TabularGrantsParser(GrantsParser):
    """
    Parse CSV and spreadsheet files.

    The first row is always the header. Headers go through canonical_key(),
    so "Recipient Org:Identifier" becomes "recipient_org_identifier"; repeats
    after normalization are suffixed _2, _3 and blank header cells are named
    column_<position>. Only the first sheet is read.
    """

    def parse(self, payload: RawSourcePayload) -> SourceBatch:
        descriptor = payload.descriptor
        frame, bad_lines = self._read_frame(payload)
        if len(frame.index) < 2:
            raise ParseError("Spreadsheet has no data rows after the header", descriptor)

        raw_headers = [clean_scalar(h) for h in frame.iloc[0].tolist()]
        headers = dedupe_keys([
            canonical_key(h) if h is not None and canonical_key(h) else f"column_{i + 1}"
            for i, h in enumerate(raw_headers)
        ])
        body = frame.iloc[1:].copy()
        body.columns = headers

        # Blank header cells with no data under them are layout, not columns
        columns = [
            col for col, raw in zip(headers, raw_headers)
            if raw is not None or not body[col].map(clean_scalar).isna().all()
        ]

        rows = [
            {col: row[col] for col in columns}
            for row in body.to_dict(orient="records")
        ]
        batch = self._build_batch(descriptor, rows, columns)
        for fields in bad_lines:
            batch.warnings.append(ParseWarning(
                dataset_identifier=descriptor.identifier,
                field="row",
                message=f"Row has {len(fields)} fields but the header has {len(headers)}; skipped",
                value=",".join(fields),
            ))
        if bad_lines:
            logger.warning(f"{descriptor.identifier}: skipped {len(bad_lines)} malformed CSV row(s)")
        return batch

    def _read_frame(self, payload: RawSourcePayload) -> Tuple[pd.DataFrame, List[List[str]]]:
        descriptor = payload.descriptor
        bad_lines: List[List[str]] = []
        try:
            if payload.data_type == DataType.CSV:
                frame, bad_lines = self._read_csv(payload.content)
            elif payload.data_type in _EXCEL_ENGINES:
                frame = pd.read_excel(
                    io.BytesIO(payload.content),
                    sheet_name=0,
                    header=None,
                    dtype=object,
                    keep_default_na=False,
                    engine=_EXCEL_ENGINES[payload.data_type],
                )
            else:
                raise ParseError(f"Not a tabular format: {payload.data_type.value}", descriptor)
        except ParseError:
            raise
        except Exception as e:
            raise ParseError(f"Could not read {payload.data_type.value} file: {e}", descriptor) from e

        if len(frame.columns) == 0 or frame.empty:
            raise ParseError("Spreadsheet has no header row", descriptor)
        return frame, bad_lines

    def _read_csv(self, content: bytes) -> Tuple[pd.DataFrame, List[List[str]]]:
        try:
            return _read_csv_with(content, "utf-8-sig")
        except UnicodeDecodeError:
            logger.debug("CSV is not UTF-8, retrying as cp1252")
            return _read_csv_with(content, "cp1252")


def _read_csv_with(content: bytes, encoding: str) -> Tuple[pd.DataFrame, List[List[str]]]:
    """
    Read a CSV with every cell as text, setting aside rows with extra fields.

    header=None keeps duplicate header names intact for dedupe_keys(). Rows
    longer than the header are returned separately instead of failing the
    whole file; the callback returning None tells pandas to drop the row.
    """
    bad_lines: List[List[str]] = []
    frame = pd.read_csv(
        io.BytesIO(content),
        header=None,
        dtype=str,
        keep_default_na=False,
        encoding=encoding,
        engine="python",
        on_bad_lines=lambda fields: bad_lines.append(fields),
    )
    return frame, bad_lines


# =============================================================================
# DISPATCH
# =============================================================================

def parser_for(data_type: DataType) -> GrantsParser:
    """
    Select the parser for a resolved data type.

    Raises:
        ValueError: For DataType.UNKNOWN, which must be sniffed first
    """
    if data_type == DataType.JSON:
        return JsonGrantsParser()
    if data_type in (DataType.CSV, DataType.XLSX, DataType.XLS, DataType.ODS):
        return TabularGrantsParser()
    raise ValueError(f"No parser for data type {data_type.value!r}")


def parse_payload(payload: RawSourcePayload) -> SourceBatch:
    """Parse a payload with the parser matching its data type."""
    return parser_for(payload.data_type).parse(payload)
