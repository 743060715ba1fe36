"""
Combine per-dataset grant batches into one table.

Two projections:
- core: the ten fields every 360Giving dataset must carry, plus the
  publisher prefix. Every parsed grant appears, with gaps left as None.
- full: every column seen in any dataset, optionally dropping sparse
  columns below a coverage threshold.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List

import pandas as pd

from threesixtygiving.core.domain_models import BatchResult, GrantRecord, ParseWarning, SourceBatch
from threesixtygiving.core.errors import EmptyBatchResult

logger = logging.getLogger(__name__)


CORE_FIELDS = [
    "identifier",
    "title",
    "description",
    "currency",
    "amount_awarded",
    "award_date",
    "recipient_org_identifier",
    "recipient_org_name",
    "funding_org_identifier",
    "funding_org_name",
]

CORE_COLUMNS = CORE_FIELDS + ["publisher_prefix"]

# Columns added to every full-table row to tag its source dataset
SOURCE_COLUMNS = ["dataset_identifier", "publisher_prefix"]

_CORE_AMOUNT_FIELDS = ("amount_awarded",)


@dataclass
class UnifiedTable:
    """
    Ordered rows sharing one column list.

    Iterating yields the rows (dicts keyed by every column, absent values as
    None). to_dataframe() gives the same data as a pandas DataFrame.
    """
    columns: List[str]
    rows: List[GrantRecord] = field(default_factory=list)
    warnings: List[ParseWarning] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[GrantRecord]:
        return iter(self.rows)

    def __getitem__(self, index: int) -> GrantRecord:
        return self.rows[index]

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(self.rows, columns=self.columns)


def to_core(result: BatchResult) -> UnifiedTable:
    """
    Project every parsed grant onto the core columns.

    Grants missing a core field are kept with None in that column.
    Amounts that did not parse as numbers are set to None here (they
    survive as raw text in to_full) and reported in the table's warnings.

    Raises:
        EmptyBatchResult: If no dataset was parsed successfully
    """
    batches = _successful_batches(result)
    table = UnifiedTable(columns=list(CORE_COLUMNS))

    for batch in batches:
        descriptor = batch.descriptor
        for record in batch.records:
            row = {name: record.get(name) for name in CORE_FIELDS}
            for name in _CORE_AMOUNT_FIELDS:
                value = row[name]
                if value is not None and not _is_number(value):
                    table.warnings.append(ParseWarning(
                        dataset_identifier=descriptor.identifier,
                        field=name,
                        message="Non-numeric amount left empty in core table",
                        record_identifier=_as_text(record.get("identifier")),
                        value=value,
                    ))
                    row[name] = None
            row["publisher_prefix"] = descriptor.publisher_prefix
            table.rows.append(row)

    if table.warnings:
        logger.warning(f"{len(table.warnings)} amounts could not be used in the core table")
    logger.info(f"Core table: {len(table.rows)} grants from {len(batches)} datasets")
    return table


def to_full(result: BatchResult, min_column_coverage: float = 0.0) -> UnifiedTable:
    """
    Union every observed column across all parsed datasets.

    Column order is deterministic: source tags, then the core fields, then
    all other columns in the order datasets (descriptor order) first
    declare them. A non-core column is kept only if at least
    min_column_coverage of all rows populate it; the default keeps all.

    Args:
        result: Output of run_batch()
        min_column_coverage: Fraction between 0.0 and 1.0

    Raises:
        EmptyBatchResult: If no dataset was parsed successfully
        ValueError: If min_column_coverage is outside [0, 1]
    """
    if not 0.0 <= min_column_coverage <= 1.0:
        raise ValueError(f"min_column_coverage must be between 0 and 1, got {min_column_coverage}")

    batches = _successful_batches(result)
    fixed = SOURCE_COLUMNS + CORE_FIELDS

    tagged_batches = [(batch, [_retag(record) for record in batch.records]) for batch in batches]
    counts = _column_counts(tagged_batches)
    total_rows = sum(len(records) for _, records in tagged_batches)

    extra = [
        name for name, populated in counts.items()
        if name not in fixed and total_rows and populated / total_rows >= min_column_coverage
    ]
    dropped = len([name for name in counts if name not in fixed]) - len(extra)
    if dropped:
        logger.info(f"Dropped {dropped} columns below {min_column_coverage:.0%} coverage")

    columns = fixed + extra
    table = UnifiedTable(columns=columns, warnings=list(result.warnings))
    for batch, records in tagged_batches:
        descriptor = batch.descriptor
        for record in records:
            row = {name: record.get(name) for name in columns}
            row["dataset_identifier"] = descriptor.identifier
            row["publisher_prefix"] = descriptor.publisher_prefix
            table.rows.append(row)

    logger.info(f"Full table: {len(table.rows)} grants, {len(columns)} columns")
    return table


def _successful_batches(result: BatchResult) -> List[SourceBatch]:
    batches = result.ordered_successes()
    if not batches:
        raise EmptyBatchResult(
            f"No datasets were parsed successfully ({len(result.failures)} failed)"
        )
    return batches


def _column_counts(tagged_batches) -> Dict[str, int]:
    """Schema discovery: populated-row count per column, in first-seen order."""
    counts: Dict[str, int] = {}
    for batch, records in tagged_batches:
        for name in batch.columns:
            counts.setdefault(_retag_key(name), 0)
        for record in records:
            for name, value in record.items():
                counts.setdefault(name, 0)
                if value is not None:
                    counts[name] += 1
    return counts


def _retag_key(name: str) -> str:
    return f"source_{name}" if name in SOURCE_COLUMNS else name


def _retag(record: GrantRecord) -> GrantRecord:
    # A publisher's own column clashing with a source tag is kept under a new name
    if not any(name in record for name in SOURCE_COLUMNS):
        return record
    return {_retag_key(name): value for name, value in record.items()}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_text(value: Any):
    return None if value is None else str(value)
