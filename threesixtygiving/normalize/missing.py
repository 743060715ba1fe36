"""
Report the datasets a batch run failed to retrieve.
"""

from dataclasses import fields
from typing import List

import pandas as pd

from threesixtygiving.core.domain_models import BatchResult, DatasetDescriptor

FAILURE_COLUMNS = ["failure_reason", "http_status", "attempts", "message"]


def missing(result: BatchResult) -> List[DatasetDescriptor]:
    """
    Descriptors whose download or parse failed, in input order.

    The descriptors are returned unchanged, so the list can be passed back
    to run_batch() to retry just those datasets.
    """
    return [failure.descriptor for failure in result.ordered_failures()]


def missing_table(result: BatchResult) -> pd.DataFrame:
    """
    Failed descriptors as a DataFrame, one row per dataset.

    Columns are the descriptor fields followed by failure_reason,
    http_status, attempts and message.
    """
    columns = [f.name for f in fields(DatasetDescriptor)] + FAILURE_COLUMNS
    rows = []
    for failure in result.ordered_failures():
        row = failure.descriptor.to_dict()
        row.update({
            "failure_reason": failure.reason.value,
            "http_status": failure.status_code,
            "attempts": failure.attempts,
            "message": failure.message,
        })
        rows.append(row)
    return pd.DataFrame(rows, columns=columns)
