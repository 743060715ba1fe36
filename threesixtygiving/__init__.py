"""
Retrieve and normalize 360Giving grant data.

Typical use:
    from threesixtygiving import list_descriptors, run_batch, to_core, missing

    result = run_batch(timeout=10, max_retries=1)
    core = to_core(result).to_dataframe()
    retry = run_batch(missing(result), timeout=30)
"""

from .core import (
    FetchSettings,
    DataType,
    FailureReason,
    DatasetDescriptor,
    SourceBatch,
    FetchFailure,
    BatchResult,
    ThreeSixtyGivingError,
    RegistryUnavailable,
    RegistryParseError,
    ParseError,
    EmptyBatchResult,
)
from .ingest import list_descriptors, search_descriptors, run_batch, BatchRunner
from .normalize import UnifiedTable, to_core, to_full, missing, missing_table

__version__ = "0.3.0"

__all__ = [
    'list_descriptors', 'search_descriptors', 'run_batch', 'BatchRunner',
    'to_core', 'to_full', 'missing', 'missing_table', 'UnifiedTable',
    'FetchSettings', 'DataType', 'FailureReason', 'DatasetDescriptor',
    'SourceBatch', 'FetchFailure', 'BatchResult',
    'ThreeSixtyGivingError', 'RegistryUnavailable', 'RegistryParseError',
    'ParseError', 'EmptyBatchResult',
]
