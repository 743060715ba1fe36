"""
Core models, errors and helpers shared by the ingest and normalize layers.
"""

from .config import FetchSettings
from .domain_models import (
    DataType,
    FailureReason,
    DatasetDescriptor,
    RawSourcePayload,
    ParseWarning,
    SourceBatch,
    FetchFailure,
    BatchResult,
    GrantRecord,
)
from .errors import (
    ThreeSixtyGivingError,
    RegistryUnavailable,
    RegistryParseError,
    ParseError,
    EmptyBatchResult,
)

__all__ = [
    'FetchSettings',
    'DataType', 'FailureReason', 'DatasetDescriptor', 'RawSourcePayload',
    'ParseWarning', 'SourceBatch', 'FetchFailure', 'BatchResult', 'GrantRecord',
    'ThreeSixtyGivingError', 'RegistryUnavailable', 'RegistryParseError',
    'ParseError', 'EmptyBatchResult',
]
