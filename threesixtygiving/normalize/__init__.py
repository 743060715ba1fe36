"""
Table projections and failure reporting over a BatchResult.
"""

from .unify import UnifiedTable, to_core, to_full, CORE_FIELDS, CORE_COLUMNS
from .missing import missing, missing_table

__all__ = [
    'UnifiedTable', 'to_core', 'to_full', 'CORE_FIELDS', 'CORE_COLUMNS',
    'missing', 'missing_table',
]
