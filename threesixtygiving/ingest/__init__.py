"""
Registry lookup, dataset download and format parsing.
"""

from .registry import RegistryClient, list_descriptors, search_descriptors
from .resource_fetcher import ResourceFetcher, sniff_data_type
from .parsers import JsonGrantsParser, TabularGrantsParser, parser_for, parse_payload
from .batch import BatchRunner, run_batch

__all__ = [
    'RegistryClient', 'list_descriptors', 'search_descriptors',
    'ResourceFetcher', 'sniff_data_type',
    'JsonGrantsParser', 'TabularGrantsParser', 'parser_for', 'parse_payload',
    'BatchRunner', 'run_batch',
]
