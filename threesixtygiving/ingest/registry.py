"""
Client for the 360Giving data registry.

The registry is a single JSON document listing every published dataset with
its download URL, licence and publisher details.
"""

import logging
from typing import List, Optional, Sequence, Iterable

import requests

from threesixtygiving.core.config import FetchSettings
from threesixtygiving.core.domain_models import DatasetDescriptor
from threesixtygiving.core.errors import RegistryUnavailable, RegistryParseError

logger = logging.getLogger(__name__)


class RegistryClient:
    """
    Fetch dataset descriptors from the registry endpoint.

    Usage:
        client = RegistryClient(FetchSettings())
        descriptors = client.list_descriptors()
    """

    def __init__(self, settings: Optional[FetchSettings] = None, session=None):
        self.settings = settings or FetchSettings()
        self.session = session or requests.Session()
        self.session.headers.update(self.settings.headers())

    def list_descriptors(self) -> List[DatasetDescriptor]:
        """
        Download and decode the registry listing.

        Makes exactly one request; retrying is left to the caller.

        Returns:
            Descriptors in registry order

        Raises:
            RegistryUnavailable: Endpoint unreachable or non-success status
            RegistryParseError: Body is not a list of descriptor objects
        """
        url = self.settings.registry_url
        logger.info(f"Fetching dataset registry: {url}")

        try:
            response = self.session.get(url, timeout=self.settings.timeout)
        except requests.RequestException as e:
            raise RegistryUnavailable(f"Registry unreachable at {url}: {e}") from e

        if response.status_code >= 400:
            raise RegistryUnavailable(
                f"Registry returned HTTP {response.status_code} for {url}",
                status_code=response.status_code,
            )

        try:
            entries = response.json()
        except ValueError as e:
            raise RegistryParseError(f"Registry response is not valid JSON: {e}") from e

        descriptors = parse_registry(entries)
        logger.info(f"Registry lists {len(descriptors)} datasets")
        return descriptors


def parse_registry(entries) -> List[DatasetDescriptor]:
    """
    Convert decoded registry JSON to descriptors.

    Raises:
        RegistryParseError: If entries is not a list of objects or an entry
            lacks an identifier or download URL
    """
    if not isinstance(entries, list):
        raise RegistryParseError(
            f"Expected a list of datasets, got {type(entries).__name__}"
        )

    descriptors = []
    for i, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise RegistryParseError(f"Registry entry {i} is not an object")
        try:
            descriptors.append(DatasetDescriptor.from_registry_entry(entry))
        except KeyError as e:
            raise RegistryParseError(f"Registry entry {i} is missing {e.args[0]}") from e
    return descriptors


def list_descriptors(settings: Optional[FetchSettings] = None, session=None) -> List[DatasetDescriptor]:
    """Convenience wrapper around RegistryClient.list_descriptors()."""
    return RegistryClient(settings, session=session).list_descriptors()


def search_descriptors(
    descriptors: Iterable[DatasetDescriptor],
    term: str,
    fields: Sequence[str] = ("title", "publisher_name", "description"),
) -> List[DatasetDescriptor]:
    """
    Filter descriptors whose fields contain a search term.

    Matching is a case-insensitive substring test; order is preserved so the
    result can be passed straight to run_batch().

    Examples:
        >>> search_descriptors(descriptors, "lottery", fields=["publisher_name"])
    """
    needle = term.strip().lower()
    if not needle:
        return list(descriptors)

    matches = []
    for descriptor in descriptors:
        for field_name in fields:
            value = getattr(descriptor, field_name, None)
            if value and needle in str(value).lower():
                matches.append(descriptor)
                break
    return matches
