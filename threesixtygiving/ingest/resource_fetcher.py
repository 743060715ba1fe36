"""
Fetch dataset files with per-attempt timeouts and a bounded retry budget.
"""

import io
import logging
import threading
import time
import zipfile
from typing import Optional

import requests

from threesixtygiving.core.config import FetchSettings
from threesixtygiving.core.domain_models import (
    DataType,
    DatasetDescriptor,
    FailureReason,
    FetchFailure,
    FetchOutcome,
    RawSourcePayload,
)

logger = logging.getLogger(__name__)


# Content-type fragments, checked in order
_CONTENT_TYPE_HINTS = [
    ("spreadsheetml", DataType.XLSX),
    ("opendocument.spreadsheet", DataType.ODS),
    ("ms-excel", DataType.XLS),
    ("json", DataType.JSON),
    ("text/csv", DataType.CSV),
]

_ZIP_MAGIC = b"PK\x03\x04"
_OLE2_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
_ODS_MIMETYPE = b"application/vnd.oasis.opendocument.spreadsheet"


def sniff_data_type(content: bytes, content_type: Optional[str] = None,
                    url: Optional[str] = None) -> DataType:
    """
    Guess a dataset's format from its response.

    Checks the Content-Type header, then the payload's magic bytes, then the
    URL extension. Returns DataType.UNKNOWN when nothing matches.
    """
    lowered = (content_type or "").lower()
    for fragment, data_type in _CONTENT_TYPE_HINTS:
        if fragment in lowered:
            return data_type

    from_bytes = _sniff_bytes(content)
    if from_bytes != DataType.UNKNOWN:
        return from_bytes

    return DataType.from_url(url)


def _sniff_bytes(content: bytes) -> DataType:
    if content.startswith(_ZIP_MAGIC):
        try:
            with zipfile.ZipFile(io.BytesIO(content)) as archive:
                names = archive.namelist()
                if "mimetype" in names and archive.read("mimetype").strip() == _ODS_MIMETYPE:
                    return DataType.ODS
                if any(name.startswith("xl/") for name in names):
                    return DataType.XLSX
        except zipfile.BadZipFile:
            return DataType.UNKNOWN
        return DataType.UNKNOWN

    if content.startswith(_OLE2_MAGIC):
        return DataType.XLS

    head = content[:64].lstrip(b"\xef\xbb\xbf \t\r\n")
    if head[:1] in (b"{", b"["):
        return DataType.JSON

    return DataType.UNKNOWN


class ResourceFetcher:
    """
    Download one dataset file per call, retrying transport and HTTP errors.

    Without an injected session each calling thread gets its own
    requests.Session, so BatchRunner workers never share one. An injected
    session is used from every thread as given.
    """

    def __init__(self, settings: Optional[FetchSettings] = None, session=None):
        self.settings = settings or FetchSettings()
        self._shared_session = session
        if session is not None:
            session.headers.update(self.settings.headers())
        self._local = threading.local()

    @property
    def session(self):
        if self._shared_session is not None:
            return self._shared_session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            session.headers.update(self.settings.headers())
            self._local.session = session
        return session

    def fetch(
        self,
        descriptor: DatasetDescriptor,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
    ) -> FetchOutcome:
        """
        Fetch a descriptor's download URL.

        Timeouts, connection errors and HTTP statuses >= 400 each consume one
        retry. At most 1 + max_retries requests are made.

        Args:
            descriptor: Dataset to download
            timeout: Seconds per attempt (defaults to settings.timeout)
            max_retries: Extra attempts allowed (defaults to settings.max_retries)

        Returns:
            RawSourcePayload on success, FetchFailure otherwise
        """
        timeout = self.settings.timeout if timeout is None else timeout
        max_retries = self.settings.max_retries if max_retries is None else max_retries
        url = descriptor.download_url

        failure = None
        for attempt in range(max_retries + 1):
            if attempt:
                self._backoff(attempt)
                logger.debug(f"Retry {attempt}/{max_retries} for {url}")

            failure, response = self._attempt(descriptor, timeout, attempt + 1)
            if response is not None:
                return self._to_payload(descriptor, response, attempt + 1)

        return failure

    def _attempt(self, descriptor: DatasetDescriptor, timeout: float, attempts: int):
        url = descriptor.download_url
        try:
            response = self.session.get(url, timeout=timeout)
        except requests.Timeout as e:
            return FetchFailure(descriptor, FailureReason.TIMEOUT,
                                f"Timed out after {timeout}s: {e}", attempts=attempts), None
        except requests.RequestException as e:
            return FetchFailure(descriptor, FailureReason.CONNECTION_ERROR,
                                f"Request failed: {e}", attempts=attempts), None

        if response.status_code >= 400:
            return FetchFailure(descriptor, FailureReason.HTTP_ERROR,
                                f"HTTP {response.status_code} from {url}",
                                status_code=response.status_code, attempts=attempts), None

        return None, response

    def _to_payload(self, descriptor: DatasetDescriptor, response, attempts: int) -> FetchOutcome:
        content = response.content or b""
        content_type = response.headers.get("content-type")

        if not content.strip():
            return FetchFailure(descriptor, FailureReason.PARSE_ERROR,
                                "Empty response body", status_code=response.status_code,
                                attempts=attempts)

        data_type = descriptor.data_type
        if data_type == DataType.UNKNOWN:
            data_type = sniff_data_type(content, content_type, descriptor.download_url)
            if data_type == DataType.UNKNOWN:
                return FetchFailure(descriptor, FailureReason.UNSUPPORTED_FORMAT,
                                    f"Could not identify format (content-type: {content_type})",
                                    status_code=response.status_code, attempts=attempts)
            logger.debug(f"Sniffed {descriptor.identifier} as {data_type.value}")

        logger.info(f"Fetched {descriptor.identifier}: {len(content)} bytes ({data_type.value})")
        return RawSourcePayload(
            descriptor=descriptor,
            content=content,
            data_type=data_type,
            content_type=content_type,
            attempts=attempts,
        )

    def _backoff(self, attempt: int):
        """Exponential backoff, bounded by settings.max_backoff."""
        if self.settings.retry_backoff <= 0:
            return
        wait_time = min((2 ** (attempt - 1)) * self.settings.retry_backoff,
                        self.settings.max_backoff)
        time.sleep(wait_time)
