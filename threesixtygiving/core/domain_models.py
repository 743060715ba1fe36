"""
Canonical domain models for the grant retrieval pipeline.

These models describe a registry entry, the raw payload downloaded for it,
and the two possible per-dataset outcomes (a parsed SourceBatch or a
FetchFailure) gathered into a BatchResult.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, List, Dict, Any, Union
from urllib.parse import urlparse

# A single normalized grant row: canonical field name -> scalar
GrantRecord = Dict[str, Any]


class DataType(str, Enum):
    """
    File formats a publisher may declare for its dataset.

    UNKNOWN means the registry gave no usable hint; the fetcher sniffs the
    response to pick a parser.
    """
    JSON = "json"
    CSV = "csv"
    XLSX = "xlsx"
    XLS = "xls"
    ODS = "ods"
    UNKNOWN = "unknown"

    @classmethod
    def from_value(cls, value: Optional[str]) -> "DataType":
        """Map a declared type (case-insensitive, may carry a leading dot) to a DataType."""
        if not value:
            return cls.UNKNOWN
        cleaned = str(value).strip().lower().lstrip(".")
        for member in cls:
            if member.value == cleaned:
                return member
        return cls.UNKNOWN

    @classmethod
    def from_url(cls, url: Optional[str]) -> "DataType":
        """Infer a DataType from a URL's file extension."""
        if not url:
            return cls.UNKNOWN
        path = urlparse(url).path.lower()
        if "." not in path.rsplit("/", 1)[-1]:
            return cls.UNKNOWN
        return cls.from_value(path.rsplit(".", 1)[-1])


class FailureReason(str, Enum):
    """Why a dataset did not make it into a BatchResult's successes."""
    TIMEOUT = "timeout"
    HTTP_ERROR = "http_error"
    CONNECTION_ERROR = "connection_error"
    CANCELLED = "cancelled"
    UNSUPPORTED_FORMAT = "unsupported_format"
    PARSE_ERROR = "parse_error"


@dataclass(frozen=True)
class DatasetDescriptor:
    """
    One registry entry: a publisher's dataset and where to download it.

    Descriptors are immutable and hashable so they can be shared between
    worker threads and re-fed into a new batch run unchanged.
    """
    identifier: str
    download_url: str
    title: Optional[str] = None
    description: Optional[str] = None
    license: Optional[str] = None
    license_name: Optional[str] = None
    issued: Optional[str] = None
    modified: Optional[str] = None
    access_url: Optional[str] = None
    data_type: DataType = DataType.UNKNOWN
    publisher_name: Optional[str] = None
    publisher_website: Optional[str] = None
    publisher_logo: Optional[str] = None
    publisher_prefix: Optional[str] = None

    @classmethod
    def from_registry_entry(cls, entry: Dict[str, Any]) -> "DatasetDescriptor":
        """
        Build a descriptor from a registry entry.

        Accepts the flat row shape produced by to_dict() as well as the live
        registry shape, where publisher details sit under a "publisher" object
        and URLs under a "distribution" list.

        Args:
            entry: Decoded JSON object from the registry

        Returns:
            DatasetDescriptor

        Raises:
            KeyError: If the entry has no identifier or download URL
        """
        publisher = entry.get("publisher") or {}
        distribution = entry.get("distribution") or [{}]
        if isinstance(distribution, dict):
            distribution = [distribution]
        first_dist = distribution[0] if distribution else {}

        identifier = entry.get("identifier")
        download_url = entry.get("download_url") or first_dist.get("downloadURL")
        if not identifier:
            raise KeyError("identifier")
        if not download_url:
            raise KeyError("download_url")

        declared = entry.get("data_type") or entry.get("datatype")
        data_type = DataType.from_value(declared)
        if data_type == DataType.UNKNOWN and not declared:
            data_type = DataType.from_url(download_url)

        return cls(
            identifier=str(identifier),
            download_url=download_url,
            title=entry.get("title"),
            description=entry.get("description"),
            license=entry.get("license"),
            license_name=entry.get("license_name"),
            issued=entry.get("issued"),
            modified=entry.get("modified"),
            access_url=entry.get("access_url") or first_dist.get("accessURL"),
            data_type=data_type,
            publisher_name=entry.get("publisher_name") or publisher.get("name"),
            publisher_website=entry.get("publisher_website") or publisher.get("website"),
            publisher_logo=entry.get("publisher_logo") or publisher.get("logo"),
            publisher_prefix=entry.get("publisher_prefix") or publisher.get("prefix"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Flat row representation, with data_type as its string value."""
        row = asdict(self)
        row["data_type"] = self.data_type.value
        return row


@dataclass
class RawSourcePayload:
    """Bytes downloaded for a descriptor, tagged with the format to parse them as."""
    descriptor: DatasetDescriptor
    content: bytes
    data_type: DataType
    content_type: Optional[str] = None
    attempts: int = 1


@dataclass
class ParseWarning:
    """A non-fatal problem found while normalizing one field of one record."""
    dataset_identifier: str
    field: str
    message: str
    record_identifier: Optional[str] = None
    value: Any = None


@dataclass
class SourceBatch:
    """
    Parsed grants from one dataset.

    columns holds every field name discovered in the source, in first-seen
    order, whether or not any record populates it.
    """
    descriptor: DatasetDescriptor
    records: List[GrantRecord] = field(default_factory=list)
    columns: List[str] = field(default_factory=list)
    warnings: List[ParseWarning] = field(default_factory=list)


@dataclass
class FetchFailure:
    """A dataset that could not be downloaded or parsed."""
    descriptor: DatasetDescriptor
    reason: FailureReason
    message: str = ""
    status_code: Optional[int] = None
    attempts: int = 0


FetchOutcome = Union[RawSourcePayload, FetchFailure]


@dataclass
class BatchResult:
    """
    Outcome of a batch run.

    Every input descriptor ends up in exactly one of successes or failures,
    keyed by descriptor identifier. descriptors keeps the input order so
    results can be presented deterministically.
    """
    descriptors: List[DatasetDescriptor] = field(default_factory=list)
    successes: Dict[str, SourceBatch] = field(default_factory=dict)
    failures: Dict[str, FetchFailure] = field(default_factory=dict)

    def ordered_successes(self) -> List[SourceBatch]:
        return [
            self.successes[d.identifier]
            for d in self.descriptors
            if d.identifier in self.successes
        ]

    def ordered_failures(self) -> List[FetchFailure]:
        return [
            self.failures[d.identifier]
            for d in self.descriptors
            if d.identifier in self.failures
        ]

    @property
    def warnings(self) -> List[ParseWarning]:
        return [w for batch in self.ordered_successes() for w in batch.warnings]
