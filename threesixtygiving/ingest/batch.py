"""
Batch download of many 360Giving datasets.

Each descriptor is fetched and parsed independently in a bounded thread
pool. Every outcome, good or bad, lands in the returned BatchResult; a
failing publisher never stops the others.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed, TimeoutError as FuturesTimeout
from typing import Dict, Iterable, List, Optional, Union

from tqdm import tqdm

from threesixtygiving.core.config import FetchSettings
from threesixtygiving.core.domain_models import (
    BatchResult,
    DatasetDescriptor,
    FailureReason,
    FetchFailure,
    SourceBatch,
)
from threesixtygiving.core.errors import ParseError
from threesixtygiving.ingest.parsers import parse_payload
from threesixtygiving.ingest.registry import list_descriptors
from threesixtygiving.ingest.resource_fetcher import ResourceFetcher

logger = logging.getLogger(__name__)

Outcome = Union[SourceBatch, FetchFailure]


class BatchRunner:
    """
    Fetch and parse a list of datasets concurrently.

    Usage:
        runner = BatchRunner(FetchSettings(timeout=10, max_retries=1))
        result = runner.run(descriptors)
        print(len(result.successes), len(result.failures))
    """

    def __init__(self, settings: Optional[FetchSettings] = None,
                 fetcher: Optional[ResourceFetcher] = None, session=None):
        self.settings = settings or FetchSettings()
        self.fetcher = fetcher or ResourceFetcher(self.settings, session=session)

    def run(
        self,
        descriptors: Iterable[DatasetDescriptor],
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        concurrency: Optional[int] = None,
        batch_timeout: Optional[float] = None,
    ) -> BatchResult:
        """
        Process every descriptor and collect the outcomes.

        Args:
            descriptors: Datasets to fetch, e.g. the registry listing or the
                output of missing() from an earlier run
            timeout: Seconds per HTTP attempt
            max_retries: Extra attempts per dataset
            concurrency: Worker threads
            batch_timeout: Overall deadline; unfinished datasets are recorded
                as cancelled failures

        Returns:
            BatchResult with each descriptor in exactly one of successes/failures
        """
        settings = self.settings.with_overrides(
            timeout=timeout,
            max_retries=max_retries,
            concurrency=concurrency,
            batch_timeout=batch_timeout,
        )
        ordered = _unique_descriptors(descriptors)
        result = BatchResult(descriptors=ordered)
        if not ordered:
            return result

        logger.info(
            f"Fetching {len(ordered)} datasets "
            f"(timeout={settings.timeout}s, retries={settings.max_retries}, "
            f"workers={settings.concurrency})"
        )

        successes: Dict[str, SourceBatch] = {}
        failures: Dict[str, FetchFailure] = {}

        executor = ThreadPoolExecutor(
            max_workers=min(settings.concurrency, len(ordered)),
            thread_name_prefix="tsg-fetch",
        )
        futures = {
            executor.submit(self._process, d, settings.timeout, settings.max_retries): d
            for d in ordered
        }
        progress = tqdm(total=len(ordered), desc="Downloading", unit="dataset",
                        disable=not settings.show_progress)
        try:
            for future in as_completed(futures, timeout=settings.batch_timeout):
                descriptor = futures[future]
                try:
                    outcome = future.result()
                except Exception as e:
                    outcome = FetchFailure(descriptor, FailureReason.PARSE_ERROR,
                                           f"Unexpected error: {e}")

                if isinstance(outcome, FetchFailure):
                    failures[descriptor.identifier] = outcome
                    _warn_failure(outcome)
                else:
                    successes[descriptor.identifier] = outcome
                progress.update(1)
        except FuturesTimeout:
            logger.warning(
                f"Batch deadline of {settings.batch_timeout}s reached with "
                f"{len(ordered) - len(successes) - len(failures)} datasets unfinished"
            )
        finally:
            progress.close()
            # Running downloads cannot be interrupted; their results are ignored
            executor.shutdown(wait=False, cancel_futures=True)

        for descriptor in ordered:
            key = descriptor.identifier
            if key in successes or key in failures:
                continue
            failure = FetchFailure(descriptor, FailureReason.CANCELLED,
                                   "Batch deadline reached before the download finished")
            failures[key] = failure
            _warn_failure(failure)

        result.successes = successes
        result.failures = failures
        logger.info(f"Batch complete: {len(successes)} succeeded, {len(failures)} failed")
        return result

    def _process(self, descriptor: DatasetDescriptor, timeout: float, max_retries: int) -> Outcome:
        outcome = self.fetcher.fetch(descriptor, timeout=timeout, max_retries=max_retries)
        if isinstance(outcome, FetchFailure):
            return outcome
        try:
            return parse_payload(outcome)
        except ParseError as e:
            return FetchFailure(descriptor, FailureReason.PARSE_ERROR, e.reason,
                                attempts=outcome.attempts)


def _unique_descriptors(descriptors: Iterable[DatasetDescriptor]) -> List[DatasetDescriptor]:
    seen = set()
    ordered = []
    for descriptor in descriptors:
        if descriptor.identifier in seen:
            logger.debug(f"Skipping duplicate descriptor {descriptor.identifier}")
            continue
        seen.add(descriptor.identifier)
        ordered.append(descriptor)
    return ordered


def _warn_failure(failure: FetchFailure):
    descriptor = failure.descriptor
    name = descriptor.publisher_name or descriptor.title or descriptor.identifier
    logger.warning(
        f"Could not retrieve {name} ({descriptor.identifier}): "
        f"{failure.reason.value} - {failure.message} [{descriptor.download_url}]"
    )


def run_batch(
    descriptors: Optional[Iterable[DatasetDescriptor]] = None,
    timeout: Optional[float] = None,
    max_retries: Optional[int] = None,
    concurrency: Optional[int] = None,
    batch_timeout: Optional[float] = None,
    settings: Optional[FetchSettings] = None,
    session=None,
) -> BatchResult:
    """
    Fetch and parse datasets.

    With descriptors=None the full registry listing is fetched first
    (registry errors propagate). Pass the output of missing() to re-drive
    only the datasets that failed last time.
    """
    settings = settings or FetchSettings()
    if descriptors is None:
        descriptors = list_descriptors(settings, session=session)
    runner = BatchRunner(settings, session=session)
    return runner.run(
        descriptors,
        timeout=timeout,
        max_retries=max_retries,
        concurrency=concurrency,
        batch_timeout=batch_timeout,
    )
