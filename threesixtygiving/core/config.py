"""
Fetch configuration shared by the registry client, fetcher and batch runner.

Settings are an explicit value passed into each component; nothing reads
process-wide state after construction. from_env() is the only place the
environment (and an optional .env file) is consulted.
"""

import os
from dataclasses import dataclass, replace
from typing import Optional

from dotenv import load_dotenv


DEFAULT_REGISTRY_URL = "https://registry.threesixtygiving.org/data.json"

DEFAULT_HEADERS = {
    "User-Agent": "threesixtygiving-python/0.3 (+https://www.threesixtygiving.org)",
    "Accept": "application/json, text/csv, application/vnd.openxmlformats-officedocument.spreadsheetml.sheet, */*;q=0.8",
    "Accept-Language": "en-GB,en;q=0.9",
    "Connection": "keep-alive",
}


@dataclass(frozen=True)
class FetchSettings:
    """
    Retrieval settings.

    Attributes:
        timeout: Seconds allowed for each HTTP attempt
        max_retries: Extra attempts after the first one fails
        concurrency: Worker threads used by the batch runner
        retry_backoff: Base delay in seconds between retries (0 = retry immediately)
        max_backoff: Upper bound on a single retry delay
        batch_timeout: Overall seconds allowed for a batch run (None = unbounded)
        registry_url: Catalog endpoint listing the datasets
        user_agent: Overrides the default User-Agent header when set
        show_progress: Display a tqdm progress bar during batch runs
    """
    timeout: float = 30.0
    max_retries: int = 0
    concurrency: int = 8
    retry_backoff: float = 0.0
    max_backoff: float = 10.0
    batch_timeout: Optional[float] = None
    registry_url: str = DEFAULT_REGISTRY_URL
    user_agent: Optional[str] = None
    show_progress: bool = False

    def __post_init__(self):
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be non-negative, got {self.max_retries}")
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {self.concurrency}")
        if self.retry_backoff < 0 or self.max_backoff < 0:
            raise ValueError("retry_backoff and max_backoff must be non-negative")
        if self.batch_timeout is not None and self.batch_timeout <= 0:
            raise ValueError(f"batch_timeout must be positive, got {self.batch_timeout}")

    def with_overrides(self, **overrides) -> "FetchSettings":
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self

    def headers(self) -> dict:
        headers = dict(DEFAULT_HEADERS)
        if self.user_agent:
            headers["User-Agent"] = self.user_agent
        return headers

    @classmethod
    def from_env(cls, prefix: str = "TSG_", dotenv_path: Optional[str] = None) -> "FetchSettings":
        """
        Build settings from environment variables.

        Loads a .env file first (python-dotenv), then reads e.g. TSG_TIMEOUT,
        TSG_MAX_RETRIES, TSG_CONCURRENCY, TSG_RETRY_BACKOFF, TSG_MAX_BACKOFF,
        TSG_BATCH_TIMEOUT, TSG_REGISTRY_URL, TSG_USER_AGENT, TSG_SHOW_PROGRESS.
        Unset variables keep their defaults.
        """
        load_dotenv(dotenv_path)

        def _get(name: str) -> Optional[str]:
            value = os.getenv(f"{prefix}{name}")
            return value if value not in (None, "") else None

        values = {}
        for name, cast in (
            ("timeout", float),
            ("max_retries", int),
            ("concurrency", int),
            ("retry_backoff", float),
            ("max_backoff", float),
            ("batch_timeout", float),
        ):
            raw = _get(name.upper())
            if raw is not None:
                values[name] = cast(raw)

        registry_url = _get("REGISTRY_URL")
        if registry_url:
            values["registry_url"] = registry_url
        user_agent = _get("USER_AGENT")
        if user_agent:
            values["user_agent"] = user_agent
        show_progress = _get("SHOW_PROGRESS")
        if show_progress is not None:
            values["show_progress"] = show_progress.lower() in ("1", "true", "yes")

        return cls(**values)
