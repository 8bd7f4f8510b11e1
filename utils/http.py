"""HTTP session utilities for eCFR Analyzer clients.

Provides a pooled ``requests`` session whose retry behaviour is explicit.
Navigation fetches do not retry: a failure is reported to the caller, which
shows it as an error instead of trying again.
"""

from typing import List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry as URLRetry


class RetryStrategy:
    """Retry behaviour for HTTP requests (no retries by default)."""

    def __init__(self, max_retries: int = 0, backoff_factor: float = 0.5,
                 status_forcelist: Optional[List[int]] = None):
        """Initialize retry strategy.

        Args:
            max_retries: Maximum number of retry attempts (default: 0)
            backoff_factor: Exponential backoff multiplier between attempts
            status_forcelist: HTTP status codes to retry on
                              (default: [502, 503, 504])
        """
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self.status_forcelist = status_forcelist or [502, 503, 504]

    def get_retry_object(self) -> URLRetry:
        """Return the urllib3 Retry object for this strategy."""
        return URLRetry(
            total=self.max_retries,
            backoff_factor=self.backoff_factor,
            status_forcelist=self.status_forcelist,
            allowed_methods=["GET", "HEAD"],
            raise_on_status=False,
        )


class SessionManager:
    """Lazily created ``requests.Session`` with connection pooling."""

    def __init__(self, retry_strategy: Optional[RetryStrategy] = None,
                 pool_connections: int = 4, pool_maxsize: int = 8):
        self.retry_strategy = retry_strategy or RetryStrategy()
        self.pool_connections = pool_connections
        self.pool_maxsize = pool_maxsize
        self._session: Optional[requests.Session] = None

    @property
    def session(self) -> requests.Session:
        """Get or create the pooled session."""
        if self._session is None:
            self._session = requests.Session()
            adapter = HTTPAdapter(
                max_retries=self.retry_strategy.get_retry_object(),
                pool_connections=self.pool_connections,
                pool_maxsize=self.pool_maxsize,
            )
            self._session.mount("http://", adapter)
            self._session.mount("https://", adapter)
            self._session.headers.update({"Accept": "application/json"})
        return self._session

    def close(self) -> None:
        """Close the session and release pooled connections."""
        if self._session:
            self._session.close()
            self._session = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
