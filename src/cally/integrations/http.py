"""Retry policy shared by the httpx-based provider clients.

Three attempts with exponential backoff (1-10s). ``provider_retry`` retries
transient failures: connection errors, timeouts, 429 and 5xx responses.
``create_retry`` wraps non-idempotent creates and retries connection
failures only. The original exception is re-raised once attempts are
exhausted.
"""

from __future__ import annotations

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

TIMEOUT_MUTATE = 30.0  # create/update/delete operations
TIMEOUT_READ = 10.0  # get/list operations


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, (httpx.ConnectError, httpx.TimeoutException)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


provider_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception(is_transient),
    reraise=True,
)


def is_connect_failure(exc: BaseException) -> bool:
    return isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout))


# POSTs that create a resource: retried only when the request never
# reached the provider
create_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception(is_connect_failure),
    reraise=True,
)


class ProviderError(Exception):
    """A third-party API rejected a request or stayed unavailable."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message
