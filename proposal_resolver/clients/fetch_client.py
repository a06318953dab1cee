"""
HTTP fetch client with timeout, retry and exponential backoff.

Every outbound request of the pipeline goes through `ResilientFetchClient`.
Failures that are already accounted for by the retry logic are recorded in a
shared `HandledErrors` registry so the loop-level `ErrorObserver` does not
report them a second time.
"""
import asyncio
import weakref
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from proposal_resolver.exceptions import NetworkError, is_transient_error
from proposal_resolver.utils.logger import logger

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY_MS = 1000


class HandledErrors:
    """
    Registry of exceptions the pipeline has already dealt with.

    Entries are weak references: an error leaves the registry as soon as
    nothing else holds it.
    """

    def __init__(self):
        self._errors: "weakref.WeakSet[BaseException]" = weakref.WeakSet()

    def add(self, error: BaseException) -> None:
        self._errors.add(error)

    def discard(self, error: BaseException) -> None:
        self._errors.discard(error)

    def __contains__(self, error: object) -> bool:
        return error in self._errors

    def __len__(self) -> int:
        return len(self._errors)

    def is_handled(self, error: Optional[BaseException]) -> bool:
        """True if the error, or the error it wraps, was marked handled."""
        if error is None:
            return False
        if error in self._errors:
            return True
        cause = error.__cause__
        return cause is not None and cause in self._errors


class ErrorObserver:
    """
    asyncio loop exception handler that drops already-handled fetch errors.

    Anything not registered in `HandledErrors` is passed on to the loop's
    default handler untouched.

    Usage:
        observer = ErrorObserver(handled)
        observer.install(asyncio.get_running_loop())
    """

    def __init__(self, handled: HandledErrors):
        self.handled = handled
        self.suppressed = 0

    def __call__(self, loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        error = context.get("exception")
        if self.handled.is_handled(error):
            self.suppressed += 1
            logger.debug(f"[ErrorObserver] Suppressed handled error: {error}")
            self.handled.discard(error)
            return
        loop.default_exception_handler(context)

    def install(self, loop: asyncio.AbstractEventLoop) -> None:
        loop.set_exception_handler(self)


class ResilientFetchClient:
    """
    Async HTTP client wrapper used by all platform fetchers.

    Each attempt gets its own timeout. Transient transport failures are
    retried with a delay of `base_delay_ms * 2**attempt` before the next
    attempt; other failures are raised at once. HTTP error statuses are
    returned to the caller as-is.
    """

    def __init__(
        self,
        handled: Optional[HandledErrors] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize the fetch client.

        Args:
            handled: Shared registry of handled errors (a private one if omitted)
            timeout: Per-attempt timeout in seconds (default 10.0)
            max_attempts: Default attempt budget per request
            base_delay_ms: Default backoff base in milliseconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
            sleep: Coroutine used for backoff waits
        """
        self.handled = handled if handled is not None else HandledErrors()
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self._sleep = sleep
        self.client = httpx.AsyncClient(timeout=httpx.Timeout(timeout), transport=transport)

    async def fetch_with_retry(
        self,
        url: str,
        method: str = "GET",
        *,
        json: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        max_attempts: Optional[int] = None,
        base_delay_ms: Optional[int] = None,
    ) -> httpx.Response:
        """
        Perform a request, retrying transient failures.

        Args:
            url: Target URL
            method: HTTP method
            json: Optional JSON body
            headers: Optional request headers
            params: Optional query parameters
            max_attempts: Attempt budget (defaults to the client setting)
            base_delay_ms: Backoff base (defaults to the client setting)

        Returns:
            The first response obtained, whatever its status code

        Raises:
            NetworkError: After the attempt budget is spent, or on a
                non-transient failure
        """
        attempts = max_attempts if max_attempts is not None else self.max_attempts
        base_delay = base_delay_ms if base_delay_ms is not None else self.base_delay_ms
        last_error: Optional[BaseException] = None
        made = 0

        for attempt in range(attempts):
            made = attempt + 1
            try:
                return await asyncio.wait_for(
                    self.client.request(method, url, json=json, headers=headers, params=params),
                    timeout=self.timeout,
                )
            except Exception as e:
                last_error = e
                if not is_transient_error(e):
                    logger.warning(f"[FetchClient] Non-retryable error for {url}: {type(e).__name__}: {e}")
                    break
                if attempt >= attempts - 1:
                    break

                delay_ms = base_delay * (2 ** attempt)
                logger.warning(
                    f"[FetchClient] {type(e).__name__} (attempt {made}/{attempts}), "
                    f"retrying in {delay_ms}ms: {url}"
                )
                self.handled.add(e)
                await self._sleep(delay_ms / 1000)

        error = NetworkError(url, made, last_error)
        self.handled.add(error)
        if last_error is not None:
            self.handled.add(last_error)
        raise error from last_error

    async def post_json(self, url: str, payload: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> httpx.Response:
        """POST a JSON body (GraphQL queries) with retry."""
        request_headers = {"Content-Type": "application/json"}
        if headers:
            request_headers.update(headers)
        return await self.fetch_with_retry(url, "POST", json=payload, headers=request_headers)

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
