import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar

import httpx
from loguru import logger

T = TypeVar("T")

TERMINAL_STATUSES = {"completed", "failed"}


@dataclass
class PollOutcome(Generic[T]):
    """Last value seen by the poller, or the error that stopped it."""
    value: Optional[T] = None
    error: Optional[str] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


class StatusPoller(Generic[T]):
    """
    Call `fetch` every `interval` seconds until `is_terminal` accepts the result.

    A failing fetch ends polling with an error outcome instead of retrying, so a
    broken status endpoint is never polled forever.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[T]],
        is_terminal: Callable[[T], bool],
        interval: float = 2.0,
        max_attempts: Optional[int] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.fetch = fetch
        self.is_terminal = is_terminal
        self.interval = interval
        self.max_attempts = max_attempts
        self._sleep = sleep

    async def run(self) -> PollOutcome[T]:
        attempts = 0
        value: Optional[T] = None
        while self.max_attempts is None or attempts < self.max_attempts:
            attempts += 1
            try:
                value = await self.fetch()
            except Exception as e:
                logger.warning(f"Status check failed after {attempts} attempt(s): {e}")
                return PollOutcome(value=value, error=str(e) or "Failed to check report status", attempts=attempts)

            if self.is_terminal(value):
                return PollOutcome(value=value, attempts=attempts)

            await self._sleep(self.interval)

        return PollOutcome(
            value=value,
            error=f"Report did not finish after {attempts} status checks",
            attempts=attempts,
        )


def is_terminal_status(payload: Dict[str, Any]) -> bool:
    return payload.get("status") in TERMINAL_STATUSES


async def poll_report(
    base_url: str,
    report_id: str,
    interval: float = 2.0,
    max_attempts: Optional[int] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> PollOutcome[Dict[str, Any]]:
    """
    Poll `GET /reports/{id}` on a running API until the report is terminal.

    Args:
        base_url: API root, e.g. http://localhost:8000
        report_id: Id returned by `POST /reports`
        interval: Seconds between checks
        max_attempts: Give up after this many checks (None polls indefinitely)
        client: Optional pre-configured httpx client

    Returns:
        Poll outcome whose value is the last status payload
    """
    owns_client = client is None
    http = client or httpx.AsyncClient(base_url=base_url, timeout=10)

    async def fetch() -> Dict[str, Any]:
        response = await http.get(f"{base_url.rstrip('/')}/reports/{report_id}")
        if response.status_code == 404:
            raise LookupError("Report not found")
        response.raise_for_status()
        return response.json()

    try:
        return await StatusPoller(fetch, is_terminal_status, interval, max_attempts).run()
    finally:
        if owns_client:
            await http.aclose()
