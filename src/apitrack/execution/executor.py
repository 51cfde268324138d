"""Test executor - performs one HTTP test and reports the raw outcome.

WHY
───
The executor is the only code that talks to the network. It never decides
pass/fail and never writes to the store; it turns one ``TestDefinition``
into one ``ExecutionOutcome``. Anything that stops the request from
completing (DNS, refused connection, TLS, timeout, malformed URL) is
captured as status 0 plus an error message instead of being raised.

ARCHITECTURE
────────────
::

    TestExecutor(client=None, timeout=30.0)
      ├── async with executor:       ─ owns an httpx.AsyncClient if none given
      └── await executor.execute(t)  ─ ExecutionOutcome(status, duration, error, body)

Example::

    async with TestExecutor(timeout=10) as executor:
        outcome = await executor.execute(test)
        print(outcome.status_code, outcome.duration_ms)
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import httpx

from apitrack.core.errors import TransportError
from apitrack.core.logging import get_logger
from apitrack.core.models.collection import TestDefinition

logger = get_logger(__name__)


@dataclass
class ExecutionOutcome:
    """What happened when one test was sent."""

    test_id: str
    test_name: str
    status_code: int
    duration_ms: float
    error: str | None = None
    response_body: str | None = None

    @property
    def completed(self) -> bool:
        """True when a response was received, whatever its status."""
        return self.error is None

    @classmethod
    def transport_failure(
        cls, test: TestDefinition, error: BaseException | str, duration_ms: float = 0.0
    ) -> ExecutionOutcome:
        return cls(
            test_id=test.id,
            test_name=test.name,
            status_code=0,
            duration_ms=duration_ms,
            error=str(error) or error.__class__.__name__,
            response_body=None,
        )


class TestExecutor:
    """Sends test requests over a shared ``httpx.AsyncClient``.

    Parameters
    ----------
    client : httpx.AsyncClient | None
        Client to use. When omitted, one is created on ``__aenter__`` and
        closed on ``__aexit__``.
    timeout : float
        Per-request timeout in seconds (applies to owned clients).
    max_response_chars : int
        Response bodies longer than this are truncated.
    transport : httpx.AsyncBaseTransport | None
        Transport for an owned client (``httpx.MockTransport`` in tests).
    """

    __test__ = False

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        timeout: float = 30.0,
        max_response_chars: int = 65_536,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout
        self._max_response_chars = max_response_chars
        self._transport = transport

    async def __aenter__(self) -> TestExecutor:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
                follow_redirects=True,
            )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def execute(self, test: TestDefinition) -> ExecutionOutcome:
        """Send one test request.

        Args:
            test: Test definition to send

        Returns:
            ExecutionOutcome; ``status_code`` is 0 when no response arrived.
        """
        if self._client is None:
            raise RuntimeError("TestExecutor must be used as an async context manager")

        request_kwargs: dict[str, Any] = {"headers": test.headers or None}
        if test.sends_body:
            request_kwargs["content"] = test.body

        started = time.perf_counter()
        try:
            response = await self._client.request(test.method.upper(), test.url, **request_kwargs)
        except (httpx.RequestError, httpx.InvalidURL) as e:
            elapsed_ms = (time.perf_counter() - started) * 1000
            error = TransportError(str(e) or e.__class__.__name__, cause=e).with_context(
                test_id=test.id, url=test.url
            )
            logger.info(
                "executor.transport_failed",
                test_id=test.id,
                url=test.url,
                error_type=e.__class__.__name__,
                error=error.message,
            )
            return ExecutionOutcome.transport_failure(test, error.message, elapsed_ms)
        elapsed_ms = (time.perf_counter() - started) * 1000

        body = response.text
        if len(body) > self._max_response_chars:
            body = body[: self._max_response_chars]

        logger.debug(
            "executor.completed",
            test_id=test.id,
            status_code=response.status_code,
            duration_ms=round(elapsed_ms, 2),
        )
        return ExecutionOutcome(
            test_id=test.id,
            test_name=test.name,
            status_code=response.status_code,
            duration_ms=elapsed_ms,
            error=None,
            response_body=body,
        )
