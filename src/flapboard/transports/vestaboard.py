"""Vestaboard Read/Write API client.

Pushes a 6×22 character-code matrix to one board, authenticated by the
board's write key in the ``X-Vestaboard-Read-Write-Key`` header.

Status handling:
    ::

        2xx, 304 ──► PushOutcome(success=True)      (304: already showing it)
        4xx      ──► PushOutcome(success=False)     (bad key, bad payload)
        5xx      ──► TransportError                 (retryable next tick)
        timeout,
        network  ──► TransportError

The device rate-limits writes per key, so the client remembers when it
last posted with each key and logs a warning when two posts come closer
than ``min_post_spacing_seconds``.  It never delays or drops a post.

A fresh ``httpx.AsyncClient`` is opened per push because the tick backend
runs each tick in its own event loop.

Tags:
    transport, vestaboard, httpx, async
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

import httpx

from flapboard.core.errors import ErrorContext, TransportError, ValidationError
from flapboard.core.logging import get_logger
from flapboard.core.protocols import Matrix, PushOutcome

logger = get_logger(__name__)

ROWS = 6
COLUMNS = 22
MAX_CODE = 70
WRITE_KEY_HEADER = "X-Vestaboard-Read-Write-Key"


def validate_matrix(matrix: Any) -> None:
    """Raise ``ValidationError`` unless ``matrix`` is 6 rows of 22 codes in 0–70."""
    if not isinstance(matrix, list) or len(matrix) != ROWS:
        raise ValidationError(f"Matrix must have {ROWS} rows", field="matrix")
    for row_index, row in enumerate(matrix):
        if not isinstance(row, list) or len(row) != COLUMNS:
            raise ValidationError(f"Matrix row {row_index} must have {COLUMNS} columns", field="matrix")
        for code in row:
            if isinstance(code, bool) or not isinstance(code, int) or not 0 <= code <= MAX_CODE:
                raise ValidationError(
                    f"Matrix row {row_index} has invalid code {code!r} (expected 0-{MAX_CODE})",
                    field="matrix",
                    value=code,
                )


class VestaboardClient:
    """Async transport for the Vestaboard Read/Write API.

    Args:
        base_url: API base URL.
        timeout: Per-request timeout in seconds.
        min_post_spacing_seconds: Spacing below which a warning is logged.
        transport: Optional httpx transport (``httpx.MockTransport`` in tests).
        clock: Monotonic seconds source for post spacing.
    """

    def __init__(
        self,
        base_url: str = "https://rw.vestaboard.com",
        timeout: float = 15.0,
        min_post_spacing_seconds: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.min_post_spacing_seconds = min_post_spacing_seconds
        self._transport = transport
        self._clock = clock
        self._last_post: dict[str, float] = {}

    @classmethod
    def from_settings(cls, settings: Any) -> VestaboardClient:
        return cls(
            base_url=settings.vestaboard_base_url,
            timeout=settings.push_timeout_seconds,
            min_post_spacing_seconds=settings.min_post_spacing_seconds,
        )

    async def push(self, credential: str, matrix: Matrix) -> PushOutcome:
        """POST ``matrix`` to the board owning ``credential``.

        Raises:
            ValidationError: Missing credential or malformed matrix.
            TransportError: 5xx response, timeout or network failure.
        """
        if not credential:
            raise ValidationError("Vestaboard write key is required", field="credential")
        validate_matrix(matrix)

        self._check_spacing(credential)
        started = self._clock()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/",
                    json=matrix,
                    headers={WRITE_KEY_HEADER: credential},
                )
        except httpx.TimeoutException as exc:
            raise TransportError("Vestaboard API timeout", cause=exc) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Vestaboard network error: {exc}", cause=exc) from exc

        duration_ms = round((self._clock() - started) * 1000)
        status = response.status_code

        if status >= 500:
            raise TransportError(
                f"Vestaboard API error: {status}",
                context=ErrorContext(http_status=status),
            )

        if status == 304:
            self._last_post[credential] = self._clock()
            logger.info("vestaboard_not_modified", duration_ms=duration_ms)
            return PushOutcome(
                success=True,
                status=304,
                data={"message": "Not modified - board already displaying this content"},
            )

        data = _response_data(response)
        if status >= 400:
            logger.warning("vestaboard_rejected", status=status, duration_ms=duration_ms, data=data)
            return PushOutcome(success=False, status=status, data=data)

        self._last_post[credential] = self._clock()
        logger.info("vestaboard_updated", status=status, duration_ms=duration_ms)
        return PushOutcome(success=True, status=status, data=data)

    async def test_connection(self, credential: str) -> bool:
        """Push a blank screen; True if the device accepted it."""
        blank = [[0] * COLUMNS for _ in range(ROWS)]
        try:
            outcome = await self.push(credential, blank)
        except (TransportError, ValidationError) as exc:
            logger.warning("vestaboard_connection_failed", error=exc.message)
            return False
        return outcome.success

    def _check_spacing(self, credential: str) -> None:
        last = self._last_post.get(credential)
        if last is None:
            logger.debug("vestaboard_first_post")
            return
        elapsed = self._clock() - last
        if elapsed < self.min_post_spacing_seconds:
            logger.warning(
                "vestaboard_post_spacing",
                elapsed_seconds=round(elapsed, 1),
                minimum_seconds=self.min_post_spacing_seconds,
            )


def _response_data(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text
