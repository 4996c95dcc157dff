"""Reassembly of push bodies split over several HTTP requests.

A sender splits a long body into ``page_count`` pages tagged with one
``request_id``. Page 0 opens a buffer, every page appends to it and the
last page returns the complete text and drops the buffer. A page for a
request id with no open buffer is rejected. ``reap()`` drops buffers
older than the TTL; it is driven by a ``PeriodicTask``.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field

from .errors import PartialRequestError

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60


@dataclass
class PartialRequestBuffer:
    created_at: float
    pages: list[str] = field(default_factory=list)

    @property
    def payload(self) -> str:
        return "".join(self.pages)


class PartialRequestStore:
    """Thread-safe map of ``request_id`` to open buffers.

    Args:
        ttl: Seconds after which an unfinished buffer is reaped.
        clock: Time source returning seconds; ``time.monotonic`` by default.
    """

    def __init__(self, ttl: float = DEFAULT_TTL_SECONDS, clock=time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._buffers: dict[str, PartialRequestBuffer] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffers)

    def __contains__(self, request_id: str) -> bool:
        with self._lock:
            return request_id in self._buffers

    def add_page(
        self, request_id: str, page_index: int, page_count: int, body: str
    ) -> str | None:
        """Append one page.

        Returns:
            The complete payload when *page_index* is the last page,
            otherwise ``None``.

        Raises:
            PartialRequestError: For an unknown request id or bad indices.
        """
        if page_count < 1 or not 0 <= page_index < page_count:
            raise PartialRequestError(
                f"Invalid page {page_index} of {page_count} for request {request_id}"
            )

        with self._lock:
            if page_index == 0:
                self._buffers[request_id] = PartialRequestBuffer(
                    created_at=self._clock()
                )

            buffer = self._buffers.get(request_id)
            if buffer is None:
                raise PartialRequestError(
                    f"Partial request {request_id}, page {page_index} of "
                    f"{page_count} has no buffer"
                )
            buffer.pages.append(body)

            if page_index != page_count - 1:
                return None

            del self._buffers[request_id]

        logger.debug(
            "Reassembled request %s from %d pages", request_id, page_count
        )
        return buffer.payload

    def reap(self, now: float | None = None) -> int:
        """Drop buffers older than the TTL and return how many were dropped."""
        now = self._clock() if now is None else now
        with self._lock:
            expired = [
                rid
                for rid, buf in self._buffers.items()
                if now - buf.created_at > self.ttl
            ]
            for rid in expired:
                del self._buffers[rid]

        if expired:
            logger.info("Reaped %d expired partial request(s)", len(expired))
        return len(expired)
