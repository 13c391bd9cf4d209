"""
spa_deploy.invalidation — Purge changed paths from CloudFront edge caches.

Invalidations are billed per request, so:
  - an empty path set issues nothing
  - paths are batched into as few requests as the batch limit allows
Chunks are submitted one at a time; each is polled to completion before
the next is sent.  A timeout is reported, never retried.
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable, Iterable
from urllib.parse import quote

from spa_deploy.clients import CloudFrontClient
from spa_deploy.config import (
    DEFAULT_INVALIDATION_BATCH_LIMIT,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
    get_logger,
)
from spa_deploy.exceptions import InvalidationTimeout
from spa_deploy.models import InvalidationRequest, InvalidationStatus
from spa_deploy.polling import Waiter, poll_until

logger = get_logger()

_ESCAPE = re.compile(r"(%[0-9A-Fa-f]{2})")


def to_invalidation_path(path: str) -> str:
    """CloudFront form: leading '/', percent-encoded, '*' kept as a wildcard.

    Existing %XX escapes are kept, so an already-encoded path is not encoded twice.
    """
    parts = _ESCAPE.split(path.lstrip("/"))
    return "/" + "".join(
        part if _ESCAPE.fullmatch(part) else quote(part, safe="/*~-._") for part in parts
    )


def chunked(items: list[str], size: int) -> list[list[str]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


class InvalidationIssuer:
    def __init__(
        self,
        cdn: CloudFrontClient,
        *,
        batch_limit: int = DEFAULT_INVALIDATION_BATCH_LIMIT,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if batch_limit <= 0:
            raise ValueError(f"batch_limit must be positive, got {batch_limit}")
        self._cdn = cdn
        self._batch_limit = batch_limit
        self._timeout_seconds = timeout_seconds
        self._poll_interval_seconds = poll_interval_seconds
        self._clock = clock

    def issue(
        self,
        distribution_id: str,
        paths: Iterable[str],
        *,
        cancel: Waiter | None = None,
    ) -> list[InvalidationRequest]:
        """Invalidate paths; returns one completed InvalidationRequest per chunk.

        Raises InvalidationTimeout if a chunk does not complete in time, and
        PollCancelled if cancel is set while waiting.
        """
        normalised = sorted({to_invalidation_path(p) for p in paths})
        if not normalised:
            logger.info("No changed paths; skipping invalidation", distribution_id=distribution_id)
            return []

        chunks = chunked(normalised, self._batch_limit)
        issued: list[InvalidationRequest] = []
        for index, chunk in enumerate(chunks, start=1):
            request_id = self._cdn.create_invalidation(distribution_id, chunk)
            logger.info(
                "Submitted invalidation",
                distribution_id=distribution_id,
                request_id=request_id,
                paths=len(chunk),
                chunk=index,
                chunks=len(chunks),
            )
            request = InvalidationRequest(paths=frozenset(chunk), request_id=request_id)

            outcome = poll_until(
                lambda rid=request_id: self._cdn.get_invalidation_status(distribution_id, rid),
                is_done=lambda status: status is not InvalidationStatus.PENDING,
                timeout_seconds=self._timeout_seconds,
                interval_seconds=self._poll_interval_seconds,
                cancel=cancel,
                description=f"invalidation {request_id}",
                clock=self._clock,
            )
            if not outcome.completed or outcome.value is InvalidationStatus.FAILED:
                failed = InvalidationRequest(
                    paths=request.paths,
                    request_id=request_id,
                    status=InvalidationStatus.FAILED,
                )
                reason = "timed out" if not outcome.completed else "was reported failed"
                raise InvalidationTimeout(
                    f"Invalidation {request_id} on {distribution_id} {reason} "
                    f"after {outcome.elapsed_seconds:.0f}s",
                    request=failed,
                    issued=issued,
                    elapsed_seconds=outcome.elapsed_seconds,
                )

            completed = InvalidationRequest(
                paths=request.paths,
                request_id=request_id,
                status=InvalidationStatus.COMPLETED,
            )
            issued.append(completed)
            logger.info(
                "Invalidation completed",
                distribution_id=distribution_id,
                request_id=request_id,
                elapsed_seconds=round(outcome.elapsed_seconds, 1),
            )
        return issued
