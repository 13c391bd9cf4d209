"""
spa_deploy.exceptions — Error taxonomy for site deployment.

Every failure the tool reports maps to one of these classes.  botocore
errors are translated once, in spa_deploy.clients; nothing else in the
package catches provider exceptions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from spa_deploy.models import (
        DeployReport,
        InvalidationRequest,
        ObjectFailure,
        ReconcileResult,
    )


class DeployError(RuntimeError):
    """Base class for spa-deploy errors."""


class SiteRootUnreadable(DeployError, OSError):
    """Raised when the local site directory is missing or cannot be read."""


class DeployConfigError(DeployError):
    """Raised for invalid settings, policy files or declared distribution config."""


class RemoteUnavailable(DeployError):
    """
    Raised when S3, CloudFront or SSM cannot be reached or rejects a call.

    Attributes:
        operation: Provider operation that failed (e.g. "ListObjectsV2").
        code:      Provider error code when one was returned.
    """

    def __init__(self, message: str, *, operation: str = "", code: str = "") -> None:
        super().__init__(message)
        self.operation = operation
        self.code = code


class AuthError(RemoteUnavailable):
    """Raised when credentials are missing, expired or rejected."""


class PartialSyncFailure(DeployError):
    """
    Aggregate of per-object failures after a sync attempt.

    Enumerates every failed path and its cause so the caller can retry
    exactly the failed subset.

    Attributes:
        failures:  One ObjectFailure per failed upload or delete.
        succeeded: Paths whose operation completed.
    """

    def __init__(
        self,
        failures: tuple[ObjectFailure, ...],
        *,
        succeeded: tuple[str, ...] = (),
    ) -> None:
        self.failures = failures
        self.succeeded = succeeded
        lines = [f"{f.operation} {f.path}: {f.cause}" for f in failures]
        super().__init__(f"{len(failures)} object operation(s) failed: " + "; ".join(lines))

    @property
    def failed_paths(self) -> list[str]:
        return [f.path for f in self.failures]


class PollTimeout(DeployError):
    """Raised when an asynchronous provider operation outlives its deadline.

    report is set when the wait followed a sync, so the sync outcome is not lost.
    """

    def __init__(self, message: str, *, elapsed_seconds: float = 0.0) -> None:
        super().__init__(message)
        self.elapsed_seconds = elapsed_seconds
        self.report: DeployReport | None = None


class ReconcileTimeout(PollTimeout):
    """Raised when a distribution update is not deployed before the timeout."""

    def __init__(self, message: str, *, result: ReconcileResult, elapsed_seconds: float) -> None:
        super().__init__(message, elapsed_seconds=elapsed_seconds)
        self.result = result


class InvalidationTimeout(PollTimeout):
    """Raised when an invalidation does not complete before the timeout."""

    def __init__(
        self,
        message: str,
        *,
        request: InvalidationRequest,
        issued: list[InvalidationRequest] | None = None,
        elapsed_seconds: float,
    ) -> None:
        super().__init__(message, elapsed_seconds=elapsed_seconds)
        self.request = request
        self.issued = issued or []


class PollCancelled(DeployError):
    """
    Raised when the caller cancels a poll loop.

    The provider-side operation keeps running; only the wait was abandoned.
    """

    def __init__(self, message: str, *, context: Any = None) -> None:
        super().__init__(message)
        self.context = context
        self.report: DeployReport | None = None
