"""
spa_deploy.reconciler — Converge a CloudFront distribution on its declared config.

State machine (one invocation):

    NoChange ─diff─▶ PendingUpdate ─submit─▶ Updating ─deployed─▶ Deployed
                           │                   │
                           └──error──▶ Failed ◀┘ error / timeout

Deployed and Failed are terminal.  The next run re-evaluates from NoChange;
nothing is carried between runs.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from spa_deploy.clients import CloudFrontClient, overlay_distribution_config
from spa_deploy.config import DEFAULT_POLL_INTERVAL_SECONDS, DEFAULT_TIMEOUT_SECONDS, get_logger
from spa_deploy.exceptions import (
    DeployConfigError,
    DeployError,
    PollCancelled,
    ReconcileTimeout,
)
from spa_deploy.models import (
    DeploymentStatus,
    DistributionConfig,
    LiveDistribution,
    ReconcileResult,
    ReconcileState,
)
from spa_deploy.polling import Waiter, poll_until

logger = get_logger()


class DistributionReconciler:
    def __init__(
        self,
        cdn: CloudFrontClient,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cdn = cdn
        self._timeout_seconds = timeout_seconds
        self._poll_interval_seconds = poll_interval_seconds
        self._clock = clock
        self.last_result: ReconcileResult | None = None

    def _evaluate(
        self, distribution_id: str, declared: DistributionConfig
    ) -> tuple[LiveDistribution, ReconcileResult]:
        live = self._cdn.get_config(distribution_id)
        self._validate(distribution_id, declared, live.origin_ids)
        result = ReconcileResult(distribution_id=distribution_id)
        self.last_result = result
        result.transition(ReconcileState.NO_CHANGE)
        result.diff = declared.diff(live.config)
        if live.cache_policy_id and result.diff.pop("default_ttl_seconds", None):
            logger.warning(
                "TTL is set by the cache policy; declared default TTL ignored",
                distribution_id=distribution_id,
                cache_policy_id=live.cache_policy_id,
            )
        elif "default_ttl_seconds" in result.diff and live.ttl_bounds is not None:
            min_ttl, max_ttl = live.ttl_bounds
            if not min_ttl <= declared.default_ttl_seconds <= max_ttl:
                raise DeployConfigError(
                    f"Default TTL {declared.default_ttl_seconds}s is outside the "
                    f"distribution's range [{min_ttl}, {max_ttl}] on {distribution_id}"
                )
        if result.diff:
            result.transition(ReconcileState.PENDING_UPDATE)
        return live, result

    def plan(self, distribution_id: str, declared: DistributionConfig) -> ReconcileResult:
        """Evaluate the diff without writing anything."""
        _, result = self._evaluate(distribution_id, declared)
        return result

    def reconcile(
        self,
        distribution_id: str,
        declared: DistributionConfig,
        *,
        cancel: Waiter | None = None,
    ) -> ReconcileResult:
        """Apply the declared config if it differs from the live one and wait for deployment.

        Returns the result in state NoChange or Deployed.  On provider error
        the result (also kept on last_result) moves to Failed and the error
        propagates; on timeout ReconcileTimeout is raised carrying the Failed
        result.  Cancellation leaves the result in Updating.
        """
        live, result = self._evaluate(distribution_id, declared)
        if not result.diff:
            logger.info(
                "Distribution already matches declared config", distribution_id=distribution_id
            )
            return result

        logger.info(
            "Distribution config differs",
            distribution_id=distribution_id,
            fields=sorted(result.diff),
        )

        try:
            result.operation_id = self._cdn.update_config(
                distribution_id,
                overlay_distribution_config(live.raw, declared),
                live.etag,
            )
            result.transition(ReconcileState.UPDATING)
            outcome = poll_until(
                lambda: self._cdn.get_status(distribution_id),
                is_done=lambda status: status is not DeploymentStatus.IN_PROGRESS,
                timeout_seconds=self._timeout_seconds,
                interval_seconds=self._poll_interval_seconds,
                cancel=cancel,
                description=f"distribution {distribution_id} deployment",
                clock=self._clock,
            )
        except PollCancelled:
            # the update keeps propagating; only the wait stopped
            raise
        except DeployError:
            result.transition(ReconcileState.FAILED)
            raise

        if not outcome.completed:
            result.transition(ReconcileState.FAILED)
            raise ReconcileTimeout(
                f"Distribution {distribution_id} not deployed after "
                f"{outcome.elapsed_seconds:.0f}s",
                result=result,
                elapsed_seconds=outcome.elapsed_seconds,
            )
        if outcome.value is DeploymentStatus.FAILED:
            result.transition(ReconcileState.FAILED)
            raise DeployError(f"Distribution {distribution_id} reported a failed deployment")

        result.transition(ReconcileState.DEPLOYED)
        logger.info(
            "Distribution deployed",
            distribution_id=distribution_id,
            operation_id=result.operation_id,
            elapsed_seconds=round(outcome.elapsed_seconds, 1),
        )
        return result

    def _validate(
        self, distribution_id: str, declared: DistributionConfig, origin_ids: tuple[str, ...]
    ) -> None:
        if origin_ids and declared.origin_id not in origin_ids:
            raise DeployConfigError(
                f"Origin {declared.origin_id!r} is not defined on distribution "
                f"{distribution_id} (origins: {', '.join(origin_ids)})"
            )
