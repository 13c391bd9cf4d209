"""
spa_deploy.deploy — End-to-end sync: manifest + remote state → plan → apply → invalidate.

Reads local disk and the bucket fresh on every call; no state survives
between runs, so re-running after an interruption converges on the same
remote state.

The bucket name and distribution id for an environment can be resolved
from SSM:
    {ssm_prefix}/{env}/bucket-name
    {ssm_prefix}/{env}/distribution-id
"""

from __future__ import annotations

from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any

from spa_deploy.clients import CloudFrontClient, S3ObjectStore, get_ssm_parameter
from spa_deploy.config import DEFAULT_MAX_WORKERS, DEFAULT_SSM_PREFIX, get_logger
from spa_deploy.exceptions import (
    DeployConfigError,
    InvalidationTimeout,
    PollCancelled,
    PollTimeout,
)
from spa_deploy.executor import execute_plan
from spa_deploy.invalidation import InvalidationIssuer
from spa_deploy.manifest import load_manifest
from spa_deploy.models import (
    CachePolicy,
    DeployReport,
    InvalidationRequest,
    StoreTarget,
    SyncResult,
)
from spa_deploy.planner import plan_sync
from spa_deploy.polling import Waiter
from spa_deploy.remote import fetch_remote_state

logger = get_logger()

ENTRY_PAGE = "index.html"


def invalidation_paths(target: StoreTarget, changed: Iterable[str]) -> set[str]:
    """URL paths to purge for a set of changed relative paths.

    A changed directory index is also cached under its directory URL
    ('/' or '/docs/'), so that path is purged too.
    """
    paths: set[str] = set()
    for relative_path in changed:
        key = target.key_for(relative_path)
        paths.add(f"/{key}")
        if key == ENTRY_PAGE or key.endswith(f"/{ENTRY_PAGE}"):
            paths.add("/" + key.removesuffix(ENTRY_PAGE))
    return paths


def sync_site(
    root: str | Path,
    target: StoreTarget,
    *,
    store: S3ObjectStore,
    cdn: CloudFrontClient | None = None,
    distribution_id: str | None = None,
    cache_policy: CachePolicy | None = None,
    exclude: Iterable[str] = (),
    max_workers: int = DEFAULT_MAX_WORKERS,
    issuer: InvalidationIssuer | None = None,
    dry_run: bool = False,
    cancel: Waiter | None = None,
) -> DeployReport:
    """Synchronise root to target and invalidate what changed.

    Per-object failures do not raise: they are on report.result.failures
    (call report.result.raise_for_failures()).  Paths that were written
    successfully are still invalidated, so the edge never keeps serving a
    stale copy of an object that did change.

    Raises SiteRootUnreadable, RemoteUnavailable/AuthError, InvalidationTimeout
    and PollCancelled.  When the invalidation wait times out or is cancelled, the
    exception carries this run's DeployReport on its report attribute.
    """
    patterns = tuple(exclude)
    with ThreadPoolExecutor(max_workers=2) as pool:
        local_future = pool.submit(load_manifest, root, exclude=patterns)
        remote_future = pool.submit(fetch_remote_state, store, target, max_workers=max_workers)
        local = local_future.result()
        remote = remote_future.result()

    plan = plan_sync(local, remote)
    logger.info(
        "Planned sync",
        bucket=target.bucket,
        prefix=target.prefix,
        to_upload=len(plan.to_upload),
        to_delete=len(plan.to_delete),
        dry_run=dry_run,
    )
    if dry_run or plan.is_empty:
        return DeployReport(plan=plan, result=SyncResult())

    result = execute_plan(
        plan,
        store,
        target,
        root=root,
        cache_policy=cache_policy,
        max_workers=max_workers,
    )

    invalidations: tuple[InvalidationRequest, ...] = ()
    if distribution_id:
        if issuer is None:
            if cdn is None:
                raise DeployConfigError("A CDN client is required to invalidate a distribution")
            issuer = InvalidationIssuer(cdn)
        try:
            requests = issuer.issue(
                distribution_id,
                invalidation_paths(target, result.succeeded_paths),
                cancel=cancel,
            )
        except (PollTimeout, PollCancelled) as exc:
            issued = [*exc.issued, exc.request] if isinstance(exc, InvalidationTimeout) else []
            exc.report = DeployReport(plan=plan, result=result, invalidations=tuple(issued))
            raise
        invalidations = tuple(requests)

    return DeployReport(plan=plan, result=result, invalidations=invalidations)


def resolve_deploy_target(
    ssm_client: Any,
    env: str,
    *,
    ssm_prefix: str = DEFAULT_SSM_PREFIX,
) -> tuple[StoreTarget, str]:
    """Read the bucket name and distribution id for env from SSM."""
    bucket_param = f"{ssm_prefix}/{env}/bucket-name"
    distribution_param = f"{ssm_prefix}/{env}/distribution-id"

    bucket = get_ssm_parameter(ssm_client, bucket_param)
    if not bucket:
        raise DeployConfigError(f"SSM parameter not found: {bucket_param}")
    distribution_id = get_ssm_parameter(ssm_client, distribution_param)
    if not distribution_id:
        raise DeployConfigError(f"SSM parameter not found: {distribution_param}")

    logger.info(
        "Resolved deploy target",
        env=env,
        bucket=bucket,
        distribution_id=distribution_id,
    )
    return StoreTarget.parse(bucket), distribution_id
