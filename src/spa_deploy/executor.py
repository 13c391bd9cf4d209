"""
spa_deploy.executor — Apply a SyncPlan to the deploy target.

Ordering:
  1. every upload (bounded thread pool)
  2. barrier
  3. every delete (bounded thread pool)

Uploads go first so a renamed file's new key exists before the old key
disappears.  One failed object never aborts the rest of the plan; all
failures are collected on the SyncResult.  Retries are limited to the
client's botocore retry config.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path

from spa_deploy.clients import S3ObjectStore
from spa_deploy.config import DEFAULT_MAX_WORKERS, get_logger
from spa_deploy.models import (
    HASH_METADATA_KEY,
    CachePolicy,
    FileEntry,
    ObjectFailure,
    ObjectOperation,
    StoreTarget,
    SyncPlan,
    SyncResult,
)

logger = get_logger()


def _run_phase(
    operation: ObjectOperation,
    paths: Iterable[str],
    action: Callable[[str], None],
    *,
    max_workers: int,
) -> tuple[list[str], list[ObjectFailure]]:
    """Run action(path) for every path; return (succeeded, failures) sorted by path."""
    succeeded: list[str] = []
    failures: list[ObjectFailure] = []
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = {pool.submit(action, path): path for path in paths}
        for future in as_completed(futures):
            path = futures[future]
            try:
                future.result()
            except Exception as exc:
                logger.error(
                    "Object operation failed",
                    operation=operation.value,
                    path=path,
                    error=str(exc),
                )
                failures.append(ObjectFailure(path=path, operation=operation, cause=str(exc)))
            else:
                succeeded.append(path)
    succeeded.sort()
    failures.sort(key=lambda f: f.path)
    return succeeded, failures


def execute_plan(
    plan: SyncPlan,
    store: S3ObjectStore,
    target: StoreTarget,
    *,
    root: str | Path,
    cache_policy: CachePolicy | None = None,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> SyncResult:
    """Upload then delete per the plan.  Never raises for per-object failures.

    Call raise_for_failures() on the result to turn failures into
    PartialSyncFailure.
    """
    root_path = Path(root)
    policy = cache_policy or CachePolicy()
    entries: dict[str, FileEntry] = {e.relative_path: e for e in plan.to_upload}

    def upload(path: str) -> None:
        entry = entries[path]
        body = (root_path / path).read_bytes()
        cache_control = policy.cache_control_for(path)
        store.put(
            target.bucket,
            target.key_for(path),
            body,
            content_type=entry.content_type,
            cache_control=cache_control,
            metadata={HASH_METADATA_KEY: entry.content_hash},
        )
        logger.debug(
            "Uploaded object",
            key=target.key_for(path),
            bytes=len(body),
            content_type=entry.content_type,
            cache_control=cache_control,
        )

    def delete(path: str) -> None:
        store.delete(target.bucket, target.key_for(path))
        logger.debug("Deleted object", key=target.key_for(path))

    uploaded, upload_failures = _run_phase(
        ObjectOperation.UPLOAD, entries, upload, max_workers=max_workers
    )
    deleted, delete_failures = _run_phase(
        ObjectOperation.DELETE, sorted(plan.to_delete), delete, max_workers=max_workers
    )

    result = SyncResult(
        uploaded=tuple(uploaded),
        deleted=tuple(deleted),
        failures=tuple(upload_failures + delete_failures),
    )
    logger.info(
        "Applied sync plan",
        bucket=target.bucket,
        prefix=target.prefix,
        uploaded=len(result.uploaded),
        deleted=len(result.deleted),
        failed=len(result.failures),
    )
    return result
