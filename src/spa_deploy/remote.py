"""
spa_deploy.remote — Fetch the current object set of the deploy target.

Listing gives keys and ETags only; the content hash and content type live
in object metadata, so each object is HEADed on a bounded thread pool.
Objects uploaded by this tool carry their SHA-256 in the "sha256" user
metadata.  Anything else falls back to its ETag, which never matches a
SHA-256 digest and is therefore re-uploaded once.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Any

from spa_deploy.clients import S3ObjectStore
from spa_deploy.config import DEFAULT_MAX_WORKERS, get_logger
from spa_deploy.models import DEFAULT_CONTENT_TYPE, HASH_METADATA_KEY, RemoteObject, StoreTarget

logger = get_logger()


def _remote_object(
    store: S3ObjectStore, target: StoreTarget, summary: dict[str, Any]
) -> RemoteObject:
    key = str(summary["Key"])
    head = store.head(target.bucket, key)
    metadata = {k.lower(): v for k, v in (head.get("Metadata") or {}).items()}
    etag = str(head.get("ETag") or summary.get("ETag", "")).strip('"')
    return RemoteObject(
        key=target.relative_key(key),
        etag_or_hash=str(metadata.get(HASH_METADATA_KEY) or etag),
        content_type=str(head.get("ContentType") or DEFAULT_CONTENT_TYPE),
    )


def fetch_remote_state(
    store: S3ObjectStore,
    target: StoreTarget,
    *,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> list[RemoteObject]:
    """List every object under target and return RemoteObjects keyed relative to its prefix.

    Raises RemoteUnavailable (or AuthError) when the listing or any HEAD fails.
    """
    summaries = [
        s for s in store.list(target.bucket, target.prefix) if not s["Key"].endswith("/")
    ]
    if not summaries:
        logger.info("Remote target is empty", bucket=target.bucket, prefix=target.prefix)
        return []

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        remote = list(pool.map(lambda s: _remote_object(store, target, s), summaries))

    remote.sort(key=lambda o: o.key)
    logger.info(
        "Fetched remote state",
        bucket=target.bucket,
        prefix=target.prefix,
        objects=len(remote),
    )
    return remote
