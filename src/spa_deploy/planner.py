"""
spa_deploy.planner — Compute the minimal put/delete plan.

Pure function; no I/O.  The content hash is authoritative: size and mtime
are never compared, since mtime is not preserved across checkouts and CI
runners.
"""

from __future__ import annotations

from collections.abc import Iterable

from spa_deploy.models import FileEntry, RemoteObject, SyncPlan


def plan_sync(local: Iterable[FileEntry], remote: Iterable[RemoteObject]) -> SyncPlan:
    """Return the SyncPlan that makes remote match local.

    - local path absent remotely, or hash differs → upload
    - remote key absent locally                   → delete

    Uploads are ordered by path.  Raises ValueError on duplicate local paths.
    """
    local_by_path: dict[str, FileEntry] = {}
    for entry in local:
        if entry.relative_path in local_by_path:
            raise ValueError(f"Duplicate path in manifest: {entry.relative_path!r}")
        local_by_path[entry.relative_path] = entry

    remote_by_key = {obj.key: obj for obj in remote}

    to_upload = tuple(
        entry
        for path, entry in sorted(local_by_path.items())
        if path not in remote_by_key or remote_by_key[path].etag_or_hash != entry.content_hash
    )
    to_delete = frozenset(key for key in remote_by_key if key not in local_by_path)
    return SyncPlan(to_upload=to_upload, to_delete=to_delete)
