"""Unit tests for spa_deploy.planner — pure diff planning."""

from __future__ import annotations

import hashlib

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from spa_deploy.models import FileEntry, RemoteObject, SyncPlan
from spa_deploy.planner import plan_sync


def _hash(text: str) -> str:
    return hashlib.sha256(text.encode()).hexdigest()


def _local(path: str, content: str = "x") -> FileEntry:
    return FileEntry(
        relative_path=path,
        content_hash=_hash(content),
        size_bytes=len(content),
        content_type="text/html",
    )


def _remote(key: str, content: str = "x") -> RemoteObject:
    return RemoteObject(key=key, etag_or_hash=_hash(content), content_type="text/html")


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------


def test_empty_remote_uploads_everything() -> None:
    index = _local("index.html", "A")
    plan = plan_sync([index], [])
    assert plan == SyncPlan(to_upload=(index,), to_delete=frozenset())


def test_matching_hash_is_skipped_and_orphan_deleted() -> None:
    plan = plan_sync([_local("index.html", "A")], [_remote("index.html", "A"), _remote("old.html")])
    assert plan.to_upload == ()
    assert plan.to_delete == {"old.html"}


def test_changed_hash_is_uploaded() -> None:
    updated = _local("index.html", "B")
    plan = plan_sync([updated], [_remote("index.html", "A")])
    assert plan.to_upload == (updated,)
    assert plan.to_delete == frozenset()


def test_hash_is_authoritative_over_size() -> None:
    """Same size, different bytes → upload; different size metadata is never consulted."""
    local = FileEntry("app.js", _hash("aaaa"), 4, "text/javascript")
    remote = RemoteObject("app.js", _hash("bbbb"), "text/javascript")
    assert plan_sync([local], [remote]).to_upload == (local,)


def test_foreign_etag_forces_upload() -> None:
    local = _local("index.html", "A")
    remote = RemoteObject("index.html", "9b2cf535f27731c974343645a3985328", "text/html")
    assert plan_sync([local], [remote]).to_upload == (local,)


def test_uploads_ordered_by_path() -> None:
    entries = [_local("z.js"), _local("a.js"), _local("m/index.html")]
    plan = plan_sync(entries, [])
    assert [e.relative_path for e in plan.to_upload] == ["a.js", "m/index.html", "z.js"]


def test_duplicate_local_path_rejected() -> None:
    with pytest.raises(ValueError, match="Duplicate path"):
        plan_sync([_local("index.html", "A"), _local("index.html", "B")], [])


def test_second_run_without_changes_is_empty() -> None:
    local = [_local("index.html", "A"), _local("assets/app.js", "B")]
    first = plan_sync(local, [])
    remote_after = [
        RemoteObject(e.relative_path, e.content_hash, e.content_type) for e in first.to_upload
    ]
    assert plan_sync(local, remote_after).is_empty


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------

_paths = st.sets(
    st.from_regex(r"[a-z]{1,6}(/[a-z]{1,6})?\.(html|js|css)", fullmatch=True), max_size=20
)
_contents = st.sampled_from(["A", "B", "C"])

PROPERTY_SETTINGS = settings(
    max_examples=200,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)


@given(local_paths=_paths, remote_paths=_paths, data=st.data())
@PROPERTY_SETTINGS
def test_upload_and_delete_are_disjoint(local_paths, remote_paths, data) -> None:
    local = [_local(p, data.draw(_contents)) for p in local_paths]
    remote = [_remote(p, data.draw(_contents)) for p in remote_paths]
    plan = plan_sync(local, remote)
    uploaded = {e.relative_path for e in plan.to_upload}
    assert uploaded.isdisjoint(plan.to_delete)
    assert plan.to_delete == remote_paths - local_paths
    assert uploaded <= local_paths


@given(local_paths=_paths, remote_paths=_paths)
@PROPERTY_SETTINGS
def test_plan_is_deterministic(local_paths, remote_paths) -> None:
    local = [_local(p) for p in sorted(local_paths)]
    same_local_reordered = [_local(p) for p in sorted(local_paths, reverse=True)]
    remote = [_remote(p, "other") for p in remote_paths]
    assert plan_sync(local, remote) == plan_sync(same_local_reordered, remote)
