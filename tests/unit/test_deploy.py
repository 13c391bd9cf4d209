"""Unit tests for spa_deploy.deploy — end-to-end sync against moto S3."""

from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import boto3
import pytest
from moto import mock_aws
from spa_deploy.clients import CloudFrontClient, S3ObjectStore
from spa_deploy.deploy import invalidation_paths, resolve_deploy_target, sync_site
from spa_deploy.exceptions import (
    DeployConfigError,
    InvalidationTimeout,
    PollCancelled,
    RemoteUnavailable,
    SiteRootUnreadable,
)
from spa_deploy.invalidation import InvalidationIssuer
from spa_deploy.models import InvalidationRequest, InvalidationStatus, StoreTarget

from conftest import BUCKET, REGION, FakeClock


def _keys(s3_client: Any) -> list[str]:
    return [o["Key"] for o in s3_client.list_objects_v2(Bucket=BUCKET).get("Contents", [])]


def _fake_issuer() -> MagicMock:
    issuer = MagicMock(spec=InvalidationIssuer)
    issuer.issue.side_effect = lambda dist, paths, cancel=None: [
        InvalidationRequest(
            paths=frozenset(paths), request_id="I1", status=InvalidationStatus.COMPLETED
        )
    ]
    return issuer


# ---------------------------------------------------------------------------
# invalidation_paths
# ---------------------------------------------------------------------------


def test_invalidation_paths_include_directory_urls() -> None:
    paths = invalidation_paths(
        StoreTarget(bucket=BUCKET), ["index.html", "docs/index.html", "assets/app.js"]
    )
    assert paths == {"/index.html", "/", "/docs/index.html", "/docs/", "/assets/app.js"}


def test_invalidation_paths_use_prefix() -> None:
    paths = invalidation_paths(StoreTarget.parse(f"{BUCKET}/v2"), ["index.html"])
    assert paths == {"/v2/index.html", "/v2/"}


# ---------------------------------------------------------------------------
# sync_site
# ---------------------------------------------------------------------------


def test_first_deploy_uploads_everything_and_invalidates(
    s3_client: Any, store: S3ObjectStore, target: StoreTarget, site_dir: Path
) -> None:
    issuer = _fake_issuer()

    report = sync_site(site_dir, target, store=store, distribution_id="D1", issuer=issuer)

    assert report.result.failures == ()
    assert sorted(report.result.uploaded) == sorted(_keys(s3_client))
    assert len(report.result.uploaded) == 4
    assert report.invalidation_ids == ["I1"]
    distribution_id, paths = issuer.issue.call_args.args
    assert distribution_id == "D1"
    assert "/" in paths
    assert "/assets/app.3f9a1c.js" in paths


def test_second_run_is_a_no_op(
    s3_client: Any, store: S3ObjectStore, target: StoreTarget, site_dir: Path
) -> None:
    sync_site(site_dir, target, store=store)
    issuer = _fake_issuer()

    report = sync_site(site_dir, target, store=store, distribution_id="D1", issuer=issuer)

    assert report.plan.is_empty
    assert report.result.uploaded == ()
    assert report.invalidations == ()
    issuer.issue.assert_not_called()


def test_changed_entry_page_invalidates_root_url(
    store: S3ObjectStore, target: StoreTarget, site_dir: Path
) -> None:
    sync_site(site_dir, target, store=store)
    (site_dir / "index.html").write_text("<!doctype html><p>v2</p>", encoding="utf-8")
    issuer = _fake_issuer()

    report = sync_site(site_dir, target, store=store, distribution_id="D1", issuer=issuer)

    assert report.result.uploaded == ("index.html",)
    assert report.result.deleted == ()
    assert issuer.issue.call_args.args[1] == {"/index.html", "/"}


def test_orphan_is_deleted(
    s3_client: Any, store: S3ObjectStore, target: StoreTarget, site_dir: Path
) -> None:
    sync_site(site_dir, target, store=store)
    s3_client.put_object(Bucket=BUCKET, Key="old.html", Body=b"stale")

    report = sync_site(site_dir, target, store=store)

    assert report.result.deleted == ("old.html",)
    assert report.result.uploaded == ()
    assert "old.html" not in _keys(s3_client)


def test_dry_run_writes_nothing(
    s3_client: Any, store: S3ObjectStore, target: StoreTarget, site_dir: Path
) -> None:
    issuer = _fake_issuer()
    report = sync_site(
        site_dir, target, store=store, distribution_id="D1", issuer=issuer, dry_run=True
    )
    assert len(report.plan.to_upload) == 4
    assert report.result.uploaded == ()
    assert _keys(s3_client) == []
    issuer.issue.assert_not_called()


def test_partial_failure_still_invalidates_successes(
    target: StoreTarget, site_dir: Path
) -> None:
    store = MagicMock(spec=S3ObjectStore)
    store.list.return_value = []

    def put(bucket: str, key: str, body: bytes, **kwargs: Any) -> None:
        if key == "favicon.ico":
            raise RemoteUnavailable("PutObject: InternalError", operation="PutObject")

    store.put.side_effect = put
    issuer = _fake_issuer()

    report = sync_site(site_dir, target, store=store, distribution_id="D1", issuer=issuer)

    assert [f.path for f in report.result.failures] == ["favicon.ico"]
    paths = issuer.issue.call_args.args[1]
    assert "/favicon.ico" not in paths
    assert "/index.html" in paths


def test_invalidation_through_cdn_client(
    store: S3ObjectStore, target: StoreTarget, site_dir: Path
) -> None:
    cdn = MagicMock(spec=CloudFrontClient)
    cdn.create_invalidation.return_value = "I9"
    cdn.get_invalidation_status.return_value = InvalidationStatus.COMPLETED
    clock = FakeClock()
    issuer = InvalidationIssuer(cdn, clock=clock)

    report = sync_site(
        site_dir, target, store=store, distribution_id="D1", issuer=issuer, cancel=clock
    )

    assert report.invalidation_ids == ["I9"]
    cdn.create_invalidation.assert_called_once()


def test_invalidation_timeout_propagates(
    store: S3ObjectStore, target: StoreTarget, site_dir: Path
) -> None:
    cdn = MagicMock(spec=CloudFrontClient)
    cdn.create_invalidation.return_value = "I9"
    cdn.get_invalidation_status.return_value = InvalidationStatus.PENDING
    clock = FakeClock()
    issuer = InvalidationIssuer(cdn, timeout_seconds=60, poll_interval_seconds=20, clock=clock)

    with pytest.raises(InvalidationTimeout):
        sync_site(site_dir, target, store=store, distribution_id="D1", issuer=issuer, cancel=clock)


def test_invalidation_timeout_carries_sync_report(target: StoreTarget, site_dir: Path) -> None:
    store = MagicMock(spec=S3ObjectStore)
    store.list.return_value = []

    def put(bucket: str, key: str, body: bytes, **kwargs: Any) -> None:
        if key == "favicon.ico":
            raise RemoteUnavailable("PutObject: InternalError", operation="PutObject")

    store.put.side_effect = put
    cdn = MagicMock(spec=CloudFrontClient)
    cdn.create_invalidation.return_value = "I9"
    cdn.get_invalidation_status.return_value = InvalidationStatus.PENDING
    clock = FakeClock()
    issuer = InvalidationIssuer(cdn, timeout_seconds=60, poll_interval_seconds=20, clock=clock)

    with pytest.raises(InvalidationTimeout) as exc_info:
        sync_site(site_dir, target, store=store, distribution_id="D1", issuer=issuer, cancel=clock)

    report = exc_info.value.report
    assert report is not None
    assert [f.path for f in report.result.failures] == ["favicon.ico"]
    assert len(report.result.uploaded) == 3
    assert report.invalidation_ids == ["I9"]
    assert report.invalidations[0].status is InvalidationStatus.FAILED


def test_cancelled_invalidation_carries_sync_report(
    store: S3ObjectStore, target: StoreTarget, site_dir: Path
) -> None:
    cdn = MagicMock(spec=CloudFrontClient)
    cdn.create_invalidation.return_value = "I9"
    cdn.get_invalidation_status.return_value = InvalidationStatus.PENDING
    clock = FakeClock(cancel_after=1)
    issuer = InvalidationIssuer(cdn, clock=clock)

    with pytest.raises(PollCancelled) as exc_info:
        sync_site(site_dir, target, store=store, distribution_id="D1", issuer=issuer, cancel=clock)

    assert exc_info.value.report is not None
    assert len(exc_info.value.report.result.uploaded) == 4


def test_distribution_without_cdn_is_config_error(
    store: S3ObjectStore, target: StoreTarget, site_dir: Path
) -> None:
    with pytest.raises(DeployConfigError):
        sync_site(site_dir, target, store=store, distribution_id="D1")


def test_missing_site_root(store: S3ObjectStore, target: StoreTarget, tmp_path: Path) -> None:
    with pytest.raises(SiteRootUnreadable):
        sync_site(tmp_path / "dist", target, store=store)


# ---------------------------------------------------------------------------
# resolve_deploy_target
# ---------------------------------------------------------------------------


@mock_aws
def test_resolve_deploy_target() -> None:
    ssm = boto3.client("ssm", region_name=REGION)
    ssm.put_parameter(Name="/platform/spa/dev/bucket-name", Value=BUCKET, Type="String")
    ssm.put_parameter(
        Name="/platform/spa/dev/distribution-id", Value="E2QWRUHEXAMPLE", Type="String"
    )

    target, distribution_id = resolve_deploy_target(ssm, "dev")

    assert target == StoreTarget(bucket=BUCKET)
    assert distribution_id == "E2QWRUHEXAMPLE"


@mock_aws
def test_resolve_deploy_target_missing_parameter() -> None:
    ssm = boto3.client("ssm", region_name=REGION)
    ssm.put_parameter(Name="/platform/spa/prod/bucket-name", Value=BUCKET, Type="String")

    with pytest.raises(DeployConfigError, match="distribution-id"):
        resolve_deploy_target(ssm, "prod")
