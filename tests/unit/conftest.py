"""Shared fixtures for spa_deploy unit tests."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import boto3
import pytest
from moto import mock_aws
from spa_deploy.clients import S3ObjectStore
from spa_deploy.models import StoreTarget

REGION = "eu-west-2"
BUCKET = "platform-spa-dev"


@pytest.fixture(autouse=True)
def aws_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set minimal AWS env vars required by boto3 and moto."""
    monkeypatch.setenv("AWS_REGION", REGION)
    monkeypatch.setenv("AWS_DEFAULT_REGION", REGION)
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")  # pragma: allowlist secret
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")  # pragma: allowlist secret
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    for name in (
        "SPA_DEPLOY_MAX_WORKERS",
        "SPA_DEPLOY_POLL_INTERVAL_SECONDS",
        "SPA_DEPLOY_TIMEOUT_SECONDS",
        "SPA_DEPLOY_INVALIDATION_BATCH_LIMIT",
        "SPA_DEPLOY_SSM_PREFIX",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def s3_client() -> Iterator[Any]:
    """moto S3 client with an empty site bucket."""
    with mock_aws():
        client = boto3.client("s3", region_name=REGION)
        client.create_bucket(
            Bucket=BUCKET,
            CreateBucketConfiguration={"LocationConstraint": REGION},
        )
        yield client


@pytest.fixture
def store(s3_client: Any) -> S3ObjectStore:
    return S3ObjectStore(s3_client=s3_client)


@pytest.fixture
def target() -> StoreTarget:
    return StoreTarget(bucket=BUCKET)


@pytest.fixture
def site_dir(tmp_path: Path) -> Path:
    """A small built SPA: entry page, hashed assets, favicon."""
    root = tmp_path / "dist"
    (root / "assets").mkdir(parents=True)
    (root / "index.html").write_text("<!doctype html><div id=app></div>", encoding="utf-8")
    (root / "assets" / "app.3f9a1c.js").write_text("console.log('app')", encoding="utf-8")
    (root / "assets" / "app.77be02.css").write_text("body{margin:0}", encoding="utf-8")
    (root / "favicon.ico").write_bytes(b"\x00\x00\x01\x00")
    return root


class FakeClock:
    """Deterministic clock and cancel-waiter for poll loops.

    wait() advances time instead of sleeping; cancel_after makes wait()
    report cancellation on the Nth call.
    """

    def __init__(self, *, cancel_after: int | None = None) -> None:
        self.now = 0.0
        self.waits: list[float] = []
        self._cancel_after = cancel_after

    def __call__(self) -> float:
        return self.now

    def wait(self, timeout: float | None = None) -> bool:
        self.waits.append(timeout or 0.0)
        self.now += timeout or 0.0
        return self._cancel_after is not None and len(self.waits) >= self._cancel_after

    def is_set(self) -> bool:
        return False


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
