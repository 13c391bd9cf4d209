"""
spa_deploy.models — Data model for site sync, distribution reconcile and invalidation.

All records are frozen dataclasses.  Nothing here is persisted: manifests,
remote listings and plans are re-derived from local disk and provider
queries on every run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
DEFAULT_CONTENT_TYPE: str = "application/octet-stream"
HASH_METADATA_KEY: str = "sha256"

CACHE_CONTROL_NO_CACHE: str = "no-cache"
CACHE_CONTROL_IMMUTABLE: str = "public, max-age=31536000, immutable"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ViewerProtocolPolicy(StrEnum):
    REDIRECT_TO_HTTPS = "redirect-to-https"
    HTTPS_ONLY = "https-only"
    ALLOW_ALL = "allow-all"


class InvalidationStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class DeploymentStatus(StrEnum):
    IN_PROGRESS = "InProgress"
    DEPLOYED = "Deployed"
    FAILED = "Failed"


class ReconcileState(StrEnum):
    """
    Distribution reconcile lifecycle for a single invocation.

    NO_CHANGE → PENDING_UPDATE → UPDATING → DEPLOYED | FAILED
    DEPLOYED and FAILED are terminal; the next run starts fresh.
    """

    NO_CHANGE = "NoChange"
    PENDING_UPDATE = "PendingUpdate"
    UPDATING = "Updating"
    DEPLOYED = "Deployed"
    FAILED = "Failed"


class ObjectOperation(StrEnum):
    UPLOAD = "upload"
    DELETE = "delete"


# ---------------------------------------------------------------------------
# Sync records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FileEntry:
    """One regular file of the local site tree.

    relative_path is '/'-separated and unique within a manifest.
    content_hash is the SHA-256 hex digest of the file bytes.
    """

    relative_path: str
    content_hash: str
    size_bytes: int
    content_type: str


@dataclass(frozen=True)
class RemoteObject:
    """One object in the bucket, keyed relative to the target prefix."""

    key: str
    etag_or_hash: str
    content_type: str


@dataclass(frozen=True)
class SyncPlan:
    to_upload: tuple[FileEntry, ...] = ()
    to_delete: frozenset[str] = frozenset()

    @property
    def is_empty(self) -> bool:
        return not self.to_upload and not self.to_delete

    @property
    def changed_paths(self) -> frozenset[str]:
        return frozenset(e.relative_path for e in self.to_upload) | self.to_delete


@dataclass(frozen=True)
class StoreTarget:
    """Bucket plus optional key prefix ('' or ending in '/')."""

    bucket: str
    prefix: str = ""

    @classmethod
    def parse(cls, store_id: str) -> StoreTarget:
        """Parse 'bucket', 'bucket/prefix' or 's3://bucket/prefix'."""
        raw = store_id.strip().removeprefix("s3://")
        bucket, _, prefix = raw.partition("/")
        if not bucket:
            raise ValueError(f"Invalid store identifier: {store_id!r}")
        prefix = prefix.strip("/")
        return cls(bucket=bucket, prefix=f"{prefix}/" if prefix else "")

    def key_for(self, relative_path: str) -> str:
        return f"{self.prefix}{relative_path}"

    def relative_key(self, key: str) -> str:
        return key.removeprefix(self.prefix)


@dataclass(frozen=True)
class ObjectFailure:
    path: str
    operation: ObjectOperation
    cause: str


@dataclass(frozen=True)
class SyncResult:
    uploaded: tuple[str, ...] = ()
    deleted: tuple[str, ...] = ()
    failures: tuple[ObjectFailure, ...] = ()

    @property
    def succeeded_paths(self) -> frozenset[str]:
        return frozenset(self.uploaded) | frozenset(self.deleted)

    def raise_for_failures(self) -> None:
        """Raise PartialSyncFailure when any object operation failed."""
        from spa_deploy.exceptions import PartialSyncFailure

        if self.failures:
            raise PartialSyncFailure(self.failures, succeeded=self.uploaded + self.deleted)


# ---------------------------------------------------------------------------
# Cache-control policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CachePolicy:
    """Cache-Control header table.

    Lookup order: exact relative path, then lower-cased file extension,
    then default.
    """

    default: str = CACHE_CONTROL_IMMUTABLE
    by_extension: dict[str, str] = field(default_factory=lambda: {".html": CACHE_CONTROL_NO_CACHE})
    by_path: dict[str, str] = field(default_factory=lambda: {"index.html": CACHE_CONTROL_NO_CACHE})

    def cache_control_for(self, relative_path: str) -> str:
        if relative_path in self.by_path:
            return self.by_path[relative_path]
        basename = relative_path.rsplit("/", 1)[-1]
        stem, dot, ext = basename.rpartition(".")
        if dot and stem:
            suffix = f".{ext.lower()}"
            if suffix in self.by_extension:
                return self.by_extension[suffix]
        return self.default


# ---------------------------------------------------------------------------
# Distribution records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DistributionConfig:
    """Declared (or live) subset of a CloudFront distribution config.

    error_page_mappings: HTTP status code → response page path.
    """

    origin_id: str
    error_page_mappings: dict[int, str] = field(default_factory=dict)
    default_ttl_seconds: int = 86400
    viewer_protocol_policy: ViewerProtocolPolicy = ViewerProtocolPolicy.REDIRECT_TO_HTTPS

    def diff(self, live: DistributionConfig) -> dict[str, tuple[Any, Any]]:
        """Return {field: (live_value, declared_value)} for every differing field."""
        changes: dict[str, tuple[Any, Any]] = {}
        for name in (
            "origin_id",
            "error_page_mappings",
            "default_ttl_seconds",
            "viewer_protocol_policy",
        ):
            declared_value = getattr(self, name)
            live_value = getattr(live, name)
            if declared_value != live_value:
                changes[name] = (live_value, declared_value)
        return changes


@dataclass(frozen=True)
class LiveDistribution:
    """Live config as returned by the CDN: parsed view, raw document and ETag.

    A behavior managed by a cache policy has cache_policy_id set and no
    ttl_bounds; a legacy behavior has its (MinTTL, MaxTTL) in ttl_bounds.
    """

    config: DistributionConfig
    raw: dict[str, Any]
    etag: str
    origin_ids: tuple[str, ...] = ()
    cache_policy_id: str | None = None
    ttl_bounds: tuple[int, int] | None = None


@dataclass
class ReconcileResult:
    distribution_id: str
    state: ReconcileState = ReconcileState.NO_CHANGE
    diff: dict[str, tuple[Any, Any]] = field(default_factory=dict)
    transitions: list[ReconcileState] = field(default_factory=list)
    operation_id: str | None = None

    def transition(self, state: ReconcileState) -> None:
        self.state = state
        self.transitions.append(state)


@dataclass(frozen=True)
class InvalidationRequest:
    paths: frozenset[str]
    request_id: str
    status: InvalidationStatus = InvalidationStatus.PENDING


@dataclass(frozen=True)
class DeployReport:
    plan: SyncPlan
    result: SyncResult
    invalidations: tuple[InvalidationRequest, ...] = ()

    @property
    def invalidation_ids(self) -> list[str]:
        return [r.request_id for r in self.invalidations]
