"""
spa_deploy — Deploy a single-page static site to S3 and CloudFront.

Sync a built site directory to a bucket, converge a CloudFront
distribution on a declared config, and invalidate changed paths.
"""

from spa_deploy.deploy import sync_site
from spa_deploy.exceptions import (
    AuthError,
    DeployConfigError,
    DeployError,
    InvalidationTimeout,
    PartialSyncFailure,
    PollCancelled,
    ReconcileTimeout,
    RemoteUnavailable,
    SiteRootUnreadable,
)
from spa_deploy.invalidation import InvalidationIssuer
from spa_deploy.manifest import load_manifest
from spa_deploy.models import (
    CachePolicy,
    DistributionConfig,
    FileEntry,
    RemoteObject,
    StoreTarget,
    SyncPlan,
)
from spa_deploy.planner import plan_sync
from spa_deploy.reconciler import DistributionReconciler

__all__ = [
    "AuthError",
    "CachePolicy",
    "DeployConfigError",
    "DeployError",
    "DistributionConfig",
    "DistributionReconciler",
    "FileEntry",
    "InvalidationIssuer",
    "InvalidationTimeout",
    "PartialSyncFailure",
    "PollCancelled",
    "ReconcileTimeout",
    "RemoteObject",
    "RemoteUnavailable",
    "SiteRootUnreadable",
    "StoreTarget",
    "SyncPlan",
    "load_manifest",
    "plan_sync",
    "sync_site",
]
