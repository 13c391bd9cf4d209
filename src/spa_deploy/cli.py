"""
spa-deploy — Deploy a single-page site to S3 and CloudFront.

Commands:
    spa-deploy sync <local_dir> <bucket[/prefix]> [--distribution-id ID]
    spa-deploy deploy <local_dir> --env <env>
    spa-deploy reconcile <distribution_id> <config_file>
    spa-deploy invalidate <distribution_id> <path>...

Exit codes:
    0  Full success
    1  Object-level failure, timeout, or interrupted wait
    2  Fatal or configuration error (bad input, credentials, provider outage)
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from spa_deploy.clients import CloudFrontClient, S3ObjectStore, make_client, make_session
from spa_deploy.config import Settings, get_logger, load_cache_policy, load_distribution_config
from spa_deploy.deploy import resolve_deploy_target, sync_site
from spa_deploy.exceptions import (
    DeployConfigError,
    DeployError,
    PollCancelled,
    PollTimeout,
    RemoteUnavailable,
    SiteRootUnreadable,
)
from spa_deploy.invalidation import InvalidationIssuer
from spa_deploy.models import DeployReport, StoreTarget
from spa_deploy.reconciler import DistributionReconciler

logger = get_logger()

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_FATAL = 2

ENV_CHOICES = ("dev", "staging", "prod")


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value!r} is not an integer") from None
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {number}")
    return number


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="spa-deploy",
        description="Deploy a single-page site to S3 and CloudFront",
    )
    parser.add_argument("--profile", default=None, help="AWS named profile")
    parser.add_argument("--region", default=None, help="AWS region (default $AWS_REGION)")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_sync_options(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("local_dir", type=Path, help="Built site directory")
        sub.add_argument(
            "--cache-policy",
            type=Path,
            default=None,
            help="JSON cache-control table (default: no-cache HTML, immutable assets)",
        )
        sub.add_argument(
            "--exclude",
            action="append",
            default=[],
            metavar="GLOB",
            help="Skip files matching GLOB (repeatable)",
        )
        sub.add_argument(
            "--max-workers", type=_positive_int, default=None, help="Concurrent S3 requests"
        )
        sub.add_argument("--dry-run", action="store_true", help="Print the plan only")

    sync = subparsers.add_parser("sync", help="Sync a local directory to a bucket")
    add_sync_options(sync)
    sync.add_argument("store_id", help="Bucket name, optionally with key prefix: bucket/prefix")
    sync.add_argument(
        "--distribution-id",
        default=None,
        help="CloudFront distribution to invalidate after the sync",
    )

    deploy = subparsers.add_parser(
        "deploy", help="Sync and invalidate using the bucket/distribution stored in SSM"
    )
    add_sync_options(deploy)
    deploy.add_argument("--env", required=True, choices=ENV_CHOICES, help="Target environment")

    reconcile = subparsers.add_parser(
        "reconcile", help="Apply a declared distribution config to CloudFront"
    )
    reconcile.add_argument("distribution_id", help="CloudFront distribution id")
    reconcile.add_argument("config_file", type=Path, help="Declared config JSON")
    reconcile.add_argument("--dry-run", action="store_true", help="Print the diff only")

    invalidate = subparsers.add_parser("invalidate", help="Invalidate paths on a distribution")
    invalidate.add_argument("distribution_id", help="CloudFront distribution id")
    invalidate.add_argument("paths", nargs="+", help="Paths to purge, e.g. /index.html or /*")

    return parser.parse_args(argv)


def _issuer(cdn: CloudFrontClient, settings: Settings) -> InvalidationIssuer:
    return InvalidationIssuer(
        cdn,
        batch_limit=settings.invalidation_batch_limit,
        timeout_seconds=settings.timeout_seconds,
        poll_interval_seconds=settings.poll_interval_seconds,
    )


def _print_report(report: DeployReport, *, dry_run: bool) -> int:
    if dry_run:
        for entry in report.plan.to_upload:
            print(f"UPLOAD {entry.relative_path}")
        for key in sorted(report.plan.to_delete):
            print(f"DELETE {key}")
        print(
            f"planned_uploads={len(report.plan.to_upload)} "
            f"planned_deletes={len(report.plan.to_delete)}"
        )
        return EXIT_OK

    for failure in report.result.failures:
        print(f"FAILED {failure.operation} {failure.path}: {failure.cause}", file=sys.stderr)
    invalidation = ",".join(report.invalidation_ids) or "none"
    print(
        f"uploaded={len(report.result.uploaded)} deleted={len(report.result.deleted)} "
        f"invalidation={invalidation}"
    )
    return EXIT_PARTIAL if report.result.failures else EXIT_OK


def _run_sync(
    args: argparse.Namespace,
    settings: Settings,
    target: StoreTarget,
    distribution_id: str | None,
) -> int:
    session = make_session(profile=args.profile, region=settings.aws_region)
    store = S3ObjectStore(session=session, region=settings.aws_region)
    cdn = None
    issuer = None
    if distribution_id:
        cdn = CloudFrontClient(session=session, region=settings.aws_region)
        issuer = _issuer(cdn, settings)
    cache_policy = load_cache_policy(args.cache_policy) if args.cache_policy else None

    max_workers = args.max_workers if args.max_workers is not None else settings.max_workers
    try:
        report = sync_site(
            args.local_dir,
            target,
            store=store,
            cdn=cdn,
            distribution_id=distribution_id,
            cache_policy=cache_policy,
            exclude=args.exclude,
            max_workers=max_workers,
            issuer=issuer,
            dry_run=args.dry_run,
        )
    except (PollTimeout, PollCancelled) as exc:
        if exc.report is not None:
            _print_report(exc.report, dry_run=False)
        raise
    return _print_report(report, dry_run=args.dry_run)


def cmd_sync(args: argparse.Namespace, settings: Settings) -> int:
    try:
        target = StoreTarget.parse(args.store_id)
    except ValueError as exc:
        raise DeployConfigError(str(exc)) from exc
    return _run_sync(args, settings, target, args.distribution_id)


def cmd_deploy(args: argparse.Namespace, settings: Settings) -> int:
    session = make_session(profile=args.profile, region=settings.aws_region)
    ssm = make_client("ssm", session=session, region=settings.aws_region)
    target, distribution_id = resolve_deploy_target(
        ssm, args.env, ssm_prefix=settings.ssm_prefix
    )
    return _run_sync(args, settings, target, distribution_id)


def cmd_reconcile(args: argparse.Namespace, settings: Settings) -> int:
    declared = load_distribution_config(args.config_file)
    session = make_session(profile=args.profile, region=settings.aws_region)
    reconciler = DistributionReconciler(
        CloudFrontClient(session=session, region=settings.aws_region),
        timeout_seconds=settings.timeout_seconds,
        poll_interval_seconds=settings.poll_interval_seconds,
    )
    if args.dry_run:
        result = reconciler.plan(args.distribution_id, declared)
    else:
        result = reconciler.reconcile(args.distribution_id, declared)

    for name, (live, wanted) in sorted(result.diff.items()):
        print(f"CHANGE {name}: {live!r} -> {wanted!r}")
    print(f"distribution={args.distribution_id} state={result.state}")
    return EXIT_OK


def cmd_invalidate(args: argparse.Namespace, settings: Settings) -> int:
    session = make_session(profile=args.profile, region=settings.aws_region)
    issuer = _issuer(CloudFrontClient(session=session, region=settings.aws_region), settings)
    requests = issuer.issue(args.distribution_id, args.paths)
    print(f"invalidation={','.join(r.request_id for r in requests) or 'none'}")
    return EXIT_OK


COMMANDS = {
    "sync": cmd_sync,
    "deploy": cmd_deploy,
    "reconcile": cmd_reconcile,
    "invalidate": cmd_invalidate,
}


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    if args.verbose:
        logger.setLevel("DEBUG")
    try:
        settings = Settings.from_env(region=args.region)
        return COMMANDS[args.command](args, settings)
    except (DeployConfigError, SiteRootUnreadable, RemoteUnavailable) as exc:
        print(f"ERROR {exc}", file=sys.stderr)
        return EXIT_FATAL
    except (PollTimeout, PollCancelled) as exc:
        print(f"ERROR {exc}", file=sys.stderr)
        return EXIT_PARTIAL
    except DeployError as exc:
        print(f"ERROR {exc}", file=sys.stderr)
        return EXIT_FATAL
    except KeyboardInterrupt:
        print("Interrupted; provider-side operations already submitted continue", file=sys.stderr)
        return EXIT_PARTIAL


if __name__ == "__main__":
    raise SystemExit(main())
