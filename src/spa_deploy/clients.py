"""
spa_deploy.clients — Thin boto3 wrappers for S3, CloudFront and SSM.

These are the only places that talk to AWS.  Every botocore exception is
translated here into the spa_deploy.exceptions taxonomy:

  - credential problems (missing, expired, rejected)  → AuthError
  - provider outages, 5xx, timeouts, other API errors → RemoteUnavailable

Transient failures (5xx, throttling, connection/read timeouts) are retried
by botocore's "standard" retry mode, bounded to 3 attempts with exponential
backoff.  Nothing else is retried.
"""

from __future__ import annotations

import copy
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any
from uuid import uuid4

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    NoCredentialsError,
    PartialCredentialsError,
    TokenRetrievalError,
)

from spa_deploy.config import get_logger
from spa_deploy.exceptions import AuthError, RemoteUnavailable
from spa_deploy.models import (
    DeploymentStatus,
    DistributionConfig,
    InvalidationStatus,
    LiveDistribution,
    ViewerProtocolPolicy,
)

logger = get_logger()

MAX_ATTEMPTS = 3
RETRY_CONFIG = Config(
    connect_timeout=5,
    read_timeout=60,
    retries={"max_attempts": MAX_ATTEMPTS, "mode": "standard"},
)

ERROR_PAGE_RESPONSE_CODE = "200"
DEFAULT_ERROR_CACHING_MIN_TTL = 10
# CloudFront defaults for a legacy cache behavior without explicit TTLs
DEFAULT_MIN_TTL = 0
DEFAULT_MAX_TTL = 31536000

_AUTH_ERROR_CODES = frozenset(
    {
        "AccessDenied",
        "AccessDeniedException",
        "ExpiredToken",
        "ExpiredTokenException",
        "InvalidAccessKeyId",
        "InvalidClientTokenId",
        "InvalidToken",
        "SignatureDoesNotMatch",
        "UnrecognizedClientException",
    }
)
_CREDENTIAL_ERRORS = (NoCredentialsError, PartialCredentialsError, TokenRetrievalError)


# ---------------------------------------------------------------------------
# Session / client construction
# ---------------------------------------------------------------------------


def make_session(*, profile: str | None = None, region: str | None = None) -> boto3.Session:
    """Build a boto3 session from the standard credential chain."""
    kwargs: dict[str, Any] = {}
    if profile:
        kwargs["profile_name"] = profile
    if region:
        kwargs["region_name"] = region
    try:
        return boto3.Session(**kwargs)
    except BotoCoreError as exc:
        # ProfileNotFound and friends
        raise AuthError(f"Could not create AWS session: {exc}", operation="Session") from exc


def make_client(service: str, *, session: boto3.Session, region: str) -> Any:
    return session.client(service, region_name=region, config=RETRY_CONFIG)


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def _http_status(error: ClientError) -> int:
    return int(error.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0) or 0)


def translate_error(exc: Exception, *, operation: str) -> RemoteUnavailable:
    """Map a botocore exception onto AuthError or RemoteUnavailable."""
    if isinstance(exc, _CREDENTIAL_ERRORS):
        return AuthError(f"{operation}: AWS credentials unavailable ({exc})", operation=operation)
    if isinstance(exc, ClientError):
        code = _error_code(exc)
        message = exc.response.get("Error", {}).get("Message", "") or str(exc)
        if code in _AUTH_ERROR_CODES or _http_status(exc) == 401:
            return AuthError(f"{operation}: {code}: {message}", operation=operation, code=code)
        return RemoteUnavailable(f"{operation}: {code}: {message}", operation=operation, code=code)
    return RemoteUnavailable(f"{operation}: {exc}", operation=operation)


@contextmanager
def provider_call(operation: str) -> Iterator[None]:
    """Translate botocore errors raised inside the block."""
    try:
        yield
    except (ClientError, BotoCoreError) as exc:
        raise translate_error(exc, operation=operation) from exc


# ---------------------------------------------------------------------------
# S3 object store
# ---------------------------------------------------------------------------


class S3ObjectStore:
    """
    Object-store client over S3.

    Keys passed here are full bucket keys; prefix handling lives with the
    caller (StoreTarget).
    """

    def __init__(
        self,
        *,
        s3_client: Any = None,
        session: boto3.Session | None = None,
        region: str | None = None,
    ) -> None:
        if s3_client is None:
            session = session or make_session(region=region)
            s3_client = make_client("s3", session=session, region=region or session.region_name)
        self._s3: Any = s3_client

    def list(self, bucket: str, prefix: str = "") -> list[dict[str, Any]]:
        """Return every object summary under prefix, following pagination."""
        objects: list[dict[str, Any]] = []
        with provider_call("ListObjectsV2"):
            paginator = self._s3.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                objects.extend(page.get("Contents", []))
        return objects

    def head(self, bucket: str, key: str) -> dict[str, Any]:
        with provider_call("HeadObject"):
            return dict(self._s3.head_object(Bucket=bucket, Key=key))

    def put(
        self,
        bucket: str,
        key: str,
        body: bytes,
        *,
        content_type: str,
        cache_control: str,
        metadata: dict[str, str] | None = None,
    ) -> None:
        with provider_call("PutObject"):
            self._s3.put_object(
                Bucket=bucket,
                Key=key,
                Body=body,
                ContentType=content_type,
                CacheControl=cache_control,
                Metadata=metadata or {},
            )

    def delete(self, bucket: str, key: str) -> None:
        with provider_call("DeleteObject"):
            self._s3.delete_object(Bucket=bucket, Key=key)


# ---------------------------------------------------------------------------
# CloudFront distribution client
# ---------------------------------------------------------------------------


def parse_distribution_config(raw: dict[str, Any]) -> DistributionConfig:
    """Extract the managed fields from a raw CloudFront DistributionConfig."""
    behavior = raw.get("DefaultCacheBehavior", {})
    mappings: dict[int, str] = {}
    for item in raw.get("CustomErrorResponses", {}).get("Items", []) or []:
        page = item.get("ResponsePagePath")
        if page:
            mappings[int(item["ErrorCode"])] = str(page)
    return DistributionConfig(
        origin_id=str(behavior.get("TargetOriginId", "")),
        error_page_mappings=mappings,
        default_ttl_seconds=int(behavior.get("DefaultTTL", 86400)),
        viewer_protocol_policy=ViewerProtocolPolicy(
            behavior.get("ViewerProtocolPolicy", ViewerProtocolPolicy.ALLOW_ALL.value)
        ),
    )


def overlay_distribution_config(
    raw: dict[str, Any], declared: DistributionConfig
) -> dict[str, Any]:
    """Return a full CloudFront config: the live document with declared fields applied.

    CloudFront only accepts whole-config replacement, so every field the
    declaration does not manage is carried over unchanged.  DefaultTTL is
    only written on legacy behaviors; CloudFront rejects it next to a
    CachePolicyId.
    """
    updated = copy.deepcopy(raw)
    behavior = updated.setdefault("DefaultCacheBehavior", {})
    behavior["TargetOriginId"] = declared.origin_id
    behavior["ViewerProtocolPolicy"] = declared.viewer_protocol_policy.value
    if not behavior.get("CachePolicyId"):
        behavior["DefaultTTL"] = declared.default_ttl_seconds

    existing_ttls = {
        int(item["ErrorCode"]): item.get("ErrorCachingMinTTL", DEFAULT_ERROR_CACHING_MIN_TTL)
        for item in raw.get("CustomErrorResponses", {}).get("Items", []) or []
    }
    items = [
        {
            "ErrorCode": code,
            "ResponsePagePath": page,
            "ResponseCode": ERROR_PAGE_RESPONSE_CODE,
            "ErrorCachingMinTTL": existing_ttls.get(code, DEFAULT_ERROR_CACHING_MIN_TTL),
        }
        for code, page in sorted(declared.error_page_mappings.items())
    ]
    if items:
        updated["CustomErrorResponses"] = {"Quantity": len(items), "Items": items}
    else:
        updated["CustomErrorResponses"] = {"Quantity": 0}
    return updated


class CloudFrontClient:
    """CDN client over CloudFront distributions and invalidations."""

    def __init__(
        self,
        *,
        cloudfront_client: Any = None,
        session: boto3.Session | None = None,
        region: str | None = None,
    ) -> None:
        if cloudfront_client is None:
            session = session or make_session(region=region)
            cloudfront_client = make_client(
                "cloudfront", session=session, region=region or session.region_name
            )
        self._cf: Any = cloudfront_client

    def get_config(self, distribution_id: str) -> LiveDistribution:
        with provider_call("GetDistributionConfig"):
            response = self._cf.get_distribution_config(Id=distribution_id)
        raw = response["DistributionConfig"]
        origin_ids = tuple(
            str(origin["Id"]) for origin in raw.get("Origins", {}).get("Items", []) or []
        )
        behavior = raw.get("DefaultCacheBehavior", {})
        cache_policy_id = behavior.get("CachePolicyId") or None
        ttl_bounds = None
        if cache_policy_id is None:
            ttl_bounds = (
                int(behavior.get("MinTTL", DEFAULT_MIN_TTL)),
                int(behavior.get("MaxTTL", DEFAULT_MAX_TTL)),
            )
        return LiveDistribution(
            config=parse_distribution_config(raw),
            raw=raw,
            etag=str(response.get("ETag", "")),
            origin_ids=origin_ids,
            cache_policy_id=cache_policy_id,
            ttl_bounds=ttl_bounds,
        )

    def update_config(self, distribution_id: str, raw: dict[str, Any], etag: str) -> str:
        """Submit a full-config replacement.  Returns the new ETag as the operation id."""
        with provider_call("UpdateDistribution"):
            response = self._cf.update_distribution(
                Id=distribution_id,
                IfMatch=etag,
                DistributionConfig=raw,
            )
        return str(response.get("ETag", ""))

    def get_status(self, distribution_id: str) -> DeploymentStatus:
        with provider_call("GetDistribution"):
            response = self._cf.get_distribution(Id=distribution_id)
        status = str(response["Distribution"].get("Status", ""))
        if status == DeploymentStatus.DEPLOYED.value:
            return DeploymentStatus.DEPLOYED
        if status == DeploymentStatus.IN_PROGRESS.value:
            return DeploymentStatus.IN_PROGRESS
        logger.warning(
            "Unexpected distribution status", distribution_id=distribution_id, status=status
        )
        return DeploymentStatus.FAILED

    def create_invalidation(self, distribution_id: str, paths: list[str]) -> str:
        with provider_call("CreateInvalidation"):
            response = self._cf.create_invalidation(
                DistributionId=distribution_id,
                InvalidationBatch={
                    "Paths": {"Quantity": len(paths), "Items": paths},
                    "CallerReference": str(uuid4()),
                },
            )
        return str(response["Invalidation"]["Id"])

    def get_invalidation_status(self, distribution_id: str, request_id: str) -> InvalidationStatus:
        with provider_call("GetInvalidation"):
            response = self._cf.get_invalidation(DistributionId=distribution_id, Id=request_id)
        status = str(response["Invalidation"].get("Status", ""))
        if status == "Completed":
            return InvalidationStatus.COMPLETED
        if status == "InProgress":
            return InvalidationStatus.PENDING
        return InvalidationStatus.FAILED


# ---------------------------------------------------------------------------
# SSM
# ---------------------------------------------------------------------------


def get_ssm_parameter(ssm_client: Any, name: str) -> str | None:
    """Read a String parameter.  Returns None when the parameter does not exist."""
    try:
        response = ssm_client.get_parameter(Name=name)
    except ClientError as exc:
        if _error_code(exc) == "ParameterNotFound":
            logger.info("SSM parameter not found", parameter=name)
            return None
        raise translate_error(exc, operation="GetParameter") from exc
    except BotoCoreError as exc:
        raise translate_error(exc, operation="GetParameter") from exc
    value = response["Parameter"].get("Value")
    return str(value) if value else None
