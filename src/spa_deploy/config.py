"""
spa_deploy.config — Settings, policy/config file loaders and logger factory.

Settings come from environment variables with conservative defaults and
are resolved once per invocation.  The cache-control table and the
declared distribution config are JSON files supplied by the operator.

Environment:
    AWS_REGION                          required unless --region is given
    SPA_DEPLOY_MAX_WORKERS              concurrent object operations (default 10)
    SPA_DEPLOY_POLL_INTERVAL_SECONDS    poll interval (default 20)
    SPA_DEPLOY_TIMEOUT_SECONDS          deploy/invalidation timeout (default 900)
    SPA_DEPLOY_INVALIDATION_BATCH_LIMIT paths per invalidation (default 3000)
    SPA_DEPLOY_SSM_PREFIX               SSM prefix for deploy targets (default /platform/spa)
"""

from __future__ import annotations

import json
import os
import sys
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from aws_lambda_powertools import Logger

from spa_deploy.exceptions import DeployConfigError
from spa_deploy.models import CachePolicy, DistributionConfig, ViewerProtocolPolicy

SERVICE_NAME = "spa-deploy"

DEFAULT_MAX_WORKERS = 10
DEFAULT_POLL_INTERVAL_SECONDS = 20.0
DEFAULT_TIMEOUT_SECONDS = 15 * 60.0
DEFAULT_INVALIDATION_BATCH_LIMIT = 3000
DEFAULT_SSM_PREFIX = "/platform/spa"

# camelCase aliases accepted in declared distribution files
_VIEWER_POLICY_ALIASES: dict[str, ViewerProtocolPolicy] = {
    "redirectToHttps": ViewerProtocolPolicy.REDIRECT_TO_HTTPS,
    "httpsOnly": ViewerProtocolPolicy.HTTPS_ONLY,
    "allowAll": ViewerProtocolPolicy.ALLOW_ALL,
}


def get_logger() -> Logger:
    """Structured logger for the package.  Writes to stderr; stdout is for CLI output."""
    return Logger(service=SERVICE_NAME, stream=sys.stderr)


@dataclass(frozen=True)
class Settings:
    aws_region: str
    max_workers: int = DEFAULT_MAX_WORKERS
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    invalidation_batch_limit: int = DEFAULT_INVALIDATION_BATCH_LIMIT
    ssm_prefix: str = DEFAULT_SSM_PREFIX

    @classmethod
    def from_env(
        cls,
        *,
        region: str | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> Settings:
        env = os.environ if environ is None else environ
        aws_region = (region or env.get("AWS_REGION", "")).strip()
        if not aws_region:
            raise DeployConfigError("AWS_REGION must be set (or pass --region)")
        return cls(
            aws_region=aws_region,
            max_workers=_positive_int(env, "SPA_DEPLOY_MAX_WORKERS", DEFAULT_MAX_WORKERS),
            poll_interval_seconds=_positive_float(
                env, "SPA_DEPLOY_POLL_INTERVAL_SECONDS", DEFAULT_POLL_INTERVAL_SECONDS
            ),
            timeout_seconds=_positive_float(
                env, "SPA_DEPLOY_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS
            ),
            invalidation_batch_limit=_positive_int(
                env, "SPA_DEPLOY_INVALIDATION_BATCH_LIMIT", DEFAULT_INVALIDATION_BATCH_LIMIT
            ),
            ssm_prefix=env.get("SPA_DEPLOY_SSM_PREFIX", DEFAULT_SSM_PREFIX).rstrip("/")
            or DEFAULT_SSM_PREFIX,
        )


def _positive_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise DeployConfigError(f"{name} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise DeployConfigError(f"{name} must be positive, got {value}")
    return value


def _positive_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise DeployConfigError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise DeployConfigError(f"{name} must be positive, got {value}")
    return value


def _read_json_object(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise DeployConfigError(f"Config file not found: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise DeployConfigError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise DeployConfigError(f"Expected a JSON object in {path}")
    return data


def _str_mapping(raw: Any, *, name: str, path: Path) -> dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in raw.items()
    ):
        raise DeployConfigError(f"{name} must map strings to strings in {path}")
    return dict(raw)


def load_cache_policy(path: Path) -> CachePolicy:
    """Load a CachePolicy from JSON.

    Format:
        {"default": "...", "byExtension": {".js": "..."}, "byPath": {"index.html": "no-cache"}}

    Omitted keys keep the built-in defaults.  Extensions are normalised to
    lower case with a leading dot.
    """
    data = _read_json_object(path)
    base = CachePolicy()

    default = data.get("default", base.default)
    if not isinstance(default, str) or not default.strip():
        raise DeployConfigError(f"default must be a non-empty string in {path}")

    by_extension = base.by_extension
    if "byExtension" in data:
        raw_extensions = _str_mapping(data["byExtension"], name="byExtension", path=path)
        by_extension = {
            (ext if ext.startswith(".") else f".{ext}").lower(): value
            for ext, value in raw_extensions.items()
        }
    by_path = base.by_path
    if "byPath" in data:
        by_path = {
            key.lstrip("/"): value
            for key, value in _str_mapping(data["byPath"], name="byPath", path=path).items()
        }

    return CachePolicy(default=default, by_extension=by_extension, by_path=by_path)


def parse_viewer_protocol_policy(raw: Any) -> ViewerProtocolPolicy:
    if isinstance(raw, str):
        if raw in _VIEWER_POLICY_ALIASES:
            return _VIEWER_POLICY_ALIASES[raw]
        try:
            return ViewerProtocolPolicy(raw)
        except ValueError:
            pass
    allowed = sorted({*(p.value for p in ViewerProtocolPolicy), *_VIEWER_POLICY_ALIASES})
    raise DeployConfigError(f"viewerProtocolPolicy must be one of {allowed}, got {raw!r}")


def load_distribution_config(path: Path) -> DistributionConfig:
    """Load a declared DistributionConfig from JSON.

    Format:
        {
          "originId": "S3-site-bucket",
          "errorPageMappings": {"403": "/index.html", "404": "/index.html"},
          "defaultTTLSeconds": 86400,
          "viewerProtocolPolicy": "redirect-to-https"
        }
    """
    data = _read_json_object(path)

    origin_id = data.get("originId")
    if not isinstance(origin_id, str) or not origin_id.strip():
        raise DeployConfigError(f"originId is required in {path}")

    mappings: dict[int, str] = {}
    raw_mappings = data.get("errorPageMappings", {})
    if not isinstance(raw_mappings, dict):
        raise DeployConfigError(f"errorPageMappings must be an object in {path}")
    for code, page in raw_mappings.items():
        try:
            status = int(code)
        except (TypeError, ValueError) as exc:
            raise DeployConfigError(f"Invalid HTTP status code {code!r} in {path}") from exc
        if not 400 <= status <= 599:
            raise DeployConfigError(f"Error page status must be 4xx/5xx, got {status} in {path}")
        if not isinstance(page, str) or not page.startswith("/"):
            raise DeployConfigError(f"Error page path for {status} must start with '/' in {path}")
        mappings[status] = page

    ttl = data.get("defaultTTLSeconds", 86400)
    if isinstance(ttl, bool) or not isinstance(ttl, int) or ttl < 0:
        raise DeployConfigError(f"defaultTTLSeconds must be a non-negative integer in {path}")

    policy = parse_viewer_protocol_policy(data.get("viewerProtocolPolicy", "redirect-to-https"))

    return DistributionConfig(
        origin_id=origin_id.strip(),
        error_page_mappings=mappings,
        default_ttl_seconds=ttl,
        viewer_protocol_policy=policy,
    )
