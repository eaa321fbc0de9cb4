# src/lumberjack/core/environment.py
"""Deployment metadata detection.

Reads commit sha, branch, build and deployment identifiers, platform,
environment name, version and region from the environment variables that
common CI systems and hosting platforms set. Lumberjack's own
``LUMBERJACK_*`` variables always win.

All functions accept an optional ``environ`` mapping so they can be tested
without touching os.environ.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

_ENV_VAR_MAPPINGS: dict[str, tuple[str, ...]] = {
    "commit_sha": (
        "LUMBERJACK_COMMIT_SHA",
        "VERCEL_GIT_COMMIT_SHA",
        "GITHUB_SHA",
        "CI_COMMIT_SHA",
        "COMMIT_SHA",
        "GIT_COMMIT",
        "HEROKU_SLUG_COMMIT",
        "RENDER_GIT_COMMIT",
        "RAILWAY_GIT_COMMIT_SHA",
        "CF_PAGES_COMMIT_SHA",
        "NETLIFY_COMMIT_REF",
        "CIRCLE_SHA1",
        "TRAVIS_COMMIT",
        "BUILDKITE_COMMIT",
        "DRONE_COMMIT_SHA",
        "BITBUCKET_COMMIT",
        "AZURE_BUILD_SOURCEVERSION",
        "CODEBUILD_RESOLVED_SOURCE_VERSION",
    ),
    "branch": (
        "LUMBERJACK_BRANCH",
        "VERCEL_GIT_COMMIT_REF",
        "GITHUB_REF_NAME",
        "CI_COMMIT_REF_NAME",
        "GIT_BRANCH",
        "RENDER_GIT_BRANCH",
        "RAILWAY_GIT_BRANCH",
        "CF_PAGES_BRANCH",
        "NETLIFY_BRANCH",
        "CIRCLE_BRANCH",
        "TRAVIS_BRANCH",
        "BUILDKITE_BRANCH",
        "DRONE_COMMIT_BRANCH",
        "BITBUCKET_BRANCH",
        "SYSTEM_PULLREQUEST_SOURCEBRANCH",
    ),
    "build_id": (
        "LUMBERJACK_BUILD_ID",
        "VERCEL_BUILD_ID",
        "GITHUB_RUN_ID",
        "CI_PIPELINE_ID",
        "BUILD_ID",
        "HEROKU_RELEASE_VERSION",
        "RAILWAY_DEPLOYMENT_ID",
        "CF_PAGES_BUILD_ID",
        "NETLIFY_BUILD_ID",
        "CIRCLE_BUILD_NUM",
        "TRAVIS_BUILD_ID",
        "BUILDKITE_BUILD_ID",
        "DRONE_BUILD_NUMBER",
        "BITBUCKET_BUILD_NUMBER",
        "AZURE_BUILD_BUILDID",
        "CODEBUILD_BUILD_ID",
    ),
    "deployment_id": (
        "LUMBERJACK_DEPLOYMENT_ID",
        "VERCEL_DEPLOYMENT_ID",
        "GITHUB_DEPLOYMENT_ID",
        "CI_DEPLOYMENT_ID",
        "DEPLOYMENT_ID",
        "HEROKU_DYNO_ID",
        "RENDER_INSTANCE_ID",
        "RAILWAY_REPLICA_ID",
        "NETLIFY_DEPLOY_ID",
    ),
    "environment": (
        "LUMBERJACK_ENVIRONMENT",
        "VERCEL_ENV",
        "GITHUB_ENVIRONMENT",
        "CI_ENVIRONMENT_NAME",
        "ENVIRONMENT",
        "PYTHON_ENV",
        "STAGE",
        "DEPLOYMENT_ENV",
        "APP_ENV",
    ),
    "version": (
        "LUMBERJACK_VERSION",
        "CI_COMMIT_TAG",
        "VERSION",
        "RELEASE_VERSION",
        "APP_VERSION",
        "PACKAGE_VERSION",
    ),
    "region": (
        "LUMBERJACK_REGION",
        "VERCEL_REGION",
        "AWS_REGION",
        "AWS_DEFAULT_REGION",
        "GOOGLE_CLOUD_REGION",
        "AZURE_REGION",
        "HEROKU_REGION",
        "RENDER_REGION",
        "RAILWAY_REGION",
    ),
}

# Checked in order; first variable present wins.
_PLATFORM_MARKERS: tuple[tuple[str, str], ...] = (
    ("LUMBERJACK_PLATFORM", ""),
    ("VERCEL", "vercel"),
    ("GITHUB_ACTIONS", "github"),
    ("GITLAB_CI", "gitlab"),
    ("CIRCLECI", "circleci"),
    ("TRAVIS", "travis"),
    ("DYNO", "heroku"),
    ("RENDER", "render"),
    ("RAILWAY_ENVIRONMENT", "railway"),
    ("NETLIFY", "netlify"),
    ("CF_PAGES", "cloudflare"),
    ("BUILDKITE", "buildkite"),
    ("DRONE", "drone"),
    ("AZURE_HTTP_USER_AGENT", "azure"),
    ("CODEBUILD_BUILD_ARN", "codebuild"),
    ("BITBUCKET_BUILD_NUMBER", "bitbucket"),
)


@dataclass(frozen=True, slots=True)
class EnvironmentInfo:
    commit_sha: str | None = None
    branch: str | None = None
    build_id: str | None = None
    deployment_id: str | None = None
    platform: str | None = None
    environment: str | None = None
    version: str | None = None
    region: str | None = None


def _first_available(names: tuple[str, ...], environ: Mapping[str, str]) -> str | None:
    for name in names:
        value = environ.get(name, "").strip()
        if value:
            return value
    return None


def _environ(environ: Mapping[str, str] | None) -> Mapping[str, str]:
    return os.environ if environ is None else environ


def detect_platform(environ: Mapping[str, str] | None = None) -> str | None:
    env = _environ(environ)
    for variable, platform in _PLATFORM_MARKERS:
        value = env.get(variable, "").strip()
        if value:
            # LUMBERJACK_PLATFORM names the platform itself
            return platform or value
    return None


def get_commit_sha(environ: Mapping[str, str] | None = None) -> str | None:
    return _first_available(_ENV_VAR_MAPPINGS["commit_sha"], _environ(environ))


def get_branch(environ: Mapping[str, str] | None = None) -> str | None:
    """Branch name with any ``refs/heads/`` or ``refs/tags/`` prefix removed."""
    branch = _first_available(_ENV_VAR_MAPPINGS["branch"], _environ(environ))
    if branch is None:
        return None
    for prefix in ("refs/heads/", "refs/tags/"):
        if branch.startswith(prefix):
            return branch.removeprefix(prefix)
    return branch


def get_environment_name(environ: Mapping[str, str] | None = None) -> str | None:
    return _first_available(_ENV_VAR_MAPPINGS["environment"], _environ(environ))


def get_environment_info(environ: Mapping[str, str] | None = None) -> EnvironmentInfo:
    env = _environ(environ)
    return EnvironmentInfo(
        commit_sha=get_commit_sha(env),
        branch=get_branch(env),
        build_id=_first_available(_ENV_VAR_MAPPINGS["build_id"], env),
        deployment_id=_first_available(_ENV_VAR_MAPPINGS["deployment_id"], env),
        platform=detect_platform(env),
        environment=get_environment_name(env),
        version=_first_available(_ENV_VAR_MAPPINGS["version"], env),
        region=_first_available(_ENV_VAR_MAPPINGS["region"], env),
    )


def get_deployment_context(environ: Mapping[str, str] | None = None) -> str:
    """One-line summary, e.g. ``platform=github env=prod branch=main commit=1a2b3c4d``."""
    info = get_environment_info(environ)
    parts: list[str] = []
    if info.platform:
        parts.append(f"platform={info.platform}")
    if info.environment:
        parts.append(f"env={info.environment}")
    if info.branch:
        parts.append(f"branch={info.branch}")
    if info.commit_sha:
        parts.append(f"commit={info.commit_sha[:8]}")
    if info.region:
        parts.append(f"region={info.region}")
    return " ".join(parts)


def is_ci(environ: Mapping[str, str] | None = None) -> bool:
    env = _environ(environ)
    if any(env.get(name) for name in ("CI", "CONTINUOUS_INTEGRATION", "BUILD_NUMBER")):
        return True
    return detect_platform(env) is not None


def is_production(environ: Mapping[str, str] | None = None) -> bool:
    env = _environ(environ)
    name = (get_environment_name(env) or "").lower()
    return name in {"production", "prod"} or env.get("VERCEL_ENV") == "production"


def is_development(environ: Mapping[str, str] | None = None) -> bool:
    env = _environ(environ)
    name = (get_environment_name(env) or "").lower()
    return name in {"development", "dev", "local"} or env.get("VERCEL_ENV") == "development"
