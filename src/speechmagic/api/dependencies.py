"""
FastAPI Dependency Injection Providers.

Hierarchy:
    1. get_settings() - Loads and caches application configuration
    2. get_generation_service() - Singleton GenerationService
    3. get_identity_resolver() - Bearer token -> CallerIdentity
    4. get_caller() - Resolved identity for the current request
    5. bind_request_id() / enforce_api_limit() - Router-wide guards

Identity:
    The service never checks credentials itself. A pluggable
    IdentityResolver turns the bearer token into a CallerIdentity once
    per request; the default resolver is a static token -> owner map from
    the `auth.tokens` setting. Deployments install their own with
    set_identity_resolver(), tests use app.dependency_overrides.

    Failed resolutions are counted per client IP by the `auth` limiter.
    Once a client exhausts it, further attempts get 429 before the
    resolver is consulted.

Usage in Route Handlers:
    @router.get("/generations")
    async def list_generations(
        caller: CallerIdentity = Depends(get_caller),
        service: GenerationService = Depends(get_generation_service),
    ):
        ...
"""
from __future__ import annotations

import os
import uuid
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Optional, Protocol

from fastapi import Depends, Header, Request

from speechmagic.core.config import Settings, load_settings
from speechmagic.core.logging import get_logger, set_request_id, warn
from speechmagic.core.metrics import metrics
from speechmagic.services.errors import RateLimitedError, UnauthorizedError
from speechmagic.services.generation_service import GenerationService, get_service

_LOG = get_logger("speechmagic.api")


@dataclass(frozen=True)
class CallerIdentity:
    """Opaque owner id plus the token it was resolved from."""
    owner_id: str
    token: str


class IdentityResolver(Protocol):
    def resolve(self, token: str) -> Optional[CallerIdentity]:
        ...


class StaticTokenResolver:
    """Resolves tokens from a fixed token -> owner id map."""

    def __init__(self, tokens: Dict[str, str]):
        self._tokens = dict(tokens)

    def resolve(self, token: str) -> Optional[CallerIdentity]:
        owner_id = self._tokens.get(token)
        if owner_id is None:
            return None
        return CallerIdentity(owner_id=owner_id, token=token)


_resolver: Optional[IdentityResolver] = None


def set_identity_resolver(resolver: Optional[IdentityResolver]) -> None:
    """Install a process-wide resolver (None restores the static map)."""
    global _resolver
    _resolver = resolver


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load and cache application settings.

    The path comes from SPEECHMAGIC_SETTINGS (default
    config/settings.yaml). A missing file means defaults plus
    environment overrides.
    """
    path = os.getenv("SPEECHMAGIC_SETTINGS", "config/settings.yaml")
    return load_settings(path, required=False)


def get_generation_service() -> GenerationService:
    """The singleton GenerationService shared by all requests."""
    return get_service(get_settings())


def get_identity_resolver(
    service: GenerationService = Depends(get_generation_service),
) -> IdentityResolver:
    if _resolver is not None:
        return _resolver
    return StaticTokenResolver(service.config.auth.tokens)


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def bind_request_id() -> str:
    """
    Assign a request id for log correlation.

    Declared async so the context variable is set in the request's own
    context rather than in a thread-pool copy.
    """
    rid = str(uuid.uuid4())[:12]
    set_request_id(rid)
    return rid


def enforce_api_limit(
    request: Request,
    service: GenerationService = Depends(get_generation_service),
) -> None:
    """General per-IP limiter applied to every /api/tts route."""
    if not service.limiters.enabled:
        return
    decision = service.limiters.api.admit(client_ip(request))
    if not decision.allowed:
        metrics.record_rate_limited("api")
        raise RateLimitedError("Too many requests, please try again later", decision.retry_after)


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_caller(
    request: Request,
    authorization: Optional[str] = Header(default=None),
    service: GenerationService = Depends(get_generation_service),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> CallerIdentity:
    """
    Resolve the caller of an identity-required route.

    Raises:
        UnauthorizedError: No bearer token, or the resolver rejected it.
        RateLimitedError: Too many failed attempts from this client.
    """
    ip = client_ip(request)
    limiter = service.limiters.auth if service.limiters.enabled else None

    if limiter is not None:
        blocked = limiter.check(ip)
        if not blocked.allowed:
            metrics.record_rate_limited("auth")
            raise RateLimitedError(
                "Too many authentication attempts, please try again later",
                blocked.retry_after,
            )

    token = _bearer_token(authorization)
    if token is None:
        raise UnauthorizedError("Authentication required")

    identity = resolver.resolve(token)
    if identity is None:
        if limiter is not None:
            limiter.admit(ip)
        warn(_LOG, "auth_failed", client=ip)
        raise UnauthorizedError("Invalid or expired token")
    return identity
