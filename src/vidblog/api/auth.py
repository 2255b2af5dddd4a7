"""Caller identity from ``Authorization: Bearer <token>``."""

from __future__ import annotations

from typing import Protocol

import structlog
from fastapi import Header, Request

from vidblog.errors import AuthenticationError


class IdentityResolver(Protocol):
    def resolve(self, token: str) -> str | None:
        """Return the owner id for ``token``, or None if it is not recognised."""
        ...


class StaticTokenResolver:
    """Tokens configured up front as a token -> owner mapping."""

    def __init__(self, token_owners: dict[str, str]):
        self._owners = dict(token_owners)

    def resolve(self, token: str) -> str | None:
        return self._owners.get(token)


def bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_owner_id(request: Request, authorization: str | None = Header(default=None)) -> str:
    """FastAPI dependency: the authenticated owner id, or AuthenticationError."""
    token = bearer_token(authorization)
    if token is None:
        raise AuthenticationError("Missing bearer token")
    owner_id = request.app.state.identity.resolve(token)
    if not owner_id:
        raise AuthenticationError("Invalid or expired token")
    structlog.contextvars.bind_contextvars(owner_id=owner_id)
    return owner_id
