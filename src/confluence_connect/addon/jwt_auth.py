"""Atlassian Connect JWT signing and verification.

Requests between a Connect host and an add-on carry an HS256 JWT whose
``qsh`` claim is the SHA-256 of a canonical form of the request, so a token
cannot be replayed against another URL.

Example:
    token = encode_token("client-key", secret, "POST", "/jira/addon/webhooks/page_created")
    claims = decode_token(token, store_lookup, "POST", "/jira/addon/webhooks/page_created")
"""

import hashlib
import logging
import time
from collections.abc import Callable, Iterable, Mapping
from typing import Any
from urllib.parse import quote

import jwt

from confluence_connect.core.exceptions import InvalidTokenError, UnknownTenantError

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
JWT_QUERY_PARAM = "jwt"
AUTH_SCHEME = "JWT"
DEFAULT_TOKEN_TTL = 180  # seconds

QueryParams = Mapping[str, str | list[str]] | Iterable[tuple[str, str]] | None


def _encode(value: str) -> str:
    return quote(value, safe="")


def _group_query(query: QueryParams) -> dict[str, list[str]]:
    grouped: dict[str, list[str]] = {}
    if query is None:
        return grouped
    items: Iterable[tuple[str, Any]]
    if isinstance(query, Mapping):
        items = query.items()
    else:
        items = query
    for key, value in items:
        values = value if isinstance(value, list) else [value]
        grouped.setdefault(key, []).extend(str(v) for v in values)
    return grouped


def canonical_request(method: str, path: str, query: QueryParams = None) -> str:
    """Build the canonical request string used for the qsh claim.

    Format is ``METHOD&path&query``: the path has no trailing slash (``/``
    when empty) and ``&`` escaped; query keys are sorted, the ``jwt`` key is
    dropped, and repeated values are sorted and joined with commas.
    """
    canonical_path = "/" + path.strip("/")
    canonical_path = canonical_path.replace("&", "%26")

    grouped = _group_query(query)
    grouped.pop(JWT_QUERY_PARAM, None)
    canonical_query = "&".join(
        f"{_encode(key)}={','.join(_encode(v) for v in sorted(grouped[key]))}"
        for key in sorted(grouped)
    )
    return f"{method.upper()}&{canonical_path}&{canonical_query}"


def query_string_hash(method: str, path: str, query: QueryParams = None) -> str:
    """Hex SHA-256 of the canonical request."""
    return hashlib.sha256(canonical_request(method, path, query).encode("utf-8")).hexdigest()


def encode_token(
    issuer: str,
    shared_secret: str,
    method: str,
    path: str,
    query: QueryParams = None,
    ttl: int = DEFAULT_TOKEN_TTL,
    now: float | None = None,
) -> str:
    """Sign a request-bound JWT.

    Args:
        issuer: Token issuer (client key of the host, or the add-on key)
        shared_secret: HS256 secret exchanged at install time
        method: HTTP method of the request being signed
        path: Request path relative to the add-on base URL
        query: Query parameters of the request
        ttl: Lifetime in seconds
        now: Issue time override (epoch seconds)

    Returns:
        Encoded JWT
    """
    issued_at = int(now if now is not None else time.time())
    claims = {
        "iss": issuer,
        "iat": issued_at,
        "exp": issued_at + ttl,
        "qsh": query_string_hash(method, path, query),
    }
    return jwt.encode(claims, shared_secret, algorithm=JWT_ALGORITHM)


def extract_token(authorization: str | None, query: Mapping[str, str] | None = None) -> str | None:
    """Read a token from ``Authorization: JWT <token>`` or the ``jwt`` query param."""
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme == AUTH_SCHEME and token.strip():
            return token.strip()
    if query and query.get(JWT_QUERY_PARAM):
        return query[JWT_QUERY_PARAM]
    return None


def decode_token(
    token: str,
    secret_lookup: Callable[[str], str | None],
    method: str,
    path: str,
    query: QueryParams = None,
    max_token_age: int | None = None,
    leeway: int = 0,
) -> dict[str, Any]:
    """Verify a request-bound JWT and return its claims.

    Args:
        token: Encoded JWT
        secret_lookup: Maps the issuer to its shared secret (None if unknown)
        method: HTTP method of the request
        path: Request path relative to the add-on base URL
        query: Query parameters of the request
        max_token_age: Reject tokens issued longer ago than this (seconds)
        leeway: Clock skew tolerance in seconds

    Returns:
        Verified claims

    Raises:
        UnknownTenantError: If the issuer has no stored shared secret
        InvalidTokenError: If the token is malformed, badly signed, expired,
            too old, or bound to another request
    """
    try:
        unverified = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError as e:
        raise InvalidTokenError("Malformed JWT") from e

    issuer = unverified.get("iss")
    if not issuer:
        raise InvalidTokenError("JWT has no issuer")

    secret = secret_lookup(issuer)
    if secret is None:
        raise UnknownTenantError(issuer)

    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[JWT_ALGORITHM],
            options={"require": ["iss", "iat", "exp"], "verify_aud": False},
            leeway=leeway,
        )
    except jwt.ExpiredSignatureError as e:
        raise InvalidTokenError("JWT expired", client_key=issuer) from e
    except jwt.InvalidTokenError as e:
        raise InvalidTokenError(f"Invalid JWT: {e}", client_key=issuer) from e

    if max_token_age is not None and time.time() - claims["iat"] > max_token_age + leeway:
        raise InvalidTokenError("JWT too old", client_key=issuer)

    expected = query_string_hash(method, path, query)
    if claims.get("qsh") != expected:
        logger.debug("qsh mismatch for %s: %s", issuer, canonical_request(method, path, query))
        raise InvalidTokenError(
            "JWT query string hash does not match the request", client_key=issuer
        )

    return claims
