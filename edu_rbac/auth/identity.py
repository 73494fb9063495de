"""
Identity Resolver

Turns the ``Authorization: Bearer <token>`` header into a principal id.
Token verification is delegated to PyJWT; the rest of the authorization
subsystem only ever sees the resulting opaque identifier.

A request without the header is anonymous (``g.principal_id is None``) and
is rejected later by any guard with 401 ``Authentication required``. A
present but malformed, expired or forged token is rejected immediately with
401 ``Authentication failed``.
"""

from typing import Any, Dict, Iterable, Optional, Sequence

import jwt
import structlog
from flask import Flask, g, jsonify, request

from edu_rbac.auth.exceptions import AuthenticationError, AuthorizationErrorCode

logger = structlog.get_logger(__name__)

BEARER_PREFIX = 'Bearer '

DEFAULT_EXEMPT_ENDPOINTS = frozenset({'health', 'prometheus_metrics', 'static'})


def extract_bearer_token(authorization_header: Optional[str]) -> Optional[str]:
    """
    Extract the token from an ``Authorization`` header value.

    Returns ``None`` for a missing header.

    Raises:
        AuthenticationError: Header present but not ``Bearer <token>``
    """
    if not authorization_header:
        return None

    if not authorization_header.startswith(BEARER_PREFIX):
        raise AuthenticationError(
            "Authorization header does not use the Bearer scheme",
            error_code=AuthorizationErrorCode.AUTH_HEADER_MALFORMED,
            user_message="Invalid authorization format. Use: Bearer <token>"
        )

    token = authorization_header[len(BEARER_PREFIX):].strip()
    if not token:
        raise AuthenticationError(
            "Bearer token is empty",
            error_code=AuthorizationErrorCode.AUTH_HEADER_MALFORMED,
            user_message="Invalid authorization format. Use: Bearer <token>"
        )
    return token


class TokenVerifier:
    """
    JWT signature and expiry verification.

    Args:
        secret: Shared signing secret
        algorithms: Accepted signing algorithms
        leeway: Clock skew tolerance in seconds
    """

    def __init__(self, secret: str, algorithms: Sequence[str] = ('HS256',), leeway: int = 0):
        self.secret = secret
        self.algorithms = list(algorithms)
        self.leeway = leeway

    def verify(self, token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(
                token,
                self.secret,
                algorithms=self.algorithms,
                leeway=self.leeway
            )
        except jwt.ExpiredSignatureError as e:
            raise AuthenticationError(
                "JWT token has expired",
                error_code=AuthorizationErrorCode.AUTH_TOKEN_INVALID,
                user_message="Invalid or expired token",
                metadata={'jwt_error': type(e).__name__}
            ) from e
        except jwt.InvalidTokenError as e:
            raise AuthenticationError(
                f"JWT token rejected: {e}",
                error_code=AuthorizationErrorCode.AUTH_TOKEN_INVALID,
                user_message="Invalid or expired token",
                metadata={'jwt_error': type(e).__name__}
            ) from e

    def issue(self, claims: Dict[str, Any]) -> str:
        """Sign ``claims`` with the configured secret. Used by tooling and tests."""
        return jwt.encode(claims, self.secret, algorithm=self.algorithms[0])


class IdentityResolver:
    """
    Resolves the principal id from an ``Authorization`` header.

    The id is read from the ``userId`` claim, falling back to ``sub``.
    """

    def __init__(self, verifier: TokenVerifier, claim_names: Iterable[str] = ('userId', 'sub')):
        self.verifier = verifier
        self.claim_names = tuple(claim_names)

    def resolve(self, authorization_header: Optional[str]) -> Optional[str]:
        token = extract_bearer_token(authorization_header)
        if token is None:
            return None

        claims = self.verifier.verify(token)
        for claim_name in self.claim_names:
            principal_id = claims.get(claim_name)
            if principal_id:
                return str(principal_id)

        raise AuthenticationError(
            "Verified token carries no principal claim",
            error_code=AuthorizationErrorCode.AUTH_TOKEN_INVALID,
            user_message="Invalid or expired token",
            metadata={'claims': sorted(claims)}
        )


def init_identity_resolution(
    app: Flask,
    resolver: IdentityResolver,
    exempt_endpoints: Iterable[str] = DEFAULT_EXEMPT_ENDPOINTS
) -> None:
    """
    Resolve ``g.principal_id`` before every request.

    Args:
        app: Flask application instance
        resolver: Identity resolver for bearer tokens
        exempt_endpoints: Endpoints served without identity resolution
    """
    exempt = frozenset(exempt_endpoints)

    @app.before_request
    def resolve_principal():
        g.principal_id = None
        if request.endpoint in exempt:
            return None

        try:
            g.principal_id = resolver.resolve(request.headers.get('Authorization'))
        except AuthenticationError as e:
            logger.warning(
                "Authentication failed",
                event_type="auth.authentication_failed",
                error_code=e.error_code.value,
                error=e.message,
                path=request.path
            )
            return jsonify({
                'success': False,
                'error': 'Authentication failed',
                'message': e.user_message,
            }), e.http_status
        return None


__all__ = [
    'extract_bearer_token',
    'TokenVerifier',
    'IdentityResolver',
    'init_identity_resolution',
]
