"""
Enforcement Layer

Reusable guards composed in front of protected Flask views. A guard is
parameterized by a ``Requirement``, asks the Authorization Engine for a
decision and maps it onto one of three transport outcomes:

- no principal resolved -> 401 ``Authentication required``
- principal lacks the requirement -> 403 ``Access denied. Required ...``
- the engine could not evaluate -> 500 ``Error checking user roles`` /
  ``Error checking user permissions``

Lookup failures are never rendered as a denial, and raw store error text is
never rendered at all; full detail is logged by the engine.

Example:
    @roles_bp.route('/', methods=['GET'])
    @require_permission(PermissionName.ROLE_READ)
    def list_roles():
        ...
"""

from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar, cast

import structlog
from flask import Flask, Response, g, jsonify

from edu_rbac.auth.authorization import (
    AuthorizationDecision,
    AuthorizationEngine,
    DenialReason,
    Requirement,
    RequirementKind,
)
from edu_rbac.auth.exceptions import (
    AuthenticationError,
    AuthorizationDenied,
    AuthorizationErrorCode,
    LookupFailure,
    SecurityException,
    create_safe_error_response,
)
from edu_rbac.auth.services import get_services
from edu_rbac.monitoring.metrics import authz_guard_outcomes_total

logger = structlog.get_logger(__name__)

F = TypeVar('F', bound=Callable[..., Any])


def denial_message(requirement: Requirement) -> str:
    """Client-facing 403 message naming what was required."""
    names = ', '.join(requirement.name_values)
    if requirement.kind is RequirementKind.ROLE:
        return f"Access denied. Required role: {names}"
    if requirement.kind is RequirementKind.ANY_ROLE:
        return f"Access denied. Required one of these roles: {names}"
    if requirement.kind is RequirementKind.PERMISSION:
        return f"Access denied. Required permission: {names}"
    return f"Access denied. Required one of these permissions: {names}"


def lookup_failure_message(requirement: Requirement) -> str:
    if requirement.kind.is_role:
        return "Error checking user roles"
    return "Error checking user permissions"


def get_current_principal() -> Optional[str]:
    """Principal id resolved for the current request, if any."""
    return g.get('principal_id')


@dataclass(frozen=True)
class GuardOutcome:
    """Transport-level result of a guard evaluation."""

    decision: AuthorizationDecision
    status_code: int
    body: Optional[Dict[str, Any]] = None

    @property
    def proceed(self) -> bool:
        return self.decision.allowed


class Guard:
    """
    Decision-to-response translator for one requirement.

    Args:
        requirement: Capability the protected view demands
        engine: Engine to consult; defaults to the one registered on the
            current Flask application
    """

    def __init__(self, requirement: Requirement, engine: Optional[AuthorizationEngine] = None):
        self.requirement = requirement
        self.engine = engine

    def _resolve_engine(self) -> AuthorizationEngine:
        if self.engine is not None:
            return self.engine
        return get_services().engine

    def to_exception(self, decision: AuthorizationDecision) -> Optional[SecurityException]:
        """Exception carrying the safe client message, or ``None`` when allowed."""
        if decision.allowed:
            return None

        if decision.failed:
            return LookupFailure(
                decision.error.message if decision.error else "Authorization lookup failed",
                user_message=lookup_failure_message(self.requirement),
                original_error=decision.error
            )

        if decision.reason is DenialReason.UNAUTHENTICATED:
            return AuthenticationError("No principal resolved for protected operation")

        error_code = (
            AuthorizationErrorCode.AUTHZ_ROLE_INSUFFICIENT
            if decision.reason is DenialReason.INSUFFICIENT_ROLE
            else AuthorizationErrorCode.AUTHZ_PERMISSION_DENIED
        )
        return AuthorizationDenied(
            f"Principal {decision.principal_id} does not satisfy {self.requirement}",
            error_code=error_code,
            principal_id=decision.principal_id,
            required=self.requirement.name_values,
            user_message=denial_message(self.requirement)
        )

    def _check(self, principal_id: Optional[str]) -> Tuple[AuthorizationDecision, Optional[SecurityException]]:
        decision = self._resolve_engine().decide(principal_id, self.requirement)
        error = self.to_exception(decision)
        authz_guard_outcomes_total.labels(
            guard=self.requirement.kind.value,
            status_code=str(error.http_status if error else 200)
        ).inc()
        return decision, error

    def evaluate(self, principal_id: Optional[str]) -> GuardOutcome:
        decision, error = self._check(principal_id)
        if error is None:
            return GuardOutcome(decision=decision, status_code=200)
        return GuardOutcome(
            decision=decision,
            status_code=error.http_status,
            body=create_safe_error_response(error)
        )

    def enforce(self, principal_id: Optional[str]) -> None:
        """Raise the mapped ``SecurityException`` unless the decision allows."""
        _, error = self._check(principal_id)
        if error is not None:
            raise error

    def __call__(self, func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            self.enforce(get_current_principal())
            return func(*args, **kwargs)

        wrapper.requirement = self.requirement
        return cast(F, wrapper)


def require_role(role_name, engine: Optional[AuthorizationEngine] = None) -> Guard:
    """Guard requiring one specific role."""
    return Guard(Requirement.role(role_name), engine=engine)


def require_any_role(*role_names, engine: Optional[AuthorizationEngine] = None) -> Guard:
    """Guard satisfied by any one of the given roles (lists are flattened)."""
    return Guard(Requirement.any_role(*role_names), engine=engine)


def require_permission(permission_name, engine: Optional[AuthorizationEngine] = None) -> Guard:
    """Guard requiring one specific permission."""
    return Guard(Requirement.permission(permission_name), engine=engine)


def require_any_permission(*permission_names, engine: Optional[AuthorizationEngine] = None) -> Guard:
    """Guard satisfied by any one of the given permissions (lists are flattened)."""
    return Guard(Requirement.any_permission(*permission_names), engine=engine)


def init_auth_error_handlers(app: Flask) -> None:
    """
    Render every ``SecurityException`` with its safe message and status.

    Args:
        app: Flask application instance
    """

    @app.errorhandler(SecurityException)
    def handle_security_exception(error: SecurityException) -> Response:
        if error.http_status >= 500:
            logger.error(
                "Security subsystem failure rendered",
                error_id=error.error_id,
                error_code=error.error_code.value,
                error=error.message
            )
        return jsonify(create_safe_error_response(error)), error.http_status

    logger.info("Authorization error handlers initialized", app_name=app.name)


__all__ = [
    'Guard',
    'GuardOutcome',
    'require_role',
    'require_any_role',
    'require_permission',
    'require_any_permission',
    'denial_message',
    'lookup_failure_message',
    'get_current_principal',
    'init_auth_error_handlers',
]
