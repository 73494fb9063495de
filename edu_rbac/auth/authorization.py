"""
Authorization Engine

The single decision point answering "may principal P perform an action that
requires capability C?", where C is one role, any of several roles, one
permission or any of several permissions.

Decisions are values, not exceptions:

- ``ALLOW``: at least one required name matched (logical OR, no precedence)
- ``DENY``: no principal (``UNAUTHENTICATED``) or no match
  (``INSUFFICIENT_ROLE`` / ``INSUFFICIENT_PERMISSION``)
- ``LOOKUP_FAILURE``: the stores could not answer (timeout, connection loss,
  unexpected fault) or the requirement named something outside the stored
  catalog. Never reported as a denial.

The model is grant-only: there are no negative grants and a principal with no
roles fails every check.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional, Tuple, Union

import structlog

from edu_rbac.auth.catalog import CatalogName, PermissionName, RoleName
from edu_rbac.auth.exceptions import ConfigurationError, LookupFailure, get_error_category
from edu_rbac.auth.permission_store import PermissionStore
from edu_rbac.auth.role_store import RoleStore
from edu_rbac.data.exceptions import DatabaseException
from edu_rbac.monitoring.metrics import authz_decision_duration_seconds, authz_decisions_total

logger = structlog.get_logger(__name__)


class RequirementKind(Enum):
    ROLE = 'role'
    ANY_ROLE = 'any_role'
    PERMISSION = 'permission'
    ANY_PERMISSION = 'any_permission'

    @property
    def is_role(self) -> bool:
        return self in (RequirementKind.ROLE, RequirementKind.ANY_ROLE)


def _flatten(names) -> list:
    flat = []
    for name in names:
        if isinstance(name, (list, tuple, set, frozenset)):
            flat.extend(_flatten(name))
        else:
            flat.append(name)
    return flat


@dataclass(frozen=True)
class Requirement:
    """
    Capability a protected operation demands.

    Names are parsed against the catalog on construction, so a misspelled
    requirement raises ``ConfigurationError`` where it is declared.
    """

    kind: RequirementKind
    names: Tuple[CatalogName, ...]

    @classmethod
    def role(cls, name: Union[str, RoleName]) -> 'Requirement':
        return cls(RequirementKind.ROLE, (RoleName.parse(name),))

    @classmethod
    def any_role(cls, *names: Union[str, RoleName, Iterable[str]]) -> 'Requirement':
        return cls(RequirementKind.ANY_ROLE, cls._parse_any(RoleName, names))

    @classmethod
    def permission(cls, name: Union[str, PermissionName]) -> 'Requirement':
        return cls(RequirementKind.PERMISSION, (PermissionName.parse(name),))

    @classmethod
    def any_permission(cls, *names: Union[str, PermissionName, Iterable[str]]) -> 'Requirement':
        return cls(RequirementKind.ANY_PERMISSION, cls._parse_any(PermissionName, names))

    @staticmethod
    def _parse_any(enum_cls, names) -> Tuple[CatalogName, ...]:
        parsed = enum_cls.parse_many(_flatten(names))
        if not parsed:
            raise ConfigurationError(f"An any-of {enum_cls.kind()} requirement needs at least one name")
        return parsed

    @property
    def name_values(self) -> Tuple[str, ...]:
        return tuple(name.value for name in self.names)

    def __str__(self) -> str:
        return f"{self.kind.value}({', '.join(self.name_values)})"


class DecisionOutcome(Enum):
    ALLOW = 'allow'
    DENY = 'deny'
    LOOKUP_FAILURE = 'lookup_failure'


class DenialReason(Enum):
    UNAUTHENTICATED = 'unauthenticated'
    INSUFFICIENT_ROLE = 'insufficient_role'
    INSUFFICIENT_PERMISSION = 'insufficient_permission'


@dataclass(frozen=True)
class AuthorizationDecision:
    """Result of evaluating one requirement for one principal."""

    outcome: DecisionOutcome
    requirement: Requirement
    principal_id: Optional[str] = None
    reason: Optional[DenialReason] = None
    error: Optional[LookupFailure] = field(default=None, compare=False)

    @property
    def allowed(self) -> bool:
        return self.outcome is DecisionOutcome.ALLOW

    @property
    def denied(self) -> bool:
        return self.outcome is DecisionOutcome.DENY

    @property
    def failed(self) -> bool:
        return self.outcome is DecisionOutcome.LOOKUP_FAILURE


class AuthorizationEngine:
    """
    Evaluates requirements against the Role and Permission stores.

    Args:
        role_store: Source of principal role assignments
        permission_store: Source of effective permissions
    """

    def __init__(self, role_store: RoleStore, permission_store: PermissionStore):
        self.role_store = role_store
        self.permission_store = permission_store

    def decide(self, principal_id: Optional[str], requirement: Requirement) -> AuthorizationDecision:
        """
        Decide whether ``principal_id`` satisfies ``requirement``.

        An absent principal is denied as ``UNAUTHENTICATED`` without touching
        the stores. Store and configuration errors become a
        ``LOOKUP_FAILURE`` decision; nothing is raised for ordinary outcomes.
        """
        if not principal_id:
            return self._record(
                AuthorizationDecision(
                    outcome=DecisionOutcome.DENY,
                    requirement=requirement,
                    reason=DenialReason.UNAUTHENTICATED
                ),
                duration=0.0
            )

        start_time = time.perf_counter()
        try:
            if requirement.kind.is_role:
                granted = self.role_store.has_any_role(principal_id, requirement.names)
            else:
                granted = self.permission_store.has_any_permission(principal_id, requirement.names)
        except LookupFailure as e:
            decision = self._failure(principal_id, requirement, e)
        except DatabaseException as e:
            decision = self._failure(
                principal_id,
                requirement,
                LookupFailure(f"Store {e.operation} failed: {e.message}", original_error=e)
            )
        except Exception as e:
            decision = self._failure(
                principal_id,
                requirement,
                LookupFailure(f"Unexpected error evaluating {requirement}: {e}", original_error=e)
            )
        else:
            if granted:
                decision = AuthorizationDecision(
                    outcome=DecisionOutcome.ALLOW,
                    requirement=requirement,
                    principal_id=principal_id
                )
            else:
                decision = AuthorizationDecision(
                    outcome=DecisionOutcome.DENY,
                    requirement=requirement,
                    principal_id=principal_id,
                    reason=(
                        DenialReason.INSUFFICIENT_ROLE
                        if requirement.kind.is_role
                        else DenialReason.INSUFFICIENT_PERMISSION
                    )
                )

        return self._record(decision, duration=time.perf_counter() - start_time)

    @staticmethod
    def _failure(
        principal_id: str,
        requirement: Requirement,
        error: LookupFailure
    ) -> AuthorizationDecision:
        return AuthorizationDecision(
            outcome=DecisionOutcome.LOOKUP_FAILURE,
            requirement=requirement,
            principal_id=principal_id,
            error=error
        )

    def _record(self, decision: AuthorizationDecision, duration: float) -> AuthorizationDecision:
        kind = decision.requirement.kind.value
        authz_decisions_total.labels(outcome=decision.outcome.value, requirement_kind=kind).inc()
        authz_decision_duration_seconds.labels(requirement_kind=kind).observe(duration)

        log_fields = {
            'principal_id': decision.principal_id,
            'requirement_kind': kind,
            'required': list(decision.requirement.name_values),
            'duration_ms': round(duration * 1000, 3),
        }

        if decision.allowed:
            logger.debug("Authorization granted", event_type="authz.allowed", **log_fields)
        elif decision.denied:
            logger.info(
                "Authorization denied",
                event_type="authz.denied",
                reason=decision.reason.value,
                **log_fields
            )
        else:
            error = decision.error
            if isinstance(error.original_error, DatabaseException):
                log_fields.update(error.original_error.to_log_fields())
            logger.error(
                "Authorization lookup failed",
                event_type="authz.lookup_failure",
                error_code=error.error_code.value,
                error_category=get_error_category(error.error_code),
                error_id=error.error_id,
                error=error.message,
                exc_info=error.original_error or error,
                **log_fields
            )
        return decision


__all__ = [
    'RequirementKind',
    'Requirement',
    'DecisionOutcome',
    'DenialReason',
    'AuthorizationDecision',
    'AuthorizationEngine',
]
