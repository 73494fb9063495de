"""
Role administration endpoints.

Routes:
    GET    /api/roles                                  list the role catalog
    GET    /api/roles/user/<user_id>                   roles held by a principal
    POST   /api/roles/user/<user_id>/assign            assign a role (body: roleName)
    DELETE /api/roles/user/<user_id>/remove/<name>     remove a role
"""

import structlog
from flask import Blueprint, g

from edu_rbac.auth.catalog import PermissionName
from edu_rbac.auth.decorators import require_permission
from edu_rbac.auth.exceptions import ConflictError, NotFoundError
from edu_rbac.auth.services import get_services
from edu_rbac.blueprints.schemas import RoleAssignmentSchema, validate_body
from edu_rbac.utils.response import (
    conflict_response,
    created_response,
    error_response,
    internal_error_response,
    not_found_response,
    success_response,
)

logger = structlog.get_logger(__name__)

roles_bp = Blueprint('roles', __name__, url_prefix='/api/roles')


@roles_bp.route('', methods=['GET'])
@require_permission(PermissionName.ROLE_READ)
def list_roles():
    try:
        return success_response(get_services().role_store.list_roles())
    except Exception as e:
        logger.error("Failed to list roles", error=str(e), exc_info=True)
        return internal_error_response("Error fetching roles")


@roles_bp.route('/user/<user_id>', methods=['GET'])
@require_permission(PermissionName.ROLE_READ)
def list_user_roles(user_id: str):
    try:
        return success_response(get_services().role_store.list_roles_for(user_id))
    except Exception as e:
        logger.error("Failed to list user roles", principal_id=user_id, error=str(e), exc_info=True)
        return internal_error_response("Error fetching user roles")


@roles_bp.route('/user/<user_id>/assign', methods=['POST'])
@require_permission(PermissionName.ROLE_MANAGE)
@validate_body(RoleAssignmentSchema)
def assign_role(user_id: str):
    role_name = g.validated_data['roleName']
    try:
        assignment = get_services().role_store.assign_role(user_id, role_name)
    except NotFoundError as e:
        return error_response(e.user_message, 400)
    except ConflictError as e:
        return conflict_response(e.user_message)
    except Exception as e:
        logger.error("Failed to assign role", principal_id=user_id, role=role_name, error=str(e), exc_info=True)
        return internal_error_response("Error assigning role")

    logger.info(
        "Role assignment requested via admin API",
        actor_id=g.principal_id,
        principal_id=user_id,
        role=role_name
    )
    return created_response(assignment, message="Role assigned successfully")


@roles_bp.route('/user/<user_id>/remove/<role_name>', methods=['DELETE'])
@require_permission(PermissionName.ROLE_MANAGE)
def remove_role(user_id: str, role_name: str):
    try:
        get_services().role_store.remove_role(user_id, role_name)
    except NotFoundError as e:
        return not_found_response(e.user_message)
    except Exception as e:
        logger.error("Failed to remove role", principal_id=user_id, role=role_name, error=str(e), exc_info=True)
        return internal_error_response("Error removing role")

    logger.info(
        "Role removal requested via admin API",
        actor_id=g.principal_id,
        principal_id=user_id,
        role=role_name
    )
    return success_response(message="Role removed successfully")


__all__ = ['roles_bp']
