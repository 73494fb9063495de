"""
Permission administration endpoints.

Routes:
    GET    /api/permissions                                   list the permission catalog
    GET    /api/permissions/user/<user_id>                    effective permissions of a principal
    GET    /api/permissions/role/<role_id>                    permissions granted to a role
    POST   /api/permissions/role/<role_id>/assign             grant (body: permissionName)
    DELETE /api/permissions/role/<role_id>/remove/<name>      revoke
"""

import structlog
from flask import Blueprint, g

from edu_rbac.auth.catalog import PermissionName
from edu_rbac.auth.decorators import require_permission
from edu_rbac.auth.exceptions import ConflictError, NotFoundError
from edu_rbac.auth.services import get_services
from edu_rbac.blueprints.schemas import PermissionAssignmentSchema, validate_body
from edu_rbac.utils.response import (
    conflict_response,
    created_response,
    error_response,
    internal_error_response,
    not_found_response,
    success_response,
)

logger = structlog.get_logger(__name__)

permissions_bp = Blueprint('permissions', __name__, url_prefix='/api/permissions')


def _role_not_found(role_id: str):
    return not_found_response(f"Role {role_id} not found")


@permissions_bp.route('', methods=['GET'])
@require_permission(PermissionName.ROLE_MANAGE)
def list_permissions():
    try:
        return success_response(get_services().permission_store.list_permissions())
    except Exception as e:
        logger.error("Failed to list permissions", error=str(e), exc_info=True)
        return internal_error_response("Error fetching permissions")


@permissions_bp.route('/user/<user_id>', methods=['GET'])
@require_permission(PermissionName.ROLE_READ)
def list_user_permissions(user_id: str):
    try:
        permissions = get_services().permission_store.effective_permissions(user_id)
    except Exception as e:
        logger.error("Failed to list user permissions", principal_id=user_id, error=str(e), exc_info=True)
        return internal_error_response("Error fetching user permissions")
    return success_response(sorted(permissions, key=lambda permission: permission.name.value))


@permissions_bp.route('/role/<role_id>', methods=['GET'])
@require_permission(PermissionName.ROLE_READ)
def list_role_permissions(role_id: str):
    services = get_services()
    try:
        if services.role_store.get_role_by_id(role_id) is None:
            return _role_not_found(role_id)
        return success_response(services.permission_store.list_permissions_for(role_id))
    except Exception as e:
        logger.error("Failed to list role permissions", role_id=role_id, error=str(e), exc_info=True)
        return internal_error_response("Error fetching role permissions")


@permissions_bp.route('/role/<role_id>/assign', methods=['POST'])
@require_permission(PermissionName.ROLE_MANAGE)
@validate_body(PermissionAssignmentSchema)
def grant_permission(role_id: str):
    permission_name = g.validated_data['permissionName']
    try:
        grant = get_services().permission_store.grant_permission(role_id, permission_name)
    except NotFoundError as e:
        # Unknown role in the path is a 404; unknown permission in the body is a 400
        if e.entity == 'role':
            return not_found_response(e.user_message)
        return error_response(e.user_message, 400)
    except ConflictError as e:
        return conflict_response(e.user_message)
    except Exception as e:
        logger.error(
            "Failed to grant permission",
            role_id=role_id,
            permission=permission_name,
            error=str(e),
            exc_info=True
        )
        return internal_error_response("Error assigning permission")

    logger.info(
        "Permission grant requested via admin API",
        actor_id=g.principal_id,
        role_id=role_id,
        permission=permission_name
    )
    return created_response(grant, message="Permission assigned successfully")


@permissions_bp.route('/role/<role_id>/remove/<permission_name>', methods=['DELETE'])
@require_permission(PermissionName.ROLE_MANAGE)
def revoke_permission(role_id: str, permission_name: str):
    services = get_services()
    try:
        if services.role_store.get_role_by_id(role_id) is None:
            return _role_not_found(role_id)
        services.permission_store.revoke_permission(role_id, permission_name)
    except NotFoundError as e:
        return not_found_response(e.user_message)
    except Exception as e:
        logger.error(
            "Failed to revoke permission",
            role_id=role_id,
            permission=permission_name,
            error=str(e),
            exc_info=True
        )
        return internal_error_response("Error removing permission")

    logger.info(
        "Permission revocation requested via admin API",
        actor_id=g.principal_id,
        role_id=role_id,
        permission=permission_name
    )
    return success_response(message="Permission removed successfully")


__all__ = ['permissions_bp']
