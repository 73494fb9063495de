"""
Request body schemas for the administrative API, with a decorator that
validates the JSON body before the view runs.
"""

from functools import wraps

from flask import g, request
from marshmallow import EXCLUDE, Schema, ValidationError, fields, validate

from edu_rbac.utils.response import validation_error_response


class RoleAssignmentSchema(Schema):
    """Body of ``POST /api/roles/user/<user_id>/assign``."""

    class Meta:
        unknown = EXCLUDE

    roleName = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=64),
        error_messages={'required': 'Role name is required'}
    )


class PermissionAssignmentSchema(Schema):
    """Body of ``POST /api/permissions/role/<role_id>/assign``."""

    class Meta:
        unknown = EXCLUDE

    permissionName = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=64),
        error_messages={'required': 'Permission name is required'}
    )


def validate_body(schema_class):
    """Load the JSON body with ``schema_class`` into ``g.validated_data``; 400 on failure."""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            payload = request.get_json(silent=True)
            if not isinstance(payload, dict):
                return validation_error_response("Request body must be a JSON object")
            try:
                g.validated_data = schema_class().load(payload)
            except ValidationError as e:
                first_error = next(iter(e.messages.values()))
                message = first_error[0] if isinstance(first_error, list) else str(first_error)
                return validation_error_response(message, field_errors=e.messages)
            return func(*args, **kwargs)
        return wrapper
    return decorator


__all__ = ['RoleAssignmentSchema', 'PermissionAssignmentSchema', 'validate_body']
