"""
Response envelope helpers for the administrative API.

Every helper returns a ``(body, status_code)`` tuple that Flask views can
return directly. Bodies follow two shapes:

- success: ``{"success": true, "data": ..., "count": n, "message": ...}``
- error: ``{"success": false, "error": "<safe message>"}``
"""

from typing import Any, Dict, List, Optional, Tuple

from edu_rbac.data.models import RecordModel

ResponseTuple = Tuple[Dict[str, Any], int]


def serialize(data: Any) -> Any:
    """Convert records (or lists of records) to their public camelCase form."""
    if isinstance(data, RecordModel):
        return data.to_public_dict()
    if isinstance(data, (list, tuple, set, frozenset)):
        return [serialize(item) for item in data]
    return data


def success_response(
    data: Any = None,
    message: Optional[str] = None,
    status_code: int = 200,
    include_count: bool = True
) -> ResponseTuple:
    body: Dict[str, Any] = {'success': True}
    if message:
        body['message'] = message
    if data is not None:
        body['data'] = serialize(data)
        if include_count and isinstance(body['data'], list):
            body['count'] = len(body['data'])
    return body, status_code


def created_response(data: Any = None, message: Optional[str] = None) -> ResponseTuple:
    return success_response(data, message=message, status_code=201, include_count=False)


def error_response(
    message: str,
    status_code: int = 400,
    errors: Optional[List[str]] = None
) -> ResponseTuple:
    body: Dict[str, Any] = {'success': False, 'error': message}
    if errors:
        body['errors'] = errors
    return body, status_code


def validation_error_response(
    message: str = "Validation failed",
    field_errors: Optional[Dict[str, List[str]]] = None
) -> ResponseTuple:
    body, status_code = error_response(message, 400)
    if field_errors:
        body['fieldErrors'] = field_errors
    return body, status_code


def not_found_response(message: str) -> ResponseTuple:
    return error_response(message, 404)


def conflict_response(message: str) -> ResponseTuple:
    return error_response(message, 409)


def internal_error_response(message: str = "Internal server error") -> ResponseTuple:
    return error_response(message, 500)


__all__ = [
    'ResponseTuple',
    'serialize',
    'success_response',
    'created_response',
    'error_response',
    'validation_error_response',
    'not_found_response',
    'conflict_response',
    'internal_error_response',
]
