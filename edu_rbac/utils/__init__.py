"""Shared HTTP helpers."""

from .response import (
    conflict_response,
    created_response,
    error_response,
    internal_error_response,
    not_found_response,
    success_response,
    validation_error_response,
)

__all__ = [
    'conflict_response',
    'created_response',
    'error_response',
    'internal_error_response',
    'not_found_response',
    'success_response',
    'validation_error_response',
]
