"""
Data models for the role/permission relation tables.

Pydantic models for the two catalogs (``Role``, ``Permission``) and the two
many-to-many relation records (``RoleAssignment``, ``RolePermissionGrant``).
Records are immutable once built; stores create new records rather than
mutating existing ones.

Two serialized forms exist:
- ``to_document()`` / ``from_document()``: MongoDB documents keyed by ``_id``
- ``to_public_dict()``: camelCase JSON for the administrative API
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from edu_rbac.auth.catalog import PermissionName, RoleName


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_record_id() -> str:
    return uuid.uuid4().hex


def _to_camel(field_name: str) -> str:
    head, *tail = field_name.split('_')
    return head + ''.join(part.title() for part in tail)


class RecordModel(BaseModel):
    """Base configuration shared by catalog and relation records."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=_to_camel,
    )

    id: str = Field(default_factory=new_record_id)

    @field_validator('*', mode='before')
    @classmethod
    def normalize_datetimes(cls, value):
        """Stored datetimes come back naive from MongoDB; treat them as UTC."""
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def to_document(self) -> Dict[str, Any]:
        document = self.model_dump(exclude={'id'}, exclude_none=True)
        document['_id'] = self.id
        for key, value in list(document.items()):
            if isinstance(value, (RoleName, PermissionName)):
                document[key] = value.value
        return document

    @classmethod
    def from_document(cls, document: Dict[str, Any]):
        data = dict(document)
        data['id'] = data.pop('_id')
        return cls.model_validate(data)

    def to_public_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode='json', by_alias=True, exclude_none=True)


class Role(RecordModel):
    name: RoleName
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Permission(RecordModel):
    name: PermissionName
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class RoleAssignment(RecordModel):
    """Principal <-> role link. Unique per (principal_id, role_id)."""

    principal_id: str
    role_id: str
    assigned_at: datetime = Field(default_factory=utcnow)

    # Joined role metadata, never persisted
    role: Optional[Role] = None

    def to_document(self) -> Dict[str, Any]:
        document = super().to_document()
        document.pop('role', None)
        return document


class RolePermissionGrant(RecordModel):
    """Role <-> permission link. Unique per (role_id, permission_id)."""

    role_id: str
    permission_id: str
    granted_at: datetime = Field(default_factory=utcnow)

    # Joined permission metadata, never persisted
    permission: Optional[Permission] = None

    def to_document(self) -> Dict[str, Any]:
        document = super().to_document()
        document.pop('permission', None)
        return document


__all__ = [
    'RecordModel',
    'Role',
    'Permission',
    'RoleAssignment',
    'RolePermissionGrant',
    'new_record_id',
    'utcnow',
]
