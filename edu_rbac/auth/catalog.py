"""
Role and Permission Catalog

Closed enumerations of every role and permission name known to the academic
records backend. Role and permission *names* are a versioned constant set
shared between guard call sites and the stores, so they live here as
``str``-valued enums rather than free-form strings.

The module also carries the descriptive metadata written at catalog bootstrap
and the default role -> permission grant table:

- ``admin``: every permission in the catalog
- ``teacher``: user read, course read/create/update, student read/manage
- ``student``: course read only
"""

from enum import Enum
from typing import Dict, FrozenSet, Iterable, Tuple, Type, TypeVar, Union

from .exceptions import ConfigurationError


_E = TypeVar('_E', bound='CatalogName')


class CatalogName(str, Enum):
    """Base for catalog enums with strict parsing of external input."""

    @classmethod
    def parse(cls: Type[_E], value: Union[str, 'CatalogName']) -> _E:
        """
        Convert a raw name into a catalog member.

        Raises:
            ConfigurationError: When the name is not part of the catalog.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ConfigurationError(
                message=f"Unknown {cls.kind()} name: {value!r}",
                names=[str(value)],
            ) from None

    @classmethod
    def parse_many(cls: Type[_E], values: Iterable[Union[str, 'CatalogName']]) -> Tuple[_E, ...]:
        """Parse several names, preserving order and dropping duplicates."""
        parsed = []
        for value in values:
            member = cls.parse(value)
            if member not in parsed:
                parsed.append(member)
        return tuple(parsed)

    @classmethod
    def kind(cls) -> str:
        return 'catalog'

    def __str__(self) -> str:
        return self.value


class RoleName(CatalogName):
    """Roles assignable to principals."""

    ADMIN = 'admin'
    TEACHER = 'teacher'
    STUDENT = 'student'

    @classmethod
    def kind(cls) -> str:
        return 'role'


class PermissionName(CatalogName):
    """Atomic capabilities grantable to roles."""

    # Users
    USER_READ = 'USER_READ'
    USER_CREATE = 'USER_CREATE'
    USER_UPDATE = 'USER_UPDATE'
    USER_DELETE = 'USER_DELETE'

    # Roles
    ROLE_READ = 'ROLE_READ'
    ROLE_MANAGE = 'ROLE_MANAGE'

    # Courses
    COURSE_READ = 'COURSE_READ'
    COURSE_CREATE = 'COURSE_CREATE'
    COURSE_UPDATE = 'COURSE_UPDATE'
    COURSE_DELETE = 'COURSE_DELETE'

    # Students
    STUDENT_READ = 'STUDENT_READ'
    STUDENT_MANAGE = 'STUDENT_MANAGE'

    # Teachers
    TEACHER_DASHBOARD_ACCESS = 'TEACHER_DASHBOARD_ACCESS'

    # Grades
    GRADE_READ = 'GRADE_READ'
    GRADE_MANAGE = 'GRADE_MANAGE'
    GRADE_APPROVE = 'GRADE_APPROVE'
    TRANSCRIPT_ACCESS = 'TRANSCRIPT_ACCESS'

    # Attendance
    ATTENDANCE_READ = 'ATTENDANCE_READ'
    ATTENDANCE_MANAGE = 'ATTENDANCE_MANAGE'
    ATTENDANCE_REPORT = 'ATTENDANCE_REPORT'

    @classmethod
    def kind(cls) -> str:
        return 'permission'


ROLE_DESCRIPTIONS: Dict[RoleName, str] = {
    RoleName.ADMIN: 'Administrator with full access',
    RoleName.TEACHER: 'Teacher with limited administrative access',
    RoleName.STUDENT: 'Student with basic access',
}

PERMISSION_DESCRIPTIONS: Dict[PermissionName, str] = {
    PermissionName.USER_READ: 'Read user information',
    PermissionName.USER_CREATE: 'Create new users',
    PermissionName.USER_UPDATE: 'Update user information',
    PermissionName.USER_DELETE: 'Delete users (soft delete)',
    PermissionName.ROLE_READ: 'Read role information',
    PermissionName.ROLE_MANAGE: 'Manage roles and permissions',
    PermissionName.COURSE_READ: 'Read course information',
    PermissionName.COURSE_CREATE: 'Create new courses',
    PermissionName.COURSE_UPDATE: 'Update course information',
    PermissionName.COURSE_DELETE: 'Delete courses',
    PermissionName.STUDENT_READ: 'Read student information',
    PermissionName.STUDENT_MANAGE: 'Manage students',
    PermissionName.TEACHER_DASHBOARD_ACCESS: 'Access to teacher dashboard',
    PermissionName.GRADE_READ: 'Read grade information',
    PermissionName.GRADE_MANAGE: 'Manage grades',
    PermissionName.GRADE_APPROVE: 'Approve final grades',
    PermissionName.TRANSCRIPT_ACCESS: 'Access academic transcripts',
    PermissionName.ATTENDANCE_READ: 'Read attendance records',
    PermissionName.ATTENDANCE_MANAGE: 'Record and edit attendance',
    PermissionName.ATTENDANCE_REPORT: 'Generate attendance reports',
}

DEFAULT_ROLE_GRANTS: Dict[RoleName, FrozenSet[PermissionName]] = {
    RoleName.ADMIN: frozenset(PermissionName),
    RoleName.TEACHER: frozenset({
        PermissionName.USER_READ,
        PermissionName.COURSE_READ,
        PermissionName.COURSE_CREATE,
        PermissionName.COURSE_UPDATE,
        PermissionName.STUDENT_READ,
        PermissionName.STUDENT_MANAGE,
    }),
    RoleName.STUDENT: frozenset({
        PermissionName.COURSE_READ,
    }),
}

# Role handed to newly created accounts by the user-management flow
DEFAULT_ROLE = RoleName.STUDENT


__all__ = [
    'CatalogName',
    'RoleName',
    'PermissionName',
    'ROLE_DESCRIPTIONS',
    'PERMISSION_DESCRIPTIONS',
    'DEFAULT_ROLE_GRANTS',
    'DEFAULT_ROLE',
]
