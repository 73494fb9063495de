"""Unit tests for the Permission Store and effective permissions."""

import pytest

from edu_rbac.auth.cache import InMemoryPermissionCache
from edu_rbac.auth.catalog import PermissionName
from edu_rbac.auth.exceptions import ConfigurationError, ConflictError, NotFoundError
from edu_rbac.auth.permission_store import PermissionStore
from edu_rbac.auth.role_store import RoleStore

pytestmark = pytest.mark.unit


class TestPermissionCatalogQueries:

    def test_list_permissions_is_ordered_by_name(self, permission_store):
        names = [permission.name.value for permission in permission_store.list_permissions()]

        assert names == sorted(names)
        assert len(names) == 20

    def test_get_permission_by_name(self, permission_store):
        permission = permission_store.get_permission_by_name('ATTENDANCE_REPORT')

        assert permission.name is PermissionName.ATTENDANCE_REPORT
        assert permission.description == 'Generate attendance reports'

    def test_get_permission_by_unknown_name_is_none(self, permission_store):
        assert permission_store.get_permission_by_name('COURSE_ARCHIVE') is None


class TestGrantPermission:
    """Non-idempotent grants."""

    def test_grant_then_role_has_permission(self, permission_store, role_id):
        student = role_id('student')

        grant = permission_store.grant_permission(student, 'COURSE_READ')

        assert grant.permission.name is PermissionName.COURSE_READ
        assert permission_store.role_has_permission(student, 'COURSE_READ')
        assert not permission_store.role_has_permission(student, 'COURSE_CREATE')

    def test_duplicate_grant_conflicts(self, permission_store, role_id):
        teacher = role_id('teacher')
        permission_store.grant_permission(teacher, 'GRADE_MANAGE')

        with pytest.raises(ConflictError) as exc_info:
            permission_store.grant_permission(teacher, 'GRADE_MANAGE')

        assert exc_info.value.user_message == f"Permission GRADE_MANAGE already assigned to role {teacher}"

    def test_unknown_permission_is_not_found(self, permission_store, role_id):
        with pytest.raises(NotFoundError) as exc_info:
            permission_store.grant_permission(role_id('teacher'), 'COURSE_ARCHIVE')

        assert exc_info.value.entity == 'permission'
        assert exc_info.value.user_message == "Permission COURSE_ARCHIVE not found"

    def test_unknown_role_is_not_found(self, permission_store):
        with pytest.raises(NotFoundError) as exc_info:
            permission_store.grant_permission('no-such-role', 'COURSE_READ')

        assert exc_info.value.entity == 'role'

    def test_list_permissions_for_role(self, permission_store, role_id):
        teacher = role_id('teacher')
        permission_store.grant_permission(teacher, 'STUDENT_READ')
        permission_store.grant_permission(teacher, 'COURSE_CREATE')

        names = [permission.name.value for permission in permission_store.list_permissions_for(teacher)]

        assert names == ['COURSE_CREATE', 'STUDENT_READ']


class TestRevokePermission:
    """Idempotent revocation."""

    def test_revoke_granted_permission(self, permission_store, role_id):
        student = role_id('student')
        permission_store.grant_permission(student, 'COURSE_READ')

        permission_store.revoke_permission(student, 'COURSE_READ')

        assert not permission_store.role_has_permission(student, 'COURSE_READ')

    def test_revoke_absent_grant_succeeds_repeatedly(self, permission_store, role_id):
        student = role_id('student')

        permission_store.revoke_permission(student, 'GRADE_APPROVE')
        permission_store.revoke_permission(student, 'GRADE_APPROVE')

        assert permission_store.list_permissions_for(student) == []

    def test_revoke_unknown_permission_is_not_found(self, permission_store, role_id):
        with pytest.raises(NotFoundError):
            permission_store.revoke_permission(role_id('student'), 'COURSE_ARCHIVE')


class TestEffectivePermissions:
    """Union of grants over every held role."""

    def test_principal_without_roles_has_empty_set(self, permission_store):
        assert permission_store.effective_permissions('u2') == frozenset()
        assert not permission_store.has_any_permission('u2', list(PermissionName))

    def test_union_is_deduplicated(self, role_store, permission_store, role_id):
        teacher, student = role_id('teacher'), role_id('student')
        permission_store.grant_permission(teacher, 'COURSE_READ')
        permission_store.grant_permission(teacher, 'COURSE_UPDATE')
        permission_store.grant_permission(student, 'COURSE_READ')
        role_store.assign_role('u1', 'teacher')
        role_store.assign_role('u1', 'student')

        effective = permission_store.effective_permissions('u1')

        assert sorted(permission.name.value for permission in effective) == ['COURSE_READ', 'COURSE_UPDATE']

    def test_grant_reaches_every_holder(self, role_store, permission_store, role_id):
        for principal_id in ('a', 'b', 'c'):
            role_store.assign_role(principal_id, 'teacher')

        permission_store.grant_permission(role_id('teacher'), 'ATTENDANCE_MANAGE')

        for principal_id in ('a', 'b', 'c'):
            assert permission_store.has_permission(principal_id, 'ATTENDANCE_MANAGE')

    def test_revoke_keeps_permission_granted_through_another_role(self, role_store, permission_store, role_id):
        teacher, admin = role_id('teacher'), role_id('admin')
        permission_store.grant_permission(teacher, 'GRADE_READ')
        permission_store.grant_permission(admin, 'GRADE_READ')
        role_store.assign_role('only-teacher', 'teacher')
        role_store.assign_role('teacher-admin', 'teacher')
        role_store.assign_role('teacher-admin', 'admin')

        permission_store.revoke_permission(teacher, 'GRADE_READ')

        assert not permission_store.has_permission('only-teacher', 'GRADE_READ')
        assert permission_store.has_permission('teacher-admin', 'GRADE_READ')

    def test_has_any_permission_is_disjunction(self, role_store, permission_store, role_id):
        permission_store.grant_permission(role_id('student'), 'COURSE_READ')
        role_store.assign_role('u1', 'student')

        assert permission_store.has_any_permission('u1', ['COURSE_DELETE', 'COURSE_READ'])
        assert not permission_store.has_any_permission('u1', ['COURSE_DELETE', 'GRADE_READ'])
        assert not permission_store.has_any_permission('u1', [])

    def test_unknown_permission_name_is_configuration_error(self, permission_store):
        with pytest.raises(ConfigurationError):
            permission_store.has_permission('u1', 'COURSE_ARCHIVE')


class TestEffectivePermissionCache:
    """Cached names are invalidated by every mutation that can change them."""

    @pytest.fixture
    def cached_stores(self, repository):
        cache = InMemoryPermissionCache(ttl_seconds=300)
        return RoleStore(repository, cache), PermissionStore(repository, cache), cache

    def test_second_check_is_served_from_cache(self, cached_stores, role_id, mocker):
        role_store, permission_store, cache = cached_stores
        permission_store.grant_permission(role_id('student'), 'COURSE_READ')
        role_store.assign_role('u1', 'student')
        find_grants = mocker.spy(permission_store.repository, 'find_grants')

        assert permission_store.has_permission('u1', 'COURSE_READ')
        assert permission_store.has_permission('u1', 'COURSE_READ')

        assert find_grants.call_count == 1
        assert cache.get('u1') == frozenset({PermissionName.COURSE_READ})

    def test_grant_invalidates_holders(self, cached_stores, role_id):
        role_store, permission_store, _ = cached_stores
        role_store.assign_role('u1', 'student')
        assert not permission_store.has_permission('u1', 'GRADE_READ')

        permission_store.grant_permission(role_id('student'), 'GRADE_READ')

        assert permission_store.has_permission('u1', 'GRADE_READ')

    def test_revoke_invalidates_holders(self, cached_stores, role_id):
        role_store, permission_store, _ = cached_stores
        permission_store.grant_permission(role_id('student'), 'GRADE_READ')
        role_store.assign_role('u1', 'student')
        assert permission_store.has_permission('u1', 'GRADE_READ')

        permission_store.revoke_permission(role_id('student'), 'GRADE_READ')

        assert not permission_store.has_permission('u1', 'GRADE_READ')

    def test_role_removal_invalidates_principal(self, cached_stores, role_id):
        role_store, permission_store, _ = cached_stores
        permission_store.grant_permission(role_id('teacher'), 'STUDENT_MANAGE')
        role_store.assign_role('u3', 'teacher')
        assert permission_store.has_permission('u3', 'STUDENT_MANAGE')

        role_store.remove_role('u3', 'teacher')

        assert not permission_store.has_permission('u3', 'STUDENT_MANAGE')

    def test_invalidation_during_computation_discards_result(self, cached_stores, role_id, mocker):
        role_store, permission_store, cache = cached_stores
        permission_store.grant_permission(role_id('student'), 'COURSE_READ')
        role_store.assign_role('u1', 'student')
        original = permission_store.effective_permissions

        def racing_read(principal_id):
            result = original(principal_id)
            cache.invalidate(principal_id)
            return result

        mocker.patch.object(permission_store, 'effective_permissions', side_effect=racing_read)

        permission_store.has_permission('u1', 'COURSE_READ')

        assert cache.get('u1') is None
