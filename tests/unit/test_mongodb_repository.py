"""
Unit tests for the MongoDB repository and driver error classification.

The pymongo collection layer is replaced with mocks; these tests pin the
queries issued, the index definitions and how driver failures surface.
"""

from datetime import datetime
from unittest.mock import MagicMock

import pytest
from pymongo import ReturnDocument
from pymongo.errors import (
    AutoReconnect,
    DuplicateKeyError,
    NetworkTimeout,
    OperationFailure,
    ServerSelectionTimeoutError,
)

from edu_rbac.auth.catalog import RoleName
from edu_rbac.data.exceptions import (
    ConnectionException,
    DatabaseException,
    DatabaseOperationType,
    DuplicateRecordException,
    QueryException,
    TimeoutException,
    classify_pymongo_error,
)
from edu_rbac.data.models import Role, RoleAssignment
from edu_rbac.data.mongodb import (
    ROLE_PERMISSIONS_COLLECTION,
    ROLES_COLLECTION,
    USER_ROLES_COLLECTION,
    MongoAuthorizationRepository,
)

pytestmark = pytest.mark.unit


@pytest.fixture
def collections():
    return {
        'roles': MagicMock(name='roles'),
        'permissions': MagicMock(name='permissions'),
        'user_roles': MagicMock(name='user_roles'),
        'role_permissions': MagicMock(name='role_permissions'),
    }


@pytest.fixture
def database(collections):
    database = MagicMock(name='database')
    database.name = 'edu_rbac_test'
    database.__getitem__.side_effect = lambda name: collections[name]
    return database


@pytest.fixture
def repository(database):
    return MongoAuthorizationRepository(database, operation_timeout=1.0, retry_attempts=2)


class TestIndexes:

    def test_unique_compound_indexes_are_created(self, repository, collections):
        user_roles_calls = collections[USER_ROLES_COLLECTION].create_index.call_args_list
        unique_principal_role = [call for call in user_roles_calls if call.kwargs.get('name') == 'uniq_principal_role']

        assert len(unique_principal_role) == 1
        assert unique_principal_role[0].args[0] == [('principal_id', 1), ('role_id', 1)]
        assert unique_principal_role[0].kwargs['unique'] is True

        grant_index = collections[ROLE_PERMISSIONS_COLLECTION].create_index.call_args
        assert grant_index.args[0] == [('role_id', 1), ('permission_id', 1)]
        assert grant_index.kwargs['unique'] is True

    def test_indexes_can_be_skipped(self, database, collections):
        MongoAuthorizationRepository(database, ensure_indexes=False)

        collections[ROLES_COLLECTION].create_index.assert_not_called()


class TestQueries:

    def test_find_role_by_name(self, repository, collections):
        collections[ROLES_COLLECTION].find_one.return_value = {
            '_id': 'r1',
            'name': 'teacher',
            'description': 'Teacher with limited administrative access',
            'created_at': datetime(2024, 1, 1),
            'updated_at': datetime(2024, 1, 1),
        }

        role = repository.find_role_by_name(RoleName.TEACHER)

        collections[ROLES_COLLECTION].find_one.assert_called_once_with({'name': 'teacher'})
        assert role.id == 'r1'
        assert role.name is RoleName.TEACHER
        assert role.created_at.tzinfo is not None

    def test_upsert_role_only_sets_on_insert(self, repository, collections):
        role = Role(name=RoleName.ADMIN, description='Administrator with full access')
        collections[ROLES_COLLECTION].find_one_and_update.return_value = role.to_document()

        stored = repository.upsert_role(role)

        query, update = collections[ROLES_COLLECTION].find_one_and_update.call_args.args
        assert query == {'name': 'admin'}
        assert update['$setOnInsert']['_id'] == role.id
        assert collections[ROLES_COLLECTION].find_one_and_update.call_args.kwargs == {
            'upsert': True,
            'return_document': ReturnDocument.AFTER,
        }
        assert stored == role

    def test_assignment_exists_uses_in_query(self, repository, collections):
        collections[USER_ROLES_COLLECTION].find_one.return_value = {'_id': 'a1'}

        assert repository.assignment_exists('u1', ['r1', 'r2'])

        query = collections[USER_ROLES_COLLECTION].find_one.call_args.args[0]
        assert query == {'principal_id': 'u1', 'role_id': {'$in': ['r1', 'r2']}}

    def test_assignment_exists_with_no_roles_skips_query(self, repository, collections):
        assert repository.assignment_exists('u1', []) is False
        collections[USER_ROLES_COLLECTION].find_one.assert_not_called()

    def test_delete_assignments_returns_deleted_count(self, repository, collections):
        collections[USER_ROLES_COLLECTION].delete_many.return_value.deleted_count = 0

        assert repository.delete_assignments('u1', 'r1') == 0
        collections[USER_ROLES_COLLECTION].delete_many.assert_called_once_with(
            {'principal_id': 'u1', 'role_id': 'r1'}
        )

    def test_find_principals_with_role_uses_distinct(self, repository, collections):
        collections[USER_ROLES_COLLECTION].distinct.return_value = ['u1', 'u2']

        assert repository.find_principals_with_role('r1') == ['u1', 'u2']
        collections[USER_ROLES_COLLECTION].distinct.assert_called_once_with('principal_id', {'role_id': 'r1'})

    def test_insert_assignment_document_has_no_joined_role(self, repository, collections):
        assignment = RoleAssignment(
            principal_id='u1',
            role_id='r1',
            role=Role(name=RoleName.STUDENT)
        )

        repository.insert_assignment(assignment)

        document = collections[USER_ROLES_COLLECTION].insert_one.call_args.args[0]
        assert set(document) == {'_id', 'principal_id', 'role_id', 'assigned_at'}


class TestFailures:

    def test_duplicate_key_becomes_duplicate_record(self, repository, collections):
        collections[USER_ROLES_COLLECTION].insert_one.side_effect = DuplicateKeyError("E11000", code=11000)

        with pytest.raises(DuplicateRecordException) as exc_info:
            repository.insert_assignment(RoleAssignment(principal_id='u1', role_id='r1'))

        assert exc_info.value.collection == USER_ROLES_COLLECTION
        assert isinstance(exc_info.value.original_error, DuplicateKeyError)

    def test_reads_retry_connection_errors(self, repository, collections):
        collections[USER_ROLES_COLLECTION].find.side_effect = [
            AutoReconnect("primary stepped down"),
            [{'_id': 'a1', 'principal_id': 'u1', 'role_id': 'r1', 'assigned_at': datetime(2024, 1, 1)}],
        ]

        assignments = repository.find_assignments('u1')

        assert [assignment.id for assignment in assignments] == ['a1']
        assert collections[USER_ROLES_COLLECTION].find.call_count == 2

    def test_reads_give_up_after_configured_attempts(self, repository, collections):
        collections[USER_ROLES_COLLECTION].find.side_effect = AutoReconnect("down")

        with pytest.raises(ConnectionException):
            repository.find_assignments('u1')

        assert collections[USER_ROLES_COLLECTION].find.call_count == 2

    def test_timeouts_are_not_retried(self, repository, collections):
        collections[USER_ROLES_COLLECTION].find.side_effect = NetworkTimeout("timed out")

        with pytest.raises(TimeoutException):
            repository.find_assignments('u1')

        assert collections[USER_ROLES_COLLECTION].find.call_count == 1

    def test_failures_carry_operation_type(self, repository, collections):
        collections[USER_ROLES_COLLECTION].find.side_effect = NetworkTimeout("timed out")
        collections[USER_ROLES_COLLECTION].delete_many.side_effect = AutoReconnect("down")

        with pytest.raises(TimeoutException) as read_error:
            repository.find_assignments('u1')
        with pytest.raises(ConnectionException) as write_error:
            repository.delete_assignments('u1', 'r1')

        assert read_error.value.operation_type is DatabaseOperationType.READ
        assert read_error.value.retry_recommended is False
        assert write_error.value.operation_type is DatabaseOperationType.WRITE
        assert write_error.value.to_log_fields()['db_retry_recommended'] is True

    def test_writes_are_not_retried(self, repository, collections):
        collections[USER_ROLES_COLLECTION].insert_one.side_effect = AutoReconnect("down")

        with pytest.raises(ConnectionException):
            repository.insert_assignment(RoleAssignment(principal_id='u1', role_id='r1'))

        assert collections[USER_ROLES_COLLECTION].insert_one.call_count == 1

    def test_ping_reports_unreachable_server(self, repository, database):
        database.client.admin.command.side_effect = ServerSelectionTimeoutError("no servers")

        assert repository.ping() is False

    def test_ping_reports_reachable_server(self, repository, database):
        database.client.admin.command.return_value = {'ok': 1}

        assert repository.ping() is True
        database.client.admin.command.assert_called_once_with('ping')


class TestClassifyPymongoError:

    @pytest.mark.parametrize('error,expected', [
        (DuplicateKeyError("E11000", code=11000), DuplicateRecordException),
        (NetworkTimeout("timed out"), TimeoutException),
        (ServerSelectionTimeoutError("no servers"), TimeoutException),
        (AutoReconnect("reconnecting"), ConnectionException),
        (OperationFailure("bad query", code=2), QueryException),
    ])
    def test_mapping(self, error, expected):
        assert classify_pymongo_error(error) is expected

    def test_unmapped_errors_fall_back_to_base(self):
        assert classify_pymongo_error(ValueError("not a driver error")) is DatabaseException
