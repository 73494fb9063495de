"""
MongoDB authorization repository.

PyMongo implementation of ``AuthorizationRepository``. Uniqueness of the two
relation tables is delegated to unique compound indexes, so concurrent
duplicate inserts are resolved by the server and surface as
``DuplicateRecordException``. Removal uses ``delete_many`` and never fails on
absence.

Every call runs inside ``pymongo.timeout()`` with the configured per-call
bound. Driver errors are classified into the ``edu_rbac.data.exceptions``
hierarchy; reads are retried on connection errors only.

Collections:
- ``roles``: ``{_id, name, description, created_at, updated_at}``, unique ``name``
- ``permissions``: same shape, unique ``name``
- ``user_roles``: ``{_id, principal_id, role_id, assigned_at}``, unique ``(principal_id, role_id)``
- ``role_permissions``: ``{_id, role_id, permission_id, granted_at}``, unique ``(role_id, permission_id)``
"""

from contextlib import contextmanager
from typing import Any, Callable, Collection, List, Optional, TypeVar

import pymongo
import structlog
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.collection import Collection as MongoCollection
from pymongo.database import Database
from pymongo.errors import PyMongoError

from edu_rbac.auth.catalog import PermissionName, RoleName
from edu_rbac.data.base import AuthorizationRepository
from edu_rbac.data.exceptions import (
    DatabaseOperationType,
    classify_pymongo_error,
    with_database_retry,
)
from edu_rbac.data.models import Permission, Role, RoleAssignment, RolePermissionGrant
from edu_rbac.monitoring.metrics import monitor_store_operation

logger = structlog.get_logger(__name__)

T = TypeVar('T')

ROLES_COLLECTION = 'roles'
PERMISSIONS_COLLECTION = 'permissions'
USER_ROLES_COLLECTION = 'user_roles'
ROLE_PERMISSIONS_COLLECTION = 'role_permissions'


def create_mongodb_client(uri: str, operation_timeout: float) -> MongoClient:
    """Build a client whose connect/selection timeouts match the per-call bound."""
    timeout_ms = int(operation_timeout * 1000)
    return MongoClient(
        uri,
        tz_aware=True,
        serverSelectionTimeoutMS=timeout_ms,
        connectTimeoutMS=timeout_ms,
        retryWrites=True,
    )


class MongoAuthorizationRepository(AuthorizationRepository):
    """
    ``AuthorizationRepository`` backed by a PyMongo ``Database``.

    Args:
        database: Target database handle
        operation_timeout: Seconds allowed for each repository call
        retry_attempts: Total attempts for reads on connection errors
        ensure_indexes: Create the unique indexes on construction
    """

    def __init__(
        self,
        database: Database,
        operation_timeout: float = 2.0,
        retry_attempts: int = 2,
        ensure_indexes: bool = True
    ):
        self.database = database
        self.operation_timeout = operation_timeout
        self.retry_attempts = retry_attempts

        if ensure_indexes:
            self.ensure_indexes()

        logger.info(
            "MongoDB authorization repository initialized",
            database=getattr(database, 'name', None),
            operation_timeout=operation_timeout,
            retry_attempts=retry_attempts
        )

    @classmethod
    def from_uri(
        cls,
        uri: str,
        database_name: str,
        operation_timeout: float = 2.0,
        retry_attempts: int = 2
    ) -> 'MongoAuthorizationRepository':
        client = create_mongodb_client(uri, operation_timeout)
        return cls(
            client[database_name],
            operation_timeout=operation_timeout,
            retry_attempts=retry_attempts
        )

    @property
    def roles(self) -> MongoCollection:
        return self.database[ROLES_COLLECTION]

    @property
    def permissions(self) -> MongoCollection:
        return self.database[PERMISSIONS_COLLECTION]

    @property
    def user_roles(self) -> MongoCollection:
        return self.database[USER_ROLES_COLLECTION]

    @property
    def role_permissions(self) -> MongoCollection:
        return self.database[ROLE_PERMISSIONS_COLLECTION]

    def ensure_indexes(self) -> None:
        def create():
            self.roles.create_index([('name', ASCENDING)], unique=True, name='uniq_role_name')
            self.permissions.create_index(
                [('name', ASCENDING)], unique=True, name='uniq_permission_name'
            )
            self.user_roles.create_index(
                [('principal_id', ASCENDING), ('role_id', ASCENDING)],
                unique=True,
                name='uniq_principal_role'
            )
            self.user_roles.create_index([('role_id', ASCENDING)], name='idx_user_roles_role')
            self.role_permissions.create_index(
                [('role_id', ASCENDING), ('permission_id', ASCENDING)],
                unique=True,
                name='uniq_role_permission'
            )

        self._execute('ensure_indexes', None, DatabaseOperationType.INDEX, create)

    @contextmanager
    def _operation(
        self,
        operation: str,
        collection: Optional[str],
        operation_type: DatabaseOperationType
    ):
        try:
            with pymongo.timeout(self.operation_timeout):
                yield
        except PyMongoError as error:
            exception_class = classify_pymongo_error(error)
            logger.warning(
                "MongoDB operation failed",
                operation=operation,
                collection=collection,
                classified_as=exception_class.__name__,
                error=str(error)
            )
            raise exception_class(
                f"MongoDB {operation} failed: {error}",
                operation=operation,
                operation_type=operation_type,
                collection=collection,
                original_error=error
            ) from error

    def _execute(
        self,
        operation: str,
        collection: Optional[str],
        operation_type: DatabaseOperationType,
        func: Callable[[], T]
    ) -> T:
        def attempt() -> T:
            with self._operation(operation, collection, operation_type):
                return func()

        if operation_type is DatabaseOperationType.READ:
            return with_database_retry(self.retry_attempts)(attempt)()
        return attempt()

    def _read(self, operation: str, collection: str, func: Callable[[], T]) -> T:
        return self._execute(operation, collection, DatabaseOperationType.READ, func)

    def _write(self, operation: str, collection: str, func: Callable[[], T]) -> T:
        return self._execute(operation, collection, DatabaseOperationType.WRITE, func)

    # Role catalog

    @monitor_store_operation('list_roles')
    def list_roles(self) -> List[Role]:
        documents = self._read(
            'list_roles', ROLES_COLLECTION,
            lambda: list(self.roles.find().sort('name', ASCENDING))
        )
        return [Role.from_document(document) for document in documents]

    @monitor_store_operation('find_role_by_name')
    def find_role_by_name(self, name: RoleName) -> Optional[Role]:
        document = self._read(
            'find_role_by_name', ROLES_COLLECTION,
            lambda: self.roles.find_one({'name': RoleName(name).value})
        )
        return Role.from_document(document) if document else None

    @monitor_store_operation('find_role_by_id')
    def find_role_by_id(self, role_id: str) -> Optional[Role]:
        document = self._read(
            'find_role_by_id', ROLES_COLLECTION,
            lambda: self.roles.find_one({'_id': role_id})
        )
        return Role.from_document(document) if document else None

    @monitor_store_operation('find_roles_by_ids')
    def find_roles_by_ids(self, role_ids: Collection[str]) -> List[Role]:
        ids = list(role_ids)
        if not ids:
            return []
        documents = self._read(
            'find_roles_by_ids', ROLES_COLLECTION,
            lambda: list(self.roles.find({'_id': {'$in': ids}}))
        )
        return [Role.from_document(document) for document in documents]

    @monitor_store_operation('upsert_role')
    def upsert_role(self, role: Role) -> Role:
        document = self._write(
            'upsert_role', ROLES_COLLECTION,
            lambda: self._upsert_by_name(self.roles, role.to_document())
        )
        return Role.from_document(document)

    # Permission catalog

    @monitor_store_operation('list_permissions')
    def list_permissions(self) -> List[Permission]:
        documents = self._read(
            'list_permissions', PERMISSIONS_COLLECTION,
            lambda: list(self.permissions.find().sort('name', ASCENDING))
        )
        return [Permission.from_document(document) for document in documents]

    @monitor_store_operation('find_permission_by_name')
    def find_permission_by_name(self, name: PermissionName) -> Optional[Permission]:
        document = self._read(
            'find_permission_by_name', PERMISSIONS_COLLECTION,
            lambda: self.permissions.find_one({'name': PermissionName(name).value})
        )
        return Permission.from_document(document) if document else None

    @monitor_store_operation('find_permissions_by_ids')
    def find_permissions_by_ids(self, permission_ids: Collection[str]) -> List[Permission]:
        ids = list(permission_ids)
        if not ids:
            return []
        documents = self._read(
            'find_permissions_by_ids', PERMISSIONS_COLLECTION,
            lambda: list(self.permissions.find({'_id': {'$in': ids}}))
        )
        return [Permission.from_document(document) for document in documents]

    @monitor_store_operation('upsert_permission')
    def upsert_permission(self, permission: Permission) -> Permission:
        document = self._write(
            'upsert_permission', PERMISSIONS_COLLECTION,
            lambda: self._upsert_by_name(self.permissions, permission.to_document())
        )
        return Permission.from_document(document)

    @staticmethod
    def _upsert_by_name(collection: MongoCollection, document: dict) -> Any:
        return collection.find_one_and_update(
            {'name': document['name']},
            {'$setOnInsert': document},
            upsert=True,
            return_document=ReturnDocument.AFTER
        )

    # Assignments

    @monitor_store_operation('insert_assignment')
    def insert_assignment(self, assignment: RoleAssignment) -> RoleAssignment:
        self._write(
            'insert_assignment', USER_ROLES_COLLECTION,
            lambda: self.user_roles.insert_one(assignment.to_document())
        )
        return assignment

    @monitor_store_operation('delete_assignments')
    def delete_assignments(self, principal_id: str, role_id: str) -> int:
        result = self._write(
            'delete_assignments', USER_ROLES_COLLECTION,
            lambda: self.user_roles.delete_many({'principal_id': principal_id, 'role_id': role_id})
        )
        return result.deleted_count

    @monitor_store_operation('find_assignments')
    def find_assignments(self, principal_id: str) -> List[RoleAssignment]:
        documents = self._read(
            'find_assignments', USER_ROLES_COLLECTION,
            lambda: list(self.user_roles.find({'principal_id': principal_id}))
        )
        return [RoleAssignment.from_document(document) for document in documents]

    @monitor_store_operation('assignment_exists')
    def assignment_exists(self, principal_id: str, role_ids: Collection[str]) -> bool:
        ids = list(role_ids)
        if not ids:
            return False
        document = self._read(
            'assignment_exists', USER_ROLES_COLLECTION,
            lambda: self.user_roles.find_one(
                {'principal_id': principal_id, 'role_id': {'$in': ids}},
                projection={'_id': 1}
            )
        )
        return document is not None

    @monitor_store_operation('find_principals_with_role')
    def find_principals_with_role(self, role_id: str) -> List[str]:
        return self._read(
            'find_principals_with_role', USER_ROLES_COLLECTION,
            lambda: list(self.user_roles.distinct('principal_id', {'role_id': role_id}))
        )

    # Grants

    @monitor_store_operation('insert_grant')
    def insert_grant(self, grant: RolePermissionGrant) -> RolePermissionGrant:
        self._write(
            'insert_grant', ROLE_PERMISSIONS_COLLECTION,
            lambda: self.role_permissions.insert_one(grant.to_document())
        )
        return grant

    @monitor_store_operation('delete_grants')
    def delete_grants(self, role_id: str, permission_id: str) -> int:
        result = self._write(
            'delete_grants', ROLE_PERMISSIONS_COLLECTION,
            lambda: self.role_permissions.delete_many(
                {'role_id': role_id, 'permission_id': permission_id}
            )
        )
        return result.deleted_count

    @monitor_store_operation('find_grants')
    def find_grants(self, role_ids: Collection[str]) -> List[RolePermissionGrant]:
        ids = list(role_ids)
        if not ids:
            return []
        documents = self._read(
            'find_grants', ROLE_PERMISSIONS_COLLECTION,
            lambda: list(self.role_permissions.find({'role_id': {'$in': ids}}))
        )
        return [RolePermissionGrant.from_document(document) for document in documents]

    @monitor_store_operation('grant_exists')
    def grant_exists(self, role_ids: Collection[str], permission_ids: Collection[str]) -> bool:
        roles, permissions = list(role_ids), list(permission_ids)
        if not roles or not permissions:
            return False
        document = self._read(
            'grant_exists', ROLE_PERMISSIONS_COLLECTION,
            lambda: self.role_permissions.find_one(
                {'role_id': {'$in': roles}, 'permission_id': {'$in': permissions}},
                projection={'_id': 1}
            )
        )
        return document is not None

    def ping(self) -> bool:
        try:
            self._execute(
                'ping', None, DatabaseOperationType.CONNECTION,
                lambda: self.database.client.admin.command('ping')
            )
            return True
        except Exception as e:
            logger.warning("MongoDB ping failed", error=str(e))
            return False


__all__ = [
    'MongoAuthorizationRepository',
    'create_mongodb_client',
    'ROLES_COLLECTION',
    'PERMISSIONS_COLLECTION',
    'USER_ROLES_COLLECTION',
    'ROLE_PERMISSIONS_COLLECTION',
]
