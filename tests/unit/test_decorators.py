"""
Unit tests for the Enforcement Layer.

A bare Flask application with an injected engine; the principal comes from an
``X-Principal`` header so these tests exercise the guards without tokens.
"""

import pytest
from flask import Flask, g, request

from edu_rbac.auth.authorization import Requirement
from edu_rbac.auth.decorators import (
    Guard,
    denial_message,
    init_auth_error_handlers,
    require_any_permission,
    require_any_role,
    require_permission,
    require_role,
)
from edu_rbac.auth.exceptions import ConfigurationError
from edu_rbac.data.exceptions import TimeoutException

pytestmark = pytest.mark.unit


@pytest.fixture
def guarded_app(services):
    app = Flask(__name__)
    app.config['TESTING'] = True
    engine = services.engine
    init_auth_error_handlers(app)

    @app.before_request
    def resolve_principal():
        g.principal_id = request.headers.get('X-Principal')

    @app.route('/courses')
    @require_permission('COURSE_READ', engine=engine)
    def read_courses():
        return {'success': True}

    @app.route('/courses/edit')
    @require_any_permission(['COURSE_DELETE', 'COURSE_UPDATE'], engine=engine)
    def edit_courses():
        return {'success': True}

    @app.route('/admin')
    @require_role('admin', engine=engine)
    def admin_area():
        return {'success': True}

    @app.route('/staff')
    @require_any_role('admin', 'teacher', engine=engine)
    def staff_area():
        return {'success': True}

    return app


@pytest.fixture
def guarded_client(guarded_app):
    return guarded_app.test_client()


def as_principal(principal_id):
    return {'X-Principal': principal_id}


class TestDenialMessages:

    @pytest.mark.parametrize('requirement,message', [
        (Requirement.role('admin'), "Access denied. Required role: admin"),
        (Requirement.any_role('admin', 'teacher'), "Access denied. Required one of these roles: admin, teacher"),
        (Requirement.permission('GRADE_MANAGE'), "Access denied. Required permission: GRADE_MANAGE"),
        (
            Requirement.any_permission('COURSE_DELETE', 'COURSE_UPDATE'),
            "Access denied. Required one of these permissions: COURSE_DELETE, COURSE_UPDATE",
        ),
    ])
    def test_messages(self, requirement, message):
        assert denial_message(requirement) == message


class TestGuardDeclaration:

    def test_misspelled_requirement_fails_at_decoration(self):
        with pytest.raises(ConfigurationError):
            require_permission('COURSE_REED')

    def test_wrapped_view_exposes_requirement(self, guarded_app):
        view = guarded_app.view_functions['staff_area']

        assert view.requirement == Requirement.any_role('admin', 'teacher')


class TestGuardOutcomes:

    def test_no_principal_is_401(self, guarded_client):
        response = guarded_client.get('/courses')

        assert response.status_code == 401
        assert response.get_json() == {'success': False, 'error': 'Authentication required'}

    def test_no_principal_queries_nothing(self, guarded_client, services, mocker):
        find_assignments = mocker.spy(services.repository, 'find_assignments')

        guarded_client.get('/courses')

        find_assignments.assert_not_called()

    def test_unprivileged_principal_is_403(self, guarded_client):
        response = guarded_client.get('/courses', headers=as_principal('u2'))

        assert response.status_code == 403
        assert response.get_json() == {
            'success': False,
            'error': 'Access denied. Required permission: COURSE_READ',
        }

    def test_permission_holder_proceeds(self, guarded_client, role_store, permission_store, role_id):
        permission_store.grant_permission(role_id('student'), 'COURSE_READ')
        role_store.assign_role('u1', 'student')

        response = guarded_client.get('/courses', headers=as_principal('u1'))

        assert response.status_code == 200

    def test_any_permission(self, guarded_client, role_store, permission_store, role_id):
        permission_store.grant_permission(role_id('teacher'), 'COURSE_UPDATE')
        role_store.assign_role('u3', 'teacher')

        assert guarded_client.get('/courses/edit', headers=as_principal('u3')).status_code == 200
        denied = guarded_client.get('/courses/edit', headers=as_principal('u2'))
        assert denied.get_json()['error'] == (
            "Access denied. Required one of these permissions: COURSE_DELETE, COURSE_UPDATE"
        )

    def test_role_guards(self, guarded_client, role_store):
        role_store.assign_role('t1', 'teacher')

        assert guarded_client.get('/staff', headers=as_principal('t1')).status_code == 200
        response = guarded_client.get('/admin', headers=as_principal('t1'))
        assert response.status_code == 403
        assert response.get_json()['error'] == "Access denied. Required role: admin"


class TestLookupFailureRendering:
    """Store faults render 500 with a generic message, never 403."""

    def test_permission_lookup_failure(self, guarded_client, services, mocker):
        mocker.patch.object(
            services.repository, 'find_assignments',
            side_effect=TimeoutException("user_roles query exceeded 2.0s on db-7")
        )

        response = guarded_client.get('/courses', headers=as_principal('u1'))

        assert response.status_code == 500
        assert response.get_json() == {'success': False, 'error': 'Error checking user permissions'}
        assert 'db-7' not in response.get_data(as_text=True)

    def test_role_lookup_failure(self, guarded_client, services, mocker):
        mocker.patch.object(
            services.repository, 'assignment_exists',
            side_effect=TimeoutException("timed out")
        )

        response = guarded_client.get('/admin', headers=as_principal('u1'))

        assert response.status_code == 500
        assert response.get_json() == {'success': False, 'error': 'Error checking user roles'}


class TestGuardEvaluate:

    def test_evaluate_without_flask_request(self, engine, role_store):
        role_store.assign_role('u1', 'admin')
        guard = Guard(Requirement.role('admin'), engine=engine)

        allowed = guard.evaluate('u1')
        denied = guard.evaluate('u2')
        anonymous = guard.evaluate(None)

        assert allowed.proceed and allowed.body is None
        assert (denied.status_code, denied.body['error']) == (403, "Access denied. Required role: admin")
        assert anonymous.status_code == 401
