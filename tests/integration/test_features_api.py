"""
Integration tests for feature assignment through the HTTP API.
"""

from tenant_erp.models import AppUser
from tenant_erp.services.feature_defaults import builtin_entry
from tests.conftest import auth_headers, make_user


class TestMyFeatures:

    def test_member_inherits_organization_selection(self, client, org, org_student):
        response = client.get('/users/my-features', headers=auth_headers(org_student))
        assert response.status_code == 200
        data = response.get_json()['data']
        assert data['source'] == 'organization'
        assert data['assigned_features'] == {}
        assert set(data['effective_features']) == {'library_management', 'system_administration'}
        assert data['feature_summary']['total_systems'] == 2

    def test_org_scoped_variant_reports_organization(self, client, org, org_student):
        response = client.get(f'/users/org/{org.id}/my-features', headers=auth_headers(org_student))
        assert response.status_code == 200
        assert response.get_json()['data']['organization_id'] == org.id

    def test_unaffiliated_account_has_no_features(self, client, customer):
        data = client.get('/users/my-features', headers=auth_headers(customer)).get_json()['data']
        assert data['source'] == 'none'
        assert data['effective_features'] == {}


class TestAssignmentLifecycle:
    """add -> toggle -> remove, observed through the member's own view."""

    def test_add_toggle_remove(self, client, org, org_admin, org_student):
        admin = auth_headers(org_admin)
        student = auth_headers(org_student)

        response = client.post(f'/system-features/users/{org_student.id}/add', headers=admin, json={
            'system_key': 'student_management', 'selected_modules': ['attendance']
        })
        assert response.status_code == 200
        tree = response.get_json()['data']['assigned_features']
        assert [m['key'] for m in tree['student_management']['selected_modules']] == ['attendance']

        data = client.get('/users/my-features', headers=student).get_json()['data']
        assert data['source'] == 'assigned'
        assert list(data['effective_features']) == ['student_management']

        response = client.post(f'/system-features/users/{org_student.id}/add', headers=admin, json={
            'system_key': 'student_management'
        })
        assert response.status_code == 409

        response = client.put(f'/system-features/users/{org_student.id}/student_management/toggle', headers=admin)
        assert response.status_code == 200
        assert response.get_json()['data']['enabled'] is False

        response = client.delete(f'/system-features/users/{org_student.id}/student_management', headers=admin)
        assert response.status_code == 200

        data = client.get('/users/my-features', headers=student).get_json()['data']
        assert data['source'] == 'organization'

    def test_unknown_system_is_not_found(self, client, org_admin, org_student):
        response = client.post(f'/system-features/users/{org_student.id}/add', headers=auth_headers(org_admin), json={
            'system_key': 'time_travel'
        })
        assert response.status_code == 404

    def test_system_key_required(self, client, org_admin, org_student):
        response = client.post(f'/system-features/users/{org_student.id}/add',
                               headers=auth_headers(org_admin), json={})
        assert response.status_code == 400

    def test_remove_unassigned_is_not_found(self, client, org_admin, org_student):
        response = client.delete(f'/system-features/users/{org_student.id}/fee_management',
                                 headers=auth_headers(org_admin))
        assert response.status_code == 404

    def test_non_admin_refused(self, client, session, org, org_student):
        teacher = make_user(session, 'teacher@greenvalley.edu', user_type='teacher', organization_id=org.id)
        response = client.post(f'/system-features/users/{org_student.id}/add', headers=auth_headers(teacher), json={
            'system_key': 'student_management'
        })
        assert response.status_code == 403
        assert response.get_json()['message'] == 'Insufficient permissions'

    def test_other_tenant_admin_cannot_reach_member(self, client, org_student, other_admin):
        response = client.get(f'/system-features/users/{org_student.id}', headers=auth_headers(other_admin))
        assert response.status_code == 404


class TestReplaceAndBulk:

    def test_invalid_tree_itemized(self, client, org, org_admin, org_student):
        response = client.put(
            f'/users/org/{org.id}/user/{org_student.id}/features',
            headers=auth_headers(org_admin),
            json={'assigned_features': {
                'bogus_system': {},
                'library_management': {'system_name': 'Library', 'system_description': 'Books',
                                       'selected_modules': []},
            }}
        )
        assert response.status_code == 400
        body = response.get_json()
        assert body['message'] == 'Invalid feature selection'
        assert 'Invalid feature system: bogus_system' in body['errors']
        assert "At least one module must be selected for 'library_management'" in body['errors']

    def test_replace_then_clear(self, client, session, org, org_admin, org_student):
        headers = auth_headers(org_admin)
        url = f'/users/org/{org.id}/user/{org_student.id}/features'

        response = client.put(url, headers=headers, json={'assigned_features': {
            'fee_management': builtin_entry('fee_management')
        }})
        assert response.status_code == 200
        assert response.get_json()['data']['source'] == 'assigned'

        response = client.put(url, headers=headers, json={'assigned_features': {}})
        assert response.status_code == 200
        assert response.get_json()['data']['source'] == 'organization'
        assert session.get(AppUser, org_student.id).assigned_features is None

    def test_bulk_assign_by_user_type(self, client, session, org, org_admin, org_student, other_org):
        make_user(session, 'second@greenvalley.edu', user_type='student', organization_id=org.id)
        outsider = make_user(session, 'student@hilltop.edu', user_type='student', organization_id=other_org.id)

        response = client.post(f'/users/org/{org.id}/bulk-assign-features', headers=auth_headers(org_admin), json={
            'user_type': 'student',
            'features': {'exam_management': builtin_entry('exam_management')},
        })
        assert response.status_code == 200
        assert response.get_json()['data']['updated_count'] == 2
        assert session.get(AppUser, outsider.id).assigned_features is None
        assert session.get(AppUser, org_admin.id).assigned_features is None

    def test_bulk_assign_rejects_customer_type(self, client, org, org_admin):
        response = client.post(f'/users/org/{org.id}/bulk-assign-features', headers=auth_headers(org_admin), json={
            'user_type': 'customer',
            'features': {'exam_management': builtin_entry('exam_management')},
        })
        assert response.status_code == 400


class TestOrganizationSelection:

    def test_member_may_read(self, client, org, org_student):
        response = client.get(f'/system-features/organizations/{org.id}', headers=auth_headers(org_student))
        assert response.status_code == 200
        assert 'library_management' in response.get_json()['data']['selected_features']

    def test_update_keeps_system_administration(self, client, org, org_admin):
        response = client.put(f'/system-features/organizations/{org.id}', headers=auth_headers(org_admin), json={
            'selected_features': {'academic_management': builtin_entry('academic_management')}
        })
        assert response.status_code == 200
        tree = response.get_json()['data']['selected_features']
        assert set(tree) == {'academic_management', 'system_administration'}

    def test_update_refused_for_member(self, client, org, org_student):
        response = client.put(f'/system-features/organizations/{org.id}', headers=auth_headers(org_student), json={
            'selected_features': {}
        })
        assert response.status_code == 403

    def test_other_tenant_refused(self, client, org, other_admin):
        response = client.get(f'/system-features/organizations/{org.id}', headers=auth_headers(other_admin))
        assert response.status_code == 403


class TestFeatureGate:
    """Academic session mutations need academic_management."""

    PAYLOAD = {'session_name': '2025-2026', 'start_date': '2025-06-01', 'end_date': '2026-03-31'}

    def test_admin_without_feature_refused(self, client, org_admin):
        response = client.post('/sessions', headers=auth_headers(org_admin), json=self.PAYLOAD)
        assert response.status_code == 403
        assert response.get_json()['message'] == "Feature 'academic_management' is not enabled for your account"

    def test_admin_with_feature_allowed(self, client, org, org_admin):
        headers = auth_headers(org_admin)
        client.put(f'/system-features/organizations/{org.id}', headers=headers, json={
            'selected_features': {'academic_management': builtin_entry('academic_management')}
        })
        response = client.post('/sessions', headers=headers, json=self.PAYLOAD)
        assert response.status_code == 201

    def test_disabled_feature_refused(self, client, org_admin):
        headers = auth_headers(org_admin)
        client.post(f'/system-features/users/{org_admin.id}/add', headers=headers,
                    json={'system_key': 'academic_management'})
        client.put(f'/system-features/users/{org_admin.id}/academic_management/toggle', headers=headers)

        response = client.post('/sessions', headers=headers, json=self.PAYLOAD)
        assert response.status_code == 403

    def test_superadmin_bypasses_gate(self, client, institution_superadmin):
        response = client.post('/sessions', headers=auth_headers(institution_superadmin), json=self.PAYLOAD)
        assert response.status_code == 201

    def test_reading_sessions_is_not_gated(self, client, org_student):
        response = client.get('/sessions', headers=auth_headers(org_student))
        assert response.status_code == 200
