"""
Critical integration tests for tenant isolation.
These tests ensure that one organization's callers never reach another's data.
"""

from datetime import date, time, timedelta

import pytest

from tenant_erp.models import Booking
from tests.conftest import PASSWORD, auth_headers, make_user, persist


class TestOrganizationScope:
    """Organization tokens are bound to the organization in the URL."""

    def test_admin_reaches_own_organization(self, client, org, org_admin, org_student):
        response = client.get(f'/users/org/{org.id}', headers=auth_headers(org_admin))
        assert response.status_code == 200
        emails = {u['email'] for u in response.get_json()['data']['users']}
        assert emails == {org_admin.email, org_student.email}

    def test_admin_refused_on_other_organization(self, client, org_admin, other_org):
        headers = auth_headers(org_admin)
        for path in (f'/users/org/{other_org.id}', f'/users/org/{other_org.id}/statistics',
                     f'/employee/org/{other_org.id}/'):
            response = client.get(path, headers=headers)
            assert response.status_code == 403, path
            assert response.get_json()['message'] == 'Access denied to this organization'

    @pytest.mark.parametrize('method, path', [
        ('get', '/bookings/org/{org}'),
        ('get', '/users/org/{org}/my-features'),
        ('post', '/users/org/{org}/bulk-assign-features'),
        ('get', '/users/org/{org}/user/{user}/features'),
        ('put', '/users/org/{org}/user/{user}/features'),
        ('get', '/employee/org/{org}/statistics'),
        ('get', '/employee/org/{org}/{user}'),
        ('put', '/employee/org/{org}/{user}/status'),
        ('get', '/organizations/{org}'),
        ('put', '/organizations/{org}'),
        ('get', '/system-features/organizations/{org}'),
        ('put', '/system-features/organizations/{org}'),
    ])
    def test_foreign_admin_refused(self, client, org, org_student, other_admin, method, path):
        url = path.format(org=org.id, user=org_student.id)
        response = getattr(client, method)(url, headers=auth_headers(other_admin), json={})
        assert response.status_code == 403, url
        assert response.get_json()['message'] == 'Access denied to this organization'

    def test_other_admin_cannot_change_member_status(self, client, org, org_student, other_admin):
        response = client.put(
            f'/users/org/{org.id}/user/{org_student.id}/status',
            json={'status': 'inactive'},
            headers=auth_headers(other_admin)
        )
        assert response.status_code == 403

    def test_member_lookup_through_own_url_does_not_leak(self, client, other_org, org_student, other_admin):
        # Org 9 admin addresses org 5's student through org 9's URL
        response = client.get(
            f'/users/org/{other_org.id}/user/{org_student.id}/features',
            headers=auth_headers(other_admin)
        )
        assert response.status_code == 404

    def test_user_features_hidden_across_tenants(self, client, org_admin, other_admin):
        response = client.get(f'/users/{other_admin.id}/features', headers=auth_headers(org_admin))
        assert response.status_code == 404

    def test_affiliated_superadmin_reaches_only_its_institution(self, client, org, other_org, institution_superadmin):
        headers = auth_headers(institution_superadmin)
        assert client.get(f'/users/org/{org.id}', headers=headers).status_code == 200
        assert client.get(f'/users/org/{other_org.id}', headers=headers).status_code == 403

    def test_platform_admin_reaches_every_organization(self, client, org, other_org, platform_admin):
        headers = auth_headers(platform_admin)
        assert client.get(f'/users/org/{org.id}', headers=headers).status_code == 200
        assert client.get(f'/users/org/{other_org.id}', headers=headers).status_code == 200


class TestAccountScopes:
    """The same email may exist once per organization and once globally."""

    def test_same_email_in_two_organizations(self, client, session, org, other_org, org_student):
        response = client.post(f'/auth/org/{other_org.id}/register', json={
            'name': 'Twin', 'email': org_student.email, 'password': PASSWORD
        })
        assert response.status_code == 201

    def test_login_is_scoped_to_the_url_organization(self, client, other_org, org_student):
        response = client.post(f'/auth/org/{other_org.id}/login', json={
            'email': org_student.email, 'password': PASSWORD
        })
        assert response.status_code == 401

    def test_token_of_deleted_scope_user_is_refused(self, client, session, org):
        from tenant_erp.models import AppUser
        user = make_user(session, 'gone@greenvalley.edu', organization_id=org.id)
        headers = auth_headers(user)
        session.delete(session.get(AppUser, user.id))
        session.commit()

        response = client.get('/auth/me', headers=headers)
        assert response.status_code == 401
        assert response.get_json()['message'] == 'User account not found'


class TestSessionIsolation:
    """Academic sessions are visible to their own institution only."""

    def _create(self, client, user, **extra):
        payload = {'session_name': '2025-2026', 'start_date': '2025-06-01', 'end_date': '2026-03-31'}
        payload.update(extra)
        return client.post('/sessions', json=payload, headers=auth_headers(user))

    def test_foreign_institution_id_refused(self, client, other_org, institution_superadmin):
        response = self._create(client, institution_superadmin, institution_id=other_org.id)
        assert response.status_code == 403
        assert response.get_json()['message'] == 'Unauthorized access to this institution'

    def test_foreign_session_not_readable(self, client, org, institution_superadmin, other_admin):
        response = self._create(client, institution_superadmin)
        assert response.status_code == 201
        session_id = response.get_json()['data']['session']['id']
        assert response.get_json()['data']['session']['institution_id'] == org.id

        response = client.get(f'/sessions/{session_id}', headers=auth_headers(other_admin))
        assert response.status_code == 403

        response = client.get(f'/sessions?institution_id={org.id}', headers=auth_headers(other_admin))
        assert response.status_code == 403

        response = client.get('/sessions', headers=auth_headers(other_admin))
        assert response.status_code == 200
        assert response.get_json()['data']['total'] == 0

    def test_platform_admin_names_the_institution(self, client, other_org, platform_admin):
        response = self._create(client, platform_admin, institution_id=other_org.id)
        assert response.status_code == 201
        assert response.get_json()['data']['session']['institution_id'] == other_org.id

        response = self._create(client, platform_admin, session_name='No institution')
        assert response.status_code == 400


class TestDispatchIsolation:
    """Bookings of one organization are never dispatched across tenants."""

    @pytest.fixture
    def org_booking(self, session, org):
        customer = make_user(session, 'cleo@greenvalley.edu', user_type='customer', organization_id=org.id)
        return persist(session, Booking(
            organization_id=org.id, customer_id=customer.id, service_ids=[1],
            booking_date=date.today() + timedelta(days=2), start_time=time(9, 0), end_time=time(10, 0),
            address='1 School Lane', latitude=0, longitude=0, total_price=10
        ))

    def test_foreign_admin_cannot_assign(self, client, session, other_org, other_admin, org_booking):
        foreign_washer = make_user(session, 'wes@hilltop.edu', user_type='washer', organization_id=other_org.id)
        response = client.put(f'/bookings/{org_booking.id}/assign-washer', headers=auth_headers(other_admin),
                              json={'washer_id': foreign_washer.id})
        assert response.status_code == 404
        assert session.get(Booking, org_booking.id).washer_id is None

    def test_own_admin_cannot_assign_foreign_washer(self, client, session, other_org, org_admin, org_booking):
        foreign_washer = make_user(session, 'wes@hilltop.edu', user_type='washer', organization_id=other_org.id)
        response = client.put(f'/bookings/{org_booking.id}/assign-washer', headers=auth_headers(org_admin),
                              json={'washer_id': foreign_washer.id})
        assert response.status_code == 404
        assert response.get_json()['message'] == 'Washer not found'

    def test_foreign_washer_cannot_accept(self, client, session, other_org, org_booking):
        foreign_washer = make_user(session, 'wes@hilltop.edu', user_type='washer', organization_id=other_org.id)
        response = client.post(f'/bookings/{org_booking.id}/accept', headers=auth_headers(foreign_washer))
        assert response.status_code == 404
        assert session.get(Booking, org_booking.id).status == 'pending'

    def test_foreign_washer_not_offered(self, client, session, org, other_org, org_admin, org_booking):
        make_user(session, 'wes@hilltop.edu', user_type='washer', organization_id=other_org.id)
        day = org_booking.booking_date.isoformat()
        response = client.get(f'/bookings/available-washers?date={day}&start_time=09:00&end_time=10:00',
                              headers=auth_headers(org_admin))
        assert response.status_code == 200
        assert response.get_json()['data']['washers'] == []
