"""
Integration tests for health, metrics, uploaded files and bootstrap CLI commands.
"""

from tenant_erp.database import get_session
from tenant_erp.models import AppUser, SystemFeature
from tenant_erp.services.feature_defaults import BUILTIN_SYSTEMS


class TestHealth:

    def test_health_reports_database(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        body = response.get_json()
        assert body['status'] == 'healthy'
        assert body['database'] == 'connected'
        assert body['storage'] == 'local'

    def test_metrics_exposed(self, client):
        client.get('/health')
        response = client.get('/metrics')
        assert response.status_code == 200
        assert b'tenant_erp_http_requests_total' in response.data
        assert b'tenant_erp_booking_events_total' in response.data

    def test_missing_upload(self, client):
        response = client.get('/uploads/products/1/nothing.png')
        assert response.status_code == 404
        assert response.get_json() == {'success': False, 'message': 'File not found'}

    def test_unknown_route_uses_envelope(self, client):
        response = client.get('/no-such-route')
        assert response.status_code == 404
        assert response.get_json()['success'] is False


class TestCliCommands:

    def test_seed_features_is_idempotent(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=['seed-features'])
        assert f'{len(BUILTIN_SYSTEMS)} feature system(s) created' in result.output

        result = runner.invoke(args=['seed-features'])
        assert '0 feature system(s) created' in result.output
        assert get_session().query(SystemFeature).count() == len(BUILTIN_SYSTEMS)

    def test_create_superadmin(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            'create-superadmin', '--email', 'Boss@Platform.test', '--name', 'Boss', '--password', 'password123'
        ])
        assert 'Platform administrator created' in result.output

        admin = get_session().query(AppUser).filter_by(email='boss@platform.test').one()
        assert admin.user_type == 'superadmin'
        assert admin.institution_id is None
        assert admin.organization_id is None

        result = runner.invoke(args=[
            'create-superadmin', '--email', 'boss@platform.test', '--name', 'Boss', '--password', 'password123'
        ])
        assert 'A global account already exists' in result.output

    def test_create_superadmin_short_password(self, app):
        result = app.test_cli_runner().invoke(args=[
            'create-superadmin', '--email', 'boss@platform.test', '--name', 'Boss', '--password', '123'
        ])
        assert 'Password must be at least' in result.output
        assert get_session().query(AppUser).count() == 0
