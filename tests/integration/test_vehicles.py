"""
Integration tests for customer vehicles.
"""

from tests.conftest import auth_headers, make_user


class TestVehicles:

    def test_register_normalises_plate(self, client, customer):
        response = client.post('/vehicles', headers=auth_headers(customer), json={
            'make': 'Honda', 'model': 'Civic', 'year': 2019, 'license_plate': ' ka01ab1234 '
        })
        assert response.status_code == 201
        vehicle = response.get_json()['data']['vehicle']
        assert vehicle['license_plate'] == 'KA01AB1234'
        assert vehicle['customer_id'] == customer.id

    def test_plate_unique_per_customer(self, client, customer, other_customer, vehicle):
        response = client.post('/vehicles', headers=auth_headers(customer), json={
            'make': 'Ford', 'model': 'Focus', 'license_plate': 'abc123'
        })
        assert response.status_code == 409

        response = client.post('/vehicles', headers=auth_headers(other_customer), json={
            'make': 'Ford', 'model': 'Focus', 'license_plate': 'abc123'
        })
        assert response.status_code == 201

    def test_validation(self, client, customer):
        response = client.post('/vehicles', headers=auth_headers(customer), json={'year': 'old'})
        assert response.status_code == 400
        errors = response.get_json()['errors']
        assert 'Make is required' in errors
        assert 'Model is required' in errors
        assert 'Year must be a number' in errors

    def test_non_text_make_refused(self, client, customer):
        response = client.post('/vehicles', headers=auth_headers(customer), json={'make': 4, 'model': ['Civic']})
        assert response.status_code == 400
        errors = response.get_json()['errors']
        assert 'Make must be text' in errors
        assert 'Model must be text' in errors

    def test_only_customers_register(self, client, global_admin):
        response = client.post('/vehicles', headers=auth_headers(global_admin), json={'make': 'A', 'model': 'B'})
        assert response.status_code == 403

    def test_customers_see_only_their_vehicles(self, client, customer, other_customer, vehicle):
        response = client.get('/vehicles', headers=auth_headers(other_customer))
        assert response.get_json()['data']['total'] == 0
        assert client.get(f'/vehicles/{vehicle.id}', headers=auth_headers(other_customer)).status_code == 404

    def test_admin_scope(self, client, session, org, customer, vehicle, global_admin, org_admin, platform_admin):
        response = client.get(f'/vehicles?customer_id={customer.id}', headers=auth_headers(global_admin))
        assert [v['id'] for v in response.get_json()['data']['vehicles']] == [vehicle.id]

        # The customer is not affiliated with the organization
        assert client.get('/vehicles', headers=auth_headers(org_admin)).get_json()['data']['total'] == 0
        assert client.get('/vehicles', headers=auth_headers(platform_admin)).get_json()['data']['total'] == 1

    def test_washer_refused(self, client, washer):
        assert client.get('/vehicles', headers=auth_headers(washer)).status_code == 403

    def test_update(self, client, customer, vehicle):
        headers = auth_headers(customer)
        response = client.put(f'/vehicles/{vehicle.id}', headers=headers, json={'color': 'Red', 'year': ''})
        assert response.status_code == 200
        data = response.get_json()['data']['vehicle']
        assert data['color'] == 'Red'
        assert data['year'] is None

        response = client.put(f'/vehicles/{vehicle.id}', headers=headers, json={'make': '  '})
        assert response.status_code == 400

    def test_update_plate_conflict(self, client, session, customer, vehicle):
        headers = auth_headers(customer)
        second = client.post('/vehicles', headers=headers, json={'make': 'Kia', 'model': 'Rio', 'license_plate': 'XYZ9'})
        second_id = second.get_json()['data']['vehicle']['id']
        response = client.put(f'/vehicles/{second_id}', headers=headers, json={'license_plate': 'abc123'})
        assert response.status_code == 409

    def test_delete_unused_vehicle(self, client, customer, vehicle):
        headers = auth_headers(customer)
        assert client.delete(f'/vehicles/{vehicle.id}', headers=headers).status_code == 200
        assert client.get(f'/vehicles/{vehicle.id}', headers=headers).status_code == 404

    def test_affiliated_customer_visible_to_org_admin(self, client, session, org, org_admin):
        member = make_user(session, 'family@customer.test', user_type='customer', institution_id=org.id)
        client.post('/vehicles', headers=auth_headers(member), json={'make': 'Tata', 'model': 'Nexon'})
        response = client.get('/vehicles', headers=auth_headers(org_admin))
        assert response.get_json()['data']['total'] == 1
