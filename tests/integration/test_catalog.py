"""
Integration tests for the storefront catalog: categories, products and services.
"""

from tenant_erp.models import Category, Product, Service
from tests.conftest import auth_headers, persist, png_upload


class TestCategories:

    def test_public_listing(self, client, category):
        response = client.get('/categories/active')
        assert response.status_code == 200
        assert [c['category_key'] for c in response.get_json()['data']['categories']] == ['car_care']

        response = client.get('/categories/key/car_care')
        assert response.get_json()['data']['category']['name'] == 'Car Care'

    def test_admin_required(self, client, customer):
        assert client.post('/categories', json={'category_key': 'x', 'name': 'X'}).status_code == 401
        response = client.post('/categories', headers=auth_headers(customer),
                               json={'category_key': 'x', 'name': 'X'})
        assert response.status_code == 403

    def test_create_subcategory(self, client, category, global_admin):
        response = client.post('/categories', headers=auth_headers(global_admin), json={
            'category_key': 'polish', 'name': 'Polish', 'parent_id': category.id, 'display_order': 2
        })
        assert response.status_code == 201
        child = response.get_json()['data']['category']
        assert child['parent_id'] == category.id

        top = client.get('/categories/top-level').get_json()['data']['categories']
        assert [c['category_key'] for c in top] == ['car_care']
        assert [c['category_key'] for c in top[0]['subcategories']] == ['polish']

        response = client.get(f'/categories/{category.id}/subcategories')
        assert [c['id'] for c in response.get_json()['data']['categories']] == [child['id']]

    def test_create_validation(self, client, category, global_admin):
        headers = auth_headers(global_admin)
        response = client.post('/categories', headers=headers, json={'category_key': 'car_care', 'name': 'Again'})
        assert response.status_code == 409
        assert response.get_json()['message'] == 'Category key already exists'

        response = client.post('/categories', headers=headers, json={
            'category_key': 'Bad Key', 'parent_id': 999, 'status': 'hidden'
        })
        assert response.status_code == 400
        errors = response.get_json()['errors']
        assert 'Name is required' in errors
        assert 'Category key must be lowercase letters, digits and underscores' in errors
        assert 'Parent category not found' in errors
        assert 'Invalid status. Must be one of: active, inactive' in errors

    def test_cannot_be_own_parent(self, client, category, global_admin):
        response = client.put(f'/categories/{category.id}', headers=auth_headers(global_admin),
                              json={'parent_id': category.id})
        assert response.status_code == 400
        assert response.get_json()['errors'] == ['A category cannot be its own parent']

    def test_update(self, client, session, category, global_admin):
        response = client.put(f'/categories/{category.id}', headers=auth_headers(global_admin),
                              json={'name': 'Detailing', 'icon': 'sparkle'})
        assert response.status_code == 200
        assert session.get(Category, category.id).name == 'Detailing'

    def test_inactive_hidden_from_public(self, client, category, global_admin):
        response = client.put(f'/categories/{category.id}/status', headers=auth_headers(global_admin),
                              json={'status': 'inactive'})
        assert response.status_code == 200
        assert client.get(f'/categories/{category.id}').status_code == 404
        assert client.get('/categories/key/car_care').status_code == 404

        admin_list = client.get('/categories?status=inactive', headers=auth_headers(global_admin))
        assert admin_list.get_json()['data']['total'] == 1

    def test_delete_blocked_by_products(self, client, category, product, global_admin):
        response = client.delete(f'/categories/{category.id}', headers=auth_headers(global_admin))
        assert response.status_code == 409
        assert response.get_json()['message'] == 'Category has products and cannot be deleted'

    def test_delete_blocked_by_subcategories(self, client, session, category, global_admin):
        persist(session, Category(category_key='wheels', name='Wheels', parent_id=category.id))
        response = client.delete(f'/categories/{category.id}', headers=auth_headers(global_admin))
        assert response.status_code == 409
        assert response.get_json()['message'] == 'Category has subcategories and cannot be deleted'

    def test_delete(self, client, session, category, global_admin):
        response = client.delete(f'/categories/{category.id}', headers=auth_headers(global_admin))
        assert response.status_code == 200
        assert session.get(Category, category.id) is None


class TestProducts:

    def test_active_listing(self, client, product):
        response = client.get('/products/active')
        assert response.status_code == 200
        data = response.get_json()['data']
        assert data['total'] == 1
        assert data['limit'] == 20
        item = data['products'][0]
        assert item['effective_price'] == 15.0
        assert item['stock_status'] == 'in_stock'

    def test_listing_filters(self, client, product):
        assert client.get('/products/active?brand=GLOSSY').get_json()['data']['total'] == 1
        assert client.get('/products/active?search=wax').get_json()['data']['total'] == 1
        assert client.get('/products/active?min_price=16').get_json()['data']['total'] == 0
        assert client.get('/products/active?max_price=15').get_json()['data']['total'] == 1

    def test_pagination(self, client, session, product):
        for n in range(3):
            persist(session, Product(product_key=f'extra_{n}', name=f'Extra {n}', slug=f'extra-{n}',
                                     base_price=5, status='active'))
        response = client.get('/products/active?limit=2&offset=2')
        data = response.get_json()['data']
        assert data['total'] == 4
        assert len(data['products']) == 2

        assert client.get('/products/active?limit=500').get_json()['data']['limit'] == 100

    def test_home_brands_and_slug(self, client, product):
        home = client.get('/products/home').get_json()['data']['products']
        assert [p['slug'] for p in home] == ['shine-wax']
        assert client.get('/products/brands').get_json()['data']['brands'] == ['Glossy']
        response = client.get('/products/slug/shine-wax')
        assert response.get_json()['data']['product']['id'] == product.id

    def test_create_json(self, client, category, global_admin):
        response = client.post('/products', headers=auth_headers(global_admin), json={
            'product_key': 'tyre_foam', 'name': 'Tyre Foam Deluxe', 'base_price': 12.5,
            'category_ids': [category.id]
        })
        assert response.status_code == 201
        product = response.get_json()['data']['product']
        assert product['slug'] == 'tyre-foam-deluxe'
        assert product['status'] == 'active'
        assert product['category_ids'] == [category.id]
        assert product['low_stock_threshold'] == 10
        assert product['stock_status'] == 'out_of_stock'

    def test_create_multipart_with_image(self, client, category, global_admin):
        response = client.post('/products', headers=auth_headers(global_admin), data={
            'product_key': 'glass_cleaner',
            'name': 'Glass Cleaner',
            'base_price': '8',
            'featured': 'true',
            'category_ids': [str(category.id)],
            'image': png_upload('bottle.png'),
        }, content_type='multipart/form-data')
        assert response.status_code == 201
        product = response.get_json()['data']['product']
        assert product['featured'] is True
        assert product['category_ids'] == [category.id]
        assert product['image_url'].startswith('http://testserver/uploads/products/')

        path = product['image_url'][len('http://testserver'):]
        assert client.get(path).status_code == 200

    def test_create_validation(self, client, global_admin):
        response = client.post('/products', headers=auth_headers(global_admin), json={
            'product_key': 'Bad Key', 'base_price': 5, 'sale_price': 9, 'category_ids': [999]
        })
        assert response.status_code == 400
        errors = response.get_json()['errors']
        assert 'Name is required' in errors
        assert 'Product key must be lowercase letters, digits and underscores' in errors
        assert 'Sale price cannot be greater than base price' in errors
        assert 'One or more categories do not exist' in errors

    def test_create_conflicts(self, client, product, global_admin):
        headers = auth_headers(global_admin)
        response = client.post('/products', headers=headers, json={
            'product_key': 'shine_wax_two', 'name': 'Shine Wax', 'base_price': 10
        })
        assert response.status_code == 409
        assert response.get_json()['message'] == 'Slug already exists'

        response = client.post('/products', headers=headers, json={
            'product_key': 'other_wax', 'name': 'Other Wax', 'base_price': 10, 'sku': 'WAX-001'
        })
        assert response.status_code == 409
        assert response.get_json()['message'] == 'Sku already exists'

    def test_update(self, client, session, product, global_admin):
        headers = auth_headers(global_admin)
        response = client.put(f'/products/{product.id}', headers=headers, json={'sale_price': 25})
        assert response.status_code == 400
        assert response.get_json()['errors'] == ['Sale price cannot be greater than base price']

        response = client.put(f'/products/{product.id}', headers=headers, json={'name': 'Super Wax', 'sku': ''})
        assert response.status_code == 200
        data = response.get_json()['data']['product']
        assert data['name'] == 'Super Wax'
        assert data['sku'] is None

    def test_stock_operations(self, client, product, global_admin):
        headers = auth_headers(global_admin)
        url = f'/products/{product.id}/stock'

        data = client.put(url, headers=headers, json={'operation': 'add', 'quantity': 3}).get_json()['data']
        assert data['stock_quantity'] == 15

        response = client.put(url, headers=headers, json={'operation': 'subtract', 'quantity': 20})
        assert response.status_code == 400
        assert response.get_json()['message'] == 'Insufficient stock. Available: 15'

        data = client.put(url, headers=headers, json={'operation': 'subtract', 'quantity': 11}).get_json()['data']
        assert data['stock_quantity'] == 4
        assert data['stock_status'] == 'low_stock'

        data = client.put(url, headers=headers, json={'quantity': 0}).get_json()['data']
        assert data['stock_status'] == 'out_of_stock'

    def test_stock_validation(self, client, product, global_admin):
        headers = auth_headers(global_admin)
        url = f'/products/{product.id}/stock'
        assert client.put(url, headers=headers, json={'operation': 'multiply', 'quantity': 2}).status_code == 400

        response = client.put(url, headers=headers, json={'operation': 'add', 'quantity': -1})
        assert response.get_json()['errors'] == ['Quantity cannot be negative']

        response = client.put(url, headers=headers, json={'operation': 'add'})
        assert response.get_json()['errors'] == ['Quantity is required']

    def test_status_hides_product(self, client, product, global_admin):
        headers = auth_headers(global_admin)
        url = f'/products/{product.id}/status'
        assert client.put(url, headers=headers, json={'status': 'archived'}).status_code == 400
        assert client.put(url, headers=headers, json={'status': 'inactive'}).status_code == 200

        assert client.get(f'/products/{product.id}').status_code == 404
        assert client.get('/products/slug/shine-wax').status_code == 404
        assert client.get('/products', headers=headers).get_json()['data']['total'] == 1

    def test_statistics(self, client, product, global_admin, customer):
        assert client.get('/products/statistics', headers=auth_headers(customer)).status_code == 403
        stats = client.get('/products/statistics', headers=auth_headers(global_admin)).get_json()['data']
        assert stats['total'] == 1
        assert stats['by_status'] == {'active': 1, 'inactive': 0, 'draft': 0}
        assert stats['featured'] == 1
        assert stats['low_stock'] == 0
        assert stats['out_of_stock'] == 0

    def test_delete_frees_category(self, client, session, category, product, global_admin):
        headers = auth_headers(global_admin)
        assert client.delete(f'/products/{product.id}', headers=headers).status_code == 200
        assert session.get(Product, product.id) is None
        assert client.delete(f'/categories/{category.id}', headers=headers).status_code == 200


class TestServices:

    def test_public_listing(self, client, wash_service):
        services = client.get('/services/active').get_json()['data']['services']
        assert [s['service_key'] for s in services] == ['exterior_wash']
        service = client.get(f'/services/{wash_service.id}').get_json()['data']['service']
        assert service['price'] == 25.0
        assert service['features'] == ['Foam', 'Rinse']

    def test_create(self, client, global_admin):
        response = client.post('/services', headers=auth_headers(global_admin), json={
            'service_key': 'interior_clean', 'title': 'Interior Clean', 'price': 40, 'features': ['Vacuum']
        })
        assert response.status_code == 201
        service = response.get_json()['data']['service']
        assert service['duration'] == 60
        assert service['status'] == 'active'

    def test_create_validation(self, client, wash_service, global_admin):
        headers = auth_headers(global_admin)
        response = client.post('/services', headers=headers, json={'price': -1, 'duration': 0, 'features': 'x'})
        assert response.status_code == 400
        errors = response.get_json()['errors']
        assert 'Service key is required' in errors
        assert 'Title is required' in errors
        assert 'Price cannot be negative' in errors
        assert 'Duration must be greater than 0 minutes' in errors
        assert 'Features must be a list' in errors

        response = client.post('/services', headers=headers, json={
            'service_key': 'exterior_wash', 'title': 'Copy', 'price': 10
        })
        assert response.status_code == 409

    def test_non_text_title_refused(self, client, global_admin):
        response = client.post('/services', headers=auth_headers(global_admin), json={
            'service_key': 'interior_clean', 'title': 99, 'price': 40
        })
        assert response.status_code == 400
        assert response.get_json()['errors'] == ['Title must be text']

    def test_update(self, client, session, wash_service, global_admin):
        headers = auth_headers(global_admin)
        response = client.put(f'/services/{wash_service.id}', headers=headers, json={'title': ' '})
        assert response.get_json()['errors'] == ['Title cannot be empty']

        response = client.put(f'/services/{wash_service.id}', headers=headers, json={'price': 30, 'duration': 45})
        assert response.status_code == 200
        service = session.get(Service, wash_service.id)
        assert float(service.price) == 30.0
        assert service.duration == 45

    def test_status(self, client, wash_service, global_admin):
        headers = auth_headers(global_admin)
        url = f'/services/{wash_service.id}/status'
        assert client.put(url, headers=headers, json={'status': 'paused'}).status_code == 400
        assert client.put(url, headers=headers, json={'status': 'inactive'}).status_code == 200

        assert client.get('/services/active').get_json()['data']['services'] == []
        assert client.get(f'/services/{wash_service.id}').status_code == 404
        assert client.get('/services?status=inactive', headers=headers).get_json()['data']['total'] == 1

    def test_statistics(self, client, wash_service, global_admin):
        headers = auth_headers(global_admin)
        client.post('/services', headers=headers, json={'service_key': 'full_detail', 'title': 'Full', 'price': 35})
        stats = client.get('/services/statistics', headers=headers).get_json()['data']
        assert stats['total'] == 2
        assert stats['active'] == 2
        assert stats['average_price'] == 30.0

    def test_delete(self, client, session, wash_service, global_admin):
        response = client.delete(f'/services/{wash_service.id}', headers=auth_headers(global_admin))
        assert response.status_code == 200
        assert session.get(Service, wash_service.id) is None
