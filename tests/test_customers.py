from retail_backend.models import AuditLog, Customer, db


class TestCustomers:

    def test_any_signed_in_user_manages_customers(self, login_as):
        staff, _ = login_as('Staff')
        resp = staff.post('/api/customers', json={'name': 'Kasun', 'contact': '0755555555', 'remark': 'Contractor'})
        assert resp.status_code == 200
        assert resp.get_json()['success'] is True

    def test_create_requires_name_and_contact(self, admin_client):
        resp = admin_client.post('/api/customers', json={'name': 'Kasun'})
        assert resp.status_code == 400
        assert resp.get_json() == {'error': 'Name and contact are required'}

    def test_list_with_totals_and_search(self, admin_client, make_customer, make_product):
        customer_id = make_customer('Kasun', '0755555555')
        make_customer('Amali', '0766666666')
        product_id = make_product(qty=10)
        for _ in range(2):
            admin_client.post('/api/invoices', json={
                'customer': {'name': 'Kasun', 'contact': '0755555555', 'existing_id': customer_id},
                'items': [{'product_id': product_id, 'qty': 1, 'selling_price': 150}]
            })

        customers = {c['name']: c for c in admin_client.get('/api/customers').get_json()['customers']}
        assert customers['Kasun']['invoice_count'] == 2
        assert customers['Kasun']['total_purchases'] == 300
        assert customers['Amali']['invoice_count'] == 0
        assert customers['Amali']['total_purchases'] == 0

        found = admin_client.get('/api/customers?search=0766').get_json()['customers']
        assert [c['name'] for c in found] == ['Amali']

    def test_detail_includes_recent_invoices(self, admin_client, make_customer, make_product):
        customer_id = make_customer()
        product_id = make_product(qty=20)
        for _ in range(12):
            admin_client.post('/api/invoices', json={
                'customer': {'name': 'x', 'contact': 'y', 'existing_id': customer_id},
                'items': [{'product_id': product_id, 'qty': 1, 'selling_price': 1}]
            })
        body = admin_client.get(f'/api/customers/{customer_id}').get_json()
        assert body['customer']['invoice_count'] == 12
        assert len(body['invoices']) == 10
        assert body['invoices'][0]['invoice_no'].endswith('-012')

    def test_update(self, app, admin_client, make_customer):
        customer_id = make_customer()
        resp = admin_client.put(f'/api/customers/{customer_id}', json={'name': 'Nimal P.', 'contact': '0700000000'})
        assert resp.status_code == 200
        with app.app_context():
            assert db.session.get(Customer, customer_id).name == 'Nimal P.'
            assert AuditLog.query.filter_by(action='UPDATE_CUSTOMER').count() == 1
        assert admin_client.put('/api/customers/999', json={'name': 'a', 'contact': 'b'}).status_code == 404

    def test_delete(self, app, admin_client, make_customer):
        customer_id = make_customer()
        assert admin_client.delete(f'/api/customers/{customer_id}').status_code == 200
        with app.app_context():
            assert db.session.get(Customer, customer_id) is None
            assert AuditLog.query.filter_by(action='DELETE_CUSTOMER').one().old_data is not None

    def test_delete_refused_with_invoices(self, admin_client, make_customer, make_product):
        customer_id = make_customer()
        admin_client.post('/api/invoices', json={
            'customer': {'name': 'x', 'contact': 'y', 'existing_id': customer_id},
            'items': [{'product_id': make_product(qty=1), 'qty': 1, 'selling_price': 1}]
        })
        resp = admin_client.delete(f'/api/customers/{customer_id}')
        assert resp.status_code == 400
        assert resp.get_json() == {'error': 'Cannot delete customer with existing invoices'}
