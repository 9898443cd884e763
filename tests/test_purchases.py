from retail_backend.models import AuditLog, Product, Purchase, PurchaseItem, StockLog, db


class TestRecordPurchase:

    def test_purchase_adds_stock_and_logs(self, app, admin_client, make_supplier, make_product):
        supplier_id = make_supplier()
        product_id = make_product(qty=0)

        resp = admin_client.post('/api/purchases', json={
            'supplier_id': supplier_id,
            'items': [{'product_id': product_id, 'qty': 5, 'cost_price': 10}]
        })
        assert resp.status_code == 200
        body = resp.get_json()
        assert body['success'] is True
        assert 'duplicate' not in body

        with app.app_context():
            product = db.session.get(Product, product_id)
            assert product.qty == 5
            assert product.cost_price == 10
            purchase = db.session.get(Purchase, body['purchase_id'])
            assert purchase.total_amount == 50
            logs = StockLog.query.filter_by(product_id=product_id).all()
            assert [(log.action, log.qty, log.purchase_id) for log in logs] == [('PURCHASE', 5, purchase.id)]
            assert AuditLog.query.filter_by(action='CREATE_PURCHASE', record_id=purchase.id).count() == 1

    def test_missing_fields(self, admin_client, make_supplier):
        resp = admin_client.post('/api/purchases', json={'supplier_id': make_supplier(), 'items': []})
        assert resp.status_code == 400
        assert resp.get_json() == {'error': 'Missing required fields'}

    def test_unknown_product_rolls_back_everything(self, app, admin_client, make_supplier, make_product):
        supplier_id = make_supplier()
        product_id = make_product(qty=1)
        resp = admin_client.post('/api/purchases', json={
            'supplier_id': supplier_id,
            'items': [
                {'product_id': product_id, 'qty': 5, 'cost_price': 10},
                {'product_id': 9999, 'qty': 1, 'cost_price': 10}
            ]
        })
        assert resp.status_code == 400
        assert resp.get_json() == {'error': 'Product not found: 9999'}
        with app.app_context():
            assert db.session.get(Product, product_id).qty == 1
            assert Purchase.query.count() == 0
            assert StockLog.query.count() == 0

    def test_non_positive_qty_rejected(self, admin_client, make_supplier, make_product):
        resp = admin_client.post('/api/purchases', json={
            'supplier_id': make_supplier(),
            'items': [{'product_id': make_product(), 'qty': 0, 'cost_price': 10}]
        })
        assert resp.status_code == 400

    def test_non_finite_cost_price_rejected(self, app, admin_client, make_supplier, make_product):
        supplier_id = make_supplier()
        product_id = make_product(qty=0)
        for raw in ('NaN', 'Infinity', '-Infinity'):
            body = (
                '{"supplier_id": %d, "items": [{"product_id": %d, "qty": 5, "cost_price": %s}]}'
                % (supplier_id, product_id, raw)
            )
            resp = admin_client.post('/api/purchases', data=body, content_type='application/json')
            assert resp.status_code == 400
            assert resp.get_json() == {'error': 'cost_price must be a number'}
        with app.app_context():
            assert db.session.get(Product, product_id).qty == 0
            assert Purchase.query.count() == 0

    def test_repeated_client_ref_is_not_applied_twice(self, app, admin_client, make_supplier, make_product):
        supplier_id = make_supplier()
        product_id = make_product(qty=0)
        payload = {
            'supplier_id': supplier_id,
            'items': [{'product_id': product_id, 'qty': 4, 'cost_price': 12.5}],
            'client_ref': 'po-2024-0001'
        }
        first = admin_client.post('/api/purchases', json=payload).get_json()
        second = admin_client.post('/api/purchases', json=payload).get_json()

        assert second['duplicate'] is True
        assert second['purchase_id'] == first['purchase_id']
        with app.app_context():
            assert db.session.get(Product, product_id).qty == 4
            assert Purchase.query.count() == 1

    def test_staff_may_record_but_not_delete(self, login_as, make_supplier, make_product):
        staff, _ = login_as('Staff')
        resp = staff.post('/api/purchases', json={
            'supplier_id': make_supplier(),
            'items': [{'product_id': make_product(), 'qty': 1, 'cost_price': 1}]
        })
        assert resp.status_code == 200
        assert staff.delete(f"/api/purchases/{resp.get_json()['purchase_id']}").status_code == 403


class TestPurchaseQueries:

    def test_list_detail_and_search(self, admin_client, make_supplier, make_product):
        supplier_id = make_supplier('Rocell')
        product_id = make_product(name='Wall Tile', code='WT-1')
        purchase_id = admin_client.post('/api/purchases', json={
            'supplier_id': supplier_id,
            'items': [
                {'product_id': product_id, 'qty': 2, 'cost_price': 3},
                {'product_id': product_id, 'qty': 1, 'cost_price': 3}
            ]
        }).get_json()['purchase_id']

        purchases = admin_client.get('/api/purchases').get_json()['purchases']
        assert purchases[0]['id'] == purchase_id
        assert purchases[0]['items_count'] == 2
        assert purchases[0]['supplier_name'] == 'Rocell'

        assert admin_client.get('/api/purchases?search=Rocell').get_json()['purchases'] != []
        assert admin_client.get('/api/purchases?search=Nobody').get_json()['purchases'] == []

        detail = admin_client.get(f'/api/purchases/{purchase_id}').get_json()
        assert detail['purchase']['total_amount'] == 9
        assert [i['product_code'] for i in detail['items']] == ['WT-1', 'WT-1']

    def test_missing_purchase(self, admin_client):
        assert admin_client.get('/api/purchases/42').status_code == 404


class TestDeletePurchase:

    def test_delete_takes_stock_back_out(self, app, admin_client, make_supplier, make_product):
        product_id = make_product(qty=2)
        purchase_id = admin_client.post('/api/purchases', json={
            'supplier_id': make_supplier(),
            'items': [{'product_id': product_id, 'qty': 5, 'cost_price': 10}]
        }).get_json()['purchase_id']

        resp = admin_client.delete(f'/api/purchases/{purchase_id}')
        assert resp.status_code == 200

        with app.app_context():
            assert db.session.get(Product, product_id).qty == 2
            assert db.session.get(Purchase, purchase_id) is None
            assert PurchaseItem.query.count() == 0
            reversal = StockLog.query.filter_by(action='PURCHASE_DELETE').one()
            assert reversal.qty == -5
            assert reversal.purchase_id == purchase_id
            assert AuditLog.query.filter_by(action='DELETE_PURCHASE', record_id=purchase_id).count() == 1

    def test_delete_missing(self, admin_client):
        assert admin_client.delete('/api/purchases/77').status_code == 404
