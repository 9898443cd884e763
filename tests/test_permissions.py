from retail_backend.models import Customer, Invoice, Permission, Product, RolePermission, StockLog, User, UserPermission, db
from retail_backend.permissions import (
    PERMISSIONS, ROLE_DEFINITIONS, ROLE_PERMISSION_MATRIX, effective_permissions, ensure_permissions_seed,
    role_id_for, user_has_permission
)


class TestSeed:

    def test_every_role_seeded_with_its_grants(self, app):
        with app.app_context():
            for definition in ROLE_DEFINITIONS:
                role_id = role_id_for(definition['name'])
                assert role_id is not None
                granted = RolePermission.query.filter_by(role_id=role_id).count()
                assert granted == len(ROLE_PERMISSION_MATRIX[definition['name']])

    def test_seed_is_idempotent(self, app):
        with app.app_context():
            before = RolePermission.query.count()
            ensure_permissions_seed()
            ensure_permissions_seed()
            assert RolePermission.query.count() == before

    def test_init_permissions_endpoint(self, client):
        resp = client.get('/api/init-permissions')
        assert resp.status_code == 200
        body = resp.get_json()
        assert body['success'] is True
        assert 'System Admin' in body['roles']

    def test_roles_listing_is_public(self, client):
        resp = client.get('/api/roles')
        names = [r['role_name'] for r in resp.get_json()['roles']]
        assert names[0] == 'Default User'
        assert set(names) == {d['name'] for d in ROLE_DEFINITIONS}


class TestRoleMatrix:

    def test_staff_grants(self, app, make_user):
        user_id = make_user('Staff')
        with app.app_context():
            user = db.session.get(User, user_id)
            assert effective_permissions(user) == sorted(ROLE_PERMISSION_MATRIX['Staff'])
            assert not user_has_permission(user.id, user.role_id, PERMISSIONS.CREATE_INVOICES)

    def test_sales_assistant_cannot_approve(self, app, make_user):
        user_id = make_user('Sales Assistant')
        with app.app_context():
            user = db.session.get(User, user_id)
            assert user_has_permission(user.id, user.role_id, PERMISSIONS.CREATE_INVOICES)
            assert not user_has_permission(user.id, user.role_id, PERMISSIONS.APPROVE_RETURNS)
            assert not user_has_permission(user.id, user.role_id, PERMISSIONS.APPROVE_PURCHASES)

    def test_user_override_wins_over_role(self, app, make_user):
        user_id = make_user('Staff')
        with app.app_context():
            invoices = Permission.query.filter_by(permission_key=PERMISSIONS.CREATE_INVOICES).first()
            stock = Permission.query.filter_by(permission_key=PERMISSIONS.UPDATE_STOCK).first()
            db.session.add(UserPermission(user_id=user_id, permission_id=invoices.id, is_allowed=True))
            db.session.add(UserPermission(user_id=user_id, permission_id=stock.id, is_allowed=False))
            db.session.commit()

            user = db.session.get(User, user_id)
            assert user_has_permission(user.id, user.role_id, PERMISSIONS.CREATE_INVOICES)
            assert not user_has_permission(user.id, user.role_id, PERMISSIONS.UPDATE_STOCK)
            keys = effective_permissions(user)
            assert PERMISSIONS.CREATE_INVOICES in keys
            assert PERMISSIONS.UPDATE_STOCK not in keys


class TestRequestGate:

    def test_anonymous_gets_401(self, client):
        resp = client.get('/api/products')
        assert resp.status_code == 401
        assert resp.get_json() == {'error': 'Unauthorized'}

    def test_unlisted_api_endpoints_need_a_session(self, client):
        assert client.get('/api/customers').status_code == 401

    def test_staff_cannot_invoice_and_nothing_is_written(self, app, login_as, make_product):
        product_id = make_product(qty=10)
        staff, _ = login_as('Staff')

        resp = staff.post('/api/invoices', json={
            'customer': {'name': 'Walk-in', 'contact': '0700000000'},
            'items': [{'product_id': product_id, 'qty': 2, 'selling_price': 100}]
        })
        assert resp.status_code == 403
        assert resp.get_json() == {'error': 'Forbidden'}

        with app.app_context():
            assert db.session.get(Product, product_id).qty == 10
            assert Invoice.query.count() == 0
            assert Customer.query.count() == 0
            assert StockLog.query.count() == 0

    def test_role_change_applies_without_new_login(self, app, login_as):
        staff, user_id = login_as('Staff')
        assert staff.get('/api/audit-logs').status_code == 403

        with app.app_context():
            user = db.session.get(User, user_id)
            user.role_id = role_id_for('System Admin')
            db.session.commit()

        assert staff.get('/api/audit-logs').status_code == 200

    def test_deactivated_user_loses_session(self, app, login_as):
        staff, user_id = login_as('Staff')
        with app.app_context():
            db.session.get(User, user_id).is_active = False
            db.session.commit()
        assert staff.get('/api/products').status_code == 401

    def test_user_admin_errors_use_success_message_shape(self, login_as):
        staff, _ = login_as('Staff')
        resp = staff.get('/api/users')
        assert resp.status_code == 403
        assert resp.get_json() == {'success': False, 'message': 'Forbidden'}

    def test_dashboard_redirects_to_login(self, client):
        resp = client.get('/dashboard/products')
        assert resp.status_code == 302
        assert '/login?from=%2Fdashboard%2Fproducts' in resp.headers['Location']

    def test_unknown_api_path_is_json_404(self, client):
        resp = client.get('/api/does-not-exist')
        assert resp.status_code == 404
        assert resp.get_json() == {'error': 'not found'}

    def test_spa_fallback_for_pages(self, client):
        resp = client.get('/settings/profile')
        assert resp.status_code == 200
        assert b'<div id="root"></div>' in resp.data

    def test_health_is_public(self, client, login_as):
        assert client.get('/api/health').get_json() == {'ok': True, 'app': 'ceramics-retail-backend', 'user': None}
        signed_in, _ = login_as('Staff', username='kamal')
        assert signed_in.get('/api/health').get_json()['user'] == 'kamal'
