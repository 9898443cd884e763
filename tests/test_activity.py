from retail_backend.audit import describe, record_audit
from retail_backend.models import AuditLog, NotificationRead, UserPreference, db
from retail_backend.routes.activity import DEFAULT_PREFERENCES


def _audit(app, action='CREATE_CUSTOMER', table='customers', record_id=1):
    with app.app_context():
        entry = record_audit(None, action, table, record_id)
        db.session.commit()
        return entry.id


class TestNotifications:

    def test_feed_lists_unread_audit_rows(self, app, login_as):
        signed_in, _ = login_as('Staff')
        _audit(app, 'CREATE_CUSTOMER', 'customers')
        body = signed_in.get('/api/notifications').get_json()
        assert body['count'] == len(body['notifications']) == 1
        assert body['notifications'][0]['description'] == 'CREATE CUSTOMER on customers'

    def test_read_state_is_per_user(self, app, login_as):
        first, first_id = login_as('Staff')
        second, _ = login_as('Owner')
        notification_id = _audit(app)

        resp = first.post('/api/notifications', json={'notificationId': notification_id})
        assert resp.get_json() == {'success': True, 'message': 'Notification marked as read'}

        assert first.get('/api/notifications').get_json()['count'] == 0
        assert second.get('/api/notifications').get_json()['count'] == 1

        # marking again is harmless and is not itself audited
        first.post('/api/notifications', json={'notificationId': notification_id})
        with app.app_context():
            assert NotificationRead.query.filter_by(user_id=first_id).count() == 1
            assert AuditLog.query.count() == 1

    def test_feed_is_capped(self, app, login_as):
        signed_in, _ = login_as('Staff')
        for n in range(55):
            _audit(app, record_id=n)
        assert signed_in.get('/api/notifications').get_json()['count'] == 50

    def test_mark_read_validation(self, app, login_as):
        signed_in, _ = login_as('Staff')
        resp = signed_in.post('/api/notifications', json={})
        assert resp.status_code == 400
        assert resp.get_json() == {'error': 'Notification ID is required'}
        assert signed_in.post('/api/notifications', json={'notificationId': 12345}).status_code == 404

    def test_requires_session(self, client):
        assert client.get('/api/notifications').status_code == 401

    def test_describe(self):
        assert describe('UPDATE_INVENTORY', 'products') == 'UPDATE INVENTORY on products'


class TestAuditLogListing:

    def test_requires_permission(self, login_as):
        owner, _ = login_as('Owner')
        assert owner.get('/api/audit-logs').status_code == 403

    def test_filters_and_limit(self, app, admin_client):
        _audit(app, 'CREATE_CUSTOMER', 'customers')
        _audit(app, 'CREATE_INVOICE', 'invoices')
        _audit(app, 'DELETE_INVOICE', 'invoices')

        def actions(query):
            return [log['action'] for log in admin_client.get(f'/api/audit-logs{query}').get_json()['logs']]

        assert actions('') == ['DELETE_INVOICE', 'CREATE_INVOICE', 'CREATE_CUSTOMER']
        assert actions('?action=CREATE') == ['CREATE_INVOICE', 'CREATE_CUSTOMER']
        assert actions('?action=all&search=INVOICE') == ['DELETE_INVOICE', 'CREATE_INVOICE']
        assert actions('?limit=1') == ['DELETE_INVOICE']

    def test_search_by_user_name(self, app, login_as):
        admin, _ = login_as('System Admin', username='auditor')
        admin.post('/api/customers', json={'name': 'Kasun', 'contact': '1'})
        logs = admin.get('/api/audit-logs?search=Auditor').get_json()['logs']
        assert [(log['action'], log['user_name']) for log in logs] == [('CREATE_CUSTOMER', 'Auditor')]

    def test_product_actions_are_enriched(self, admin_client):
        product_id = admin_client.post('/api/products', json={'name': 'Granite Slab'}).get_json()['product_id']
        admin_client.put(f'/api/products/{product_id}', json={'brand': 'Lanka'})
        admin_client.delete(f'/api/products/{product_id}')

        logs = {log['action']: log for log in admin_client.get('/api/audit-logs?action=').get_json()['logs']}
        assert logs['DELETE_PRODUCT']['details'] == 'Deleted product: Granite Slab'
        assert logs['DELETE_PRODUCT']['productDetails']['name'] == 'Granite Slab'
        # the product is gone, so earlier rows keep their raw details
        assert logs['CREATE_PRODUCT']['productDetails'] is None
        assert logs['CREATE_PRODUCT']['details'] is None

    def test_live_product_details(self, admin_client):
        product_id = admin_client.post('/api/products', json={'name': 'Granite Slab'}).get_json()['product_id']
        admin_client.put(f'/api/products/{product_id}', json={'brand': 'Lanka'})
        logs = {log['action']: log for log in admin_client.get('/api/audit-logs').get_json()['logs']}
        assert logs['CREATE_PRODUCT']['details'] == 'Created product: Granite Slab'
        assert logs['UPDATE_PRODUCT']['details'] == 'Updated product: Granite Slab'
        assert logs['UPDATE_PRODUCT']['productDetails']['brand'] == 'Lanka'


class TestPreferences:

    def test_defaults(self, login_as):
        signed_in, _ = login_as('Staff')
        assert signed_in.get('/api/preferences').get_json() == {'preferences': DEFAULT_PREFERENCES}

    def test_save_and_reload(self, app, login_as):
        signed_in, user_id = login_as('Staff')
        prefs = dict(DEFAULT_PREFERENCES, theme='dark', displayLanguage='sinhala')
        resp = signed_in.post('/api/preferences', json={'preferences': prefs})
        assert resp.get_json() == {
            'success': True, 'message': 'Preferences saved successfully', 'displayLanguage': 'sinhala'
        }
        signed_in.post('/api/preferences', json={'preferences': dict(prefs, theme='light')})

        assert signed_in.get('/api/preferences').get_json()['preferences']['theme'] == 'light'
        with app.app_context():
            assert UserPreference.query.filter_by(user_id=str(user_id)).count() == 1
            assert AuditLog.query.filter_by(action='UPDATE_PREFERENCES').count() == 2

    def test_preferences_are_per_user(self, login_as):
        first, _ = login_as('Staff')
        second, _ = login_as('Staff')
        first.post('/api/preferences', json={'preferences': {'theme': 'dark'}})
        assert second.get('/api/preferences').get_json()['preferences']['theme'] == 'light'

    def test_invalid_body(self, login_as):
        signed_in, _ = login_as('Staff')
        assert signed_in.post('/api/preferences', json={'preferences': 'dark'}).status_code == 400
