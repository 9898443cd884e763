"""
Shared fixtures: an app on an in-memory SQLite database, a test client,
and factories for users of each role and for catalog rows.
"""
import pytest

from retail_backend import create_app
from retail_backend.auth import hash_password
from retail_backend.models import Category, Customer, Product, Supplier, User, db
from retail_backend.permissions import role_id_for

PASSWORD = 'secret123'


@pytest.fixture
def app():
    app = create_app({
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'TESTING': True,
        'JWT_SECRET': 'test-secret',
        'ADMIN_USERNAME': 'admin',
        'ADMIN_PASSWORD': 'admin123',
        'AUTH_COOKIE_SECURE': False,
        'APP_URL': 'http://testserver',
        'SMTP_HOST': None,
        'SMTP_PORT': None,
        'SMTP_USER': None,
        'SMTP_PASS': None,
        'SMTP_FROM': None,
        'RESET_MAIL_TO': None,
        'GOOGLE_CLIENT_ID': 'google-client',
        'GOOGLE_CLIENT_SECRET': 'google-secret',
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    """make_user(role_name, username=None, **fields) -> user id"""
    counter = {'n': 0}

    def _make(role_name='Staff', username=None, **fields):
        counter['n'] += 1
        username = username or f'user{counter["n"]}'
        with app.app_context():
            user = User(
                name=fields.pop('name', username.title()),
                username=username,
                email=fields.pop('email', f'{username}@example.com'),
                password_hash=hash_password(fields.pop('password', PASSWORD)),
                role_id=role_id_for(role_name),
                is_active=fields.pop('is_active', True),
                **fields
            )
            db.session.add(user)
            db.session.commit()
            return user.id

    return _make


def login(client, identifier, password=PASSWORD):
    return client.post('/api/auth/login', json={'identifier': identifier, 'password': password})


@pytest.fixture
def login_as(app, make_user):
    """login_as(role_name) -> (test client signed in through the auth cookie, user id)"""

    def _login(role_name='System Admin', username=None):
        user_id = make_user(role_name, username=username)
        with app.app_context():
            username = db.session.get(User, user_id).username
        signed_in = app.test_client()
        resp = login(signed_in, username)
        assert resp.status_code == 200, resp.get_json()
        return signed_in, user_id

    return _login


@pytest.fixture
def admin_client(login_as):
    signed_in, _ = login_as('System Admin', username='boss')
    return signed_in


@pytest.fixture
def make_supplier(app):
    def _make(name='Lanka Tiles'):
        with app.app_context():
            supplier = Supplier(name=name, contact='0771234567')
            db.session.add(supplier)
            db.session.commit()
            return supplier.id

    return _make


@pytest.fixture
def make_category(app):
    def _make(name='Tiles / ටයිල්'):
        with app.app_context():
            category = Category(name=name)
            db.session.add(category)
            db.session.commit()
            return category.id

    return _make


@pytest.fixture
def make_product(app):
    def _make(name='Floor Tile 60x60', qty=0, **fields):
        with app.app_context():
            product = Product(name=name, qty=qty, unit='Pcs', reorder_level=fields.pop('reorder_level', 10), **fields)
            db.session.add(product)
            db.session.commit()
            return product.id

    return _make


@pytest.fixture
def make_customer(app):
    def _make(name='Nimal Perera', contact='0711111111'):
        with app.app_context():
            customer = Customer(name=name, contact=contact)
            db.session.add(customer)
            db.session.commit()
            return customer.id

    return _make
