# retail_backend/app.py
import atexit
import logging
import os
from urllib.parse import urlencode

from flask import Flask, g, jsonify, redirect, request, send_from_directory
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from .auth import current_identity, hash_password
from .config import BASE_DIR, Config
from .errors import ApiError
from .mailer import init_mail
from .models import User, db
from .permissions import authorize_request, ensure_permissions_seed, role_id_for
from .routes import activity, auth, billing, catalog, customers, products, returns, users

logger = logging.getLogger(__name__)

APP_NAME = 'ceramics-retail-backend'
# static folder (where the frontend build lives)
STATIC_FOLDER = os.path.join(BASE_DIR, 'static')
# pages that need a signed-in user
PROTECTED_PATHS = ('/dashboard',)


def configure_logging(level='INFO'):
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def create_app(overrides=None):
    """
    Build the application. overrides is a mapping applied on top of Config,
    e.g. {'SQLALCHEMY_DATABASE_URI': 'sqlite://', 'TESTING': True}.
    """
    app = Flask(
        __name__,
        static_folder=STATIC_FOLDER,
        static_url_path=''  # serve static files at root
    )
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    if app.config['SQLALCHEMY_DATABASE_URI'].startswith('mysql'):
        # one bounded pool per process
        app.config.setdefault('SQLALCHEMY_ENGINE_OPTIONS', {
            'pool_size': 10,
            'max_overflow': 0,
            'pool_pre_ping': True,
            'pool_recycle': 3600
        })

    CORS(app, resources={r"/api/*": {"origins": app.config['CORS_ORIGINS']}}, supports_credentials=True)

    db.init_app(app)
    init_mail(app)

    app.before_request(guard_pages)
    app.before_request(authorize_request)
    register_error_handlers(app)
    register_blueprints(app)
    register_core_routes(app)

    if app.config.get('SEED_ON_STARTUP'):
        with app.app_context():
            bootstrap_database(app)

    return app


def bootstrap_database(app):
    """Create tables, seed roles/permissions and a first System Admin if there are no users."""
    db.create_all()
    ensure_permissions_seed()
    if not User.query.first():
        username = app.config['ADMIN_USERNAME']
        admin = User(
            name='Administrator',
            username=username,
            email=f'{username}@localhost',
            password_hash=hash_password(app.config['ADMIN_PASSWORD']),
            role_id=role_id_for('System Admin'),
            is_active=True
        )
        db.session.add(admin)
        db.session.commit()
        logger.warning('Created default admin user "%s". Change its password immediately!', username)


def register_blueprints(app):
    app.register_blueprint(auth.bp)
    app.register_blueprint(customers.bp)
    app.register_blueprint(catalog.bp)
    app.register_blueprint(products.bp)
    app.register_blueprint(billing.purchases_bp)
    app.register_blueprint(billing.invoices_bp)
    app.register_blueprint(returns.bp)
    app.register_blueprint(users.bp)
    app.register_blueprint(activity.bp)


# -------------------------
# Page guard
# -------------------------
def guard_pages():
    """Send visitors without a valid session from protected pages to the login page."""
    path = request.path
    if not any(path == p or path.startswith(p + '/') for p in PROTECTED_PATHS):
        return None
    if current_identity():
        return None
    return redirect('/login?' + urlencode({'from': path}))


# -------------------------
# Errors
# -------------------------
def _wants_json():
    return request.path.startswith('/api/')


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def handle_api_error(err):
        db.session.rollback()
        # user administration answers in {success, message} form
        if request.blueprint == 'users':
            return jsonify({'success': False, 'message': err.message}), err.status
        return jsonify({'error': err.message}), err.status

    @app.errorhandler(404)
    def spa_fallback(err):
        """If a static file wasn't found, return index.html so SPA client-router can handle routes."""
        index_path = os.path.join(app.static_folder, 'index.html')
        if not _wants_json() and os.path.exists(index_path):
            return send_from_directory(app.static_folder, 'index.html')
        return jsonify({'error': 'not found'}), 404

    @app.errorhandler(Exception)
    def handle_unexpected(err):
        if isinstance(err, HTTPException):
            if _wants_json():
                return jsonify({'error': err.description}), err.code
            return err
        db.session.rollback()
        logger.exception('unhandled error on %s %s', request.method, request.path)
        return jsonify({'error': 'Internal server error'}), 500


# -------------------------
# Serve frontend (SPA) and health
# -------------------------
def register_core_routes(app):
    @app.route('/', methods=['GET'])
    def serve_index():
        index_path = os.path.join(app.static_folder, 'index.html')
        if os.path.exists(index_path):
            return send_from_directory(app.static_folder, 'index.html')
        return jsonify({'app': APP_NAME, 'status': 'no-static-found'})

    @app.route('/dashboard', methods=['GET'])
    @app.route('/dashboard/<path:subpath>', methods=['GET'])
    def dashboard(subpath=None):
        return send_from_directory(app.static_folder, 'index.html')

    @app.route('/api/health', methods=['GET'])
    def health():
        return jsonify({'ok': True, 'app': APP_NAME, 'user': g.identity['username'] if g.identity else None})


# -------------------------
# Run server
# -------------------------
def main():
    configure_logging(Config.LOG_LEVEL)
    app = create_app()

    def _dispose():
        with app.app_context():
            db.engine.dispose()

    atexit.register(_dispose)
    app.run(host=Config.HOST, port=Config.PORT, debug=False)


if __name__ == '__main__':
    main()
