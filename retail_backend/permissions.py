# retail_backend/permissions.py
"""
Permission keys, the role/permission seed, and request authorization.

Every API endpoint is listed in POLICY with what it requires:
PUBLIC, AUTHENTICATED, or a permission key. `authorize_request` is installed
as a before_request hook by the app factory and is the only place checks happen.
"""
import logging

from flask import g, request

from .auth import current_identity
from .errors import PermissionDenied
from .models import Permission, Role, RolePermission, User, UserPermission, db

logger = logging.getLogger(__name__)


class PERMISSIONS:
    MANAGE_USERS = 'manage_users'
    CONFIGURE_ROLES = 'configure_roles'
    VIEW_PRODUCTS = 'view_products'
    EDIT_PRODUCTS = 'edit_products'
    DELETE_PRODUCTS = 'delete_products'
    MANAGE_PURCHASES = 'manage_purchases'
    CREATE_INVOICES = 'create_invoices'
    MANAGE_RETURNS = 'manage_returns'
    VIEW_STOCK_LOGS = 'view_stock_logs'
    UPDATE_STOCK = 'update_stock'
    ACCESS_REPORTS = 'access_reports'
    APPROVE_PURCHASES = 'approve_purchases'
    APPROVE_RETURNS = 'approve_returns'
    VIEW_AUDIT_LOGS = 'view_audit_logs'


PERMISSION_DEFINITIONS = {
    PERMISSIONS.MANAGE_USERS: 'Manage users (CRUD, activation)',
    PERMISSIONS.CONFIGURE_ROLES: 'Configure roles and permissions',
    PERMISSIONS.VIEW_PRODUCTS: 'View product catalog and details',
    PERMISSIONS.EDIT_PRODUCTS: 'Add and edit products',
    PERMISSIONS.DELETE_PRODUCTS: 'Delete products',
    PERMISSIONS.MANAGE_PURCHASES: 'Create and manage purchases',
    PERMISSIONS.CREATE_INVOICES: 'Create and manage invoices',
    PERMISSIONS.MANAGE_RETURNS: 'Create and manage returns',
    PERMISSIONS.VIEW_STOCK_LOGS: 'View stock movement logs',
    PERMISSIONS.UPDATE_STOCK: 'Manually adjust stock',
    PERMISSIONS.ACCESS_REPORTS: 'Access reporting views',
    PERMISSIONS.APPROVE_PURCHASES: 'Approve or delete purchases',
    PERMISSIONS.APPROVE_RETURNS: 'Approve or reject returns',
    PERMISSIONS.VIEW_AUDIT_LOGS: 'View system audit logs',
}

DEFAULT_ROLE = 'Default User'
STAFF_ROLE = 'Staff'

# seeded in this order
ROLE_DEFINITIONS = [
    {'name': DEFAULT_ROLE, 'description': 'Default user access'},
    {'name': 'System Admin', 'description': 'Full system administrator access'},
    {'name': 'Owner', 'description': 'Business owner with high-level control'},
    {'name': 'Sales Assistant', 'description': 'Sales operations and basic inventory'},
    {'name': STAFF_ROLE, 'description': 'Basic staff with limited inventory access'},
]

_OWNER = [
    PERMISSIONS.VIEW_PRODUCTS,
    PERMISSIONS.EDIT_PRODUCTS,
    PERMISSIONS.DELETE_PRODUCTS,
    PERMISSIONS.MANAGE_PURCHASES,
    PERMISSIONS.CREATE_INVOICES,
    PERMISSIONS.MANAGE_RETURNS,
    PERMISSIONS.VIEW_STOCK_LOGS,
    PERMISSIONS.UPDATE_STOCK,
    PERMISSIONS.ACCESS_REPORTS,
    PERMISSIONS.APPROVE_PURCHASES,
    PERMISSIONS.APPROVE_RETURNS,
]

ROLE_PERMISSION_MATRIX = {
    DEFAULT_ROLE: [],
    'System Admin': list(PERMISSION_DEFINITIONS),
    # no audit logs, no user/role management
    'Owner': _OWNER,
    'Sales Assistant': [p for p in _OWNER if p not in (PERMISSIONS.APPROVE_PURCHASES, PERMISSIONS.APPROVE_RETURNS)],
    STAFF_ROLE: [
        PERMISSIONS.VIEW_PRODUCTS,
        PERMISSIONS.EDIT_PRODUCTS,
        PERMISSIONS.MANAGE_PURCHASES,
        PERMISSIONS.VIEW_STOCK_LOGS,
        PERMISSIONS.UPDATE_STOCK,
    ],
}

PUBLIC = 'public'
AUTHENTICATED = 'authenticated'

POLICY = {
    'health': PUBLIC,
    'serve_index': PUBLIC,
    'dashboard': PUBLIC,
    'static': PUBLIC,

    'auth.login': PUBLIC,
    'auth.register': PUBLIC,
    'auth.logout': PUBLIC,
    'auth.forgot_password': PUBLIC,
    'auth.reset_password': PUBLIC,
    'auth.google_login': PUBLIC,
    'auth.google_callback': PUBLIC,
    'auth.init_permissions': PUBLIC,
    'auth.get_me': AUTHENTICATED,
    'auth.update_me': AUTHENTICATED,

    'customers.list_customers': AUTHENTICATED,
    'customers.create_customer': AUTHENTICATED,
    'customers.get_customer': AUTHENTICATED,
    'customers.update_customer': AUTHENTICATED,
    'customers.delete_customer': AUTHENTICATED,

    'catalog.list_categories': PUBLIC,
    'catalog.list_roles': PUBLIC,
    'catalog.list_suppliers': PERMISSIONS.MANAGE_PURCHASES,
    'catalog.create_supplier': PERMISSIONS.MANAGE_PURCHASES,

    'products.list_products': PERMISSIONS.VIEW_PRODUCTS,
    'products.create_product': PERMISSIONS.EDIT_PRODUCTS,
    'products.get_product': PERMISSIONS.VIEW_STOCK_LOGS,
    'products.update_product': PERMISSIONS.EDIT_PRODUCTS,
    'products.delete_product': PERMISSIONS.DELETE_PRODUCTS,
    'products.adjust_inventory': PERMISSIONS.UPDATE_STOCK,

    'purchases.list_purchases': PERMISSIONS.MANAGE_PURCHASES,
    'purchases.create_purchase': PERMISSIONS.MANAGE_PURCHASES,
    'purchases.get_purchase': PERMISSIONS.MANAGE_PURCHASES,
    'purchases.delete_purchase': PERMISSIONS.APPROVE_PURCHASES,

    'invoices.list_invoices': PERMISSIONS.CREATE_INVOICES,
    'invoices.create_invoice': PERMISSIONS.CREATE_INVOICES,
    'invoices.get_invoice': PERMISSIONS.CREATE_INVOICES,
    'invoices.update_invoice_status': PERMISSIONS.CREATE_INVOICES,
    'invoices.delete_invoice': PERMISSIONS.CREATE_INVOICES,

    'returns.list_returns': PERMISSIONS.MANAGE_RETURNS,
    'returns.create_return': PERMISSIONS.MANAGE_RETURNS,
    'returns.get_return': PERMISSIONS.MANAGE_RETURNS,
    'returns.resolve_return': PERMISSIONS.APPROVE_RETURNS,
    'returns.delete_return': PERMISSIONS.MANAGE_RETURNS,

    'users.list_users': PERMISSIONS.MANAGE_USERS,
    'users.create_user': PERMISSIONS.MANAGE_USERS,
    'users.user_stats': PERMISSIONS.MANAGE_USERS,
    'users.get_user': PERMISSIONS.MANAGE_USERS,
    'users.update_user': PERMISSIONS.MANAGE_USERS,
    'users.delete_user': PERMISSIONS.MANAGE_USERS,
    'users.set_user_status': PERMISSIONS.MANAGE_USERS,

    'activity.get_preferences': AUTHENTICATED,
    'activity.save_preferences': AUTHENTICATED,
    'activity.list_notifications': AUTHENTICATED,
    'activity.mark_notification_read': AUTHENTICATED,
    'activity.list_audit_logs': PERMISSIONS.VIEW_AUDIT_LOGS,
}


def ensure_permissions_seed():
    """Create missing permissions, roles and role grants. Safe to run repeatedly."""
    permission_ids = {}
    for key, description in PERMISSION_DEFINITIONS.items():
        perm = Permission.query.filter_by(permission_key=key).first()
        if not perm:
            perm = Permission(permission_key=key, description=description)
            db.session.add(perm)
            db.session.flush()
        permission_ids[key] = perm.id

    role_ids = {}
    for definition in ROLE_DEFINITIONS:
        role = Role.query.filter_by(role_name=definition['name']).first()
        if not role:
            role = Role(role_name=definition['name'], description=definition['description'])
            db.session.add(role)
            db.session.flush()
            logger.info('seeded role %s', role.role_name)
        role_ids[definition['name']] = role.id

    for role_name, keys in ROLE_PERMISSION_MATRIX.items():
        role_id = role_ids[role_name]
        granted = {rp.permission_id for rp in RolePermission.query.filter_by(role_id=role_id)}
        for key in keys:
            if permission_ids[key] not in granted:
                db.session.add(RolePermission(role_id=role_id, permission_id=permission_ids[key]))

    db.session.commit()
    return role_ids


def role_id_for(role_name):
    role = Role.query.filter_by(role_name=role_name).first()
    return role.id if role else None


def user_has_permission(user_id, role_id, permission_key):
    override = (
        db.session.query(UserPermission.is_allowed)
        .join(Permission, UserPermission.permission_id == Permission.id)
        .filter(UserPermission.user_id == user_id, Permission.permission_key == permission_key)
        .first()
    )
    if override is not None:
        return bool(override.is_allowed)

    granted = (
        db.session.query(RolePermission.id)
        .join(Permission, RolePermission.permission_id == Permission.id)
        .filter(RolePermission.role_id == role_id, Permission.permission_key == permission_key)
        .first()
    )
    return granted is not None


def effective_permissions(user):
    """Role grants, plus allow-overrides, minus deny-overrides."""
    keys = {
        key for (key,) in db.session.query(Permission.permission_key)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .filter(RolePermission.role_id == user.role_id)
    }
    overrides = (
        db.session.query(Permission.permission_key, UserPermission.is_allowed)
        .join(UserPermission, UserPermission.permission_id == Permission.id)
        .filter(UserPermission.user_id == user.id)
    )
    for key, is_allowed in overrides:
        if is_allowed:
            keys.add(key)
        else:
            keys.discard(key)
    return sorted(keys)


def require_permission(permission_key=None):
    """
    Resolve the signed-in user from the request cookie and check permission_key.
    Returns the session identity with the user's current role.
    Raises PermissionDenied(401) without a usable session, PermissionDenied(403) without the permission.
    """
    identity = current_identity()
    if not identity:
        raise PermissionDenied('Unauthorized', 401)

    user = db.session.get(User, identity['id'])
    if not user or not user.is_active:
        raise PermissionDenied('Unauthorized', 401)
    identity['roleId'] = user.role_id

    if permission_key and not user_has_permission(user.id, user.role_id, permission_key):
        logger.info('user %s denied %s', user.id, permission_key)
        raise PermissionDenied('Forbidden', 403)
    return identity


def authorize_request():
    """before_request hook enforcing POLICY; stores the identity on g.identity."""
    g.identity = None
    if request.method == 'OPTIONS' or request.endpoint is None:
        return None

    if request.endpoint in POLICY:
        requirement = POLICY[request.endpoint]
    elif request.path.startswith('/api/'):
        requirement = AUTHENTICATED
    else:
        requirement = PUBLIC

    if requirement == PUBLIC:
        g.identity = current_identity()
        return None
    g.identity = require_permission(None if requirement == AUTHENTICATED else requirement)
    return None
