# retail_backend/models.py
import json
from contextlib import contextmanager
from datetime import datetime

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


@contextmanager
def atomic():
    """Run a block of writes as one unit: commit on success, roll back on any error."""
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def _iso(value):
    return value.isoformat() if value else None


class Role(db.Model):
    __tablename__ = 'roles'
    id = db.Column(db.Integer, primary_key=True)
    role_name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.String(255))

    def to_dict(self):
        return {
            'id': self.id,
            'role_name': self.role_name,
            'description': self.description
        }


class Permission(db.Model):
    __tablename__ = 'permissions'
    id = db.Column(db.Integer, primary_key=True)
    permission_key = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.String(255))


class RolePermission(db.Model):
    __tablename__ = 'role_permissions'
    __table_args__ = (db.UniqueConstraint('role_id', 'permission_id'),)
    id = db.Column(db.Integer, primary_key=True)
    role_id = db.Column(db.Integer, db.ForeignKey('roles.id'), nullable=False)
    permission_id = db.Column(db.Integer, db.ForeignKey('permissions.id'), nullable=False)


class UserPermission(db.Model):
    """Per-user override of a role grant; is_allowed=False revokes."""
    __tablename__ = 'user_permissions'
    __table_args__ = (db.UniqueConstraint('user_id', 'permission_id'),)
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    permission_id = db.Column(db.Integer, db.ForeignKey('permissions.id'), nullable=False)
    is_allowed = db.Column(db.Boolean, default=True, nullable=False)


class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    username = db.Column(db.String(120), unique=True, index=True, nullable=False)
    email = db.Column(db.String(255), unique=True, index=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role_id = db.Column(db.Integer, db.ForeignKey('roles.id'))
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    contact = db.Column(db.String(50))
    address = db.Column(db.String(255))
    img_url = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    role = db.relationship('Role', lazy='joined')

    def identity(self):
        """Claims carried by the session token."""
        return {
            'id': self.id,
            'roleId': self.role_id,
            'username': self.username,
            'email': self.email,
            'name': self.name
        }

    def to_dict(self):
        # never exposes password_hash
        return {
            'id': self.id,
            'name': self.name,
            'username': self.username,
            'email': self.email,
            'role_id': self.role_id,
            'role_name': self.role.role_name if self.role else None,
            'is_active': self.is_active,
            'contact': self.contact,
            'address': self.address,
            'img_url': self.img_url,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


class PasswordResetToken(db.Model):
    __tablename__ = 'password_reset_tokens'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), index=True, nullable=False)
    token = db.Column(db.String(128), index=True, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class Customer(db.Model):
    __tablename__ = 'customers'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    contact = db.Column(db.String(50), nullable=False)
    remark = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'contact': self.contact,
            'remark': self.remark,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


class Supplier(db.Model):
    __tablename__ = 'suppliers'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    contact = db.Column(db.String(50))
    address = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'contact': self.contact,
            'address': self.address,
            'created_at': _iso(self.created_at)
        }


class Category(db.Model):
    __tablename__ = 'categories'
    id = db.Column(db.Integer, primary_key=True)
    # stored as "English / Sinhala"
    name = db.Column(db.String(255), nullable=False)

    def to_dict(self):
        return {'id': self.id, 'name': self.name}


class Product(db.Model):
    __tablename__ = 'products'
    id = db.Column(db.Integer, primary_key=True)
    product_type = db.Column(db.String(100))
    name = db.Column(db.String(255), nullable=False)
    brand = db.Column(db.String(120))
    code = db.Column(db.String(120), index=True)
    new_code = db.Column(db.String(120))
    shade = db.Column(db.String(120))
    new_shade = db.Column(db.String(120))
    size = db.Column(db.String(120))
    photo_url = db.Column(db.String(500))
    qty = db.Column(db.Integer, default=0, nullable=False)
    unit = db.Column(db.String(50), default='Pcs')
    cost_price = db.Column(db.Float, default=0)
    selling_price = db.Column(db.Float, default=0)
    reorder_level = db.Column(db.Integer, default=100)
    category_id = db.Column(db.Integer, db.ForeignKey('categories.id'))
    description = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    category = db.relationship('Category', lazy='joined')

    # fields a client may set through create/update
    EDITABLE_FIELDS = (
        'product_type', 'name', 'brand', 'code', 'new_code', 'shade', 'new_shade', 'size',
        'photo_url', 'unit', 'cost_price', 'selling_price', 'reorder_level', 'category_id',
        'description',
    )

    def to_dict(self):
        data = {field: getattr(self, field) for field in self.EDITABLE_FIELDS}
        data.update({
            'id': self.id,
            'qty': self.qty,
            'category_name': self.category.name if self.category else None,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        })
        return data


class Invoice(db.Model):
    __tablename__ = 'invoices'
    id = db.Column(db.Integer, primary_key=True)
    invoice_no = db.Column(db.String(50), unique=True, nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey('customers.id'), index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    total_amount = db.Column(db.Float, default=0)
    discount = db.Column(db.Float, default=0)
    net_amount = db.Column(db.Float, default=0)
    payment_method = db.Column(db.String(50))
    status = db.Column(db.String(30), default='paid')
    client_ref = db.Column(db.String(100), unique=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    customer = db.relationship('Customer', lazy='joined')
    user = db.relationship('User', lazy='joined')
    items = db.relationship('InvoiceItem', backref='invoice', lazy=True, cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'invoice_no': self.invoice_no,
            'customer_id': self.customer_id,
            'customer_name': self.customer.name if self.customer else None,
            'customer_contact': self.customer.contact if self.customer else None,
            'user_id': self.user_id,
            'user_name': self.user.name if self.user else None,
            'total_amount': self.total_amount,
            'discount': self.discount,
            'net_amount': self.net_amount,
            'payment_method': self.payment_method,
            'status': self.status,
            'created_at': _iso(self.created_at)
        }


class InvoiceItem(db.Model):
    __tablename__ = 'invoice_items'
    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey('invoices.id'), index=True, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False)
    qty = db.Column(db.Integer, nullable=False)
    selling_price = db.Column(db.Float, nullable=False)
    line_total = db.Column(db.Float, nullable=False)

    product = db.relationship('Product', lazy='joined')

    def to_dict(self):
        return {
            'id': self.id,
            'invoice_id': self.invoice_id,
            'product_id': self.product_id,
            'product_name': self.product.name if self.product else None,
            'product_code': self.product.code if self.product else None,
            'qty': self.qty,
            'selling_price': self.selling_price,
            'line_total': self.line_total
        }


class Purchase(db.Model):
    __tablename__ = 'purchases'
    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey('suppliers.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    total_amount = db.Column(db.Float, default=0)
    client_ref = db.Column(db.String(100), unique=True)
    purchase_date = db.Column(db.DateTime, default=datetime.utcnow)

    supplier = db.relationship('Supplier', lazy='joined')
    user = db.relationship('User', lazy='joined')
    items = db.relationship('PurchaseItem', backref='purchase', lazy=True, cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'supplier_id': self.supplier_id,
            'supplier_name': self.supplier.name if self.supplier else None,
            'supplier_contact': self.supplier.contact if self.supplier else None,
            'user_id': self.user_id,
            'user_name': self.user.name if self.user else None,
            'total_amount': self.total_amount,
            'purchase_date': _iso(self.purchase_date)
        }


class PurchaseItem(db.Model):
    __tablename__ = 'purchase_items'
    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey('purchases.id'), index=True, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False)
    qty = db.Column(db.Integer, nullable=False)
    cost_price = db.Column(db.Float, nullable=False)

    product = db.relationship('Product', lazy='joined')

    def to_dict(self):
        return {
            'id': self.id,
            'purchase_id': self.purchase_id,
            'product_id': self.product_id,
            'product_name': self.product.name if self.product else None,
            'product_code': self.product.code if self.product else None,
            'qty': self.qty,
            'cost_price': self.cost_price
        }


class Return(db.Model):
    __tablename__ = 'returns'
    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey('invoices.id', ondelete='SET NULL'))
    purchase_id = db.Column(db.Integer, db.ForeignKey('purchases.id', ondelete='SET NULL'))
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False)
    qty = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(500), nullable=False)
    status = db.Column(db.String(20), default='pending', nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    product = db.relationship('Product', lazy='joined')
    invoice = db.relationship('Invoice', lazy='joined')
    purchase = db.relationship('Purchase', lazy='joined')
    user = db.relationship('User', lazy='joined')

    def to_dict(self):
        invoice, purchase = self.invoice, self.purchase
        return {
            'id': self.id,
            'invoice_id': self.invoice_id,
            'purchase_id': self.purchase_id,
            'product_id': self.product_id,
            'product_name': self.product.name if self.product else None,
            'product_code': self.product.code if self.product else None,
            'invoice_no': invoice.invoice_no if invoice else None,
            'purchase_no': purchase.id if purchase else None,
            'customer_name': invoice.customer.name if invoice and invoice.customer else None,
            'supplier_name': purchase.supplier.name if purchase and purchase.supplier else None,
            'user_name': self.user.name if self.user else None,
            'qty': self.qty,
            'reason': self.reason,
            'status': self.status,
            'type': 'invoice' if self.invoice_id else ('purchase' if self.purchase_id else None),
            'created_at': _iso(self.created_at)
        }


class StockLog(db.Model):
    """Append-only ledger; qty is the signed change applied to Product.qty."""
    __tablename__ = 'stock_logs'
    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), index=True, nullable=False)
    action = db.Column(db.String(50), nullable=False)
    qty = db.Column(db.Integer, nullable=False)
    invoice_id = db.Column(db.Integer)
    purchase_id = db.Column(db.Integer)
    return_id = db.Column(db.Integer)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship('User', lazy='joined')

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'action': self.action,
            'qty': self.qty,
            'invoice_id': self.invoice_id,
            'purchase_id': self.purchase_id,
            'return_id': self.return_id,
            'user_id': self.user_id,
            'user_name': self.user.name if self.user else None,
            'created_at': _iso(self.created_at)
        }


class AuditLog(db.Model):
    __tablename__ = 'audit_logs'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), index=True)
    action = db.Column(db.String(100), nullable=False)
    table_name = db.Column(db.String(100), nullable=False)
    record_id = db.Column(db.Integer)
    details = db.Column(db.Text)
    # JSON snapshot of a deleted row
    old_data = db.Column(db.Text)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    user = db.relationship('User', lazy='joined')

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'user_name': self.user.name if self.user else None,
            'user_img_url': self.user.img_url if self.user else None,
            'action': self.action,
            'table_name': self.table_name,
            'record_id': self.record_id,
            'details': self.details,
            'old_data': self.old_data,
            'timestamp': _iso(self.timestamp)
        }


class NotificationRead(db.Model):
    __tablename__ = 'notification_reads'
    __table_args__ = (db.UniqueConstraint('user_id', 'notification_id'),)
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    notification_id = db.Column(db.Integer, db.ForeignKey('audit_logs.id', ondelete='CASCADE'), nullable=False)
    read_at = db.Column(db.DateTime, default=datetime.utcnow)


class UserPreference(db.Model):
    __tablename__ = 'user_preferences'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), unique=True, nullable=False)
    preferences = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def load(self):
        return json.loads(self.preferences or '{}')
