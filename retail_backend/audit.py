# retail_backend/audit.py
import json
from datetime import datetime

from .models import AuditLog, NotificationRead, Product, StockLog, User, db

FEED_LIMIT = 50
PRODUCT_ACTIONS = ('CREATE_PRODUCT', 'UPDATE_PRODUCT', 'DELETE_PRODUCT', 'UPDATE_INVENTORY')


def record_audit(user_id, action, table_name, record_id, details=None, old_data=None):
    """Append an audit row to the current transaction. The caller commits."""
    entry = AuditLog(
        user_id=user_id,
        action=action,
        table_name=table_name,
        record_id=record_id,
        details=details,
        old_data=json.dumps(old_data, default=str) if old_data is not None else None
    )
    db.session.add(entry)
    return entry


def describe(action, table_name):
    return f"{action.replace('_', ' ')} on {table_name}"


def unread_notifications(user_id, limit=FEED_LIMIT):
    """Newest audit rows this user has not marked read."""
    rows = (
        AuditLog.query
        .outerjoin(NotificationRead, (NotificationRead.notification_id == AuditLog.id) & (NotificationRead.user_id == user_id))
        .filter(NotificationRead.id.is_(None))
        .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            'id': log.id,
            'action': log.action,
            'table_name': log.table_name,
            'record_id': log.record_id,
            'timestamp': log.timestamp.isoformat() if log.timestamp else None,
            'user_name': log.user.name if log.user else None,
            'user_img_url': log.user.img_url if log.user else None,
            'description': describe(log.action, log.table_name)
        }
        for log in rows
    ]


def mark_read(user_id, notification_id):
    """Idempotent: a second call only refreshes read_at."""
    marker = NotificationRead.query.filter_by(user_id=user_id, notification_id=notification_id).first()
    if marker:
        marker.read_at = datetime.utcnow()
    else:
        db.session.add(NotificationRead(user_id=user_id, notification_id=notification_id))
    db.session.commit()


def enrich(log):
    """Audit row as a dict, with product details and a readable summary for product actions."""
    data = log.to_dict()
    data['productDetails'] = None
    if log.action not in PRODUCT_ACTIONS or log.table_name != 'products' or not log.record_id:
        return data

    product_details = None
    if log.action == 'DELETE_PRODUCT' and log.old_data:
        try:
            product_details = json.loads(log.old_data)
            data['details'] = f"Deleted product: {product_details.get('name')}"
        except ValueError:
            product_details = None

    if product_details is None:
        product = db.session.get(Product, log.record_id)
        if product:
            product_details = product.to_dict()
            if log.action == 'CREATE_PRODUCT':
                data['details'] = f'Created product: {product.name}'
            elif log.action == 'UPDATE_PRODUCT':
                data['details'] = f'Updated product: {product.name}'
            elif log.action == 'UPDATE_INVENTORY':
                data['details'] = _inventory_summary(log, product)

    data['productDetails'] = product_details
    return data


def _inventory_summary(log, product):
    last = (
        StockLog.query
        .filter_by(product_id=product.id, user_id=log.user_id)
        .order_by(StockLog.created_at.desc(), StockLog.id.desc())
        .first()
    )
    if not last:
        return f'Updated inventory: {product.name}'
    change = f'Added {last.qty}' if last.qty > 0 else f'Removed {abs(last.qty)}'
    return f"Updated inventory: {product.name} ({change} {product.unit or 'units'})"


def search_audit_logs(action=None, search=None, limit=100):
    query = AuditLog.query.outerjoin(User, AuditLog.user_id == User.id)
    if action and action != 'all':
        query = query.filter(AuditLog.action.like(f'{action}%'))
    if search:
        pattern = f'%{search}%'
        query = query.filter(db.or_(User.name.like(pattern), AuditLog.action.like(pattern)))
    rows = query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(limit).all()
    return [enrich(log) for log in rows]
