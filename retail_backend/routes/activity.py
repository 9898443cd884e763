# retail_backend/routes/activity.py
import json

from flask import Blueprint, g, jsonify, request

from ..audit import mark_read, record_audit, search_audit_logs, unread_notifications
from ..errors import NotFound, ValidationError
from ..models import AuditLog, UserPreference, atomic, db
from ..validation import json_body, to_int
from . import current_user_id

bp = Blueprint('activity', __name__, url_prefix='/api')

DEFAULT_PREFERENCES = {
    'companyName': 'Bashitha Ceramics',
    'email': 'contact@bashithaceramics.com',
    'phone': '+94 71 234 5678',
    'address': '123 Ceramic Street, Colombo, Sri Lanka',
    'emailNotifications': True,
    'pushNotifications': True,
    'activityAlerts': True,
    'lowStockAlerts': True,
    'twoFactorAuth': False,
    'sessionTimeout': 30,
    'theme': 'light',
    'language': 'English',
    'displayLanguage': 'english',
    'dateFormat': 'MM/DD/YYYY',
    'currency': 'USD',
    'lowStockThreshold': 100,
    'autoReorder': False,
    'stockAlertLevel': 50,
}
AUDIT_LOG_LIMIT = 100


# -------------------------
# Preferences
# -------------------------
@bp.route('/preferences', methods=['GET'])
def get_preferences():
    pref = UserPreference.query.filter_by(user_id=str(g.identity['id'])).first()
    if pref:
        return jsonify({'preferences': pref.load()})
    return jsonify({'preferences': dict(DEFAULT_PREFERENCES)})


@bp.route('/preferences', methods=['POST'])
def save_preferences():
    """JSON: { preferences: {...} } - replaces the caller's stored preferences."""
    preferences = json_body().get('preferences')
    if not isinstance(preferences, dict):
        raise ValidationError('Preferences are required')

    key = str(g.identity['id'])
    with atomic():
        pref = UserPreference.query.filter_by(user_id=key).first()
        if pref:
            pref.preferences = json.dumps(preferences)
        else:
            pref = UserPreference(user_id=key, preferences=json.dumps(preferences))
            db.session.add(pref)
        db.session.flush()
        record_audit(current_user_id(), 'UPDATE_PREFERENCES', 'user_preferences', pref.id)

    return jsonify({
        'success': True,
        'message': 'Preferences saved successfully',
        'displayLanguage': preferences.get('displayLanguage')
    })


# -------------------------
# Notifications
# -------------------------
@bp.route('/notifications', methods=['GET'])
def list_notifications():
    notifications = unread_notifications(current_user_id())
    return jsonify({'notifications': notifications, 'count': len(notifications)})


@bp.route('/notifications', methods=['POST'])
def mark_notification_read():
    """JSON: { notificationId }"""
    notification_id = json_body().get('notificationId')
    if not notification_id:
        raise ValidationError('Notification ID is required')
    notification_id = to_int(notification_id, 'notificationId', minimum=1)
    if not db.session.get(AuditLog, notification_id):
        raise NotFound('Notification not found')

    mark_read(current_user_id(), notification_id)
    return jsonify({'success': True, 'message': 'Notification marked as read'})


# -------------------------
# Audit log
# -------------------------
@bp.route('/audit-logs', methods=['GET'])
def list_audit_logs():
    """Query: action (prefix, 'all' for any), search (user name or action), limit."""
    limit = to_int(request.args.get('limit') or AUDIT_LOG_LIMIT, 'limit', minimum=1)
    logs = search_audit_logs(
        action=request.args.get('action'),
        search=request.args.get('search'),
        limit=limit
    )
    return jsonify({'logs': logs})
