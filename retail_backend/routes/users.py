# retail_backend/routes/users.py
import calendar
from datetime import datetime, timedelta

from flask import Blueprint, jsonify, request

from ..audit import record_audit
from ..auth import hash_password
from ..errors import NotFound, ValidationError
from ..models import Role, User, atomic, db
from ..permissions import STAFF_ROLE, role_id_for
from ..validation import json_body, optional, text, to_int
from . import current_user_id

bp = Blueprint('users', __name__, url_prefix='/api/users')


def _months_before(day, months):
    """Same calendar day `months` months earlier, clamped to the end of shorter months."""
    month_index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    return day.replace(year=year, month=month, day=min(day.day, calendar.monthrange(year, month)[1]))


def _role_id(value):
    if value in (None, ''):
        return role_id_for(STAFF_ROLE)
    role_id = to_int(value, 'role_id', minimum=1)
    if not db.session.get(Role, role_id):
        raise ValidationError('Role not found')
    return role_id


def _get_user(user_id):
    user = db.session.get(User, user_id)
    if not user:
        raise NotFound('User not found')
    return user


@bp.route('', methods=['GET'])
def list_users():
    """
    Query params:
      status - all | active | inactive
      role   - all | role id
      search - name, email or username contains
    """
    query = User.query
    status = request.args.get('status')
    if status and status != 'all':
        query = query.filter(User.is_active.is_(status == 'active'))

    role = request.args.get('role')
    if role and role != 'all':
        query = query.filter(User.role_id == to_int(role, 'role'))

    search = request.args.get('search')
    if search:
        pattern = f'%{search}%'
        query = query.filter(db.or_(User.name.like(pattern), User.email.like(pattern), User.username.like(pattern)))

    users = [u.to_dict() for u in query.order_by(User.created_at.desc(), User.id.desc()).all()]
    return jsonify({'success': True, 'users': users, 'total': len(users)})


@bp.route('', methods=['POST'])
def create_user():
    """JSON: { name, username, email, password, role_id?, contact?, address? }"""
    data = json_body()
    name, username, email = text(data, 'name'), text(data, 'username'), text(data, 'email')
    password = data.get('password') or ''
    if not name or not username or not email or not password:
        raise ValidationError('Missing required fields')

    with atomic():
        if User.query.filter(db.or_(User.email == email, User.username == username)).first():
            raise ValidationError('User with this email or username already exists')
        user = User(
            name=name,
            username=username,
            email=email,
            password_hash=hash_password(password),
            role_id=_role_id(data.get('role_id')),
            is_active=True,
            contact=optional(data.get('contact')),
            address=optional(data.get('address'))
        )
        db.session.add(user)
        db.session.flush()
        record_audit(current_user_id(), 'CREATE_USER', 'users', user.id)

    return jsonify({'success': True, 'message': 'User created successfully', 'userId': user.id})


@bp.route('/stats', methods=['GET'])
def user_stats():
    """Head counts plus month-over-month sign-up growth in percent."""
    today = datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
    month_ago = _months_before(today, 1)
    two_months_ago = _months_before(today, 2)

    def count(*criteria):
        return db.session.query(db.func.count(User.id)).filter(*criteria).scalar() or 0

    new_this_month = count(User.created_at >= month_ago)
    new_last_month = count(User.created_at >= two_months_ago, User.created_at < month_ago)
    growth = 0
    if new_last_month > 0:
        growth = round((new_this_month - new_last_month) / new_last_month * 100, 1)

    return jsonify({
        'success': True,
        'stats': {
            'totalUsers': count(),
            'activeUsers': count(User.is_active.is_(True)),
            'inactiveUsers': count(User.is_active.is_(False)),
            'newToday': count(User.created_at >= today, User.created_at < today + timedelta(days=1)),
            'growth': growth
        }
    })


@bp.route('/<int:user_id>', methods=['GET'])
def get_user(user_id):
    return jsonify({'success': True, 'user': _get_user(user_id).to_dict()})


@bp.route('/<int:user_id>', methods=['PUT'])
def update_user(user_id):
    """JSON: { name, username, email, role_id, contact?, address? }"""
    data = json_body()
    name, username, email = text(data, 'name'), text(data, 'username'), text(data, 'email')
    if not name or not username or not email:
        raise ValidationError('Missing required fields')

    with atomic():
        user = _get_user(user_id)
        duplicate = User.query.filter(
            db.or_(User.email == email, User.username == username), User.id != user_id
        ).first()
        if duplicate:
            raise ValidationError('Email or username already in use')
        user.name, user.username, user.email = name, username, email
        if 'role_id' in data:
            user.role_id = _role_id(data.get('role_id'))
        user.contact = optional(data.get('contact'))
        user.address = optional(data.get('address'))
        record_audit(current_user_id(), 'UPDATE_USER', 'users', user_id)

    return jsonify({'success': True, 'message': 'User updated successfully'})


@bp.route('/<int:user_id>', methods=['DELETE'])
def delete_user(user_id):
    with atomic():
        user = _get_user(user_id)
        if user.id == current_user_id():
            raise ValidationError('You cannot delete your own account')
        snapshot = user.to_dict()
        db.session.delete(user)
        record_audit(current_user_id(), 'DELETE_USER', 'users', user_id, old_data=snapshot)
    return jsonify({'success': True, 'message': 'User deleted successfully'})


@bp.route('/<int:user_id>', methods=['PATCH'])
def set_user_status(user_id):
    """JSON: { is_active }"""
    is_active = bool(json_body().get('is_active'))
    with atomic():
        user = _get_user(user_id)
        user.is_active = is_active
        record_audit(current_user_id(), 'ACTIVATE_USER' if is_active else 'DEACTIVATE_USER', 'users', user_id)
    state = 'activated' if is_active else 'deactivated'
    return jsonify({'success': True, 'message': f'User {state} successfully'})
