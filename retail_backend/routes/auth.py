# retail_backend/routes/auth.py
import logging
import secrets
from datetime import datetime, timedelta
from urllib.parse import urlencode

import requests
from flask import Blueprint, current_app, g, jsonify, redirect, request

from ..audit import record_audit
from ..auth import check_password, clear_auth_cookie, hash_password, set_auth_cookie, sign_token
from ..errors import Conflict, NotFound, PermissionDenied, ValidationError
from ..mailer import mail_configured, send_password_reset
from ..models import PasswordResetToken, User, atomic, db
from ..permissions import DEFAULT_ROLE, ROLE_DEFINITIONS, effective_permissions, ensure_permissions_seed, role_id_for
from ..validation import json_body, optional, text

logger = logging.getLogger(__name__)

bp = Blueprint('auth', __name__, url_prefix='/api')

GOOGLE_AUTH_URL = 'https://accounts.google.com/o/oauth2/v2/auth'
GOOGLE_TOKEN_URL = 'https://oauth2.googleapis.com/token'
GOOGLE_USERINFO_URL = 'https://openidconnect.googleapis.com/v1/userinfo'
OAUTH_STATE_COOKIE = 'oauth_state'
HTTP_TIMEOUT = 10


def _session_response(user, status=200):
    identity = user.identity()
    response = jsonify({'success': True, 'user': identity})
    response.status_code = status
    return set_auth_cookie(response, sign_token(identity))


def _unique_username(base):
    base = (base or 'user').lower()
    candidate, n = base, 1
    while User.query.filter_by(username=candidate).first():
        n += 1
        candidate = f'{base}{n}'
    return candidate


# -------------------------
# Password sign-in
# -------------------------
@bp.route('/auth/login', methods=['POST'])
def login():
    """
    Login using username or email.
    JSON: { identifier, password }
    Sets the auth_token cookie and returns the session identity.
    """
    data = json_body()
    identifier = text(data, 'identifier')
    password = data.get('password') or ''
    if not identifier or not password:
        raise ValidationError('Username or email and password are required')

    user = User.query.filter(db.or_(User.username == identifier, User.email == identifier)).first()
    if not user:
        logger.info('failed login for unknown identifier')
        raise PermissionDenied('Invalid credentials', 401)
    if not user.is_active:
        raise PermissionDenied('Account is inactive', 403)
    if not check_password(user.password_hash, password):
        logger.info('failed login for user %s', user.id)
        raise PermissionDenied('Invalid credentials', 401)

    return _session_response(user)


@bp.route('/auth/register', methods=['POST'])
def register():
    """
    Self sign-up.
    JSON: { fullName, email, password }
    The username is the first word of fullName, lowercased.
    """
    data = json_body()
    full_name = text(data, 'fullName')
    email = text(data, 'email')
    password = data.get('password') or ''
    if not full_name or not email or not password:
        raise ValidationError('Full name, email and password are required')

    username = full_name.split(' ')[0]
    if len(username) < 3:
        raise ValidationError('First name must be at least 3 characters')
    if len(password) < 6:
        raise ValidationError('Password must be at least 6 characters')
    username = username.lower()

    with atomic():
        if User.query.filter(db.or_(User.username == username, User.email == email)).first():
            raise Conflict('Username or email already in use')
        user = User(
            name=full_name,
            username=username,
            email=email,
            password_hash=hash_password(password),
            role_id=role_id_for(DEFAULT_ROLE),
            is_active=True
        )
        db.session.add(user)
        db.session.flush()
        record_audit(user.id, 'REGISTER_USER', 'users', user.id)

    return _session_response(user)


@bp.route('/auth/logout', methods=['POST'])
def logout():
    return clear_auth_cookie(jsonify({'success': True}))


# -------------------------
# Current user
# -------------------------
@bp.route('/auth/me', methods=['GET'])
def get_me():
    user = db.session.get(User, g.identity['id'])
    if not user:
        raise NotFound('User not found')
    return jsonify({
        'user': {
            'id': user.id,
            'name': user.name,
            'username': user.username,
            'email': user.email,
            'phone': user.contact,
            'address': user.address,
            'img_url': user.img_url or None,
            'role': user.role.role_name if user.role else 'User',
            'created_at': user.created_at.isoformat() if user.created_at else None,
            'permissions': effective_permissions(user)
        }
    })


@bp.route('/auth/me', methods=['PUT'])
def update_me():
    """JSON: { name, phone, address, img_url }"""
    data = json_body()
    name = text(data, 'name')
    if not name:
        raise ValidationError('Name is required')

    with atomic():
        user = db.session.get(User, g.identity['id'])
        if not user:
            raise NotFound('User not found')
        user.name = name
        user.contact = optional(data.get('phone'))
        user.address = optional(data.get('address'))
        user.img_url = optional(data.get('img_url'))
        record_audit(user.id, 'UPDATE_PROFILE', 'users', user.id)

    return jsonify({'success': True, 'message': 'Profile updated successfully'})


# -------------------------
# Password reset
# -------------------------
@bp.route('/auth/forgot-password', methods=['POST'])
def forgot_password():
    """
    JSON: { username }
    Always answers success for unknown usernames so accounts cannot be enumerated.
    """
    username = text(json_body(), 'username')
    if not username:
        raise ValidationError('Username is required')

    user = User.query.filter_by(username=username).first()
    if not user:
        return jsonify({'success': True})

    if not mail_configured():
        logger.error('forgot-password: missing SMTP settings')
        return jsonify({'error': 'Email service not configured'}), 500

    token = secrets.token_hex(32)
    expires_at = datetime.utcnow() + timedelta(minutes=current_app.config['RESET_TOKEN_TTL_MINUTES'])
    with atomic():
        # one live token per user
        PasswordResetToken.query.filter_by(user_id=user.id).delete()
        db.session.add(PasswordResetToken(user_id=user.id, token=token, expires_at=expires_at))

    reset_link = f"{current_app.config['APP_URL']}/forgot-password?{urlencode({'token': token})}"
    send_password_reset(user, reset_link)
    return jsonify({'success': True})


@bp.route('/auth/reset-password', methods=['POST'])
def reset_password():
    """JSON: { token, password }"""
    data = json_body()
    token = text(data, 'token')
    password = data.get('password') or ''
    if not token or not password:
        raise ValidationError('Token and password are required')
    if len(password) < 6:
        raise ValidationError('Password must be at least 6 characters')

    with atomic():
        row = PasswordResetToken.query.filter(
            PasswordResetToken.token == token,
            PasswordResetToken.expires_at > datetime.utcnow()
        ).first()
        if not row:
            raise ValidationError('Invalid or expired token')
        user = db.session.get(User, row.user_id)
        if not user:
            raise ValidationError('Invalid or expired token')
        user.password_hash = hash_password(password)
        PasswordResetToken.query.filter_by(user_id=user.id).delete()
        record_audit(user.id, 'RESET_PASSWORD', 'users', user.id)

    return jsonify({'success': True})


# -------------------------
# Google sign-in
# -------------------------
def _google_redirect_uri():
    return f"{current_app.config['APP_URL']}/api/auth/google/callback"


@bp.route('/auth/google', methods=['GET'])
def google_login():
    if not current_app.config.get('GOOGLE_CLIENT_ID'):
        return jsonify({'error': 'Google sign-in not configured'}), 500
    state = secrets.token_urlsafe(16)
    query = urlencode({
        'client_id': current_app.config['GOOGLE_CLIENT_ID'],
        'redirect_uri': _google_redirect_uri(),
        'response_type': 'code',
        'scope': 'openid email profile',
        'state': state
    })
    response = redirect(f'{GOOGLE_AUTH_URL}?{query}')
    response.set_cookie(OAUTH_STATE_COOKIE, state, max_age=600, httponly=True, samesite='Lax',
                        secure=current_app.config['AUTH_COOKIE_SECURE'])
    return response


def _fetch_google_profile(code):
    token_resp = requests.post(GOOGLE_TOKEN_URL, data={
        'code': code,
        'client_id': current_app.config['GOOGLE_CLIENT_ID'],
        'client_secret': current_app.config['GOOGLE_CLIENT_SECRET'],
        'redirect_uri': _google_redirect_uri(),
        'grant_type': 'authorization_code'
    }, timeout=HTTP_TIMEOUT)
    token_resp.raise_for_status()
    access_token = token_resp.json().get('access_token')

    profile_resp = requests.get(GOOGLE_USERINFO_URL, headers={'Authorization': f'Bearer {access_token}'},
                                timeout=HTTP_TIMEOUT)
    profile_resp.raise_for_status()
    return profile_resp.json()


@bp.route('/auth/google/callback', methods=['GET'])
def google_callback():
    """Finish Google sign-in: find or create the user by email, then start a session."""
    state = request.args.get('state')
    code = request.args.get('code')
    if not code or not state or state != request.cookies.get(OAUTH_STATE_COOKIE):
        return redirect('/login?error=google')

    try:
        profile = _fetch_google_profile(code)
    except (requests.RequestException, ValueError):
        logger.exception('Google sign-in failed')
        return redirect('/login?error=google')

    email = (profile.get('email') or '').strip()
    if not email:
        return redirect('/login?error=google')

    user = User.query.filter_by(email=email).first()
    if not user:
        display_name = profile.get('name') or 'User'
        with atomic():
            user = User(
                name=display_name,
                username=_unique_username(display_name.split(' ')[0]),
                email=email,
                # never used: Google users sign in through Google
                password_hash=hash_password(secrets.token_urlsafe(16)),
                role_id=role_id_for(DEFAULT_ROLE),
                is_active=True,
                img_url=profile.get('picture')
            )
            db.session.add(user)
            db.session.flush()
            record_audit(user.id, 'REGISTER_USER', 'users', user.id, details='google')
        logger.info('created user %s from Google sign-in', user.id)
    elif not user.is_active:
        return redirect('/login?error=inactive')

    response = redirect('/dashboard')
    response.delete_cookie(OAUTH_STATE_COOKIE)
    return set_auth_cookie(response, sign_token(user.identity()))


# -------------------------
# Seed
# -------------------------
@bp.route('/init-permissions', methods=['GET'])
def init_permissions():
    ensure_permissions_seed()
    return jsonify({
        'success': True,
        'message': 'Permissions and roles initialized successfully',
        'roles': [role['name'] for role in ROLE_DEFINITIONS],
        'note': 'User types and their permissions have been created according to the access matrix'
    })
