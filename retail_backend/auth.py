# retail_backend/auth.py
import logging
from datetime import datetime, timedelta

from flask import current_app, request
from jose import JWTError, jwt
from werkzeug.security import check_password_hash, generate_password_hash

logger = logging.getLogger(__name__)

ALGORITHM = 'HS256'
IDENTITY_CLAIMS = ('id', 'roleId', 'username', 'email', 'name')
# older clients still send the session under this name
LEGACY_COOKIE_NAME = 'token'


def hash_password(password):
    return generate_password_hash(password)


def check_password(password_hash, password):
    if not password_hash or not password:
        return False
    return check_password_hash(password_hash, password)


def sign_token(identity, expires_in=None):
    """
    Sign an identity ({id, roleId, username, email, name}) into a time-limited token.
    expires_in is a timedelta; defaults to TOKEN_TTL_SECONDS.
    """
    if expires_in is None:
        expires_in = timedelta(seconds=current_app.config['TOKEN_TTL_SECONDS'])
    now = datetime.utcnow()
    claims = {key: identity.get(key) for key in IDENTITY_CLAIMS}
    claims['iat'] = now
    claims['exp'] = now + expires_in
    return jwt.encode(claims, current_app.config['JWT_SECRET'], algorithm=ALGORITHM)


def verify_token(token):
    """Return the identity carried by token, or None if it is missing, tampered or expired."""
    if not token:
        return None
    try:
        claims = jwt.decode(token, current_app.config['JWT_SECRET'], algorithms=[ALGORITHM])
    except JWTError as exc:
        logger.debug('rejected session token: %s', exc)
        return None
    if claims.get('id') is None:
        return None
    return {key: claims.get(key) for key in IDENTITY_CLAIMS}


def token_from_request():
    name = current_app.config['AUTH_COOKIE_NAME']
    return request.cookies.get(name) or request.cookies.get(LEGACY_COOKIE_NAME)


def current_identity():
    return verify_token(token_from_request())


def set_auth_cookie(response, token):
    response.set_cookie(
        current_app.config['AUTH_COOKIE_NAME'],
        token,
        max_age=current_app.config['TOKEN_TTL_SECONDS'],
        httponly=True,
        secure=current_app.config['AUTH_COOKIE_SECURE'],
        samesite='Strict',
        path='/'
    )
    return response


def clear_auth_cookie(response):
    response.delete_cookie(current_app.config['AUTH_COOKIE_NAME'], path='/')
    return response
