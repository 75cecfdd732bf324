import datetime as dt
import logging
from functools import wraps

import jwt
from flask import current_app, jsonify, request
from werkzeug.security import check_password_hash

logger = logging.getLogger(__name__)


def check_admin_credentials(username, password):
    expected_user = current_app.config.get('ADMIN_USERNAME')
    password_hash = current_app.config.get('ADMIN_PASSWORD_HASH')
    if not expected_user or not password_hash:
        logger.error("Admin login attempted but ADMIN_USERNAME / ADMIN_PASSWORD_HASH are not configured.")
        return False
    return username == expected_user and check_password_hash(password_hash, password)


def issue_admin_token(username):
    hours = current_app.config.get('ADMIN_TOKEN_HOURS', 1)
    payload = {
        'sub': username,
        'role': 'admin',
        'exp': dt.datetime.now(dt.timezone.utc) + dt.timedelta(hours=hours),
    }
    return jwt.encode(payload, current_app.config['SECRET_KEY'], algorithm='HS256')


def admin_required(f):
    """
    Guards admin reporting routes. Expects a token from /api/admin/login in
    the 'x-access-token' header.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        token = request.headers.get('x-access-token')
        if not token:
            logger.warning("Attempt to access admin route without token.")
            return jsonify({'message': 'Token is missing!'}), 401
        try:
            data = jwt.decode(token, current_app.config['SECRET_KEY'], algorithms=['HS256'])
        except jwt.ExpiredSignatureError:
            logger.warning("Attempt to access admin route with expired token.")
            return jsonify({'message': 'Token has expired!'}), 401
        except jwt.InvalidTokenError:
            logger.warning("Attempt to access admin route with invalid token.")
            return jsonify({'message': 'Token is invalid!'}), 401

        if data.get('role') != 'admin':
            logger.warning(f"Unauthorized admin access attempt by: {data.get('sub', 'unknown')}")
            return jsonify({'message': 'Admin access required!'}), 403

        kwargs['current_admin'] = data.get('sub')
        return f(*args, **kwargs)
    return decorated
