"""Basic-auth check shared by every /api/admin route"""
import logging
import secrets

from flask import current_app, jsonify, request

from workflow import error_body

logger = logging.getLogger(__name__)


def credentials_match(username: str, password: str) -> bool:
    expected_user = current_app.config['ADMIN_USER']
    expected_password = current_app.config['ADMIN_PASSWORD']
    user_ok = secrets.compare_digest(username.encode('utf-8'), expected_user.encode('utf-8'))
    password_ok = secrets.compare_digest(password.encode('utf-8'), expected_password.encode('utf-8'))
    return user_ok and password_ok


def require_admin():
    """Blueprint before_request hook: reject requests without valid admin credentials"""
    if request.method == 'OPTIONS':
        return None

    auth = request.authorization
    if auth is None or auth.type != 'basic' or auth.username is None or auth.password is None:
        logger.warning(f"❌ Admin access denied (no basic credentials): {request.method} {request.path}")
        return _unauthorized()

    if not credentials_match(auth.username, auth.password):
        logger.warning(f"❌ Admin access denied (bad credentials): {request.method} {request.path}")
        return _unauthorized()
    return None


def _unauthorized():
    response = jsonify(error_body("Unauthorized"))
    response.status_code = 401
    response.headers['WWW-Authenticate'] = 'Basic realm="admin"'
    return response
