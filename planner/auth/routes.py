"""Authentication routes proxying Xano login, signup and /auth/me."""
from flask import Blueprint, jsonify, request, session

from planner.auth.utils import (
    LOGIN_REDIRECT, SESSION_USER_KEY, admin_required, clear_session,
    get_current_user, store_session,
)
from planner.logging_config import get_logger
from planner.xano.client import get_xano_client
from planner.xano.exceptions import XanoAPIError, XanoUnauthorizedError

logger = get_logger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


def _credentials():
    data = request.get_json(silent=True)
    if not data:
        return None, None, (jsonify({'error': 'No JSON data provided'}), 400)
    email = data.get('email')
    password = data.get('password')
    if not email or not password:
        return None, None, (jsonify({'error': 'Email and password are required'}), 400)
    return email, password, None


@auth_bp.route('/login', methods=['POST'])
def login():
    """Authenticate against Xano and keep the auth token in the session."""
    email, password, error = _credentials()
    if error:
        return error

    xano = get_xano_client()
    try:
        data = xano.login(email, password)
    except XanoUnauthorizedError:
        logger.warning("Failed login attempt", email=email)
        return jsonify({'error': 'Invalid email or password'}), 401
    except XanoAPIError as e:
        logger.error("Error during login", email=email, error=str(e))
        return jsonify({'error': 'Login failed', 'details': e.message}), 502

    token = (data or {}).get('authToken')
    if not token:
        return jsonify({'error': 'Login failed', 'details': 'No auth token returned'}), 502

    user = data.get('user')
    if not user:
        try:
            user = xano.get_me()
        except XanoAPIError as e:
            logger.warning("Could not load user after login", error=str(e))
            user = None

    store_session(token, user)
    logger.info("User logged in", user_id=(user or {}).get('id'))

    return jsonify({'status': 'success', 'user': user}), 200


@auth_bp.route('/logout', methods=['POST'])
def logout():
    """Logout endpoint that clears the session."""
    user = session.get(SESSION_USER_KEY) or {}
    clear_session()
    logger.info("User logged out", user_id=user.get('id'))
    return jsonify({'status': 'success', 'message': 'Logged out successfully'}), 200


@auth_bp.route('/me', methods=['GET'])
def me():
    """Get current logged-in user information."""
    user = get_current_user()
    if not user:
        return jsonify({'error': 'Not authenticated', 'redirect': LOGIN_REDIRECT}), 401
    return jsonify(user), 200


@auth_bp.route('/signup', methods=['POST'])
@admin_required
def signup():
    """Create a new Xano user account. Admin only."""
    email, password, error = _credentials()
    if error:
        return error
    admin = bool((request.get_json(silent=True) or {}).get('admin', False))

    try:
        created = get_xano_client().signup(email, password, admin=admin)
    except XanoUnauthorizedError:
        raise
    except XanoAPIError as e:
        logger.error("Error creating user", email=email, error=str(e))
        return jsonify({'error': 'Signup failed', 'details': e.message}), e.status_code or 502

    logger.info("New user created", email=email, admin=admin)
    # The admin stays logged in as themselves; Xano's token for the new user is dropped
    if isinstance(created, dict):
        created = {k: v for k, v in created.items() if k != 'authToken'}
    return jsonify({'status': 'success', 'user': created}), 201
