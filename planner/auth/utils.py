"""Session helpers and route guards for Xano-backed authentication."""
from functools import wraps

from flask import has_request_context, jsonify, session

from planner.logging_config import get_logger
from planner.xano.client import SESSION_TEAM_KEY, SESSION_TOKEN_KEY, get_xano_client
from planner.xano.exceptions import XanoAPIError, XanoUnauthorizedError

logger = get_logger(__name__)

SESSION_USER_KEY = "user"
LOGIN_REDIRECT = "/login"


def is_admin(user) -> bool:
    """A user is an admin when role == 'admin' or the admin flag is set."""
    if not user:
        return False
    return user.get("role") == "admin" or user.get("admin") is True


def store_session(token: str, user=None):
    session[SESSION_TOKEN_KEY] = token
    if user:
        session[SESSION_USER_KEY] = user
        if user.get("team_id"):
            session[SESSION_TEAM_KEY] = user["team_id"]
    session.permanent = True


def clear_session():
    for key in (SESSION_TOKEN_KEY, SESSION_TEAM_KEY, SESSION_USER_KEY):
        session.pop(key, None)


def get_auth_token():
    if not has_request_context():
        return None
    return session.get(SESSION_TOKEN_KEY)


def get_current_user():
    """
    Get the current user for the session.

    Uses the copy cached at login and falls back to Xano /auth/me.

    Returns:
        user dict if logged in, None otherwise
    """
    if not get_auth_token():
        return None

    user = session.get(SESSION_USER_KEY)
    if user:
        return user

    try:
        user = get_xano_client().get_me()
    except XanoUnauthorizedError:
        clear_session()
        return None
    except XanoAPIError as e:
        logger.error("Error fetching current user", error=str(e))
        return None

    session[SESSION_USER_KEY] = user
    return user


def login_required(f):
    """
    Decorator to require a Xano auth token for a route.

    Returns 401 with the login redirect if no token is in the session.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not get_auth_token():
            return jsonify({'error': 'Authentication required', 'redirect': LOGIN_REDIRECT}), 401
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    """
    Decorator to require admin privileges for a route.

    Returns 401 if not logged in, 403 if the user is not an admin.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = get_current_user()
        if not user:
            return jsonify({'error': 'Authentication required', 'redirect': LOGIN_REDIRECT}), 401
        if not is_admin(user):
            logger.warning("Non-admin user attempted to access admin-only route", user_id=user.get("id"))
            return jsonify({'error': 'Admin privileges required'}), 403
        return f(*args, **kwargs)
    return decorated_function
