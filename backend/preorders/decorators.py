# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


USER_HEADER = "X-User-Id"


def require_user(f):
    """
    Require an authenticated user id from the upstream proxy.

    Sets the following Flask g attribute:
    - g.current_user_id: value of the X-User-Id header

    Returns 401 if the header is missing or blank.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_id = (request.headers.get(USER_HEADER) or "").strip()
        if not user_id:
            return jsonify({"error": "Authentication required"}), 401

        g.current_user_id = user_id
        return f(*args, **kwargs)

    return decorated_function
