# Overview: Request and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service


def _unauthorized():
    return jsonify({"success": False, "errors": ["Unauthorized"]}), 401


def require_auth(f):
    """
    Require a valid bearer session.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.user_id: The user's id
    - g.role: OWNER or EMPLOYEE, as captured on the session
    - g.session_context: The full SessionContext object

    Returns 401 if the header is missing or malformed, or the token is
    unknown, expired, revoked, or belongs to a deactivated user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return _unauthorized()

        token = auth_header.split(" ", 1)[1].strip()
        if not token:
            return _unauthorized()

        context = session_service.validate_session(token)
        if not context:
            return _unauthorized()

        g.current_user = context.user
        g.user_id = context.user_id
        g.role = context.role
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Allow only sessions whose role is one of `roles`. Use after @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not hasattr(g, "role"):
                return _unauthorized()
            if g.role not in roles:
                return jsonify({
                    "success": False,
                    "errors": ["Forbidden"],
                    "required_roles": list(roles),
                }), 403
            return f(*args, **kwargs)

        return decorated_function

    return decorator
