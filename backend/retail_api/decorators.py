# Overview: Request and permission decorators for API routes.

from functools import wraps

from flask import g, request

from .actors import actor_for
from .errors import AuthenticationError, ForbiddenError
from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid bearer token.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User row
    - g.actor: Admin or StoreUser value built from it
    - g.session_token: The plaintext token (for logout)
    - g.session_context: The full SessionContext object

    Answers 401 on a missing, unknown, expired, idle or revoked token and on
    a deactivated user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            raise AuthenticationError("Authentication required")

        context = session_service.validate_session(token)
        if not context:
            raise AuthenticationError("Invalid or expired token")

        g.current_user = context.user
        g.actor = actor_for(context.user)
        g.session_token = token
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require the authenticated user to be an admin. Stack under @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not hasattr(g, 'actor'):
            raise AuthenticationError("Authentication required")
        if not g.actor.is_admin:
            raise ForbiddenError("Administrator role required")
        return f(*args, **kwargs)
    return decorated_function


def require_permission(flag: str):
    """
    Require a permission flag (e.g. "can_view_reports").

    Admins hold every flag; store users are checked against their row.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not hasattr(g, 'actor'):
                raise AuthenticationError("Authentication required")
            if not g.actor.has_permission(flag):
                raise ForbiddenError(
                    "Permission denied",
                    errors=[{"required_permission": flag}],
                )
            return f(*args, **kwargs)

        return decorated_function
    return decorator
