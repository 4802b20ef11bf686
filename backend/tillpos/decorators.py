# Overview: Request decorators for admin bearer-token auth and terminal token resolution.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service, register_service
from .services.persistence import NotFoundError


def require_auth(f):
    """
    Require an admin bearer token and establish tenant context.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.company_id: The company (tenant) of the session - REQUIRED
    - g.company: The Company row
    - g.admin_session: The AdminSession row

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or revoked token
    - Company deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()
        context = session_service.validate_session(token)

        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.company_id = context.company_id
        g.company = context.company
        g.admin_session = context.session
        g.auth_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_terminal(f):
    """
    Resolve the <token> URL segment to a cash register.

    The token is the terminal's credential: it sets g.register and
    g.company_id. Unknown tokens get a 404, the same as a malformed one.
    """
    @wraps(f)
    def decorated_function(token, *args, **kwargs):
        try:
            register = register_service.get_register_by_token(token)
        except NotFoundError as e:
            return jsonify({"error": str(e)}), 404

        g.register = register
        g.company_id = register.company_id

        return f(*args, **kwargs)

    return decorated_function
