# Overview: Request authentication decorator for API routes.

from functools import wraps
from flask import request, jsonify, g

from .errors import ServiceError
from .services import identity_service


def require_auth(f):
    """
    Require a bearer token and establish the request Principal.

    Sets the following Flask g attributes:
    - g.principal: The authenticated Principal (roles + branch assignments)

    Role and branch checks are NOT done here; services receive g.principal
    explicitly and enforce them per operation.

    Returns 401 if:
    - No Authorization header
    - Token rejected by the identity provider
    Returns 403 if the profile is missing, deactivated or has invalid roles.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required", "kind": "unauthenticated"}), 401

        token = auth_header.split(" ", 1)[1].strip()
        if not token:
            return jsonify({"error": "Authentication required", "kind": "unauthenticated"}), 401

        try:
            g.principal = identity_service.load_principal(token)
        except ServiceError as e:
            return jsonify(e.to_dict()), e.status_code

        return f(*args, **kwargs)

    return decorated_function
