# Overview: Request identity and role decorators for API routes.

"""
Identity comes from the trusted gateway in front of this service:

    X-Actor-Id: <int>
    X-Actor-Role: SELLER | STORE_KEEPER | CASHIER | MANAGER | ADMIN | OWNER
    X-Location-Id: <int>

require_actor() parses them into g.actor; require_role() gates a route on the
actor's role. OWNER passes every gate. Services never consult roles.
"""

from dataclasses import dataclass
from functools import wraps

from flask import request, jsonify, g

ROLES = ("SELLER", "STORE_KEEPER", "CASHIER", "MANAGER", "ADMIN", "OWNER")
SUPERUSER_ROLE = "OWNER"
STAFF_ROLES = ("SELLER", "STORE_KEEPER", "CASHIER", "MANAGER", "ADMIN")


@dataclass(frozen=True)
class Actor:
    id: int
    role: str
    location_id: int


def _parse_int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def require_actor(f):
    """
    Establish the caller's identity and location scope.

    Sets g.actor. Returns 401 if any header is missing or malformed.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor_id = _parse_int(request.headers.get("X-Actor-Id"))
        location_id = _parse_int(request.headers.get("X-Location-Id"))
        role = (request.headers.get("X-Actor-Role") or "").strip().upper()

        if actor_id is None or location_id is None or role not in ROLES:
            return jsonify({"error": "Authentication required"}), 401

        g.actor = Actor(id=actor_id, role=role, location_id=location_id)
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require one of the given roles. Must run after @require_actor."""
    allowed = {r.upper() for r in roles}

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                return jsonify({"error": "Authentication required"}), 401

            if actor.role != SUPERUSER_ROLE and actor.role not in allowed:
                return jsonify({
                    "error": "Forbidden",
                    "message": "Role not permitted",
                    "context": {"role": actor.role, "required": sorted(allowed)},
                }), 403

            return f(*args, **kwargs)

        return decorated_function

    return decorator
