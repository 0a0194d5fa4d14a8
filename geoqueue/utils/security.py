# geoqueue/utils/security.py
from functools import wraps

from flask import g, jsonify, request
from flask_login import current_user

from geoqueue.models.api_key import ApiKey


def _bearer_token() -> str:
    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return ""
    return header[len("Bearer "):].strip()


def require_capability(capability: str):
    """
    API key with the capability, or a logged-in session user.

    The key's permission list is the only thing checked here; issuing and
    managing keys lives outside the queue.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            token = _bearer_token()
            if token:
                key = ApiKey.authenticate(token)
                if not key:
                    return jsonify({"error": "Invalid API key"}), 401
                if not key.allows(capability):
                    return jsonify({"error": "Insufficient permissions"}), 403
                g.api_key = key
                return fn(*args, **kwargs)

            if current_user.is_authenticated:
                g.api_key = None
                return fn(*args, **kwargs)

            return jsonify({"error": "Unauthorized"}), 401
        return wrapper
    return decorator


def admin_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({"error": "Unauthorized"}), 401

        if not current_user.is_admin:
            return jsonify({"error": "Admin access required"}), 403

        return fn(*args, **kwargs)
    return wrapper


def caller_org_id():
    """Organization of whoever is calling: API key org first, else the session user's."""
    key = getattr(g, "api_key", None)
    if key is not None:
        return key.organization_id
    if current_user.is_authenticated:
        return current_user.organization_id
    return None


def caller_user_id():
    if current_user.is_authenticated:
        return current_user.id
    return None


def can_access_org(owner_org_id) -> bool:
    """Org-less API keys (the processing agent, printers) see every organization."""
    key = getattr(g, "api_key", None)
    if key is not None and key.organization_id is None:
        return True
    org_id = caller_org_id()
    return org_id is not None and org_id == owner_org_id
