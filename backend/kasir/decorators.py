# Overview: Request context decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .errors import DomainError, ValidationError
from .validation import coerce_int
from .services.tenant_service import require_active_tenant


TENANT_HEADER = "X-Tenant-Id"
USER_HEADER = "X-User-Id"
STORE_HEADER = "store-id"


def require_context(f):
    """
    Establish tenant context from headers set by the upstream gateway.

    Sets the following Flask g attributes:
    - g.tenant_id: tenant the request acts for - REQUIRED
    - g.user_id: acting user - REQUIRED
    - g.store_id: active store (may be None; routes may take it from the body)

    Returns 401 if a required header is missing or malformed and 404 if the
    tenant does not exist or is inactive.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw_tenant = request.headers.get(TENANT_HEADER)
        raw_user = request.headers.get(USER_HEADER)
        if not raw_tenant or not raw_user:
            return jsonify({"error": "Tenant and user context required"}), 401

        try:
            tenant_id = coerce_int(raw_tenant, TENANT_HEADER)
            user_id = coerce_int(raw_user, USER_HEADER)
            raw_store = request.headers.get(STORE_HEADER)
            store_id = coerce_int(raw_store, STORE_HEADER) if raw_store else None
        except ValidationError as e:
            return jsonify({"error": str(e)}), 401

        try:
            require_active_tenant(tenant_id)
        except DomainError as e:
            current_app.logger.warning("Request for unknown tenant %s on %s", tenant_id, request.path)
            return jsonify(e.to_dict()), e.status_code

        g.tenant_id = tenant_id
        g.user_id = user_id
        g.store_id = store_id

        return f(*args, **kwargs)

    return decorated_function


def resolve_store_id(patch: dict | None = None) -> int:
    """Store from the body (store_id), the store-id header or the store_id query arg, in that order."""
    if patch and patch.get("store_id") is not None:
        return patch["store_id"]
    store_id = getattr(g, "store_id", None)
    if store_id is None:
        store_arg = request.args.get("store_id")
        if store_arg:
            return coerce_int(store_arg, "store_id")
        raise ValidationError("store_id is required (body, query or store-id header)")
    return store_id
