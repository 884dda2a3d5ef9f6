"""Admin access check for the JSON API.

Tokens are issued elsewhere; this module only verifies them.
"""
import logging
from functools import wraps

import jwt
from django.conf import settings
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def _bearer_token(request) -> str:
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return ""
    return auth.split(" ", 1)[1].strip()


def verify_admin_token(token: str):
    """Return the token claims when it is a valid admin token, else ``None``."""
    secret = getattr(settings, "JWT_SECRET", "")
    if not secret or not token:
        return None
    try:
        claims = jwt.decode(token, secret, algorithms=["HS256"])
    except jwt.PyJWTError as e:
        logger.info("Rejected admin token: %s", e)
        return None
    if claims.get("role") != "admin":
        return None
    return claims


def is_admin_request(request) -> bool:
    user = getattr(request, "user", None)
    if user is not None and user.is_authenticated and user.is_staff:
        return True
    return verify_admin_token(_bearer_token(request)) is not None


def admin_required(view):
    """Allow staff sessions or bearer tokens carrying ``role=admin``."""

    @wraps(view)
    def wrapper(request, *args, **kwargs):
        if not is_admin_request(request):
            return JsonResponse({"ok": False, "error": "Admin access required"}, status=401)
        return view(request, *args, **kwargs)

    return wrapper
