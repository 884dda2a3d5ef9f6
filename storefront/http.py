"""Small JSON helpers shared by the API views."""
import json

from django.http import JsonResponse


def json_body(request):
    """Decode a JSON request body, or return None when it is not valid JSON."""
    try:
        return json.loads(request.body.decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return None


def ok(status=200, **payload):
    return JsonResponse({"ok": True, **payload}, status=status)


def error(message, status=400, **extra):
    return JsonResponse({"ok": False, "error": message, **extra}, status=status)


def form_errors(form) -> str:
    """Flatten a bound form's errors into one readable line."""
    parts = []
    for field, errs in form.errors.items():
        label = "body" if field == "__all__" else field
        parts.append(f"{label}: {' '.join(errs)}")
    return "; ".join(parts)


def page_params(request, default_limit=50, max_limit=200):
    try:
        page = int(request.GET.get("page", "1"))
    except ValueError:
        page = 1
    try:
        limit = int(request.GET.get("limit", str(default_limit)))
    except ValueError:
        limit = default_limit
    page = max(page, 1)
    limit = min(max(limit, 1), max_limit)
    return page, limit
