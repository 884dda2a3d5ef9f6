import logging
from functools import wraps

from django.conf import settings
from django.core.exceptions import ValidationError
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from orders.models import Order
from orders.refs import get_order, parse_order_ref
from storefront.http import error, json_body, ok
from . import services
from .integrations.zalopay import ConfigurationError, ProviderUnavailable

logger = logging.getLogger(__name__)


def _is_plain_http(request, strict) -> bool:
    if request.is_secure():
        return False
    if strict:
        return True
    proto = request.META.get("HTTP_X_FORWARDED_PROTO", "")
    return bool(proto) and proto.split(",")[0].strip().lower() != "https"


def https_required(strict=True):
    """Refuse plain-HTTP requests when ``PAYMENTS_REQUIRE_HTTPS`` is on.

    With ``strict=False`` only requests that a proxy explicitly marks as
    plain http through ``X-Forwarded-Proto`` are refused; requests carrying
    no such header pass.
    """
    def decorator(view):
        @wraps(view)
        def wrapper(request, *args, **kwargs):
            if settings.PAYMENTS_REQUIRE_HTTPS and _is_plain_http(request, strict):
                logger.warning("Refused insecure payment request to %s", request.path)
                return error("HTTPS is required", status=403)
            return view(request, *args, **kwargs)
        return wrapper
    return decorator


def _lookup_order(body):
    ref = parse_order_ref((body or {}).get("orderId"))
    return get_order(ref, Order.objects.prefetch_related("items"))


@csrf_exempt
@require_POST
@https_required()
def create_payment_view(request):
    body = json_body(request)
    if not isinstance(body, dict):
        return error("Invalid JSON body")
    try:
        order = _lookup_order(body)
        session = services.create_payment(order, app_user=body.get("appUser") or None)
    except ValidationError as e:
        return error(" ".join(e.messages))
    except Order.DoesNotExist:
        return error("Order not found", status=404)
    except ConfigurationError as e:
        logger.error("Payment configuration error: %s", e)
        return error(str(e), status=500)
    except ProviderUnavailable as e:
        return error(str(e) or "ZaloPay create failed", status=502)
    return ok(
        paymentUrl=session.payment_url,
        token=session.token,
        appTransId=session.app_trans_id,
        signed=session.signed,
    )


def _callback_payload(request):
    content_type = (request.content_type or "").lower()
    if content_type == "application/json":
        return json_body(request)
    if request.POST:
        return {"data": request.POST.get("data"), "mac": request.POST.get("mac")}
    return json_body(request)


# Provider callbacks can arrive through proxies that send no forwarding header.
@csrf_exempt
@require_POST
@https_required(strict=False)
def callback_view(request):
    """Provider notification endpoint; answers in the provider's convention."""
    payload = _callback_payload(request)
    logger.info("Payment callback received content_type=%s", request.content_type)
    if not isinstance(payload, dict) or payload.get("data") is None or payload.get("mac") is None:
        return JsonResponse({"error": "Missing data/mac"}, status=400)
    data, mac = payload["data"], payload["mac"]
    if not isinstance(data, str) or not isinstance(mac, str):
        return JsonResponse({"return_code": 0, "return_message": "invalid callback"})
    try:
        result = services.handle_callback(data, mac)
    except ConfigurationError:
        logger.exception("Payment callback received without payment configuration")
        return JsonResponse({"return_code": 0, "return_message": "internal error"})
    return JsonResponse(result.as_response())


@csrf_exempt
@require_POST
@https_required()
def payment_status_view(request):
    body = json_body(request) or {}
    if not isinstance(body, dict):
        return error("Invalid JSON body")
    try:
        order = _lookup_order(body)
        result = services.poll_status(order)
    except ValidationError as e:
        return error(" ".join(e.messages))
    except Order.DoesNotExist:
        return error("Order not found", status=404)
    except ConfigurationError as e:
        logger.error("Payment configuration error: %s", e)
        return error(str(e), status=500)
    except ProviderUnavailable as e:
        return error(str(e) or "Query failed", status=502)
    return ok(isPaid=result.is_paid, provider=result.provider)
