import logging

from django.core.exceptions import ValidationError
from django.utils.dateparse import parse_date
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods

from storefront.auth import admin_required
from storefront.http import error, form_errors, json_body, ok, page_params
from .forms import CheckoutForm, OrderStatusForm, OrderUpdateForm
from .models import Order
from .refs import get_order, parse_order_ref
from .services import place_order

logger = logging.getLogger(__name__)


def _orders():
    return Order.objects.prefetch_related("items")


@csrf_exempt
@require_http_methods(["GET", "POST"])
def orders_view(request):
    if request.method == "POST":
        return _checkout(request)
    return _list_orders(request)


def _checkout(request):
    form = CheckoutForm(json_body(request))
    if not form.is_valid():
        return error(form_errors(form))
    customer = dict(form.cleaned_data)
    items = customer.pop("items")
    try:
        order = place_order(customer, items)
    except ValidationError as e:
        return error(" ".join(e.messages))
    return ok(status=201, data=_orders().get(pk=order.pk).to_dict(), message="Order created successfully")


def _parse_day(raw):
    if not raw:
        return None
    day = parse_date(raw[:10])
    if day is None:
        raise ValueError(raw)
    return day


@admin_required
def _list_orders(request):
    qs = _orders()
    params = request.GET
    if params.get("orderId"):
        qs = qs.filter(order_id=params["orderId"])
    if params.get("phone"):
        qs = qs.filter(customer_phone=params["phone"])
    if params.get("status"):
        qs = qs.filter(status=params["status"])
    if params.get("paymentStatus"):
        qs = qs.filter(payment_status=params["paymentStatus"])
    try:
        start, end = _parse_day(params.get("startDate")), _parse_day(params.get("endDate"))
    except ValueError:
        return error("Invalid date range")
    if start:
        qs = qs.filter(created_at__date__gte=start)
    if end:
        qs = qs.filter(created_at__date__lte=end)

    page, limit = page_params(request)
    total = qs.count()
    offset = (page - 1) * limit
    data = [o.to_dict() for o in qs[offset:offset + limit]]
    return ok(data=data, total=total, page=page, totalPages=(total + limit - 1) // limit)


@require_GET
def order_track_view(request):
    """Public order lookup; a phone number is always required."""
    phone = (request.GET.get("phone") or "").strip()
    if not phone:
        return error("phone is required")
    qs = _orders().filter(customer_phone=phone)
    code = (request.GET.get("orderId") or "").strip()
    if code:
        qs = qs.filter(order_id=code.upper())
    return ok(data=[o.to_dict() for o in qs[:20]])


@csrf_exempt
@require_http_methods(["GET", "PATCH", "DELETE"])
@admin_required
def order_detail_view(request, ref: str):
    try:
        order = get_order(parse_order_ref(ref), _orders())
    except ValidationError as e:
        return error(" ".join(e.messages))
    except Order.DoesNotExist:
        return error("Order not found", status=404)

    if request.method == "GET":
        return ok(data=order.to_dict())

    if request.method == "DELETE":
        order.delete()
        logger.info("Deleted order %s", order.order_id)
        return ok(message="Order deleted successfully")

    form = OrderUpdateForm(json_body(request), partial=True)
    if not form.is_valid():
        return error(form_errors(form))
    changes = form.cleaned_data
    if not changes:
        return error("Nothing to update")
    for name, value in changes.items():
        setattr(order, name, "" if value is None and name != "estimated_delivery_time" else value)
    order.save(update_fields=[*changes, "updated_at"])
    logger.info("Updated order %s fields=%s", order.order_id, sorted(changes))
    return ok(data=order.to_dict(), message="Order updated successfully")


@csrf_exempt
@require_http_methods(["PATCH"])
@admin_required
def order_status_view(request, ref: str):
    form = OrderStatusForm(json_body(request))
    if not form.is_valid():
        return error(form_errors(form))
    try:
        order = get_order(parse_order_ref(ref), _orders())
    except ValidationError as e:
        return error(" ".join(e.messages))
    except Order.DoesNotExist:
        return error("Order not found", status=404)
    order.status = form.cleaned_data["status"]
    order.save(update_fields=["status", "updated_at"])
    return ok(data=order.to_dict(), message=f"Order status updated to {order.status}")
