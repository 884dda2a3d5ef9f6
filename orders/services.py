import logging
import re
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from catalog.models import Product, ProductVariant
from .models import Order, OrderItem

logger = logging.getLogger(__name__)

ORDER_CODE_RE = re.compile(r"^ORD-(\d+)$")
MAX_CODE_ATTEMPTS = 5


def next_order_code() -> str:
    """``ORD-###`` numbered one past the most recent order's code."""
    last = Order.objects.order_by("-pk").values_list("order_id", flat=True).first()
    m = ORDER_CODE_RE.match(last or "")
    n = int(m.group(1)) + 1 if m else Order.objects.count() + 1
    return f"ORD-{n:03d}"


def _snapshot_lines(items):
    """Resolve checkout items against the catalog, freezing name and price."""
    products = Product.objects.in_bulk({i["product_id"] for i in items})
    variant_ids = {i["variant_id"] for i in items if i["variant_id"]}
    variants = ProductVariant.objects.in_bulk(variant_ids) if variant_ids else {}

    lines = []
    for item in items:
        product = products.get(item["product_id"])
        if product is None:
            raise ValidationError(f"Product not found: {item['product_id']}")
        if not product.available:
            raise ValidationError(f"Product is not available: {product.name}")
        variant = None
        if item["variant_id"]:
            variant = variants.get(item["variant_id"])
            if variant is None or variant.product_id != product.pk:
                raise ValidationError(f"Variant not found for {product.name}: {item['variant_id']}")
            if not variant.available:
                raise ValidationError(f"Variant is not available: {product.name} / {variant.name}")
        price = product.unit_price(variant)
        if price is None:
            raise ValidationError(f"Choose a variant for {product.name}")
        lines.append(OrderItem(
            product=product,
            product_name=product.name,
            product_price=price,
            variant_name=variant.name if variant else "",
            quantity=item["quantity"],
            special_instructions=item["special_instructions"],
        ))
    return lines


def place_order(customer: dict, items) -> Order:
    """Create a pending order from checkout data.

    ``customer`` holds the cleaned customer/payment fields of the checkout
    form, ``items`` the cleaned item list.
    """
    lines = _snapshot_lines(items)
    subtotal = sum((line.line_total for line in lines), Decimal("0"))
    delivery_fee = Decimal(settings.DELIVERY_FEE)
    eta = timezone.now() + timedelta(minutes=settings.ESTIMATED_DELIVERY_MINUTES)

    # Two checkouts can race for the same code; the unique index decides.
    for attempt in range(1, MAX_CODE_ATTEMPTS + 1):
        try:
            with transaction.atomic():
                order = Order.objects.create(
                    order_id=next_order_code(),
                    subtotal=subtotal,
                    delivery_fee=delivery_fee,
                    total=subtotal + delivery_fee,
                    status="pending",
                    payment_status="pending",
                    estimated_delivery_time=eta,
                    **customer,
                )
                for line in lines:
                    line.order = order
                OrderItem.objects.bulk_create(lines)
            break
        except IntegrityError:
            if attempt == MAX_CODE_ATTEMPTS:
                raise
            logger.warning("Order code collision, retrying (attempt %s)", attempt)

    logger.info("Placed order %s total=%s method=%s", order.order_id, order.total, order.payment_method)
    return order
