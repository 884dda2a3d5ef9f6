import logging
from dataclasses import dataclass, field
from urllib.parse import urlencode, urljoin

from django.core.exceptions import ValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from orders.models import Order
from .integrations import zalopay
from .integrations.zalopay import ProviderUnavailable
from .models import Nonce

logger = logging.getLogger(__name__)

PROVIDER = "zalopay"


@dataclass(frozen=True)
class PaymentSession:
    payment_url: str
    token: str
    app_trans_id: str
    signed: dict = field(repr=False)


@dataclass(frozen=True)
class CallbackResult:
    return_code: int
    return_message: str
    replay: bool = False

    def as_response(self) -> dict:
        return {"return_code": self.return_code, "return_message": self.return_message}


@dataclass(frozen=True)
class PollResult:
    is_paid: bool
    provider: dict


def _payment_items(order: Order) -> list:
    items = [
        {
            "name": item.product_name,
            "price": zalopay.to_provider_amount(item.product_price),
            "quantity": max(1, item.quantity),
        }
        for item in order.items.all()
    ]
    fee = zalopay.to_provider_amount(order.delivery_fee)
    if fee > 0:
        items.append({"name": "Delivery fee", "price": fee, "quantity": 1})
    return items


def create_payment(order: Order, app_user=None) -> PaymentSession:
    """Open a hosted payment for ``order`` and remember its transaction id.

    The order is only written after the provider accepted the request; any
    earlier failure leaves it untouched.
    """
    cfg = zalopay.get_payment_config()
    if order.is_paid:
        raise ValidationError("Order is already paid")
    amount = zalopay.to_provider_amount(order.total)
    if amount <= 0:
        raise ValidationError("Invalid order total")

    query = urlencode({"orderId": order.order_id, "source": PROVIDER})
    embed_data = {
        "redirect_url": urljoin(cfg.app_base_url, f"/order-success?{query}"),
        "merchant_info": "web",
    }
    signed = zalopay.sign_create_request(
        order_code=order.order_id,
        amount=amount,
        app_user=app_user or order.customer_phone or order.customer_email or "guest",
        description=f"Thanh toán đơn hàng {order.order_id}",
        items=_payment_items(order),
        embed_data=embed_data,
        config=cfg,
    )
    response = zalopay.create_order(signed, config=cfg)
    payment_url = response.get("order_url")
    if not payment_url:
        message = response.get("return_message") or response.get("message") or "Provider response invalid"
        logger.warning("ZaloPay create rejected order %s: %s", order.order_id, response)
        raise ProviderUnavailable(message)

    Order.objects.filter(pk=order.pk).update(
        zp_provider_trans_id=signed["app_trans_id"],
        payment_method=PROVIDER,
        payment_status="pending",
        updated_at=timezone.now(),
    )
    logger.info("Payment created order=%s app_trans_id=%s amount=%s",
                order.order_id, signed["app_trans_id"], amount)
    return PaymentSession(
        payment_url=payment_url,
        token=response.get("zp_trans_token", ""),
        app_trans_id=signed["app_trans_id"],
        signed=signed,
    )


def _apply_callback(app_trans_id: str, success: bool) -> int:
    changes = {"payment_status": "paid" if success else "failed", "updated_at": timezone.now()}
    if success:
        changes["status"] = "completed"
    return Order.objects.filter(zp_provider_trans_id=app_trans_id).update(**changes)


def handle_callback(data: str, mac: str) -> CallbackResult:
    """Process one provider notification.

    The nonce claim and the order update commit together, so a delivery is
    applied at most once however often the provider retries it.
    """
    try:
        payload = zalopay.verify_callback(data, mac)
    except zalopay.SignatureInvalid:
        logger.warning("Rejected payment callback: invalid signature")
        return CallbackResult(0, "invalid callback")
    except ValidationError:
        logger.warning("Rejected payment callback: malformed data")
        return CallbackResult(0, "invalid callback")

    app_trans_id = str(payload.get("app_trans_id") or "").strip()
    if not app_trans_id:
        logger.warning("Rejected payment callback: missing app_trans_id")
        return CallbackResult(0, "invalid callback")

    purged = Nonce.objects.purge_expired()
    if purged:
        logger.debug("Purged %s expired nonces", purged)

    success = str(payload.get("return_code")) == "1"
    try:
        with transaction.atomic():
            _, created = Nonce.objects.get_or_create(
                nonce=app_trans_id, defaults={"purpose": Nonce.PURPOSE_PAYMENT_CALLBACK}
            )
            if not created:
                logger.info("Replayed payment callback for %s ignored", app_trans_id)
                return CallbackResult(1, "ok", replay=True)
            updated = _apply_callback(app_trans_id, success)
    except IntegrityError:
        # A concurrent delivery claimed the nonce first.
        logger.info("Replayed payment callback for %s ignored (concurrent)", app_trans_id)
        return CallbackResult(1, "ok", replay=True)
    except DatabaseError:
        logger.exception("Failed to apply payment callback for %s", app_trans_id)
        return CallbackResult(1, "success")

    logger.info("Payment callback applied app_trans_id=%s success=%s orders=%s",
                app_trans_id, success, updated)
    return CallbackResult(1, "success")


def poll_status(order: Order) -> PollResult:
    """Ask the provider for the order's payment state and converge on it."""
    app_trans_id = order.zp_provider_trans_id
    if not app_trans_id:
        raise ValidationError("No app_trans_id for this order")
    response = zalopay.query_order(app_trans_id)
    is_paid = str(response.get("return_code")) == "1"

    qs = Order.objects.filter(pk=order.pk)
    if is_paid:
        qs.update(payment_status="paid", status="completed", updated_at=timezone.now())
    else:
        # A paid order never moves backwards on a poll.
        qs.exclude(payment_status="paid").update(payment_status="pending", updated_at=timezone.now())
    order.refresh_from_db(fields=["payment_status", "status", "updated_at"])
    logger.info("Payment poll order=%s app_trans_id=%s paid=%s", order.order_id, app_trans_id, is_paid)
    return PollResult(is_paid=is_paid, provider=response)
