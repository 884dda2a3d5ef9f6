"""Order references.

Handlers receive either the internal primary key or the human-readable code
(``ORD-003``). The raw value is parsed once, at the edge, into one of the two
reference types below and every lookup goes through :func:`get_order`.
"""
from dataclasses import dataclass
from typing import Union

from django.core.exceptions import ValidationError

from .models import Order


@dataclass(frozen=True)
class ByInternalId:
    pk: int


@dataclass(frozen=True)
class ByOrderCode:
    code: str


OrderRef = Union[ByInternalId, ByOrderCode]


def parse_order_ref(raw) -> OrderRef:
    value = str(raw if raw is not None else "").strip()
    if not value:
        raise ValidationError("orderId is required")
    if value.isdigit():
        return ByInternalId(int(value))
    return ByOrderCode(value.upper())


def get_order(ref: OrderRef, queryset=None) -> Order:
    """Fetch the referenced order; raises ``Order.DoesNotExist``."""
    qs = queryset if queryset is not None else Order.objects.all()
    if isinstance(ref, ByInternalId):
        return qs.get(pk=ref.pk)
    if isinstance(ref, ByOrderCode):
        return qs.get(order_id=ref.code)
    raise TypeError(f"Not an order reference: {ref!r}")
