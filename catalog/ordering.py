"""Keeps ``Category.order`` unique and dense.

The ``order`` column has a unique index and databases check it row by row
while an UPDATE runs, so a plain ``order = order + 1`` over a range can trip
over its own neighbours. Every move of more than one row is staged through
temporary values strictly above the largest order in use.

Reassignment always uses the swap strategy: whoever holds the requested slot
takes the mover's old slot. Single edits and drag-and-drop reorders both go
through it. Requested positions past the end are clamped to the end,
so no operation can leave a gap behind.
"""
import logging
from functools import wraps

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import F, Max

from .models import Category

logger = logging.getLogger(__name__)

TEMP_GAP = 1000


class OrderingConflict(Exception):
    """The unique ``order`` index rejected a write. Repair with ``fix_category_orders``."""


def _guarded(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            with transaction.atomic():
                return func(*args, **kwargs)
        except IntegrityError as e:
            logger.error("Category order conflict in %s: %s", func.__name__, e)
            raise OrderingConflict(
                "Category order conflict; run the fix_category_orders repair"
            ) from e
    return wrapper


def _clean_ordinal(value) -> int:
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError(f"Invalid order value: {value!r}")
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid order value: {value!r}")
    if n < 1:
        raise ValidationError(f"Order must be a positive integer, got {n}")
    return n


def max_order() -> int:
    return Category.objects.aggregate(m=Max("order"))["m"] or 0


def _set_order(pk, value: int) -> None:
    Category.objects.filter(pk=pk).update(order=value)


def _shift(queryset, delta: int) -> int:
    """Move every category in ``queryset`` by ``delta`` in two staged passes."""
    ids = list(queryset.values_list("pk", flat=True))
    if not ids:
        return 0
    offset = max_order() + TEMP_GAP
    Category.objects.filter(pk__in=ids).update(order=F("order") + offset)
    Category.objects.filter(pk__in=ids).update(order=F("order") - offset + delta)
    return len(ids)


@_guarded
def assign_on_insert(requested=None) -> int:
    """Pick the order for a new category, opening a slot when ``requested`` is taken.

    Anything past the end appends.
    """
    if requested is None:
        return max_order() + 1
    requested = min(_clean_ordinal(requested), max_order() + 1)
    if Category.objects.filter(order=requested).exists():
        moved = _shift(Category.objects.filter(order__gte=requested), +1)
        logger.info("Opened slot %s for new category, shifted %s", requested, moved)
    return requested


@_guarded
def reassign(category: Category, new_order) -> Category:
    new_order = min(_clean_ordinal(new_order), Category.objects.count())
    current = Category.objects.filter(pk=category.pk).values_list("order", flat=True).get()
    if current == new_order:
        category.order = current
        return category

    holder = (
        Category.objects.filter(order=new_order)
        .exclude(pk=category.pk)
        .values_list("pk", flat=True)
        .first()
    )
    if holder is None:
        _set_order(category.pk, new_order)
    else:
        _set_order(holder, max_order() + TEMP_GAP)
        _set_order(category.pk, new_order)
        _set_order(holder, current)
        logger.info("Swapped category %s (%s -> %s) with %s", category.pk, current, new_order, holder)
    category.order = new_order
    return category


@_guarded
def bulk_reorder(pairs) -> int:
    """Apply ``(category_id, order)`` pairs in sequence; returns the number of writes.

    Unknown ids and pairs that are already satisfied are skipped. Orders past
    the end are clamped to the last slot.
    """
    pairs = [(pk, _clean_ordinal(order)) for pk, order in pairs]
    id_to_order = dict(Category.objects.values_list("pk", "order"))
    order_to_id = {order: pk for pk, order in id_to_order.items()}
    last = len(id_to_order)

    writes = 0
    for pk, desired in pairs:
        desired = min(desired, last)
        current = id_to_order.get(pk)
        if current is None or current == desired:
            continue

        holder = order_to_id.get(desired)
        if holder is not None and holder != pk:
            _set_order(holder, max(order_to_id) + TEMP_GAP)
            _set_order(pk, desired)
            _set_order(holder, current)
            order_to_id[desired] = pk
            order_to_id[current] = holder
            id_to_order[pk] = desired
            id_to_order[holder] = current
            writes += 3
        else:
            _set_order(pk, desired)
            del order_to_id[current]
            order_to_id[desired] = pk
            id_to_order[pk] = desired
            writes += 1
    return writes


@_guarded
def compact_on_delete(deleted_order: int) -> int:
    return _shift(Category.objects.filter(order__gt=deleted_order), -1)


@_guarded
def renumber_all():
    """Renumber every category 1..N by creation time.

    Safe to re-run; returns ``(pk, old, new)`` for each category that moved.
    """
    rows = list(Category.objects.order_by("created_at", "pk").values_list("pk", "order"))
    changes = [(pk, old, i) for i, (pk, old) in enumerate(rows, start=1) if old != i]
    if not changes:
        return []
    offset = max(order for _, order in rows) + TEMP_GAP
    Category.objects.filter(pk__in=[pk for pk, _, _ in changes]).update(order=F("order") + offset)
    for pk, _, new in changes:
        _set_order(pk, new)
    return changes


# --- record-level operations used by views and the admin ---

@_guarded
def create_category(fields: dict, order=None) -> Category:
    position = assign_on_insert(order)
    return Category.objects.create(order=position, **fields)


@_guarded
def update_category(category: Category, fields: dict, order=None) -> Category:
    if order is not None:
        reassign(category, order)
    if fields:
        for name, value in fields.items():
            setattr(category, name, value)
        category.save(update_fields=[*fields, "updated_at"])
    return category


@_guarded
def delete_category(category: Category) -> int:
    deleted_order = Category.objects.filter(pk=category.pk).values_list("order", flat=True).get()
    category.delete()
    return compact_on_delete(deleted_order)
