import logging

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import ProtectedError, Q
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from storefront.auth import admin_required
from storefront.http import error, form_errors, json_body, ok, page_params
from . import ordering
from .forms import (
    CategoryForm,
    CategoryReorderForm,
    ProductBulkForm,
    ProductBulkUpdateForm,
    ProductForm,
)
from .models import Category, Product, ProductVariant

logger = logging.getLogger(__name__)


def _ordering_error(e):
    if isinstance(e, ordering.OrderingConflict):
        return error(str(e), status=409)
    return error(" ".join(e.messages), status=400)


# ---------- categories ----------

@csrf_exempt
@require_http_methods(["GET", "POST"])
def categories_view(request):
    if request.method == "POST":
        return _create_category(request)
    data = [c.to_dict() for c in Category.objects.order_by("order")]
    return ok(data=data)


@admin_required
def _create_category(request):
    form = CategoryForm(json_body(request))
    if not form.is_valid():
        return error(form_errors(form))
    try:
        category = ordering.create_category(form.record_fields(), order=form.cleaned_data.get("order"))
    except (ordering.OrderingConflict, ValidationError) as e:
        return _ordering_error(e)
    logger.info("Created category %s at order %s", category.pk, category.order)
    return ok(status=201, data=category.to_dict(), message="Category created successfully")


@csrf_exempt
@require_http_methods(["GET", "PATCH", "DELETE"])
def category_detail_view(request, pk: int):
    try:
        category = Category.objects.get(pk=pk)
    except Category.DoesNotExist:
        return error("Category not found", status=404)
    if request.method == "GET":
        return ok(data=category.to_dict())
    if request.method == "PATCH":
        return _update_category(request, category)
    return _delete_category(request, category)


@admin_required
def _update_category(request, category):
    form = CategoryForm(json_body(request), partial=True)
    if not form.is_valid():
        return error(form_errors(form))
    try:
        ordering.update_category(category, form.record_fields(), order=form.cleaned_data.get("order"))
    except (ordering.OrderingConflict, ValidationError) as e:
        return _ordering_error(e)
    category.refresh_from_db()
    return ok(data=category.to_dict(), message="Category updated successfully")


@admin_required
def _delete_category(request, category):
    try:
        moved = ordering.delete_category(category)
    except ProtectedError:
        return error("Category still has products", status=409)
    except ordering.OrderingConflict as e:
        return _ordering_error(e)
    logger.info("Deleted category, compacted %s others", moved)
    return ok(message="Category deleted successfully")


@csrf_exempt
@require_http_methods(["POST"])
@admin_required
def categories_reorder_view(request):
    form = CategoryReorderForm(json_body(request))
    if not form.is_valid():
        return error(form_errors(form))
    try:
        writes = ordering.bulk_reorder(form.cleaned_data["categories"])
    except (ordering.OrderingConflict, ValidationError) as e:
        return _ordering_error(e)
    return ok(message="Category order updated successfully", writes=writes)


# ---------- products ----------

def _product_queryset():
    return Product.objects.select_related("category").prefetch_related("variants")


def _save_variants(product, variants):
    product.variants.all().delete()
    ProductVariant.objects.bulk_create(ProductVariant(product=product, **v) for v in variants)


@csrf_exempt
@require_http_methods(["GET", "POST"])
def products_view(request):
    if request.method == "POST":
        return _create_product(request)

    qs = _product_queryset()
    category = request.GET.get("category")
    if category and category != "all":
        qs = qs.filter(category_id=category) if category.isdigit() else qs.none()
    if request.GET.get("featured") == "true":
        qs = qs.filter(featured=True)
    if request.GET.get("showUnavailable") != "true":
        qs = qs.filter(available=True)
    search = (request.GET.get("search") or "").strip()
    if search:
        qs = qs.filter(
            Q(name__icontains=search) | Q(name_en__icontains=search)
            | Q(description__icontains=search) | Q(description_en__icontains=search)
        )

    page, limit = page_params(request)
    total = qs.count()
    start = (page - 1) * limit
    items = [p.to_dict() for p in qs[start:start + limit]]
    return ok(data=items, total=total, page=page, totalPages=(total + limit - 1) // limit)


@admin_required
def _create_product(request):
    form = ProductForm(json_body(request))
    if not form.is_valid():
        return error(form_errors(form))
    fields = dict(form.cleaned_data)
    variants = fields.pop("variants", [])
    with transaction.atomic():
        product = Product.objects.create(**fields)
        _save_variants(product, variants)
    logger.info("Created product %s (%s)", product.pk, product.name)
    return ok(status=201, data=_product_queryset().get(pk=product.pk).to_dict(),
              message="Product created successfully")


@csrf_exempt
@require_http_methods(["GET", "PATCH", "DELETE"])
def product_detail_view(request, pk: int):
    try:
        product = _product_queryset().get(pk=pk)
    except Product.DoesNotExist:
        return error("Product not found", status=404)
    if request.method == "GET":
        return ok(data=product.to_dict())
    if request.method == "PATCH":
        return _update_product(request, product)
    return _delete_product(request, product)


@admin_required
def _update_product(request, product):
    form = ProductForm(json_body(request), partial=True)
    if not form.is_valid():
        return error(form_errors(form))
    fields = dict(form.cleaned_data)
    variants = fields.pop("variants", None)
    with transaction.atomic():
        for name, value in fields.items():
            setattr(product, name, value)
        product.save()
        if variants is not None:
            _save_variants(product, variants)
    return ok(data=_product_queryset().get(pk=product.pk).to_dict(),
              message="Product updated successfully")


@admin_required
def _delete_product(request, product):
    product.delete()
    return ok(message="Product deleted successfully")


@csrf_exempt
@require_http_methods(["PATCH", "DELETE"])
@admin_required
def products_bulk_view(request):
    body = json_body(request)
    form = ProductBulkForm(body)
    if not form.is_valid():
        return error(form_errors(form))
    qs = Product.objects.filter(pk__in=form.cleaned_data["ids"])

    if request.method == "DELETE":
        _, per_model = qs.delete()
        deleted = per_model.get("catalog.Product", 0)
        return ok(message=f"Deleted {deleted} products", deletedCount=deleted)

    updates = ProductBulkUpdateForm(form.cleaned_data.get("updates") or {}, partial=True)
    if not updates.is_valid():
        return error(form_errors(updates))
    if not updates.cleaned_data:
        return error("Nothing to update")
    modified = qs.update(**updates.cleaned_data)
    return ok(message=f"Updated {modified} products", modifiedCount=modified)
