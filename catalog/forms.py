from decimal import Decimal, InvalidOperation

from django import forms

from storefront.forms import JsonForm
from .models import Category


class CategoryForm(JsonForm):
    aliases = {"nameEn": "name_en"}

    name = forms.CharField(max_length=120)
    name_en = forms.CharField(max_length=120)
    description = forms.CharField()
    image = forms.CharField(max_length=500)
    order = forms.IntegerField(min_value=1, required=False)

    def record_fields(self) -> dict:
        """Cleaned values that map straight onto Category columns."""
        return {k: v for k, v in self.cleaned_data.items() if k != "order"}


class CategoryReorderForm(JsonForm):
    categories = forms.JSONField(required=False)

    def clean_categories(self):
        raw = self.cleaned_data.get("categories")
        if raw is None and "categories" in self.data:
            raw = []
        if not isinstance(raw, list):
            raise forms.ValidationError("Invalid categories data")
        pairs = []
        for entry in raw:
            if not isinstance(entry, dict) or "id" not in entry or "order" not in entry:
                raise forms.ValidationError("Each entry needs an id and an order")
            try:
                pk = int(entry["id"])
                order = int(entry["order"])
            except (TypeError, ValueError):
                raise forms.ValidationError(f"Invalid entry: {entry!r}")
            if order < 1:
                raise forms.ValidationError(f"Invalid order for category {pk}")
            pairs.append((pk, order))
        return pairs


class ProductForm(JsonForm):
    aliases = {
        "nameEn": "name_en",
        "descriptionEn": "description_en",
        "categoryId": "category",
        "spicyLevel": "spicy_level",
        "preparationTime": "preparation_time",
    }

    name = forms.CharField(max_length=200)
    name_en = forms.CharField(max_length=200)
    description = forms.CharField()
    description_en = forms.CharField()
    price = forms.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    image = forms.CharField(max_length=500)
    category = forms.ModelChoiceField(queryset=Category.objects.all())
    featured = forms.BooleanField(required=False)
    available = forms.BooleanField(required=False)
    spicy_level = forms.IntegerField(min_value=0, max_value=5, required=False)
    tags = forms.JSONField(required=False)
    preparation_time = forms.IntegerField(min_value=0, required=False)
    variants = forms.JSONField(required=False)

    def clean_tags(self):
        tags = self.cleaned_data.get("tags")
        if tags in (None, ""):
            return []
        if not isinstance(tags, list):
            raise forms.ValidationError("tags must be a list")
        return [str(t).strip() for t in tags if str(t).strip()]

    def clean_variants(self):
        raw = self.cleaned_data.get("variants")
        if raw in (None, ""):
            return []
        if not isinstance(raw, list):
            raise forms.ValidationError("variants must be a list")
        out = []
        for v in raw:
            if not isinstance(v, dict) or not str(v.get("name", "")).strip():
                raise forms.ValidationError("Each variant needs a name")
            try:
                price = Decimal(str(v.get("price")))
            except (InvalidOperation, TypeError):
                raise forms.ValidationError(f"Invalid price for variant {v.get('name')!r}")
            if price < 0:
                raise forms.ValidationError("Variant price must be positive")
            out.append({
                "name": str(v["name"]).strip(),
                "price": price,
                "available": bool(v.get("available", True)),
            })
        return out

    def clean(self):
        cleaned = super().clean()
        if not self.partial:
            if cleaned.get("price") is None and not cleaned.get("variants"):
                raise forms.ValidationError("Product needs a price or at least one variant")
            if "available" not in self.data:
                cleaned["available"] = True
        if "spicy_level" in self.fields and cleaned.get("spicy_level") is None:
            cleaned["spicy_level"] = 0
        return cleaned


class ProductBulkForm(JsonForm):
    ids = forms.JSONField()
    updates = forms.JSONField(required=False)

    def clean_ids(self):
        ids = self.cleaned_data["ids"]
        if not isinstance(ids, list) or not ids:
            raise forms.ValidationError("Invalid product IDs")
        out = []
        for raw in ids:
            try:
                out.append(int(raw))
            except (TypeError, ValueError):
                raise forms.ValidationError(f"Invalid product ID: {raw}")
        return out


class ProductBulkUpdateForm(JsonForm):
    """The closed set of fields a bulk update may touch."""

    aliases = {"categoryId": "category"}

    available = forms.BooleanField(required=False)
    featured = forms.BooleanField(required=False)
    category = forms.ModelChoiceField(queryset=Category.objects.all())
