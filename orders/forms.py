from django import forms

from storefront.forms import JsonForm
from .models import Order

CUSTOMER_ALIASES = {
    "customerName": "customer_name",
    "customerPhone": "customer_phone",
    "customerEmail": "customer_email",
    "deliveryAddress": "delivery_address",
    "paymentMethod": "payment_method",
    "specialInstructions": "special_instructions",
}


def _clean_phone(raw: str) -> str:
    phone = "".join(ch for ch in (raw or "") if ch.isdigit() or ch == "+")
    if len(phone.lstrip("+")) < 8:
        raise forms.ValidationError("Invalid phone number")
    return phone


class CheckoutForm(JsonForm):
    aliases = CUSTOMER_ALIASES
    # Totals are computed server-side from the catalog.
    ignored_keys = ("subtotal", "deliveryFee", "total")

    customer_name = forms.CharField(max_length=120)
    customer_phone = forms.CharField(max_length=20)
    customer_email = forms.EmailField(required=False)
    delivery_address = forms.CharField()
    payment_method = forms.ChoiceField(choices=Order.PAYMENT_METHOD_CHOICES)
    special_instructions = forms.CharField(required=False)
    items = forms.JSONField()

    def clean_customer_phone(self):
        return _clean_phone(self.cleaned_data["customer_phone"])

    def clean_items(self):
        raw = self.cleaned_data["items"]
        if not isinstance(raw, list) or not raw:
            raise forms.ValidationError("Order must have at least one item")
        lines = []
        for entry in raw:
            if not isinstance(entry, dict):
                raise forms.ValidationError("Invalid item")
            product = entry.get("product")
            product_id = entry.get("productId")
            if product_id is None and isinstance(product, dict):
                product_id = product.get("id")
            variant = entry.get("variant")
            variant_id = entry.get("variantId")
            if variant_id is None and isinstance(variant, dict):
                variant_id = variant.get("id")
            try:
                product_id = int(product_id)
                variant_id = int(variant_id) if variant_id not in (None, "") else None
                quantity = int(entry.get("quantity", 1))
            except (TypeError, ValueError):
                raise forms.ValidationError(f"Invalid item: {entry!r}")
            if quantity < 1:
                raise forms.ValidationError("Quantity must be at least 1")
            lines.append({
                "product_id": product_id,
                "variant_id": variant_id,
                "quantity": quantity,
                "special_instructions": str(entry.get("specialInstructions") or "").strip(),
            })
        return lines


class OrderUpdateForm(JsonForm):
    """The fields an admin may change on an existing order."""

    aliases = {
        **CUSTOMER_ALIASES,
        "paymentStatus": "payment_status",
        "estimatedDeliveryTime": "estimated_delivery_time",
    }

    status = forms.ChoiceField(choices=Order.STATUS_CHOICES)
    payment_status = forms.ChoiceField(choices=Order.PAYMENT_STATUS_CHOICES)
    payment_method = forms.ChoiceField(choices=Order.PAYMENT_METHOD_CHOICES)
    customer_name = forms.CharField(max_length=120)
    customer_phone = forms.CharField(max_length=20)
    customer_email = forms.EmailField(required=False)
    delivery_address = forms.CharField()
    special_instructions = forms.CharField(required=False)
    notes = forms.CharField(required=False)
    estimated_delivery_time = forms.DateTimeField(required=False)

    def clean_customer_phone(self):
        return _clean_phone(self.cleaned_data["customer_phone"])


class OrderStatusForm(JsonForm):
    status = forms.ChoiceField(choices=Order.STATUS_CHOICES)
