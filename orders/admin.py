from django.contrib import admin

from .models import Order, OrderItem


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ("product", "product_name", "product_price", "variant_name", "quantity")


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("order_id", "customer_name", "customer_phone", "total", "status", "payment_status", "created_at")
    search_fields = ("order_id", "customer_name", "customer_phone", "zp_provider_trans_id")
    list_filter = ("status", "payment_status", "payment_method", "created_at")
    readonly_fields = ("order_id", "subtotal", "delivery_fee", "total", "zp_provider_trans_id", "created_at", "updated_at")
    inlines = [OrderItemInline]
