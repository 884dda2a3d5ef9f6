from django.db import models


class Order(models.Model):
    STATUS_CHOICES = [
        ("pending", "pending"),
        ("confirmed", "confirmed"),
        ("preparing", "preparing"),
        ("ready", "ready"),
        ("delivering", "delivering"),
        ("completed", "completed"),
        ("cancelled", "cancelled"),
    ]
    PAYMENT_STATUS_CHOICES = [
        ("pending", "pending"),
        ("paid", "paid"),
        ("failed", "failed"),
    ]
    PAYMENT_METHOD_CHOICES = [
        ("cash", "cash"),
        ("card", "card"),
        ("online", "online"),
        ("zalopay", "zalopay"),
    ]

    order_id = models.CharField(max_length=20, unique=True, db_index=True)  # ORD-001
    customer_name = models.CharField(max_length=120)
    customer_phone = models.CharField(max_length=20, db_index=True)
    customer_email = models.EmailField(blank=True, default="")
    delivery_address = models.TextField()

    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    delivery_fee = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total = models.DecimalField(max_digits=12, decimal_places=2)

    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default="pending", db_index=True)
    payment_method = models.CharField(max_length=16, choices=PAYMENT_METHOD_CHOICES)
    payment_status = models.CharField(
        max_length=16, choices=PAYMENT_STATUS_CHOICES, default="pending", db_index=True
    )
    # app_trans_id echoed back by the payment provider
    zp_provider_trans_id = models.CharField(max_length=64, blank=True, default="", db_index=True)

    special_instructions = models.TextField(blank=True, default="")
    notes = models.TextField(blank=True, default="")
    estimated_delivery_time = models.DateTimeField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-created_at",)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"

    def __str__(self):
        return f"{self.order_id} ({self.status}/{self.payment_status})"

    def to_dict(self) -> dict:
        return {
            "id": str(self.pk),
            "orderId": self.order_id,
            "customerName": self.customer_name,
            "customerPhone": self.customer_phone,
            "customerEmail": self.customer_email or None,
            "deliveryAddress": self.delivery_address,
            "items": [item.to_dict() for item in self.items.all()],
            "subtotal": float(self.subtotal),
            "deliveryFee": float(self.delivery_fee),
            "total": float(self.total),
            "status": self.status,
            "paymentMethod": self.payment_method,
            "paymentStatus": self.payment_status,
            "zpProviderTransId": self.zp_provider_trans_id or None,
            "specialInstructions": self.special_instructions or None,
            "notes": self.notes or None,
            "estimatedDeliveryTime": (
                self.estimated_delivery_time.isoformat() if self.estimated_delivery_time else None
            ),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(
        "catalog.Product", on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    # Snapshot of the product at checkout time
    product_name = models.CharField(max_length=200)
    product_price = models.DecimalField(max_digits=12, decimal_places=2)
    variant_name = models.CharField(max_length=120, blank=True, default="")
    quantity = models.PositiveIntegerField()
    special_instructions = models.TextField(blank=True, default="")

    @property
    def line_total(self):
        return self.product_price * self.quantity

    def __str__(self):
        return f"{self.quantity} x {self.product_name}"

    def to_dict(self) -> dict:
        return {
            "product": str(self.product_id) if self.product_id else None,
            "productName": self.product_name,
            "productPrice": float(self.product_price),
            "variantName": self.variant_name or None,
            "quantity": self.quantity,
            "specialInstructions": self.special_instructions or None,
        }
