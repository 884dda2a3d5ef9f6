from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models


class Category(models.Model):
    name = models.CharField(max_length=120)
    name_en = models.CharField(max_length=120)
    description = models.TextField()
    image = models.CharField(max_length=500)
    # Display position; kept unique and dense by catalog.ordering
    order = models.PositiveIntegerField(unique=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("order",)
        verbose_name_plural = "categories"

    def __str__(self):
        return f"{self.order}. {self.name}"

    def to_dict(self) -> dict:
        return {
            "id": str(self.pk),
            "name": self.name,
            "nameEn": self.name_en,
            "description": self.description,
            "image": self.image,
            "order": self.order,
        }


class Product(models.Model):
    name = models.CharField(max_length=200)
    name_en = models.CharField(max_length=200)
    description = models.TextField()
    description_en = models.TextField()
    price = models.DecimalField(max_digits=12, decimal_places=2, blank=True, null=True)
    image = models.CharField(max_length=500)
    category = models.ForeignKey(Category, on_delete=models.PROTECT, related_name="products")
    featured = models.BooleanField(default=False, db_index=True)
    available = models.BooleanField(default=True, db_index=True)
    spicy_level = models.PositiveSmallIntegerField(
        default=0, validators=[MinValueValidator(0), MaxValueValidator(5)]
    )
    tags = models.JSONField(default=list, blank=True)
    preparation_time = models.PositiveIntegerField(blank=True, null=True)  # minutes

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-featured", "-created_at")
        indexes = [models.Index(fields=["category", "featured"], name="product_category_featured_idx")]

    def __str__(self):
        return self.name

    def unit_price(self, variant=None):
        if variant is not None:
            return variant.price
        return self.price

    def to_dict(self) -> dict:
        return {
            "id": str(self.pk),
            "name": self.name,
            "nameEn": self.name_en,
            "description": self.description,
            "descriptionEn": self.description_en,
            "price": float(self.price) if self.price is not None else None,
            "variants": [v.to_dict() for v in self.variants.all()],
            "image": self.image,
            "category": str(self.category_id),
            "categoryId": str(self.category_id),
            "featured": self.featured,
            "available": self.available,
            "spicyLevel": self.spicy_level,
            "tags": list(self.tags or []),
            "preparationTime": self.preparation_time,
        }


class ProductVariant(models.Model):
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name="variants")
    name = models.CharField(max_length=120)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    available = models.BooleanField(default=True)

    def __str__(self):
        return f"{self.product.name} / {self.name}"

    def to_dict(self) -> dict:
        return {
            "id": str(self.pk),
            "name": self.name,
            "price": float(self.price),
            "available": self.available,
        }
