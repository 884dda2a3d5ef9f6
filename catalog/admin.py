from django import forms
from django.contrib import admin

from . import ordering
from .models import Category, Product, ProductVariant


class CategoryAdminForm(forms.ModelForm):
    order = forms.IntegerField(min_value=1, required=False)

    class Meta:
        model = Category
        fields = ("name", "name_en", "description", "image", "order")

    def validate_unique(self):
        # A taken position is resolved on save, not rejected.
        pass


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    form = CategoryAdminForm
    list_display = ("order", "name", "name_en", "created_at")
    search_fields = ("name", "name_en")
    readonly_fields = ("created_at", "updated_at")
    actions = ["renumber"]

    # Positions change through the ordinal manager so the unique index holds.
    def save_model(self, request, obj, form, change):
        fields = {f: form.cleaned_data[f] for f in ("name", "name_en", "description", "image")}
        if change:
            ordering.update_category(obj, fields, order=form.cleaned_data.get("order"))
        else:
            created = ordering.create_category(fields, order=form.cleaned_data.get("order"))
            obj.pk, obj.order = created.pk, created.order

    def delete_model(self, request, obj):
        ordering.delete_category(obj)

    def delete_queryset(self, request, queryset):
        for obj in queryset.order_by("-order"):
            ordering.delete_category(obj)

    @admin.action(description="Renumber all categories by creation time")
    def renumber(self, request, queryset):
        changes = ordering.renumber_all()
        self.message_user(request, f"Renumbered {len(changes)} categories.")


class ProductVariantInline(admin.TabularInline):
    model = ProductVariant
    extra = 0


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "category", "price", "featured", "available", "created_at")
    list_filter = ("category", "featured", "available")
    search_fields = ("name", "name_en", "description")
    inlines = [ProductVariantInline]
