from django.contrib import admin

from .models import Nonce


@admin.register(Nonce)
class NonceAdmin(admin.ModelAdmin):
    list_display = ("nonce", "purpose", "created_at", "is_expired")
    search_fields = ("nonce",)
    list_filter = ("purpose", "created_at")
    readonly_fields = ("nonce", "purpose", "created_at")

    @admin.display(boolean=True)
    def is_expired(self, obj):
        return obj.is_expired
