from datetime import timedelta

from django.db import models
from django.utils import timezone

# Provider callbacks are only replay-protected inside this window.
NONCE_TTL = timedelta(minutes=10)


class NonceQuerySet(models.QuerySet):
    def live(self, now=None):
        return self.filter(created_at__gte=(now or timezone.now()) - NONCE_TTL)

    def expired(self, now=None):
        return self.filter(created_at__lt=(now or timezone.now()) - NONCE_TTL)

    def purge_expired(self, now=None) -> int:
        deleted, _ = self.expired(now).delete()
        return deleted


class Nonce(models.Model):
    PURPOSE_PAYMENT_CALLBACK = "payment_callback"

    nonce = models.CharField(max_length=64, unique=True)
    purpose = models.CharField(max_length=32)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    objects = NonceQuerySet.as_manager()

    class Meta:
        ordering = ("-created_at",)

    def __str__(self):
        return f"{self.purpose}:{self.nonce}"

    @property
    def is_expired(self) -> bool:
        return self.created_at < timezone.now() - NONCE_TTL
