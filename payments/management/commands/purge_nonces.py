from django.core.management.base import BaseCommand

from payments.models import Nonce


class Command(BaseCommand):
    help = "Delete callback nonces older than their time-to-live"

    def handle(self, *args, **opts):
        deleted = Nonce.objects.purge_expired()
        live = Nonce.objects.live().count()
        self.stdout.write(self.style.SUCCESS(f"Purged {deleted} expired nonces; {live} still live."))
