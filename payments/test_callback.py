import json
from datetime import timedelta
from io import StringIO
from unittest.mock import patch
from urllib.parse import urlencode

from django.core.management import call_command
from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from orders.models import Order
from orders.tests import make_order
from . import services
from .models import NONCE_TTL, Nonce
from .tests import hmac_hex, provider_response

TRANS_ID = "251225_001abc"


def signed_callback(**data):
    raw = json.dumps(data)
    return raw, hmac_hex("test-callback-key", raw)


class HandleCallbackTests(TestCase):
    def setUp(self):
        self.order = make_order("ORD-001", payment_method="zalopay", zp_provider_trans_id=TRANS_ID)

    def test_success_marks_order_paid(self):
        result = services.handle_callback(*signed_callback(app_trans_id=TRANS_ID, return_code=1))
        self.assertEqual(result.as_response(), {"return_code": 1, "return_message": "success"})
        self.order.refresh_from_db()
        self.assertEqual((self.order.payment_status, self.order.status), ("paid", "completed"))
        self.assertTrue(Nonce.objects.filter(nonce=TRANS_ID, purpose="payment_callback").exists())

    def test_failure_marks_order_failed(self):
        services.handle_callback(*signed_callback(app_trans_id=TRANS_ID, return_code=2))
        self.order.refresh_from_db()
        self.assertEqual((self.order.payment_status, self.order.status), ("failed", "pending"))

    def test_known_nonce_is_a_noop(self):
        Nonce.objects.create(nonce=TRANS_ID, purpose="payment_callback")
        with patch("payments.services._apply_callback") as apply:
            result = services.handle_callback(*signed_callback(app_trans_id=TRANS_ID, return_code=1))
        apply.assert_not_called()
        self.assertEqual(result.return_code, 1)
        self.assertTrue(result.replay)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, "pending")

    def test_duplicate_delivery_is_applied_once(self):
        data, mac = signed_callback(app_trans_id=TRANS_ID, return_code=1)
        with patch("payments.services._apply_callback", wraps=services._apply_callback) as apply:
            first = services.handle_callback(data, mac)
            second = services.handle_callback(data, mac)
        self.assertEqual(apply.call_count, 1)
        self.assertFalse(first.replay)
        self.assertTrue(second.replay)
        self.assertEqual(Nonce.objects.count(), 1)

    def test_invalid_signature_mutates_nothing(self):
        data, _ = signed_callback(app_trans_id=TRANS_ID, return_code=1)
        result = services.handle_callback(data, "0" * 64)
        self.assertEqual(result.return_code, 0)
        self.assertNotIn("signature", result.return_message)
        self.assertFalse(Nonce.objects.exists())
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, "pending")

    def test_missing_trans_id_is_rejected(self):
        result = services.handle_callback(*signed_callback(return_code=1))
        self.assertEqual(result.return_code, 0)
        self.assertFalse(Nonce.objects.exists())

    def test_expired_nonce_no_longer_blocks(self):
        Nonce.objects.create(
            nonce=TRANS_ID, purpose="payment_callback", created_at=timezone.now() - NONCE_TTL - timedelta(minutes=1)
        )
        result = services.handle_callback(*signed_callback(app_trans_id=TRANS_ID, return_code=1))
        self.assertFalse(result.replay)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, "paid")

    def test_failed_update_still_acknowledges_and_rolls_back(self):
        with patch("payments.services._apply_callback", side_effect=DatabaseError("disk full")):
            result = services.handle_callback(*signed_callback(app_trans_id=TRANS_ID, return_code=1))
        self.assertEqual(result.return_code, 1)
        self.assertFalse(Nonce.objects.exists())
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, "pending")


class CallbackViewTests(TestCase):
    def setUp(self):
        self.order = make_order("ORD-001", payment_method="zalopay", zp_provider_trans_id=TRANS_ID)
        self.url = reverse("payments:callback")

    def test_json_body(self):
        data, mac = signed_callback(app_trans_id=TRANS_ID, return_code=1)
        resp = self.client.post(self.url, data=json.dumps({"data": data, "mac": mac}), content_type="application/json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"return_code": 1, "return_message": "success"})
        self.order.refresh_from_db()
        self.assertTrue(self.order.is_paid)

    def test_form_body(self):
        data, mac = signed_callback(app_trans_id=TRANS_ID, return_code=1)
        resp = self.client.post(
            self.url, data=urlencode({"data": data, "mac": mac}), content_type="application/x-www-form-urlencoded"
        )
        self.assertEqual(resp.json()["return_code"], 1)

    def test_missing_fields_is_400(self):
        resp = self.client.post(self.url, data=json.dumps({"data": "{}"}), content_type="application/json")
        self.assertEqual(resp.status_code, 400)

    def test_bad_signature_answers_200_with_rejection(self):
        data, _ = signed_callback(app_trans_id=TRANS_ID, return_code=1)
        resp = self.client.post(
            self.url, data=json.dumps({"data": data, "mac": "deadbeef"}), content_type="application/json"
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["return_code"], 0)

    def test_replay_answers_success(self):
        Nonce.objects.create(nonce=TRANS_ID, purpose="payment_callback")
        data, mac = signed_callback(app_trans_id=TRANS_ID, return_code=1)
        resp = self.client.post(self.url, data=json.dumps({"data": data, "mac": mac}), content_type="application/json")
        self.assertEqual(resp.json()["return_code"], 1)
        self.order.refresh_from_db()
        self.assertFalse(self.order.is_paid)

    @override_settings(PAYMENTS_REQUIRE_HTTPS=True)
    def test_https_guard_refuses_forwarded_plain_http(self):
        data, mac = signed_callback(app_trans_id=TRANS_ID, return_code=1)
        body = json.dumps({"data": data, "mac": mac})
        resp = self.client.post(self.url, data=body, content_type="application/json", HTTP_X_FORWARDED_PROTO="http")
        self.assertEqual(resp.status_code, 403)
        self.assertFalse(Nonce.objects.exists())
        resp = self.client.post(self.url, data=body, content_type="application/json", HTTP_X_FORWARDED_PROTO="https")
        self.assertEqual(resp.json()["return_code"], 1)

    @override_settings(PAYMENTS_REQUIRE_HTTPS=True)
    def test_https_guard_lets_unforwarded_callback_through(self):
        data, mac = signed_callback(app_trans_id=TRANS_ID, return_code=1)
        resp = self.client.post(self.url, data=json.dumps({"data": data, "mac": mac}), content_type="application/json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["return_code"], 1)
        self.order.refresh_from_db()
        self.assertTrue(self.order.is_paid)


class PaymentEndpointTests(TestCase):
    def setUp(self):
        self.order = make_order("ORD-010")

    def _post(self, name, payload, **extra):
        return self.client.post(
            reverse(name), data=json.dumps(payload), content_type="application/json", **extra
        )

    @patch("payments.integrations.zalopay.requests.post")
    def test_create(self, post):
        post.return_value = provider_response({"order_url": "https://pay/abc", "zp_trans_token": "tok"})
        resp = self._post("payments:create", {"orderId": "ORD-010"})
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["paymentUrl"], "https://pay/abc")
        self.assertEqual(body["token"], "tok")
        self.assertRegex(body["appTransId"], r"^\d{6}_.{6}$")

    @patch("payments.integrations.zalopay.requests.post")
    def test_create_error_statuses(self, post):
        resp = self._post("payments:create", {})
        self.assertEqual(resp.status_code, 400)
        resp = self._post("payments:create", {"orderId": "ORD-999"})
        self.assertEqual(resp.status_code, 404)
        post.return_value = provider_response({}, status=500)
        resp = self._post("payments:create", {"orderId": str(self.order.pk)})
        self.assertEqual(resp.status_code, 502)
        with override_settings(PAY_APP_ID=""):
            resp = self._post("payments:create", {"orderId": "ORD-010"})
        self.assertEqual(resp.status_code, 500)
        self.assertIn("PAY_APP_ID", resp.json()["error"])

    @override_settings(PAYMENTS_REQUIRE_HTTPS=True)
    @patch("payments.integrations.zalopay.requests.post")
    def test_https_guard_runs_before_network(self, post):
        resp = self._post("payments:create", {"orderId": "ORD-010"})
        self.assertEqual(resp.status_code, 403)
        resp = self._post("payments:status", {"orderId": "ORD-010"})
        self.assertEqual(resp.status_code, 403)
        resp = self._post("payments:create", {"orderId": "ORD-010"}, HTTP_X_FORWARDED_PROTO="http")
        self.assertEqual(resp.status_code, 403)
        post.assert_not_called()

    @patch("payments.integrations.zalopay.requests.post")
    def test_status(self, post):
        Order.objects.filter(pk=self.order.pk).update(zp_provider_trans_id=TRANS_ID)
        post.return_value = provider_response({"return_code": 1, "zp_trans_id": 99})
        resp = self._post("payments:status", {"orderId": "ORD-010"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["isPaid"], True)
        self.assertEqual(resp.json()["provider"]["zp_trans_id"], 99)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "completed")

    def test_status_without_transaction_is_400(self):
        resp = self._post("payments:status", {"orderId": "ORD-010"})
        self.assertEqual(resp.status_code, 400)


class PaymentCommandTests(TestCase):
    @patch("payments.integrations.zalopay.requests.post")
    def test_reconcile_pending_payments(self, post):
        stale = make_order("ORD-001", payment_method="zalopay", zp_provider_trans_id="251225_RD-001")
        fresh = make_order("ORD-002", payment_method="zalopay", zp_provider_trans_id="251225_RD-002")
        make_order("ORD-003")
        Order.objects.filter(pk=stale.pk).update(updated_at=timezone.now() - timedelta(minutes=5))
        post.return_value = provider_response({"return_code": 1})

        out = StringIO()
        call_command("reconcile_pending_payments", "--sleep", "0", stdout=out)

        self.assertEqual(post.call_count, 1)
        self.assertIn("ORD-001 -> paid", out.getvalue())
        stale.refresh_from_db()
        fresh.refresh_from_db()
        self.assertTrue(stale.is_paid)
        self.assertFalse(fresh.is_paid)

    def test_reconcile_with_nothing_pending(self):
        out = StringIO()
        call_command("reconcile_pending_payments", stdout=out)
        self.assertIn("No pending payments", out.getvalue())

    def test_purge_nonces(self):
        Nonce.objects.create(nonce="old", purpose="payment_callback", created_at=timezone.now() - timedelta(hours=1))
        Nonce.objects.create(nonce="new", purpose="payment_callback")
        out = StringIO()
        call_command("purge_nonces", stdout=out)
        self.assertIn("Purged 1 expired nonces; 1 still live.", out.getvalue())
        self.assertEqual(list(Nonce.objects.values_list("nonce", flat=True)), ["new"])
