import hashlib
import hmac
import json
import re
from datetime import datetime, timezone as dt_timezone
from decimal import Decimal
from unittest.mock import Mock, patch

import requests
from django.core.exceptions import ValidationError
from django.test import SimpleTestCase, TestCase, override_settings

from orders.models import Order, OrderItem
from orders.tests import make_order
from . import services
from .integrations import zalopay


def provider_response(payload, status=200):
    resp = Mock(status_code=status)
    resp.json.return_value = payload
    return resp


def hmac_hex(key, message):
    return hmac.new(key.encode(), message.encode(), hashlib.sha256).hexdigest()


class PaymentConfigTests(SimpleTestCase):
    def test_reads_settings(self):
        cfg = zalopay.get_payment_config()
        self.assertEqual(cfg.app_id, "2553")
        self.assertEqual(cfg.provider_base_url, "https://sb-openapi.example.vn")

    @override_settings(PAY_MAC_KEY="", APP_BASE_URL="")
    def test_missing_values_are_named(self):
        with self.assertRaisesMessage(zalopay.ConfigurationError, "PAY_MAC_KEY, APP_BASE_URL"):
            zalopay.get_payment_config()

    @override_settings(PAY_PROVIDER_BASE_URL="http://sb-openapi.example.vn")
    def test_plain_http_provider_is_refused(self):
        with self.assertRaises(zalopay.ConfigurationError):
            zalopay.get_payment_config()


class SigningTests(SimpleTestCase):
    def test_app_trans_id_uses_local_date_and_code_tail(self):
        # 18:00 UTC on the 24th is already the 25th in Ho Chi Minh City.
        now = datetime(2025, 12, 24, 18, 0, tzinfo=dt_timezone.utc)
        self.assertEqual(zalopay.generate_app_trans_id("ORD-010", now), "251225_RD-010")

    def test_short_codes_are_padded_with_hex(self):
        trans_id = zalopay.generate_app_trans_id("A1")
        self.assertRegex(trans_id, r"^\d{6}_[0-9a-f]{4}A1$")
        self.assertRegex(zalopay.generate_app_trans_id(""), r"^\d{6}_[0-9a-f]{6}$")

    def test_create_mac_covers_fields_in_order(self):
        mac = zalopay.build_create_mac(
            app_id=2553, app_trans_id="251225_RD-010", app_user="0901234567", amount=150000,
            app_time=1766685600000, embed_data="{}", item="[]", key="k1",
        )
        self.assertEqual(mac, hmac_hex("k1", "2553|251225_RD-010|0901234567|150000|1766685600000|{}|[]"))
        self.assertEqual(len(mac), 64)

    def test_query_mac_appends_key(self):
        self.assertEqual(
            zalopay.build_query_mac(2553, "251225_RD-010", "k1"),
            hmac_hex("k1", "2553|251225_RD-010|k1"),
        )

    def test_signed_request_is_self_consistent(self):
        now = datetime(2025, 12, 24, 18, 0, tzinfo=dt_timezone.utc)
        signed = zalopay.sign_create_request(
            order_code="ORD-010", amount=150000, app_user="guest",
            items=[{"name": "Phở", "price": 130000, "quantity": 1}], now=now,
        )
        self.assertEqual(signed["app_time"], int(now.timestamp() * 1000))
        self.assertEqual(signed["callback_url"], "https://shop.example.vn/api/payments/callback")
        self.assertEqual(signed["item"], '[{"name":"Phở","price":130000,"quantity":1}]')
        self.assertEqual(signed["description"], "Thanh toan don hang ORD-010")
        expected = zalopay.build_create_mac(
            app_id=2553, app_trans_id=signed["app_trans_id"], app_user="guest", amount=150000,
            app_time=signed["app_time"], embed_data="{}", item=signed["item"], key="test-mac-key",
        )
        self.assertEqual(signed["mac"], expected)

    def test_amount_rounds_half_up(self):
        self.assertEqual(zalopay.to_provider_amount(Decimal("1000.5")), 1001)
        self.assertEqual(zalopay.to_provider_amount("999.49"), 999)
        with self.assertRaises(ValidationError):
            zalopay.to_provider_amount("abc")


class VerifyCallbackTests(SimpleTestCase):
    def test_valid_mac_returns_payload(self):
        data = json.dumps({"app_trans_id": "251225_001abc", "amount": 150000})
        payload = zalopay.verify_callback(data, hmac_hex("test-callback-key", data))
        self.assertEqual(payload["app_trans_id"], "251225_001abc")

    def test_mismatch_is_rejected(self):
        data = json.dumps({"app_trans_id": "251225_001abc"})
        good = hmac_hex("test-callback-key", data)
        for mac in (good[:-1] + ("0" if good[-1] != "0" else "1"), good[:10], "", hmac_hex("other", data)):
            with self.subTest(mac=mac), self.assertRaises(zalopay.SignatureInvalid):
                zalopay.verify_callback(data, mac)

    def test_signed_non_object_is_a_validation_error(self):
        data = "[1, 2]"
        with self.assertRaises(ValidationError):
            zalopay.verify_callback(data, hmac_hex("test-callback-key", data))


class ProviderCallTests(SimpleTestCase):
    @patch("payments.integrations.zalopay.requests.post")
    def test_query_posts_signed_form(self, post):
        post.return_value = provider_response({"return_code": 1})
        self.assertEqual(zalopay.query_order("251225_RD-010"), {"return_code": 1})
        url = post.call_args.args[0]
        kwargs = post.call_args.kwargs
        self.assertEqual(url, "https://sb-openapi.example.vn/v2/query")
        self.assertEqual(kwargs["data"]["mac"], hmac_hex("test-mac-key", "2553|251225_RD-010|test-mac-key"))
        self.assertEqual(kwargs["timeout"], 30)

    @patch("payments.integrations.zalopay.requests.post")
    def test_non_2xx_is_provider_unavailable(self, post):
        post.return_value = provider_response({}, status=503)
        with self.assertRaisesMessage(zalopay.ProviderUnavailable, "503"):
            zalopay.create_order({"app_id": 2553})

    @patch("payments.integrations.zalopay.requests.post", side_effect=requests.ConnectionError("boom"))
    def test_network_failure_is_provider_unavailable(self, post):
        with self.assertRaises(zalopay.ProviderUnavailable):
            zalopay.query_order("251225_RD-010")

    @patch("payments.integrations.zalopay.requests.post")
    def test_non_json_is_provider_unavailable(self, post):
        resp = Mock(status_code=200)
        resp.json.side_effect = ValueError("no json")
        post.return_value = resp
        with self.assertRaises(zalopay.ProviderUnavailable):
            zalopay.query_order("251225_RD-010")


class CreatePaymentTests(TestCase):
    def setUp(self):
        self.order = make_order("ORD-010", total="150000")
        OrderItem.objects.create(
            order=self.order, product_name="Pho bo", product_price=Decimal("65000"), quantity=2,
        )

    @patch("payments.integrations.zalopay.requests.post")
    def test_create_signs_and_records_transaction(self, post):
        post.return_value = provider_response(
            {"return_code": 1, "order_url": "https://qcgateway.example.vn/pay/abc", "zp_trans_token": "tok"}
        )
        session = services.create_payment(self.order)

        self.assertRegex(session.app_trans_id, r"^\d{6}_.{6}$")
        self.assertTrue(re.fullmatch(r"[0-9a-f]{64}", session.signed["mac"]))
        self.assertEqual(session.payment_url, "https://qcgateway.example.vn/pay/abc")
        self.assertEqual(session.token, "tok")

        self.assertEqual(post.call_args.args[0], "https://sb-openapi.example.vn/v2/create")
        form = post.call_args.kwargs["data"]
        self.assertEqual(form["amount"], 150000)
        self.assertEqual(form["app_user"], "0901234567")
        self.assertEqual(
            json.loads(form["item"]),
            [{"name": "Pho bo", "price": 65000, "quantity": 2}, {"name": "Delivery fee", "price": 20000, "quantity": 1}],
        )
        embed = json.loads(form["embed_data"])
        self.assertEqual(embed["redirect_url"], "https://shop.example.vn/order-success?orderId=ORD-010&source=zalopay")

        self.order.refresh_from_db()
        self.assertEqual(self.order.zp_provider_trans_id, session.app_trans_id)
        self.assertEqual(self.order.payment_method, "zalopay")
        self.assertEqual(self.order.payment_status, "pending")

    @patch("payments.integrations.zalopay.requests.post")
    def test_explicit_app_user_wins(self, post):
        post.return_value = provider_response({"order_url": "https://pay"})
        services.create_payment(self.order, app_user="user-7")
        self.assertEqual(post.call_args.kwargs["data"]["app_user"], "user-7")

    @patch("payments.integrations.zalopay.requests.post")
    def test_provider_error_leaves_order_untouched(self, post):
        post.return_value = provider_response({}, status=500)
        with self.assertRaises(zalopay.ProviderUnavailable):
            services.create_payment(self.order)
        self.order.refresh_from_db()
        self.assertEqual((self.order.zp_provider_trans_id, self.order.payment_method), ("", "cash"))

    @patch("payments.integrations.zalopay.requests.post")
    def test_rejected_create_surfaces_provider_message(self, post):
        post.return_value = provider_response({"return_code": 2, "return_message": "Giao dịch thất bại"})
        with self.assertRaisesMessage(zalopay.ProviderUnavailable, "Giao dịch thất bại"):
            services.create_payment(self.order)
        self.order.refresh_from_db()
        self.assertEqual(self.order.zp_provider_trans_id, "")

    @override_settings(PAY_CALLBACK_KEY="")
    @patch("payments.integrations.zalopay.requests.post")
    def test_missing_config_fails_before_network(self, post):
        with self.assertRaises(zalopay.ConfigurationError):
            services.create_payment(self.order)
        post.assert_not_called()

    @patch("payments.integrations.zalopay.requests.post")
    def test_zero_total_is_rejected(self, post):
        Order.objects.filter(pk=self.order.pk).update(total=Decimal("0.4"))
        self.order.refresh_from_db()
        with self.assertRaises(ValidationError):
            services.create_payment(self.order)
        post.assert_not_called()

    @patch("payments.integrations.zalopay.requests.post")
    def test_paid_order_is_not_charged_again(self, post):
        Order.objects.filter(pk=self.order.pk).update(payment_status="paid")
        self.order.refresh_from_db()
        with self.assertRaises(ValidationError):
            services.create_payment(self.order)
        post.assert_not_called()


class PollStatusTests(TestCase):
    def setUp(self):
        self.order = make_order(
            "ORD-010", payment_method="zalopay", zp_provider_trans_id="251225_RD-010"
        )

    @patch("payments.integrations.zalopay.requests.post")
    def test_success_marks_paid_and_completed(self, post):
        post.return_value = provider_response({"return_code": 1, "amount": 150000})
        result = services.poll_status(self.order)
        self.assertTrue(result.is_paid)
        self.assertEqual(result.provider["amount"], 150000)
        self.assertEqual((self.order.payment_status, self.order.status), ("paid", "completed"))

    @patch("payments.integrations.zalopay.requests.post")
    def test_success_converges_from_any_prior_state(self, post):
        post.return_value = provider_response({"return_code": 1})
        for prior in ("pending", "paid", "failed"):
            with self.subTest(prior=prior):
                Order.objects.filter(pk=self.order.pk).update(payment_status=prior, status="pending")
                services.poll_status(self.order)
                self.order.refresh_from_db()
                self.assertEqual((self.order.payment_status, self.order.status), ("paid", "completed"))

    @patch("payments.integrations.zalopay.requests.post")
    def test_not_paid_resets_to_pending(self, post):
        post.return_value = provider_response({"return_code": 3})
        Order.objects.filter(pk=self.order.pk).update(payment_status="failed")
        result = services.poll_status(self.order)
        self.assertFalse(result.is_paid)
        self.assertEqual(self.order.payment_status, "pending")

    @patch("payments.integrations.zalopay.requests.post")
    def test_not_paid_never_downgrades_a_paid_order(self, post):
        post.return_value = provider_response({"return_code": 2})
        Order.objects.filter(pk=self.order.pk).update(payment_status="paid", status="completed")
        services.poll_status(self.order)
        self.assertEqual((self.order.payment_status, self.order.status), ("paid", "completed"))

    def test_requires_transaction_id(self):
        order = make_order("ORD-011")
        with self.assertRaises(ValidationError):
            services.poll_status(order)

    @patch("payments.integrations.zalopay.requests.post", side_effect=requests.Timeout("slow"))
    def test_provider_down_changes_nothing(self, post):
        with self.assertRaises(zalopay.ProviderUnavailable):
            services.poll_status(self.order)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, "pending")
