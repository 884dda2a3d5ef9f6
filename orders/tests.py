import json
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import TestCase, override_settings
from django.urls import reverse

from catalog.models import Product, ProductVariant
from catalog.test_api import bearer
from catalog.tests import make_category
from .models import Order
from .refs import ByInternalId, ByOrderCode, get_order, parse_order_ref
from .services import next_order_code, place_order


def make_order(code="ORD-001", total="150000", **kwargs):
    fields = {
        "order_id": code,
        "customer_name": "Lan",
        "customer_phone": "0901234567",
        "delivery_address": "12 Le Loi, Q1",
        "subtotal": Decimal(total) - 20000,
        "delivery_fee": Decimal("20000"),
        "total": Decimal(total),
        "payment_method": "cash",
    }
    fields.update(kwargs)
    return Order.objects.create(**fields)


class OrderRefTests(TestCase):
    def test_digits_are_internal_ids(self):
        self.assertEqual(parse_order_ref("42"), ByInternalId(42))
        self.assertEqual(parse_order_ref(7), ByInternalId(7))

    def test_anything_else_is_an_order_code(self):
        self.assertEqual(parse_order_ref(" ord-003 "), ByOrderCode("ORD-003"))

    def test_empty_is_rejected(self):
        for raw in (None, "", "   "):
            with self.subTest(raw=raw), self.assertRaises(ValidationError):
                parse_order_ref(raw)

    def test_lookup_by_either_reference(self):
        order = make_order("ORD-003")
        self.assertEqual(get_order(ByOrderCode("ORD-003")), order)
        self.assertEqual(get_order(ByInternalId(order.pk)), order)
        with self.assertRaises(Order.DoesNotExist):
            get_order(ByOrderCode("ORD-999"))


class OrderCodeTests(TestCase):
    def test_first_code(self):
        self.assertEqual(next_order_code(), "ORD-001")

    def test_follows_last_code(self):
        make_order("ORD-009")
        self.assertEqual(next_order_code(), "ORD-010")

    def test_wide_numbers_keep_growing(self):
        make_order("ORD-1234")
        self.assertEqual(next_order_code(), "ORD-1235")


@override_settings(DELIVERY_FEE=20000)
class CheckoutTests(TestCase):
    def setUp(self):
        cat = make_category("Noodles", 1)
        self.pho = Product.objects.create(
            name="Pho bo", name_en="Beef pho", description="d", description_en="d",
            price=Decimal("55000"), image="/p.jpg", category=cat,
        )
        self.bun = Product.objects.create(
            name="Bun", name_en="Vermicelli", description="d", description_en="d",
            image="/b.jpg", category=cat,
        )
        self.large = ProductVariant.objects.create(product=self.bun, name="Large", price=Decimal("70000"))

    def _checkout(self, **overrides):
        body = {
            "customerName": "Lan",
            "customerPhone": "090 123 4567",
            "deliveryAddress": "12 Le Loi, Q1",
            "paymentMethod": "cash",
            "items": [
                {"product": {"id": str(self.pho.pk)}, "quantity": 2},
                {"productId": self.bun.pk, "variantId": self.large.pk, "quantity": 1},
            ],
            "total": 1,
        }
        body.update(overrides)
        return self.client.post(reverse("orders:orders"), data=json.dumps(body), content_type="application/json")

    def test_totals_are_computed_from_catalog(self):
        resp = self._checkout()
        self.assertEqual(resp.status_code, 201)
        data = resp.json()["data"]
        self.assertEqual(data["orderId"], "ORD-001")
        self.assertEqual(data["subtotal"], 180000.0)
        self.assertEqual(data["deliveryFee"], 20000.0)
        self.assertEqual(data["total"], 200000.0)
        self.assertEqual(data["customerPhone"], "0901234567")
        self.assertEqual(
            [(i["productName"], i["productPrice"], i["variantName"]) for i in data["items"]],
            [("Pho bo", 55000.0, None), ("Bun", 70000.0, "Large")],
        )
        self.assertIsNotNone(data["estimatedDeliveryTime"])

    def test_unavailable_product_is_rejected(self):
        self.pho.available = False
        self.pho.save()
        resp = self._checkout()
        self.assertEqual(resp.status_code, 400)
        self.assertFalse(Order.objects.exists())

    def test_product_without_price_needs_variant(self):
        resp = self._checkout(items=[{"productId": self.bun.pk, "quantity": 1}])
        self.assertEqual(resp.status_code, 400)

    def test_empty_cart_is_rejected(self):
        resp = self._checkout(items=[])
        self.assertEqual(resp.status_code, 400)

    def test_place_order_numbers_sequentially(self):
        items = [{"product_id": self.pho.pk, "variant_id": None, "quantity": 1, "special_instructions": ""}]
        customer = {
            "customer_name": "Lan", "customer_phone": "0901234567", "customer_email": "",
            "delivery_address": "x", "payment_method": "cash", "special_instructions": "",
        }
        first = place_order(customer, items)
        second = place_order(customer, items)
        self.assertEqual((first.order_id, second.order_id), ("ORD-001", "ORD-002"))
        self.assertEqual(second.total, Decimal("75000"))

    def test_subtotal_is_the_sum_of_line_totals(self):
        items = [
            {"product_id": self.pho.pk, "variant_id": None, "quantity": 3, "special_instructions": ""},
            {"product_id": self.bun.pk, "variant_id": self.large.pk, "quantity": 2, "special_instructions": ""},
        ]
        customer = {
            "customer_name": "Lan", "customer_phone": "0901234567", "customer_email": "",
            "delivery_address": "x", "payment_method": "cash", "special_instructions": "",
        }
        order = place_order(customer, items)
        totals = [item.line_total for item in order.items.order_by("pk")]
        self.assertEqual(totals, [Decimal("165000"), Decimal("140000")])
        self.assertEqual(order.subtotal, sum(totals))
        self.assertEqual(order.total, Decimal("325000"))


class OrderAdminApiTests(TestCase):
    def setUp(self):
        self.order = make_order("ORD-005")

    def _patch(self, url, payload, **extra):
        return self.client.patch(url, data=json.dumps(payload), content_type="application/json", **extra)

    def test_detail_requires_admin(self):
        resp = self.client.get(reverse("orders:order_detail", args=["ORD-005"]))
        self.assertEqual(resp.status_code, 401)

    def test_detail_by_code_or_pk(self):
        for ref in ("ord-005", str(self.order.pk)):
            with self.subTest(ref=ref):
                resp = self.client.get(reverse("orders:order_detail", args=[ref]), **bearer())
                self.assertEqual(resp.status_code, 200)
                self.assertEqual(resp.json()["data"]["orderId"], "ORD-005")

    def test_unknown_order_is_404(self):
        resp = self.client.get(reverse("orders:order_detail", args=["ORD-404"]), **bearer())
        self.assertEqual(resp.status_code, 404)

    def test_patch_rejects_unknown_fields(self):
        url = reverse("orders:order_detail", args=["ORD-005"])
        resp = self._patch(url, {"total": 1, "notes": "x"}, **bearer())
        self.assertEqual(resp.status_code, 400)
        self.assertIn("total", resp.json()["error"])
        self.order.refresh_from_db()
        self.assertEqual(self.order.notes, "")

    def test_patch_updates_allowed_fields(self):
        url = reverse("orders:order_detail", args=["ORD-005"])
        resp = self._patch(url, {"notes": "ring twice", "paymentStatus": "paid"}, **bearer())
        self.assertEqual(resp.status_code, 200)
        self.order.refresh_from_db()
        self.assertEqual((self.order.notes, self.order.payment_status), ("ring twice", "paid"))

    def test_status_endpoint(self):
        url = reverse("orders:order_status", args=["ORD-005"])
        resp = self._patch(url, {"status": "delivering"}, **bearer())
        self.assertEqual(resp.status_code, 200)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "delivering")
        resp = self._patch(url, {"status": "lost"}, **bearer())
        self.assertEqual(resp.status_code, 400)

    def test_list_filters(self):
        make_order("ORD-006", status="completed")
        resp = self.client.get(reverse("orders:orders"), {"status": "completed"}, **bearer())
        self.assertEqual(resp.status_code, 200)
        self.assertEqual([o["orderId"] for o in resp.json()["data"]], ["ORD-006"])
        resp = self.client.get(reverse("orders:orders"), {"startDate": "not-a-date"}, **bearer())
        self.assertEqual(resp.status_code, 400)

    def test_delete(self):
        resp = self.client.delete(reverse("orders:order_detail", args=["ORD-005"]), **bearer())
        self.assertEqual(resp.status_code, 200)
        self.assertFalse(Order.objects.exists())


class OrderTrackTests(TestCase):
    def test_phone_is_required(self):
        make_order("ORD-001")
        resp = self.client.get(reverse("orders:order_track"), {"orderId": "ORD-001"})
        self.assertEqual(resp.status_code, 400)

    def test_lookup_by_phone_and_code(self):
        make_order("ORD-001")
        make_order("ORD-002", customer_phone="0999999999")
        resp = self.client.get(reverse("orders:order_track"), {"phone": "0901234567", "orderId": "ord-001"})
        self.assertEqual([o["orderId"] for o in resp.json()["data"]], ["ORD-001"])
        resp = self.client.get(reverse("orders:order_track"), {"phone": "0901234567", "orderId": "ORD-002"})
        self.assertEqual(resp.json()["data"], [])
