import json

import jwt
from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse

from .models import Category, Product
from .tests import make_category


def bearer(role="admin", secret="test-jwt-secret"):
    token = jwt.encode({"sub": "1", "role": role}, secret, algorithm="HS256")
    return {"HTTP_AUTHORIZATION": f"Bearer {token}"}


class CategoryApiTests(TestCase):
    def _send(self, method, url, payload=None, **extra):
        return getattr(self.client, method)(
            url, data=json.dumps(payload) if payload is not None else "", content_type="application/json", **extra
        )

    def test_list_is_public_and_sorted(self):
        make_category("B", 2)
        make_category("A", 1)
        resp = self.client.get(reverse("catalog:categories"))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual([c["name"] for c in resp.json()["data"]], ["A", "B"])

    def test_create_requires_admin(self):
        body = {"name": "Pho", "nameEn": "Noodles", "description": "Soups", "image": "/p.jpg"}
        resp = self._send("post", reverse("catalog:categories"), body)
        self.assertEqual(resp.status_code, 401)
        resp = self._send("post", reverse("catalog:categories"), body, **bearer(role="customer"))
        self.assertEqual(resp.status_code, 401)
        resp = self._send("post", reverse("catalog:categories"), body, **bearer(secret="wrong"))
        self.assertEqual(resp.status_code, 401)
        self.assertFalse(Category.objects.exists())

    def test_create_appends_when_order_absent(self):
        make_category("A", 1)
        body = {"name": "Pho", "nameEn": "Noodles", "description": "Soups", "image": "/p.jpg"}
        resp = self._send("post", reverse("catalog:categories"), body, **bearer())
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.json()["data"]["order"], 2)

    def test_create_rejects_unknown_fields(self):
        body = {"name": "Pho", "nameEn": "Noodles", "description": "Soups", "image": "/p.jpg", "slug": "x"}
        resp = self._send("post", reverse("catalog:categories"), body, **bearer())
        self.assertEqual(resp.status_code, 400)
        self.assertIn("Unknown fields: slug", resp.json()["error"])

    def test_staff_session_is_accepted(self):
        user = get_user_model().objects.create_user("chef", password="pw", is_staff=True)
        self.client.force_login(user)
        body = {"name": "Pho", "nameEn": "Noodles", "description": "Soups", "image": "/p.jpg", "order": 1}
        resp = self._send("post", reverse("catalog:categories"), body)
        self.assertEqual(resp.status_code, 201)

    def test_patch_order_swaps(self):
        a = make_category("A", 1)
        make_category("B", 2)
        make_category("C", 3)
        url = reverse("catalog:category_detail", args=[a.pk])
        resp = self._send("patch", url, {"order": 3}, **bearer())
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["data"]["order"], 3)
        self.assertEqual(
            list(Category.objects.values_list("name", flat=True)), ["C", "B", "A"]
        )

    def test_patch_order_past_the_end_takes_last_slot(self):
        a = make_category("A", 1)
        make_category("B", 2)
        c = make_category("C", 3)
        resp = self._send("patch", reverse("catalog:category_detail", args=[a.pk]), {"order": 50}, **bearer())
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["data"]["order"], 3)
        self._send("delete", reverse("catalog:category_detail", args=[c.pk]), **bearer())
        self.assertEqual(list(Category.objects.values_list("name", "order")), [("B", 1), ("A", 2)])

    def test_patch_rejects_zero_order(self):
        a = make_category("A", 1)
        resp = self._send("patch", reverse("catalog:category_detail", args=[a.pk]), {"order": 0}, **bearer())
        self.assertEqual(resp.status_code, 400)

    def test_delete_compacts(self):
        make_category("A", 1)
        b = make_category("B", 2)
        make_category("C", 3)
        resp = self._send("delete", reverse("catalog:category_detail", args=[b.pk]), **bearer())
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(list(Category.objects.values_list("order", flat=True)), [1, 2])

    def test_delete_with_products_is_refused(self):
        cat = make_category("A", 1)
        Product.objects.create(
            name="Pho bo", name_en="Beef pho", description="d", description_en="d",
            price=50000, image="/p.jpg", category=cat,
        )
        resp = self._send("delete", reverse("catalog:category_detail", args=[cat.pk]), **bearer())
        self.assertEqual(resp.status_code, 409)
        self.assertTrue(Category.objects.filter(pk=cat.pk).exists())

    def test_reorder(self):
        a = make_category("A", 1)
        make_category("B", 2)
        c = make_category("C", 3)
        payload = {"categories": [{"id": str(c.pk), "order": 1}, {"id": str(a.pk), "order": 3}]}
        resp = self._send("post", reverse("catalog:categories_reorder"), payload, **bearer())
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(list(Category.objects.values_list("name", flat=True)), ["C", "B", "A"])

    def test_reorder_clamps_orders_past_the_end(self):
        a = make_category("A", 1)
        make_category("B", 2)
        payload = {"categories": [{"id": str(a.pk), "order": 40}]}
        resp = self._send("post", reverse("catalog:categories_reorder"), payload, **bearer())
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(list(Category.objects.values_list("name", "order")), [("B", 1), ("A", 2)])

    def test_reorder_rejects_malformed_body(self):
        resp = self._send("post", reverse("catalog:categories_reorder"), {"categories": "nope"}, **bearer())
        self.assertEqual(resp.status_code, 400)
        resp = self._send("post", reverse("catalog:categories_reorder"), {"categories": [{"id": 1}]}, **bearer())
        self.assertEqual(resp.status_code, 400)


class ProductApiTests(TestCase):
    def setUp(self):
        self.cat = make_category("Noodles", 1)

    def _post(self, payload, **extra):
        return self.client.post(
            reverse("catalog:products"), data=json.dumps(payload), content_type="application/json", **extra
        )

    def _body(self, **overrides):
        body = {
            "name": "Pho bo",
            "nameEn": "Beef pho",
            "description": "Beef noodle soup",
            "descriptionEn": "Beef noodle soup",
            "image": "/img/pho.jpg",
            "categoryId": str(self.cat.pk),
            "price": 55000,
        }
        body.update(overrides)
        return body

    def test_create_with_price(self):
        resp = self._post(self._body(tags=["soup", " "]), **bearer())
        self.assertEqual(resp.status_code, 201)
        data = resp.json()["data"]
        self.assertEqual(data["price"], 55000.0)
        self.assertTrue(data["available"])
        self.assertEqual(data["tags"], ["soup"])

    def test_create_needs_price_or_variants(self):
        body = self._body()
        del body["price"]
        resp = self._post(body, **bearer())
        self.assertEqual(resp.status_code, 400)

        body["variants"] = [{"name": "Large", "price": 65000}]
        resp = self._post(body, **bearer())
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.json()["data"]["variants"][0]["price"], 65000.0)

    def test_list_filters_unavailable_and_search(self):
        self._post(self._body(), **bearer())
        self._post(self._body(name="Bun cha", nameEn="Grilled pork", available=False), **bearer())
        resp = self.client.get(reverse("catalog:products"))
        self.assertEqual([p["name"] for p in resp.json()["data"]], ["Pho bo"])
        resp = self.client.get(reverse("catalog:products"), {"showUnavailable": "true", "search": "pork"})
        self.assertEqual([p["name"] for p in resp.json()["data"]], ["Bun cha"])

    def test_bulk_update_is_limited_to_known_fields(self):
        pid = self._post(self._body(), **bearer()).json()["data"]["id"]
        url = reverse("catalog:products_bulk")
        resp = self.client.patch(
            url, data=json.dumps({"ids": [pid], "updates": {"price": 1}}),
            content_type="application/json", **bearer(),
        )
        self.assertEqual(resp.status_code, 400)
        resp = self.client.patch(
            url, data=json.dumps({"ids": [pid], "updates": {"featured": True}}),
            content_type="application/json", **bearer(),
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["modifiedCount"], 1)
        self.assertTrue(Product.objects.get(pk=pid).featured)

    def test_bulk_delete_counts_products_only(self):
        body = self._body(variants=[{"name": "Small", "price": 40000}])
        pid = self._post(body, **bearer()).json()["data"]["id"]
        resp = self.client.delete(
            reverse("catalog:products_bulk"), data=json.dumps({"ids": [pid]}),
            content_type="application/json", **bearer(),
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["deletedCount"], 1)
