import time

import jwt
from django.http import JsonResponse
from django.test import RequestFactory, SimpleTestCase, override_settings
from django.contrib.auth.models import AnonymousUser

from storefront.auth import admin_required, verify_admin_token


@admin_required
def _protected(request):
    return JsonResponse({"ok": True})


class VerifyAdminTokenTests(SimpleTestCase):
    def _token(self, secret="test-jwt-secret", **claims):
        return jwt.encode({"sub": "1", **claims}, secret, algorithm="HS256")

    def test_admin_role_is_accepted(self):
        claims = verify_admin_token(self._token(role="admin"))
        self.assertEqual(claims["sub"], "1")

    def test_other_roles_are_rejected(self):
        self.assertIsNone(verify_admin_token(self._token(role="customer")))
        self.assertIsNone(verify_admin_token(self._token()))

    def test_bad_signature_and_expiry_are_rejected(self):
        self.assertIsNone(verify_admin_token(self._token(secret="nope", role="admin")))
        self.assertIsNone(verify_admin_token(self._token(role="admin", exp=int(time.time()) - 60)))
        self.assertIsNone(verify_admin_token("not.a.jwt"))

    @override_settings(JWT_SECRET="")
    def test_unset_secret_rejects_everything(self):
        self.assertIsNone(verify_admin_token(self._token(role="admin")))


class AdminRequiredTests(SimpleTestCase):
    def setUp(self):
        self.factory = RequestFactory()

    def test_anonymous_gets_401_json(self):
        request = self.factory.get("/")
        request.user = AnonymousUser()
        resp = _protected(request)
        self.assertEqual(resp.status_code, 401)
        self.assertJSONEqual(resp.content, {"ok": False, "error": "Admin access required"})

    def test_bearer_admin_passes(self):
        token = jwt.encode({"role": "admin"}, "test-jwt-secret", algorithm="HS256")
        request = self.factory.get("/", HTTP_AUTHORIZATION=f"Bearer {token}")
        request.user = AnonymousUser()
        self.assertEqual(_protected(request).status_code, 200)

    def test_non_bearer_scheme_is_ignored(self):
        token = jwt.encode({"role": "admin"}, "test-jwt-secret", algorithm="HS256")
        request = self.factory.get("/", HTTP_AUTHORIZATION=f"Token {token}")
        request.user = AnonymousUser()
        self.assertEqual(_protected(request).status_code, 401)
