from django import forms
from django.test import SimpleTestCase

from storefront.forms import JsonForm


class SampleForm(JsonForm):
    aliases = {"displayName": "display_name"}
    ignored_keys = ("clientTotal",)

    display_name = forms.CharField()
    quantity = forms.IntegerField(min_value=1)


class JsonFormTests(SimpleTestCase):
    def test_aliases_map_to_fields(self):
        form = SampleForm({"displayName": "Lan", "quantity": 2, "clientTotal": 9})
        self.assertTrue(form.is_valid(), form.errors)
        self.assertEqual(form.cleaned_data, {"display_name": "Lan", "quantity": 2})

    def test_unknown_keys_invalidate(self):
        form = SampleForm({"displayName": "Lan", "quantity": 2, "role": "admin"})
        self.assertFalse(form.is_valid())
        self.assertIn("Unknown fields: role", form.errors["__all__"][0])

    def test_non_object_payload(self):
        for payload in (None, [1, 2], "text"):
            with self.subTest(payload=payload):
                form = SampleForm(payload)
                self.assertFalse(form.is_valid())
                self.assertIn("Expected a JSON object", form.non_field_errors())

    def test_partial_only_validates_present_fields(self):
        form = SampleForm({"quantity": 3}, partial=True)
        self.assertTrue(form.is_valid(), form.errors)
        self.assertEqual(form.cleaned_data, {"quantity": 3})
