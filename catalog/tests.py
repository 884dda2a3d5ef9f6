import random
from io import StringIO
from unittest.mock import patch

from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.db import IntegrityError
from django.test import TestCase

from . import ordering
from .models import Category


def make_category(name, order):
    return Category.objects.create(
        name=name, name_en=name, description=f"{name} dishes", image=f"/img/{name}.jpg", order=order
    )


class OrderingTestCase(TestCase):
    def layout(self):
        return list(Category.objects.order_by("order").values_list("name", "order"))

    def assertDense(self):
        orders = list(Category.objects.order_by("order").values_list("order", flat=True))
        self.assertEqual(orders, list(range(1, len(orders) + 1)))


class AssignOnInsertTests(OrderingTestCase):
    def test_empty_table_starts_at_one(self):
        self.assertEqual(ordering.assign_on_insert(), 1)

    def test_absent_request_appends(self):
        make_category("A", 1)
        make_category("B", 2)
        self.assertEqual(ordering.assign_on_insert(), 3)

    def test_free_slot_is_used_as_is(self):
        make_category("A", 1)
        self.assertEqual(ordering.assign_on_insert(2), 2)
        self.assertEqual(self.layout(), [("A", 1)])

    def test_request_past_the_end_appends(self):
        for i, name in enumerate("ABC", start=1):
            make_category(name, i)
        created = ordering.create_category(
            {"name": "D", "name_en": "D", "description": "new", "image": "/img/d.jpg"}, order=10
        )
        self.assertEqual(created.order, 4)
        ordering.delete_category(Category.objects.get(name="A"))
        self.assertEqual(self.layout(), [("B", 1), ("C", 2), ("D", 3)])

    def test_taken_slot_shifts_holders_up(self):
        make_category("A", 1)
        make_category("B", 2)
        make_category("C", 3)
        created = ordering.create_category(
            {"name": "N", "name_en": "N", "description": "new", "image": "/img/n.jpg"}, order=2
        )
        self.assertEqual(created.order, 2)
        self.assertEqual(self.layout(), [("A", 1), ("N", 2), ("B", 3), ("C", 4)])
        self.assertDense()

    def test_rejects_non_positive_or_fractional(self):
        for bad in (0, -3, 1.5, True, "x"):
            with self.subTest(bad=bad):
                with self.assertRaises(ValidationError):
                    ordering.assign_on_insert(bad)

    def test_integrity_error_becomes_ordering_conflict(self):
        make_category("A", 1)
        with patch("catalog.ordering._shift", side_effect=IntegrityError("UNIQUE constraint failed")):
            with self.assertRaises(ordering.OrderingConflict):
                ordering.assign_on_insert(1)
        self.assertEqual(self.layout(), [("A", 1)])


class ReassignTests(OrderingTestCase):
    def setUp(self):
        self.a = make_category("A", 1)
        self.b = make_category("B", 2)
        self.c = make_category("C", 3)

    def test_move_into_taken_slot_swaps_with_holder(self):
        ordering.reassign(self.a, 3)
        self.assertEqual(self.layout(), [("C", 1), ("B", 2), ("A", 3)])
        self.assertEqual(self.a.order, 3)
        self.assertDense()

    def test_same_value_is_a_noop(self):
        ordering.reassign(self.b, 2)
        self.assertEqual(self.layout(), [("A", 1), ("B", 2), ("C", 3)])

    def test_value_past_the_end_moves_to_last_slot(self):
        ordering.reassign(self.a, 50)
        self.assertEqual(self.layout(), [("C", 1), ("B", 2), ("A", 3)])
        self.assertEqual(self.a.order, 3)

    def test_value_past_the_end_leaves_no_gap_after_delete(self):
        ordering.reassign(self.b, 50)
        ordering.delete_category(self.a)
        self.assertDense()

    def test_last_category_past_the_end_is_a_noop(self):
        ordering.reassign(self.c, 7)
        self.assertEqual(self.layout(), [("A", 1), ("B", 2), ("C", 3)])

    def test_invalid_value_changes_nothing(self):
        with self.assertRaises(ValidationError):
            ordering.reassign(self.a, 0)
        self.assertEqual(self.layout(), [("A", 1), ("B", 2), ("C", 3)])

    def test_update_category_moves_and_edits(self):
        ordering.update_category(self.c, {"name": "Drinks"}, order=1)
        self.assertEqual(self.layout(), [("Drinks", 1), ("B", 2), ("A", 3)])


class BulkReorderTests(OrderingTestCase):
    def setUp(self):
        self.a = make_category("A", 1)
        self.b = make_category("B", 2)
        self.c = make_category("C", 3)

    def test_pairs_applied_in_sequence(self):
        writes = ordering.bulk_reorder([(self.c.pk, 1), (self.a.pk, 3)])
        self.assertEqual(writes, 3)
        self.assertEqual(self.layout(), [("C", 1), ("B", 2), ("A", 3)])

    def test_full_permutation_stays_unique(self):
        ordering.bulk_reorder([(self.b.pk, 1), (self.c.pk, 2), (self.a.pk, 3)])
        self.assertEqual(self.layout(), [("B", 1), ("C", 2), ("A", 3)])
        self.assertDense()

    def test_unknown_ids_and_noops_are_skipped(self):
        writes = ordering.bulk_reorder([(999, 1), (self.b.pk, 2)])
        self.assertEqual(writes, 0)
        self.assertEqual(self.layout(), [("A", 1), ("B", 2), ("C", 3)])

    def test_orders_past_the_end_are_clamped(self):
        writes = ordering.bulk_reorder([(self.a.pk, 10), (self.b.pk, 99)])
        self.assertEqual(writes, 6)
        self.assertEqual(self.layout(), [("C", 1), ("A", 2), ("B", 3)])
        ordering.delete_category(self.c)
        self.assertEqual(self.layout(), [("A", 1), ("B", 2)])

    def test_bad_value_rolls_back_whole_batch(self):
        with self.assertRaises(ValidationError):
            ordering.bulk_reorder([(self.c.pk, 1), (self.a.pk, 0)])
        self.assertEqual(self.layout(), [("A", 1), ("B", 2), ("C", 3)])


class CompactOnDeleteTests(OrderingTestCase):
    def test_delete_closes_the_gap(self):
        for i, name in enumerate("ABCD", start=1):
            make_category(name, i)
        moved = ordering.delete_category(Category.objects.get(name="B"))
        self.assertEqual(moved, 2)
        self.assertEqual(self.layout(), [("A", 1), ("C", 2), ("D", 3)])
        self.assertDense()

    def test_delete_last_moves_nothing(self):
        make_category("A", 1)
        last = make_category("B", 2)
        self.assertEqual(ordering.delete_category(last), 0)
        self.assertEqual(self.layout(), [("A", 1)])


class RenumberTests(OrderingTestCase):
    def test_renumbers_by_creation_and_is_idempotent(self):
        make_category("A", 5)
        make_category("B", 9)
        make_category("C", 2)
        changes = ordering.renumber_all()
        self.assertEqual(len(changes), 3)
        self.assertEqual(self.layout(), [("A", 1), ("B", 2), ("C", 3)])
        self.assertEqual(ordering.renumber_all(), [])

    def test_fix_category_orders_command(self):
        make_category("A", 4)
        make_category("B", 8)
        out = StringIO()
        call_command("fix_category_orders", stdout=out)
        self.assertIn("Category orders fixed (2 moved)", out.getvalue())
        self.assertDense()

    def test_fix_category_orders_dry_run_writes_nothing(self):
        make_category("A", 4)
        out = StringIO()
        call_command("fix_category_orders", "--dry-run", stdout=out)
        self.assertIn("Would move 'A' from 4 to 1", out.getvalue())
        self.assertEqual(self.layout(), [("A", 4)])


class MixedSequenceTests(OrderingTestCase):
    """Random interleavings of every ordering operation keep 1..N intact."""

    STEPS = 150

    def assertUnique(self):
        orders = list(Category.objects.values_list("order", flat=True))
        self.assertEqual(len(orders), len(set(orders)))

    def _random_order(self, rng, count):
        # Mostly in range, sometimes far past the end.
        return rng.choice([rng.randint(1, count + 2), rng.randint(count + 3, count + 50)])

    def _run(self, seed):
        rng = random.Random(seed)
        created = 0
        for step in range(self.STEPS):
            ids = list(Category.objects.values_list("pk", flat=True))
            count = len(ids)
            op = rng.choice(["create", "create", "reassign", "bulk", "delete"]) if ids else "create"

            if op == "create":
                created += 1
                name = f"cat{created}"
                order = None if rng.random() < 0.3 else self._random_order(rng, count)
                ordering.create_category(
                    {"name": name, "name_en": name, "description": "d", "image": "/img/x.jpg"}, order=order
                )
            elif op == "reassign":
                category = Category.objects.get(pk=rng.choice(ids))
                ordering.reassign(category, self._random_order(rng, count))
            elif op == "bulk":
                pairs = [(rng.choice(ids), self._random_order(rng, count)) for _ in range(rng.randint(1, 4))]
                ordering.bulk_reorder(pairs)
            else:
                ordering.delete_category(Category.objects.get(pk=rng.choice(ids)))

            with self.subTest(seed=seed, step=step, op=op):
                self.assertUnique()
                self.assertDense()

    def test_seeded_sequences(self):
        for seed in (7, 2024, 31337):
            Category.objects.all().delete()
            self._run(seed)
