from datetime import date
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.db.models import Sum
from django.test import TestCase

from bms.domain.dto import AssignBatchInput, UpdateAssignmentInput
from bms.domain.errors import (
    DuplicateAssignment,
    InsufficientQuantity,
    NotFound,
    ValidationError,
)
from bms.domain.ledger import (
    assign_batch_to_order,
    available_quantity,
    delete_batch,
    remove_assignment,
    update_assignment,
)
from bms.domain.orders import create_order, delete_order
from bms.models import (
    Batch,
    BatchOrder,
    Client,
    Order,
    OrderStatus,
    Product,
    ProductCategory,
)


class BatchLedgerTests(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user(
            username="ledger-user",
            password="pass1234",
        )
        category = ProductCategory.objects.create(name="Bakery")
        self.product = Product.objects.create(
            name="Milk Bread",
            category=category,
            price=Decimal("20.00"),
        )
        self.client_record = Client.objects.create(name="Corner Shop", phone1="0771234567")
        self.batch = self._create_batch(init_qty=100)
        self.order = self._create_order(qty=50, unit_price=Decimal("20.00"))

    def _create_batch(self, *, init_qty, batch_number=None):
        return Batch.objects.create(
            product=self.product,
            batch_number=batch_number or f"LEDGER-{Batch.objects.count() + 1}",
            mfg_date=date(2026, 1, 1),
            exp_date=date(2026, 2, 1),
            init_qty=init_qty,
            qty=init_qty,
            cost=Decimal("12.50"),
        )

    def _create_order(self, *, qty, unit_price=None):
        return create_order(
            client=self.client_record,
            product=self.product,
            qty=qty,
            unit_price=unit_price,
            required_date=date(2026, 1, 20),
        )

    def _assign(self, *, batch=None, order=None, qty, description=""):
        return assign_batch_to_order(
            payload=AssignBatchInput(
                batch_id=(batch or self.batch).pk,
                order_id=(order or self.order).pk,
                qty=qty,
                description=description,
            ),
            user=self.user,
        )

    def _assert_ledger_consistent(self):
        for batch in Batch.objects.all():
            assigned = BatchOrder.objects.filter(batch=batch).aggregate(total=Sum("qty"))[
                "total"
            ] or 0
            self.assertEqual(batch.qty, batch.init_qty - assigned, batch.batch_number)
        for order in Order.objects.all():
            assigned = BatchOrder.objects.filter(order=order).aggregate(total=Sum("qty"))[
                "total"
            ] or 0
            expected = (order.unit_price * assigned).quantize(Decimal("0.01"))
            self.assertEqual(order.total_price, expected, f"order {order.pk}")

    def test_assign_then_remove_restores_batch_price_and_status(self):
        self._assign(qty=50)

        self.batch.refresh_from_db()
        self.order.refresh_from_db()
        self.assertEqual(self.order.total_price, Decimal("1000.00"))
        self.assertEqual(self.order.status, OrderStatus.ASSIGNED)
        self.assertEqual(self.batch.qty, 50)

        remove_assignment(batch_id=self.batch.pk, order_id=self.order.pk, user=self.user)

        self.batch.refresh_from_db()
        self.order.refresh_from_db()
        self.assertEqual(self.order.total_price, Decimal("0.00"))
        self.assertEqual(self.order.status, OrderStatus.PENDING)
        self.assertEqual(self.batch.qty, 100)
        self.assertFalse(BatchOrder.objects.exists())

    def test_full_batch_rejects_more_and_recovers_after_removal(self):
        batch = self._create_batch(init_qty=10)
        order = self._create_order(qty=10)
        other_order = self._create_order(qty=1)

        self._assign(batch=batch, order=order, qty=10)
        self.assertEqual(available_quantity(batch_id=batch.pk), 0)

        with self.assertRaises(InsufficientQuantity) as ctx:
            self._assign(batch=batch, order=other_order, qty=1)
        self.assertEqual(
            ctx.exception.details,
            {
                "available": 0,
                "assigned": 10,
                "total": 10,
                "requested": 1,
                "current_assignment": 0,
            },
        )

        remove_assignment(batch_id=batch.pk, order_id=order.pk)
        self.assertEqual(available_quantity(batch_id=batch.pk), 10)
        batch.refresh_from_db()
        self.assertEqual(batch.qty, 10)

    def test_assignment_differing_from_ordered_qty_requires_description(self):
        with self.assertRaisesMessage(ValidationError, "A description is required"):
            self._assign(qty=30)
        with self.assertRaises(ValidationError):
            self._assign(qty=30, description="   ")
        self.assertFalse(BatchOrder.objects.exists())

        assignment = self._assign(qty=30, description="Short batch, rest tomorrow")

        self.assertEqual(assignment.diff_qty, 20)
        self.assertEqual(assignment.description, "Short batch, rest tomorrow")

    def test_description_longer_than_limit_is_rejected(self):
        with self.assertRaises(ValidationError):
            self._assign(qty=50, description="x" * 201)
        self.batch.refresh_from_db()
        self.assertEqual(self.batch.qty, 100)

    def test_duplicate_pair_is_rejected_without_touching_quantities(self):
        self._assign(qty=50)

        with self.assertRaises(DuplicateAssignment):
            self._assign(qty=10, description="again")

        self.batch.refresh_from_db()
        self.assertEqual(self.batch.qty, 50)
        self.assertEqual(BatchOrder.objects.count(), 1)

    def test_missing_batch_or_order_raises_not_found(self):
        with self.assertRaises(NotFound):
            assign_batch_to_order(
                payload=AssignBatchInput(batch_id=999999, order_id=self.order.pk, qty=5)
            )
        with self.assertRaises(NotFound):
            assign_batch_to_order(
                payload=AssignBatchInput(batch_id=self.batch.pk, order_id=999999, qty=5)
            )

    def test_non_positive_quantity_is_rejected(self):
        for qty in (0, -3):
            with self.subTest(qty=qty):
                with self.assertRaises(ValidationError):
                    self._assign(qty=qty, description="bad")

    def test_update_adjusts_batch_by_difference_and_recalculates(self):
        self._assign(qty=50)

        assignment = update_assignment(
            payload=UpdateAssignmentInput(
                batch_id=self.batch.pk,
                order_id=self.order.pk,
                qty=60,
                description="Extra for display",
            )
        )

        self.batch.refresh_from_db()
        self.order.refresh_from_db()
        self.assertEqual(assignment.qty, 60)
        self.assertEqual(assignment.diff_qty, -10)
        self.assertEqual(self.batch.qty, 40)
        self.assertEqual(self.order.total_price, Decimal("1200.00"))

        update_assignment(
            payload=UpdateAssignmentInput(
                batch_id=self.batch.pk,
                order_id=self.order.pk,
                qty=50,
            )
        )
        self.batch.refresh_from_db()
        self.order.refresh_from_db()
        self.assertEqual(self.batch.qty, 50)
        self.assertEqual(self.order.total_price, Decimal("1000.00"))
        self.assertEqual(BatchOrder.objects.get().diff_qty, 0)

    def test_update_excludes_own_contribution_from_available_quantity(self):
        other_order = self._create_order(qty=40)
        self._assign(qty=50)
        self._assign(order=other_order, qty=40)

        with self.assertRaises(InsufficientQuantity) as ctx:
            update_assignment(
                payload=UpdateAssignmentInput(
                    batch_id=self.batch.pk,
                    order_id=self.order.pk,
                    qty=61,
                    description="too much",
                )
            )
        self.assertEqual(ctx.exception.details["available"], 60)
        self.assertEqual(ctx.exception.details["assigned"], 40)
        self.assertEqual(ctx.exception.details["current_assignment"], 50)
        self.batch.refresh_from_db()
        self.assertEqual(self.batch.qty, 10)

        update_assignment(
            payload=UpdateAssignmentInput(
                batch_id=self.batch.pk,
                order_id=self.order.pk,
                qty=60,
                description="uses the rest",
            )
        )
        self.batch.refresh_from_db()
        self.assertEqual(self.batch.qty, 0)

    def test_update_missing_assignment_raises_not_found(self):
        with self.assertRaises(NotFound):
            update_assignment(
                payload=UpdateAssignmentInput(
                    batch_id=self.batch.pk,
                    order_id=self.order.pk,
                    qty=5,
                )
            )

    def test_update_keeps_existing_description_when_omitted(self):
        self._assign(qty=30, description="Partial")

        assignment = update_assignment(
            payload=UpdateAssignmentInput(
                batch_id=self.batch.pk,
                order_id=self.order.pk,
                qty=35,
            )
        )

        self.assertEqual(assignment.description, "Partial")
        self.assertEqual(assignment.diff_qty, 15)

    def test_failed_update_rolls_back_every_step(self):
        self._assign(qty=50)

        with mock.patch(
            "bms.domain.ledger.recalculate_total_price",
            side_effect=RuntimeError("boom"),
        ):
            with self.assertRaises(RuntimeError):
                update_assignment(
                    payload=UpdateAssignmentInput(
                        batch_id=self.batch.pk,
                        order_id=self.order.pk,
                        qty=70,
                        description="More",
                    )
                )

        self.batch.refresh_from_db()
        self.order.refresh_from_db()
        assignment = BatchOrder.objects.get()
        self.assertEqual(self.batch.qty, 50)
        self.assertEqual(assignment.qty, 50)
        self.assertEqual(assignment.description, "")
        self.assertEqual(self.order.total_price, Decimal("1000.00"))

    def test_failed_assignment_leaves_no_row_and_no_decrement(self):
        with mock.patch(
            "bms.domain.ledger.set_order_status",
            side_effect=RuntimeError("boom"),
        ):
            with self.assertRaises(RuntimeError):
                self._assign(qty=50)

        self.batch.refresh_from_db()
        self.order.refresh_from_db()
        self.assertEqual(self.batch.qty, 100)
        self.assertEqual(self.order.status, OrderStatus.PENDING)
        self.assertFalse(BatchOrder.objects.exists())

    def test_remove_missing_assignment_raises_not_found_and_keeps_counts(self):
        self._assign(qty=50)

        with self.assertRaises(NotFound):
            remove_assignment(batch_id=self.batch.pk, order_id=999999)
        with self.assertRaises(NotFound):
            remove_assignment(batch_id=self.batch.pk, order_id=self.order.pk + 1000)

        self.batch.refresh_from_db()
        self.assertEqual(self.batch.qty, 50)
        self.assertEqual(BatchOrder.objects.count(), 1)

    def test_remove_keeps_order_assigned_while_other_batches_remain(self):
        second_batch = self._create_batch(init_qty=20)
        self._assign(qty=30, description="split across batches")
        self._assign(batch=second_batch, qty=20, description="split across batches")
        self.order.refresh_from_db()
        self.assertEqual(self.order.total_price, Decimal("1000.00"))

        remove_assignment(batch_id=second_batch.pk, order_id=self.order.pk)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.ASSIGNED)
        self.assertEqual(self.order.total_price, Decimal("600.00"))

        remove_assignment(batch_id=self.batch.pk, order_id=self.order.pk)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.PENDING)
        self.assertEqual(self.order.total_price, Decimal("0.00"))

    def test_remove_last_assignment_keeps_in_transit_status(self):
        self._assign(qty=50)
        Order.objects.filter(pk=self.order.pk).update(status=OrderStatus.IN_TRANSIT)

        remove_assignment(batch_id=self.batch.pk, order_id=self.order.pk)

        self.order.refresh_from_db()
        self.batch.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.IN_TRANSIT)
        self.assertEqual(self.order.total_price, Decimal("0.00"))
        self.assertEqual(self.batch.qty, 100)

    def _record_lock_order(self, operation):
        locked = []

        def record(queryset):
            locked.append(queryset.model.__name__)
            return queryset

        with mock.patch("bms.domain.ledger.lock_rows", side_effect=record), mock.patch(
            "bms.domain.orders.lock_rows", side_effect=record
        ):
            operation()
        return locked

    def _assert_locked_in_order(self, locked):
        rank = {"Batch": 0, "Order": 1, "BatchOrder": 2}
        ranks = [rank[name] for name in locked]
        self.assertEqual(ranks, sorted(ranks), locked)

    def test_ledger_writers_lock_batch_then_order_then_assignment(self):
        second_batch = self._create_batch(init_qty=20)
        other_order = self._create_order(qty=5)
        self._assign(qty=30, description="split across batches")
        self._assign(batch=second_batch, qty=20, description="split across batches")
        self._assign(order=other_order, qty=5)

        operations = {
            "update": lambda: update_assignment(
                payload=UpdateAssignmentInput(
                    batch_id=self.batch.pk,
                    order_id=self.order.pk,
                    qty=25,
                    description="short",
                )
            ),
            "remove": lambda: remove_assignment(
                batch_id=second_batch.pk,
                order_id=self.order.pk,
            ),
            "delete_order": lambda: delete_order(order_id=self.order.pk),
            "delete_batch": lambda: delete_batch(batch_id=self.batch.pk),
        }
        for name, operation in operations.items():
            with self.subTest(operation=name):
                locked = self._record_lock_order(operation)
                self.assertIn("Batch", locked)
                self._assert_locked_in_order(locked)
        self._assert_ledger_consistent()

    def test_ledger_stays_consistent_over_mixed_operations(self):
        second_batch = self._create_batch(init_qty=25)
        orders = [self._create_order(qty=qty) for qty in (10, 15, 20)]

        self._assign(order=orders[0], qty=10)
        self._assign(order=orders[1], qty=15)
        self._assign(batch=second_batch, order=orders[2], qty=20)
        self._assign(batch=second_batch, order=orders[0], qty=5, description="bonus")
        update_assignment(
            payload=UpdateAssignmentInput(
                batch_id=self.batch.pk,
                order_id=orders[1].pk,
                qty=7,
                description="reduced",
            )
        )
        with self.assertRaises(InsufficientQuantity):
            self._assign(batch=second_batch, order=orders[1], qty=1, description="x")
        remove_assignment(batch_id=self.batch.pk, order_id=orders[0].pk)
        self._assign(order=self.order, qty=1, description="sample")

        self._assert_ledger_consistent()

    def test_stale_availability_read_cannot_overcommit(self):
        batch = self._create_batch(init_qty=10)
        first = self._create_order(qty=6)
        second = self._create_order(qty=6)
        self._assign(batch=batch, order=first, qty=6)

        # Simulates a concurrent request that read the batch before the first
        # assignment was committed.
        with mock.patch("bms.domain.ledger.assigned_total", return_value=0):
            with self.assertRaises(InsufficientQuantity) as ctx:
                self._assign(batch=batch, order=second, qty=6)

        self.assertEqual(ctx.exception.details["available"], 4)
        batch.refresh_from_db()
        second.refresh_from_db()
        self.assertEqual(batch.qty, 4)
        self.assertEqual(BatchOrder.objects.filter(batch=batch).count(), 1)
        self.assertEqual(second.status, OrderStatus.PENDING)

    def test_delete_batch_releases_every_order(self):
        other_order = self._create_order(qty=20)
        self._assign(qty=50)
        self._assign(order=other_order, qty=20)

        delete_batch(batch_id=self.batch.pk, user=self.user)

        self.assertFalse(Batch.objects.filter(pk=self.batch.pk).exists())
        self.assertFalse(BatchOrder.objects.exists())
        for order in (self.order, other_order):
            order.refresh_from_db()
            self.assertEqual(order.status, OrderStatus.PENDING)
            self.assertEqual(order.total_price, Decimal("0.00"))

    def test_delete_missing_batch_raises_not_found(self):
        with self.assertRaises(NotFound):
            delete_batch(batch_id=999999)

    def test_available_quantity_can_exclude_one_order(self):
        other_order = self._create_order(qty=30)
        self._assign(qty=50)
        self._assign(order=other_order, qty=30)

        self.assertEqual(available_quantity(batch_id=self.batch.pk), 20)
        self.assertEqual(
            available_quantity(batch_id=self.batch.pk, exclude_order_id=self.order.pk),
            70,
        )
        with self.assertRaises(NotFound):
            available_quantity(batch_id=999999)

    def test_ledger_mutations_emit_workflow_events(self):
        with self.assertLogs("bms.workflow", level="INFO") as logs:
            self._assign(qty=50)
            remove_assignment(batch_id=self.batch.pk, order_id=self.order.pk, user=self.user)

        output = "\n".join(logs.output)
        self.assertIn('"event_type": "batch_assigned"', output)
        self.assertIn('"event_type": "batch_assignment_removed"', output)
        self.assertIn('"event_type": "order_status_transition"', output)
        self.assertIn('"username": "ledger-user"', output)
