from datetime import date
from decimal import Decimal
from unittest import mock

from django.contrib.admin.sites import AdminSite
from django.contrib.auth import get_user_model
from django.test import RequestFactory, TestCase
from django.urls import reverse
from django.utils import timezone

from bms.admin import BatchAdmin, DistributionAdmin, OrderAdmin
from bms.domain.distribution import available_orders
from bms.domain.dto import AssignBatchInput
from bms.domain.ledger import assign_batch_to_order
from bms.models import (
    Batch,
    BatchOrder,
    Client,
    Distribution,
    DistributionOrder,
    Order,
    OrderStatus,
    Product,
    ProductCategory,
)


class BmsAdminTests(TestCase):
    def setUp(self):
        self.superuser = get_user_model().objects.create_superuser(
            username="admin",
            email="admin@example.com",
            password="pass1234",
        )
        self.client.force_login(self.superuser)
        category = ProductCategory.objects.create(name="Admin")
        self.product = Product.objects.create(
            name="Tea Bun",
            category=category,
            price=Decimal("25.00"),
        )
        self.customer = Client.objects.create(name="Kegalle Shop")

    def _order(self, status=OrderStatus.ASSIGNED):
        return Order.objects.create(
            client=self.customer,
            product=self.product,
            qty=4,
            unit_price=Decimal("25.00"),
            required_date=date(2026, 2, 1),
            status=status,
        )

    def test_start_action_moves_run_and_reports_illegal_transitions(self):
        order = self._order()
        distribution = Distribution.objects.create()
        DistributionOrder.objects.create(distribution=distribution, order=order)
        url = reverse("admin:bms_distribution_changelist")
        data = {"action": "start_runs", "_selected_action": [distribution.pk]}

        self.client.post(url, data, follow=True)

        distribution.refresh_from_db()
        order.refresh_from_db()
        self.assertIsNotNone(distribution.departure_time)
        self.assertEqual(order.status, OrderStatus.IN_TRANSIT)

        response = self.client.post(url, data, follow=True)
        messages = [str(message) for message in response.context["messages"]]
        self.assertTrue(any("already started" in message for message in messages))

    def test_batch_quantity_fields_lock_once_assigned(self):
        batch = Batch.objects.create(
            product=self.product,
            batch_number="ADM-1",
            mfg_date=date(2026, 1, 30),
            exp_date=date(2026, 2, 3),
            init_qty=10,
            qty=10,
            cost=Decimal("9.00"),
        )
        model_admin = BatchAdmin(Batch, AdminSite())
        request = RequestFactory().get("/")
        request.user = self.superuser

        self.assertEqual(model_admin.get_readonly_fields(request, batch), ("qty",))

        order = self._order(status=OrderStatus.PENDING)
        assign_batch_to_order(
            payload=AssignBatchInput(batch_id=batch.pk, order_id=order.pk, qty=4)
        )

        self.assertEqual(
            model_admin.get_readonly_fields(request, batch),
            ("qty", "init_qty", "product"),
        )

    def test_changelists_render(self):
        for model_name in ("batch", "order", "distribution", "client", "product"):
            with self.subTest(model=model_name):
                response = self.client.get(reverse(f"admin:bms_{model_name}_changelist"))
                self.assertEqual(response.status_code, 200)

    def _batch(self, init_qty=100):
        return Batch.objects.create(
            product=self.product,
            batch_number=f"ADM-{Batch.objects.count() + 1}",
            mfg_date=date(2026, 1, 30),
            exp_date=date(2026, 2, 3),
            init_qty=init_qty,
            qty=init_qty,
            cost=Decimal("9.00"),
        )

    def _assign(self, batch, order, qty):
        return assign_batch_to_order(
            payload=AssignBatchInput(
                batch_id=batch.pk,
                order_id=order.pk,
                qty=qty,
                description="" if qty == order.qty else "partial",
            )
        )

    def test_bulk_order_delete_returns_stock_to_batch(self):
        batch = self._batch()
        order = self._order(status=OrderStatus.PENDING)
        self._assign(batch, order, 4)

        self.client.post(
            reverse("admin:bms_order_changelist"),
            {"action": "delete_selected", "_selected_action": [order.pk], "post": "yes"},
            follow=True,
        )

        batch.refresh_from_db()
        self.assertFalse(Order.objects.filter(pk=order.pk).exists())
        self.assertFalse(BatchOrder.objects.exists())
        self.assertEqual(batch.qty, 100)

    def test_order_delete_view_returns_stock_to_batch(self):
        batch = self._batch()
        order = self._order(status=OrderStatus.PENDING)
        self._assign(batch, order, 4)

        self.client.post(reverse("admin:bms_order_delete", args=[order.pk]), {"post": "yes"})

        batch.refresh_from_db()
        self.assertFalse(Order.objects.filter(pk=order.pk).exists())
        self.assertEqual(batch.qty, 100)

    def test_batch_delete_reverts_assigned_orders(self):
        batch = self._batch()
        order = self._order(status=OrderStatus.PENDING)
        self._assign(batch, order, 4)

        self.client.post(reverse("admin:bms_batch_delete", args=[batch.pk]), {"post": "yes"})

        order.refresh_from_db()
        self.assertFalse(Batch.objects.filter(pk=batch.pk).exists())
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertEqual(order.total_price, Decimal("0.00"))

    def test_order_edit_recalculates_total_price(self):
        batch = self._batch()
        order = self._order(status=OrderStatus.PENDING)
        self._assign(batch, order, 4)
        model_admin = OrderAdmin(Order, AdminSite())
        request = RequestFactory().post("/")
        request.user = self.superuser
        form = mock.Mock(changed_data=["unit_price"], cleaned_data={"unit_price": Decimal("30.00")})
        order.unit_price = Decimal("30.00")

        model_admin.save_model(request, order, form, change=True)

        order.refresh_from_db()
        self.assertEqual(order.unit_price, Decimal("30.00"))
        self.assertEqual(order.total_price, Decimal("120.00"))
        self.assertEqual(
            model_admin.get_readonly_fields(request, order),
            ("total_price", "status", "product"),
        )

    def test_started_distribution_cannot_be_deleted(self):
        order = self._order()
        distribution = Distribution.objects.create(departure_time=timezone.now())
        DistributionOrder.objects.create(distribution=distribution, order=order)

        response = self.client.post(
            reverse("admin:bms_distribution_delete", args=[distribution.pk]),
            {"post": "yes"},
        )

        self.assertEqual(response.status_code, 403)
        self.assertTrue(Distribution.objects.filter(pk=distribution.pk).exists())

    def test_created_distribution_delete_frees_its_orders(self):
        order = self._order()
        distribution = Distribution.objects.create()
        DistributionOrder.objects.create(distribution=distribution, order=order)

        self.client.post(
            reverse("admin:bms_distribution_delete", args=[distribution.pk]),
            {"post": "yes"},
        )

        order.refresh_from_db()
        self.assertFalse(Distribution.objects.filter(pk=distribution.pk).exists())
        self.assertEqual(order.status, OrderStatus.ASSIGNED)
        self.assertIn(order, available_orders())

    def test_distribution_links_are_read_only(self):
        distribution = Distribution.objects.create()
        model_admin = DistributionAdmin(Distribution, AdminSite())
        request = RequestFactory().get("/")
        request.user = self.superuser

        self.assertFalse(model_admin.has_add_permission(request))
        inlines = model_admin.get_inline_instances(request, distribution)
        self.assertEqual(len(inlines), 2)
        for inline in inlines:
            with self.subTest(inline=type(inline).__name__):
                self.assertFalse(inline.has_add_permission(request, distribution))
                self.assertFalse(inline.has_change_permission(request, distribution))
                self.assertFalse(inline.has_delete_permission(request, distribution))
