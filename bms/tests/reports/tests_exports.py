from datetime import date, datetime
from decimal import Decimal
from io import BytesIO

from django.test import TestCase
from django.utils import timezone
from openpyxl import load_workbook

from bms.exports import (
    PRODUCT_HEADER,
    SALES_HEADER,
    XLSX_CONTENT_TYPE,
    build_sales_workbook,
    export_sales_xlsx,
)
from bms.models import Client, Order, OrderStatus, Product, ProductCategory


class SalesExportTests(TestCase):
    def setUp(self):
        category = ProductCategory.objects.create(name="Savoury")
        self.product = Product.objects.create(
            name="Chicken Roll",
            category=category,
            price=Decimal("110.00"),
        )
        self.client_record = Client.objects.create(name="Negombo Beach Cafe")
        self.delivered = Order.objects.create(
            client=self.client_record,
            product=self.product,
            qty=12,
            unit_price=Decimal("110.00"),
            total_price=Decimal("1320.00"),
            required_date=date(2026, 7, 2),
            date=timezone.make_aware(datetime(2026, 7, 1, 8, 30)),
            status=OrderStatus.DELIVERED,
        )
        Order.objects.create(
            client=self.client_record,
            product=self.product,
            qty=5,
            unit_price=Decimal("110.00"),
            required_date=date(2026, 7, 2),
            date=timezone.make_aware(datetime(2026, 7, 1, 9, 0)),
            status=OrderStatus.PENDING,
        )

    def test_workbook_lists_delivered_orders_and_product_totals(self):
        workbook = build_sales_workbook()

        self.assertEqual(workbook.sheetnames, ["Sales", "By product"])
        sales_rows = list(workbook["Sales"].iter_rows(values_only=True))
        self.assertEqual(list(sales_rows[0]), SALES_HEADER)
        self.assertEqual(len(sales_rows), 2)
        self.assertEqual(sales_rows[1][0], self.delivered.pk)
        self.assertEqual(sales_rows[1][3], "Negombo Beach Cafe")
        self.assertEqual(sales_rows[1][5], 12)

        product_rows = list(workbook["By product"].iter_rows(values_only=True))
        self.assertEqual(list(product_rows[0]), PRODUCT_HEADER)
        self.assertEqual(product_rows[1][1], "Chicken Roll")
        self.assertEqual(product_rows[1][3], 12)

    def test_workbook_respects_date_range(self):
        workbook = build_sales_workbook(start=date(2026, 7, 2), end=date(2026, 7, 31))

        self.assertEqual(workbook["Sales"].max_row, 1)

    def test_response_is_an_xlsx_attachment(self):
        response = export_sales_xlsx()

        self.assertEqual(response["Content-Type"], XLSX_CONTENT_TYPE)
        self.assertIn("attachment;", response["Content-Disposition"])
        self.assertIn(".xlsx", response["Content-Disposition"])
        workbook = load_workbook(BytesIO(response.content))
        self.assertEqual(workbook["Sales"]["B1"].value, "date")
        self.assertEqual(workbook["Sales"].freeze_panes, "A2")
