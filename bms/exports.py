from io import BytesIO

from django.http import HttpResponse
from django.utils import timezone
from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from .reports import delivered_orders, sales_by_product

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

SALES_HEADER = [
    "order_id",
    "date",
    "required_date",
    "client",
    "product",
    "qty",
    "unit_price",
    "total_price",
    "sale_value",
]
PRODUCT_HEADER = ["product_id", "product", "orders", "quantity", "revenue"]


def _write_sheet(sheet, header, rows):
    sheet.append(header)
    for cell in sheet[1]:
        cell.font = Font(bold=True)
    for row in rows:
        sheet.append(row)
    for index, title in enumerate(header, start=1):
        sheet.column_dimensions[get_column_letter(index)].width = max(12, len(title) + 2)
    sheet.freeze_panes = "A2"


def build_sales_workbook(*, start=None, end=None) -> Workbook:
    workbook = Workbook()
    sales_sheet = workbook.active
    sales_sheet.title = "Sales"
    orders = (
        delivered_orders(start=start, end=end)
        .select_related("client", "product")
        .order_by("date", "id")
    )
    _write_sheet(
        sales_sheet,
        SALES_HEADER,
        (
            [
                order.pk,
                timezone.localtime(order.date).replace(tzinfo=None),
                order.required_date,
                order.client.name,
                order.product.name,
                order.qty,
                order.unit_price,
                order.total_price,
                order.sale_value,
            ]
            for order in orders
        ),
    )
    product_sheet = workbook.create_sheet("By product")
    _write_sheet(
        product_sheet,
        PRODUCT_HEADER,
        (
            [row["id"], row["name"], row["orders"], row["quantity"], row["revenue"]]
            for row in sales_by_product(start=start, end=end)
        ),
    )
    return workbook


def export_sales_xlsx(*, start=None, end=None) -> HttpResponse:
    workbook = build_sales_workbook(start=start, end=end)
    buffer = BytesIO()
    workbook.save(buffer)
    workbook.close()
    filename = f"sales_{timezone.localdate():%Y%m%d}.xlsx"
    response = HttpResponse(buffer.getvalue(), content_type=XLSX_CONTENT_TYPE)
    response["Content-Disposition"] = f'attachment; filename="{filename}"'
    return response
