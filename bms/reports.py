from collections import OrderedDict
from datetime import datetime, time, timedelta
from decimal import Decimal

from django.db.models import Case, Count, DecimalField, F, Sum, When
from django.db.models.expressions import ExpressionWrapper
from django.db.models.functions import Coalesce
from django.utils import timezone

from .models import Batch, Client, Order, OrderStatus, Product
from .runtime_settings import get_runtime_config

ZERO = Decimal("0.00")
MONEY_FIELD = DecimalField(max_digits=14, decimal_places=2)


def sale_value_expression():
    return Case(
        When(total_price__gt=0, then=F("total_price")),
        default=ExpressionWrapper(F("qty") * F("unit_price"), output_field=MONEY_FIELD),
        output_field=MONEY_FIELD,
    )


def _day_start(day):
    return timezone.make_aware(datetime.combine(day, time.min))


def _month_start(day):
    return day.replace(day=1)


def _shift_month(day, months: int):
    month_index = day.year * 12 + (day.month - 1) + months
    return day.replace(year=month_index // 12, month=month_index % 12 + 1, day=1)


def delivered_orders(*, start=None, end=None):
    queryset = Order.objects.filter(status=OrderStatus.DELIVERED)
    if start is not None:
        queryset = queryset.filter(date__gte=_day_start(start))
    if end is not None:
        queryset = queryset.filter(date__lt=_day_start(end + timedelta(days=1)))
    return queryset


def _totals(queryset) -> dict:
    totals = queryset.aggregate(
        orders=Count("id"),
        quantity=Coalesce(Sum("qty"), 0),
        revenue=Coalesce(Sum(sale_value_expression()), ZERO, output_field=MONEY_FIELD),
    )
    return {
        "orders": totals["orders"],
        "quantity": totals["quantity"],
        "revenue": Decimal(totals["revenue"]).quantize(Decimal("0.01")),
    }


def sales_summary(*, today=None) -> dict:
    today = today or timezone.localdate()
    overall = _totals(delivered_orders())
    month = _totals(delivered_orders(start=_month_start(today), end=today))
    average = ZERO
    if overall["orders"]:
        average = (overall["revenue"] / overall["orders"]).quantize(Decimal("0.01"))
    return {
        "total_orders": overall["orders"],
        "total_quantity": overall["quantity"],
        "total_revenue": overall["revenue"],
        "average_order_value": average,
        "month_orders": month["orders"],
        "month_revenue": month["revenue"],
    }


def sales_by_date_range(*, start, end) -> list[dict]:
    rows: OrderedDict = OrderedDict()
    day = start
    while day <= end:
        rows[day] = {"date": day, "orders": 0, "quantity": 0, "revenue": ZERO}
        day += timedelta(days=1)
    for order in delivered_orders(start=start, end=end).only(
        "date", "qty", "unit_price", "total_price"
    ):
        row = rows.get(timezone.localtime(order.date).date())
        if row is None:
            continue
        row["orders"] += 1
        row["quantity"] += order.qty
        row["revenue"] += order.sale_value
    return list(rows.values())


def _grouped_sales(queryset, *, id_field: str, name_field: str) -> list[dict]:
    rows = (
        queryset.values(id_field, name_field)
        .annotate(
            orders=Count("id"),
            quantity=Coalesce(Sum("qty"), 0),
            revenue=Coalesce(Sum(sale_value_expression()), ZERO, output_field=MONEY_FIELD),
        )
        .order_by("-revenue", name_field)
    )
    return [
        {
            "id": row[id_field],
            "name": row[name_field],
            "orders": row["orders"],
            "quantity": row["quantity"],
            "revenue": Decimal(row["revenue"]).quantize(Decimal("0.01")),
        }
        for row in rows
    ]


def sales_by_product(*, start=None, end=None) -> list[dict]:
    return _grouped_sales(
        delivered_orders(start=start, end=end),
        id_field="product_id",
        name_field="product__name",
    )


def sales_by_client(*, start=None, end=None) -> list[dict]:
    return _grouped_sales(
        delivered_orders(start=start, end=end),
        id_field="client_id",
        name_field="client__name",
    )


def monthly_trend(*, months: int = 12, today=None) -> list[dict]:
    today = today or timezone.localdate()
    first_month = _shift_month(_month_start(today), -(months - 1))
    rows: OrderedDict = OrderedDict()
    for offset in range(months):
        month = _shift_month(first_month, offset)
        rows[(month.year, month.month)] = {
            "month": month.strftime("%Y-%m"),
            "orders": 0,
            "quantity": 0,
            "revenue": ZERO,
        }
    for order in delivered_orders(start=first_month, end=today).only(
        "date", "qty", "unit_price", "total_price"
    ):
        local_date = timezone.localtime(order.date).date()
        row = rows.get((local_date.year, local_date.month))
        if row is None:
            continue
        row["orders"] += 1
        row["quantity"] += order.qty
        row["revenue"] += order.sale_value
    return list(rows.values())


def low_stock_batches(*, threshold=None, today=None):
    threshold = threshold or get_runtime_config().low_stock_threshold
    today = today or timezone.localdate()
    return (
        Batch.objects.filter(qty__lt=threshold, exp_date__gte=today)
        .select_related("product")
        .order_by("qty", "exp_date", "id")
    )


def dashboard_summary(*, today=None) -> dict:
    today = today or timezone.localdate()
    month = _totals(delivered_orders(start=_month_start(today), end=today))
    low_stock_products = (
        low_stock_batches(today=today).order_by().values("product_id").distinct().count()
    )
    return {
        "total_products": Product.objects.count(),
        "total_clients": Client.objects.count(),
        "monthly_orders": month["orders"],
        "monthly_revenue": month["revenue"],
        "low_stock_products": low_stock_products,
        "pending_deliveries": Order.objects.filter(
            status__in=[OrderStatus.PENDING, OrderStatus.ASSIGNED]
        ).count(),
    }


def recent_orders(*, limit: int = 5):
    return Order.objects.select_related("client", "product").order_by("-date", "-id")[:limit]
