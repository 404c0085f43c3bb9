from collections import defaultdict
from datetime import timedelta

from django.utils import timezone

from .models import Order, OrderStatus

URGENCY_OVERDUE = "overdue"
URGENCY_TODAY = "today"
URGENCY_TOMORROW = "tomorrow"
URGENCY_UPCOMING = "upcoming"
URGENCY_ORDER = (URGENCY_OVERDUE, URGENCY_TODAY, URGENCY_TOMORROW, URGENCY_UPCOMING)


def urgency_bucket(required_date, *, today) -> str:
    if required_date < today:
        return URGENCY_OVERDUE
    if required_date == today:
        return URGENCY_TODAY
    if required_date == today + timedelta(days=1):
        return URGENCY_TOMORROW
    return URGENCY_UPCOMING


def _pending_orders():
    return (
        Order.objects.filter(status=OrderStatus.PENDING)
        .select_related("product", "client")
        .order_by("required_date", "id")
    )


def _product_sort_key(row):
    return (row["required_date"], row["product_name"], row["product_id"])


def production_schedule(*, today=None) -> list[dict]:
    """Pending order quantities per product, grouped by how urgently they are due.

    Only non-empty urgency groups are returned, in overdue, today, tomorrow,
    upcoming order.
    """
    today = today or timezone.localdate()
    groups: dict[str, dict[int, dict]] = {bucket: {} for bucket in URGENCY_ORDER}
    for order in _pending_orders():
        rows = groups[urgency_bucket(order.required_date, today=today)]
        row = rows.get(order.product_id)
        if row is None:
            row = {
                "product_id": order.product_id,
                "product_name": order.product.name,
                "quantity": 0,
                "clients": [],
                "order_count": 0,
                "required_date": order.required_date,
            }
            rows[order.product_id] = row
        row["quantity"] += order.qty
        row["order_count"] += 1
        if order.client.name not in row["clients"]:
            row["clients"].append(order.client.name)
        if order.required_date < row["required_date"]:
            row["required_date"] = order.required_date

    schedule = []
    for bucket in URGENCY_ORDER:
        products = sorted(groups[bucket].values(), key=_product_sort_key)
        if not products:
            continue
        schedule.append(
            {
                "urgency": bucket,
                "total_quantity": sum(row["quantity"] for row in products),
                "products": products,
            }
        )
    return schedule


def production_requirements() -> list[dict]:
    orders = list(_pending_orders())
    totals_by_date: dict[tuple[int, object], int] = defaultdict(int)
    for order in orders:
        totals_by_date[(order.product_id, order.required_date)] += order.qty

    products: dict[int, dict] = {}
    for order in orders:
        entry = products.get(order.product_id)
        if entry is None:
            entry = {
                "product_id": order.product_id,
                "product_name": order.product.name,
                "total_quantity": 0,
                "earliest_required_date": order.required_date,
                "orders": [],
            }
            products[order.product_id] = entry
        entry["total_quantity"] += order.qty
        entry["earliest_required_date"] = min(entry["earliest_required_date"], order.required_date)
        entry["orders"].append(
            {
                "order_id": order.pk,
                "client_id": order.client_id,
                "client_name": order.client.name,
                "qty": order.qty,
                "required_date": order.required_date,
                "total_by_date": totals_by_date[(order.product_id, order.required_date)],
            }
        )
    return sorted(
        products.values(),
        key=lambda entry: (
            entry["earliest_required_date"],
            entry["product_name"],
            entry["product_id"],
        ),
    )
