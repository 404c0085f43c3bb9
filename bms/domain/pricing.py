from decimal import ROUND_HALF_UP, Decimal

from django.db.models import Sum
from django.db.models.functions import Coalesce

from ..models import BatchOrder, Order, OrderStatus
from ..workflow_observability import log_order_status_transition
from .errors import InvalidStatus

CENT = Decimal("0.01")


def validate_status(value) -> str:
    if value not in OrderStatus.values:
        raise InvalidStatus(
            f"Invalid status. Must be one of: {', '.join(OrderStatus.values)}.",
            status=value,
            allowed=list(OrderStatus.values),
        )
    return value


def assigned_quantity(order: Order) -> int:
    return BatchOrder.objects.filter(order=order).aggregate(total=Coalesce(Sum("qty"), 0))[
        "total"
    ]


def compute_total_price(*, unit_price: Decimal, quantity: int) -> Decimal:
    return (Decimal(unit_price) * quantity).quantize(CENT, rounding=ROUND_HALF_UP)


def recalculate_total_price(*, order: Order) -> Decimal:
    total_price = compute_total_price(
        unit_price=order.unit_price,
        quantity=assigned_quantity(order),
    )
    if order.total_price != total_price:
        order.total_price = total_price
        order.save(update_fields=["total_price"])
    return total_price


def set_order_status(*, order: Order, status: str, user=None, source: str = "") -> Order:
    validate_status(status)
    previous_status = order.status
    if previous_status == status:
        return order
    order.status = status
    order.save(update_fields=["status"])
    log_order_status_transition(
        order=order,
        previous_status=previous_status,
        new_status=status,
        user=user,
        source=source,
    )
    return order


def set_orders_status(*, orders, status: str, user=None, source: str = "") -> list[Order]:
    updated = []
    for order in orders:
        set_order_status(order=order, status=status, user=user, source=source)
        updated.append(order)
    return updated
