from django.db import transaction
from django.utils import timezone

from staff.models import Employee

from ..models import (
    Distribution,
    DistributionEmployee,
    DistributionOrder,
    Order,
    OrderStatus,
)
from ..workflow_observability import log_workflow_event
from .dto import CreateDistributionInput
from .errors import (
    AlreadyCompleted,
    AlreadyStarted,
    NotFound,
    NotInProgress,
    NotStarted,
    ValidationError,
)
from .ledger import lock_rows
from .pricing import set_orders_status


def in_progress_distributions():
    return Distribution.objects.filter(departure_time__isnull=False, arrival_time__isnull=True)


def available_employees():
    busy_ids = DistributionEmployee.objects.filter(
        distribution__in=in_progress_distributions()
    ).values("employee_id")
    return Employee.objects.filter(is_active=True).exclude(pk__in=busy_ids)


def available_orders():
    return (
        Order.objects.filter(status=OrderStatus.ASSIGNED, distribution_links__isnull=True)
        .select_related("client", "product")
        .order_by("required_date", "id")
    )


def get_distribution(distribution_id, *, for_update: bool = False) -> Distribution:
    queryset = Distribution.objects.filter(pk=distribution_id)
    if for_update:
        queryset = lock_rows(queryset)
    distribution = queryset.first()
    if distribution is None:
        raise NotFound("Distribution not found.", distribution_id=distribution_id)
    return distribution


def _linked_orders(distribution: Distribution):
    return lock_rows(
        Order.objects.filter(distribution_links__distribution=distribution).order_by("id")
    )


def _unique_ids(values) -> list[int]:
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


@transaction.atomic
def create_distribution(*, payload: CreateDistributionInput, user=None) -> Distribution:
    payload.validate()
    employee_ids = _unique_ids(payload.employee_ids)
    order_ids = _unique_ids(payload.order_ids)

    employees = list(Employee.objects.filter(pk__in=employee_ids))
    missing_employees = sorted(set(employee_ids) - {employee.pk for employee in employees})
    if missing_employees:
        raise NotFound("Employee not found.", employee_ids=missing_employees)
    orders = list(lock_rows(Order.objects.filter(pk__in=order_ids)))
    missing_orders = sorted(set(order_ids) - {order.pk for order in orders})
    if missing_orders:
        raise NotFound("Order not found.", order_ids=missing_orders)

    busy_employees = sorted(
        set(employee_ids) - set(available_employees().values_list("pk", flat=True))
    )
    if busy_employees:
        raise ValidationError(
            "Some employees are already on an active distribution.",
            employee_ids=busy_employees,
        )
    unavailable_orders = sorted(
        set(order_ids) - set(available_orders().values_list("pk", flat=True))
    )
    if unavailable_orders:
        raise ValidationError(
            "Some orders are not available for distribution.",
            order_ids=unavailable_orders,
        )

    distribution = Distribution.objects.create(notes=payload.notes or "")
    DistributionEmployee.objects.bulk_create(
        [
            DistributionEmployee(distribution=distribution, employee_id=employee_id)
            for employee_id in employee_ids
        ]
    )
    DistributionOrder.objects.bulk_create(
        [DistributionOrder(distribution=distribution, order_id=order_id) for order_id in order_ids]
    )
    set_orders_status(
        orders=orders,
        status=OrderStatus.ASSIGNED,
        user=user,
        source="distribution_create",
    )
    log_workflow_event(
        "distribution_created",
        distribution=distribution,
        user=user,
        employee_ids=employee_ids,
        order_ids=order_ids,
    )
    return distribution


@transaction.atomic
def start_distribution(*, distribution_id, user=None) -> Distribution:
    distribution = get_distribution(distribution_id, for_update=True)
    if distribution.arrival_time is not None:
        raise AlreadyCompleted(distribution_id=distribution.pk)
    if distribution.departure_time is not None:
        raise AlreadyStarted(distribution_id=distribution.pk)
    employee_ids = [
        link.employee_id
        for link in lock_rows(
            DistributionEmployee.objects.filter(distribution=distribution).order_by("employee_id")
        )
    ]
    # Serializes concurrent starts of runs that share an employee.
    list(lock_rows(Employee.objects.filter(pk__in=employee_ids).order_by("pk")))
    busy_employees = sorted(
        set(
            DistributionEmployee.objects.filter(
                distribution__in=in_progress_distributions(),
                employee_id__in=employee_ids,
            )
            .exclude(distribution=distribution)
            .values_list("employee_id", flat=True)
        )
    )
    if busy_employees:
        raise ValidationError(
            "Some employees are already on an active distribution.",
            employee_ids=busy_employees,
        )
    distribution.departure_time = timezone.now()
    distribution.save(update_fields=["departure_time"])
    set_orders_status(
        orders=_linked_orders(distribution),
        status=OrderStatus.IN_TRANSIT,
        user=user,
        source="distribution_start",
    )
    log_workflow_event("distribution_started", distribution=distribution, user=user)
    return distribution


@transaction.atomic
def end_distribution(*, distribution_id, user=None) -> Distribution:
    distribution = get_distribution(distribution_id, for_update=True)
    if distribution.departure_time is None:
        raise NotStarted(distribution_id=distribution.pk)
    if distribution.arrival_time is not None:
        raise AlreadyCompleted(distribution_id=distribution.pk)
    distribution.arrival_time = max(timezone.now(), distribution.departure_time)
    distribution.save(update_fields=["arrival_time"])
    set_orders_status(
        orders=_linked_orders(distribution),
        status=OrderStatus.DELIVERED,
        user=user,
        source="distribution_end",
    )
    log_workflow_event("distribution_ended", distribution=distribution, user=user)
    return distribution


@transaction.atomic
def cancel_distribution(*, distribution_id, user=None) -> Distribution:
    distribution = get_distribution(distribution_id, for_update=True)
    if distribution.departure_time is None or distribution.arrival_time is not None:
        raise NotInProgress(
            "Distribution can only be canceled while in progress.",
            distribution_id=distribution.pk,
            state=distribution.state,
        )
    distribution.departure_time = None
    distribution.save(update_fields=["departure_time"])
    set_orders_status(
        orders=_linked_orders(distribution),
        status=OrderStatus.ASSIGNED,
        user=user,
        source="distribution_cancel",
    )
    log_workflow_event("distribution_canceled", distribution=distribution, user=user)
    return distribution


@transaction.atomic
def delete_distribution(*, distribution_id, user=None) -> None:
    distribution = get_distribution(distribution_id, for_update=True)
    if distribution.departure_time is not None:
        raise AlreadyStarted(
            "Cannot delete a distribution that has already started.",
            distribution_id=distribution.pk,
        )
    orders = list(_linked_orders(distribution))
    set_orders_status(
        orders=orders,
        status=OrderStatus.ASSIGNED,
        user=user,
        source="distribution_delete",
    )
    log_workflow_event(
        "distribution_deleted",
        distribution=distribution,
        user=user,
        order_ids=[order.pk for order in orders],
    )
    distribution.delete()
