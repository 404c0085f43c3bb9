import logging
from datetime import date
from decimal import Decimal

from django.db import IntegrityError, connection, transaction
from django.db.models import F, Sum
from django.db.models.functions import Coalesce

from ..models import Batch, BatchOrder, Order, OrderStatus, Product
from ..reference_sequences import generate_batch_number
from ..workflow_observability import log_workflow_event
from .dto import AssignBatchInput, UpdateAssignmentInput
from .errors import (
    DuplicateAssignment,
    InsufficientQuantity,
    NotFound,
    ValidationError,
)
from .pricing import recalculate_total_price, set_order_status

LOGGER = logging.getLogger(__name__)


def lock_rows(queryset):
    if connection.features.has_select_for_update:
        return queryset.select_for_update()
    return queryset


def lock_batches(batch_ids) -> list[Batch]:
    # Ledger writers lock batch rows first, in pk order, then orders, then batch_order rows.
    return list(lock_rows(Batch.objects.filter(pk__in=set(batch_ids)).order_by("pk")))


def lock_orders(order_ids) -> list[Order]:
    return list(lock_rows(Order.objects.filter(pk__in=set(order_ids)).order_by("pk")))


def get_batch(batch_id, *, for_update: bool = False) -> Batch:
    queryset = Batch.objects.filter(pk=batch_id)
    if for_update:
        queryset = lock_rows(queryset)
    batch = queryset.first()
    if batch is None:
        raise NotFound("Batch not found.", batch_id=batch_id)
    return batch


def get_order(order_id, *, for_update: bool = False) -> Order:
    queryset = Order.objects.filter(pk=order_id)
    if for_update:
        queryset = lock_rows(queryset)
    order = queryset.first()
    if order is None:
        raise NotFound("Order not found.", order_id=order_id)
    return order


def assigned_total(batch_id, *, exclude_order_id=None) -> int:
    queryset = BatchOrder.objects.filter(batch_id=batch_id)
    if exclude_order_id is not None:
        queryset = queryset.exclude(order_id=exclude_order_id)
    return queryset.aggregate(total=Coalesce(Sum("qty"), 0))["total"]


def available_quantity(*, batch_id, exclude_order_id=None) -> int:
    batch = get_batch(batch_id)
    return batch.init_qty - assigned_total(batch.pk, exclude_order_id=exclude_order_id)


def _check_description(*, order: Order, qty: int, description: str) -> None:
    if qty != order.qty and not (description or "").strip():
        raise ValidationError(
            "A description is required when the assigned quantity differs "
            "from the ordered quantity.",
            field="description",
            ordered_qty=order.qty,
            assigned_qty=qty,
        )


def _take_from_batch(*, batch: Batch, qty: int, current_assignment: int = 0) -> None:
    # Conditional decrement: a concurrent writer that already consumed the
    # stock makes this match zero rows instead of driving qty negative.
    updated = Batch.objects.filter(pk=batch.pk, qty__gte=qty).update(qty=F("qty") - qty)
    if updated:
        batch.refresh_from_db(fields=["qty"])
        return
    batch.refresh_from_db(fields=["qty"])
    available = batch.qty + current_assignment
    LOGGER.warning(
        "Stock decrement rejected for batch %s: requested %s, remaining %s.",
        batch.pk,
        qty,
        batch.qty,
    )
    raise InsufficientQuantity(
        available=available,
        assigned=batch.init_qty - batch.qty - current_assignment,
        total=batch.init_qty,
        requested=qty + current_assignment,
        current_assignment=current_assignment,
    )


def _return_to_batch(*, batch: Batch, qty: int) -> None:
    Batch.objects.filter(pk=batch.pk).update(qty=F("qty") + qty)
    batch.refresh_from_db(fields=["qty"])


def release_assignment(*, assignment: BatchOrder, user=None, source: str) -> Order:
    batch = assignment.batch
    order = assignment.order
    released_qty = assignment.qty
    assignment.delete()
    _return_to_batch(batch=batch, qty=released_qty)
    if order.status == OrderStatus.ASSIGNED and not BatchOrder.objects.filter(order=order).exists():
        set_order_status(order=order, status=OrderStatus.PENDING, user=user, source=source)
    recalculate_total_price(order=order)
    log_workflow_event(
        "batch_assignment_removed",
        order=order,
        batch=batch,
        user=user,
        qty=released_qty,
        source=source,
    )
    return order


def assign_batch_to_order(*, payload: AssignBatchInput, user=None) -> BatchOrder:
    payload.validate()
    with transaction.atomic():
        batch = get_batch(payload.batch_id, for_update=True)
        order = get_order(payload.order_id, for_update=True)
        if BatchOrder.objects.filter(batch=batch, order=order).exists():
            raise DuplicateAssignment(batch_id=batch.pk, order_id=order.pk)
        _check_description(order=order, qty=payload.qty, description=payload.description)

        assigned = assigned_total(batch.pk)
        available = batch.init_qty - assigned
        if payload.qty > available:
            raise InsufficientQuantity(
                available=available,
                assigned=assigned,
                total=batch.init_qty,
                requested=payload.qty,
            )

        try:
            with transaction.atomic():
                assignment = BatchOrder.objects.create(
                    batch=batch,
                    order=order,
                    qty=payload.qty,
                    description=(payload.description or "").strip(),
                    diff_qty=order.qty - payload.qty,
                )
        except IntegrityError as exc:
            raise DuplicateAssignment(batch_id=batch.pk, order_id=order.pk) from exc
        _take_from_batch(batch=batch, qty=payload.qty)

        if order.status == OrderStatus.PENDING:
            set_order_status(
                order=order,
                status=OrderStatus.ASSIGNED,
                user=user,
                source="batch_assignment",
            )
        recalculate_total_price(order=order)
        log_workflow_event(
            "batch_assigned",
            order=order,
            batch=batch,
            user=user,
            qty=payload.qty,
            diff_qty=assignment.diff_qty,
        )
    return assignment


def update_assignment(*, payload: UpdateAssignmentInput, user=None) -> BatchOrder:
    payload.validate()
    with transaction.atomic():
        batch = get_batch(payload.batch_id, for_update=True)
        order = get_order(payload.order_id, for_update=True)
        assignment = lock_rows(BatchOrder.objects.filter(batch=batch, order=order)).first()
        if assignment is None:
            raise NotFound(
                "Batch order assignment not found.",
                batch_id=payload.batch_id,
                order_id=payload.order_id,
            )
        description = assignment.description
        if payload.description is not None:
            description = payload.description.strip()
        _check_description(order=order, qty=payload.qty, description=description)

        others = assigned_total(batch.pk, exclude_order_id=order.pk)
        available = batch.init_qty - others
        if payload.qty > available:
            raise InsufficientQuantity(
                available=available,
                assigned=others,
                total=batch.init_qty,
                requested=payload.qty,
                current_assignment=assignment.qty,
            )

        previous_qty = assignment.qty
        delta = payload.qty - previous_qty
        if delta > 0:
            _take_from_batch(batch=batch, qty=delta, current_assignment=previous_qty)
        elif delta < 0:
            _return_to_batch(batch=batch, qty=-delta)

        assignment.qty = payload.qty
        assignment.description = description
        assignment.diff_qty = order.qty - payload.qty
        assignment.save(update_fields=["qty", "description", "diff_qty", "updated_at"])
        recalculate_total_price(order=order)
        log_workflow_event(
            "batch_assignment_updated",
            order=order,
            batch=batch,
            user=user,
            previous_qty=previous_qty,
            qty=payload.qty,
            diff_qty=assignment.diff_qty,
        )
    return assignment


def remove_assignment(*, batch_id, order_id, user=None) -> Order:
    with transaction.atomic():
        lock_batches([batch_id])
        lock_orders([order_id])
        assignment = (
            lock_rows(BatchOrder.objects.filter(batch_id=batch_id, order_id=order_id))
            .select_related("batch", "order")
            .first()
        )
        if assignment is None:
            raise NotFound(
                "Batch order assignment not found.",
                batch_id=batch_id,
                order_id=order_id,
            )
        return release_assignment(assignment=assignment, user=user, source="batch_unassignment")


def _validate_batch_values(*, mfg_date: date, exp_date: date, init_qty: int, cost: Decimal):
    if exp_date <= mfg_date:
        raise ValidationError(
            "Expiry date must be after manufacture date.",
            field="exp_date",
        )
    if init_qty is None or init_qty <= 0:
        raise ValidationError("Initial quantity must be greater than zero.", field="init_qty")
    if cost is None or cost <= 0:
        raise ValidationError("Cost must be greater than zero.", field="cost")


def _ensure_unique_batch_number(*, product: Product, batch_number: str, exclude_pk=None):
    queryset = Batch.objects.filter(product=product, batch_number=batch_number)
    if exclude_pk is not None:
        queryset = queryset.exclude(pk=exclude_pk)
    if queryset.exists():
        raise ValidationError(
            "Batch number already exists for this product.",
            field="batch_number",
            batch_number=batch_number,
        )


def create_batch(
    *,
    product: Product,
    mfg_date: date,
    exp_date: date,
    init_qty: int,
    cost: Decimal,
    batch_number: str = "",
    description: str = "",
    user=None,
) -> Batch:
    _validate_batch_values(mfg_date=mfg_date, exp_date=exp_date, init_qty=init_qty, cost=cost)
    with transaction.atomic():
        batch_number = (batch_number or "").strip() or generate_batch_number(
            product, mfg_date.year
        )
        _ensure_unique_batch_number(product=product, batch_number=batch_number)
        batch = Batch.objects.create(
            product=product,
            batch_number=batch_number,
            mfg_date=mfg_date,
            exp_date=exp_date,
            init_qty=init_qty,
            qty=init_qty,
            cost=cost,
            description=description or "",
        )
        log_workflow_event("batch_created", batch=batch, user=user)
    return batch


BATCH_EDITABLE_FIELDS = (
    "product",
    "batch_number",
    "mfg_date",
    "exp_date",
    "init_qty",
    "cost",
    "description",
)


def update_batch(*, batch_id, changes: dict, user=None) -> Batch:
    with transaction.atomic():
        batch = get_batch(batch_id, for_update=True)
        has_assignments = BatchOrder.objects.filter(batch=batch).exists()
        for field_name in BATCH_EDITABLE_FIELDS:
            if field_name not in changes:
                continue
            value = changes[field_name]
            if field_name == "init_qty" and value != batch.init_qty:
                if has_assignments:
                    raise ValidationError(
                        "Initial quantity cannot change once orders are assigned to the batch.",
                        field="init_qty",
                    )
                batch.qty = value
            if field_name == "product" and value.pk != batch.product_id and has_assignments:
                raise ValidationError(
                    "Product cannot change once orders are assigned to the batch.",
                    field="product",
                )
            setattr(batch, field_name, value)
        _validate_batch_values(
            mfg_date=batch.mfg_date,
            exp_date=batch.exp_date,
            init_qty=batch.init_qty,
            cost=batch.cost,
        )
        batch.batch_number = (batch.batch_number or "").strip()
        if not batch.batch_number:
            raise ValidationError("Batch number is required.", field="batch_number")
        _ensure_unique_batch_number(
            product=batch.product,
            batch_number=batch.batch_number,
            exclude_pk=batch.pk,
        )
        batch.save()
        log_workflow_event(
            "batch_updated",
            batch=batch,
            user=user,
            changed_fields=sorted(set(changes) & set(BATCH_EDITABLE_FIELDS)),
        )
    return batch


def delete_batch(*, batch_id, user=None) -> None:
    with transaction.atomic():
        batch = get_batch(batch_id, for_update=True)
        lock_orders(BatchOrder.objects.filter(batch=batch).values_list("order_id", flat=True))
        assignments = list(
            lock_rows(BatchOrder.objects.filter(batch=batch).order_by("order_id")).select_related(
                "order"
            )
        )
        for assignment in assignments:
            assignment.batch = batch
            release_assignment(assignment=assignment, user=user, source="batch_deletion")
        log_workflow_event(
            "batch_deleted",
            batch=batch,
            user=user,
            released_orders=[assignment.order_id for assignment in assignments],
        )
        batch.delete()
