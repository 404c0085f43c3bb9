from datetime import date
from decimal import Decimal

from django.db import transaction
from django.db.models import ProtectedError

from ..models import BatchOrder, Client, Order, OrderStatus, Product, ProductCategory
from ..workflow_observability import log_workflow_event
from .errors import ClientHasOrders, NotFound, ValidationError
from .ledger import get_order, lock_batches, lock_rows, release_assignment
from .pricing import recalculate_total_price, set_order_status, validate_status

ORDER_EDITABLE_FIELDS = ("client", "product", "qty", "unit_price", "required_date", "status")


def create_order(
    *,
    client: Client,
    product: Product,
    qty: int,
    required_date: date,
    unit_price: Decimal | None = None,
    order_date=None,
    user=None,
) -> Order:
    if qty is None or qty <= 0:
        raise ValidationError("Quantity must be greater than zero.", field="qty")
    if required_date is None:
        raise ValidationError("Required date is required.", field="required_date")
    if unit_price is None:
        unit_price = product.price
    if unit_price < 0:
        raise ValidationError("Unit price cannot be negative.", field="unit_price")
    extra = {"date": order_date} if order_date else {}
    order = Order.objects.create(
        client=client,
        product=product,
        qty=qty,
        unit_price=unit_price,
        required_date=required_date,
        total_price=Decimal("0.00"),
        status=OrderStatus.PENDING,
        **extra,
    )
    log_workflow_event("order_created", order=order, user=user)
    return order


def update_order(*, order_id, changes: dict, user=None) -> Order:
    with transaction.atomic():
        order = get_order(order_id, for_update=True)
        new_status = changes.get("status")
        if new_status is not None:
            validate_status(new_status)
        if "qty" in changes and (changes["qty"] is None or changes["qty"] <= 0):
            raise ValidationError("Quantity must be greater than zero.", field="qty")
        if "unit_price" in changes and (
            changes["unit_price"] is None or changes["unit_price"] < 0
        ):
            raise ValidationError("Unit price cannot be negative.", field="unit_price")
        if "product" in changes and changes["product"].pk != order.product_id:
            if BatchOrder.objects.filter(order=order).exists():
                raise ValidationError(
                    "Product cannot change once batches are assigned to the order.",
                    field="product",
                )

        changed_fields = []
        for field_name in ORDER_EDITABLE_FIELDS:
            if field_name == "status" or field_name not in changes:
                continue
            setattr(order, field_name, changes[field_name])
            changed_fields.append(field_name)
        if changed_fields:
            order.save(update_fields=changed_fields)
        if "qty" in changed_fields:
            for assignment in BatchOrder.objects.filter(order=order):
                assignment.diff_qty = order.qty - assignment.qty
                assignment.save(update_fields=["diff_qty", "updated_at"])
        if "unit_price" in changed_fields:
            recalculate_total_price(order=order)
        if new_status is not None:
            set_order_status(order=order, status=new_status, user=user, source="order_update")
        log_workflow_event(
            "order_updated",
            order=order,
            user=user,
            changed_fields=changed_fields + (["status"] if new_status is not None else []),
        )
    return order


def delete_order(*, order_id, user=None) -> None:
    with transaction.atomic():
        locked_batch_ids = {
            batch.pk
            for batch in lock_batches(
                BatchOrder.objects.filter(order_id=order_id).values_list("batch_id", flat=True)
            )
        }
        order = get_order(order_id, for_update=True)
        assignments = list(
            lock_rows(BatchOrder.objects.filter(order=order).order_by("batch_id")).select_related(
                "batch"
            )
        )
        late_batch_ids = {assignment.batch_id for assignment in assignments} - locked_batch_ids
        if late_batch_ids:
            # An assignment committed between the batch and order locks.
            lock_batches(late_batch_ids)
        for assignment in assignments:
            assignment.order = order
            release_assignment(assignment=assignment, user=user, source="order_deletion")
        log_workflow_event(
            "order_deleted",
            order=order,
            user=user,
            released_batches=[assignment.batch_id for assignment in assignments],
        )
        order.delete()


def delete_client(*, client_id, user=None) -> None:
    with transaction.atomic():
        client = lock_rows(Client.objects.filter(pk=client_id)).first()
        if client is None:
            raise NotFound("Client not found.", client_id=client_id)
        order_count = Order.objects.filter(client=client).count()
        if order_count:
            raise ClientHasOrders(client_id=client.pk, order_count=order_count)
        client.delete()


def delete_category(*, category_id) -> None:
    category = ProductCategory.objects.filter(pk=category_id).first()
    if category is None:
        raise NotFound("Category not found.", category_id=category_id)
    try:
        category.delete()
    except ProtectedError as exc:
        raise ValidationError(
            "Cannot delete a category that still has products.",
            category_id=category.pk,
        ) from exc


def delete_product(*, product_id) -> None:
    product = Product.objects.filter(pk=product_id).first()
    if product is None:
        raise NotFound("Product not found.", product_id=product_id)
    try:
        product.delete()
    except ProtectedError as exc:
        raise ValidationError(
            "Cannot delete a product referenced by orders or batches.",
            product_id=product.pk,
        ) from exc
