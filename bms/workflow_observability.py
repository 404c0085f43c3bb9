import json
import logging

from django.utils import timezone

LOGGER = logging.getLogger("bms.workflow")


def _actor_payload(user):
    if user is None:
        return None
    user_id = getattr(user, "pk", None)
    if not user_id:
        return None
    username = ""
    if hasattr(user, "get_username"):
        username = user.get_username() or ""
    return {
        "id": user_id,
        "username": username,
    }


def _order_payload(order):
    if order is None:
        return None
    return {
        "id": getattr(order, "pk", None),
        "status": getattr(order, "status", ""),
        "qty": getattr(order, "qty", None),
        "total_price": getattr(order, "total_price", None),
    }


def _batch_payload(batch):
    if batch is None:
        return None
    return {
        "id": getattr(batch, "pk", None),
        "batch_number": getattr(batch, "batch_number", ""),
        "qty": getattr(batch, "qty", None),
        "init_qty": getattr(batch, "init_qty", None),
    }


def _distribution_payload(distribution):
    if distribution is None:
        return None
    return {
        "id": getattr(distribution, "pk", None),
        "state": getattr(distribution, "state", ""),
        "departure_time": getattr(distribution, "departure_time", None),
        "arrival_time": getattr(distribution, "arrival_time", None),
    }


def log_workflow_event(
    event_type, *, order=None, batch=None, distribution=None, user=None, **payload
):
    event_payload = {
        "event_type": event_type,
        "occurred_at": timezone.now().isoformat(),
        "order": _order_payload(order),
        "batch": _batch_payload(batch),
        "distribution": _distribution_payload(distribution),
        "actor": _actor_payload(user),
    }
    event_payload.update(payload)
    LOGGER.info(
        json.dumps(
            event_payload,
            ensure_ascii=False,
            sort_keys=True,
            default=str,
        )
    )


def log_order_status_transition(*, order, previous_status, new_status, user=None, source=""):
    if previous_status == new_status:
        return
    log_workflow_event(
        "order_status_transition",
        order=order,
        user=user,
        previous_status=previous_status,
        new_status=new_status,
        source=source,
    )
