from typing import Any


class BmsError(ValueError):
    code = "error"
    http_status = 400
    default_message = "Operation failed."

    def __init__(self, message: str | None = None, **details: Any):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationError(BmsError):
    code = "validation_error"
    default_message = "Invalid input."


class NotFound(BmsError):
    code = "not_found"
    http_status = 404
    default_message = "Not found."


class InsufficientQuantity(BmsError):
    code = "insufficient_quantity"
    default_message = "Insufficient quantity available in batch."

    def __init__(
        self,
        message: str | None = None,
        *,
        available: int,
        assigned: int,
        total: int,
        requested: int,
        current_assignment: int = 0,
    ):
        super().__init__(
            message,
            available=available,
            assigned=assigned,
            total=total,
            requested=requested,
            current_assignment=current_assignment,
        )
        self.available = available
        self.requested = requested


class DuplicateAssignment(BmsError):
    code = "duplicate_assignment"
    default_message = "This batch is already assigned to this order."


class IllegalStateTransition(BmsError):
    code = "illegal_state_transition"
    default_message = "Operation not allowed in the current state."


class AlreadyStarted(IllegalStateTransition):
    code = "already_started"
    default_message = "Distribution already started."


class AlreadyCompleted(IllegalStateTransition):
    code = "already_completed"
    default_message = "Distribution already completed."


class NotStarted(IllegalStateTransition):
    code = "not_started"
    default_message = "Distribution has not started yet."


class NotInProgress(IllegalStateTransition):
    code = "not_in_progress"
    default_message = "Distribution is not in progress."


class InvalidStatus(BmsError):
    code = "invalid_status"
    default_message = "Invalid order status."


class ClientHasOrders(ValidationError):
    code = "client_has_orders"
    default_message = "Cannot delete client with existing orders."


class AttendanceComplete(IllegalStateTransition):
    code = "attendance_complete"
    default_message = "Attendance already completed for today."
