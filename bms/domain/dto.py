from dataclasses import dataclass, field
from typing import Optional

from .errors import ValidationError

DESCRIPTION_MAX_LENGTH = 200


def _validate_description(description: Optional[str]) -> None:
    if description and len(description) > DESCRIPTION_MAX_LENGTH:
        raise ValidationError(
            f"Description must be at most {DESCRIPTION_MAX_LENGTH} characters.",
            field="description",
        )


@dataclass(frozen=True)
class AssignBatchInput:
    batch_id: int
    order_id: int
    qty: int
    description: str = ""

    def validate(self) -> None:
        if not self.batch_id or not self.order_id:
            raise ValidationError("Batch and order are required.")
        if self.qty is None or self.qty <= 0:
            raise ValidationError("Quantity must be greater than zero.", field="qty")
        _validate_description(self.description)


@dataclass(frozen=True)
class UpdateAssignmentInput:
    batch_id: int
    order_id: int
    qty: int
    description: Optional[str] = None

    def validate(self) -> None:
        if self.qty is None or self.qty <= 0:
            raise ValidationError("Quantity must be greater than zero.", field="qty")
        _validate_description(self.description)


@dataclass(frozen=True)
class CreateDistributionInput:
    employee_ids: tuple[int, ...] = field(default_factory=tuple)
    order_ids: tuple[int, ...] = field(default_factory=tuple)
    notes: str = ""

    def validate(self) -> None:
        if not self.employee_ids:
            raise ValidationError("At least one employee is required.", field="employee_ids")
        if not self.order_ids:
            raise ValidationError("At least one order is required.", field="order_ids")
