import re

from django.db import connection, transaction
from django.utils import timezone

from .models import Batch, Product

BATCH_NUMBER_RE = re.compile(r"^B(?P<product>\d+)-(?P<year>\d{4})-(?P<seq>\d{3,})$")


def format_batch_number(*, product_id: int, year: int, sequence: int) -> str:
    return f"B{product_id}-{year}-{sequence:03d}"


def next_batch_sequence(*, product, year: int) -> int:
    last_number = 0
    prefix = f"B{product.pk}-{year}-"
    numbers = Batch.objects.filter(
        product=product,
        batch_number__startswith=prefix,
    ).values_list("batch_number", flat=True)
    for batch_number in numbers:
        match = BATCH_NUMBER_RE.match(batch_number or "")
        if not match:
            continue
        number = int(match.group("seq"))
        if number > last_number:
            last_number = number
    return last_number + 1


def generate_batch_number(product, year: int | None = None) -> str:
    year = year or timezone.localdate().year
    with transaction.atomic():
        product_query = Product.objects.filter(pk=product.pk)
        if connection.features.has_select_for_update:
            product_query = product_query.select_for_update()
        # Locking the product row serializes concurrent generators for it.
        product_query.get()
        sequence = next_batch_sequence(product=product, year=year)
    return format_batch_number(product_id=product.pk, year=year, sequence=sequence)
