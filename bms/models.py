from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F, Q
from django.utils import timezone


class ProductCategory(models.Model):
    name = models.CharField(max_length=120, unique=True)
    description = models.TextField(blank=True)

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "product categories"

    def __str__(self) -> str:
        return self.name


class Product(models.Model):
    name = models.CharField(max_length=200)
    category = models.ForeignKey(
        ProductCategory,
        on_delete=models.PROTECT,
        related_name="products",
    )
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name", "id"]

    def __str__(self) -> str:
        return self.name


class Client(models.Model):
    name = models.CharField(max_length=200)
    contact_person = models.CharField(max_length=200, blank=True)
    location = models.CharField(max_length=255, blank=True)
    phone1 = models.CharField(max_length=40, blank=True)
    phone2 = models.CharField(max_length=40, blank=True)
    email = models.EmailField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name", "id"]

    def __str__(self) -> str:
        return self.name


class Batch(models.Model):
    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name="batches",
    )
    batch_number = models.CharField(max_length=50)
    mfg_date = models.DateField()
    exp_date = models.DateField()
    init_qty = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    qty = models.IntegerField()
    cost = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "batch"
        ordering = ["-mfg_date", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["product", "batch_number"],
                name="batch_unique_number_per_product",
            ),
            models.CheckConstraint(
                condition=Q(qty__gte=0) & Q(qty__lte=F("init_qty")),
                name="batch_qty_within_init_qty",
            ),
            models.CheckConstraint(
                condition=Q(exp_date__gt=F("mfg_date")),
                name="batch_exp_after_mfg",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.batch_number} - {self.product}"

    @property
    def is_expired(self) -> bool:
        return self.exp_date < timezone.localdate()


class OrderStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    ASSIGNED = "assigned", "Assigned"
    IN_TRANSIT = "in_transit", "In transit"
    DELIVERED = "delivered", "Delivered"


class Order(models.Model):
    client = models.ForeignKey(
        Client,
        on_delete=models.PROTECT,
        related_name="orders",
    )
    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name="orders",
    )
    qty = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    total_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    date = models.DateTimeField(default=timezone.now)
    required_date = models.DateField()
    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
    )

    class Meta:
        db_table = "orders"
        ordering = ["-date", "-id"]
        indexes = [
            models.Index(fields=["status", "required_date"], name="orders_status_required_idx"),
        ]

    def __str__(self) -> str:
        return f"Order #{self.pk} - {self.client}"

    @property
    def sale_value(self) -> Decimal:
        if self.total_price:
            return self.total_price
        return (self.unit_price * self.qty).quantize(Decimal("0.01"))


class BatchOrder(models.Model):
    batch = models.ForeignKey(
        Batch,
        on_delete=models.CASCADE,
        related_name="assignments",
    )
    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name="assignments",
    )
    qty = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    diff_qty = models.IntegerField(default=0)
    description = models.CharField(max_length=200, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "batch_order"
        ordering = ["batch_id", "order_id"]
        constraints = [
            models.UniqueConstraint(
                fields=["batch", "order"],
                name="batch_order_unique_pair",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.batch.batch_number} -> order #{self.order_id} ({self.qty})"


class DistributionState(models.TextChoices):
    CREATED = "created", "Created"
    IN_PROGRESS = "in_progress", "In progress"
    COMPLETED = "completed", "Completed"


class Distribution(models.Model):
    date = models.DateTimeField(default=timezone.now)
    departure_time = models.DateTimeField(null=True, blank=True)
    arrival_time = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)
    employees = models.ManyToManyField(
        "staff.Employee",
        through="DistributionEmployee",
        related_name="distributions",
    )
    orders = models.ManyToManyField(
        Order,
        through="DistributionOrder",
        related_name="distributions",
    )

    class Meta:
        db_table = "distribution"
        ordering = ["-date", "-id"]
        constraints = [
            models.CheckConstraint(
                condition=Q(arrival_time__isnull=True)
                | (Q(departure_time__isnull=False) & Q(arrival_time__gte=F("departure_time"))),
                name="distribution_arrival_after_departure",
            ),
        ]

    def __str__(self) -> str:
        return f"Distribution #{self.pk}"

    @property
    def state(self) -> str:
        if self.arrival_time is not None:
            return DistributionState.COMPLETED
        if self.departure_time is not None:
            return DistributionState.IN_PROGRESS
        return DistributionState.CREATED


class DistributionEmployee(models.Model):
    distribution = models.ForeignKey(
        Distribution,
        on_delete=models.CASCADE,
        related_name="employee_links",
    )
    employee = models.ForeignKey(
        "staff.Employee",
        on_delete=models.PROTECT,
        related_name="distribution_links",
    )

    class Meta:
        db_table = "distribution_employee"
        constraints = [
            models.UniqueConstraint(
                fields=["distribution", "employee"],
                name="distribution_employee_unique_pair",
            ),
        ]


class DistributionOrder(models.Model):
    distribution = models.ForeignKey(
        Distribution,
        on_delete=models.CASCADE,
        related_name="order_links",
    )
    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name="distribution_links",
    )

    class Meta:
        db_table = "distribution_order"
        constraints = [
            models.UniqueConstraint(
                fields=["distribution", "order"],
                name="distribution_order_unique_pair",
            ),
        ]
