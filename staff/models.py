from decimal import Decimal
from io import BytesIO

import qrcode
from django.core.files.base import ContentFile
from django.core.validators import MinValueValidator
from django.db import models


class EmployeeType(models.Model):
    name = models.CharField(max_length=120, unique=True)
    description = models.TextField(blank=True)
    basic_salary = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
    )

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class Employee(models.Model):
    name = models.CharField(max_length=200)
    employee_type = models.ForeignKey(
        EmployeeType,
        on_delete=models.PROTECT,
        related_name="employees",
    )
    nic = models.CharField("NIC", max_length=20, unique=True)
    acc_no = models.CharField("account number", max_length=40, blank=True)
    dob = models.DateField("date of birth", null=True, blank=True)
    email = models.EmailField(blank=True)
    phone1 = models.CharField(max_length=40, blank=True)
    phone2 = models.CharField(max_length=40, blank=True)
    qr_code_image = models.ImageField(upload_to="employee_qr/", blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name", "id"]

    def __str__(self) -> str:
        return f"{self.name} ({self.nic})"

    def generate_qr_code(self):
        if not self.nic:
            return
        qr = qrcode.QRCode(border=2)
        qr.add_data(self.nic)
        qr.make(fit=True)
        img = qr.make_image(fill_color="black", back_color="white")
        buffer = BytesIO()
        img.save(buffer, format="PNG")
        filename = f"employee_{self.nic}.png"
        self.qr_code_image.save(filename, ContentFile(buffer.getvalue()), save=False)

    def save(self, *args, **kwargs):
        if self.nic:
            self.nic = self.nic.strip().upper()
        if self.pk is None and not self.qr_code_image:
            self.generate_qr_code()
        super().save(*args, **kwargs)


class AttendanceStatus(models.TextChoices):
    ON_TIME = "on time", "On time"
    LATE = "late", "Late"


class Attendance(models.Model):
    employee = models.ForeignKey(
        Employee,
        on_delete=models.CASCADE,
        related_name="attendance_records",
    )
    attendance_date = models.DateField()
    check_in_time = models.DateTimeField()
    check_out_time = models.DateTimeField(null=True, blank=True)
    total_hours = models.PositiveIntegerField(null=True, blank=True)
    status = models.CharField(
        max_length=20,
        choices=AttendanceStatus.choices,
        default=AttendanceStatus.ON_TIME,
    )

    class Meta:
        db_table = "attendance"
        ordering = ["-attendance_date", "-check_in_time"]
        constraints = [
            models.UniqueConstraint(
                fields=["employee", "attendance_date"],
                name="attendance_one_record_per_day",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.employee.name} - {self.attendance_date}"

    @property
    def is_complete(self) -> bool:
        return self.check_out_time is not None
