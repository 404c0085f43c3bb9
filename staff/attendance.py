import logging
from datetime import datetime, timedelta

from django.db import IntegrityError, connection, transaction
from django.db.models import Count, Q, Sum
from django.db.models.functions import Coalesce
from django.utils import timezone

from bms.domain.errors import AttendanceComplete, NotFound, ValidationError
from bms.runtime_settings import get_runtime_config

from .models import Attendance, AttendanceStatus, Employee

LOGGER = logging.getLogger(__name__)

SCAN_CHECK_IN = "check_in"
SCAN_CHECK_OUT = "check_out"


def late_cutoff(day):
    config = get_runtime_config()
    start = datetime.combine(day, config.attendance_start_time)
    return (start + timedelta(minutes=config.attendance_grace_minutes)).time()


def attendance_status_for(local_now) -> str:
    if local_now.time() > late_cutoff(local_now.date()):
        return AttendanceStatus.LATE
    return AttendanceStatus.ON_TIME


def whole_hours_between(start, end) -> int:
    seconds = (end - start).total_seconds()
    return max(0, int(seconds // 3600))


def find_employee_by_nic(nic) -> Employee:
    normalized = (nic or "").strip().upper()
    if not normalized:
        raise ValidationError("NIC is required.", field="nic")
    employee = Employee.objects.filter(nic=normalized).first()
    if employee is None:
        raise NotFound("Employee not found.", nic=normalized)
    return employee


def record_qr_scan(*, nic, now=None) -> tuple[Attendance, str]:
    employee = find_employee_by_nic(nic)
    now = now or timezone.now()
    local_now = timezone.localtime(now)
    today = local_now.date()
    with transaction.atomic():
        records = Attendance.objects.filter(employee=employee, attendance_date=today)
        if connection.features.has_select_for_update:
            records = records.select_for_update()
        attendance = records.first()
        if attendance is None:
            try:
                with transaction.atomic():
                    attendance = Attendance.objects.create(
                        employee=employee,
                        attendance_date=today,
                        check_in_time=now,
                        status=attendance_status_for(local_now),
                    )
            except IntegrityError as exc:
                raise ValidationError(
                    "A scan for this employee is already being recorded.",
                    employee_id=employee.pk,
                ) from exc
            LOGGER.info(
                "Check-in recorded for employee %s (%s).", employee.pk, attendance.status
            )
            return attendance, SCAN_CHECK_IN
        if attendance.check_out_time is None:
            attendance.check_out_time = now
            attendance.total_hours = whole_hours_between(attendance.check_in_time, now)
            attendance.save(update_fields=["check_out_time", "total_hours"])
            LOGGER.info(
                "Check-out recorded for employee %s after %s hours.",
                employee.pk,
                attendance.total_hours,
            )
            return attendance, SCAN_CHECK_OUT
    raise AttendanceComplete(employee_id=employee.pk, attendance_date=str(today))


def attendance_records(*, start=None, end=None, employee_id=None, day=None):
    queryset = Attendance.objects.select_related("employee", "employee__employee_type")
    if employee_id is not None:
        queryset = queryset.filter(employee_id=employee_id)
    if day is not None:
        queryset = queryset.filter(attendance_date=day)
    if start is not None:
        queryset = queryset.filter(attendance_date__gte=start)
    if end is not None:
        queryset = queryset.filter(attendance_date__lte=end)
    return queryset


def attendance_summary(*, start, end) -> list[dict]:
    rows = (
        attendance_records(start=start, end=end)
        .values("employee_id", "employee__name")
        .annotate(
            total_days=Count("id"),
            late_days=Count("id", filter=Q(status=AttendanceStatus.LATE)),
            on_time_days=Count("id", filter=Q(status=AttendanceStatus.ON_TIME)),
            total_hours=Coalesce(Sum("total_hours"), 0),
        )
        .order_by("employee__name", "employee_id")
    )
    return [
        {
            "employee_id": row["employee_id"],
            "employee_name": row["employee__name"],
            "total_days": row["total_days"],
            "late_days": row["late_days"],
            "on_time_days": row["on_time_days"],
            "total_hours": row["total_hours"],
        }
        for row in rows
    ]
