from django.contrib import admin
from django.utils.html import format_html

from .models import Attendance, Employee, EmployeeType


@admin.register(EmployeeType)
class EmployeeTypeAdmin(admin.ModelAdmin):
    list_display = ("name", "basic_salary")
    search_fields = ("name",)


@admin.register(Employee)
class EmployeeAdmin(admin.ModelAdmin):
    list_display = ("name", "nic", "employee_type", "phone1", "is_active")
    list_filter = ("employee_type", "is_active")
    search_fields = ("name", "nic", "email", "phone1")
    list_select_related = ("employee_type",)
    readonly_fields = ("qr_code_preview",)
    actions = ("generate_qr_codes",)

    def qr_code_preview(self, obj):
        if obj.qr_code_image:
            return format_html(
                '<img src="{}" style="height: 120px; border: 1px solid #ccc;" />',
                obj.qr_code_image.url,
            )
        return "-"

    qr_code_preview.short_description = "QR code"

    def generate_qr_codes(self, request, queryset):
        count = 0
        for employee in queryset:
            if not employee.qr_code_image:
                employee.generate_qr_code()
                employee.save(update_fields=["qr_code_image"])
                count += 1
        self.message_user(request, f"{count} QR code(s) generated.")

    generate_qr_codes.short_description = "Generate QR codes"


@admin.register(Attendance)
class AttendanceAdmin(admin.ModelAdmin):
    list_display = (
        "employee",
        "attendance_date",
        "check_in_time",
        "check_out_time",
        "total_hours",
        "status",
    )
    list_filter = ("status", "attendance_date")
    search_fields = ("employee__name", "employee__nic")
    list_select_related = ("employee",)
    date_hierarchy = "attendance_date"
