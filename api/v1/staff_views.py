from django.http import FileResponse
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from bms.domain.errors import NotFound, ValidationError
from staff.attendance import (
    SCAN_CHECK_IN,
    attendance_records,
    attendance_summary,
    record_qr_scan,
)
from staff.models import Employee, EmployeeType

from .permissions import KioskKeyOrAuth
from .query_utils import date_param, date_range_params
from .serializers import (
    AttendanceSerializer,
    EmployeeSerializer,
    EmployeeTypeSerializer,
    QrScanSerializer,
)


class EmployeeTypeViewSet(viewsets.ModelViewSet):
    serializer_class = EmployeeTypeSerializer
    permission_classes = [IsAuthenticated]
    queryset = EmployeeType.objects.all().order_by("name")
    lookup_value_regex = r"\d+"

    def destroy(self, request, pk=None):
        employee_type = self.get_object()
        if employee_type.employees.exists():
            raise ValidationError(
                "Cannot delete an employee type that still has employees.",
                employee_type_id=employee_type.pk,
            )
        employee_type.delete()
        return Response({"message": "Employee type deleted."})


class EmployeeViewSet(viewsets.ModelViewSet):
    serializer_class = EmployeeSerializer
    permission_classes = [IsAuthenticated]
    lookup_value_regex = r"\d+"

    def get_queryset(self):
        queryset = Employee.objects.select_related("employee_type").order_by("name", "id")
        query = (self.request.query_params.get("q") or "").strip()
        if query:
            queryset = queryset.filter(name__icontains=query)
        return queryset

    def destroy(self, request, pk=None):
        employee = self.get_object()
        if employee.distribution_links.exists():
            raise ValidationError(
                "Cannot delete an employee linked to distributions.",
                employee_id=employee.pk,
            )
        employee.delete()
        return Response({"message": "Employee deleted."})

    @action(detail=True, methods=["get"])
    def qr(self, request, pk=None):
        employee = self.get_object()
        if not employee.qr_code_image:
            employee.generate_qr_code()
            employee.save(update_fields=["qr_code_image"])
        return FileResponse(
            employee.qr_code_image.open("rb"),
            content_type="image/png",
            filename=f"employee_{employee.nic}.png",
        )


class AttendanceListView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        start, end = date_range_params(request)
        records = attendance_records(start=start, end=end, day=date_param(request, "date"))
        return Response(AttendanceSerializer(records, many=True).data)


class AttendanceRangeView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        start, end = date_range_params(request, required=True)
        records = attendance_records(start=start, end=end)
        return Response(AttendanceSerializer(records, many=True).data)


class EmployeeAttendanceView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, employee_id):
        if not Employee.objects.filter(pk=employee_id).exists():
            raise NotFound("Employee not found.", employee_id=employee_id)
        records = attendance_records(employee_id=employee_id, day=date_param(request, "date"))
        return Response(AttendanceSerializer(records, many=True).data)


class AttendanceSummaryView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        start, end = date_range_params(request, required=True)
        return Response(attendance_summary(start=start, end=end))


class AttendanceQrScanView(APIView):
    permission_classes = [KioskKeyOrAuth]

    def post(self, request):
        serializer = QrScanSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        attendance, scan_type = record_qr_scan(nic=serializer.validated_data["nic"])
        if scan_type == SCAN_CHECK_IN:
            message = "Check-in recorded."
            http_status = status.HTTP_201_CREATED
        else:
            message = "Check-out recorded."
            http_status = status.HTTP_200_OK
        return Response(
            {
                "message": message,
                "type": scan_type,
                "employee_name": attendance.employee.name,
                "attendance": AttendanceSerializer(attendance).data,
            },
            status=http_status,
        )
