from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from bms.domain.distribution import (
    available_employees,
    available_orders,
    cancel_distribution,
    create_distribution,
    delete_distribution,
    end_distribution,
    get_distribution,
    start_distribution,
)
from bms.domain.dto import CreateDistributionInput
from bms.models import Distribution

from .serializers import (
    DistributionCreateSerializer,
    DistributionEmployeeSerializer,
    DistributionSerializer,
    OrderSerializer,
)


class DistributionViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    serializer_class = DistributionSerializer
    permission_classes = [IsAuthenticated]
    lookup_value_regex = r"\d+"

    def get_queryset(self):
        return Distribution.objects.prefetch_related("employees", "orders").order_by(
            "-date", "-id"
        )

    def get_object(self):
        distribution = get_distribution(self.kwargs["pk"])
        self.check_object_permissions(self.request, distribution)
        return distribution

    def create(self, request):
        serializer = DistributionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        payload = CreateDistributionInput(
            employee_ids=tuple(data["employeeIds"]),
            order_ids=tuple(data["orderIds"]),
            notes=data.get("notes") or "",
        )
        distribution = create_distribution(payload=payload, user=request.user)
        return Response(
            {
                "message": "Distribution created.",
                "distribution_id": distribution.pk,
            },
            status=status.HTTP_201_CREATED,
        )

    def destroy(self, request, pk=None):
        delete_distribution(distribution_id=pk, user=request.user)
        return Response({"message": "Distribution deleted."})

    def _transition_response(self, distribution, message):
        return Response(
            {
                "message": message,
                "distribution_id": distribution.pk,
                "state": distribution.state,
                "departure_time": distribution.departure_time,
                "arrival_time": distribution.arrival_time,
            }
        )

    @action(detail=True, methods=["post"])
    def start(self, request, pk=None):
        distribution = start_distribution(distribution_id=pk, user=request.user)
        return self._transition_response(distribution, "Distribution started.")

    @action(detail=True, methods=["post"])
    def end(self, request, pk=None):
        distribution = end_distribution(distribution_id=pk, user=request.user)
        return self._transition_response(distribution, "Distribution ended.")

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        distribution = cancel_distribution(distribution_id=pk, user=request.user)
        return self._transition_response(distribution, "Distribution canceled.")

    @action(detail=True, methods=["get"])
    def orders(self, request, pk=None):
        distribution = self.get_object()
        orders = distribution.orders.select_related("client", "product").order_by("id")
        return Response(OrderSerializer(orders, many=True).data)

    @action(detail=True, methods=["get"])
    def employees(self, request, pk=None):
        distribution = self.get_object()
        employees = distribution.employees.order_by("name", "id")
        return Response(DistributionEmployeeSerializer(employees, many=True).data)

    @action(detail=False, methods=["get"], url_path="available-orders")
    def available_orders(self, request):
        return Response(OrderSerializer(available_orders(), many=True).data)

    @action(detail=False, methods=["get"], url_path="available-employees")
    def available_employees(self, request):
        employees = available_employees().order_by("name", "id")
        return Response(DistributionEmployeeSerializer(employees, many=True).data)
