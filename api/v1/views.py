from django.db.models import Count, Max, Min, Sum
from django.db.models.functions import Coalesce
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from bms.domain.dto import AssignBatchInput, UpdateAssignmentInput
from bms.domain.errors import NotFound
from bms.domain.ledger import (
    assign_batch_to_order,
    available_quantity,
    create_batch,
    delete_batch,
    remove_assignment,
    update_assignment,
    update_batch,
)
from bms.domain.orders import (
    create_order,
    delete_category,
    delete_client,
    delete_order,
    delete_product,
    update_order,
)
from bms.models import Batch, BatchOrder, Client, Order, Product, ProductCategory
from bms.production import production_requirements, production_schedule
from bms.reports import sale_value_expression

from .query_utils import int_param
from .serializers import (
    BatchOrderCreateSerializer,
    BatchOrderSerializer,
    BatchOrderUpdateSerializer,
    BatchSerializer,
    ClientDetailSerializer,
    ClientSerializer,
    OrderDetailSerializer,
    OrderSerializer,
    ProductCategorySerializer,
    ProductSerializer,
)


class ProductCategoryViewSet(viewsets.ModelViewSet):
    serializer_class = ProductCategorySerializer
    permission_classes = [IsAuthenticated]
    queryset = ProductCategory.objects.all().order_by("name")
    lookup_value_regex = r"\d+"

    def destroy(self, request, pk=None):
        delete_category(category_id=pk)
        return Response({"message": "Category deleted."})


class ProductViewSet(viewsets.ModelViewSet):
    serializer_class = ProductSerializer
    permission_classes = [IsAuthenticated]
    lookup_value_regex = r"\d+"

    def get_queryset(self):
        queryset = Product.objects.select_related("category").order_by("name", "id")
        query = (self.request.query_params.get("q") or "").strip()
        if query:
            queryset = queryset.filter(name__icontains=query)
        category_id = int_param(self.request, "category")
        if category_id is not None:
            queryset = queryset.filter(category_id=category_id)
        return queryset

    def destroy(self, request, pk=None):
        delete_product(product_id=pk)
        return Response({"message": "Product deleted."})


class ClientViewSet(viewsets.ModelViewSet):
    permission_classes = [IsAuthenticated]
    lookup_value_regex = r"\d+"

    def get_queryset(self):
        queryset = Client.objects.all().order_by("name", "id")
        if self.action == "retrieve":
            queryset = queryset.prefetch_related("orders__client", "orders__product")
        query = (self.request.query_params.get("q") or "").strip()
        if query:
            queryset = queryset.filter(name__icontains=query)
        return queryset

    def get_serializer_class(self):
        if self.action == "retrieve":
            return ClientDetailSerializer
        return ClientSerializer

    def destroy(self, request, pk=None):
        delete_client(client_id=pk, user=request.user)
        return Response({"message": "Client deleted."})

    @action(detail=True, methods=["get"], url_path="order-summary")
    def order_summary(self, request, pk=None):
        client = self.get_object()
        summary = Order.objects.filter(client=client).aggregate(
            total_orders=Count("id"),
            total_quantity=Coalesce(Sum("qty"), 0),
            total_amount=Sum(sale_value_expression()),
            first_order_date=Min("date"),
            last_order_date=Max("date"),
        )
        summary["total_amount"] = summary["total_amount"] or 0
        return Response({"client_id": client.pk, "client_name": client.name, **summary})


class BatchViewSet(viewsets.ModelViewSet):
    serializer_class = BatchSerializer
    permission_classes = [IsAuthenticated]
    lookup_value_regex = r"\d+"

    def get_queryset(self):
        queryset = Batch.objects.select_related("product").order_by("-mfg_date", "-id")
        product_id = int_param(self.request, "product")
        if product_id is not None:
            queryset = queryset.filter(product_id=product_id)
        return queryset

    def create(self, request):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        batch = create_batch(user=request.user, **serializer.validated_data)
        return Response(self.get_serializer(batch).data, status=status.HTTP_201_CREATED)

    def update(self, request, pk=None, partial=False):
        batch = self.get_object()
        serializer = self.get_serializer(batch, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        batch = update_batch(
            batch_id=batch.pk,
            changes=serializer.validated_data,
            user=request.user,
        )
        return Response(self.get_serializer(batch).data)

    def partial_update(self, request, pk=None):
        return self.update(request, pk=pk, partial=True)

    def destroy(self, request, pk=None):
        delete_batch(batch_id=pk, user=request.user)
        return Response({"message": "Batch deleted."})

    @action(detail=False, methods=["get"], url_path=r"product/(?P<product_id>\d+)")
    def by_product(self, request, product_id=None):
        batches = self.get_queryset().filter(product_id=product_id)
        return Response(self.get_serializer(batches, many=True).data)

    @action(detail=True, methods=["get"], url_path="available-quantity")
    def available_quantity(self, request, pk=None):
        exclude_order_id = int_param(request, "exclude_order")
        available = available_quantity(batch_id=pk, exclude_order_id=exclude_order_id)
        return Response(
            {
                "batch_id": int(pk),
                "exclude_order": exclude_order_id,
                "available_quantity": available,
            }
        )


class OrderViewSet(viewsets.ModelViewSet):
    permission_classes = [IsAuthenticated]
    lookup_value_regex = r"\d+"

    def get_queryset(self):
        queryset = Order.objects.select_related("client", "product").order_by("-date", "-id")
        if self.action == "retrieve":
            queryset = queryset.prefetch_related(
                "assignments__batch",
                "assignments__order__client",
                "assignments__order__product",
            )
        status_filter = (self.request.query_params.get("status") or "").strip()
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        return queryset

    def get_serializer_class(self):
        if self.action == "retrieve":
            return OrderDetailSerializer
        return OrderSerializer

    def create(self, request):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        order = create_order(
            client=data["client"],
            product=data["product"],
            qty=data["qty"],
            required_date=data["required_date"],
            unit_price=data.get("unit_price"),
            user=request.user,
        )
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)

    def update(self, request, pk=None, partial=False):
        order = self.get_object()
        serializer = self.get_serializer(order, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        order = update_order(
            order_id=order.pk,
            changes=dict(serializer.validated_data),
            user=request.user,
        )
        return Response(OrderSerializer(order).data)

    def partial_update(self, request, pk=None):
        return self.update(request, pk=pk, partial=True)

    def destroy(self, request, pk=None):
        delete_order(order_id=pk, user=request.user)
        return Response({"message": "Order deleted."})

    @action(detail=False, methods=["get"], url_path=r"client/(?P<client_id>\d+)")
    def by_client(self, request, client_id=None):
        if not Client.objects.filter(pk=client_id).exists():
            raise NotFound("Client not found.", client_id=int(client_id))
        orders = self.get_queryset().filter(client_id=client_id)
        return Response(OrderSerializer(orders, many=True).data)

    @action(detail=False, methods=["get"], url_path="production-requirements")
    def production_requirements(self, request):
        return Response(production_requirements())

    @action(detail=False, methods=["get"], url_path="production-schedule")
    def production_schedule(self, request):
        return Response(production_schedule())


def _batch_order_queryset():
    return BatchOrder.objects.select_related(
        "batch",
        "order",
        "order__client",
        "order__product",
    ).order_by("-order__date", "batch_id", "order_id")


class BatchOrderListCreateView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(BatchOrderSerializer(_batch_order_queryset(), many=True).data)

    def post(self, request):
        serializer = BatchOrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        payload = AssignBatchInput(
            batch_id=data["fk_batch_order_batch"],
            order_id=data["fk_batch_order_order"],
            qty=data["qty"],
            description=data.get("description") or "",
        )
        assignment = assign_batch_to_order(payload=payload, user=request.user)
        assignment = _batch_order_queryset().get(pk=assignment.pk)
        return Response(BatchOrderSerializer(assignment).data, status=status.HTTP_201_CREATED)


class BatchOrderDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, batch_id, order_id):
        assignment = _batch_order_queryset().filter(batch_id=batch_id, order_id=order_id).first()
        if assignment is None:
            raise NotFound(
                "Batch order assignment not found.",
                batch_id=batch_id,
                order_id=order_id,
            )
        return Response(BatchOrderSerializer(assignment).data)

    def put(self, request, batch_id, order_id):
        serializer = BatchOrderUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payload = UpdateAssignmentInput(
            batch_id=batch_id,
            order_id=order_id,
            qty=serializer.validated_data["qty"],
            description=serializer.validated_data.get("description"),
        )
        assignment = update_assignment(payload=payload, user=request.user)
        return Response(
            {
                "message": "Batch order updated.",
                "batch_id": batch_id,
                "order_id": order_id,
                "qty": assignment.qty,
                "diff_qty": assignment.diff_qty,
                "description": assignment.description,
            }
        )

    def delete(self, request, batch_id, order_id):
        order = remove_assignment(batch_id=batch_id, order_id=order_id, user=request.user)
        return Response(
            {
                "message": "Batch order removed.",
                "order_id": order.pk,
                "order_status": order.status,
                "total_price": str(order.total_price),
            }
        )


class BatchOrdersByBatchView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, batch_id):
        assignments = _batch_order_queryset().filter(batch_id=batch_id)
        return Response(BatchOrderSerializer(assignments, many=True).data)


class BatchOrdersByOrderView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, order_id):
        assignments = _batch_order_queryset().filter(order_id=order_id)
        return Response(BatchOrderSerializer(assignments, many=True).data)
