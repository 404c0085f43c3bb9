from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from bms.domain.errors import ValidationError
from bms.exports import export_sales_xlsx
from bms.reports import (
    dashboard_summary,
    low_stock_batches,
    monthly_trend,
    recent_orders,
    sales_by_client,
    sales_by_date_range,
    sales_by_product,
    sales_summary,
)
from bms.runtime_settings import get_runtime_config

from .query_utils import date_range_params, int_param
from .serializers import OrderSerializer

MAX_RANGE_DAYS = 366


def _stock_state(quantity: int, low_stock_threshold: int) -> str:
    if quantity <= 0:
        return "empty"
    if quantity < low_stock_threshold:
        return "low"
    return "ok"


class LowStockView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        threshold = int_param(request, "threshold") or get_runtime_config().low_stock_threshold
        batches = low_stock_batches(threshold=threshold)
        return Response(
            [
                {
                    "batch_id": batch.pk,
                    "batch_number": batch.batch_number,
                    "product_id": batch.product_id,
                    "product_name": batch.product.name,
                    "qty": batch.qty,
                    "init_qty": batch.init_qty,
                    "exp_date": batch.exp_date,
                    "stock_state": _stock_state(batch.qty, threshold),
                }
                for batch in batches
            ]
        )


class DashboardSummaryView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(dashboard_summary())


class RecentOrdersView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(OrderSerializer(recent_orders(), many=True).data)


class SalesSummaryView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(sales_summary())


class SalesRangeView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        start, end = date_range_params(request, required=True)
        if (end - start).days >= MAX_RANGE_DAYS:
            raise ValidationError(
                f"Date range cannot exceed {MAX_RANGE_DAYS} days.",
                field="end",
            )
        return Response(sales_by_date_range(start=start, end=end))


class SalesByProductView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        start, end = date_range_params(request)
        return Response(sales_by_product(start=start, end=end))


class SalesByClientView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        start, end = date_range_params(request)
        return Response(sales_by_client(start=start, end=end))


class SalesMonthlyTrendView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        months = int_param(request, "months")
        if months is None:
            months = 12
        if not 1 <= months <= 36:
            raise ValidationError("months must be between 1 and 36.", field="months")
        return Response(monthly_trend(months=months))


class SalesExportView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        start, end = date_range_params(request)
        return export_sales_xlsx(start=start, end=end)
