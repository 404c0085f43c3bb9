from django.urls import path
from rest_framework.routers import DefaultRouter

from .distribution_views import DistributionViewSet
from .report_views import (
    DashboardSummaryView,
    LowStockView,
    RecentOrdersView,
    SalesByClientView,
    SalesByProductView,
    SalesExportView,
    SalesMonthlyTrendView,
    SalesRangeView,
    SalesSummaryView,
)
from .staff_views import (
    AttendanceListView,
    AttendanceQrScanView,
    AttendanceRangeView,
    AttendanceSummaryView,
    EmployeeAttendanceView,
    EmployeeTypeViewSet,
    EmployeeViewSet,
)
from .views import (
    BatchOrderDetailView,
    BatchOrderListCreateView,
    BatchOrdersByBatchView,
    BatchOrdersByOrderView,
    BatchViewSet,
    ClientViewSet,
    OrderViewSet,
    ProductCategoryViewSet,
    ProductViewSet,
)

router = DefaultRouter()
router.register("categories", ProductCategoryViewSet, basename="category")
router.register("products", ProductViewSet, basename="product")
router.register("clients", ClientViewSet, basename="client")
router.register("batches", BatchViewSet, basename="batch")
router.register("orders", OrderViewSet, basename="order")
router.register("distribution", DistributionViewSet, basename="distribution")
router.register("employee-types", EmployeeTypeViewSet, basename="employee-type")
router.register("employees", EmployeeViewSet, basename="employee")

urlpatterns = [
    path("batch-orders/", BatchOrderListCreateView.as_view(), name="batch-order-list"),
    path(
        "batch-orders/batch/<int:batch_id>/",
        BatchOrdersByBatchView.as_view(),
        name="batch-order-by-batch",
    ),
    path(
        "batch-orders/order/<int:order_id>/",
        BatchOrdersByOrderView.as_view(),
        name="batch-order-by-order",
    ),
    path(
        "batch-orders/<int:batch_id>/<int:order_id>/",
        BatchOrderDetailView.as_view(),
        name="batch-order-detail",
    ),
    path("inventory/low-stock/", LowStockView.as_view(), name="inventory-low-stock"),
    path("dashboard/summary/", DashboardSummaryView.as_view(), name="dashboard-summary"),
    path("dashboard/recent-orders/", RecentOrdersView.as_view(), name="dashboard-recent-orders"),
    path("sales/summary/", SalesSummaryView.as_view(), name="sales-summary"),
    path("sales/range/", SalesRangeView.as_view(), name="sales-range"),
    path("sales/by-product/", SalesByProductView.as_view(), name="sales-by-product"),
    path("sales/by-client/", SalesByClientView.as_view(), name="sales-by-client"),
    path("sales/monthly-trend/", SalesMonthlyTrendView.as_view(), name="sales-monthly-trend"),
    path("sales/export.xlsx", SalesExportView.as_view(), name="sales-export"),
    path("attendance/", AttendanceListView.as_view(), name="attendance-list"),
    path("attendance/range/", AttendanceRangeView.as_view(), name="attendance-range"),
    path("attendance/summary/", AttendanceSummaryView.as_view(), name="attendance-summary"),
    path("attendance/qr-scan/", AttendanceQrScanView.as_view(), name="attendance-qr-scan"),
    path(
        "attendance/employee/<int:employee_id>/",
        EmployeeAttendanceView.as_view(),
        name="attendance-by-employee",
    ),
]

urlpatterns += router.urls
