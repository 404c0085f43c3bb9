from rest_framework import serializers

from bms.models import (
    Batch,
    BatchOrder,
    Client,
    Distribution,
    Order,
    Product,
    ProductCategory,
)
from staff.models import Attendance, Employee, EmployeeType


class ProductCategorySerializer(serializers.ModelSerializer):
    class Meta:
        model = ProductCategory
        fields = ("id", "name", "description")


class ProductSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source="category.name", read_only=True)

    class Meta:
        model = Product
        fields = ("id", "name", "category", "category_name", "price", "description")


class ClientSerializer(serializers.ModelSerializer):
    class Meta:
        model = Client
        fields = (
            "id",
            "name",
            "contact_person",
            "location",
            "phone1",
            "phone2",
            "email",
        )


class BatchSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source="product.name", read_only=True)
    batch_number = serializers.CharField(max_length=50, required=False, allow_blank=True)
    is_expired = serializers.BooleanField(read_only=True)

    class Meta:
        model = Batch
        fields = (
            "id",
            "product",
            "product_name",
            "batch_number",
            "mfg_date",
            "exp_date",
            "init_qty",
            "qty",
            "cost",
            "description",
            "is_expired",
        )
        read_only_fields = ("qty",)
        # Uniqueness per product is checked by the ledger, which reports it
        # with the domain error payload.
        validators = []


class BatchOrderSerializer(serializers.ModelSerializer):
    batch_id = serializers.IntegerField(read_only=True)
    order_id = serializers.IntegerField(read_only=True)
    batch_number = serializers.CharField(source="batch.batch_number", read_only=True)
    order_date = serializers.DateTimeField(source="order.date", read_only=True)
    order_qty = serializers.IntegerField(source="order.qty", read_only=True)
    required_date = serializers.DateField(source="order.required_date", read_only=True)
    order_status = serializers.CharField(source="order.status", read_only=True)
    product_name = serializers.CharField(source="order.product.name", read_only=True)
    client_name = serializers.CharField(source="order.client.name", read_only=True)

    class Meta:
        model = BatchOrder
        fields = (
            "batch_id",
            "order_id",
            "batch_number",
            "qty",
            "diff_qty",
            "description",
            "order_date",
            "order_qty",
            "required_date",
            "order_status",
            "product_name",
            "client_name",
        )


class BatchOrderCreateSerializer(serializers.Serializer):
    fk_batch_order_batch = serializers.IntegerField()
    fk_batch_order_order = serializers.IntegerField()
    qty = serializers.IntegerField()
    description = serializers.CharField(required=False, allow_blank=True, default="")


class BatchOrderUpdateSerializer(serializers.Serializer):
    qty = serializers.IntegerField()
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class OrderSerializer(serializers.ModelSerializer):
    client_name = serializers.CharField(source="client.name", read_only=True)
    product_name = serializers.CharField(source="product.name", read_only=True)
    unit_price = serializers.DecimalField(max_digits=10, decimal_places=2, required=False)
    status = serializers.CharField(max_length=20, required=False)

    class Meta:
        model = Order
        fields = (
            "id",
            "client",
            "client_name",
            "product",
            "product_name",
            "qty",
            "unit_price",
            "total_price",
            "date",
            "required_date",
            "status",
        )
        read_only_fields = ("total_price", "date")


class OrderDetailSerializer(OrderSerializer):
    assignments = BatchOrderSerializer(many=True, read_only=True)

    class Meta(OrderSerializer.Meta):
        fields = OrderSerializer.Meta.fields + ("assignments",)


class ClientDetailSerializer(ClientSerializer):
    orders = OrderSerializer(many=True, read_only=True)

    class Meta(ClientSerializer.Meta):
        fields = ClientSerializer.Meta.fields + ("orders",)


class DistributionEmployeeSerializer(serializers.ModelSerializer):
    class Meta:
        model = Employee
        fields = ("id", "name", "nic", "phone1")


class DistributionSerializer(serializers.ModelSerializer):
    state = serializers.CharField(read_only=True)
    employees = DistributionEmployeeSerializer(many=True, read_only=True)
    order_ids = serializers.SerializerMethodField()

    class Meta:
        model = Distribution
        fields = (
            "id",
            "date",
            "departure_time",
            "arrival_time",
            "notes",
            "state",
            "employees",
            "order_ids",
        )

    def get_order_ids(self, obj):
        return sorted(order.pk for order in obj.orders.all())


class DistributionCreateSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    employeeIds = serializers.ListField(
        child=serializers.IntegerField(),
        required=False,
        default=list,
    )
    orderIds = serializers.ListField(
        child=serializers.IntegerField(),
        required=False,
        default=list,
    )


class EmployeeTypeSerializer(serializers.ModelSerializer):
    class Meta:
        model = EmployeeType
        fields = ("id", "name", "description", "basic_salary")


class EmployeeSerializer(serializers.ModelSerializer):
    employee_type_name = serializers.CharField(source="employee_type.name", read_only=True)
    qr_code_url = serializers.SerializerMethodField()

    class Meta:
        model = Employee
        fields = (
            "id",
            "name",
            "employee_type",
            "employee_type_name",
            "nic",
            "acc_no",
            "dob",
            "email",
            "phone1",
            "phone2",
            "is_active",
            "qr_code_url",
        )

    def get_qr_code_url(self, obj):
        if not obj.qr_code_image:
            return None
        return obj.qr_code_image.url

    def validate_nic(self, value):
        value = (value or "").strip().upper()
        queryset = Employee.objects.filter(nic=value)
        if self.instance is not None:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError("An employee with this NIC already exists.")
        return value


class AttendanceSerializer(serializers.ModelSerializer):
    employee_name = serializers.CharField(source="employee.name", read_only=True)
    employee_nic = serializers.CharField(source="employee.nic", read_only=True)

    class Meta:
        model = Attendance
        fields = (
            "id",
            "employee",
            "employee_name",
            "employee_nic",
            "attendance_date",
            "check_in_time",
            "check_out_time",
            "total_hours",
            "status",
        )


class QrScanSerializer(serializers.Serializer):
    nic = serializers.CharField(required=False, allow_blank=True, default="")
