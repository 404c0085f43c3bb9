from django.contrib import admin, messages

from . import models
from .domain.distribution import (
    cancel_distribution,
    delete_distribution,
    end_distribution,
    start_distribution,
)
from .domain.errors import BmsError
from .domain.ledger import delete_batch
from .domain.orders import ORDER_EDITABLE_FIELDS, delete_order, update_order


class LedgerDeleteMixin:
    """Admin deletes go through the domain services instead of the FK cascade."""

    def delete_through_domain(self, obj, user):
        raise NotImplementedError

    def delete_model(self, request, obj):
        self.delete_through_domain(obj, request.user)

    def delete_queryset(self, request, queryset):
        for obj in queryset:
            try:
                self.delete_through_domain(obj, request.user)
            except BmsError as exc:
                self.message_user(request, f"{obj}: {exc}", level=messages.ERROR)


class ReadOnlyLinkInline(admin.TabularInline):
    extra = 0
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(models.ProductCategory)
class ProductCategoryAdmin(admin.ModelAdmin):
    list_display = ("name",)
    search_fields = ("name",)


@admin.register(models.Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "category", "price")
    list_filter = ("category",)
    search_fields = ("name", "description")
    list_select_related = ("category",)


@admin.register(models.Client)
class ClientAdmin(admin.ModelAdmin):
    list_display = ("name", "contact_person", "location", "phone1", "email")
    search_fields = ("name", "contact_person", "phone1", "phone2", "email")


class BatchOrderInline(ReadOnlyLinkInline):
    model = models.BatchOrder
    fields = ("order", "batch", "qty", "diff_qty", "description")
    readonly_fields = fields


@admin.register(models.Batch)
class BatchAdmin(LedgerDeleteMixin, admin.ModelAdmin):
    list_display = (
        "batch_number",
        "product",
        "mfg_date",
        "exp_date",
        "init_qty",
        "qty",
        "cost",
    )
    list_filter = ("product", "exp_date")
    search_fields = ("batch_number", "product__name")
    list_select_related = ("product",)
    readonly_fields = ("qty",)
    inlines = [BatchOrderInline]

    def get_readonly_fields(self, request, obj=None):
        if obj is not None and obj.assignments.exists():
            return ("qty", "init_qty", "product")
        return self.readonly_fields

    def save_model(self, request, obj, form, change):
        if not change or "init_qty" in form.changed_data:
            obj.qty = obj.init_qty
        super().save_model(request, obj, form, change)

    def delete_through_domain(self, obj, user):
        delete_batch(batch_id=obj.pk, user=user)


@admin.register(models.Order)
class OrderAdmin(LedgerDeleteMixin, admin.ModelAdmin):
    list_display = (
        "id",
        "client",
        "product",
        "qty",
        "unit_price",
        "total_price",
        "required_date",
        "status",
    )
    list_filter = ("status", "required_date")
    search_fields = ("client__name", "product__name")
    list_select_related = ("client", "product")
    readonly_fields = ("total_price", "status")
    inlines = [BatchOrderInline]

    def get_readonly_fields(self, request, obj=None):
        if obj is not None and obj.assignments.exists():
            return self.readonly_fields + ("product",)
        return self.readonly_fields

    def save_model(self, request, obj, form, change):
        if not change:
            super().save_model(request, obj, form, change)
            return
        changes = {
            field_name: form.cleaned_data[field_name]
            for field_name in form.changed_data
            if field_name in ORDER_EDITABLE_FIELDS
        }
        update_order(order_id=obj.pk, changes=changes, user=request.user)
        other_fields = [name for name in form.changed_data if name not in ORDER_EDITABLE_FIELDS]
        if other_fields:
            obj.save(update_fields=other_fields)

    def delete_through_domain(self, obj, user):
        delete_order(order_id=obj.pk, user=user)


class DistributionEmployeeInline(ReadOnlyLinkInline):
    model = models.DistributionEmployee
    fields = ("employee",)
    readonly_fields = fields


class DistributionOrderInline(ReadOnlyLinkInline):
    model = models.DistributionOrder
    fields = ("order",)
    readonly_fields = fields


@admin.register(models.Distribution)
class DistributionAdmin(LedgerDeleteMixin, admin.ModelAdmin):
    list_display = ("id", "date", "departure_time", "arrival_time", "state_display")
    readonly_fields = ("departure_time", "arrival_time")
    inlines = [DistributionEmployeeInline, DistributionOrderInline]
    actions = ("start_runs", "end_runs", "cancel_runs")

    def has_add_permission(self, request):
        # Runs are created through the API, which checks order and employee availability.
        return False

    def has_delete_permission(self, request, obj=None):
        if obj is not None and obj.departure_time is not None:
            return False
        return super().has_delete_permission(request, obj)

    def delete_through_domain(self, obj, user):
        delete_distribution(distribution_id=obj.pk, user=user)

    def state_display(self, obj):
        return models.DistributionState(obj.state).label

    state_display.short_description = "State"

    def _apply_transition(self, request, queryset, transition, label):
        processed = 0
        for distribution in queryset:
            try:
                transition(distribution_id=distribution.pk, user=request.user)
            except BmsError as exc:
                self.message_user(
                    request,
                    f"Distribution #{distribution.pk}: {exc}",
                    level=messages.ERROR,
                )
                continue
            processed += 1
        if processed:
            self.message_user(request, f"{processed} distribution(s) {label}.")

    def start_runs(self, request, queryset):
        self._apply_transition(request, queryset, start_distribution, "started")

    start_runs.short_description = "Start selected distributions"

    def end_runs(self, request, queryset):
        self._apply_transition(request, queryset, end_distribution, "ended")

    end_runs.short_description = "End selected distributions"

    def cancel_runs(self, request, queryset):
        self._apply_transition(request, queryset, cancel_distribution, "canceled")

    cancel_runs.short_description = "Cancel selected distributions"
