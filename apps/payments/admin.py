from django.contrib import admin

from .models import Payment, PaymentTransaction, RevenueSplit


class PaymentTransactionInline(admin.TabularInline):
    model = PaymentTransaction
    extra = 0
    can_delete = False
    fields = ("created_at", "previous_status", "new_status", "event_source", "event_type", "gateway_event_id")
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("id", "enrollment_id", "payer_name", "gross_amount", "payment_method", "gateway", "status", "created_at")
    search_fields = ("enrollment_id", "payer_name", "payer_email", "gateway_payment_id")
    list_filter = ("status", "gateway", "payment_method")
    readonly_fields = ("status", "paid_at", "refunded_at", "cancelled_at", "created_at", "updated_at")
    inlines = [PaymentTransactionInline]

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(PaymentTransaction)
class PaymentTransactionAdmin(admin.ModelAdmin):
    list_display = ("payment", "previous_status", "new_status", "event_source", "event_type", "created_at")
    search_fields = ("payment__enrollment_id", "gateway_event_id")
    list_filter = ("event_source", "event_type")

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(RevenueSplit)
class RevenueSplitAdmin(admin.ModelAdmin):
    list_display = ("payment", "enrollment_id", "instructor_id", "instructor_amount", "platform_amount", "status")
    search_fields = ("enrollment_id", "instructor_id")
    list_filter = ("status", "payment_method")
