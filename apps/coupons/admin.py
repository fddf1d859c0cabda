from django.contrib import admin

from .models import Coupon, CouponUsage


@admin.register(Coupon)
class CouponAdmin(admin.ModelAdmin):
    list_display = ("code", "discount_type", "discount_value", "current_uses", "max_uses", "is_active", "expires_at")
    search_fields = ("code", "description")
    list_filter = ("discount_type", "applies_to", "is_active")
    readonly_fields = ("current_uses", "created_at", "updated_at")


@admin.register(CouponUsage)
class CouponUsageAdmin(admin.ModelAdmin):
    list_display = ("coupon", "payment", "user_id", "discount_applied", "final_amount", "used_at")
    search_fields = ("coupon__code", "user_id", "enrollment_id")
    list_select_related = ("coupon",)

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
