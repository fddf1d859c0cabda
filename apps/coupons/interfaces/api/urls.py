from django.urls import path

from .views import CouponDetailAPI, CouponListCreateAPI, ValidateCouponAPI

urlpatterns = [
    path("coupons/", CouponListCreateAPI.as_view(), name="api_coupons"),
    path("coupons/validate/", ValidateCouponAPI.as_view(), name="api_coupons_validate"),
    path("coupons/<uuid:coupon_id>/", CouponDetailAPI.as_view(), name="api_coupon_detail"),
]
