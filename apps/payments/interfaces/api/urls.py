from django.urls import path

from .views import (
    CancelPaymentAPI,
    CheckoutAPI,
    CheckoutStatusAPI,
    CreateBoletoPaymentAPI,
    CreateCardPaymentAPI,
    CreateCustomerAPI,
    CreatePixPaymentAPI,
    EnrollmentPaymentsAPI,
    GatewayListAPI,
    InstructorEarningsAPI,
    PaymentListAPI,
    PaymentStatusAPI,
    PaymentTransactionsAPI,
    RefundPaymentAPI,
    RevenueSplitDetailAPI,
    RevenueSplitListAPI,
    RevenueSplitStatusAPI,
    SimulateRevenueSplitAPI,
    WebhookAPI,
)

urlpatterns = [
    path("payments/", PaymentListAPI.as_view(), name="api_payments"),
    path("payments/customer/", CreateCustomerAPI.as_view(), name="api_payments_customer"),
    path("payments/pix/", CreatePixPaymentAPI.as_view(), name="api_payments_pix"),
    path("payments/boleto/", CreateBoletoPaymentAPI.as_view(), name="api_payments_boleto"),
    path("payments/card/", CreateCardPaymentAPI.as_view(), name="api_payments_card"),
    path("payments/simulate-split/", SimulateRevenueSplitAPI.as_view(), name="api_payments_simulate_split"),
    path("payments/gateways/", GatewayListAPI.as_view(), name="api_payments_gateways"),
    path(
        "payments/enrollment/<str:enrollment_id>/",
        EnrollmentPaymentsAPI.as_view(),
        name="api_payments_by_enrollment",
    ),
    path("payments/<str:payment_id>/status/", PaymentStatusAPI.as_view(), name="api_payment_status"),
    path(
        "payments/<uuid:payment_id>/transactions/",
        PaymentTransactionsAPI.as_view(),
        name="api_payment_transactions",
    ),
    path("payments/<uuid:payment_id>/refund/", RefundPaymentAPI.as_view(), name="api_payment_refund"),
    path("payments/<uuid:payment_id>/cancel/", CancelPaymentAPI.as_view(), name="api_payment_cancel"),
    path("checkout/", CheckoutAPI.as_view(), name="api_checkout"),
    path(
        "checkout/<str:enrollment_id>/status/",
        CheckoutStatusAPI.as_view(),
        name="api_checkout_status",
    ),
    path("webhooks/<str:provider>/", WebhookAPI.as_view(), name="api_webhook"),
    path("revenue-splits/", RevenueSplitListAPI.as_view(), name="api_revenue_splits"),
    path("revenue-splits/<int:split_id>/", RevenueSplitDetailAPI.as_view(), name="api_revenue_split_detail"),
    path(
        "revenue-splits/<int:split_id>/status/",
        RevenueSplitStatusAPI.as_view(),
        name="api_revenue_split_status",
    ),
    path(
        "revenue-splits/instructor/<str:instructor_id>/total/",
        InstructorEarningsAPI.as_view(),
        name="api_instructor_earnings",
    ),
]
