from __future__ import annotations

import logging
import uuid

from django.apps import apps as django_apps
from django.db import DatabaseError
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.coupons.domain.errors import CouponDomainError
from apps.payments.application.use_cases.cancel_payment import CancelPaymentCommand, CancelPaymentUseCase
from apps.payments.application.use_cases.checkout import CheckoutCommand, CheckoutUseCase
from apps.payments.application.use_cases.create_card_payment import (
    CardInput,
    CreateCardPaymentCommand,
    CreateCardPaymentUseCase,
)
from apps.payments.application.use_cases.create_charge import (
    CreateBoletoPaymentUseCase,
    CreateChargeCommand,
    CreatePixPaymentUseCase,
)
from apps.payments.application.use_cases.create_customer import CreateCustomerCommand, CreateCustomerUseCase
from apps.payments.application.use_cases.get_checkout_status import GetCheckoutStatusCommand, GetCheckoutStatusUseCase
from apps.payments.application.use_cases.get_payment_status import GetPaymentStatusCommand, GetPaymentStatusUseCase
from apps.payments.application.use_cases.handle_webhook_event import (
    HandleWebhookEventCommand,
    HandleWebhookEventUseCase,
)
from apps.payments.application.use_cases.list_payments import (
    GetPaymentHistoryUseCase,
    ListPaymentsCommand,
    ListPaymentsUseCase,
)
from apps.payments.application.use_cases.refund_payment import RefundPaymentCommand, RefundPaymentUseCase
from apps.payments.application.use_cases.revenue_splits import (
    GetInstructorEarningsUseCase,
    ListRevenueSplitsCommand,
    ListRevenueSplitsUseCase,
    SimulateRevenueSplitCommand,
    SimulateRevenueSplitUseCase,
    UpdateRevenueSplitStatusCommand,
    UpdateRevenueSplitStatusUseCase,
)
from apps.payments.application.use_cases.update_payment_status import (
    UpdatePaymentStatusCommand,
    UpdatePaymentStatusUseCase,
)
from apps.payments.domain.errors import (
    GatewayNotRegisteredError,
    InvalidTransitionError,
    PaymentDomainError,
    PaymentGatewayError,
    PaymentNotFoundError,
    WebhookSignatureError,
)
from apps.payments.interfaces.api.serializers import (
    CardChargeCreateSerializer,
    ChargeCreateSerializer,
    CheckoutSerializer,
    CustomerCreateSerializer,
    ReasonSerializer,
    RefundSerializer,
    SimulateSplitSerializer,
    StatusUpdateSerializer,
    customer_to_dict,
    gateway_payment_to_dict,
    money,
    payment_to_dict,
    revenue_split_to_dict,
    split_result_to_dict,
    transaction_to_dict,
)
from apps.payments.models import RevenueSplit

logger = logging.getLogger("condotrack.request")

_ERROR_STATUS: tuple[tuple[type[Exception], int, str], ...] = (
    (WebhookSignatureError, status.HTTP_401_UNAUTHORIZED, "invalid_signature"),
    (PaymentNotFoundError, status.HTTP_404_NOT_FOUND, "not_found"),
    (InvalidTransitionError, status.HTTP_409_CONFLICT, "invalid_transition"),
    (GatewayNotRegisteredError, status.HTTP_503_SERVICE_UNAVAILABLE, "gateway_unavailable"),
    (PaymentGatewayError, status.HTTP_502_BAD_GATEWAY, "gateway_error"),
    (PaymentDomainError, status.HTTP_400_BAD_REQUEST, "invalid_request"),
    (CouponDomainError, status.HTTP_400_BAD_REQUEST, "invalid_coupon"),
)


def _registry():
    return django_apps.get_app_config("payments").gateway_registry


def _user_ref(request) -> str:
    return str(getattr(request.user, "pk", "") or "")


def _success(*, data, http_status: int = status.HTTP_200_OK, meta: dict | None = None) -> Response:
    payload = {"success": True, "data": data}
    if meta:
        payload["meta"] = meta
    return Response(payload, status=http_status)


def _error(*, message: str, field: str | None = None, code: str = "", http_status: int = 400) -> Response:
    payload: dict = {"success": False, "data": {}, "error": {"message": message}}
    if field:
        payload["error"]["field"] = field
    if code:
        payload["error"]["code"] = code
    return Response(payload, status=http_status)


def _invalid(serializer) -> Response:
    return _error(message="Invalid input.", field=next(iter(serializer.errors), None), code="invalid_request")


def _domain_error(exc: Exception) -> Response:
    for error_type, http_status, code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            if http_status >= 500:
                logger.warning("payments_upstream_error", extra={"status_code": http_status, "error_code": code})
            return _error(message=str(exc), field=getattr(exc, "field", None), code=code, http_status=http_status)
    raise exc


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


def _int_param(request, name: str, default: int) -> int:
    try:
        return int(request.query_params.get(name, default))
    except (TypeError, ValueError):
        return default


def _card_input(data: dict) -> CardInput:
    return CardInput(
        number=data["card_number"],
        exp_month=data["card_exp_month"],
        exp_year=data["card_exp_year"],
        cvv=data["card_cvv"],
        holder_name=data["holder_name"],
        holder_email=data["holder_email"],
        holder_document=data["holder_document"],
        holder_postal_code=data["holder_postal_code"],
        holder_phone=data["holder_phone"],
    )


class CreateCustomerAPI(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = CustomerCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid(serializer)
        data = serializer.validated_data
        try:
            customer = CreateCustomerUseCase(_registry()).execute(
                CreateCustomerCommand(
                    name=data["name"], document=data["document"], email=data["email"], phone=data["phone"]
                )
            )
        except (PaymentDomainError, CouponDomainError) as exc:
            return _domain_error(exc)
        return _success(data=customer_to_dict(customer), http_status=status.HTTP_201_CREATED)


class _ChargeAPI(APIView):
    permission_classes = [IsAuthenticated]
    use_case_class = None

    def post(self, request):
        serializer = ChargeCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid(serializer)
        data = serializer.validated_data
        try:
            remote = self.use_case_class(_registry()).execute(
                CreateChargeCommand(
                    customer_gateway_id=data["customer_id"],
                    amount=data["value"],
                    due_date=data["due_date"],
                    description=data["description"],
                    external_reference=data["external_reference"],
                )
            )
        except PaymentDomainError as exc:
            return _domain_error(exc)
        return _success(data=gateway_payment_to_dict(remote), http_status=status.HTTP_201_CREATED)


class CreatePixPaymentAPI(_ChargeAPI):
    use_case_class = CreatePixPaymentUseCase


class CreateBoletoPaymentAPI(_ChargeAPI):
    use_case_class = CreateBoletoPaymentUseCase


class CreateCardPaymentAPI(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = CardChargeCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid(serializer)
        data = serializer.validated_data
        try:
            remote = CreateCardPaymentUseCase(_registry()).execute(
                CreateCardPaymentCommand(
                    customer_gateway_id=data["customer_id"],
                    amount=data["value"],
                    card=_card_input(data),
                    installments=data["installments"],
                    due_date=data["due_date"],
                    description=data["description"],
                    external_reference=data["external_reference"],
                )
            )
        except PaymentDomainError as exc:
            return _domain_error(exc)
        return _success(data=gateway_payment_to_dict(remote), http_status=status.HTTP_201_CREATED)


class PaymentListAPI(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        params = request.query_params
        result = ListPaymentsUseCase.execute(
            ListPaymentsCommand(
                enrollment_id=params.get("enrollment_id", ""),
                gateway=params.get("gateway", ""),
                status=params.get("status", ""),
                payment_method=params.get("payment_method", ""),
                page=_int_param(request, "page", 1),
                per_page=_int_param(request, "per_page", 20),
            )
        )
        return _success(
            data=[payment_to_dict(p) for p in result.payments],
            meta={"total": result.total, "page": result.page, "per_page": result.per_page},
        )


class EnrollmentPaymentsAPI(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, enrollment_id: str):
        result = ListPaymentsUseCase.execute(ListPaymentsCommand(enrollment_id=enrollment_id, per_page=100))
        return _success(data=[payment_to_dict(p) for p in result.payments])


class PaymentStatusAPI(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, payment_id: str):
        try:
            result = GetPaymentStatusUseCase(_registry()).execute(GetPaymentStatusCommand(payment_id=payment_id))
        except PaymentDomainError as exc:
            return _domain_error(exc)
        data = {
            "payment_id": payment_id,
            "source": result.source,
            "status": result.status,
            "gateway_status": result.gateway_status,
        }
        if result.payment is not None:
            data["payment"] = payment_to_dict(result.payment)
        if result.gateway_payment is not None:
            data["gateway_payment"] = gateway_payment_to_dict(result.gateway_payment)
        return _success(data=data)

    def patch(self, request, payment_id: str):
        if not _is_uuid(payment_id):
            return _error(message="Payment not found.", code="not_found", http_status=status.HTTP_404_NOT_FOUND)
        serializer = StatusUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid(serializer)
        try:
            result = UpdatePaymentStatusUseCase.execute(
                UpdatePaymentStatusCommand(
                    payment_id=payment_id,
                    new_status=serializer.validated_data["status"],
                    reason=serializer.validated_data["reason"],
                    requested_by=_user_ref(request),
                )
            )
        except (PaymentDomainError, CouponDomainError) as exc:
            return _domain_error(exc)
        except DatabaseError:
            logger.exception("payment_status_update_failed", extra={"payment_id": payment_id})
            return _error(
                message="Temporary failure, retry later.",
                code="retry_later",
                http_status=status.HTTP_503_SERVICE_UNAVAILABLE,
            )
        return _success(data={**payment_to_dict(result.payment), "outcome": result.outcome.value})


class PaymentTransactionsAPI(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, payment_id):
        try:
            payment, history = GetPaymentHistoryUseCase.execute(str(payment_id))
        except PaymentDomainError as exc:
            return _domain_error(exc)
        return _success(data={"payment": payment_to_dict(payment), "transactions": [transaction_to_dict(t) for t in history]})


class RefundPaymentAPI(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, payment_id):
        serializer = RefundSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid(serializer)
        try:
            payment = RefundPaymentUseCase(_registry()).execute(
                RefundPaymentCommand(
                    payment_id=str(payment_id),
                    amount=serializer.validated_data["amount"],
                    reason=serializer.validated_data["reason"],
                    requested_by=_user_ref(request),
                )
            )
        except PaymentDomainError as exc:
            return _domain_error(exc)
        return _success(data=payment_to_dict(payment))


class CancelPaymentAPI(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, payment_id):
        serializer = ReasonSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid(serializer)
        try:
            payment = CancelPaymentUseCase(_registry()).execute(
                CancelPaymentCommand(
                    payment_id=str(payment_id),
                    reason=serializer.validated_data["reason"],
                    requested_by=_user_ref(request),
                )
            )
        except PaymentDomainError as exc:
            return _domain_error(exc)
        return _success(data=payment_to_dict(payment))


class SimulateRevenueSplitAPI(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        serializer = SimulateSplitSerializer(data=request.query_params)
        if not serializer.is_valid():
            return _invalid(serializer)
        data = serializer.validated_data
        try:
            split = SimulateRevenueSplitUseCase(_registry()).execute(
                SimulateRevenueSplitCommand(
                    amount=data["amount"],
                    payment_method=data["method"],
                    instructor_percent=data["instructor_percent"],
                    platform_percent=data["platform_percent"],
                )
            )
        except PaymentDomainError as exc:
            return _domain_error(exc)
        return _success(data=split_result_to_dict(split))


class GatewayListAPI(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        registry = _registry()
        try:
            active = registry.get_active().code
        except GatewayNotRegisteredError:
            active = None
        return _success(data={"gateways": registry.available_providers(), "active": active})


def _checkout_data(payment, split, remote, coupon_code: str) -> dict:
    data = {
        "enrollment_id": payment.enrollment_id,
        "payment_id": str(payment.pk),
        "status": payment.status,
        "gross_amount": money(payment.gross_amount),
        "discount_amount": money(payment.discount_amount),
        "payment_fee": money(split.payment_fee),
        "net_amount": money(split.net_amount),
        "instructor_amount": money(split.instructor_amount),
        "platform_amount": money(split.platform_amount),
        "coupon_code": coupon_code or None,
    }
    if remote is not None:
        data.update(
            {
                "pix_qr_code": remote.pix_qr_code_base64 or None,
                "pix_copy_paste": remote.pix_copy_paste or None,
                "pix_expiration_date": remote.pix_expires_at.isoformat() if remote.pix_expires_at else None,
                "boleto_url": remote.boleto_url or None,
                "boleto_bar_code": remote.boleto_barcode or None,
                "boleto_due_date": remote.due_date.isoformat() if remote.due_date else None,
            }
        )
    return data


class CheckoutAPI(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "checkout"

    def post(self, request):
        serializer = CheckoutSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid(serializer)
        data = serializer.validated_data
        card = _card_input(data) if data["card_number"] else None
        try:
            result = CheckoutUseCase(_registry()).execute(
                CheckoutCommand(
                    student_id=data["student_id"],
                    student_name=data["student_name"],
                    student_email=data["student_email"],
                    student_document=data["student_cpf"],
                    student_phone=data["student_phone"],
                    course_id=data["course_id"],
                    course_name=data["course_name"],
                    instructor_id=data["instructor_id"],
                    amount=data["amount"],
                    payment_method=data["payment_method"],
                    discount_code=data["discount_code"],
                    card=card,
                    installments=data["installments"],
                )
            )
        except (PaymentDomainError, CouponDomainError) as exc:
            return _domain_error(exc)
        except DatabaseError:
            logger.exception("checkout_persist_failed")
            return _error(
                message="Temporary failure, retry later.",
                code="retry_later",
                http_status=status.HTTP_503_SERVICE_UNAVAILABLE,
            )

        data = _checkout_data(result.payment, result.split, result.gateway_payment, result.coupon_code)
        return _success(data=data, http_status=status.HTTP_201_CREATED)


class CheckoutStatusAPI(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "checkout_status"

    def get(self, request, enrollment_id):
        try:
            result = GetCheckoutStatusUseCase(_registry()).execute(
                GetCheckoutStatusCommand(enrollment_id=enrollment_id)
            )
        except PaymentDomainError as exc:
            return _domain_error(exc)
        payment = result.payment
        data = _checkout_data(
            payment, result.split, result.gateway_payment, payment.coupon.code if payment.coupon_id else ""
        )
        data["gateway_status"] = result.gateway_status
        return _success(data=data)


class WebhookAPI(APIView):
    """Provider notifications.

    200 accepts (applied, duplicate, ignored or anomaly recorded), 401 rejects
    a bad signature, 400 a malformed body, 503 asks the provider to retry.
    """

    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "webhooks"

    def post(self, request, provider: str):
        headers = {key.lower(): value for key, value in request.headers.items()}
        try:
            result = HandleWebhookEventUseCase(_registry()).execute(
                HandleWebhookEventCommand(provider_code=provider, headers=headers, body=request.body)
            )
        except GatewayNotRegisteredError as exc:
            return _error(message=str(exc), code="unknown_provider", http_status=status.HTTP_404_NOT_FOUND)
        except PaymentDomainError as exc:
            return _domain_error(exc)
        except DatabaseError:
            logger.exception("webhook_processing_failed", extra={"gateway": provider})
            return _error(
                message="Temporary failure, retry later.",
                code="retry_later",
                http_status=status.HTTP_503_SERVICE_UNAVAILABLE,
            )

        logger.info(
            "webhook_processed",
            extra={"gateway": provider, "outcome": result.outcome, "payment_id": result.payment_id},
        )
        return _success(
            data={
                "outcome": result.outcome,
                "payment_id": result.payment_id,
                "status": result.status,
                "reason": result.reason or None,
            }
        )


class RevenueSplitListAPI(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        params = request.query_params
        payment_id = params.get("payment_id", "")
        if payment_id and not _is_uuid(payment_id):
            return _success(data=[])
        splits = ListRevenueSplitsUseCase.execute(
            ListRevenueSplitsCommand(
                payment_id=payment_id,
                enrollment_id=params.get("enrollment_id", ""),
                instructor_id=params.get("instructor_id", ""),
                status=params.get("status", ""),
            )
        )
        return _success(data=[revenue_split_to_dict(s) for s in splits])


class RevenueSplitDetailAPI(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, split_id: int):
        split = RevenueSplit.objects.filter(pk=split_id).first()
        if split is None:
            return _error(message="Revenue split not found.", code="not_found", http_status=status.HTTP_404_NOT_FOUND)
        return _success(data=revenue_split_to_dict(split))


class RevenueSplitStatusAPI(APIView):
    permission_classes = [IsAuthenticated]

    def patch(self, request, split_id: int):
        serializer = StatusUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid(serializer)
        try:
            split = UpdateRevenueSplitStatusUseCase.execute(
                UpdateRevenueSplitStatusCommand(split_id=split_id, status=serializer.validated_data["status"])
            )
        except PaymentDomainError as exc:
            return _domain_error(exc)
        return _success(data=revenue_split_to_dict(split))


class InstructorEarningsAPI(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, instructor_id: str):
        earnings = GetInstructorEarningsUseCase.execute(instructor_id)
        return _success(
            data={
                "instructor_id": earnings.instructor_id,
                "pending": money(earnings.pending),
                "processed": money(earnings.processed),
                "total": money(earnings.total),
            }
        )
