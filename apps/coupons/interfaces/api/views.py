from __future__ import annotations

from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.coupons.application.use_cases.create_coupon import CreateCouponCommand, CreateCouponUseCase
from apps.coupons.application.use_cases.delete_coupon import DeleteCouponCommand, DeleteCouponUseCase
from apps.coupons.application.use_cases.list_coupons import (
    GetCouponUseCase,
    ListCouponsCommand,
    ListCouponsUseCase,
)
from apps.coupons.application.use_cases.update_coupon import UpdateCouponCommand, UpdateCouponUseCase
from apps.coupons.application.use_cases.validate_coupon import ValidateCouponCommand, ValidateCouponUseCase
from apps.coupons.domain.errors import (
    CouponAlreadyExistsError,
    CouponInUseError,
    CouponNotFoundError,
    CouponValidationError,
)
from apps.coupons.interfaces.api.serializers import (
    CouponCreateSerializer,
    CouponUpdateSerializer,
    CouponValidateSerializer,
    coupon_to_dict,
    quote_to_dict,
)


def _success(*, data, http_status: int = status.HTTP_200_OK, meta: dict | None = None) -> Response:
    payload = {"success": True, "data": data}
    if meta:
        payload["meta"] = meta
    return Response(payload, status=http_status)


def _error(*, message: str, field: str | None = None, http_status: int = 400) -> Response:
    payload: dict = {"success": False, "data": {}, "error": {"message": message}}
    if field:
        payload["error"]["field"] = field
    return Response(payload, status=http_status)


def _int_param(request, name: str, default: int) -> int:
    try:
        return int(request.query_params.get(name, default))
    except (TypeError, ValueError):
        return default


class CouponListCreateAPI(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        active_only = (request.query_params.get("active") or "").lower() in {"1", "true", "yes"}
        result = ListCouponsUseCase.execute(
            ListCouponsCommand(
                active_only=active_only,
                page=_int_param(request, "page", 1),
                per_page=_int_param(request, "per_page", 20),
            )
        )
        return _success(
            data=[coupon_to_dict(c) for c in result.coupons],
            meta={"total": result.total, "page": result.page, "per_page": result.per_page},
        )

    def post(self, request):
        serializer = CouponCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return _error(message="Invalid input.", field=next(iter(serializer.errors), None))
        data = serializer.validated_data
        try:
            coupon = CreateCouponUseCase.execute(
                CreateCouponCommand(
                    code=data["code"],
                    description=data["description"],
                    discount_type=data["discount_type"],
                    discount_value=data["discount_value"],
                    max_discount_amount=data["max_discount_amount"],
                    minimum_order_amount=data["minimum_order_amount"],
                    max_uses=data["max_uses"],
                    max_uses_per_user=data["max_uses_per_user"],
                    applies_to=data["applies_to"],
                    course_ids=tuple(data["course_ids"]),
                    starts_at=data["starts_at"],
                    expires_at=data["expires_at"],
                    is_active=data["is_active"],
                    created_by=str(getattr(request.user, "pk", "") or ""),
                )
            )
        except CouponAlreadyExistsError as exc:
            return _error(message=str(exc), field=exc.field, http_status=status.HTTP_409_CONFLICT)
        except CouponValidationError as exc:
            return _error(message=str(exc), field=exc.field)
        return _success(data=coupon_to_dict(coupon), http_status=status.HTTP_201_CREATED)


class CouponDetailAPI(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, coupon_id):
        try:
            coupon = GetCouponUseCase.execute(str(coupon_id))
        except CouponNotFoundError as exc:
            return _error(message=str(exc), http_status=status.HTTP_404_NOT_FOUND)
        return _success(data=coupon_to_dict(coupon))

    def put(self, request, coupon_id):
        serializer = CouponUpdateSerializer(data=request.data, partial=True)
        if not serializer.is_valid():
            return _error(message="Invalid input.", field=next(iter(serializer.errors), None))
        try:
            coupon = UpdateCouponUseCase.execute(
                UpdateCouponCommand(coupon_id=str(coupon_id), changes=dict(serializer.validated_data))
            )
        except CouponNotFoundError as exc:
            return _error(message=str(exc), http_status=status.HTTP_404_NOT_FOUND)
        except CouponAlreadyExistsError as exc:
            return _error(message=str(exc), field=exc.field, http_status=status.HTTP_409_CONFLICT)
        except CouponValidationError as exc:
            return _error(message=str(exc), field=exc.field)
        return _success(data=coupon_to_dict(coupon))

    patch = put

    def delete(self, request, coupon_id):
        try:
            DeleteCouponUseCase.execute(DeleteCouponCommand(coupon_id=str(coupon_id)))
        except CouponNotFoundError as exc:
            return _error(message=str(exc), http_status=status.HTTP_404_NOT_FOUND)
        except CouponInUseError as exc:
            return _error(message=str(exc), http_status=status.HTTP_409_CONFLICT)
        return _success(data={"deleted": True})


class ValidateCouponAPI(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "checkout"

    def post(self, request):
        serializer = CouponValidateSerializer(data=request.data)
        if not serializer.is_valid():
            return _error(message="Invalid input.", field=next(iter(serializer.errors), None))
        data = serializer.validated_data
        try:
            quote = ValidateCouponUseCase.execute(
                ValidateCouponCommand(
                    code=data["code"],
                    amount=data["amount"],
                    course_id=data["course_id"],
                    user_id=data["user_id"],
                )
            )
        except CouponValidationError as exc:
            return _error(message=str(exc), field=exc.field)
        return _success(data=quote_to_dict(quote))
