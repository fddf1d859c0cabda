from __future__ import annotations

from rest_framework import serializers

from apps.payments.domain.fees import round_money

DECIMAL = {"max_digits": 12, "decimal_places": 2}


class CustomerCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200, allow_blank=True)
    document = serializers.CharField(max_length=32, allow_blank=True)
    email = serializers.EmailField(max_length=254, required=False, allow_blank=True, default="")
    phone = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")


class ChargeCreateSerializer(serializers.Serializer):
    customer_id = serializers.CharField(max_length=100, allow_blank=True)
    value = serializers.DecimalField(**DECIMAL)
    due_date = serializers.CharField(max_length=10, required=False, allow_blank=True, default="")
    description = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    external_reference = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")


class CardFieldsSerializer(serializers.Serializer):
    card_number = serializers.CharField(max_length=25, required=False, allow_blank=True, default="", write_only=True)
    card_exp_month = serializers.CharField(max_length=2, required=False, allow_blank=True, default="")
    card_exp_year = serializers.CharField(max_length=4, required=False, allow_blank=True, default="")
    card_cvv = serializers.CharField(max_length=4, required=False, allow_blank=True, default="", write_only=True)
    holder_name = serializers.CharField(max_length=200, required=False, allow_blank=True, default="")
    holder_email = serializers.CharField(max_length=254, required=False, allow_blank=True, default="")
    holder_document = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")
    holder_postal_code = serializers.CharField(max_length=16, required=False, allow_blank=True, default="")
    holder_phone = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")
    installments = serializers.IntegerField(required=False, default=1)


class CardChargeCreateSerializer(ChargeCreateSerializer, CardFieldsSerializer):
    pass


class CheckoutSerializer(CardFieldsSerializer):
    student_id = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    student_name = serializers.CharField(max_length=200)
    student_email = serializers.EmailField(max_length=254)
    student_cpf = serializers.CharField(max_length=32)
    student_phone = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")
    course_id = serializers.CharField(max_length=64)
    course_name = serializers.CharField(max_length=200)
    instructor_id = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    amount = serializers.DecimalField(**DECIMAL)
    discount_code = serializers.CharField(max_length=50, required=False, allow_blank=True, default="")
    payment_method = serializers.CharField(max_length=20)


class RefundSerializer(serializers.Serializer):
    amount = serializers.DecimalField(**DECIMAL, required=False, allow_null=True, default=None)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")


class ReasonSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")


class StatusUpdateSerializer(serializers.Serializer):
    status = serializers.CharField(max_length=32)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")


class SimulateSplitSerializer(serializers.Serializer):
    amount = serializers.DecimalField(**DECIMAL)
    method = serializers.CharField(max_length=20)
    instructor_percent = serializers.DecimalField(max_digits=5, decimal_places=2, required=False, allow_null=True, default=None)
    platform_percent = serializers.DecimalField(max_digits=5, decimal_places=2, required=False, allow_null=True, default=None)


def money(value) -> str | None:
    return f"{round_money(value):.2f}" if value is not None else None


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def customer_to_dict(customer) -> dict:
    return {
        "id": customer.gateway_id,
        "name": customer.name,
        "email": customer.email,
        "document": customer.document,
    }


def gateway_payment_to_dict(remote) -> dict:
    return {
        "id": remote.gateway_payment_id,
        "status": remote.status,
        "gateway_status": remote.gateway_raw_status,
        "value": money(remote.amount),
        "net_value": money(remote.net_amount),
        "billing_type": remote.billing_type,
        "due_date": _iso(remote.due_date),
        "invoice_url": remote.invoice_url,
        "pix_qr_code": remote.pix_qr_code_base64,
        "pix_copy_paste": remote.pix_copy_paste,
        "pix_expiration_date": _iso(remote.pix_expires_at),
        "boleto_url": remote.boleto_url,
        "boleto_bar_code": remote.boleto_barcode,
        "transaction_receipt_url": remote.transaction_receipt_url,
        "installments": remote.installments,
    }


def payment_to_dict(payment) -> dict:
    return {
        "id": str(payment.id),
        "enrollment_id": payment.enrollment_id,
        "payer_name": payment.payer_name,
        "payer_email": payment.payer_email,
        "gross_amount": money(payment.gross_amount),
        "discount_amount": money(payment.discount_amount),
        "net_amount": money(payment.net_amount),
        "gateway_fee": money(payment.gateway_fee),
        "refunded_amount": money(payment.refunded_amount),
        "payment_method": payment.payment_method,
        "gateway": payment.gateway,
        "gateway_payment_id": payment.gateway_payment_id,
        "installment_count": payment.installment_count,
        "status": payment.status,
        "coupon_id": str(payment.coupon_id) if payment.coupon_id else None,
        "due_date": _iso(payment.due_date),
        "paid_at": _iso(payment.paid_at),
        "refunded_at": _iso(payment.refunded_at),
        "cancelled_at": _iso(payment.cancelled_at),
        "created_at": _iso(payment.created_at),
    }


def transaction_to_dict(tx) -> dict:
    return {
        "id": tx.pk,
        "previous_status": tx.previous_status,
        "new_status": tx.new_status,
        "event_source": tx.event_source,
        "event_type": tx.event_type,
        "gateway_event_id": tx.gateway_event_id or None,
        "amount": money(tx.amount),
        "description": tx.description,
        "request_metadata": tx.request_metadata,
        "created_at": _iso(tx.created_at),
    }


def split_result_to_dict(split) -> dict:
    return {
        "gross_amount": money(split.gross_amount),
        "payment_fee": money(split.payment_fee),
        "payment_fee_description": split.payment_fee_description,
        "net_amount": money(split.net_amount),
        "instructor_amount": money(split.instructor_amount),
        "platform_amount": money(split.platform_amount),
        "instructor_percent": money(split.instructor_percent),
        "platform_percent": money(split.platform_percent),
    }


def revenue_split_to_dict(split) -> dict:
    return {
        "id": split.pk,
        "payment_id": str(split.payment_id),
        "enrollment_id": split.enrollment_id,
        "gross_amount": money(split.gross_amount),
        "net_amount": money(split.net_amount),
        "payment_fee": money(split.payment_fee),
        "platform_fee": money(split.platform_fee),
        "instructor_amount": money(split.instructor_amount),
        "platform_amount": money(split.platform_amount),
        "instructor_id": split.instructor_id,
        "payment_method": split.payment_method,
        "status": split.status,
        "processed_at": _iso(split.processed_at),
        "created_at": _iso(split.created_at),
    }
