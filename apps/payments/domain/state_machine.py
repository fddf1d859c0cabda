from __future__ import annotations

from .types import PaymentStatus

S = PaymentStatus

_ALLOWED: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    S.PENDING: frozenset(
        {S.AWAITING_PAYMENT, S.CONFIRMED, S.RECEIVED, S.OVERDUE, S.CANCELLED, S.FAILED}
    ),
    S.AWAITING_PAYMENT: frozenset({S.CONFIRMED, S.RECEIVED, S.OVERDUE, S.CANCELLED, S.FAILED}),
    S.OVERDUE: frozenset({S.CONFIRMED, S.RECEIVED, S.CANCELLED, S.FAILED}),
    S.CONFIRMED: frozenset(
        {S.RECEIVED, S.REFUND_REQUESTED, S.REFUNDED, S.PARTIALLY_REFUNDED, S.CHARGEBACK}
    ),
    S.RECEIVED: frozenset({S.REFUND_REQUESTED, S.REFUNDED, S.PARTIALLY_REFUNDED, S.CHARGEBACK}),
    S.REFUND_REQUESTED: frozenset({S.REFUNDED, S.PARTIALLY_REFUNDED}),
    S.PARTIALLY_REFUNDED: frozenset({S.REFUNDED, S.CHARGEBACK}),
    S.REFUNDED: frozenset(),
    S.CHARGEBACK: frozenset(),
    S.FAILED: frozenset(),
    S.CANCELLED: frozenset(),
}


class PaymentStateMachine:
    """
    Payment lifecycle.

    pending/awaiting_payment -> confirmed|received -> refund_requested -> refunded|partially_refunded.
    Any open status may end in cancelled or failed; settled payments may end in chargeback.
    """

    @staticmethod
    def is_known(status: str) -> bool:
        return status in PaymentStatus._value2member_map_

    @staticmethod
    def can_transition(current: str, target: str) -> bool:
        if not (PaymentStateMachine.is_known(current) and PaymentStateMachine.is_known(target)):
            return False
        return PaymentStatus(target) in _ALLOWED[PaymentStatus(current)]

    @staticmethod
    def is_terminal(status: str) -> bool:
        return PaymentStateMachine.is_known(status) and not _ALLOWED[PaymentStatus(status)]
