"""
Order payment ledger.

``Order.amount_paid``, ``Order.balance_due`` and ``Order.payment_status`` are
a snapshot of the order's payments. They change only here, in the same
transaction as the payment row itself, with the order row locked so that
concurrent payments on one order serialize instead of losing updates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Sum
from django.http import Http404
from django.utils import timezone

from invoicing.services import sync_with_order
from main.models import (
    ZERO,
    Order,
    Payment,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    _qmoney,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerSummary:
    amount_paid: Decimal
    balance_due: Decimal
    payment_status: str

    def as_dict(self) -> dict:
        return {
            "amountPaid": float(self.amount_paid),
            "balanceDue": float(self.balance_due),
            "paymentStatus": self.payment_status,
        }


def compute_payment_status(total: Decimal, amount_paid: Decimal) -> str:
    """PAID once the total is covered, PENDING with nothing paid, else PARTIAL."""
    if amount_paid >= total:
        return PaymentStatus.PAID
    if amount_paid == ZERO:
        return PaymentStatus.PENDING
    return PaymentStatus.PARTIAL


def summarize(total: Decimal, amount_paid: Decimal) -> LedgerSummary:
    total = _qmoney(total)
    amount_paid = _qmoney(max(amount_paid, ZERO))
    return LedgerSummary(
        amount_paid=amount_paid,
        balance_due=_qmoney(total - amount_paid),
        payment_status=compute_payment_status(total, amount_paid),
    )


def _apply(order: Order, new_paid: Decimal) -> LedgerSummary:
    summary = summarize(order.total, new_paid)
    order.amount_paid = summary.amount_paid
    order.balance_due = summary.balance_due
    order.payment_status = summary.payment_status
    order.save(
        update_fields=["amount_paid", "balance_due", "payment_status", "updated_at"]
    )
    sync_with_order(order)
    return summary


def _lock_order(order_id) -> Order:
    try:
        return Order.objects.select_for_update().get(pk=order_id)
    except Order.DoesNotExist:
        raise Http404("Orden no encontrada")


def add_payment(
    order_id,
    amount,
    *,
    received_by=None,
    payment_type: str = PaymentType.PARTIAL,
    payment_method: str = PaymentMethod.CASH,
    payment_date=None,
    reference_number: str = "",
    notes: str = "",
    receipt_url: str = "",
    installment_number=None,
    due_date=None,
) -> tuple[Payment, LedgerSummary]:
    """
    Record a payment against an order and recompute its ledger snapshot.

    Raises ValidationError for a non-positive amount and Http404 for an
    unknown order. The payment insert and the snapshot update commit together.
    """
    try:
        amount = _qmoney(Decimal(str(amount)))
    except (InvalidOperation, TypeError, ValueError):
        amount = ZERO
    if not amount.is_finite() or amount <= ZERO:
        raise ValidationError("El monto debe ser mayor a 0")
    if payment_type not in PaymentType.values:
        raise ValidationError(f"Tipo de pago inválido: {payment_type}")
    if payment_method not in PaymentMethod.values:
        raise ValidationError(f"Método de pago inválido: {payment_method}")

    with transaction.atomic():
        order = _lock_order(order_id)
        payment = Payment.objects.create(
            order=order,
            amount=amount,
            payment_type=payment_type,
            payment_method=payment_method,
            payment_date=payment_date or timezone.now(),
            reference_number=reference_number or "",
            notes=notes or "",
            receipt_url=receipt_url or "",
            installment_number=installment_number,
            due_date=due_date,
            received_by=received_by,
        )
        summary = _apply(order, order.amount_paid + amount)

    logger.info(
        "Payment %s of %s recorded on order %s (%s)",
        payment.pk,
        amount,
        order.order_number,
        summary.payment_status,
    )
    return payment, summary


def delete_payment(order_id, payment_id) -> LedgerSummary:
    """
    Remove a payment and recompute the ledger snapshot.

    ``amount_paid`` is floored at zero. Raises Http404 for an unknown payment
    and ValidationError when the payment belongs to another order.
    """
    with transaction.atomic():
        # The payment is read under the order lock so a concurrent delete of
        # the same row cannot be subtracted twice
        order = _lock_order(order_id)
        payment = Payment.objects.select_for_update().filter(pk=payment_id).first()
        if payment is None:
            raise Http404("Pago no encontrado")
        if payment.order_id != order.pk:
            raise ValidationError("El pago no pertenece a esta orden")

        amount = payment.amount
        deleted, _ = Payment.objects.filter(pk=payment.pk, order=order).delete()
        if not deleted:
            raise Http404("Pago no encontrado")
        summary = _apply(order, max(ZERO, order.amount_paid - amount))

    logger.info(
        "Payment %s of %s removed from order %s (%s)",
        payment_id,
        amount,
        order.order_number,
        summary.payment_status,
    )
    return summary


def recalculate(order_id) -> LedgerSummary:
    """Rebuild the snapshot from the payment rows."""
    with transaction.atomic():
        order = _lock_order(order_id)
        paid = order.payments.aggregate(s=Sum("amount"))["s"] or ZERO
        return _apply(order, paid)
