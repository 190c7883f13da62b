# Overview: Contracts and default implementations for the payment processor and notification sender.

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from flask import current_app

from .money import format_cents

PAYMENT_PROCESSOR_KEY = "regcore.payment_processor"
NOTIFICATION_SENDER_KEY = "regcore.notification_sender"


@dataclass(frozen=True)
class ChargeResult:
    id: str
    client_secret_or_status: str

    def to_dict(self) -> dict:
        return {"id": self.id, "client_secret_or_status": self.client_secret_or_status}


@dataclass(frozen=True)
class RefundResult:
    id: str
    status: str


class PaymentProcessor(ABC):
    """
    Card/ACH processor contract.

    The core only creates charges and refunds; payment outcomes arrive later
    through apply_payment keyed by the processor transaction id.
    """

    @abstractmethod
    def create_charge(self, amount_cents: int, currency: str, metadata: dict) -> ChargeResult:
        raise NotImplementedError

    @abstractmethod
    def refund(self, transaction_id: str, amount_cents: int) -> RefundResult:
        raise NotImplementedError


class ManualPaymentProcessor(PaymentProcessor):
    """
    Offline processor for admin-recorded cheques and bank transfers.

    Issues local identifiers; an admin posts the outcome through apply_payment.
    """

    def create_charge(self, amount_cents: int, currency: str, metadata: dict) -> ChargeResult:
        return ChargeResult(id=f"manual_{uuid.uuid4().hex}", client_secret_or_status="requires_manual_confirmation")

    def refund(self, transaction_id: str, amount_cents: int) -> RefundResult:
        return RefundResult(id=f"manual_refund_{uuid.uuid4().hex}", status="succeeded")


@dataclass(frozen=True)
class InvoiceNotification:
    recipient_email: str
    recipient_name: str
    order_id: int
    invoice_number: str
    total_amount_cents: int
    paid_amount_cents: int
    balance_owed_cents: int
    subject: str
    extra: dict = field(default_factory=dict)


class NotificationSender(ABC):
    @abstractmethod
    def send_invoice(self, notification: InvoiceNotification) -> None:
        raise NotImplementedError


class LoggingNotificationSender(NotificationSender):
    """Writes invoice notifications to the application log instead of sending email."""

    def send_invoice(self, notification: InvoiceNotification) -> None:
        current_app.logger.info(
            "Invoice notification to %s <%s>: %s (invoice %s, total %s, paid %s, balance %s)",
            notification.recipient_name,
            notification.recipient_email,
            notification.subject,
            notification.invoice_number,
            format_cents(notification.total_amount_cents),
            format_cents(notification.paid_amount_cents),
            format_cents(notification.balance_owed_cents),
        )


def get_payment_processor() -> PaymentProcessor:
    return current_app.extensions[PAYMENT_PROCESSOR_KEY]


def get_notification_sender() -> NotificationSender:
    return current_app.extensions[NOTIFICATION_SENDER_KEY]


def notify_invoice(order, subject: str, extra: Optional[dict] = None) -> bool:
    """
    Best-effort invoice email for an order's organization contact.

    Failures are logged and reported as False; the ledger is never touched.
    """
    invoice = order.invoice
    org = order.organization
    if invoice is None or org is None or not org.contact_email:
        current_app.logger.warning(
            "Skipping invoice notification for order %s: no invoice or contact email", order.id
        )
        return False

    notification = InvoiceNotification(
        recipient_email=org.contact_email,
        recipient_name=org.contact_name or org.name,
        order_id=order.id,
        invoice_number=invoice.invoice_number,
        total_amount_cents=invoice.total_amount_cents,
        paid_amount_cents=invoice.paid_amount_cents,
        balance_owed_cents=invoice.balance_owed_cents,
        subject=subject,
        extra=dict(extra or {}),
    )
    try:
        get_notification_sender().send_invoice(notification)
        return True
    except Exception:
        current_app.logger.exception("Failed to send invoice notification for order %s", order.id)
        return False
