# Overview: Closed status and type vocabularies stored as strings in the database.

from __future__ import annotations

from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DEPOSIT_PAID = "deposit_paid"
    FULLY_PAID = "fully_paid"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentType(str, Enum):
    FULL = "full"
    DEPOSIT = "deposit"


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    PARTIAL = "partial"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentKind(str, Enum):
    DEPOSIT_PAYMENT = "deposit_payment"
    BALANCE_PAYMENT = "balance_payment"
    FULL_PAYMENT = "full_payment"
    REFUND = "refund"


class ProductType(str, Enum):
    TEAM_REGISTRATION = "team_registration"
    TENT_RENTAL = "tent_rental"
    SPONSORSHIP = "sponsorship"
    OTHER = "other"


class ReservationStatus(str, Enum):
    HELD = "HELD"
    COMMITTED = "COMMITTED"
    RELEASED = "RELEASED"


class TeamStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"


class CouponDiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"


# Orders in these states count as paid for revenue, quota, and team purposes
PAID_ORDER_STATUSES = (OrderStatus.DEPOSIT_PAID.value, OrderStatus.FULLY_PAID.value)
