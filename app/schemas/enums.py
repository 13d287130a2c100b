from __future__ import annotations

from enum import Enum


class StayType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    QRIS = "qris"
    CREDIT_CARD = "credit_card"
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"


class PaymentMethodType(str, Enum):
    ONLINE = "online"
    DP_ONLINE = "dp_online"
    PAY_AT_PROPERTY = "pay_at_property"


class RoomStatus(str, Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    MAINTENANCE = "maintenance"
    OUT_OF_SERVICE = "out_of_service"


class BlockReason(str, Enum):
    MAINTENANCE = "maintenance"
    RENOVATION = "renovation"
    RESERVED = "reserved"
    OWNER_USE = "owner_use"
    OTHER = "other"


class InvoiceStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    EXPIRED = "expired"
    FAILED = "failed"


class PaymentEventStatus(str, Enum):
    PAID = "paid"
    EXPIRED = "expired"
    FAILED = "failed"


class ReconcileResult(str, Enum):
    CONFIRMED = "confirmed"
    PAYMENT_RECORDED = "payment_recorded"
    PAYMENT_MISMATCH = "payment_mismatch"
    CANCELLED = "cancelled"
    LATE_PAYMENT = "late_payment"
    IGNORED = "ignored"
    NOT_FOUND = "not_found"
