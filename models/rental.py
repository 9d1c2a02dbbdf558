from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional

from pydantic import Field, model_validator

from models.base import ApiModel, Money, TimestampedModel


class RentalStatus(str, enum.Enum):
    """Rental statuses, spelled the way the backend sends them."""
    DEPOSIT_PENDING = "DEPOSIT PENDING"
    DEPOSIT_PAID = "DEPOSIT PAID"
    OWNER_PENDING = "OWNER PENDING"
    OWNER_APPROVED = "OWNER APPROVED"
    CONTRACT_PENDING = "CONTRACT PENDING"
    CONTRACT_SIGNED = "CONTRACT SIGNED"
    REMAINING_PAYMENT_PAID = "REMAINING PAYMENT PAID"
    RENTER_RECEIVED = "RENTER RECEIVED"
    RENTER_RETURNED = "RENTER RETURNED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    DEPOSIT_REFUNDED = "DEPOSIT REFUNDED"

    @property
    def rank(self) -> int:
        """Position on the happy path. Alternate terminals rank after COMPLETED."""
        return _STATUS_ORDER.index(self)

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def holds_booking(self) -> bool:
        """True once the rental blocks its date range for other renters."""
        return self.rank >= RentalStatus.DEPOSIT_PAID.rank and self not in CANCELLED_STATUSES


_STATUS_ORDER = list(RentalStatus)

TERMINAL_STATUSES = frozenset({RentalStatus.COMPLETED, RentalStatus.CANCELLED, RentalStatus.DEPOSIT_REFUNDED})
CANCELLED_STATUSES = frozenset({RentalStatus.CANCELLED, RentalStatus.DEPOSIT_REFUNDED})


class StatusHistoryEntry(ApiModel):
    status: RentalStatus
    timestamp: datetime


class Booking(ApiModel):
    """One existing booking window returned by the per-month availability query."""
    start_date_time: datetime
    end_date_time: datetime


class RentalEstimate(ApiModel):
    """
    Pre-confirmation quote. Exists only on the client, before a rental row
    is created on the server.
    """
    vehicle_id: int
    start_date_time: datetime
    end_date_time: datetime
    deposit_price: Money
    total_price: Money
    daily_price: Optional[Money] = None
    total_days: Optional[int] = None


class Rental(TimestampedModel):
    """
    The central rental entity as returned by the rental record endpoint.
    """
    id: int
    vehicle_id: int
    renter_id: int
    vehicle_owner_id: int
    renter_phone_number: Optional[str] = None
    start_date_time: datetime
    end_date_time: datetime
    daily_price: Optional[Money] = None
    total_price: Optional[Money] = None
    deposit_price: Optional[Money] = None
    status: RentalStatus
    status_workflow_history: list[StatusHistoryEntry] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_invariants(self) -> "Rental":
        if self.end_date_time <= self.start_date_time:
            raise ValueError("endDateTime must be after startDateTime")
        return self

    @property
    def awaits_refund(self) -> bool:
        """Cancelled after the deposit was paid, so a DEPOSIT REFUNDED settlement is still due."""
        return self.status is RentalStatus.CANCELLED and any(
            entry.status is RentalStatus.DEPOSIT_PAID for entry in self.status_workflow_history
        )

    def overlaps(self, other: "Rental") -> bool:
        return self.start_date_time < other.end_date_time and self.end_date_time > other.start_date_time

    def __repr__(self) -> str:
        return (
            f"<Rental(id={self.id}, vehicle_id={self.vehicle_id}, renter_id={self.renter_id}, "
            f"status='{self.status.value}')>"
        )
