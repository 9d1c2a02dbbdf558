from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Tuple

from pydantic import ValidationError

from config.constants import CHECK_AVAILABILITY_PATH
from models.rental import Booking, Rental
from services.api_client import ApiClient
from services.exceptions import (
    AuthenticationRequired,
    AvailabilityCheckError,
    InvalidInputError,
    RentalClientError,
)
from utils.logger import app_logger


def validate_range(start: datetime, end: datetime) -> None:
    """Rejects a date range locally, before any request is made."""
    if start is None or end is None:
        raise InvalidInputError("Both start and end date are required.")
    if start.tzinfo is None or end.tzinfo is None:
        raise InvalidInputError("Start and end date must be timezone-aware.")
    if end <= start:
        raise InvalidInputError("End date must be after start date.")


def months_touched(start: datetime, end: datetime) -> List[Tuple[int, int]]:
    """
    Lists every (month, year) the range touches, both ends included.
    """
    months = []
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        months.append((month, year))
        month += 1
        if month > 12:
            month, year = 1, year + 1
    return months


def overlaps(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    """
    Half-open interval test: ranges that only touch at a boundary do not
    conflict, so a return at 10:00 and a pickup at 10:00 can share a day.
    """
    return start < other_end and end > other_start


def find_conflicts(start: datetime, end: datetime, bookings: Iterable[Booking]) -> List[Booking]:
    return [b for b in bookings if overlaps(start, end, b.start_date_time, b.end_date_time)]


def overlapping_confirmed_rentals(rentals: Iterable[Rental]) -> List[Tuple[Rental, Rental]]:
    """
    Returns every pair of rentals on the same vehicle that both hold a
    booking and whose ranges overlap. An empty list means no double booking.
    """
    holding = [r for r in rentals if r.status.holds_booking]
    pairs = []
    for i, first in enumerate(holding):
        for second in holding[i + 1:]:
            if first.vehicle_id == second.vehicle_id and first.overlaps(second):
                pairs.append((first, second))
    return pairs


@dataclass
class AvailabilityResult:
    vehicle_id: int
    start: datetime
    end: datetime
    bookings: List[Booking] = field(default_factory=list)
    conflicts: List[Booking] = field(default_factory=list)

    @property
    def available(self) -> bool:
        return not self.conflicts


class AvailabilityService:
    """
    Answers whether a vehicle is free for a date range by querying its
    bookings month by month and running the overlap test locally.
    """

    def __init__(self, api: ApiClient):
        self._api = api

    async def bookings_for_month(self, vehicle_id: int, month: int, year: int) -> List[Booking]:
        data = await self._api.get_data(CHECK_AVAILABILITY_PATH, vehicleId=vehicle_id, month=month, year=year)
        if not isinstance(data, list):
            raise AvailabilityCheckError(
                f"Unexpected availability response for {month:02d}/{year}", month=month, year=year
            )
        try:
            return [Booking.model_validate(item) for item in data]
        except ValidationError as e:
            raise AvailabilityCheckError(
                f"Malformed booking in availability response for {month:02d}/{year}", month=month, year=year
            ) from e

    async def check(self, vehicle_id: int, start: datetime, end: datetime) -> AvailabilityResult:
        """
        Checks `vehicle_id` for [start, end).

        Any failing month aborts the whole check with AvailabilityCheckError
        naming that month; callers must treat it as "not available".
        Safe to call repeatedly.
        """
        validate_range(start, end)

        bookings: List[Booking] = []
        for month, year in months_touched(start, end):
            try:
                bookings.extend(await self.bookings_for_month(vehicle_id, month, year))
            except (AvailabilityCheckError, AuthenticationRequired):
                app_logger.error(f"Availability check for vehicle {vehicle_id} failed at {month:02d}/{year}")
                raise
            except RentalClientError as e:
                app_logger.error(f"Availability check for vehicle {vehicle_id} failed at {month:02d}/{year}: {e}")
                raise AvailabilityCheckError(
                    f"Failed to check availability for {month:02d}/{year}: {e.message}",
                    month=month,
                    year=year,
                    error_code=e.error_code,
                    payload=e.payload,
                ) from e

        result = AvailabilityResult(
            vehicle_id=vehicle_id,
            start=start,
            end=end,
            bookings=bookings,
            conflicts=find_conflicts(start, end, bookings),
        )
        app_logger.info(
            f"Vehicle {vehicle_id} {'is' if result.available else 'is NOT'} available "
            f"for {start.isoformat()} - {end.isoformat()} ({len(bookings)} bookings checked)"
        )
        return result
