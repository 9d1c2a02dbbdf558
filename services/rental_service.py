from datetime import datetime
from typing import List, Optional

from pydantic import ValidationError

from config.constants import (
    CONFIRM_RECEIVED_PATH,
    CONFIRM_RETURNED_PATH,
    CREATE_RENTAL_PATH,
    DEFAULT_PAGE_SIZE,
    DEPOSIT_PAYMENT_PATH,
    OWNER_DECISION_PATH,
    OWNER_RENTALS_BY_STATUS_PATH,
    REMAINING_PAYMENT_PATH,
    RENTAL_CONFIRMATION_PATH,
    RENTAL_RECORD_PATH,
    RENTAL_STATUS_CONSTANTS_PATH,
    RENTER_RENTALS_PATH,
    VEHICLE_BY_ID_PATH,
    VEHICLE_RENTALS_PATH,
)
from models.base import isoformat_utc
from models.rental import Rental, RentalEstimate, RentalStatus
from models.vehicle import Vehicle
from services.api_client import ApiClient
from services.availability_service import AvailabilityService, overlapping_confirmed_rentals, validate_range
from services.exceptions import ApiError, InvalidInputError, VehicleUnavailableError
from services.rental_workflow import RentalAction, ensure_allowed, history_problems, is_append_only, resolve_role
from utils.liveness import ActionGate
from utils.logger import app_logger
from workers.pricing_worker import PriceBreakdown, get_price_breakdown


class RentalService:
    """
    Drives a rental through its lifecycle against the backend.

    Every action is checked locally first (right party, right status), sent
    to the server, and then answered with the rental as the server now has
    it. Nothing is patched locally: the refetched rental is the result.
    """

    def __init__(self, api: ApiClient, availability: AvailabilityService, gate: Optional[ActionGate] = None):
        self._api = api
        self._availability = availability
        self._gate = gate or ActionGate()

    # --- Reads ---

    async def status_constants(self) -> List[str]:
        data = await self._api.get_data(RENTAL_STATUS_CONSTANTS_PATH)
        if isinstance(data, dict):
            return list(data.values())
        return list(data or [])

    async def get_vehicle(self, vehicle_id: int) -> Vehicle:
        data = await self._api.get_data(VEHICLE_BY_ID_PATH, vehicleId=vehicle_id)
        return Vehicle.model_validate(data)

    async def get(self, rental_id: int) -> Rental:
        data = await self._api.get_data(RENTAL_RECORD_PATH, rentalId=rental_id)
        return self._parse_rental(data)

    async def list_for_renter(self, page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> List[Rental]:
        data = await self._api.get_data(RENTER_RENTALS_PATH, page=page, limit=limit)
        return self._parse_rentals(data)

    async def list_for_vehicle(self, vehicle_id: int, page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> List[Rental]:
        data = await self._api.get_data(VEHICLE_RENTALS_PATH, vehicleId=vehicle_id, page=page, limit=limit)
        rentals = self._parse_rentals(data)
        for first, second in overlapping_confirmed_rentals(rentals):
            app_logger.error(
                f"Vehicle {vehicle_id} is double-booked: rentals {first.id} and {second.id} overlap"
            )
        return rentals

    async def owner_pending(self, page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> List[Rental]:
        data = await self._api.get_data(
            OWNER_RENTALS_BY_STATUS_PATH, status=RentalStatus.OWNER_PENDING.value, page=page, limit=limit
        )
        return self._parse_rentals(data)

    @staticmethod
    def _parse_rental(data) -> Rental:
        try:
            return Rental.model_validate(data)
        except ValidationError as e:
            app_logger.error(f"Malformed rental from server: {e}")
            raise ApiError("Rental record from the server is malformed.", payload={"data": data}) from e

    @classmethod
    def _parse_rentals(cls, data) -> List[Rental]:
        items = data.get("rentals", []) if isinstance(data, dict) else (data or [])
        return [cls._parse_rental(item) for item in items]

    # --- Pricing ---

    def price_breakdown(self, rental: Rental) -> PriceBreakdown:
        """Price shown on the rental detail view."""
        if rental.daily_price is None:
            raise InvalidInputError(f"Rental {rental.id} has no daily price.")
        return get_price_breakdown(rental.daily_price, rental.start_date_time, rental.end_date_time)

    # --- Booking ---

    @staticmethod
    def validate_request(start: datetime, end: datetime, vehicle: Optional[Vehicle] = None) -> None:
        """Local checks run before any booking request leaves the client."""
        validate_range(start, end)
        if vehicle is None:
            return
        if not vehicle.allows_pickup_at(start):
            raise InvalidInputError(
                f"Pickup time must be between {vehicle.time_pickup_start} and {vehicle.time_pickup_end}."
            )
        if not vehicle.allows_return_at(end):
            raise InvalidInputError(
                f"Return time must be between {vehicle.time_return_start} and {vehicle.time_return_end}."
            )

    async def confirm(
            self,
            vehicle_id: int,
            start: datetime,
            end: datetime,
            vehicle: Optional[Vehicle] = None,
    ) -> RentalEstimate:
        """
        Asks the server for a quote. No rental exists yet after this call.
        """
        self.validate_request(start, end, vehicle)
        data = await self._api.post_data(
            RENTAL_CONFIRMATION_PATH,
            {"vehicleId": vehicle_id, "startDateTime": isoformat_utc(start), "endDateTime": isoformat_utc(end)},
        )
        if not isinstance(data, dict) or "totalPrice" not in data or "depositPrice" not in data:
            raise ApiError("Rental confirmation response is missing prices.", payload={"data": data})

        estimate = RentalEstimate(
            vehicle_id=vehicle_id,
            start_date_time=start,
            end_date_time=end,
            deposit_price=data["depositPrice"],
            total_price=data["totalPrice"],
        )
        if vehicle is not None:
            breakdown = get_price_breakdown(vehicle.price, start, end)
            estimate.daily_price = breakdown.daily_price
            estimate.total_days = breakdown.days
            if breakdown.total != estimate.total_price:
                app_logger.warning(
                    f"Server total {estimate.total_price} for vehicle {vehicle_id} differs from "
                    f"local total {breakdown.total}; using the server's."
                )
        return estimate

    async def create(
            self,
            vehicle_id: int,
            renter_phone_number: str,
            start: datetime,
            end: datetime,
            vehicle: Optional[Vehicle] = None,
    ) -> Rental:
        """
        Books the vehicle and returns the new rental (DEPOSIT PENDING).

        Availability is checked again right before the booking request to
        narrow the window in which another renter can take the same dates;
        the server still rejects a late collision with error 4001.
        """
        self.validate_request(start, end, vehicle)
        if not renter_phone_number:
            raise InvalidInputError("Phone number is missing. Please update your profile.")

        availability = await self._availability.check(vehicle_id, start, end)
        if not availability.available:
            raise VehicleUnavailableError(
                f"Vehicle {vehicle_id} is not available for the selected dates.",
                conflicts=availability.conflicts,
            )

        data = await self._api.post_data(
            CREATE_RENTAL_PATH,
            {
                "vehicleId": vehicle_id,
                "renterPhoneNumber": renter_phone_number,
                "startDateTime": isoformat_utc(start),
                "endDateTime": isoformat_utc(end),
            },
        )
        if not isinstance(data, dict) or data.get("id") is None:
            raise ApiError("Create rental response has no rental id.", payload={"data": data})
        app_logger.info(f"Rental {data['id']} created for vehicle {vehicle_id}, deposit {data.get('depositPrice')}")
        return await self.get(data["id"])

    # --- Lifecycle Actions ---

    async def pay_deposit(self, rental: Rental, user_id: int) -> Rental:
        return await self._perform(rental, user_id, RentalAction.PAY_DEPOSIT, DEPOSIT_PAYMENT_PATH)

    async def decide(self, rental: Rental, user_id: int, approve: bool) -> Rental:
        """Owner accepts (OWNER APPROVED) or rejects (CANCELLED) the booking."""
        action = RentalAction.APPROVE if approve else RentalAction.REJECT
        return await self._perform(rental, user_id, action, OWNER_DECISION_PATH, {"status": approve})

    async def pay_remaining(self, rental: Rental, user_id: int) -> Rental:
        return await self._perform(rental, user_id, RentalAction.PAY_REMAINING, REMAINING_PAYMENT_PATH)

    async def confirm_received(self, rental: Rental, user_id: int) -> Rental:
        return await self._perform(rental, user_id, RentalAction.CONFIRM_RECEIVED, CONFIRM_RECEIVED_PATH)

    async def confirm_returned(self, rental: Rental, user_id: int) -> Rental:
        return await self._perform(rental, user_id, RentalAction.CONFIRM_RETURNED, CONFIRM_RETURNED_PATH)

    async def _perform(
            self,
            rental: Rental,
            user_id: int,
            action: RentalAction,
            path: str,
            extra: Optional[dict] = None,
    ) -> Rental:
        role = resolve_role(rental, user_id)
        ensure_allowed(rental.status, action, role)

        async with self._gate.hold((rental.id, action)):
            app_logger.info(f"Rental {rental.id}: {role.value} {user_id} requests to {action.label}")
            await self._api.post(path, {"rentalId": rental.id, **(extra or {})})
            updated = await self.get(rental.id)

        if not is_append_only(rental, updated):
            app_logger.warning(f"Rental {rental.id} history was rewritten by the server; keeping the server's copy.")
        for problem in history_problems(updated):
            app_logger.warning(f"Rental {rental.id} history: {problem}")
        if updated.status is not rental.status:
            app_logger.info(f"Rental {rental.id}: {rental.status.value} -> {updated.status.value}")
        return updated
