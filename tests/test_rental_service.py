import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from fake_backend import OWNER_ID, RENTER_ID, VEHICLE_ID
from models.rental import RentalStatus
from services.api_client import ApiClient
from services.availability_service import AvailabilityService
from services.exceptions import (
    ActionInProgressError,
    AlreadyPaidError,
    ConflictError,
    InvalidInputError,
    InvalidTransitionError,
    PermissionDeniedError,
    TransportError,
    VehicleUnavailableError,
)
from services.rental_service import RentalService
from services.rental_workflow import RentalAction
from utils.liveness import ActionGate

S = RentalStatus
START = datetime(2025, 5, 10, 8, 0, tzinfo=timezone.utc)
END = datetime(2025, 5, 13, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
async def vehicle(renter_rentals):
    return await renter_rentals.get_vehicle(VEHICLE_ID)


@pytest.fixture
async def rental(renter_rentals, vehicle):
    return await renter_rentals.create(VEHICLE_ID, "0900000001", START, END, vehicle)


async def test_confirmation_and_detail_view_price_the_same(renter_rentals, vehicle, rental):
    estimate = await renter_rentals.confirm(VEHICLE_ID, START, END, vehicle)
    breakdown = renter_rentals.price_breakdown(rental)

    assert estimate.total_price == Decimal(1502500)
    assert breakdown.total == Decimal(1502500)
    assert (breakdown.daily_price, breakdown.days, breakdown.app_fee) == (Decimal(500000), 3, Decimal(2500))
    assert estimate.total_days == 3


async def test_create_returns_server_rental_in_deposit_pending(rental):
    assert rental.status is S.DEPOSIT_PENDING
    assert (rental.renter_id, rental.vehicle_owner_id) == (RENTER_ID, OWNER_ID)
    assert [entry.status for entry in rental.status_workflow_history] == [S.DEPOSIT_PENDING]


async def test_create_rechecks_availability_before_booking(backend, renter_rentals, vehicle):
    backend.add_booking(datetime(2025, 5, 12, 8, 0, tzinfo=timezone.utc), datetime(2025, 5, 20, 8, 0, tzinfo=timezone.utc))

    with pytest.raises(VehicleUnavailableError) as exc_info:
        await renter_rentals.create(VEHICLE_ID, "0900000001", START, END, vehicle)

    assert len(exc_info.value.conflicts) == 1
    assert backend.calls_to("/rental/create-new-rental") == []


async def test_create_requires_phone_number(backend, renter_rentals, vehicle):
    with pytest.raises(InvalidInputError):
        await renter_rentals.create(VEHICLE_ID, "", START, END, vehicle)
    assert backend.calls_to("/rental/check-availability") == []


async def test_pickup_outside_vehicle_window_is_rejected_locally(backend, renter_rentals, vehicle):
    night = datetime(2025, 5, 10, 23, 0, tzinfo=timezone.utc)
    with pytest.raises(InvalidInputError):
        await renter_rentals.confirm(VEHICLE_ID, night, END, vehicle)
    assert backend.calls_to("/rental/create-rental-confirmation") == []


async def test_full_lifecycle_uses_server_state_after_each_action(
        renter_rentals, owner_rentals, renter_contracts, owner_contracts, rental
):
    paid = await renter_rentals.pay_deposit(rental, RENTER_ID)
    # The backend moves a paid rental on to the owner by itself.
    assert paid.status is S.OWNER_PENDING

    pending = await owner_rentals.owner_pending()
    assert [r.id for r in pending] == [rental.id]

    approved = await owner_rentals.decide(paid, OWNER_ID, approve=True)
    assert approved.status is S.OWNER_APPROVED

    draft = await owner_contracts.prepare_draft(rental.id)
    draft.vehicle_condition.outer_vehicle_condition = "Good"
    draft.vehicle_condition.inner_vehicle_condition = "Clean"
    draft.vehicle_condition.tires_condition = "New"
    draft.vehicle_condition.engine_condition = "Good"
    contract_id = await owner_contracts.create(approved, OWNER_ID, draft)

    contract_pending = await owner_rentals.get(rental.id)
    assert contract_pending.status is S.CONTRACT_PENDING
    contract = await owner_contracts.get(contract_id)
    contract = await owner_contracts.sign(contract, contract_pending, OWNER_ID, "secret")
    contract = await renter_contracts.sign(contract, contract_pending, RENTER_ID, "secret")
    assert contract.contract_status.value == "SIGNED"

    signed = await renter_rentals.get(rental.id)
    assert signed.status is S.CONTRACT_SIGNED
    remaining = await renter_rentals.pay_remaining(signed, RENTER_ID)
    received = await owner_rentals.confirm_received(remaining, OWNER_ID)
    returned = await owner_rentals.confirm_returned(received, OWNER_ID)

    assert returned.status is S.RENTER_RETURNED
    statuses = [entry.status for entry in returned.status_workflow_history]
    assert statuses == [
        S.DEPOSIT_PENDING, S.DEPOSIT_PAID, S.OWNER_PENDING, S.OWNER_APPROVED, S.CONTRACT_PENDING,
        S.CONTRACT_SIGNED, S.REMAINING_PAYMENT_PAID, S.RENTER_RECEIVED, S.RENTER_RETURNED,
    ]


async def test_retried_deposit_is_refused_without_a_request(backend, renter_rentals, rental):
    paid = await renter_rentals.pay_deposit(rental, RENTER_ID)

    with pytest.raises(AlreadyPaidError):
        await renter_rentals.pay_deposit(paid, RENTER_ID)
    assert len(backend.calls_to("/payment/deposit-payment")) == 1


async def test_stale_rental_gets_server_conflict(backend, renter_rentals, rental):
    await renter_rentals.pay_deposit(rental, RENTER_ID)

    # `rental` still says DEPOSIT PENDING, so only the server can refuse.
    with pytest.raises(ConflictError) as exc_info:
        await renter_rentals.pay_deposit(rental, RENTER_ID)
    assert exc_info.value.error_code == 8006


async def test_deposit_on_rejected_booking_is_refused(renter_rentals, owner_rentals, rental):
    cancelled = await owner_rentals.decide(rental, OWNER_ID, approve=False)
    assert cancelled.status is S.CANCELLED

    with pytest.raises(InvalidTransitionError):
        await renter_rentals.pay_deposit(cancelled, RENTER_ID)


async def test_renter_cannot_approve(backend, renter_rentals, rental):
    with pytest.raises(PermissionDeniedError):
        await renter_rentals.decide(rental, RENTER_ID, approve=True)
    assert backend.calls_to("/rental/owner-rental-decision") == []


async def test_double_submit_is_blocked_while_first_is_in_flight(backend, renter_rentals, rental):
    backend.payment_delay = 0.1

    results = await asyncio.gather(
        renter_rentals.pay_deposit(rental, RENTER_ID),
        renter_rentals.pay_deposit(rental, RENTER_ID),
        return_exceptions=True,
    )

    assert sum(isinstance(r, ActionInProgressError) for r in results) == 1
    assert len(backend.calls_to("/payment/deposit-payment")) == 1


async def test_timed_out_payment_is_retryable_and_releases_the_gate(backend, session_manager, renter_api, rental):
    slow_api = ApiClient(session_manager, base_url=backend.base_url, timeout=0.1)
    gate = ActionGate()
    rentals = RentalService(slow_api, AvailabilityService(slow_api), gate)
    backend.payment_delay = 0.5

    with pytest.raises(TransportError) as exc_info:
        await rentals.pay_deposit(rental, RENTER_ID)

    assert exc_info.value.retryable
    assert not gate.is_busy((rental.id, RentalAction.PAY_DEPOSIT))


async def test_gate_is_released_after_a_failure(backend, renter_rentals, rental):
    await renter_rentals.pay_deposit(rental, RENTER_ID)
    with pytest.raises(ConflictError):
        await renter_rentals.pay_deposit(rental, RENTER_ID)

    # A later attempt is refused by the server again, not by the gate.
    with pytest.raises(ConflictError) as exc_info:
        await renter_rentals.pay_deposit(rental, RENTER_ID)
    assert not isinstance(exc_info.value, ActionInProgressError)


async def test_renter_history_lists_own_rentals(renter_rentals, rental):
    rentals = await renter_rentals.list_for_renter()
    assert [r.id for r in rentals] == [rental.id]


async def test_server_status_constants_match_local_statuses(renter_rentals):
    assert set(await renter_rentals.status_constants()) == {status.value for status in S}


async def test_only_the_owner_lists_rentals_of_a_vehicle(renter_rentals, owner_rentals, rental):
    rentals = await owner_rentals.list_for_vehicle(VEHICLE_ID)
    assert [r.id for r in rentals] == [rental.id]

    with pytest.raises(PermissionDeniedError):
        await renter_rentals.list_for_vehicle(VEHICLE_ID)
