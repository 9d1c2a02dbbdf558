from __future__ import annotations

import enum
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import Field

from models.base import ApiModel, Money


class ContractStatus(str, enum.Enum):
    PENDING = "PENDING"
    SIGNED = "SIGNED"
    REJECTED = "REJECTED"

    @property
    def is_terminal(self) -> bool:
        return self is not ContractStatus.PENDING


# Each party's own decision uses the same three values.
PartyStatus = ContractStatus


def aggregate_contract_status(renter_status: PartyStatus, owner_status: PartyStatus) -> ContractStatus:
    """
    Derives the contract status from both parties' decisions.

    A rejection by either party wins over everything else; the contract is
    only signed once both parties have signed.
    """
    if ContractStatus.REJECTED in (renter_status, owner_status):
        return ContractStatus.REJECTED
    if renter_status is ContractStatus.SIGNED and owner_status is ContractStatus.SIGNED:
        return ContractStatus.SIGNED
    return ContractStatus.PENDING


class Contract(ApiModel):
    id: str
    rental_id: int
    contract_status: ContractStatus
    renter_status: PartyStatus = ContractStatus.PENDING
    owner_status: PartyStatus = ContractStatus.PENDING
    created_at: Optional[datetime] = None

    @property
    def derived_status(self) -> ContractStatus:
        return aggregate_contract_status(self.renter_status, self.owner_status)

    @property
    def is_active(self) -> bool:
        return self.contract_status is ContractStatus.PENDING

    def party_status(self, is_renter: bool) -> PartyStatus:
        return self.renter_status if is_renter else self.owner_status


# --- Draft Payload Sections ---

class ContractDate(ApiModel):
    day: int = 1
    month: int = 1
    year: int = Field(default_factory=lambda: datetime.now(timezone.utc).year)


class RenterInformation(ApiModel):
    name: str = ""
    phone_number: str = ""
    id_card_number: str = ""
    driver_license_number: str = ""


class VehicleOwnerInformation(ApiModel):
    name: str = ""
    phone_number: str = ""
    id_card_number: str = ""


class VehicleInformation(ApiModel):
    brand: str = ""
    model: str = ""
    year: int = 0
    color: str = ""
    vehicle_registration_id: str = ""


class ContractAddress(ApiModel):
    city: str = ""
    district: str = ""
    ward: str = ""
    address: str = ""


class RentalInformation(ApiModel):
    start_date_time: str = ""
    end_date_time: str = ""
    total_days: int = 1
    total_price: Money = Decimal(0)
    deposit_price: Money = Decimal(0)


class VehicleCondition(ApiModel):
    outer_vehicle_condition: str = ""
    inner_vehicle_condition: str = ""
    tires_condition: str = ""
    engine_condition: str = ""
    note: str = ""


OPTIONAL_DRAFT_FIELDS = frozenset({"vehicleCondition.note"})


class ContractDraft(ApiModel):
    """
    Editable contract payload. The server prefills it from rental, vehicle
    and profile data; every field may be changed before submission.
    """
    contract_date: ContractDate = Field(default_factory=ContractDate)
    renter_information: RenterInformation = Field(default_factory=RenterInformation)
    vehicle_owner_information: VehicleOwnerInformation = Field(default_factory=VehicleOwnerInformation)
    vehicle_information: VehicleInformation = Field(default_factory=VehicleInformation)
    contract_address: ContractAddress = Field(default_factory=ContractAddress)
    rental_information: RentalInformation = Field(default_factory=RentalInformation)
    vehicle_condition: VehicleCondition = Field(default_factory=VehicleCondition)

    def missing_fields(self) -> list[str]:
        """
        Returns the dotted camelCase paths of required fields that are empty,
        zero or null. Only the condition note may be left blank.
        """
        missing = []
        for section_name, section in self.model_dump(by_alias=True).items():
            for field_name, value in section.items():
                path = f"{section_name}.{field_name}"
                if path in OPTIONAL_DRAFT_FIELDS:
                    continue
                if value is None or value == "" or value == 0:
                    missing.append(path)
        return missing
