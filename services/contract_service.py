from typing import List, Optional

from config.constants import (
    CONTRACT_BY_ID_PATH,
    CREATE_CONTRACT_PATH,
    OWNER_SIGN_CONTRACT_PATH,
    PREPARE_CONTRACT_PATH,
    RENTAL_CONTRACTS_PATH,
    RENTER_SIGN_CONTRACT_PATH,
)
from models.contract import Contract, ContractDraft, ContractStatus
from models.rental import Rental
from services.api_client import ApiClient
from services.exceptions import ApiError, ConflictError, ContractFinalizedError, InvalidInputError
from services.rental_workflow import RentalAction, Role, ensure_allowed, resolve_role
from utils.liveness import ActionGate
from utils.logger import app_logger


class ContractService:
    """
    Contract drafting and the two-party sign/reject flow.

    Serves both the renter and the owner; the caller's side of the rental is
    worked out per call from the rental's party ids.
    """

    def __init__(self, api: ApiClient, gate: Optional[ActionGate] = None):
        self._api = api
        self._gate = gate or ActionGate()

    # --- Reads ---

    async def list_for_rental(self, rental_id: int) -> List[Contract]:
        data = await self._api.get_data(RENTAL_CONTRACTS_PATH, rentalId=rental_id)
        return [Contract.model_validate(item) for item in data or []]

    async def get(self, contract_id: str) -> Contract:
        data = await self._api.get_data(CONTRACT_BY_ID_PATH, contractId=contract_id)
        contract = Contract.model_validate(data)
        if contract.contract_status is not contract.derived_status:
            app_logger.warning(
                f"Contract {contract.id} reports {contract.contract_status.value} but party decisions give "
                f"{contract.derived_status.value}"
            )
        return contract

    async def active_contract(self, rental_id: int) -> Optional[Contract]:
        """The newest contract still awaiting a decision, if there is one."""
        pending = [c for c in await self.list_for_rental(rental_id) if c.is_active]
        if not pending:
            return None
        if len(pending) > 1:
            app_logger.warning(f"Rental {rental_id} has {len(pending)} pending contracts, using the newest")
        return max(pending, key=lambda c: (c.created_at is not None, c.created_at or 0))

    # --- Drafting ---

    async def prepare_draft(self, rental_id: int) -> ContractDraft:
        """Server-prefilled draft; every field may be edited before `create`."""
        data = await self._api.get_data(PREPARE_CONTRACT_PATH, rentalId=rental_id)
        return ContractDraft.model_validate(data or {})

    async def create(self, rental: Rental, user_id: int, draft: ContractDraft) -> str:
        """
        Submits `draft` for `rental` and returns the new contract id.

        Only the owner may create a contract, only once the booking is
        approved, and only while no other draft is awaiting signatures.
        """
        role = resolve_role(rental, user_id)
        ensure_allowed(rental.status, RentalAction.CREATE_CONTRACT, role)

        missing = draft.missing_fields()
        if missing:
            raise InvalidInputError(f"Please fill in all required fields: {', '.join(missing)}")

        async with self._gate.hold((rental.id, RentalAction.CREATE_CONTRACT)):
            active = await self.active_contract(rental.id)
            if active is not None:
                raise ConflictError(f"Contract {active.id} for rental {rental.id} is still awaiting signatures.")
            data = await self._api.post_data(CREATE_CONTRACT_PATH, draft.to_payload(), rentalId=rental.id)

        contract_id = data.get("id") if isinstance(data, dict) else None
        if contract_id is None:
            raise ApiError("Create contract response has no contract id.", payload={"data": data})
        app_logger.info(f"Contract {contract_id} created for rental {rental.id}")
        return str(contract_id)

    # --- Decisions ---

    async def sign(self, contract: Contract, rental: Rental, user_id: int, password: str) -> Contract:
        return await self.decide(contract, rental, user_id, True, password)

    async def reject(self, contract: Contract, rental: Rental, user_id: int, password: str) -> Contract:
        return await self.decide(contract, rental, user_id, False, password)

    async def decide(self, contract: Contract, rental: Rental, user_id: int, sign: bool, password: str) -> Contract:
        """
        Records this party's decision on `contract` and returns the contract
        as the server now has it.

        `password` re-authenticates the user for this one call. It is sent
        once and not kept anywhere.
        """
        if contract.rental_id != rental.id:
            raise InvalidInputError(f"Contract {contract.id} does not belong to rental {rental.id}.")
        if not password:
            raise InvalidInputError("Password is required to sign or reject a contract.")

        role = resolve_role(rental, user_id)
        if contract.contract_status.is_terminal:
            raise ContractFinalizedError(f"Contract {contract.id} is already {contract.contract_status.value}.")
        own_status = contract.party_status(role is Role.RENTER)
        if own_status.is_terminal:
            raise ContractFinalizedError(f"You have already {own_status.value.lower()} contract {contract.id}.")
        ensure_allowed(rental.status, RentalAction.SIGN_CONTRACT, role)

        path = RENTER_SIGN_CONTRACT_PATH if role is Role.RENTER else OWNER_SIGN_CONTRACT_PATH
        verb = "sign" if sign else "reject"
        async with self._gate.hold((rental.id, RentalAction.SIGN_CONTRACT)):
            app_logger.info(f"Contract {contract.id}: {role.value} {user_id} requests to {verb}")
            await self._api.post(path, {"contractId": contract.id, "decision": sign, "password": password})
            updated = await self.get(contract.id)

        if updated.contract_status is ContractStatus.REJECTED:
            # The rental stays in CONTRACT PENDING; the owner drafts a new contract.
            app_logger.info(f"Contract {contract.id} rejected; rental {rental.id} awaits a new draft")
        elif updated.contract_status is not contract.contract_status:
            app_logger.info(
                f"Contract {contract.id}: {contract.contract_status.value} -> {updated.contract_status.value}"
            )
        return updated
