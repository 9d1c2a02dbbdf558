"""
In-process stand-in for the rental marketplace REST backend.

Speaks the same envelope ({status, errorCode?, message?, data?}) and error
codes as the real server, keeps its state in plain dicts and counts the
calls tests care about.
"""
import asyncio
import itertools
import math
from datetime import datetime, timedelta, timezone

from aiohttp import web

APP_FEE = 2500
PASSWORD = "secret"
RENTER_ID = 1
OWNER_ID = 2
VEHICLE_ID = 10

PUBLIC_PATHS = {"/api/auth/login", "/api/auth/renew-access-token"}
HOLDING_STATUSES = {
    "DEPOSIT PAID", "OWNER PENDING", "OWNER APPROVED", "CONTRACT PENDING", "CONTRACT SIGNED",
    "REMAINING PAYMENT PAID", "RENTER RECEIVED", "RENTER RETURNED", "COMPLETED",
}


def ok(data=None, status=200):
    return web.json_response({"status": status, "message": "OK", "data": data}, status=status)


def fail(http_status, message, error_code=None, data=None):
    body = {"status": http_status, "message": message}
    if error_code is not None:
        body["errorCode"] = error_code
    if data is not None:
        body["data"] = data
    return web.json_response(body, status=http_status)


def parse_time(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class FakeBackend:
    def __init__(self):
        self.base_url = None
        self.users = {
            RENTER_ID: {"id": RENTER_ID, "nickname": "renter", "phoneNumber": "0900000001",
                        "email": "renter@example.com", "level": 2},
            OWNER_ID: {"id": OWNER_ID, "nickname": "owner", "phoneNumber": "0900000002",
                       "email": "owner@example.com", "level": 2},
        }
        self.credentials = {"renter@example.com": RENTER_ID, "owner@example.com": OWNER_ID}
        self.vehicles = {
            VEHICLE_ID: {
                "id": VEHICLE_ID, "userId": OWNER_ID, "title": "Toyota Vios", "price": 500000,
                "isHidden": False, "timePickupStart": "07:00", "timePickupEnd": "20:00",
                "timeReturnStart": "07:00", "timeReturnEnd": "20:00",
            }
        }
        self.access_tokens = {}
        self.refresh_tokens = {}
        self.bookings = []
        self.failing_months = set()
        self.rentals = {}
        self.contracts = {}
        self.chat_sessions = {}
        self.messages = {}

        self.requests = []
        self.refresh_calls = 0
        self.refresh_delay = 0.0
        self.refresh_fails = False
        self.reject_all_tokens = False
        self.payment_delay = 0.0

        self._ids = itertools.count(100)
        self._tokens = itertools.count(1)
        self._clock = datetime(2025, 5, 1, tzinfo=timezone.utc)

    # --- Test Helpers ---

    def issue_tokens(self, user_id):
        n = next(self._tokens)
        access, refresh = f"access-{n}", f"refresh-{n}"
        self.access_tokens[access] = user_id
        self.refresh_tokens[refresh] = user_id
        return access, refresh

    def expire_access_tokens(self):
        self.access_tokens.clear()

    def now(self):
        self._clock += timedelta(seconds=1)
        return self._clock

    def add_booking(self, start, end, vehicle_id=VEHICLE_ID):
        self.bookings.append({"vehicleId": vehicle_id, "startDateTime": iso(start), "endDateTime": iso(end)})

    def add_chat_session(self, user_a, user_b):
        session_id = next(self._ids)
        self.chat_sessions[frozenset({user_a, user_b})] = {
            "id": session_id, "senderId": user_a, "receiverId": user_b, "createdAt": iso(self.now()),
        }
        self.messages[session_id] = []
        return session_id

    def add_message(self, session_id, sender_id, receiver_id, content):
        message = {
            "id": next(self._ids), "sessionId": session_id, "type": "text", "content": content,
            "senderId": sender_id, "receiverId": receiver_id, "createdAt": iso(self.now()),
        }
        self.messages[session_id].append(message)
        return message

    def calls_to(self, path):
        return [r for r in self.requests if r[1] == f"/api{path}"]

    # --- App ---

    def make_app(self):
        @web.middleware
        async def auth(request, handler):
            header = request.headers.get("Authorization", "")
            token = header[len("Bearer "):] if header.startswith("Bearer ") else None
            self.requests.append((request.method, request.path, token))
            if request.path not in PUBLIC_PATHS:
                if self.reject_all_tokens or token not in self.access_tokens:
                    return fail(401, "Unauthorized")
                request["user_id"] = self.access_tokens[token]
            return await handler(request)

        app = web.Application(middlewares=[auth])
        r = app.router
        r.add_post("/api/auth/login", self.login)
        r.add_post("/api/auth/renew-access-token", self.renew)
        r.add_get("/api/user/get-user-info", self.user_info)
        r.add_get("/api/user/get-user-public-info", self.user_public_info)
        r.add_get("/api/vehicle/public/get-vehicle-by-id", self.vehicle_by_id)
        r.add_get("/api/rental/check-availability", self.check_availability)
        r.add_post("/api/rental/create-rental-confirmation", self.rental_confirmation)
        r.add_post("/api/rental/create-new-rental", self.create_rental)
        r.add_get("/api/rental/record", self.rental_record)
        r.add_get("/api/rental/constants/rental-status", self.rental_status_constants)
        r.add_get("/api/rental/renter/all", self.renter_rentals)
        r.add_get("/api/rental/vehicle/all", self.vehicle_rentals)
        r.add_get("/api/rental/vehicle-owner/status", self.owner_rentals_by_status)
        r.add_post("/api/payment/deposit-payment", self.deposit_payment)
        r.add_post("/api/rental/owner-rental-decision", self.owner_decision)
        r.add_post("/api/payment/remaining-payment-payment", self.remaining_payment)
        r.add_post("/api/rental/confirm-renter-received-vehicle", self.confirm_received)
        r.add_post("/api/rental/confirm-renter-returned-vehicle", self.confirm_returned)
        r.add_get("/api/rental/prepare-contract", self.prepare_contract)
        r.add_post("/api/rental/create-contract", self.create_contract)
        r.add_get("/api/rental/get-all-contracts-from-rental-id", self.rental_contracts)
        r.add_get("/api/rental/get-contract-by-id", self.contract_by_id)
        r.add_post("/api/rental/renter-sign-contract", self.renter_sign)
        r.add_post("/api/rental/vehicle-owner-sign-contract", self.owner_sign)
        r.add_post("/api/chat/create-chat-session", self.create_chat_session)
        r.add_get("/api/chat/get-all-messages", self.all_chat_sessions)
        r.add_get("/api/chat/get-messages-in-session", self.session_messages)
        return app

    # --- Auth ---

    async def login(self, request):
        body = await request.json()
        user_id = self.credentials.get(body.get("email"))
        if user_id is None or body.get("password") != PASSWORD:
            return fail(401, "Invalid email or password")
        access, refresh = self.issue_tokens(user_id)
        return web.json_response({"status": 200, "accessToken": access, "refreshToken": refresh})

    async def renew(self, request):
        self.refresh_calls += 1
        body = await request.json()
        if self.refresh_delay:
            await asyncio.sleep(self.refresh_delay)
        user_id = self.refresh_tokens.get(body.get("refreshToken"))
        if self.refresh_fails or user_id is None:
            return fail(401, "Invalid refresh token")
        n = next(self._tokens)
        access = f"access-{n}"
        self.access_tokens[access] = user_id
        return web.json_response({"status": 200, "accessToken": access})

    async def user_info(self, request):
        return ok(self.users[request["user_id"]])

    async def user_public_info(self, request):
        user = self.users.get(int(request.query["userId"]))
        if user is None:
            return fail(404, "User not found")
        return ok({"id": user["id"], "nickname": user["nickname"], "avatar": None})

    async def vehicle_by_id(self, request):
        vehicle = self.vehicles.get(int(request.query["vehicleId"]))
        if vehicle is None:
            return fail(404, "Vehicle not found.", 2007)
        return ok(vehicle)

    # --- Rentals ---

    def _rental_days(self, start, end):
        return max(1, math.ceil((end - start) / timedelta(days=1)))

    async def check_availability(self, request):
        vehicle_id = int(request.query["vehicleId"])
        month, year = int(request.query["month"]), int(request.query["year"])
        if (month, year) in self.failing_months:
            return fail(500, "Failed to check vehicle availability.", 4101)
        windows = []
        for booking in self.bookings:
            start, end = parse_time(booking["startDateTime"]), parse_time(booking["endDateTime"])
            if booking["vehicleId"] != vehicle_id:
                continue
            if (start.year, start.month) <= (year, month) <= (end.year, end.month):
                windows.append({"startDateTime": booking["startDateTime"], "endDateTime": booking["endDateTime"]})
        return ok(windows)

    async def rental_confirmation(self, request):
        body = await request.json()
        vehicle = self.vehicles[body["vehicleId"]]
        days = self._rental_days(parse_time(body["startDateTime"]), parse_time(body["endDateTime"]))
        total = vehicle["price"] * days + APP_FEE
        return ok({"depositPrice": total * 3 // 10, "totalPrice": total})

    async def create_rental(self, request):
        body = await request.json()
        vehicle = self.vehicles.get(body.get("vehicleId"))
        if vehicle is None:
            return fail(404, "Vehicle not found.", 2007)
        if vehicle["userId"] == request["user_id"]:
            return fail(400, "Owner cannot rent their own vehicle.", 4002)
        start, end = parse_time(body["startDateTime"]), parse_time(body["endDateTime"])
        if end <= start:
            return fail(400, "End date is less than start date.", 4012)
        for booking in self.bookings:
            if booking["vehicleId"] == vehicle["id"] and start < parse_time(booking["endDateTime"]) \
                    and end > parse_time(booking["startDateTime"]):
                return fail(409, "Vehicle is not available.", 4001)

        days = self._rental_days(start, end)
        total = vehicle["price"] * days + APP_FEE
        rental_id = next(self._ids)
        created = iso(self.now())
        self.rentals[rental_id] = {
            "id": rental_id, "vehicleId": vehicle["id"], "renterId": request["user_id"],
            "vehicleOwnerId": vehicle["userId"], "renterPhoneNumber": body["renterPhoneNumber"],
            "startDateTime": body["startDateTime"], "endDateTime": body["endDateTime"],
            "dailyPrice": vehicle["price"], "totalPrice": total, "depositPrice": total * 3 // 10,
            "status": "DEPOSIT PENDING",
            "statusWorkflowHistory": [{"status": "DEPOSIT PENDING", "timestamp": created}],
            "createdAt": created, "updatedAt": created,
        }
        self.add_booking(start, end, vehicle["id"])
        return ok({"id": rental_id, "depositPrice": total * 3 // 10}, status=201)

    def _transition(self, rental, status):
        stamp = iso(self.now())
        rental["status"] = status
        rental["statusWorkflowHistory"].append({"status": status, "timestamp": stamp})
        rental["updatedAt"] = stamp

    def _find_rental(self, rental_id):
        rental = self.rentals.get(int(rental_id)) if rental_id is not None else None
        if rental is None:
            return None, fail(404, "Rental not found.", 8004)
        return rental, None

    async def rental_record(self, request):
        rental, error = self._find_rental(request.query.get("rentalId"))
        return error or ok(rental)

    async def renter_rentals(self, request):
        rentals = [r for r in self.rentals.values() if r["renterId"] == request["user_id"]]
        return ok({"rentals": rentals, "total": len(rentals)})

    async def rental_status_constants(self, request):
        statuses = ["DEPOSIT PENDING", "CANCELLED", *sorted(HOLDING_STATUSES), "DEPOSIT REFUNDED"]
        return ok({status.replace(" ", "_"): status for status in statuses})

    async def vehicle_rentals(self, request):
        vehicle = self.vehicles.get(int(request.query["vehicleId"]))
        if vehicle is None:
            return fail(404, "Vehicle not found.", 2007)
        if vehicle["userId"] != request["user_id"]:
            return fail(403, "You are not the owner of the vehicle.", 2008)
        rentals = [r for r in self.rentals.values() if r["vehicleId"] == vehicle["id"]]
        return ok({"rentals": rentals, "total": len(rentals)})

    async def owner_rentals_by_status(self, request):
        status = request.query["status"]
        rentals = [
            r for r in self.rentals.values()
            if r["vehicleOwnerId"] == request["user_id"] and r["status"] == status
        ]
        return ok({"rentals": rentals, "total": len(rentals)})

    async def _rental_action(self, request, party, sources, target):
        body = await request.json()
        rental, error = self._find_rental(body.get("rentalId"))
        if error:
            return error
        if rental[party] != request["user_id"]:
            return fail(403, "User is not the owner of the rental.", 4005)
        if rental["status"] not in sources:
            return fail(400, "Rental is not in the correct status.", 4007)
        self._transition(rental, target)
        return ok({"status": rental["status"]})

    async def deposit_payment(self, request):
        body = await request.json()
        rental, error = self._find_rental(body.get("rentalId"))
        if error:
            return error
        if rental["renterId"] != request["user_id"]:
            return fail(403, "User is not the owner of the rental.", 4005)
        if self.payment_delay:
            await asyncio.sleep(self.payment_delay)
        if rental["status"] == "CANCELLED":
            return fail(400, "Rental is cancelled.", 8005)
        if rental["status"] != "DEPOSIT PENDING":
            return fail(400, "Rental is not deposit pending.", 8006)
        self._transition(rental, "DEPOSIT PAID")
        # The backend hands paid requests straight to the owner.
        self._transition(rental, "OWNER PENDING")
        return ok({"status": rental["status"]})

    async def owner_decision(self, request):
        body = await request.json()
        rental, error = self._find_rental(body.get("rentalId"))
        if error:
            return error
        if rental["vehicleOwnerId"] != request["user_id"]:
            return fail(403, "User is not the owner of the rental.", 4005)
        if rental["status"] not in {"DEPOSIT PENDING", "DEPOSIT PAID", "OWNER PENDING"}:
            return fail(400, "Rental is not in the correct status.", 4007)
        self._transition(rental, "OWNER APPROVED" if body.get("status") else "CANCELLED")
        return ok({"status": rental["status"]})

    async def remaining_payment(self, request):
        return await self._rental_action(request, "renterId", {"CONTRACT SIGNED"}, "REMAINING PAYMENT PAID")

    async def confirm_received(self, request):
        return await self._rental_action(request, "vehicleOwnerId", {"REMAINING PAYMENT PAID"}, "RENTER RECEIVED")

    async def confirm_returned(self, request):
        return await self._rental_action(request, "vehicleOwnerId", {"RENTER RECEIVED"}, "RENTER RETURNED")

    # --- Contracts ---

    async def prepare_contract(self, request):
        rental, error = self._find_rental(request.query.get("rentalId"))
        if error:
            return error
        renter, owner = self.users[rental["renterId"]], self.users[rental["vehicleOwnerId"]]
        start = parse_time(rental["startDateTime"])
        return ok({
            "contractDate": {"day": start.day, "month": start.month, "year": start.year},
            "renterInformation": {"name": renter["nickname"], "phoneNumber": renter["phoneNumber"],
                                  "idCardNumber": "079000000001", "driverLicenseNumber": "DL-0001"},
            "vehicleOwnerInformation": {"name": owner["nickname"], "phoneNumber": owner["phoneNumber"],
                                        "idCardNumber": "079000000002"},
            "vehicleInformation": {"brand": "Toyota", "model": "Vios", "year": 2021, "color": "White",
                                   "vehicleRegistrationId": "51A-123.45"},
            "contractAddress": {"city": "HCMC", "district": "1", "ward": "Ben Nghe", "address": "1 Le Loi"},
            "rentalInformation": {
                "startDateTime": rental["startDateTime"], "endDateTime": rental["endDateTime"],
                "totalDays": self._rental_days(start, parse_time(rental["endDateTime"])),
                "totalPrice": rental["totalPrice"], "depositPrice": rental["depositPrice"],
            },
            "vehicleCondition": {"outerVehicleCondition": "", "innerVehicleCondition": "",
                                 "tiresCondition": "", "engineCondition": "", "note": ""},
        })

    async def create_contract(self, request):
        rental, error = self._find_rental(request.query.get("rentalId"))
        if error:
            return error
        if rental["vehicleOwnerId"] != request["user_id"]:
            return fail(403, "User is not the owner of the rental.", 4005)
        if rental["status"] not in {"OWNER APPROVED", "CONTRACT PENDING"}:
            return fail(400, "Rental is not in the correct status.", 4007)
        body = await request.json()
        contract_id = f"contract-{next(self._ids)}"
        self.contracts[contract_id] = {
            "id": contract_id, "rentalId": rental["id"], "contractStatus": "PENDING",
            "renterStatus": "PENDING", "ownerStatus": "PENDING", "createdAt": iso(self.now()),
            "payload": body,
        }
        if rental["status"] != "CONTRACT PENDING":
            self._transition(rental, "CONTRACT PENDING")
        return ok({"id": contract_id}, status=201)

    async def rental_contracts(self, request):
        rental_id = int(request.query["rentalId"])
        return ok([c for c in self.contracts.values() if c["rentalId"] == rental_id])

    async def contract_by_id(self, request):
        contract = self.contracts.get(request.query["contractId"])
        if contract is None:
            return fail(404, "Contract not found")
        return ok(contract)

    async def _sign(self, request, party_key, party_status_key):
        body = await request.json()
        contract = self.contracts.get(body.get("contractId"))
        if contract is None:
            return fail(404, "Contract not found")
        rental = self.rentals[contract["rentalId"]]
        if rental[party_key] != request["user_id"]:
            return fail(403, "User is not a party to this contract.", 4005)
        if body.get("password") != PASSWORD:
            return fail(403, "Incorrect password")
        if contract["contractStatus"] != "PENDING" or contract[party_status_key] != "PENDING":
            return fail(400, "Contract is already decided.", 4007)
        contract[party_status_key] = "SIGNED" if body.get("decision") else "REJECTED"
        statuses = {contract["renterStatus"], contract["ownerStatus"]}
        if "REJECTED" in statuses:
            contract["contractStatus"] = "REJECTED"
        elif statuses == {"SIGNED"}:
            contract["contractStatus"] = "SIGNED"
            self._transition(rental, "CONTRACT SIGNED")
        return ok({"status": contract["contractStatus"]})

    async def renter_sign(self, request):
        return await self._sign(request, "renterId", "renterStatus")

    async def owner_sign(self, request):
        return await self._sign(request, "vehicleOwnerId", "ownerStatus")

    # --- Chat ---

    async def create_chat_session(self, request):
        body = await request.json()
        sender_id, receiver_id = request["user_id"], body["receiverId"]
        existing = self.chat_sessions.get(frozenset({sender_id, receiver_id}))
        if existing is not None:
            return web.json_response({
                "status": 400, "errorCode": 5001,
                "message": "Chat session already exists with this user", "data": {"id": existing["id"]},
            })
        session_id = self.add_chat_session(sender_id, receiver_id)
        return ok({"id": session_id}, status=201)

    async def all_chat_sessions(self, request):
        user_id = request["user_id"]
        sessions = [
            {**session, "message": self.messages[session["id"]]}
            for pair, session in self.chat_sessions.items() if user_id in pair
        ]
        return ok({"sessions": sessions})

    async def session_messages(self, request):
        return ok(self.messages.get(int(request.query["sessionId"]), []))
