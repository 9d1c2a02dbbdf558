"""
Pytest fixtures for the rental client tests.

Provides the in-process fake backend, a Redis-backed token store on
fakeredis, signed-in API clients for both parties and a recording socket
client for the realtime channel.
"""
import pytest
from aiohttp.test_utils import TestServer
from fakeredis import aioredis as fake_aioredis

from database.token_store import TokenStore
from fake_backend import PASSWORD, FakeBackend
from fake_socket import FakeSocketClient
from realtime.connection_manager import ConnectionManager
from services.api_client import ApiClient
from services.availability_service import AvailabilityService
from services.chat_service import ChatService
from services.contract_service import ContractService
from services.rental_service import RentalService
from services.session_manager import SessionManager
from utils.liveness import ActionGate


@pytest.fixture
async def backend():
    fake = FakeBackend()
    server = TestServer(fake.make_app())
    await server.start_server()
    fake.base_url = str(server.make_url("/api"))
    yield fake
    await server.close()


@pytest.fixture
async def redis_client():
    client = fake_aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def token_store(redis_client):
    return TokenStore(redis_client)


def _sessions(backend, client):
    return SessionManager(TokenStore(client), base_url=backend.base_url, timeout=5)


@pytest.fixture
def session_manager(backend, token_store):
    return SessionManager(token_store, base_url=backend.base_url, timeout=5)


@pytest.fixture
async def renter_api(backend, session_manager):
    await session_manager.login("renter@example.com", PASSWORD)
    return ApiClient(session_manager, base_url=backend.base_url, timeout=5)


@pytest.fixture
async def owner_api(backend):
    # The owner signs in on a separate device, with separate token storage.
    client = fake_aioredis.FakeRedis(decode_responses=True)
    sessions = _sessions(backend, client)
    await sessions.login("owner@example.com", PASSWORD)
    yield ApiClient(sessions, base_url=backend.base_url, timeout=5)
    await client.aclose()


@pytest.fixture
def renter_rentals(renter_api):
    return RentalService(renter_api, AvailabilityService(renter_api), ActionGate())


@pytest.fixture
def owner_rentals(owner_api):
    return RentalService(owner_api, AvailabilityService(owner_api), ActionGate())


@pytest.fixture
def renter_contracts(renter_api):
    return ContractService(renter_api)


@pytest.fixture
def owner_contracts(owner_api):
    return ContractService(owner_api)


@pytest.fixture
def renter_chat(renter_api):
    return ChatService(renter_api)


@pytest.fixture
def socket_clients():
    return []


@pytest.fixture
def channel(socket_clients):
    def factory():
        client = FakeSocketClient()
        socket_clients.append(client)
        return client

    return ConnectionManager(url="http://socket.test", client_factory=factory, connect_timeout=1)
