import asyncio

import httpx
import pytest
from mongomock_motor import AsyncMongoMockClient

from app.core.config import get_settings
from app.core.runtime import Runtime
from app.database.connection import mongo_db_dependency
from app.main import app
from app.repositories.message_repository import MessageRepository
from app.repositories.user_repository import UserRepository
from app.services.chat_service import ChatService
from app.utils.blob_storage import InlineBlobStorage
from app.utils.realtime_bus import LiveGateway
from app.utils.security import create_access_token
from app.utils.websocket_manager import ClientConnection, PresenceRegistry


TYPING_TIMEOUT = 0.1


class FakeSocket:
    """Stands in for a websocket; records every frame written to it."""

    def __init__(self, fail: bool = False) -> None:
        self.frames = []
        self.fail = fail

    async def send_json(self, data) -> None:
        # yield so concurrent writers get a chance to interleave
        await asyncio.sleep(0)
        if self.fail:
            raise RuntimeError("socket is closed")
        self.frames.append(data)

    def events(self, name=None):
        return [f for f in self.frames if name is None or f["event"] == name]

    def data(self, name):
        return [f["data"] for f in self.events(name)]


@pytest.fixture
def db():
    return AsyncMongoMockClient()["chat_test"]


@pytest.fixture
async def users(db):
    await db["users"].insert_many(
        [
            {"_id": "a1", "email": "alice@example.com", "full_name": "Alice", "hashed_password": "x"},
            {"_id": "b1", "email": "bob@example.com", "full_name": "Bob", "hashed_password": "x"},
            {"_id": "c1", "email": "carol@example.com", "full_name": "Carol", "hashed_password": "x"},
        ]
    )
    return ["a1", "b1", "c1"]


@pytest.fixture
def registry():
    return PresenceRegistry()


@pytest.fixture
def gateway(registry, db):
    return LiveGateway(registry, UserRepository(db), typing_timeout=TYPING_TIMEOUT)


@pytest.fixture
def service(db, gateway):
    return ChatService(MessageRepository(db), UserRepository(db), gateway, InlineBlobStorage())


@pytest.fixture
def connect(gateway):
    async def _connect(user_id: str, fail: bool = False):
        socket = FakeSocket(fail=fail)
        connection = ClientConnection(socket, user_id)
        await gateway.on_connect(user_id, connection)
        return socket, connection

    return _connect


@pytest.fixture
def runtime(registry, gateway):
    return Runtime(settings=get_settings(), registry=registry, gateway=gateway, blob_storage=InlineBlobStorage())


@pytest.fixture
def test_app(db, runtime):
    app.state.runtime = runtime
    app.dependency_overrides[mongo_db_dependency] = lambda: db
    yield app
    app.dependency_overrides.clear()


def auth_headers(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture
async def client_for(test_app):
    clients = []

    def _client(user_id: str) -> httpx.AsyncClient:
        client = httpx.AsyncClient(
            transport=httpx.ASGITransport(app=test_app),
            base_url="http://testserver",
            headers=auth_headers(user_id),
        )
        clients.append(client)
        return client

    yield _client
    for client in clients:
        await client.aclose()
