import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState

from redblue.app import create_app
from redblue.core.env import Environment, reset_environment
from redblue.game.game_manager import GameManager

TEST_ENV = {
    "ROUND_TIME_LIMIT_SECONDS": "60",
    "LOBBY_TTL_MINUTES": "10",
    "PAUSE_TIMEOUT_MINUTES": "10",
    "FINISHED_RETENTION_MINUTES": "60",
    "CLEANUP_INTERVAL_MINUTES": "0",
    "ADMIN_PASSWORD": "letmein",
    "LOG_LEVEL": "DEBUG",
}

UNSET_ENV = [
    "REDIS_HOST",
    "REDIS_PASSWORD",
    "DB_HOST",
    "DB_USER",
    "DB_PASSWORD",
    "DB_NAME",
]


class FakeWebSocket:
    """Stands in for a connected WebSocket and records what is sent to it"""

    def __init__(self, fail: bool = False):
        self.client_state = WebSocketState.CONNECTED
        self.sent = []
        self.fail = fail
        self.closed = False

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("connection reset")
        self.sent.append(data)

    async def close(self, code: int = 1000):
        self.closed = True
        self.client_state = WebSocketState.DISCONNECTED

    def types(self):
        return [message["type"] for message in self.sent]

    def of_type(self, event_type: str):
        return [message for message in self.sent if message["type"] == event_type]


@pytest.fixture()
def make_env(monkeypatch, tmp_path):
    """Build an Environment from the test defaults plus overrides"""

    def _make(**overrides) -> Environment:
        for name in UNSET_ENV:
            monkeypatch.delenv(name, raising=False)
        for name, value in {**TEST_ENV, **overrides}.items():
            monkeypatch.setenv(name, str(value))
        return Environment(dotenv_path=str(tmp_path / "absent.env"))

    yield _make
    reset_environment()


@pytest.fixture()
def env(make_env):
    return make_env()


@pytest_asyncio.fixture()
async def make_manager(make_env):
    managers = []

    async def _make(**overrides) -> GameManager:
        manager = GameManager(make_env(**overrides))
        await manager.startup()
        managers.append(manager)
        return manager

    yield _make
    for manager in managers:
        await manager.shutdown()


@pytest.fixture()
def client(make_env):
    """Full app with its lifespan running, no Redis or MySQL"""
    make_env()
    with TestClient(create_app()) as test_client:
        yield test_client


@pytest_asyncio.fixture()
async def manager(make_manager):
    return await make_manager()


async def start_game(manager: GameManager, host: str = "Alice", guest: str = "Bob"):
    """Create a lobby and join it; returns (game_id, host_token, guest_token)"""
    created = await manager.create_game(host)
    created_session = manager.get_game_session(created["game_id"])
    joined = await manager.join_game(guest, created_session.code)
    return created["game_id"], created["token"], joined["token"]


def watch(manager: GameManager, game_id: str) -> FakeWebSocket:
    websocket = FakeWebSocket()
    manager.broadcaster.subscribe(game_id, websocket)
    return websocket


def bearer(token: str):
    return {"Authorization": f"Bearer {token}"}
