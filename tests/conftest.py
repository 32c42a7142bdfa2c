import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from sap_storefront_connector.config import Settings
from sap_storefront_connector.sap_client import SAPClient
from sap_storefront_connector.session import InMemorySessionStore, SessionManager
from sap_storefront_connector.storefront import InMemoryOptions, InMemoryStorefront
from sap_storefront_connector.sync_log import MemoryLogSink, SyncLogger


class FakeResponse:
    """Respuesta mínima compatible con requests.Response"""

    def __init__(self, status_code=200, payload=None, cookies=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.cookies = cookies or {}
        if text is None:
            text = json.dumps(payload) if payload is not None else ""
        self.text = text
        self.content = text.encode()

    def json(self):
        if self._payload is None:
            raise ValueError("Sin JSON")
        return self._payload


class FakeHTTP:
    """
    Sustituto de requests.Session que enruta por método y prefijo de ruta.

    Cada ruta tiene una cola de respuestas; la última se repite. Una
    excepción en la cola se lanza en lugar de responder.
    """

    API_ROOT = "/b1s/v2/"

    def __init__(self):
        self.calls = []
        self.routes = []
        self.login_responses = []
        self.raise_on_logout = None

    def on(self, method, prefix, *responses):
        self.routes.append((method, prefix, list(responses)))
        return self

    def request(self, method, url, **kwargs):
        path = url.split(self.API_ROOT, 1)[1]
        self.calls.append(SimpleNamespace(method=method, url=url, path=path, **kwargs))

        if path == "Login":
            if self.login_responses:
                return self.login_responses.pop(0) if len(self.login_responses) > 1 else self.login_responses[0]
            return FakeResponse(200, {"SessionId": "token-1"}, cookies={"B1SESSION": "token-1", "ROUTEID": ".node1"})

        if path == "Logout":
            if self.raise_on_logout:
                raise self.raise_on_logout
            return FakeResponse(204)

        for route_method, prefix, responses in self.routes:
            if route_method == method and path.startswith(prefix):
                response = responses.pop(0) if len(responses) > 1 else responses[0]
                if isinstance(response, Exception):
                    raise response
                return response

        raise AssertionError(f"Petición inesperada: {method} {path}")

    @property
    def login_calls(self):
        return [c for c in self.calls if c.path == "Login"]

    @property
    def data_calls(self):
        return [c for c in self.calls if c.path not in ("Login", "Logout")]


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def config():
    return Settings(
        SAP_URL="https://sap.test:50000",
        SAP_COMPANY_DB="TESTDB",
        SAP_USERNAME="manager",
        SAP_PASSWORD="secret",
        SYNC_ENABLED=True,
        STOCK_SYNC_ENABLED=True,
        ORDER_SYNC_ENABLED=True,
        DEBUG_MODE=False,
    )


@pytest.fixture
def http():
    return FakeHTTP()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session_manager(config, http, clock):
    return SessionManager(config=config, store=InMemorySessionStore(clock=clock), http=http, clock=clock)


@pytest.fixture
def client(session_manager, config):
    return SAPClient(session_manager, config=config)


@pytest.fixture
def mock_client():
    """Cliente SAP falso para probar orquestadores sin HTTP"""
    return MagicMock(spec=SAPClient)


@pytest.fixture
def storefront():
    return InMemoryStorefront()


@pytest.fixture
def options():
    return InMemoryOptions()


@pytest.fixture
def log_sink():
    return MemoryLogSink()


@pytest.fixture
def sync_logger(log_sink):
    return SyncLogger(sink=log_sink, debug_mode=True)
