import os
import stat

import requests

from sap_storefront_connector.models import ApiErrorKind, SapSession
from sap_storefront_connector.session import FileSessionStore, SAPAuthError, SessionManager

from conftest import FakeResponse


def test_login_stores_session_with_cookies(session_manager, http, clock):
    result = session_manager.ensure_session()

    assert result.ok
    assert session_manager.session.session_token == "token-1"
    assert session_manager.session.expires_at == clock.now + 1800
    assert session_manager.cookie_header() == "B1SESSION=token-1; ROUTEID=.node1"

    login = http.login_calls[0]
    assert login.method == "POST"
    assert login.url == "https://sap.test:50000/b1s/v2/Login"
    assert login.json == {"CompanyDB": "TESTDB", "UserName": "manager", "Password": "secret"}
    assert login.timeout == 30
    assert login.verify is False


def test_session_reused_while_outside_grace_window(session_manager, http, clock):
    session_manager.ensure_session()

    # 400 s para expirar: sigue siendo válida
    clock.advance(1800 - 400)
    assert session_manager.ensure_session().ok
    assert len(http.login_calls) == 1


def test_session_renewed_inside_grace_window(session_manager, http, clock):
    session_manager.ensure_session()

    # 200 s para expirar: dentro del margen de 300 s
    clock.advance(1800 - 200)
    assert not session_manager.is_valid()
    assert session_manager.ensure_session().ok
    assert len(http.login_calls) == 2


def test_login_failure_returns_auth_failed(session_manager, http):
    http.login_responses = [FakeResponse(401, {"error": {"message": {"value": "Invalid login"}}})]

    result = session_manager.ensure_session()

    assert not result.ok
    assert result.error.kind == ApiErrorKind.AUTH_FAILED
    assert result.error.status_code == 401
    assert "Invalid login" in result.error.response_body
    assert session_manager.session is None


def test_login_without_cookie_uses_session_id_from_body(session_manager, http):
    http.login_responses = [FakeResponse(200, {"SessionId": "from-body"})]

    assert session_manager.ensure_session().ok
    assert session_manager.session.session_token == "from-body"
    assert session_manager.cookie_header() == "B1SESSION=from-body"


def test_authenticate_raises_on_failure(session_manager, http):
    http.login_responses = [FakeResponse(500, text="boom")]

    try:
        session_manager.authenticate()
        raised = False
    except SAPAuthError:
        raised = True

    assert raised


def test_logout_never_raises_and_clears_state(session_manager, http):
    session_manager.ensure_session()
    http.raise_on_logout = requests.exceptions.ConnectionError("down")

    session_manager.logout()

    assert session_manager.session is None
    assert session_manager.store.load() is None


def test_session_restored_from_store(config, http, clock):
    first = SessionManager(config=config, http=http, clock=clock)
    first.ensure_session()

    second = SessionManager(config=config, store=first.store, http=http, clock=clock)
    assert second.ensure_session().ok
    assert len(http.login_calls) == 1


def test_file_session_store_roundtrip_and_ttl(tmp_path, clock):
    store = FileSessionStore(tmp_path / "state" / "session.json", clock=clock)
    session = SapSession(session_token="abc", cookies={"B1SESSION": "abc"}, expires_at=clock.now + 1800)

    store.save(session, ttl=1500)

    assert store.load() == session
    mode = stat.S_IMODE(os.stat(store.path).st_mode)
    assert mode == 0o600

    clock.advance(1501)
    assert store.load() is None

    store.clear()
    assert not store.path.exists()


def test_file_session_store_ignores_corrupt_file(tmp_path, clock):
    path = tmp_path / "session.json"
    path.write_text("{not json", encoding="utf-8")

    assert FileSessionStore(path, clock=clock).load() is None
