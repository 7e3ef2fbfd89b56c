import re
from datetime import datetime, timedelta
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from core.config import settings
from core.exceptions import UpstreamUnavailableError
from modules.auth.services.auth_service import AuthService
from modules.auth.services.ssot_client import SsotClient
from modules.readers.models.reader import PortalAccessStatus
from modules.readers.repositories.activity_log_repository import ActivityLogRepository
from conftest import READER_PIN, make_reader, no_sleep

EMAIL = "alice.brown@example.com"


def request_code(client, fake_email):
    response = client.post("/api/readers/requestEmailCode", json={"pin": READER_PIN, "email": EMAIL})
    assert response.status_code == 200
    return re.search(r"<strong>(\d{6})</strong>", fake_email.sent[-1]["html"]).group(1)


def verify(client, code):
    return client.post("/api/readers/verifyEmailCode", json={"pin": READER_PIN, "email": EMAIL, "code": code})


def location(response):
    assert response.status_code == 302
    parsed = urlparse(response.headers["location"])
    return parsed.path, {key: values[0] for key, values in parse_qs(parsed.query).items()}


# ----------------------------------------------------------------------
# Email code login
# ----------------------------------------------------------------------
def test_request_email_code_sends_code(client, db, reader, fake_email):
    response = client.post("/api/readers/requestEmailCode", json={"pin": READER_PIN, "email": EMAIL})

    assert response.status_code == 200
    assert response.json()["expiresIn"] == 600
    assert fake_email.sent[0]["to"] == EMAIL
    db.refresh(reader)
    # Only the hash is stored
    assert reader.email_verification_code and len(reader.email_verification_code) > 6
    assert ActivityLogRepository(db).find_by_reader(READER_PIN, "emailCodeRequested")


def test_request_email_code_unknown_reader(client, reader):
    response = client.post("/api/readers/requestEmailCode", json={"pin": READER_PIN, "email": "someone@example.com"})
    assert response.status_code == 401
    assert response.json()["success"] is False


def test_suspended_reader_cannot_request_code(client, db):
    make_reader(db, status=PortalAccessStatus.SUSPENDED)
    response = client.post("/api/readers/requestEmailCode", json={"pin": READER_PIN, "email": EMAIL})
    assert response.status_code == 403


def test_verify_email_code_logs_in(client, db, reader, fake_email):
    code = request_code(client, fake_email)

    response = verify(client, code)

    assert response.status_code == 200
    body = response.json()
    assert body["reader"]["readerPin"] == READER_PIN
    assert body["redirectTo"] == f"/readersDashboard?readerPin={READER_PIN}"
    assert settings.COOKIE_NAME in response.cookies
    db.refresh(reader)
    assert reader.email_verification_code is None
    assert reader.last_login is not None


def test_wrong_codes_count_down_then_lock(client, reader, fake_email):
    code = request_code(client, fake_email)
    wrong = "000000" if code != "000000" else "111111"

    first = verify(client, wrong)
    assert first.status_code == 401
    assert first.json()["details"] == {"attemptsRemaining": 2}
    verify(client, wrong)
    verify(client, wrong)

    locked = verify(client, code)
    assert locked.status_code == 403
    assert "Too many failed attempts" in locked.json()["error"]


def test_expired_code_is_rejected(client, db, reader, fake_email):
    code = request_code(client, fake_email)
    db.refresh(reader)
    reader.email_verification_code_expires_at = datetime.utcnow() - timedelta(seconds=1)
    db.commit()

    response = verify(client, code)
    assert response.status_code == 401
    assert "expired" in response.json()["error"]


def test_reader_without_compliance_is_sent_to_hr_compliance(client, db, fake_email):
    make_reader(db, compliance=False)
    code = request_code(client, fake_email)
    body = verify(client, code).json()
    assert body["redirectTo"] == f"{settings.HRCOMPLIANCE_URL}/readersCompliance?readerPin={READER_PIN}"


def test_token_round_trip_and_tampering(reader):
    token = AuthService.create_reader_token(reader)
    claims = AuthService.decode_token(token)
    assert claims["pin"] == READER_PIN
    assert claims["role"] == "reader"
    assert AuthService.decode_token(token + "x") is None


def test_expired_session_is_rejected(client, reader):
    token = AuthService.create_access_token({"pin": READER_PIN, "role": "reader"}, timedelta(seconds=-1))
    response = client.get("/readersDashboard", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


# ----------------------------------------------------------------------
# SSOT client
# ----------------------------------------------------------------------
def scripted_client(responses, calls):
    def handler(request):
        calls.append(request)
        item = responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    return SsotClient(base_url="https://ssot.test", transport=httpx.MockTransport(handler), sleep=no_sleep)


@pytest.mark.asyncio
async def test_ssot_retries_once_on_gateway_error():
    calls = []
    client = scripted_client([
        httpx.Response(503),
        httpx.Response(200, json={"success": True, "accessToken": "tok"}),
    ], calls)

    result = await client.request_token(EMAIL, READER_PIN, "127.0.0.1")

    assert result.success
    assert result.access_token == "tok"
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_ssot_unavailable_after_retries():
    calls = []
    client = scripted_client([httpx.Response(502), httpx.Response(504)], calls)
    with pytest.raises(UpstreamUnavailableError):
        await client.request_code("tok", None, None)
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_ssot_connection_errors_are_retried():
    calls = []
    client = scripted_client([httpx.ConnectError("refused"), httpx.ConnectError("refused")], calls)
    with pytest.raises(UpstreamUnavailableError):
        await client.verify_code("tok", "123456", None, None)


@pytest.mark.asyncio
async def test_ssot_client_errors_are_not_retried():
    calls = []
    client = scripted_client([httpx.Response(401, json={"success": False, "error": "Invalid token"})], calls)
    result = await client.password_verify("tok", "secret", None, None)
    assert result.status_code == 401
    assert result.error == "Invalid token"
    assert len(calls) == 1


# ----------------------------------------------------------------------
# Portal (form) login
# ----------------------------------------------------------------------
def test_portal_login_sets_cookie_and_goes_to_2fa(client, ssot_handler):
    ssot_handler.handler = lambda request: httpx.Response(200, json={"success": True, "accessToken": "ssot-token"})

    response = client.post("/readersAuth/login", data={"email": EMAIL, "readerPin": READER_PIN.lower()})

    assert location(response)[0] == "/readers2fa"
    assert response.cookies.get(settings.COOKIE_NAME) == "ssot-token"
    assert ssot_handler.calls[0].url.path == "/auth/readers/requestToken"


def test_portal_login_rejects_bad_pin_format(client, ssot_handler):
    path, params = location(client.post("/readersAuth/login", data={"email": EMAIL, "readerPin": "RDR-1"}))
    assert path == "/readersLogin"
    assert params["error"] == "Invalid Reader PIN format"
    assert not ssot_handler.calls


def test_portal_login_when_ssot_down(client, ssot_handler):
    ssot_handler.handler = lambda request: httpx.Response(503)
    path, params = location(client.post("/readersAuth/login", data={"email": EMAIL, "readerPin": READER_PIN}))
    assert path == "/readersLogin"
    assert "unavailable" in params["error"]


def test_verify2fa_without_compliance(client, ssot_handler):
    client.cookies.set(settings.COOKIE_NAME, "ssot-token")
    ssot_handler.handler = lambda request: httpx.Response(200, json={
        "success": True,
        "reader": {"readerPin": READER_PIN, "complianceSubmitted": False},
    })

    response = client.post("/readersAuth/verify2fa", data={"verificationCode": "123456"})

    assert response.headers["location"] == f"{settings.HRCOMPLIANCE_URL}/readersCompliance"


def test_verify2fa_with_existing_password(client, ssot_handler):
    client.cookies.set(settings.COOKIE_NAME, "ssot-token")
    ssot_handler.handler = lambda request: httpx.Response(200, json={
        "success": True,
        "passwordSetupCompleted": True,
        "reader": {"readerPin": READER_PIN, "complianceSubmitted": True},
    })

    path, params = location(client.post("/readersAuth/verify2fa", data={"verificationCode": "123456"}))
    assert (path, params) == ("/secureLogin", {"setupCompleted": "true"})


def test_verify2fa_invalid_session_goes_to_login(client, ssot_handler):
    client.cookies.set(settings.COOKIE_NAME, "ssot-token")
    ssot_handler.handler = lambda request: httpx.Response(401, json={
        "success": False, "error": "Session expired", "redirect": "/readersLogin",
    })
    path, params = location(client.post("/readersAuth/verify2fa", data={"verificationCode": "123456"}))
    assert path == "/readersLogin"
    assert params["error"] == "Session expired"


def test_secure_login_password_already_set(client, ssot_handler):
    client.cookies.set(settings.COOKIE_NAME, "ssot-token")
    ssot_handler.handler = lambda request: httpx.Response(409, json={"success": False})

    path, params = location(client.post("/readersAuth/secureLogin",
                                        data={"password": "s3cret!", "isNewUser": "true"}))

    assert path == "/secureLogin"
    assert params["setupCompleted"] == "true"
    assert ssot_handler.calls[0].url.path == "/auth/readers/passwordSetup"


def test_secure_login_success_goes_to_dashboard(client, ssot_handler):
    client.cookies.set(settings.COOKIE_NAME, "ssot-token")
    ssot_handler.handler = lambda request: httpx.Response(200, json={
        "success": True, "accessToken": "final-token", "reader": {"readerPin": READER_PIN},
    })

    response = client.post("/readersAuth/secureLogin", data={"password": "s3cret!", "isNewUser": "false"})

    assert location(response) == ("/readersDashboard", {"readerPin": READER_PIN})
    assert ssot_handler.calls[0].url.path == "/auth/readers/passwordVerify"


def test_portal_logout_clears_session(client):
    client.cookies.set(settings.COOKIE_NAME, "ssot-token")
    response = client.post("/readersAuth/logout")
    assert response.json() == {"success": True, "redirect": "/readersLogin"}
    assert settings.COOKIE_NAME in response.headers["set-cookie"]
