import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import JSONResponse, RedirectResponse

from core.config import settings
from core.exceptions import UpstreamUnavailableError
from modules.auth.controllers.auth_controller import clear_session_cookie, client_ip, set_session_cookie
from modules.auth.services.ssot_client import SsotClient, get_ssot_client
from modules.readers.services.pin import is_valid_pin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/readersAuth", tags=["readers-portal"])

LOGIN_PAGE = "/readersLogin"
TWO_FACTOR_PAGE = "/readers2fa"
SECURE_LOGIN_PAGE = "/secureLogin"


def redirect(path: str, **params) -> RedirectResponse:
    query = {key: value for key, value in params.items() if value is not None}
    url = f"{path}?{urlencode(query)}" if query else path
    return RedirectResponse(url, status_code=302)


def session_token(request: Request) -> Optional[str]:
    return request.cookies.get(settings.COOKIE_NAME)


@router.post("/login")
async def login(
    request: Request,
    email: str = Form(""),
    readerPin: str = Form(""),
    ssot: SsotClient = Depends(get_ssot_client),
):
    """Step 1: identify the reader by PIN and email through the SSOT"""
    reader_pin = readerPin.strip().upper()
    if not email.strip() or not reader_pin:
        return redirect(LOGIN_PAGE, readerPin=reader_pin, error="Email and Reader PIN are required")
    if not is_valid_pin(reader_pin):
        return redirect(LOGIN_PAGE, readerPin=reader_pin, error="Invalid Reader PIN format")

    try:
        result = await ssot.request_token(email.strip(), reader_pin, client_ip(request))
    except UpstreamUnavailableError:
        return redirect(LOGIN_PAGE, readerPin=reader_pin, error="Authentication service unavailable. Please try again.")

    if not result.success:
        logger.info("[SSOT] Login refused for %s: %s", reader_pin, result.error)
        return redirect(LOGIN_PAGE, readerPin=reader_pin, error=result.error or "Authentication failed")

    response = redirect(TWO_FACTOR_PAGE)
    if result.access_token:
        set_session_cookie(response, result.access_token)
    logger.info("[SSOT] Reader %s identified, continuing to 2FA", reader_pin)
    return response


@router.post("/requestEmailCode")
async def request_email_code(request: Request, ssot: SsotClient = Depends(get_ssot_client)):
    token = session_token(request)
    if not token:
        return redirect(LOGIN_PAGE, error="No active session. Please log in again.")

    try:
        result = await ssot.request_code(token, client_ip(request), request.headers.get("user-agent"))
    except UpstreamUnavailableError:
        return redirect(TWO_FACTOR_PAGE, error="Verification code service unavailable")

    if result.success:
        return redirect(TWO_FACTOR_PAGE, codeSent="true")
    if result.status_code == 401:
        return redirect(LOGIN_PAGE, error=result.error or "Session invalid. Please log in again.")
    return redirect(TWO_FACTOR_PAGE, error=result.error or "Failed to send verification code")


@router.post("/verify2fa")
async def verify_2fa(
    request: Request,
    verificationCode: str = Form(""),
    ssot: SsotClient = Depends(get_ssot_client),
):
    token = session_token(request)
    if not token:
        return redirect(LOGIN_PAGE, error="No active session. Please log in again.")
    if not verificationCode.strip():
        return redirect(TWO_FACTOR_PAGE, error="Verification code required")

    try:
        result = await ssot.verify_code(token, verificationCode.strip(), client_ip(request),
                                        request.headers.get("user-agent"))
    except UpstreamUnavailableError:
        return redirect(TWO_FACTOR_PAGE, error="2FA verification service unavailable")

    if not result.success:
        if result.status_code == 401 and result.data.get("redirect"):
            return redirect(LOGIN_PAGE, error=result.error or "Session invalid. Please log in again.")
        return redirect(TWO_FACTOR_PAGE, error=result.error or "Invalid verification code")

    reader = result.reader
    # Compliance comes before password setup
    if not reader.get("complianceSubmitted"):
        logger.info("[SSOT] Reader %s needs HR compliance", reader.get("readerPin"))
        response = RedirectResponse(f"{settings.HRCOMPLIANCE_URL}/readersCompliance", status_code=302)
    elif result.data.get("passwordSetupCompleted"):
        response = redirect(SECURE_LOGIN_PAGE, setupCompleted="true")
    else:
        response = redirect(SECURE_LOGIN_PAGE, verified="true")

    if result.access_token:
        set_session_cookie(response, result.access_token)
    return response


@router.post("/secureLogin")
async def secure_login(
    request: Request,
    password: str = Form(""),
    isNewUser: str = Form("false"),
    ssot: SsotClient = Depends(get_ssot_client),
):
    token = session_token(request)
    if not token:
        return redirect(LOGIN_PAGE, error="Session expired. Please click your PIN link again.")
    if not password:
        return redirect(SECURE_LOGIN_PAGE, error="Password is required")

    is_new_user = isNewUser.strip().lower() == "true"
    call = ssot.password_setup if is_new_user else ssot.password_verify
    try:
        result = await call(token, password, client_ip(request), request.headers.get("user-agent"))
    except UpstreamUnavailableError:
        return redirect(SECURE_LOGIN_PAGE, error="Authentication service unavailable")

    if result.status_code == 401:
        return redirect(LOGIN_PAGE, error="Session expired. Please click your PIN link again.")
    if result.status_code == 409:
        return redirect(SECURE_LOGIN_PAGE, setupCompleted="true",
                        error="Password already set up. Please enter your password.")
    if not result.success:
        return redirect(SECURE_LOGIN_PAGE, error=result.error or "Password operation failed")

    reader_pin = result.reader.get("readerPin")
    if not reader_pin:
        return redirect(SECURE_LOGIN_PAGE, error="Session data incomplete")

    response = redirect("/readersDashboard", readerPin=reader_pin)
    if result.access_token:
        set_session_cookie(response, result.access_token)
    logger.info("[SSOT] Reader %s completed secure login", reader_pin)
    return response


@router.post("/logout")
def logout(request: Request):
    logger.info("[Auth] Logout (session present: %s)", bool(session_token(request)))
    response = JSONResponse({"success": True, "redirect": LOGIN_PAGE})
    clear_session_cookie(response)
    return response


@router.get("/session")
def session(request: Request):
    authenticated = bool(session_token(request) or request.headers.get("authorization"))
    return {"success": True, "authenticated": authenticated}
