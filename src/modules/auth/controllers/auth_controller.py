import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from core.config import settings
from database import get_db
from modules.auth.schemas.auth_schemas import (
    EmailCodeRequest, EmailCodeResponse, LogoutResponse, ReaderSession,
    VerifyEmailCodeRequest, VerifyEmailCodeResponse
)
from modules.auth.services.auth_service import AuthService
from modules.notifications.services.email_service import EmailService, get_email_service
from modules.notifications.services.templates import VerificationCodeEmail
from modules.readers.repositories.activity_log_repository import ActivityLogRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/readers", tags=["authentication"])


def client_ip(request: Request):
    return request.client.host if request.client else None


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.COOKIE_NAME,
        value=token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="strict",
        domain=settings.COOKIE_DOMAIN if settings.is_production else None,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.COOKIE_NAME,
        domain=settings.COOKIE_DOMAIN if settings.is_production else None,
        path="/",
    )


@router.post("/requestEmailCode", response_model=EmailCodeResponse)
async def request_email_code(
    payload: EmailCodeRequest,
    request: Request,
    db: Session = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    """Email a six digit login code to the reader"""
    reader, code = AuthService.request_email_code(db, payload.pin.strip(), payload.email)
    ActivityLogRepository(db).add(
        reader.reader_pin, "emailCodeRequested", "Reader requested email verification code",
        ip_address=client_ip(request), user_agent=request.headers.get("user-agent"),
    )

    template = VerificationCodeEmail(reader.reader_name, code, settings.VERIFICATION_CODE_TTL_MINUTES)
    if not await email_service.send_email(reader.email, template.subject, template.html):
        # The stored code stays valid
        logger.warning("[Auth] Verification email not delivered to %s", reader.reader_pin)

    return EmailCodeResponse(
        message=f"Verification code sent to {reader.email}",
        expires_in=settings.VERIFICATION_CODE_TTL_MINUTES * 60,
    )


@router.post("/verifyEmailCode", response_model=VerifyEmailCodeResponse)
def verify_email_code(
    payload: VerifyEmailCodeRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
):
    reader = AuthService.verify_email_code(db, payload.pin.strip(), payload.email, payload.code)

    token = AuthService.create_reader_token(reader)
    AuthService.record_login(db, reader, token, client_ip(request))
    ActivityLogRepository(db).add(
        reader.reader_pin, "login", "Reader logged in with email verification",
        ip_address=client_ip(request), user_agent=request.headers.get("user-agent"),
    )
    set_session_cookie(response, token)
    logger.info("[Auth] Reader %s logged in", reader.reader_pin)

    return VerifyEmailCodeResponse(
        message="Login successful",
        reader=ReaderSession(
            reader_pin=reader.reader_pin,
            reader_name=reader.reader_name,
            email=reader.email,
            reader_type=reader.reader_type.value,
            compliance_submitted=reader.compliance_submitted,
        ),
        redirect_to=AuthService.post_login_redirect(reader),
    )


@router.post("/logout", response_model=LogoutResponse)
def logout(response: Response):
    clear_session_cookie(response)
    return LogoutResponse(message="Logged out successfully", redirect="/readersLogin")
