from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import AuthenticationError, AuthorizationError, ComplianceRequiredError
from database import get_db
from modules.auth.services.auth_service import ROLE_ADMIN, ROLE_READER, AuthService
from modules.readers.models.reader import PortalAccessStatus, Reader
from modules.readers.repositories.reader_repository import ReaderRepository

security = HTTPBearer(auto_error=False)


def get_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[str]:
    """Session token from the reader cookie, else from a bearer header"""
    token = request.cookies.get(settings.COOKIE_NAME)
    if token:
        return token
    if credentials is not None:
        return credentials.credentials
    return None


def get_token_claims(token: Optional[str] = Depends(get_token)) -> dict:
    if not token:
        raise AuthenticationError("Authentication required")
    claims = AuthService.decode_token(token)
    if claims is None:
        raise AuthenticationError("Session expired. Please log in again.")
    return claims


def get_current_reader(
    claims: dict = Depends(get_token_claims),
    db: Session = Depends(get_db),
) -> Reader:
    if claims.get("role") != ROLE_READER or not claims.get("pin"):
        raise AuthorizationError("Reader session required")
    reader = ReaderRepository(db).find_by_pin(claims["pin"])
    if reader is None:
        raise AuthenticationError("Reader account not found")
    if reader.portal_access_status == PortalAccessStatus.SUSPENDED:
        raise AuthorizationError("Portal access suspended")
    return reader


def get_compliant_reader(reader: Reader = Depends(get_current_reader)) -> Reader:
    """Readers must submit HR compliance before using the dashboard"""
    if not reader.compliance_submitted:
        raise ComplianceRequiredError(
            f"{settings.HRCOMPLIANCE_URL}/readersCompliance?readerPin={reader.reader_pin}"
        )
    return reader


def require_admin(claims: dict = Depends(get_token_claims)) -> dict:
    if claims.get("role") != ROLE_ADMIN:
        raise AuthorizationError("Administrator access required")
    return claims


def ensure_own_pin(reader: Reader, reader_pin: Optional[str]) -> None:
    if reader_pin and reader_pin.strip() != reader.reader_pin:
        raise AuthorizationError("Reader PIN does not match the current session")
