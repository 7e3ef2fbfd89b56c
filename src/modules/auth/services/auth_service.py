import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import AuthenticationError, AuthorizationError
from modules.readers.models.reader import Reader
from modules.readers.repositories.reader_repository import ReaderRepository

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ROLE_READER = "reader"
ROLE_ADMIN = "admin"


class AuthService:

    @staticmethod
    def hash_secret(secret: str) -> str:
        return pwd_context.hash(secret)

    @staticmethod
    def verify_secret(plain: str, hashed: Optional[str]) -> bool:
        if not hashed:
            return False
        return pwd_context.verify(plain, hashed)

    @staticmethod
    def generate_verification_code() -> str:
        """Six digit numeric code"""
        return f"{secrets.randbelow(1_000_000):06d}"

    @staticmethod
    def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
        to_encode = data.copy()
        expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

    @staticmethod
    def decode_token(token: str) -> Optional[dict]:
        """Claims of a valid token, None if the token is invalid or expired"""
        try:
            return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        except JWTError:
            return None

    @staticmethod
    def create_reader_token(reader: Reader) -> str:
        return AuthService.create_access_token({
            "sub": reader.reader_pin,
            "pin": reader.reader_pin,
            "name": reader.reader_name,
            "email": reader.email,
            "type": reader.reader_type.value,
            "role": ROLE_READER,
        })

    @staticmethod
    def request_email_code(db: Session, reader_pin: str, email: str) -> tuple:
        """
        Store a fresh hashed code for the reader and return (reader, code).
        The clear code only lives long enough to be emailed.
        """
        reader = ReaderRepository(db).find_by_pin_and_email(reader_pin, email)
        if reader is None:
            raise AuthenticationError("Invalid PIN or email address")
        if not reader.can_request_login:
            raise AuthorizationError("Portal access is not active. Please contact QOLAE.")

        code = AuthService.generate_verification_code()
        reader.email_verification_code = AuthService.hash_secret(code)
        reader.email_verification_code_expires_at = (
            datetime.utcnow() + timedelta(minutes=settings.VERIFICATION_CODE_TTL_MINUTES)
        )
        reader.email_verification_code_attempts = 0
        db.commit()
        logger.info("[Auth] Verification code issued for %s", reader_pin)
        return reader, code

    @staticmethod
    def verify_email_code(db: Session, reader_pin: str, email: str, code: str) -> Reader:
        reader = ReaderRepository(db).find_by_pin_and_email(reader_pin, email)
        if reader is None or not reader.email_verification_code:
            raise AuthenticationError("Invalid PIN or verification code")

        expires_at = reader.email_verification_code_expires_at
        if expires_at is None or expires_at < datetime.utcnow():
            raise AuthenticationError("Verification code has expired. Please request a new one.")

        if reader.email_verification_code_attempts >= settings.VERIFICATION_MAX_ATTEMPTS:
            raise AuthorizationError("Too many failed attempts. Please request a new code.")

        if not AuthService.verify_secret(code.strip(), reader.email_verification_code):
            reader.email_verification_code_attempts += 1
            db.commit()
            remaining = max(0, settings.VERIFICATION_MAX_ATTEMPTS - reader.email_verification_code_attempts)
            logger.info("[Auth] Wrong verification code for %s (%d attempts left)", reader_pin, remaining)
            raise AuthenticationError("Invalid verification code", details={"attemptsRemaining": remaining})

        reader.email_verification_code = None
        reader.email_verification_code_expires_at = None
        reader.email_verification_code_attempts = 0
        db.commit()
        return reader

    @staticmethod
    def record_login(db: Session, reader: Reader, token: str, ip_address: Optional[str]) -> None:
        reader.jwt_session_token = token
        reader.last_login = datetime.utcnow()
        reader.last_login_ip = ip_address
        db.commit()

    @staticmethod
    def post_login_redirect(reader: Reader) -> str:
        if reader.compliance_submitted:
            return f"/readersDashboard?readerPin={reader.reader_pin}"
        return f"{settings.HRCOMPLIANCE_URL}/readersCompliance?readerPin={reader.reader_pin}"
