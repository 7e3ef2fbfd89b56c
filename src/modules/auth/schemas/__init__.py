from .auth_schemas import (
    EmailCodeRequest, EmailCodeResponse, VerifyEmailCodeRequest,
    VerifyEmailCodeResponse, ReaderSession, LogoutResponse
)

__all__ = [
    'EmailCodeRequest', 'EmailCodeResponse', 'VerifyEmailCodeRequest',
    'VerifyEmailCodeResponse', 'ReaderSession', 'LogoutResponse'
]
