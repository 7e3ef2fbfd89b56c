from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Optional


class EmailCodeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pin: str = Field(..., min_length=1)
    email: EmailStr


class EmailCodeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    expires_in: int = Field(..., serialization_alias="expiresIn")


class VerifyEmailCodeRequest(BaseModel):
    pin: str = Field(..., min_length=1)
    email: EmailStr
    code: str = Field(..., min_length=1, max_length=12)


class ReaderSession(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reader_pin: str = Field(..., serialization_alias="readerPin")
    reader_name: str = Field(..., serialization_alias="readerName")
    email: str
    reader_type: str = Field(..., serialization_alias="readerType")
    compliance_submitted: bool = Field(..., serialization_alias="complianceSubmitted")


class VerifyEmailCodeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    reader: ReaderSession
    redirect_to: str = Field(..., serialization_alias="redirectTo")


class LogoutResponse(BaseModel):
    success: bool = True
    redirect: Optional[str] = None
    message: Optional[str] = None
