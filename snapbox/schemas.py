"""
Pydantic schemas for the SnapBox API.
"""

from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator


class SendCodeRequest(BaseModel):
    email: Optional[str] = None


class VerifyCodeRequest(BaseModel):
    email: Optional[str] = None
    code: Optional[str] = None

    @field_validator("code", mode="before")
    @classmethod
    def _code_as_text(cls, value):
        # Clients sometimes send the code as a number.
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class CredentialsRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class SessionResponse(BaseModel):
    success: bool = True
    email: str
    token: str


class SuccessResponse(BaseModel):
    success: bool = True


class MeResponse(BaseModel):
    email: str


class ParametrizedUrlResponse(BaseModel):
    parametrizedUrl: str


class RenameUrlRequest(BaseModel):
    name: Optional[str] = None


class UrlResponse(BaseModel):
    id: str
    name: str
    url: str
    image: Optional[str] = None
    created_at: str


class UploadResponse(BaseModel):
    id: str
    name: str
    path: str
    url: str
    mimetype: str
    size: int
    created_at: str


class DeleteFileRequest(BaseModel):
    path: Optional[str] = None


class SignUrlResponse(BaseModel):
    url: str


class SendEmailRequest(BaseModel):
    to: Optional[Union[str, list[str]]] = None
    html: Optional[str] = Field(default=None, max_length=1_000_000)


class SendEmailResponse(BaseModel):
    success: bool = True
    messageId: str


class HealthResponse(BaseModel):
    status: str = "ok"
