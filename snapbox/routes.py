"""
HTTP routes for the SnapBox API.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Body, Depends, File, Form, HTTPException, Query, UploadFile

from snapbox.codes import VerificationCodeStore, VerifyResult, normalize_email
from snapbox.config import Settings, get_settings
from snapbox.db import DbClient, DuplicateUserError
from snapbox.dependencies import (
    get_code_store,
    get_db_client,
    get_mailer,
    get_storage_client,
)
from snapbox.mailer import (
    RELAY_SUBJECT,
    VERIFICATION_SUBJECT,
    Mailer,
    MailDeliveryError,
    render_verification_email,
)
from snapbox.schemas import (
    CredentialsRequest,
    DeleteFileRequest,
    HealthResponse,
    MeResponse,
    ParametrizedUrlResponse,
    RenameUrlRequest,
    SendCodeRequest,
    SendEmailRequest,
    SendEmailResponse,
    SessionResponse,
    SignUrlResponse,
    SuccessResponse,
    UploadResponse,
    UrlResponse,
    VerifyCodeRequest,
)
from snapbox.security import hash_password, issue_token, require_user, verify_password
from snapbox.storage import StorageClient, StorageError
from snapbox.uploads import (
    is_allowed_type,
    read_upload,
    store_public_file,
    validate_upload,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _verification_error(status_code: int, message: str) -> HTTPException:
    return HTTPException(
        status_code=status_code, detail={"success": False, "error": message}
    )


def _email_allowed(email: str, settings: Settings) -> bool:
    domain = settings.allowed_email_domain.lower()
    return bool(email) and (not domain or email.endswith(domain))


def _param_text(value) -> str:
    # Mirrors how browsers stringify query values.
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse()


@router.post("/send-verification-code", response_model=SuccessResponse)
def send_verification_code(
    payload: SendCodeRequest,
    settings: Settings = Depends(get_settings),
    codes: VerificationCodeStore = Depends(get_code_store),
    mailer: Mailer = Depends(get_mailer),
):
    email = normalize_email(payload.email or "")
    if not _email_allowed(email, settings):
        raise _verification_error(400, "Invalid or unauthorized email")

    code = codes.issue(email)
    html = render_verification_email(
        code,
        datetime.now().year,
        ttl_minutes=max(1, settings.verification_code_ttl_seconds // 60),
    )
    try:
        mailer.send([email], VERIFICATION_SUBJECT, html)
    except MailDeliveryError:
        logger.exception("Failed to deliver verification code to %s", email)
        codes.discard(email)
        raise _verification_error(500, "Failed to send email")
    return SuccessResponse()


@router.post("/verify-code", response_model=SessionResponse)
def verify_code(
    payload: VerifyCodeRequest,
    settings: Settings = Depends(get_settings),
    codes: VerificationCodeStore = Depends(get_code_store),
):
    if not payload.email or not payload.code:
        raise _verification_error(400, "Email and code are required")

    email = normalize_email(payload.email)
    result = codes.verify(email, payload.code.strip())
    if result is VerifyResult.MISSING:
        raise _verification_error(400, "Code expired or not found")
    if result is VerifyResult.MISMATCH:
        raise _verification_error(400, "Incorrect code")

    return SessionResponse(email=email, token=issue_token(email, settings))


# Endpoints whose errors carry ``{"success": false, ...}``.
VERIFICATION_ENDPOINTS = (send_verification_code, verify_code)


@router.post("/register", response_model=SessionResponse, status_code=201)
def register(
    payload: CredentialsRequest,
    settings: Settings = Depends(get_settings),
    db: DbClient = Depends(get_db_client),
):
    email = normalize_email(payload.email or "")
    if not _email_allowed(email, settings):
        raise HTTPException(status_code=400, detail="Invalid or unauthorized email")
    if not payload.password or len(payload.password) < settings.min_password_length:
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at least {settings.min_password_length} characters",
        )
    try:
        db.create_user(email, hash_password(payload.password))
    except DuplicateUserError:
        raise HTTPException(status_code=409, detail="Email already registered")
    logger.info("Registered user %s", email)
    return SessionResponse(email=email, token=issue_token(email, settings))


@router.post("/login", response_model=SessionResponse)
def login(
    payload: CredentialsRequest,
    settings: Settings = Depends(get_settings),
    db: DbClient = Depends(get_db_client),
):
    email = normalize_email(payload.email or "")
    user = db.get_user(email) if email else None
    if not user or not verify_password(payload.password or "", user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    return SessionResponse(email=email, token=issue_token(email, settings))


@router.get("/me", response_model=MeResponse)
def me(email: str = Depends(require_user)):
    return MeResponse(email=email)


@router.post("/parametrize-url", response_model=ParametrizedUrlResponse)
def parametrize_url(
    baseUrl: Optional[str] = Form(None),
    params: Optional[str] = Form(None),
):
    try:
        params_obj = json.loads(params) if params and params.strip() else None
    except ValueError:
        params_obj = None
    if not baseUrl or not isinstance(params_obj, dict):
        raise HTTPException(status_code=400, detail="Failed to parametrize URL")

    query = urlencode({str(k): _param_text(v) for k, v in params_obj.items()})
    return ParametrizedUrlResponse(parametrizedUrl=f"{baseUrl}?{query}")


@router.post("/save-url", response_model=UrlResponse, status_code=201)
async def save_url(
    name: Optional[str] = Form(None),
    url: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    settings: Settings = Depends(get_settings),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    if not name or not url:
        raise HTTPException(status_code=400, detail="Name and URL are required")

    image_url = None
    # Images of a disallowed type are dropped rather than rejected.
    if image is not None and image.filename and is_allowed_type(image.content_type, settings):
        data = await read_upload(image, settings)
        validate_upload(image.filename, image.content_type, len(data), settings)
        try:
            _, image_url = store_public_file(
                storage, image.filename, image.content_type, data
            )
        except StorageError:
            logger.exception("Image upload for saved URL failed")
            raise HTTPException(status_code=500, detail="Failed to save URL")

    record = db.create_url(name=name, url=url, image=image_url)
    return UrlResponse(**record.as_dict())


@router.put("/urls/{url_id}", response_model=UrlResponse)
def rename_url(
    url_id: str,
    payload: RenameUrlRequest,
    db: DbClient = Depends(get_db_client),
):
    if not payload.name:
        raise HTTPException(status_code=400, detail="Name is required.")
    record = db.rename_url(url_id, payload.name)
    if not record:
        raise HTTPException(status_code=404, detail="URL not found")
    return UrlResponse(**record.as_dict())


@router.get("/urls", response_model=list[UrlResponse])
def list_urls(db: DbClient = Depends(get_db_client)):
    return [UrlResponse(**r.as_dict()) for r in db.list_urls()]


@router.delete("/urls/{url_id}", response_model=SuccessResponse)
def delete_url(url_id: str, db: DbClient = Depends(get_db_client)):
    db.delete_url(url_id)
    return SuccessResponse()


@router.get("/files", response_model=list[UploadResponse])
def list_files(db: DbClient = Depends(get_db_client)):
    return [UploadResponse(**r.as_dict()) for r in db.list_uploads()]


@router.post("/upload", response_model=UploadResponse, status_code=201)
async def upload_file(
    file: Optional[UploadFile] = File(None),
    settings: Settings = Depends(get_settings),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    data = await read_upload(file, settings)
    validate_upload(file.filename, file.content_type, len(data), settings)
    try:
        path, public_url = store_public_file(storage, file.filename, file.content_type, data)
    except StorageError as e:
        logger.exception("Upload of %s failed", file.filename)
        raise HTTPException(status_code=500, detail=str(e) or "Upload failed")

    record = db.create_upload(
        name=file.filename,
        path=path,
        url=public_url,
        mimetype=file.content_type,
        size=len(data),
    )
    logger.info("Stored upload %s at %s (%d bytes)", record.id, path, len(data))
    return UploadResponse(**record.as_dict())


@router.delete("/files/{file_id}", response_model=SuccessResponse)
def delete_file(
    file_id: str,
    payload: Optional[DeleteFileRequest] = Body(None),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    path = payload.path if payload else None
    if not path:
        record = db.get_upload(file_id)
        if not record:
            raise HTTPException(status_code=404, detail="File not found")
        path = record.path

    try:
        storage.remove([path])
    except StorageError as e:
        logger.exception("Failed to remove %s from storage", path)
        raise HTTPException(status_code=500, detail=str(e) or "Failed to delete file")

    db.delete_upload(file_id)
    return SuccessResponse()


@router.get("/files/{file_id}/signed-url", response_model=SignUrlResponse)
def sign_file_url(
    file_id: str,
    expires_in: int = Query(3600, ge=60, le=86400),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    record = db.get_upload(file_id)
    if not record:
        raise HTTPException(status_code=404, detail="File not found")
    try:
        url = storage.presign_get(record.path, expires_in=expires_in)
    except StorageError:
        logger.exception("Failed to sign %s", record.path)
        raise HTTPException(status_code=500, detail="Failed to sign URL")
    return SignUrlResponse(url=url)


@router.post("/send-email", response_model=SendEmailResponse)
def send_email(payload: SendEmailRequest, mailer: Mailer = Depends(get_mailer)):
    if isinstance(payload.to, str):
        recipients = payload.to.split(",")
    else:
        recipients = list(payload.to or [])
    recipients = [r.strip() for r in recipients if r and r.strip()]
    if not recipients or not payload.html:
        raise HTTPException(
            status_code=400, detail='Fields "to" and "html" are required.'
        )
    try:
        message_id = mailer.send(recipients, RELAY_SUBJECT, payload.html)
    except MailDeliveryError:
        logger.exception("Relay to %s failed", recipients)
        raise HTTPException(status_code=500, detail="Failed to send email")
    return SendEmailResponse(messageId=message_id)
