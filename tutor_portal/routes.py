"""
HTTP routes for the tutor portal API.
"""

from __future__ import annotations

import logging
from typing import Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile

from tutor_portal.applications import (
    ALLOWED_MIME_TYPES,
    build_submission_record,
    count_by_status,
    describe_missing,
    document_path,
    filter_applications,
    missing_documents,
)
from tutor_portal.auth import (
    PASSWORD_RESET_TOKEN,
    InvalidTokenError,
    create_access_token,
    create_password_reset_token,
    decode_token,
    hash_password,
    reset_token_matches,
    verify_password,
)
from tutor_portal.config import get_settings
from tutor_portal.db import ApplicationRecord, DbClient, DocumentRecord, UserRecord
from tutor_portal.dependencies import (
    get_current_user,
    get_db_client,
    get_storage_client,
    require_admin,
)
from tutor_portal.schemas import (
    AdminApplicationsResponse,
    ApplicationForm,
    ApplicationListResponse,
    ApplicationResponse,
    DocumentListResponse,
    DocumentResponse,
    DraftRecordPayload,
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    MessageResponse,
    ProfileUpdateRequest,
    ResetPasswordRequest,
    ReviewRequest,
    SignInRequest,
    SignUpRequest,
    SignUrlResponse,
    TokenResponse,
    UserResponse,
)
from tutor_portal.storage import StorageClient
from tutor_portal.types import (
    EDITABLE_STATUSES,
    AppRole,
    ApplicationStatus,
    DocumentType,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Columns an autosave may explicitly clear; the rest keep their value on null.
NULLABLE_DRAFT_COLUMNS = frozenset(
    {
        "date_of_birth",
        "gender",
        "previous_tutoring_experience",
        "work_experience",
        "availability",
    }
)


def _user_response(user: UserRecord, db: DbClient) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        student_number=user.student_number,
        roles=sorted(role.value for role in db.get_roles(user.id)),
    )


def _application_response(record: ApplicationRecord) -> ApplicationResponse:
    return ApplicationResponse(**record.as_dict())


def _document_response(record: DocumentRecord) -> DocumentResponse:
    return DocumentResponse(**record.as_dict())


def _is_admin(db: DbClient, user: UserRecord) -> bool:
    return AppRole.ADMIN in db.get_roles(user.id)


def _load_application(
    db: DbClient,
    application_id: str,
    user: UserRecord,
    *,
    allow_admin: bool = False,
) -> ApplicationRecord:
    application = db.get_application(application_id)
    if not application:
        raise HTTPException(status_code=404, detail="Application not found")
    if application.user_id != user.id and not (allow_admin and _is_admin(db, user)):
        raise HTTPException(status_code=403, detail="Not allowed to access this application")
    return application


def _load_document(
    db: DbClient,
    document_id: str,
    user: UserRecord,
    *,
    allow_admin: bool = False,
) -> DocumentRecord:
    document = db.get_document(document_id)
    if not document:
        raise HTTPException(status_code=404, detail="Document not found")
    if document.user_id != user.id and not (allow_admin and _is_admin(db, user)):
        raise HTTPException(status_code=403, detail="Not allowed to access this document")
    return document


@router.get("/health")
def health():
    return {"status": "ok"}


# -- auth -------------------------------------------------------------------


@router.post("/auth/sign-up", response_model=UserResponse, status_code=201)
def sign_up(payload: SignUpRequest, db: DbClient = Depends(get_db_client)):
    try:
        user = db.create_user(
            payload.email, hash_password(payload.password), payload.full_name
        )
    except ValueError:
        raise HTTPException(status_code=409, detail="An account with this email already exists")
    logger.info("Created account %s", user.id)
    return _user_response(user, db)


@router.post("/auth/sign-in", response_model=TokenResponse)
def sign_in(payload: SignInRequest, db: DbClient = Depends(get_db_client)):
    user = db.get_user_by_email(payload.email)
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(
            status_code=401,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return TokenResponse(
        access_token=create_access_token(user), user=_user_response(user, db)
    )


@router.post("/auth/forgot-password", response_model=ForgotPasswordResponse)
def forgot_password(
    payload: ForgotPasswordRequest, db: DbClient = Depends(get_db_client)
):
    """
    Issue a password reset token. The response is the same whether or not
    the account exists, to prevent email enumeration.
    """
    settings = get_settings()
    response = ForgotPasswordResponse(
        message="If an account with that email exists, you will receive password reset instructions."
    )
    user = db.get_user_by_email(payload.email)
    if not user:
        return response
    token = create_password_reset_token(user)
    logger.info("Password reset requested for %s", user.id)
    if settings.is_development:
        response.reset_token = token
    return response


@router.post("/auth/reset-password", response_model=MessageResponse)
def reset_password(
    payload: ResetPasswordRequest, db: DbClient = Depends(get_db_client)
):
    try:
        claims = decode_token(payload.token, expected_type=PASSWORD_RESET_TOKEN)
    except InvalidTokenError:
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")
    user = db.get_user(claims["sub"])
    if not user or not reset_token_matches(claims, user):
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")
    db.update_password(user.id, hash_password(payload.new_password))
    logger.info("Password reset completed for %s", user.id)
    return MessageResponse(message="Password has been reset successfully.")


@router.get("/auth/me", response_model=UserResponse)
def me(
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    return _user_response(user, db)


@router.patch("/auth/me", response_model=UserResponse)
def update_me(
    payload: ProfileUpdateRequest,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    updated = db.update_profile(
        user.id, full_name=payload.full_name, student_number=payload.student_number
    )
    return _user_response(updated or user, db)


# -- applications -------------------------------------------------------------


@router.post("/applications", response_model=ApplicationResponse, status_code=201)
def create_application(
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    record = db.upsert_application(
        {
            "id": uuid4().hex,
            "user_id": user.id,
            "email": user.email,
            "full_name": user.full_name or "",
            "student_number": user.student_number or "",
            "status": ApplicationStatus.DRAFT.value,
        }
    )
    return _application_response(record)


@router.get("/applications", response_model=ApplicationListResponse)
def list_applications(
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    records = db.list_user_applications(user.id)
    return ApplicationListResponse(
        applications=[_application_response(r) for r in records]
    )


@router.get("/applications/{application_id}", response_model=ApplicationResponse)
def get_application(
    application_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    return _application_response(
        _load_application(db, application_id, user, allow_admin=True)
    )


@router.put("/applications/{application_id}/draft", response_model=ApplicationResponse)
def save_draft(
    application_id: str,
    payload: DraftRecordPayload,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    """
    Insert-or-update a draft keyed by application id. Only supplied columns
    are written; the status is always reset to draft.
    """
    existing = db.get_application(application_id)
    if existing:
        if existing.user_id != user.id:
            raise HTTPException(status_code=403, detail="Not allowed to access this application")
        if existing.status not in EDITABLE_STATUSES:
            raise HTTPException(status_code=409, detail="Application can no longer be edited")

    values = {
        key: value
        for key, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or key in NULLABLE_DRAFT_COLUMNS
    }
    values.update(
        id=application_id, user_id=user.id, status=ApplicationStatus.DRAFT.value
    )
    record = db.upsert_application(values)
    return _application_response(record)


@router.post("/applications/{application_id}/submit", response_model=ApplicationResponse)
def submit_application(
    application_id: str,
    payload: ApplicationForm,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    application = _load_application(db, application_id, user)
    if application.status not in EDITABLE_STATUSES:
        raise HTTPException(status_code=409, detail="Application has already been reviewed")

    missing = missing_documents(db.list_documents(application_id))
    if missing:
        raise HTTPException(
            status_code=400, detail=f"Please upload: {describe_missing(missing)}"
        )

    values = build_submission_record(
        payload.model_dump(mode="json"),
        user_id=user.id,
        application_id=application_id,
        email=user.email,
    )
    record = db.upsert_application(values)
    logger.info("Application %s submitted", application_id)
    return _application_response(record)


# -- documents ----------------------------------------------------------------


@router.post(
    "/applications/{application_id}/documents",
    response_model=DocumentResponse,
    status_code=201,
)
async def upload_document(
    application_id: str,
    document_type: DocumentType = Form(...),
    file: UploadFile = File(...),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    _load_application(db, application_id, user)

    mime_type = file.content_type or ""
    if mime_type not in ALLOWED_MIME_TYPES:
        raise HTTPException(
            status_code=415, detail="Only PDF, JPG, and PNG files are allowed"
        )

    data = await file.read()
    settings = get_settings()
    if len(data) > settings.max_document_bytes:
        limit_mb = settings.max_document_bytes // (1024 * 1024)
        raise HTTPException(
            status_code=413, detail=f"File size must be less than {limit_mb}MB"
        )

    file_name = file.filename or document_type.value
    path = document_path(user.id, application_id, document_type.value, file_name, mime_type)
    storage.upload_bytes(path, data, mime_type)

    for previous in db.list_documents(application_id):
        if previous.document_type == document_type.value and previous.file_path != path:
            storage.delete(previous.file_path)

    record = db.save_document(
        DocumentRecord(
            application_id=application_id,
            user_id=user.id,
            document_type=document_type.value,
            file_name=file_name,
            file_path=path,
            file_size=len(data),
            mime_type=mime_type,
        )
    )
    logger.info("Stored %s for application %s", document_type.value, application_id)
    return _document_response(record)


@router.get(
    "/applications/{application_id}/documents", response_model=DocumentListResponse
)
def list_documents(
    application_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    _load_application(db, application_id, user, allow_admin=True)
    documents = db.list_documents(application_id)
    return DocumentListResponse(documents=[_document_response(d) for d in documents])


@router.delete("/documents/{document_id}", status_code=204)
def delete_document(
    document_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    document = _load_document(db, document_id, user)
    storage.delete(document.file_path)
    db.delete_document(document.id)
    return Response(status_code=204)


@router.get("/documents/{document_id}/url", response_model=SignUrlResponse)
def document_url(
    document_id: str,
    expires_in: int = Query(3600, ge=60, le=86400),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    document = _load_document(db, document_id, user, allow_admin=True)
    return SignUrlResponse(url=storage.presign_get(document.file_path, expires_in=expires_in))


# -- admin review ---------------------------------------------------------------


@router.get("/admin/applications", response_model=AdminApplicationsResponse)
def admin_list_applications(
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None, max_length=256),
    admin: UserRecord = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    submitted = db.list_submitted_applications()
    filtered = filter_applications(submitted, status=status, search=search)
    return AdminApplicationsResponse(
        applications=[_application_response(r) for r in filtered],
        counts=count_by_status(submitted),
    )


@router.patch(
    "/admin/applications/{application_id}/status", response_model=ApplicationResponse
)
def admin_update_status(
    application_id: str,
    payload: ReviewRequest,
    admin: UserRecord = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    if payload.status == ApplicationStatus.DRAFT:
        raise HTTPException(status_code=400, detail="Reviewed applications cannot return to draft")
    rejection_reason = (payload.rejection_reason or "").strip()
    if payload.status == ApplicationStatus.REJECTED and not rejection_reason:
        raise HTTPException(status_code=400, detail="Please provide a reason for rejection")

    record = db.update_application_review(
        application_id,
        status=payload.status,
        reviewed_by=admin.id,
        rejection_reason=rejection_reason or None,
        admin_notes=payload.admin_notes,
    )
    if not record:
        raise HTTPException(status_code=404, detail="Application not found")
    logger.info(
        "Application %s marked %s by %s", application_id, payload.status.value, admin.id
    )
    return _application_response(record)
