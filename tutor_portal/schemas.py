"""
Pydantic schemas for the tutor portal API.
"""

from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from tutor_portal.auth import MIN_PASSWORD_LENGTH
from tutor_portal.types import ApplicationStatus, Gender


class SignUpRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=256)
    full_name: Optional[str] = Field(None, max_length=256)


class SignInRequest(BaseModel):
    email: str
    password: str


class UserResponse(BaseModel):
    id: str
    email: str
    full_name: Optional[str] = None
    student_number: Optional[str] = None
    roles: list[str] = []


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class ProfileUpdateRequest(BaseModel):
    full_name: Optional[str] = Field(None, max_length=256)
    student_number: Optional[str] = Field(None, max_length=64)


class ForgotPasswordRequest(BaseModel):
    email: str


class ForgotPasswordResponse(BaseModel):
    message: str
    # Only populated in development, where no reset email is sent.
    reset_token: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=256)


class MessageResponse(BaseModel):
    message: str


class ApplicationForm(BaseModel):
    """Form values as entered in the multi-step application form."""

    model_config = ConfigDict(extra="ignore")

    full_name: Optional[str] = None
    student_number: Optional[str] = None
    date_of_birth: Optional[str] = None
    gender: Optional[Gender] = None
    nationality: Optional[str] = None
    residential_address: Optional[str] = None
    contact_number: Optional[str] = None
    degree_program: Optional[str] = None
    faculty: Optional[str] = None
    department: Optional[str] = None
    year_of_study: Optional[Union[int, str]] = None
    subjects_completed: Optional[Union[str, list[str]]] = None
    subjects_to_tutor: Optional[Union[str, list[str]]] = None
    previous_tutoring_experience: Optional[str] = None
    work_experience: Optional[str] = None
    skills_competencies: Optional[Union[str, list[str]]] = None
    languages_spoken: Optional[Union[str, list[str]]] = None
    availability: Optional[str] = None
    motivation_letter: Optional[str] = None


class DraftRecordPayload(BaseModel):
    """Column values sent by the autosave pipeline; identity comes from the URL."""

    model_config = ConfigDict(extra="ignore")

    full_name: Optional[str] = None
    student_number: Optional[str] = None
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None
    nationality: Optional[str] = None
    residential_address: Optional[str] = None
    contact_number: Optional[str] = None
    email: Optional[str] = None
    degree: Optional[str] = None
    degree_program: Optional[str] = None
    faculty: Optional[str] = None
    department: Optional[str] = None
    year_of_study: Optional[int] = None
    subjects_completed: Optional[list[str]] = None
    subjects_to_tutor: Optional[list[str]] = None
    previous_tutoring_experience: Optional[str] = None
    work_experience: Optional[str] = None
    skills_competencies: Optional[list[str]] = None
    languages_spoken: Optional[list[str]] = None
    availability: Optional[Any] = None
    motivation_letter: Optional[str] = None


class ApplicationResponse(BaseModel):
    id: str
    user_id: str
    status: str
    full_name: str
    student_number: str
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None
    nationality: str
    residential_address: str
    contact_number: str
    email: str
    degree: str
    degree_program: str
    faculty: str
    department: str
    year_of_study: int
    subjects_completed: list[str]
    subjects_to_tutor: list[str]
    previous_tutoring_experience: Optional[str] = None
    work_experience: Optional[str] = None
    skills_competencies: list[str]
    languages_spoken: list[str]
    availability: Optional[Any] = None
    motivation_letter: str
    rejection_reason: Optional[str] = None
    admin_notes: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[float] = None
    created_at: float
    updated_at: float
    submitted_at: Optional[float] = None


class ApplicationListResponse(BaseModel):
    applications: list[ApplicationResponse]


class DocumentResponse(BaseModel):
    id: str
    application_id: str
    user_id: str
    document_type: str
    file_name: str
    file_path: str
    file_size: int
    mime_type: str
    uploaded_at: float


class DocumentListResponse(BaseModel):
    documents: list[DocumentResponse]


class SignUrlResponse(BaseModel):
    url: str


class AdminApplicationsResponse(BaseModel):
    applications: list[ApplicationResponse]
    counts: dict[str, int]


class ReviewRequest(BaseModel):
    status: ApplicationStatus
    rejection_reason: Optional[str] = Field(None, max_length=2000)
    admin_notes: Optional[str] = Field(None, max_length=4000)
