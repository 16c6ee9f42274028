"""
Shared enums for the tutor portal.
"""

from __future__ import annotations

from enum import StrEnum


class ApplicationStatus(StrEnum):
    DRAFT = "draft"
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"


# Students may keep editing an application until a reviewer picks it up.
EDITABLE_STATUSES = frozenset({ApplicationStatus.DRAFT, ApplicationStatus.PENDING})


class AppRole(StrEnum):
    ADMIN = "admin"
    STUDENT = "student"


class Gender(StrEnum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"
    PREFER_NOT_TO_SAY = "prefer_not_to_say"


class DocumentType(StrEnum):
    CERTIFIED_ID = "certified_id"
    ACADEMIC_TRANSCRIPT = "academic_transcript"
    CV = "cv"
    PROOF_OF_REGISTRATION = "proof_of_registration"


DOCUMENT_LABELS = {
    DocumentType.CERTIFIED_ID: "Certified ID Copy",
    DocumentType.ACADEMIC_TRANSCRIPT: "Academic Transcript",
    DocumentType.CV: "CV / Resume",
    DocumentType.PROOF_OF_REGISTRATION: "Proof of Registration",
}

REQUIRED_DOCUMENTS = tuple(DocumentType)


class SaveState(StrEnum):
    IDLE = "idle"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"
    OFFLINE = "offline"
