"""
Application domain helpers: form-to-record mapping, document rules and the
admin review filters.
"""

from __future__ import annotations

import time
from typing import Any, Iterable, Mapping, Optional

from tutor_portal.db import ApplicationRecord, DocumentRecord
from tutor_portal.types import (
    DOCUMENT_LABELS,
    REQUIRED_DOCUMENTS,
    ApplicationStatus,
    DocumentType,
)

LIST_FIELDS = (
    "subjects_completed",
    "subjects_to_tutor",
    "skills_competencies",
    "languages_spoken",
)

MIME_EXTENSIONS = {
    "application/pdf": "pdf",
    "image/jpeg": "jpg",
    "image/png": "png",
}
ALLOWED_MIME_TYPES = frozenset(MIME_EXTENSIONS)


def split_list(value: Any) -> list:
    """Turn a comma-separated form value into a list of trimmed entries."""
    if value is None:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [str(value)]


def _year_of_study(value: Any) -> int:
    if not value:
        return 1
    try:
        return int(value)
    except (TypeError, ValueError):
        return 1


def build_draft_record(
    snapshot: Mapping[str, Any], *, user_id: str, application_id: str
) -> dict:
    """
    Map an in-progress form snapshot onto the `tutor_applications` columns.

    Autosave writes are always drafts; submission goes through
    `build_submission_record`.
    """
    get = snapshot.get
    degree_program = get("degree_program") or ""
    record = {
        "id": application_id,
        "user_id": user_id,
        "full_name": get("full_name") or "",
        "student_number": get("student_number") or "",
        "date_of_birth": get("date_of_birth") or None,
        "gender": get("gender") or None,
        "nationality": get("nationality") or "",
        "residential_address": get("residential_address") or "",
        "contact_number": get("contact_number") or "",
        "email": get("email") or "",
        "degree": degree_program,
        "degree_program": degree_program,
        "faculty": get("faculty") or "",
        "department": get("department") or "",
        "year_of_study": _year_of_study(get("year_of_study")),
        "previous_tutoring_experience": get("previous_tutoring_experience") or None,
        "work_experience": get("work_experience") or None,
        "availability": get("availability") or None,
        "motivation_letter": get("motivation_letter") or "",
        "status": ApplicationStatus.DRAFT.value,
    }
    for name in LIST_FIELDS:
        record[name] = split_list(get(name))
    return record


def build_submission_record(
    form: Mapping[str, Any],
    *,
    user_id: str,
    application_id: str,
    email: str,
    submitted_at: Optional[float] = None,
) -> dict:
    record = build_draft_record(form, user_id=user_id, application_id=application_id)
    availability = form.get("availability")
    record.update(
        {
            "email": email,
            "availability": {"description": availability} if availability else None,
            "status": ApplicationStatus.PENDING.value,
            "submitted_at": submitted_at if submitted_at is not None else time.time(),
        }
    )
    return record


def missing_documents(documents: Iterable[DocumentRecord]) -> list[DocumentType]:
    uploaded = {d.document_type for d in documents}
    return [doc for doc in REQUIRED_DOCUMENTS if doc.value not in uploaded]


def describe_missing(missing: Iterable[DocumentType]) -> str:
    return ", ".join(DOCUMENT_LABELS[doc] for doc in missing)


def document_path(
    user_id: str,
    application_id: str,
    document_type: str,
    file_name: str,
    mime_type: Optional[str] = None,
) -> str:
    if "." in file_name or not mime_type:
        extension = file_name.rsplit(".", 1)[-1].lower()
    else:
        extension = MIME_EXTENSIONS.get(mime_type, "bin")
    return f"{user_id}/{application_id}/{document_type}.{extension}"


def matches_search(application: ApplicationRecord, term: str) -> bool:
    needle = term.strip().lower()
    if not needle:
        return True
    return any(
        needle in (value or "").lower()
        for value in (
            application.full_name,
            application.student_number,
            application.email,
        )
    )


def filter_applications(
    applications: Iterable[ApplicationRecord],
    *,
    status: Optional[str] = None,
    search: Optional[str] = None,
) -> list[ApplicationRecord]:
    results = []
    for application in applications:
        if status and status != "all" and application.status.value != status:
            continue
        if search and not matches_search(application, search):
            continue
        results.append(application)
    return results


def count_by_status(applications: Iterable[ApplicationRecord]) -> dict[str, int]:
    counts = {
        "total": 0,
        ApplicationStatus.PENDING.value: 0,
        ApplicationStatus.UNDER_REVIEW.value: 0,
        ApplicationStatus.APPROVED.value: 0,
        ApplicationStatus.REJECTED.value: 0,
    }
    for application in applications:
        counts["total"] += 1
        if application.status.value in counts:
            counts[application.status.value] += 1
    return counts
