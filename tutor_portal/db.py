"""
Database abstraction for Postgres and an in-memory test implementation.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, Optional, Protocol

from sqlalchemy import (
    JSON,
    Column,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    select,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from tutor_portal.types import AppRole, ApplicationStatus


class DbClient(Protocol):
    """Interface for database access."""

    def create_user(
        self, email: str, password_hash: str, full_name: str | None = None
    ) -> "UserRecord":
        ...

    def get_user(self, user_id: str) -> Optional["UserRecord"]:
        ...

    def get_user_by_email(self, email: str) -> Optional["UserRecord"]:
        ...

    def update_password(self, user_id: str, password_hash: str) -> None:
        ...

    def update_profile(
        self,
        user_id: str,
        *,
        full_name: Optional[str] = None,
        student_number: Optional[str] = None,
    ) -> Optional["UserRecord"]:
        ...

    def add_role(self, user_id: str, role: AppRole) -> None:
        ...

    def get_roles(self, user_id: str) -> set[AppRole]:
        ...

    def upsert_application(self, values: dict) -> "ApplicationRecord":
        ...

    def get_application(self, application_id: str) -> Optional["ApplicationRecord"]:
        ...

    def list_user_applications(self, user_id: str) -> list["ApplicationRecord"]:
        ...

    def list_submitted_applications(self) -> list["ApplicationRecord"]:
        ...

    def update_application_review(
        self,
        application_id: str,
        *,
        status: ApplicationStatus,
        reviewed_by: str,
        rejection_reason: Optional[str] = None,
        admin_notes: Optional[str] = None,
    ) -> Optional["ApplicationRecord"]:
        ...

    def save_document(self, document: "DocumentRecord") -> "DocumentRecord":
        ...

    def get_document(self, document_id: str) -> Optional["DocumentRecord"]:
        ...

    def list_documents(self, application_id: str) -> list["DocumentRecord"]:
        ...

    def delete_document(self, document_id: str) -> bool:
        ...


@dataclass
class UserRecord:
    id: str
    email: str
    password_hash: str
    full_name: Optional[str] = None
    student_number: Optional[str] = None
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "student_number": self.student_number,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class ApplicationRecord:
    id: str
    user_id: str
    status: ApplicationStatus = ApplicationStatus.DRAFT

    # Personal information
    full_name: str = ""
    student_number: str = ""
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None
    nationality: str = ""
    residential_address: str = ""
    contact_number: str = ""
    email: str = ""

    # Academic information
    degree: str = ""
    degree_program: str = ""
    faculty: str = ""
    department: str = ""
    year_of_study: int = 1
    subjects_completed: list = field(default_factory=list)
    subjects_to_tutor: list = field(default_factory=list)

    # Experience
    previous_tutoring_experience: Optional[str] = None
    work_experience: Optional[str] = None
    skills_competencies: list = field(default_factory=list)
    languages_spoken: list = field(default_factory=list)
    availability: Any = None
    motivation_letter: str = ""

    # Review
    rejection_reason: Optional[str] = None
    admin_notes: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[float] = None

    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())
    submitted_at: Optional[float] = None

    def as_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        return data


APPLICATION_COLUMNS = frozenset(f.name for f in fields(ApplicationRecord))
# Columns maintained by the database layer itself.
_MANAGED_COLUMNS = frozenset({"id", "user_id", "created_at", "updated_at"})


def _application_values(values: dict) -> dict:
    """Keep known columns and normalize the status to the enum."""
    cleaned = {k: v for k, v in values.items() if k in APPLICATION_COLUMNS}
    if "status" in cleaned:
        cleaned["status"] = ApplicationStatus(cleaned["status"])
    return cleaned


@dataclass
class DocumentRecord:
    application_id: str
    user_id: str
    document_type: str
    file_name: str
    file_path: str
    file_size: int
    mime_type: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    uploaded_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return asdict(self)


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.users: Dict[str, UserRecord] = {}
        self.roles: Dict[str, set[AppRole]] = {}
        self.applications: Dict[str, ApplicationRecord] = {}
        self.documents: Dict[str, DocumentRecord] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.users.clear()
        self.roles.clear()
        self.applications.clear()
        self.documents.clear()

    def create_user(
        self, email: str, password_hash: str, full_name: str | None = None
    ) -> UserRecord:
        normalized = email.strip().lower()
        if self.get_user_by_email(normalized):
            raise ValueError(f"User already exists: {normalized}")
        record = UserRecord(
            id=uuid.uuid4().hex,
            email=normalized,
            password_hash=password_hash,
            full_name=full_name,
        )
        self.users[record.id] = record
        self.roles[record.id] = {AppRole.STUDENT}
        return record

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        return self.users.get(user_id)

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        normalized = email.strip().lower()
        for user in self.users.values():
            if user.email == normalized:
                return user
        return None

    def update_password(self, user_id: str, password_hash: str) -> None:
        user = self.users.get(user_id)
        if user:
            user.password_hash = password_hash
            user.updated_at = time.time()

    def update_profile(
        self,
        user_id: str,
        *,
        full_name: Optional[str] = None,
        student_number: Optional[str] = None,
    ) -> Optional[UserRecord]:
        user = self.users.get(user_id)
        if not user:
            return None
        if full_name is not None:
            user.full_name = full_name
        if student_number is not None:
            user.student_number = student_number
        user.updated_at = time.time()
        return user

    def add_role(self, user_id: str, role: AppRole) -> None:
        self.roles.setdefault(user_id, set()).add(role)

    def get_roles(self, user_id: str) -> set[AppRole]:
        return set(self.roles.get(user_id, set()))

    def upsert_application(self, values: dict) -> ApplicationRecord:
        cleaned = _application_values(values)
        application_id = cleaned.get("id")
        if not application_id or not cleaned.get("user_id"):
            raise ValueError("Application upsert requires id and user_id")
        now = time.time()
        existing = self.applications.get(application_id)
        if existing is None:
            cleaned.pop("created_at", None)
            cleaned["updated_at"] = now
            record = ApplicationRecord(**cleaned)
            self.applications[application_id] = record
            return record
        for key, value in cleaned.items():
            if key not in _MANAGED_COLUMNS:
                setattr(existing, key, value)
        existing.updated_at = now
        return existing

    def get_application(self, application_id: str) -> Optional[ApplicationRecord]:
        return self.applications.get(application_id)

    def list_user_applications(self, user_id: str) -> list[ApplicationRecord]:
        items = [a for a in self.applications.values() if a.user_id == user_id]
        return sorted(items, key=lambda a: a.created_at, reverse=True)

    def list_submitted_applications(self) -> list[ApplicationRecord]:
        items = [
            a
            for a in self.applications.values()
            if a.status != ApplicationStatus.DRAFT
        ]
        return sorted(items, key=lambda a: a.submitted_at or 0.0, reverse=True)

    def update_application_review(
        self,
        application_id: str,
        *,
        status: ApplicationStatus,
        reviewed_by: str,
        rejection_reason: Optional[str] = None,
        admin_notes: Optional[str] = None,
    ) -> Optional[ApplicationRecord]:
        application = self.applications.get(application_id)
        if not application:
            return None
        now = time.time()
        application.status = status
        application.reviewed_by = reviewed_by
        application.reviewed_at = now
        if rejection_reason is not None:
            application.rejection_reason = rejection_reason
        if admin_notes is not None:
            application.admin_notes = admin_notes
        application.updated_at = now
        return application

    def save_document(self, document: DocumentRecord) -> DocumentRecord:
        for existing in list(self.documents.values()):
            if (
                existing.application_id == document.application_id
                and existing.document_type == document.document_type
            ):
                del self.documents[existing.id]
        self.documents[document.id] = document
        return document

    def get_document(self, document_id: str) -> Optional[DocumentRecord]:
        return self.documents.get(document_id)

    def list_documents(self, application_id: str) -> list[DocumentRecord]:
        return [
            d for d in self.documents.values() if d.application_id == application_id
        ]

    def delete_document(self, document_id: str) -> bool:
        return self.documents.pop(document_id, None) is not None


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    @staticmethod
    def _to_user_record(row: "UserRow") -> UserRecord:
        return UserRecord(
            id=row.id,
            email=row.email,
            password_hash=row.password_hash,
            full_name=row.full_name,
            student_number=row.student_number,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    @staticmethod
    def _to_application_record(row: "ApplicationRow") -> ApplicationRecord:
        values = {name: getattr(row, name) for name in APPLICATION_COLUMNS}
        values["status"] = ApplicationStatus(row.status)
        return ApplicationRecord(**values)

    @staticmethod
    def _to_document_record(row: "DocumentRow") -> DocumentRecord:
        return DocumentRecord(
            id=row.id,
            application_id=row.application_id,
            user_id=row.user_id,
            document_type=row.document_type,
            file_name=row.file_name,
            file_path=row.file_path,
            file_size=row.file_size,
            mime_type=row.mime_type,
            uploaded_at=row.uploaded_at,
        )

    def create_user(
        self, email: str, password_hash: str, full_name: str | None = None
    ) -> UserRecord:
        normalized = email.strip().lower()
        now = time.time()
        with self.Session() as session:
            existing = session.execute(
                select(UserRow).where(UserRow.email == normalized)
            ).scalar_one_or_none()
            if existing:
                raise ValueError(f"User already exists: {normalized}")
            row = UserRow(
                id=uuid.uuid4().hex,
                email=normalized,
                password_hash=password_hash,
                full_name=full_name,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.add(
                RoleRow(
                    id=uuid.uuid4().hex, user_id=row.id, role=AppRole.STUDENT.value
                )
            )
            session.commit()
            session.refresh(row)
            return self._to_user_record(row)

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            return self._to_user_record(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.execute(
                select(UserRow).where(UserRow.email == email.strip().lower())
            ).scalar_one_or_none()
            return self._to_user_record(row) if row else None

    def update_password(self, user_id: str, password_hash: str) -> None:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return
            row.password_hash = password_hash
            row.updated_at = time.time()
            session.commit()

    def update_profile(
        self,
        user_id: str,
        *,
        full_name: Optional[str] = None,
        student_number: Optional[str] = None,
    ) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return None
            if full_name is not None:
                row.full_name = full_name
            if student_number is not None:
                row.student_number = student_number
            row.updated_at = time.time()
            session.commit()
            session.refresh(row)
            return self._to_user_record(row)

    def add_role(self, user_id: str, role: AppRole) -> None:
        with self.Session() as session:
            existing = session.execute(
                select(RoleRow).where(
                    RoleRow.user_id == user_id, RoleRow.role == role.value
                )
            ).scalar_one_or_none()
            if existing:
                return
            session.add(RoleRow(id=uuid.uuid4().hex, user_id=user_id, role=role.value))
            session.commit()

    def get_roles(self, user_id: str) -> set[AppRole]:
        with self.Session() as session:
            rows = session.execute(
                select(RoleRow.role).where(RoleRow.user_id == user_id)
            ).scalars()
            return {AppRole(role) for role in rows}

    def upsert_application(self, values: dict) -> ApplicationRecord:
        cleaned = _application_values(values)
        application_id = cleaned.get("id")
        if not application_id or not cleaned.get("user_id"):
            raise ValueError("Application upsert requires id and user_id")
        if "status" in cleaned:
            cleaned["status"] = cleaned["status"].value
        now = time.time()
        with self.Session() as session:
            row = session.get(ApplicationRow, application_id)
            if row is None:
                defaults = ApplicationRecord(id=application_id, user_id=cleaned["user_id"])
                payload = defaults.as_dict()
                payload.update(cleaned)
                payload["created_at"] = now
                payload["updated_at"] = now
                row = ApplicationRow(**payload)
                session.add(row)
            else:
                for key, value in cleaned.items():
                    if key not in _MANAGED_COLUMNS:
                        setattr(row, key, value)
                row.updated_at = now
            session.commit()
            session.refresh(row)
            return self._to_application_record(row)

    def get_application(self, application_id: str) -> Optional[ApplicationRecord]:
        with self.Session() as session:
            row = session.get(ApplicationRow, application_id)
            return self._to_application_record(row) if row else None

    def list_user_applications(self, user_id: str) -> list[ApplicationRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(ApplicationRow)
                .where(ApplicationRow.user_id == user_id)
                .order_by(ApplicationRow.created_at.desc())
            ).scalars()
            return [self._to_application_record(row) for row in rows]

    def list_submitted_applications(self) -> list[ApplicationRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(ApplicationRow)
                .where(ApplicationRow.status != ApplicationStatus.DRAFT.value)
                .order_by(ApplicationRow.submitted_at.desc())
            ).scalars()
            return [self._to_application_record(row) for row in rows]

    def update_application_review(
        self,
        application_id: str,
        *,
        status: ApplicationStatus,
        reviewed_by: str,
        rejection_reason: Optional[str] = None,
        admin_notes: Optional[str] = None,
    ) -> Optional[ApplicationRecord]:
        now = time.time()
        with self.Session() as session:
            row = session.get(ApplicationRow, application_id)
            if not row:
                return None
            row.status = status.value
            row.reviewed_by = reviewed_by
            row.reviewed_at = now
            if rejection_reason is not None:
                row.rejection_reason = rejection_reason
            if admin_notes is not None:
                row.admin_notes = admin_notes
            row.updated_at = now
            session.commit()
            session.refresh(row)
            return self._to_application_record(row)

    def save_document(self, document: DocumentRecord) -> DocumentRecord:
        with self.Session() as session:
            (
                session.query(DocumentRow)
                .filter(
                    DocumentRow.application_id == document.application_id,
                    DocumentRow.document_type == document.document_type,
                )
                .delete(synchronize_session=False)
            )
            session.add(DocumentRow(**document.as_dict()))
            session.commit()
            return document

    def get_document(self, document_id: str) -> Optional[DocumentRecord]:
        with self.Session() as session:
            row = session.get(DocumentRow, document_id)
            return self._to_document_record(row) if row else None

    def list_documents(self, application_id: str) -> list[DocumentRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(DocumentRow)
                .where(DocumentRow.application_id == application_id)
                .order_by(DocumentRow.uploaded_at.asc())
            ).scalars()
            return [self._to_document_record(row) for row in rows]

    def delete_document(self, document_id: str) -> bool:
        with self.Session() as session:
            row = session.get(DocumentRow, document_id)
            if not row:
                return False
            session.delete(row)
            session.commit()
            return True


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=False, unique=True, index=True)
    password_hash = Column(String, nullable=False)
    full_name = Column(String, nullable=True)
    student_number = Column(String, nullable=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class RoleRow(Base):
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role"),)

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    role = Column(String, nullable=False)


class ApplicationRow(Base):
    __tablename__ = "tutor_applications"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, index=True, default="draft")

    full_name = Column(String, nullable=False, default="")
    student_number = Column(String, nullable=False, default="")
    date_of_birth = Column(String, nullable=True)
    gender = Column(String, nullable=True)
    nationality = Column(String, nullable=False, default="")
    residential_address = Column(Text, nullable=False, default="")
    contact_number = Column(String, nullable=False, default="")
    email = Column(String, nullable=False, default="")

    degree = Column(String, nullable=False, default="")
    degree_program = Column(String, nullable=False, default="")
    faculty = Column(String, nullable=False, default="")
    department = Column(String, nullable=False, default="")
    year_of_study = Column(Integer, nullable=False, default=1)
    subjects_completed = Column(JSON, nullable=False, default=list)
    subjects_to_tutor = Column(JSON, nullable=False, default=list)

    previous_tutoring_experience = Column(Text, nullable=True)
    work_experience = Column(Text, nullable=True)
    skills_competencies = Column(JSON, nullable=False, default=list)
    languages_spoken = Column(JSON, nullable=False, default=list)
    availability = Column(JSON, nullable=True)
    motivation_letter = Column(Text, nullable=False, default="")

    rejection_reason = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)
    reviewed_by = Column(String, nullable=True)
    reviewed_at = Column(Float, nullable=True)

    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)
    submitted_at = Column(Float, nullable=True)


class DocumentRow(Base):
    __tablename__ = "application_documents"

    id = Column(String, primary_key=True)
    application_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    document_type = Column(String, nullable=False)
    file_name = Column(String, nullable=False)
    file_path = Column(String, nullable=False)
    file_size = Column(Integer, nullable=False)
    mime_type = Column(String, nullable=False)
    uploaded_at = Column(Float, nullable=False)
