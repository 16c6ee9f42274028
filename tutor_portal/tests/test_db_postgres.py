import unittest

from tutor_portal.db import DocumentRecord, PostgresDbClient
from tutor_portal.types import AppRole, ApplicationStatus


class PostgresDbClientTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the Postgres client logic.
    """

    @classmethod
    def setUpClass(cls):
        cls.db = PostgresDbClient("sqlite+pysqlite:///:memory:")

    def test_create_user_assigns_student_role(self):
        user = self.db.create_user("New@Example.com", "hash", "New User")
        self.assertEqual(user.email, "new@example.com")
        self.assertEqual(self.db.get_roles(user.id), {AppRole.STUDENT})
        self.assertEqual(self.db.get_user_by_email("NEW@example.com").id, user.id)
        with self.assertRaises(ValueError):
            self.db.create_user("new@example.com", "hash")

    def test_roles_and_profile(self):
        user = self.db.create_user("admin@example.com", "hash")
        self.db.add_role(user.id, AppRole.ADMIN)
        self.db.add_role(user.id, AppRole.ADMIN)
        self.assertEqual(self.db.get_roles(user.id), {AppRole.STUDENT, AppRole.ADMIN})

        updated = self.db.update_profile(user.id, student_number="123")
        self.assertEqual(updated.student_number, "123")
        self.db.update_password(user.id, "new-hash")
        self.assertEqual(self.db.get_user(user.id).password_hash, "new-hash")

    def test_upsert_application_inserts_then_patches(self):
        record = self.db.upsert_application(
            {
                "id": "app-upsert",
                "user_id": "u1",
                "full_name": "Thandi",
                "subjects_to_tutor": ["Maths"],
                "status": "draft",
                "not_a_column": "ignored",
            }
        )
        self.assertEqual(record.status, ApplicationStatus.DRAFT)
        self.assertEqual(record.year_of_study, 1)
        self.assertEqual(record.languages_spoken, [])

        updated = self.db.upsert_application(
            {"id": "app-upsert", "user_id": "u1", "faculty": "Science"}
        )
        self.assertEqual(updated.full_name, "Thandi")
        self.assertEqual(updated.faculty, "Science")
        self.assertEqual(updated.subjects_to_tutor, ["Maths"])
        self.assertEqual(updated.created_at, record.created_at)

        with self.assertRaises(ValueError):
            self.db.upsert_application({"id": "app-x"})

    def test_review_and_submitted_listing(self):
        self.db.upsert_application({"id": "app-draft", "user_id": "u2"})
        self.db.upsert_application(
            {"id": "app-sub", "user_id": "u2", "status": "pending", "submitted_at": 10.0}
        )
        submitted_ids = [a.id for a in self.db.list_submitted_applications()]
        self.assertIn("app-sub", submitted_ids)
        self.assertNotIn("app-draft", submitted_ids)

        reviewed = self.db.update_application_review(
            "app-sub",
            status=ApplicationStatus.REJECTED,
            reviewed_by="admin-1",
            rejection_reason="Incomplete",
        )
        self.assertEqual(reviewed.status, ApplicationStatus.REJECTED)
        self.assertEqual(reviewed.rejection_reason, "Incomplete")
        self.assertIsNotNone(reviewed.reviewed_at)
        self.assertIsNone(
            self.db.update_application_review(
                "missing", status=ApplicationStatus.APPROVED, reviewed_by="admin-1"
            )
        )

    def test_documents_replace_by_type(self):
        first = self.db.save_document(
            DocumentRecord(
                application_id="app-docs",
                user_id="u3",
                document_type="cv",
                file_name="cv.pdf",
                file_path="u3/app-docs/cv.pdf",
                file_size=10,
                mime_type="application/pdf",
            )
        )
        second = self.db.save_document(
            DocumentRecord(
                application_id="app-docs",
                user_id="u3",
                document_type="cv",
                file_name="cv.png",
                file_path="u3/app-docs/cv.png",
                file_size=20,
                mime_type="image/png",
            )
        )
        documents = self.db.list_documents("app-docs")
        self.assertEqual([d.id for d in documents], [second.id])
        self.assertIsNone(self.db.get_document(first.id))

        self.assertTrue(self.db.delete_document(second.id))
        self.assertFalse(self.db.delete_document(second.id))


if __name__ == "__main__":
    unittest.main()
