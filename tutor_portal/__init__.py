"""
Tutor application intake portal.

This package provides a FastAPI application with database and storage
abstractions for the tutor application workflow, plus the client-side
autosave pipeline (`tutor_portal.autosave`) that keeps in-progress drafts
persisted while a student fills in the multi-step form.
"""
