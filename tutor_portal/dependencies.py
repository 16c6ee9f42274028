"""
Dependency wiring for the FastAPI app and the autosave clients.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from tutor_portal.auth import InvalidTokenError, decode_token
from tutor_portal.autosave.fallback import (
    FileKeyValueStore,
    KeyValueStore,
    LocalFallbackStore,
    RedisKeyValueStore,
)
from tutor_portal.config import get_settings
from tutor_portal.db import DbClient, InMemoryDbClient, PostgresDbClient, UserRecord
from tutor_portal.storage import InMemoryStorageClient, S3StorageClient, StorageClient
from tutor_portal.types import AppRole

_db_client: DbClient | None = None
_storage_client: StorageClient | None = None
_fallback_store: LocalFallbackStore | None = None

bearer_scheme = HTTPBearer(auto_error=False)


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    else:
        _db_client = PostgresDbClient(settings.database_url)
    return _db_client


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.s3_bucket:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = S3StorageClient(
            bucket=settings.s3_bucket,
            region=settings.s3_region or "",
            endpoint=settings.s3_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            addressing_style=settings.s3_addressing_style,
        )
    return _storage_client


def get_fallback_store() -> LocalFallbackStore:
    """
    Return the local draft store used by autosave clients: Redis when
    configured, otherwise files under `autosave_fallback_dir`.
    """
    global _fallback_store
    if _fallback_store:
        return _fallback_store

    settings = get_settings()
    store: KeyValueStore
    if settings.redis_url:
        store = RedisKeyValueStore(url=settings.redis_url, prefix=settings.redis_key_prefix)
    else:
        store = FileKeyValueStore(settings.autosave_fallback_dir)
    _fallback_store = LocalFallbackStore(store)
    return _fallback_store


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: DbClient = Depends(get_db_client),
) -> UserRecord:
    if credentials is None:
        raise _unauthorized("Not authenticated")
    try:
        payload = decode_token(credentials.credentials)
    except InvalidTokenError as exc:
        raise _unauthorized(str(exc))
    user = db.get_user(payload["sub"])
    if not user:
        raise _unauthorized("Could not validate credentials")
    return user


def require_admin(
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
) -> UserRecord:
    if AppRole.ADMIN not in db.get_roles(user.id):
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
