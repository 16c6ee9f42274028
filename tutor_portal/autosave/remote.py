"""
Remote persistence clients used by the autosave pipeline.

`DbPersistenceClient` writes straight through a `DbClient` when the pipeline
runs in-process; `HttpPersistenceClient` talks to the portal API.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Optional, Protocol

import httpx
from sqlalchemy.exc import SQLAlchemyError

from tutor_portal.autosave.connectivity import ConnectivityMonitor
from tutor_portal.db import DbClient

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """A remote write was rejected or could not be performed."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class RemotePersistenceClient(Protocol):
    async def upsert(self, record: Mapping[str, Any], on_conflict: str = "id") -> None:
        ...


def _check_conflict_key(on_conflict: str) -> None:
    if on_conflict != "id":
        raise ValueError(f"Unsupported conflict key: {on_conflict}")


class DbPersistenceClient:
    """Upserts application rows through a synchronous DbClient."""

    def __init__(self, db: DbClient):
        self.db = db

    async def upsert(self, record: Mapping[str, Any], on_conflict: str = "id") -> None:
        _check_conflict_key(on_conflict)
        try:
            await asyncio.to_thread(self.db.upsert_application, dict(record))
        except (SQLAlchemyError, ValueError) as exc:
            raise PersistenceError(str(exc)) from exc


def _error_message(response: httpx.Response) -> str:
    try:
        detail = response.json().get("detail")
    except (ValueError, AttributeError):
        detail = None
    if isinstance(detail, str) and detail:
        return detail
    return f"HTTP {response.status_code}"


class HttpPersistenceClient:
    """
    Sends draft upserts to `PUT {api_prefix}/applications/{id}/draft`.

    Request outcomes are reported to the connectivity monitor: transport
    failures mark the backend unreachable, any HTTP response marks it
    reachable again.
    """

    def __init__(
        self,
        base_url: str,
        access_token: str,
        *,
        api_prefix: str = "/api",
        connectivity: Optional[ConnectivityMonitor] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_prefix = api_prefix.rstrip("/")
        self.connectivity = connectivity
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=timeout,
            transport=transport,
        )

    async def upsert(self, record: Mapping[str, Any], on_conflict: str = "id") -> None:
        _check_conflict_key(on_conflict)
        application_id = record.get("id")
        if not application_id:
            raise PersistenceError("Record is missing an application id")
        try:
            response = await self._client.put(
                f"{self.api_prefix}/applications/{application_id}/draft",
                json=dict(record),
            )
        except httpx.TransportError as exc:
            if self.connectivity:
                self.connectivity.mark_offline()
            raise PersistenceError(f"Backend unreachable: {exc}") from exc
        if self.connectivity:
            self.connectivity.mark_online()
        if response.status_code >= 400:
            raise PersistenceError(
                _error_message(response), status_code=response.status_code
            )

    async def ping(self) -> bool:
        """
        Check `GET {api_prefix}/health`. Any HTTP response counts as reachable,
        matching how `upsert` reports outcomes.
        """
        try:
            response = await self._client.get(f"{self.api_prefix}/health")
        except httpx.TransportError:
            if self.connectivity:
                self.connectivity.mark_offline()
            return False
        if self.connectivity:
            self.connectivity.mark_online()
        logger.debug("Health check answered with HTTP %s", response.status_code)
        return True

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpPersistenceClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
