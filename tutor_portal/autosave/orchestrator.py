"""
Autosave pipeline for in-progress tutor applications.

Form edits are coalesced by a trailing debounce, skipped when nothing changed
since the last successful save, and rate-limited by a throttle. Online saves
go to the remote persistence client; offline or failed saves land in the
local fallback store. The resulting status is exposed for display and
returns to idle after a short interval.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional

from tutor_portal.applications import build_draft_record
from tutor_portal.autosave.changes import has_changed
from tutor_portal.autosave.connectivity import ConnectivitySignal
from tutor_portal.autosave.fallback import LocalFallbackStore
from tutor_portal.autosave.remote import RemotePersistenceClient
from tutor_portal.autosave.scheduling import (
    Debouncer,
    LoopScheduler,
    SaveThrottle,
    Scheduler,
    TimerHandle,
)
from tutor_portal.types import SaveState

DEFAULT_DEBOUNCE_MS = 900
DEFAULT_THROTTLE_MS = 2000
DEFAULT_STATUS_RESET_MS = 3000

SAVING_MESSAGE = "Saving..."
SAVED_MESSAGE = "All changes saved"
ERROR_MESSAGE = "Failed to save"
OFFLINE_MESSAGE = "Offline - changes not saved"

RecordBuilder = Callable[..., dict]
ReachabilityCheck = Callable[[], Awaitable[bool]]


@dataclass(frozen=True)
class SaveStatus:
    status: SaveState = SaveState.IDLE
    message: str = ""
    timestamp: Optional[float] = None

    def as_dict(self) -> dict:
        return {
            "status": self.status.value,
            "message": self.message,
            "timestamp": self.timestamp,
        }


StatusListener = Callable[[SaveStatus], None]


class AutosaveOrchestrator:
    """
    Owns the save pipeline for one user's application.

    Usage:
        async with AutosaveOrchestrator(remote, fallback, connectivity,
                                        user_id=uid, application_id=aid) as autosave:
            autosave.update(form_snapshot)

    At most one save is in flight at a time. Edits arriving during a save are
    kept and compared against the pre-save baseline on the next debounce cycle.
    """

    def __init__(
        self,
        remote: RemotePersistenceClient,
        fallback: LocalFallbackStore,
        connectivity: ConnectivitySignal,
        *,
        user_id: Optional[str] = None,
        application_id: Optional[str] = None,
        initial_snapshot: Optional[Mapping[str, Any]] = None,
        debounce_ms: float = DEFAULT_DEBOUNCE_MS,
        throttle_ms: float = DEFAULT_THROTTLE_MS,
        status_reset_ms: float = DEFAULT_STATUS_RESET_MS,
        enabled: bool = True,
        scheduler: Optional[Scheduler] = None,
        record_builder: RecordBuilder = build_draft_record,
        reachability_check: Optional[ReachabilityCheck] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.remote = remote
        self.fallback = fallback
        self.connectivity = connectivity
        self.user_id = user_id
        self.application_id = application_id
        self.enabled = enabled
        self.status_reset_ms = status_reset_ms
        self._scheduler = scheduler or LoopScheduler()
        self._record_builder = record_builder
        self._reachability_check = reachability_check
        self._logger = logger or logging.getLogger(__name__)

        self._snapshot: dict = copy.deepcopy(dict(initial_snapshot or {}))
        self._previous: dict = copy.deepcopy(self._snapshot)
        self._debouncer = Debouncer(self._scheduler, debounce_ms, self._on_debounce)
        self._throttle = SaveThrottle(throttle_ms)
        self._last_saved_at: Optional[float] = None

        self._status = SaveStatus()
        self._status_listeners: list[StatusListener] = []
        self._reset_handle: Optional[TimerHandle] = None
        self._saving = False
        self._tasks: set[asyncio.Future] = set()
        self._online = connectivity.current_state()
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._closed = False

    # -- read-only outputs -------------------------------------------------

    @property
    def status(self) -> SaveStatus:
        return self._status

    @property
    def is_saving(self) -> bool:
        return self._status.status == SaveState.SAVING

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def last_saved_at(self) -> Optional[float]:
        return self._last_saved_at

    @property
    def snapshot(self) -> dict:
        return copy.deepcopy(self._snapshot)

    @property
    def has_unsaved_changes(self) -> bool:
        return has_changed(self._previous, self._snapshot)

    def on_status_change(self, listener: StatusListener) -> Callable[[], None]:
        self._status_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._status_listeners:
                self._status_listeners.remove(listener)

        return unsubscribe

    # -- lifecycle ---------------------------------------------------------

    def start(self) -> None:
        """Subscribe to connectivity and arm the first debounce cycle."""
        if self._unsubscribe is not None or self._closed:
            return
        self._online = self.connectivity.current_state()
        self._unsubscribe = self.connectivity.on_change(self._on_connectivity_change)
        self._schedule_save()

    def close(self) -> None:
        """Cancel pending timers and release the connectivity subscription."""
        self._closed = True
        self._debouncer.cancel()
        self._cancel_status_reset()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def flush(self) -> None:
        """Wait for any save that is already running."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def aclose(self) -> None:
        self.close()
        await self.flush()

    async def __aenter__(self) -> "AutosaveOrchestrator":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # -- inputs ------------------------------------------------------------

    def update(self, snapshot: Mapping[str, Any]) -> None:
        """Record the latest form state and restart the debounce window."""
        self._snapshot = copy.deepcopy(dict(snapshot))
        self._schedule_save()

    def identify(self, user_id: Optional[str], application_id: Optional[str]) -> None:
        self.user_id = user_id
        self.application_id = application_id
        self._schedule_save()

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled
        if enabled:
            self._schedule_save()
        else:
            self._debouncer.cancel()

    # -- pipeline ----------------------------------------------------------

    def _is_active(self) -> bool:
        return (
            self.enabled
            and not self._closed
            and bool(self.user_id)
            and bool(self.application_id)
        )

    def _schedule_save(self) -> None:
        if not self._is_active():
            return
        self._debouncer.trigger()

    def _on_debounce(self) -> None:
        task = asyncio.ensure_future(self.perform_save())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_connectivity_change(self, online: bool) -> None:
        self._online = online
        self._logger.info(
            "Autosave connectivity: %s", "online" if online else "offline"
        )
        # Push anything captured while offline once the connection returns.
        if online:
            self._schedule_save()

    async def _backend_reachable(self) -> bool:
        if self._reachability_check is None:
            return False
        try:
            reachable = await self._reachability_check()
        except Exception:
            self._logger.exception("Reachability check failed")
            return False
        if reachable:
            self._online = True
        return reachable

    def throttle_remaining_ms(self) -> float:
        """Milliseconds until the throttle admits the next save."""
        last = self._throttle.last_save_ms
        if last is None:
            return 0
        elapsed = self._scheduler.now_ms() - last
        return max(self._throttle.interval_ms - elapsed, 0)

    async def perform_save(self) -> bool:
        """
        Run one save attempt. Returns True only when the remote write
        succeeded; every other outcome is reported through `status`.
        """
        if not self._is_active() or self._saving:
            return False

        snapshot = self._snapshot
        if not has_changed(self._previous, snapshot):
            self._logger.debug("No changes detected, skipping autosave")
            return False

        now = self._scheduler.now_ms()
        started_at = self._scheduler.wall_ms()
        if not self._throttle.allows(now):
            self._logger.debug("Save throttled, waiting before next save")
            return False

        user_id, application_id = self.user_id, self.application_id
        self._saving = True
        try:
            self._set_status(SaveState.SAVING, SAVING_MESSAGE)

            # Outcome-driven monitors only recover through a request.
            if not self._online and not await self._backend_reachable():
                self._set_status(SaveState.OFFLINE, OFFLINE_MESSAGE)
                self.fallback.write(user_id, application_id, snapshot)
                return False

            try:
                record = self._record_builder(
                    snapshot, user_id=user_id, application_id=application_id
                )
                await self.remote.upsert(record, on_conflict="id")
            except Exception:
                self._logger.exception("Autosave failed for application %s", application_id)
                self._set_status(SaveState.ERROR, ERROR_MESSAGE, auto_reset=True)
                self.fallback.write(user_id, application_id, snapshot)
                return False

            self._previous = snapshot
            self._throttle.record(now)
            self._last_saved_at = started_at
            self._set_status(
                SaveState.SAVED,
                SAVED_MESSAGE,
                timestamp=self._last_saved_at,
                auto_reset=True,
            )
            self.fallback.clear(user_id, application_id)
            self._logger.info("Autosave successful for application %s", application_id)
            return True
        finally:
            self._saving = False

    # -- status ------------------------------------------------------------

    def _set_status(
        self,
        state: SaveState,
        message: str = "",
        *,
        timestamp: Optional[float] = None,
        auto_reset: bool = False,
    ) -> None:
        self._cancel_status_reset()
        self._status = SaveStatus(status=state, message=message, timestamp=timestamp)
        for listener in list(self._status_listeners):
            try:
                listener(self._status)
            except Exception:
                self._logger.exception("Autosave status listener failed")
        if auto_reset and not self._closed:
            self._reset_handle = self._scheduler.call_later(
                self.status_reset_ms, self._reset_to_idle
            )

    def _reset_to_idle(self) -> None:
        self._reset_handle = None
        self._set_status(SaveState.IDLE)

    def _cancel_status_reset(self) -> None:
        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None
