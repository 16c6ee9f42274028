"""
Network reachability signal for the autosave pipeline.
"""

from __future__ import annotations

import logging
from typing import Callable, Protocol

logger = logging.getLogger(__name__)

ConnectivityListener = Callable[[bool], None]


class ConnectivitySignal(Protocol):
    def current_state(self) -> bool:
        ...

    def on_change(self, callback: ConnectivityListener) -> Callable[[], None]:
        ...


class ConnectivityMonitor:
    """
    Holds the current online/offline state and notifies listeners on
    transitions. State is pushed in by whatever observes the network (the
    HTTP persistence client reports request outcomes here); nothing polls.
    """

    def __init__(self, online: bool = True):
        self._online = online
        self._listeners: list[ConnectivityListener] = []

    def current_state(self) -> bool:
        return self._online

    def on_change(self, callback: ConnectivityListener) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def set_online(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        logger.info("Connectivity changed: %s", "online" if online else "offline")
        for listener in list(self._listeners):
            listener(online)

    def mark_online(self) -> None:
        self.set_online(True)

    def mark_offline(self) -> None:
        self.set_online(False)
