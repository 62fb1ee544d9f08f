"""
Connectivity supervision.

Translates host signals (network reachability, application visibility)
into controller calls, and serves the aggregate state to status widgets.
"""

import asyncio
from typing import Optional

from ..models.records import SyncState, SyncStatus
from ..utils.errors import AuthenticationRequired, error_details
from ..utils.logging import get_logger
from .controller import SyncController


logger = get_logger("offline-sync.supervisor")


class ConnectivitySupervisor:
    """
    Pauses sync while offline or hidden and resumes it when both are back.

    Coming back online also replays queued local mutations. Failures from
    these host-driven transitions are logged and never raised to the host.
    """

    def __init__(self, controller: SyncController, online: bool = True, visible: bool = True):
        self.controller = controller
        self.online = online
        self.visible = visible
        self.last_state: Optional[SyncState] = None
        self._lock = asyncio.Lock()

    @property
    def should_sync(self) -> bool:
        return self.online and self.visible

    async def set_online(self, online: bool) -> None:
        """Host reports network reachability."""
        async with self._lock:
            changed = online != self.online
            self.online = online
            logger.info("connectivity_changed", online=online, changed=changed)

            if not online:
                await self.controller.pause()
                return

            await self._activate()
            if changed:
                await self._drain()

    async def set_visible(self, visible: bool) -> None:
        """Host reports whether the application is in the foreground."""
        async with self._lock:
            self.visible = visible
            logger.info("visibility_changed", visible=visible)

            if not visible:
                await self.controller.pause()
                return

            await self._activate()

    async def refresh(self) -> SyncState:
        """Latest sync state for status indicators."""
        self.last_state = await self.controller.get_sync_state()
        return self.last_state

    async def _activate(self) -> None:
        if not self.should_sync:
            return

        status = self.controller.status
        try:
            if status is SyncStatus.PAUSED:
                await self.controller.resume()
            elif not status.is_active:
                await self.controller.start()
        except AuthenticationRequired:
            logger.debug("activation_skipped_no_session", status=status.value)

    async def _drain(self) -> None:
        try:
            applied = await self.controller.drain()
        except AuthenticationRequired:
            logger.debug("drain_skipped_no_session")
        except Exception as e:
            logger.warning("drain_failed", error=error_details(e, "supervisor", "drain"))
        else:
            logger.info("drain_on_reconnect", applied=applied)
