"""In-process registry of running swarm processes.

Maps session id to the live :class:`ProcessHandle` so that an abort can
terminate the process and shutdown can wait for (or cut short) running
executions.  Ephemeral -- empty on process restart.  All durable state
lives in the database.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from loguru import logger

from swarmdesk.server.errors import ConflictError

if TYPE_CHECKING:
    from swarmdesk.server.execution.spawner import ProcessHandle


class ShuttingDownError(RuntimeError):
    """Raised when attempting to register a process during shutdown."""


class ProcessRegistry:
    """Registry of currently running swarm processes.

    A session is *reserved* before its process is spawned and *attached*
    once the handle exists; both states count as running.  At most one
    entry per session id.

    ``wait_until_drained`` blocks until every entry has been released;
    ``begin_shutdown`` refuses new reservations.
    """

    def __init__(self) -> None:
        # None while reserved but not yet spawned.
        self._processes: dict[str, ProcessHandle | None] = {}
        self._pending_terminate: set[str] = set()
        self._drain_event = asyncio.Event()
        self._drain_event.set()  # Starts "drained" (no processes).
        self._shutting_down = False

    # -- Mutation --------------------------------------------------------------

    def reserve(self, session_id: str) -> None:
        """Claim *session_id* before its process is spawned.

        Raises ``ShuttingDownError`` during shutdown and ``ConflictError`` if
        the session already has an entry.
        """
        if self._shutting_down:
            raise ShuttingDownError
        if session_id in self._processes:
            msg = f"Swarm session '{session_id}' is already running"
            raise ConflictError(msg)
        self._processes[session_id] = None
        self._drain_event.clear()
        logger.debug("Registry: reserved session {}", session_id)

    def attach(self, session_id: str, handle: ProcessHandle) -> None:
        """Bind the spawned process to a reservation.

        A terminate requested while the session was only reserved is applied
        to *handle* right away.
        """
        if session_id not in self._processes:
            self.reserve(session_id)
        elif self._processes[session_id] is not None:
            msg = f"Swarm session '{session_id}' already has a process attached"
            raise ConflictError(msg)
        self._processes[session_id] = handle
        logger.debug("Registry: attached session {} (pid={})", session_id, handle.pid)
        if session_id in self._pending_terminate:
            self._pending_terminate.discard(session_id)
            handle.terminate()
            logger.info("Registry: terminated session {} on attach", session_id)

    def register(self, session_id: str, handle: ProcessHandle) -> None:
        """Reserve and attach in one step.

        Raises ``ShuttingDownError`` during shutdown and ``ConflictError`` if
        the session already has an entry.
        """
        self.reserve(session_id)
        self.attach(session_id, handle)

    def unregister(self, session_id: str) -> ProcessHandle | None:
        """Release the session's entry (reserved or attached)."""
        held = session_id in self._processes
        handle = self._processes.pop(session_id, None)
        self._pending_terminate.discard(session_id)
        if held:
            logger.debug("Registry: released session {}", session_id)
        if not self._processes:
            self._drain_event.set()
        return handle

    # -- Query -----------------------------------------------------------------

    def get(self, session_id: str) -> ProcessHandle | None:
        """The attached handle, or ``None`` (also while only reserved)."""
        return self._processes.get(session_id)

    def is_running(self, session_id: str) -> bool:
        return session_id in self._processes

    def session_ids(self) -> list[str]:
        return list(self._processes)

    @property
    def active_count(self) -> int:
        return len(self._processes)

    # -- Lifecycle -------------------------------------------------------------

    def begin_shutdown(self) -> None:
        """Mark the registry as shutting down.  New registrations are refused."""
        self._shutting_down = True
        logger.info("Registry: shutdown initiated, refusing new swarm processes")
        if not self._processes:
            self._drain_event.set()

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    # -- Control ---------------------------------------------------------------

    def terminate(self, session_id: str) -> bool:
        """Terminate one session's process.  Returns ``False`` if none is running.

        A reserved session is terminated as soon as its process is attached.
        """
        if session_id not in self._processes:
            return False
        handle = self._processes[session_id]
        if handle is None:
            self._pending_terminate.add(session_id)
            logger.info("Registry: session {} will be terminated once spawned", session_id)
            return True
        handle.terminate()
        logger.info("Registry: terminated session {}", session_id)
        return True

    def terminate_all(self) -> int:
        """Terminate every running process; the last resort of a forced shutdown."""
        count = 0
        for session_id in list(self._processes):
            if self.terminate(session_id):
                count += 1
        return count

    async def wait_until_drained(self, timeout: float | None = None) -> bool:
        """Wait until all processes have been unregistered.

        Returns ``True`` if the registry is empty, ``False`` if *timeout*
        expired with processes still running.
        """
        if not self._processes:
            return True
        try:
            await asyncio.wait_for(self._drain_event.wait(), timeout=timeout)
        except TimeoutError:
            logger.warning(
                "Registry: drain timed out after {}s with {} processes still running",
                timeout,
                len(self._processes),
            )
            return False
        else:
            return True
