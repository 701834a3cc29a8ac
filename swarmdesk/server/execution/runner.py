"""Swarm runner -- spawns the external CLI and records the outcome.

One execution goes through three phases:

1. **Prepare** (``prepare``): resolve the session and the owner's
   credential, then reserve the session in the registry.  Every rejection
   (unknown session, missing credential, terminal or running session,
   shutdown) happens here, before any process exists.
2. **Run** (``run``): spawn ``<cli> swarm <task> --claude``, forward every
   stdout / stderr chunk as an ``output`` event, wait for the exit code.
3. **Finalize**: guarded status update, worker transitions, one metric
   sample per worker, then the terminal event.

The caller (API layer) owns transport.  ``run`` opens its own database
sessions from the factory, so an execution started with
``start_background`` finishes and persists its outcome even when the SSE
consumer has gone away.  Nothing is retried.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from swarmdesk.server.errors import ConfigurationError, ConflictError, UnavailableError, ValidationError
from swarmdesk.server.execution.spawner import SpawnError
from swarmdesk.server.managers import metrics as metric_manager
from swarmdesk.server.managers import sessions as session_manager
from swarmdesk.server.managers import workers as worker_manager
from swarmdesk.server.models.enums import EventType, OutputStream, SessionStatus, SwarmType, WorkerStatus
from swarmdesk.server.models.events import SwarmEvent
from swarmdesk.server.registry import ShuttingDownError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping, Sequence

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from swarmdesk.server.execution.credentials import CredentialProvider
    from swarmdesk.server.execution.spawner import ProcessHandle, ProcessSpawner
    from swarmdesk.server.registry import ProcessRegistry
    from swarmdesk.server.settings import SwarmSettings

    EventCallback = Callable[[SwarmEvent], Awaitable[None]]

logger = logging.getLogger(__name__)

ABORTED_MESSAGE = "Swarm aborted"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class PreparedExecution:
    """Everything ``run`` needs, resolved up front."""

    session_id: str
    owner_id: str
    project_path: str
    task_description: str
    swarm_type: SwarmType
    credential: str


@dataclass
class ExecutionResult:
    """Outcome of one swarm process."""

    session_id: str
    status: SessionStatus
    duration_ms: int
    output: str = ""
    error: str = ""
    exit_code: int | None = None
    spawn_error: str | None = None

    @property
    def success(self) -> bool:
        return self.status == SessionStatus.COMPLETED


@dataclass
class CliResult:
    """Outcome of a short-lived CLI call (memory commands, version check)."""

    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


async def _discard(_event: SwarmEvent) -> None:
    return None


def terminal_event(result: ExecutionResult) -> SwarmEvent:
    """Map a finished execution to the event that closes its stream."""
    sid = result.session_id
    if result.spawn_error is not None:
        return SwarmEvent(
            type=EventType.ERROR,
            message="Failed to start swarm process",
            session_id=sid,
            error=result.spawn_error,
            duration=result.duration_ms,
            status=result.status,
        )
    if result.status == SessionStatus.COMPLETED:
        return SwarmEvent(
            type=EventType.COMPLETED,
            message="Swarm completed successfully",
            session_id=sid,
            duration=result.duration_ms,
            output=result.output,
            status=result.status,
        )
    return SwarmEvent(
        type=EventType.FAILED,
        message=ABORTED_MESSAGE if result.status == SessionStatus.ABORTED else "Swarm execution failed",
        session_id=sid,
        duration=result.duration_ms,
        error=result.error,
        exit_code=result.exit_code,
        status=result.status,
    )


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------


class SwarmRunner:
    """Drive swarm executions for the API layer."""

    def __init__(
        self,
        *,
        settings: SwarmSettings,
        session_factory: async_sessionmaker[AsyncSession],
        spawner: ProcessSpawner,
        credentials: CredentialProvider,
        registry: ProcessRegistry,
    ) -> None:
        self.settings = settings
        self.session_factory = session_factory
        self.spawner = spawner
        self.credentials = credentials
        self.registry = registry
        self._tasks: set[asyncio.Task[ExecutionResult]] = set()

    # -- Command construction --------------------------------------------------

    def build_args(self, task_description: str, swarm_type: SwarmType | str) -> list[str]:
        """Arguments after the executable: ``<cli-name> swarm <task> --claude [--hive-mind]``."""
        args = [self.settings.cli_name, "swarm", task_description, "--claude"]
        if SwarmType(swarm_type) == SwarmType.HIVE_MIND:
            args.append(self.settings.hive_mind_flag)
        return args

    def build_env(self, credential: str | None = None, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        env = dict(os.environ)
        if credential is not None:
            env[self.settings.credential_env_var] = credential
        if extra:
            env.update(extra)
        return env

    async def require_credential(self, owner_id: str) -> str:
        credential = await self.credentials.get_active_credential(owner_id)
        if not credential:
            msg = "Please add your Claude API key in settings"
            raise ConfigurationError(msg)
        return credential

    # -- Prepare ---------------------------------------------------------------

    async def prepare(
        self,
        db: AsyncSession,
        *,
        owner_id: str,
        session_id: str,
        task_description: str,
        swarm_type: str,
    ) -> PreparedExecution:
        """Validate an execution request and reserve the session in the registry.

        Nothing is written to the database.  The reservation makes a second,
        overlapping execute of the same session fail with ``ConflictError``;
        ``run`` releases it.
        """
        missing = [name for name, value in (("sessionId", session_id), ("taskDescription", task_description)) if not value]
        if missing:
            msg = f"{', '.join(missing)} {'is' if len(missing) == 1 else 'are'} required"
            raise ValidationError(msg)
        kind = session_manager.parse_swarm_type(swarm_type)

        if self.registry.is_shutting_down:
            msg = "Server is shutting down"
            raise UnavailableError(msg)

        session = await session_manager.get_owned_session(db, session_id, owner_id)
        if session.status != SessionStatus.ACTIVE:
            msg = f"Swarm session '{session_id}' is already {session.status}"
            raise ConflictError(msg)
        if self.registry.is_running(session_id):
            msg = f"Swarm session '{session_id}' is already running"
            raise ConflictError(msg)

        credential = await self.require_credential(owner_id)
        # No await between here and the hand-off to ``run``, which releases it.
        try:
            self.registry.reserve(session_id)
        except ShuttingDownError:
            msg = "Server is shutting down"
            raise UnavailableError(msg) from None
        return PreparedExecution(
            session_id=session_id,
            owner_id=owner_id,
            project_path=session.project_path,
            task_description=task_description,
            swarm_type=kind,
            credential=credential,
        )

    # -- Run -------------------------------------------------------------------

    def start_background(self, prepared: PreparedExecution, on_event: EventCallback) -> asyncio.Task[ExecutionResult]:
        """Run detached from the request; the task is kept referenced until done."""
        task = asyncio.create_task(self.run(prepared, on_event), name=f"swarm-{prepared.session_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run(self, prepared: PreparedExecution, on_event: EventCallback | None = None) -> ExecutionResult:
        """Spawn the swarm process, stream its output and persist the outcome.

        Releases the registry entry reserved by ``prepare`` on every path.
        """
        try:
            return await self._run(prepared, on_event or _discard)
        finally:
            self.registry.unregister(prepared.session_id)

    async def _run(self, prepared: PreparedExecution, emit: EventCallback) -> ExecutionResult:
        sid = prepared.session_id
        started = time.monotonic()
        stdout_parts: list[str] = []
        stderr_parts: list[str] = []
        recorded: set[str] = set()
        handle: ProcessHandle | None = None

        try:
            await emit(SwarmEvent(type=EventType.STATUS, message="Initializing swarm...", session_id=sid))
            async with self.session_factory() as db:
                await worker_manager.transition_session_workers(db, sid, WorkerStatus.ACTIVE)

            args = self.build_args(prepared.task_description, prepared.swarm_type)
            try:
                handle = await self.spawner.spawn(
                    self.settings.cli_executable,
                    args,
                    env=self.build_env(prepared.credential),
                    cwd=prepared.project_path,
                )
            except SpawnError as exc:
                logger.error("Session %s: failed to spawn swarm process: %s", sid, exc.message)
                result = ExecutionResult(
                    sid, SessionStatus.FAILED, _elapsed_ms(started), error=exc.message, spawn_error=exc.message
                )
                result = await self._finalize(prepared, result, recorded)
                await emit(terminal_event(result))
                return result

            try:
                self.registry.attach(sid, handle)
            except ShuttingDownError:
                handle.terminate()
            logger.info("Session %s: swarm process started (pid=%s)", sid, handle.pid)

            await emit(
                SwarmEvent(type=EventType.STATUS, message="Swarm process started", session_id=sid, pid=handle.pid)
            )
            async for channel, chunk in handle.output():
                (stdout_parts if channel == OutputStream.STDOUT else stderr_parts).append(chunk)
                await emit(SwarmEvent(type=EventType.OUTPUT, message=chunk, session_id=sid, stream=channel))
            exit_code = await handle.wait()

            output = "".join(stdout_parts)
            errors = "".join(stderr_parts)
            logger.info("Session %s: swarm process exited with code %s", sid, exit_code)
            if exit_code == 0:
                result = ExecutionResult(sid, SessionStatus.COMPLETED, _elapsed_ms(started), output, errors, exit_code)
            else:
                result = ExecutionResult(
                    sid,
                    SessionStatus.FAILED,
                    _elapsed_ms(started),
                    output,
                    errors or f"exit code {exit_code}",
                    exit_code,
                )
            result = await self._finalize(prepared, result, recorded)
        except Exception:
            logger.exception("Session %s failed", sid)
            if handle is not None:
                await self._stop(sid, handle)
            result = ExecutionResult(
                sid,
                SessionStatus.FAILED,
                _elapsed_ms(started),
                "".join(stdout_parts),
                "Internal error during swarm execution",
            )
            try:
                result = await self._finalize(prepared, result, recorded)
            except Exception:
                logger.exception("Failed to record failure of session %s", sid)
            await emit(
                SwarmEvent(type=EventType.ERROR, message=result.error, session_id=sid, duration=result.duration_ms)
            )
            return result

        await emit(terminal_event(result))
        return result

    async def _stop(self, sid: str, handle: ProcessHandle) -> None:
        """Terminate a child whose run broke off, and reap it."""
        handle.terminate()
        try:
            await asyncio.wait_for(handle.wait(), timeout=10)
        except Exception:
            logger.warning("Session %s: process did not exit cleanly after terminate", sid, exc_info=True)

    async def _finalize(
        self, prepared: PreparedExecution, result: ExecutionResult, recorded: set[str]
    ) -> ExecutionResult:
        """Persist the outcome.  A session that was aborted meanwhile stays aborted.

        *recorded* collects the worker ids whose metric sample is written, so a
        retried finalize never counts a worker twice.
        """
        sid = prepared.session_id
        async with self.session_factory() as db:
            error_message = None if result.success else result.error
            applied = await session_manager.set_session_status(db, sid, result.status, error_message)
            if not applied:
                try:
                    current = await session_manager.get_session(db, sid)
                except session_manager.SessionNotFoundError:
                    logger.warning("Session %s disappeared before its outcome was recorded", sid)
                    return result
                result.status = current.status
                if current.status == SessionStatus.ABORTED:
                    result.error = result.error or ABORTED_MESSAGE

            if result.status == SessionStatus.COMPLETED:
                await worker_manager.transition_session_workers(db, sid, WorkerStatus.COMPLETED)
            else:
                worker_error = ABORTED_MESSAGE if result.status == SessionStatus.ABORTED else result.error
                await worker_manager.transition_session_workers(
                    db, sid, WorkerStatus.FAILED, error_message=worker_error
                )

            for worker in await worker_manager.list_workers(db, sid):
                if worker.worker_id in recorded:
                    continue
                await metric_manager.record_agent_run(
                    db,
                    owner_id=prepared.owner_id,
                    agent_type=worker.agent_type,
                    input_tokens=worker.input_tokens,
                    output_tokens=worker.output_tokens,
                    completion_time_ms=result.duration_ms,
                    success=worker.status == WorkerStatus.COMPLETED,
                )
                recorded.add(worker.worker_id)
        return result

    # -- Abort -----------------------------------------------------------------

    async def abort(self, db: AsyncSession, *, owner_id: str, session_id: str) -> bool:
        """Mark an active session ``aborted`` and terminate its live process.

        Returns whether a running process was terminated.  Raises
        ``SessionNotFoundError`` or ``ConflictError`` (already terminal).
        """
        session = await session_manager.get_owned_session(db, session_id, owner_id)
        applied = await session_manager.set_session_status(db, session_id, SessionStatus.ABORTED, ABORTED_MESSAGE)
        if not applied:
            session = await session_manager.get_session(db, session_id)
            msg = f"Swarm session '{session_id}' is already {session.status}"
            raise ConflictError(msg)

        terminated = self.registry.terminate(session_id)
        if not terminated:
            # No run in flight: nothing else will close out the workers.
            await worker_manager.transition_session_workers(
                db, session_id, WorkerStatus.FAILED, error_message=ABORTED_MESSAGE
            )
        logger.info("Session %s aborted (terminated=%s)", session_id, terminated)
        return terminated

    # -- Short CLI calls -------------------------------------------------------

    async def run_cli(
        self,
        args: Sequence[str],
        *,
        credential: str | None = None,
        cwd: str | None = None,
        extra_env: Mapping[str, str] | None = None,
    ) -> CliResult:
        """Run ``<cli> <args...>`` to completion and collect its output.

        ``SpawnError`` propagates to the caller.
        """
        started = time.monotonic()
        handle = await self.spawner.spawn(
            self.settings.cli_executable,
            [self.settings.cli_name, *args],
            env=self.build_env(credential, extra_env),
            cwd=cwd,
        )
        stdout_parts: list[str] = []
        stderr_parts: list[str] = []
        async for channel, chunk in handle.output():
            (stdout_parts if channel == OutputStream.STDOUT else stderr_parts).append(chunk)
        exit_code = await handle.wait()
        return CliResult(exit_code, "".join(stdout_parts), "".join(stderr_parts), _elapsed_ms(started))

    async def drain(self) -> None:
        """Wait for every background execution task to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
