"""Process spawning capability.

The runner never touches ``asyncio.subprocess`` directly; it asks a
:class:`ProcessSpawner` for a :class:`ProcessHandle` exposing an ordered
stream of ``(channel, text)`` chunks, an exit code and ``terminate()``.
:class:`AsyncioSpawner` is the real implementation; :class:`FakeSpawner`
replays scripted output for tests.
"""

from __future__ import annotations

import asyncio
import codecs
from collections.abc import AsyncIterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from swarmdesk.server.errors import ProcessError
from swarmdesk.server.models.enums import OutputStream

_READ_SIZE = 4096


class SpawnError(ProcessError):
    """The process could not be started (missing executable, bad cwd, ...)."""


class ProcessHandle(Protocol):
    pid: int | None

    def output(self) -> AsyncIterator[tuple[OutputStream, str]]:
        """Yield output chunks in arrival order until both pipes close."""
        ...

    async def wait(self) -> int: ...

    def terminate(self) -> None: ...


class ProcessSpawner(Protocol):
    async def spawn(
        self,
        command: str,
        args: Sequence[str],
        *,
        env: Mapping[str, str],
        cwd: str | None,
    ) -> ProcessHandle: ...


# ---------------------------------------------------------------------------
# asyncio implementation
# ---------------------------------------------------------------------------


class AsyncioProcessHandle:
    """Merge a child's stdout and stderr into one ordered chunk stream."""

    def __init__(self, process: asyncio.subprocess.Process) -> None:
        self._process = process
        self.pid: int | None = process.pid
        self._queue: asyncio.Queue[tuple[OutputStream, str] | None] = asyncio.Queue()
        self._pumps = [
            asyncio.create_task(self._pump(process.stdout, OutputStream.STDOUT)),
            asyncio.create_task(self._pump(process.stderr, OutputStream.STDERR)),
        ]

    async def _pump(self, reader: asyncio.StreamReader | None, channel: OutputStream) -> None:
        try:
            if reader is None:
                return
            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
            while True:
                data = await reader.read(_READ_SIZE)
                if not data:
                    tail = decoder.decode(b"", final=True)
                    if tail:
                        self._queue.put_nowait((channel, tail))
                    return
                text = decoder.decode(data)
                if text:
                    self._queue.put_nowait((channel, text))
        finally:
            self._queue.put_nowait(None)

    async def output(self) -> AsyncIterator[tuple[OutputStream, str]]:
        open_pipes = len(self._pumps)
        while open_pipes:
            item = await self._queue.get()
            if item is None:
                open_pipes -= 1
                continue
            yield item

    async def wait(self) -> int:
        await asyncio.gather(*self._pumps)
        return await self._process.wait()

    def terminate(self) -> None:
        if self._process.returncode is None:
            try:
                self._process.terminate()
            except ProcessLookupError:
                pass


class AsyncioSpawner:
    """Spawn real child processes with piped stdout / stderr."""

    async def spawn(
        self,
        command: str,
        args: Sequence[str],
        *,
        env: Mapping[str, str],
        cwd: str | None,
    ) -> AsyncioProcessHandle:
        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=dict(env),
                cwd=cwd,
            )
        except OSError as exc:
            raise SpawnError(str(exc)) from exc
        return AsyncioProcessHandle(process)


# ---------------------------------------------------------------------------
# Test double
# ---------------------------------------------------------------------------


@dataclass
class ScriptedProcess:
    """What a :class:`FakeSpawner` plays back for one spawn."""

    chunks: list[tuple[OutputStream, str]] = field(default_factory=list)
    returncode: int = 0
    spawn_error: str | None = None
    delay: float = 0.0
    """Seconds to sleep before each chunk."""
    hold_open: bool = False
    """Keep running after the last chunk until ``terminate()`` is called."""
    output_error: str | None = None
    """Make reading the output raise ``OSError`` after the last chunk."""


class FakeProcessHandle:
    def __init__(self, script: ScriptedProcess, pid: int) -> None:
        self._script = script
        self.pid: int | None = pid
        self._terminated = asyncio.Event()
        self._finished = asyncio.Event()
        self.returncode: int | None = None

    async def output(self) -> AsyncIterator[tuple[OutputStream, str]]:
        try:
            for chunk in self._script.chunks:
                if self._terminated.is_set():
                    break
                await asyncio.sleep(self._script.delay)
                yield chunk
            if self._script.output_error is not None:
                raise OSError(self._script.output_error)
            if self._script.hold_open:
                await self._terminated.wait()
        finally:
            self._finished.set()

    async def wait(self) -> int:
        await self._finished.wait()
        self.returncode = -15 if self._terminated.is_set() else self._script.returncode
        return self.returncode

    def terminate(self) -> None:
        self._terminated.set()


class FakeSpawner:
    """Replays scripted processes in order; records every invocation."""

    def __init__(self, scripts: Sequence[ScriptedProcess] | None = None) -> None:
        self._scripts = list(scripts or [])
        self.invocations: list[dict] = []
        self.handles: list[FakeProcessHandle] = []

    async def spawn(
        self,
        command: str,
        args: Sequence[str],
        *,
        env: Mapping[str, str],
        cwd: str | None,
    ) -> FakeProcessHandle:
        self.invocations.append({"command": command, "args": list(args), "env": dict(env), "cwd": cwd})
        script = self._scripts.pop(0) if self._scripts else ScriptedProcess()
        if script.spawn_error is not None:
            raise SpawnError(script.spawn_error)
        handle = FakeProcessHandle(script, pid=1000 + len(self.handles))
        self.handles.append(handle)
        return handle
