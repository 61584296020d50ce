"""An MCP server that runs bash commands locally or inside a Podman container."""

from __future__ import annotations

import asyncio
import contextlib
import json
import os
import signal
from dataclasses import dataclass, field
from typing import Any

from mcpkit.protocol import (
    CallToolResult,
    McpServer,
    Tool,
    internal_error,
    invalid_params,
    text_content,
)

OUTPUT_LIMIT = 10_000
"""Maximum number of bytes of combined stdout and stderr kept for one command."""

TIME_LIMIT = 10.0
"""Default number of seconds to wait for output before reporting a timeout."""

_READ_SIZE = 1024
_QUEUE_SIZE = 32

_RUN_DESCRIPTION = """Run a command in a bash shell. Provides stdout, stderr and exit code.
If the command times out you may continue waiting with `wait` or stop with `terminate`.
Only one command may run at a time. Each command runs in a new shell.
Only a maximum of 10k bytes or 200 lines will be returned."""


@dataclass
class WaitResult:
    """What a ``run`` or ``wait`` call reports about the command."""

    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    timed_out: bool = False
    output_truncated: bool = False
    additional_output: bool = False

    def to_json(self) -> str:
        """Compact JSON, leaving out empty strings, false flags and a missing exit code."""
        body: dict[str, Any] = {}
        if self.stdout:
            body["stdout"] = self.stdout
        if self.stderr:
            body["stderr"] = self.stderr
        if self.exit_code is not None:
            body["exit_code"] = self.exit_code
        if self.timed_out:
            body["timed_out"] = True
        if self.output_truncated:
            body["output_truncated"] = True
        if self.additional_output:
            body["additional_output"] = True
        return json.dumps(body, separators=(",", ":"), ensure_ascii=False)


async def _pump(stream: asyncio.StreamReader, is_stdout: bool, queue: asyncio.Queue) -> None:
    try:
        while True:
            chunk = await stream.read(_READ_SIZE)
            if not chunk:
                break
            await queue.put((is_stdout, chunk.decode("utf-8", errors="replace")))
    except (OSError, ValueError):
        pass
    finally:
        await queue.put((is_stdout, None))


async def _feed(writer: asyncio.StreamWriter, data: str) -> None:
    try:
        writer.write(data.encode("utf-8"))
        await writer.drain()
    except (BrokenPipeError, ConnectionResetError):
        pass
    finally:
        with contextlib.suppress(OSError):
            writer.close()


async def _exit_code(process: asyncio.subprocess.Process) -> int:
    code = await process.wait()
    # A command killed by a signal has no exit code; report 0 as the default.
    return code if code >= 0 else 0


@dataclass
class _Running:
    process: asyncio.subprocess.Process
    queue: asyncio.Queue
    exit_task: asyncio.Task
    pumps: list[asyncio.Task]
    stdout: str = ""
    stderr: str = ""
    stdout_pos: int = 0
    stderr_pos: int = 0
    truncated: bool = False
    additional_output: bool = False
    exit_code: int | None = None
    stdout_closed: bool = False
    stderr_closed: bool = False
    exit_collected: bool = False
    _kept_bytes: int = field(default=0)

    @property
    def pid(self) -> int:
        return self.process.pid

    def _take_chunk(self, is_stdout: bool, chunk: str) -> None:
        if self.truncated:
            if chunk:
                self.additional_output = True
            return
        remaining = max(OUTPUT_LIMIT - self._kept_bytes, 0)
        if remaining == 0:
            self.truncated = True
            if chunk:
                self.additional_output = True
            return
        encoded = chunk.encode("utf-8")
        kept = encoded[:remaining]
        self._kept_bytes += len(kept)
        part = kept.decode("utf-8", errors="ignore")
        if is_stdout:
            self.stdout += part
        else:
            self.stderr += part
        if len(kept) < len(encoded):
            self.truncated = True
            self.additional_output = True

    @property
    def _closed(self) -> bool:
        return self.stdout_closed and self.stderr_closed

    async def collect(self, limit: float) -> bool:
        """Gather output for up to ``limit`` seconds; return True if the time ran out."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + limit
        while not self._closed:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            try:
                is_stdout, chunk = await asyncio.wait_for(self.queue.get(), remaining)
            except asyncio.TimeoutError:
                break
            if chunk is None:
                if is_stdout:
                    self.stdout_closed = True
                else:
                    self.stderr_closed = True
            else:
                self._take_chunk(is_stdout, chunk)
        if self._closed:
            if not self.exit_collected:
                self.exit_collected = True
                with contextlib.suppress(Exception):
                    self.exit_code = await self.exit_task
            return False
        if self.exit_task.done() and not self.exit_task.cancelled() and self.exit_task.exception() is None:
            self.exit_code = self.exit_task.result()
        return True


async def _spawn(container: str | None, command: str, stdin: str | None, workdir: str) -> _Running:
    if container is not None:
        argv = [
            "podman", "exec", "-i", "--workdir", workdir, container,
            "bash", "--noprofile", "--norc", "-c", command,
        ]
        cwd = None
    else:
        argv = ["bash", "--noprofile", "--norc", "-c", command]
        cwd = workdir
    process = await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=cwd,
    )
    queue: asyncio.Queue = asyncio.Queue(maxsize=_QUEUE_SIZE)
    pumps = [
        asyncio.ensure_future(_pump(process.stdout, True, queue)),
        asyncio.ensure_future(_pump(process.stderr, False, queue)),
    ]
    if stdin is not None and process.stdin is not None:
        pumps.append(asyncio.ensure_future(_feed(process.stdin, stdin)))
    exit_task = asyncio.ensure_future(_exit_code(process))
    return _Running(process=process, queue=queue, exit_task=exit_task, pumps=pumps)


def _schema(properties: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {"type": "object", "properties": properties, "required": required}


class ShellServer(McpServer):
    """Runs one bash command at a time and reports its output."""

    def __init__(
        self,
        workdir: str | os.PathLike[str],
        container: str | None = None,
        time_limit: float = TIME_LIMIT,
    ) -> None:
        super().__init__("mcp-shell")
        self.workdir = os.fspath(workdir)
        self.container = container
        self.time_limit = time_limit
        self._lock = asyncio.Lock()
        self._running: _Running | None = None
        self._background: set[asyncio.Task] = set()
        self._register_tools()

    def _register_tools(self) -> None:
        self.tool_router.add(
            Tool(
                "run",
                _RUN_DESCRIPTION,
                self.run,
                _schema(
                    {
                        "command": {
                            "type": "string",
                            "description": "Command to execute, any arguments and bash syntax included.",
                        },
                        "stdin": {
                            "type": ["string", "null"],
                            "description": "Optional. Text to send to stdin.",
                            "default": None,
                        },
                        "workdir": {
                            "type": ["string", "null"],
                            "description": "Optional. Working directory to run within. "
                            "Defaults to the workspace directory.",
                            "default": None,
                        },
                    },
                    ["command"],
                ),
            )
        )
        self.tool_router.add(
            Tool(
                "wait",
                "Wait for the running command to finish. Provides the same output as run.",
                self.wait,
                _schema({}, []),
            )
        )
        self.tool_router.add(
            Tool("terminate", "Terminate the running command", self.terminate, _schema({}, []))
        )

    async def run(
        self, command: str, stdin: str | None = None, workdir: str | None = None
    ) -> CallToolResult:
        directory = workdir if workdir is not None else self.workdir
        async with self._lock:
            if self._running is not None:
                raise invalid_params("command already running")
            try:
                state = await _spawn(self.container, command, stdin, directory)
            except OSError as exc:
                raise internal_error(f"spawn failed: {exc}") from exc
            timed_out = await state.collect(self.time_limit)
            result = WaitResult(
                stdout=state.stdout,
                stderr=state.stderr,
                exit_code=state.exit_code,
                timed_out=timed_out,
                output_truncated=state.truncated,
                additional_output=state.additional_output,
            )
            if timed_out:
                state.stdout_pos = len(state.stdout)
                state.stderr_pos = len(state.stderr)
                state.additional_output = False
                self._running = state
            else:
                self._running = None
        return CallToolResult([text_content(result.to_json())])

    async def wait(self) -> CallToolResult:
        async with self._lock:
            state = self._running
            if state is None:
                raise invalid_params("no running command")
            timed_out = await state.collect(self.time_limit)
            stdout = state.stdout[state.stdout_pos:]
            stderr = state.stderr[state.stderr_pos:]
            state.stdout_pos = len(state.stdout)
            state.stderr_pos = len(state.stderr)
            result = WaitResult(
                stdout=stdout,
                stderr=stderr,
                exit_code=state.exit_code,
                timed_out=timed_out,
                output_truncated=state.truncated,
                additional_output=state.additional_output,
            )
            state.additional_output = False
            if state.stdout_closed and state.stderr_closed and state.exit_code is not None:
                self._running = None
        return CallToolResult([text_content(result.to_json())])

    async def terminate(self) -> CallToolResult:
        async with self._lock:
            state = self._running
            if state is None:
                raise invalid_params("no running command")
            self._running = None
            for task in state.pumps:
                task.cancel()
            self._background.add(state.exit_task)
            state.exit_task.add_done_callback(self._background.discard)
            try:
                os.kill(state.pid, signal.SIGTERM)
            except OSError as exc:
                raise internal_error(f"terminate failed: {exc}") from exc
        return CallToolResult([text_content("{}")])


__all__ = ["OUTPUT_LIMIT", "TIME_LIMIT", "ShellServer", "WaitResult"]