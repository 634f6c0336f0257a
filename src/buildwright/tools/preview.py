"""Preview controller — owns the dev server process for one project."""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import signal
import time
from collections import deque
from pathlib import Path

import httpx

from buildwright.config import PreviewConfig
from buildwright.exceptions import PreviewUnreachableError

log = logging.getLogger(__name__)


class PreviewController:
    """Start, stop and restart the live preview of the generated app.

    At most one server process is alive at a time; restart waits for the
    old one to be fully gone before spawning the next. Everything the
    server prints goes into a bounded console buffer the verifier reads.
    """

    def __init__(self, root: Path, config: PreviewConfig | None = None) -> None:
        self.root = root
        self.config = config or PreviewConfig()
        self._proc: asyncio.subprocess.Process | None = None
        self._reader: asyncio.Task | None = None
        self._console: deque[str] = deque(maxlen=self.config.console_lines)
        self._lock = asyncio.Lock()

    @property
    def port(self) -> int:
        return self.config.port

    @property
    def url(self) -> str:
        return f"http://{self.config.host}:{self.port}"

    def is_running(self) -> bool:
        return self._proc is not None and self._proc.returncode is None

    def console_snapshot(self) -> str:
        return "\n".join(self._console)

    def clear_console(self) -> None:
        self._console.clear()

    # ── lifecycle ──

    async def start(self) -> int:
        async with self._lock:
            return await self._start()

    async def stop(self) -> None:
        async with self._lock:
            await self._stop()

    async def restart(self) -> int:
        async with self._lock:
            await self._stop()
            return await self._start()

    async def _start(self) -> int:
        if self.is_running():
            return self.port

        argv = shlex.split(self.config.command.replace("{port}", str(self.port)))
        log.debug("Starting preview: %s (cwd=%s)", argv, self.root)
        self.clear_console()
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *argv,
                cwd=self.root,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                start_new_session=True,
            )
        except OSError as e:
            raise PreviewUnreachableError(f"Could not launch preview: {e}") from e

        self._reader = asyncio.create_task(self._pump(self._proc))

        try:
            await self._wait_until_ready()
        except PreviewUnreachableError as e:
            await self._stop()
            e.output = self.console_snapshot()
            raise

        if self.config.settle_delay > 0:
            await asyncio.sleep(self.config.settle_delay)
        log.info("Preview up at %s", self.url)
        return self.port

    async def _pump(self, proc: asyncio.subprocess.Process) -> None:
        assert proc.stdout is not None
        while True:
            line = await proc.stdout.readline()
            if not line:
                break
            self._console.append(line.decode("utf-8", errors="replace").rstrip("\n"))

    async def _wait_until_ready(self) -> None:
        deadline = time.monotonic() + self.config.startup_timeout
        async with httpx.AsyncClient(timeout=2.0) as http:
            while time.monotonic() < deadline:
                if not self.is_running():
                    # Let the reader drain whatever the crash printed
                    if self._reader is not None:
                        await asyncio.wait({self._reader}, timeout=1.0)
                    raise PreviewUnreachableError(
                        f"Preview exited with code {self._proc.returncode} before opening port {self.port}",
                    )
                try:
                    await http.get(self.url)
                    return
                except httpx.TransportError:
                    pass
                await asyncio.sleep(0.25)
        raise PreviewUnreachableError(
            f"Preview did not answer on port {self.port} within {self.config.startup_timeout:.0f}s",
        )

    async def _stop(self) -> None:
        proc = self._proc
        if proc is None:
            return
        if proc.returncode is None:
            self._signal(proc, signal.SIGTERM)
            try:
                await asyncio.wait_for(proc.wait(), timeout=self.config.stop_timeout)
            except asyncio.TimeoutError:
                log.warning("Preview ignored SIGTERM, killing it")
                self._signal(proc, signal.SIGKILL)
                await proc.wait()
        if self._reader is not None:
            await asyncio.wait({self._reader}, timeout=1.0)
            self._reader.cancel()
            self._reader = None
        self._proc = None

    @staticmethod
    def _signal(proc: asyncio.subprocess.Process, sig: int) -> None:
        # The server runs in its own session; signal the whole group so
        # npm's child (vite) goes down with it.
        try:
            os.killpg(proc.pid, sig)
        except ProcessLookupError:
            pass
