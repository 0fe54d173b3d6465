# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

# src/collector_library/push_coordinator.py

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Set

from .config.defaults import DEFAULT_PUSH_RETRY_DELAY, DEFAULT_PUSH_TIMEOUT

lib_logger = logging.getLogger("collector_library")

PUSH_QUEUED_MESSAGE = "Push already in progress, will push again after"


@dataclass(frozen=True)
class PushResult:
    success: bool
    message: str

    def to_dict(self) -> dict:
        return {"success": self.success, "message": self.message}


class PushCoordinator:
    """
    Runs the external push command with at most one process in flight.

    States: idle, running, running with one pending re-run.

    - The caller that starts a push waits for it and gets the real result.
    - Callers arriving while a push runs get an immediate acknowledgment and
      mark one re-run as pending; any number of them collapse into one.
    - When a push finishes with a re-run pending, a fresh push starts after
      retry_delay seconds.
    """

    def __init__(
        self,
        command: Sequence[str],
        cwd: Optional[Path | str] = None,
        retry_delay: float = DEFAULT_PUSH_RETRY_DELAY,
        timeout: Optional[float] = DEFAULT_PUSH_TIMEOUT,
    ):
        if not command:
            raise ValueError("Push command must not be empty")
        self.command = list(command)
        self.cwd = str(cwd) if cwd is not None else None
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.is_pushing = False
        self.pending_push = False
        self.runs_started = 0
        self._followups: Set[asyncio.Task] = set()

    @property
    def state(self) -> str:
        if not self.is_pushing:
            return "idle"
        return "running+pending" if self.pending_push else "running"

    async def request_push(self) -> PushResult:
        # Check-and-set has no await in between, so it is atomic on the loop
        if self.is_pushing:
            self.pending_push = True
            lib_logger.info("Push requested while another is running; queued re-run")
            return PushResult(True, PUSH_QUEUED_MESSAGE)
        self.is_pushing = True
        return await self._run_and_settle()

    async def _run_and_settle(self) -> PushResult:
        try:
            result = await self._run_command()
        finally:
            self.is_pushing = False
            if self.pending_push:
                self.pending_push = False
                self._schedule_followup()
        return result

    def _schedule_followup(self) -> None:
        task = asyncio.create_task(self._followup())
        self._followups.add(task)
        task.add_done_callback(self._followups.discard)

    async def _followup(self) -> None:
        await asyncio.sleep(self.retry_delay)
        result = await self.request_push()
        if not result.success:
            lib_logger.warning(f"Queued push failed: {result.message}")

    async def _run_command(self) -> PushResult:
        self.runs_started += 1
        lib_logger.info(f"Pushing to remote: {' '.join(self.command)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *self.command,
                cwd=self.cwd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            lib_logger.error(f"Push error: {e}")
            return PushResult(False, str(e))

        try:
            await asyncio.wait_for(
                asyncio.gather(
                    self._relay(process.stdout, logging.INFO),
                    self._relay(process.stderr, logging.WARNING),
                    process.wait(),
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            await self._kill(process)
            lib_logger.error(f"Push timed out after {self.timeout}s")
            return PushResult(False, f"Push timed out after {self.timeout}s")
        except asyncio.CancelledError:
            lib_logger.warning("Push cancelled; killing push command")
            await self._kill(process)
            raise

        code = process.returncode
        if code == 0:
            lib_logger.info("Push complete")
            return PushResult(True, "Pushed to remote successfully")
        lib_logger.error(f"Push failed with code {code}")
        return PushResult(False, f"Push failed with code {code}")

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()

    @staticmethod
    async def _relay(stream: Optional[asyncio.StreamReader], level: int) -> None:
        if stream is None:
            return
        async for raw_line in stream:
            line = raw_line.decode("utf-8", errors="replace").rstrip()
            if line:
                lib_logger.log(level, f"   {line}")

    async def wait_idle(self) -> None:
        """Wait until no push is running and no re-run is scheduled."""
        while self.is_pushing or self._followups:
            if self._followups:
                await asyncio.gather(*list(self._followups), return_exceptions=True)
            else:
                await asyncio.sleep(0.05)
