"""
FFmpeg process handling for a single relay destination.

Launches one FFmpeg process, waits for it to exit and reports abnormal
exits as DestinationProcessError. Killing is forceful and idempotent.
"""

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

import psutil

from relay_manager.command_builder import RelayCommandBuilder
from shared.config import DestinationDefinition

logger = logging.getLogger(__name__)


class ProcessState(str, Enum):
    """Lifecycle state of a destination process."""

    PENDING = "pending"
    RUNNING = "running"
    EXITED = "exited"
    FAILED = "failed"
    KILLED = "killed"


class DestinationProcessError(Exception):
    """A destination FFmpeg process failed to launch or exited abnormally."""

    def __init__(self, destination: str, message: str, returncode: Optional[int] = None):
        self.destination = destination
        self.returncode = returncode
        super().__init__(f"destination {destination}: {message}")


class DestinationProcess:
    """One FFmpeg process pushing the source stream to one destination."""

    def __init__(
        self,
        destination: DestinationDefinition,
        command: List[str],
        log_output: bool = True,
    ):
        """
        Initialize destination process.

        Args:
            destination: Destination this process pushes to
            command: Full FFmpeg command line
            log_output: Forward FFmpeg output to the service output
        """
        self.destination = destination
        self.command = command
        self.log_output = log_output
        self.state = ProcessState.PENDING
        self.started_at: Optional[datetime] = None
        self.returncode: Optional[int] = None
        self._process: Optional[asyncio.subprocess.Process] = None
        self._killed = False

    @property
    def name(self) -> str:
        return self.destination.name

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def is_running(self) -> bool:
        return self.state == ProcessState.RUNNING

    async def run(self) -> None:
        """
        Launch the process and wait for it to exit.

        Returns normally on a clean exit or when the process was killed
        through kill().

        Raises:
            DestinationProcessError: If launch fails or the exit code is non-zero
        """
        if self._killed:
            self.state = ProcessState.KILLED
            return

        output = None if self.log_output else asyncio.subprocess.DEVNULL
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=output,
                stderr=output,
            )
        except (OSError, ValueError) as e:
            self.state = ProcessState.FAILED
            raise DestinationProcessError(self.name, f"failed to start ffmpeg: {e}") from e

        self.state = ProcessState.RUNNING
        self.started_at = datetime.now()
        logger.info(
            f"FFmpeg started for {self.name} (PID: {self._process.pid}): "
            f"{RelayCommandBuilder.get_log_string(self.command)}"
        )

        # kill() may have raced with the launch
        if self._killed:
            self._kill_process()

        try:
            returncode = await self._process.wait()
        except asyncio.CancelledError:
            self.kill()
            raise

        self.returncode = returncode
        if self._killed:
            self.state = ProcessState.KILLED
            logger.debug(f"FFmpeg for {self.name} killed (code {returncode})")
            return

        if returncode != 0:
            self.state = ProcessState.FAILED
            logger.warning(f"FFmpeg for {self.name} exited with code {returncode}")
            raise DestinationProcessError(
                self.name, f"ffmpeg exited with code {returncode}", returncode=returncode
            )

        self.state = ProcessState.EXITED
        logger.info(f"FFmpeg for {self.name} exited cleanly")

    def kill(self) -> None:
        """Forcefully terminate the process. Safe to call at any time, repeatedly."""
        self._killed = True
        self._kill_process()

    def _kill_process(self) -> None:
        process = self._process
        if process is None or process.returncode is not None:
            return
        try:
            process.kill()
        except ProcessLookupError:
            pass

    def resource_usage(self) -> Optional[Dict[str, float]]:
        """CPU and memory usage of the running process, if available."""
        if not self.is_running or self.pid is None:
            return None
        try:
            proc = psutil.Process(self.pid)
            return {
                "cpu_percent": proc.cpu_percent(interval=None),
                "memory_mb": proc.memory_info().rss / 1024 / 1024,
            }
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return None
