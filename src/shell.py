#!/usr/bin/env python3
"""
Synchronous external process runner.

Every helper tool the pipeline depends on (acpidump, acpixtract, iasl, cpio,
grubby) is executed through :class:`Shell`, which enforces a timeout and polls
a :class:`CancelToken` so an operator abort kills the child promptly.
"""

import logging
import shlex
import shutil
import subprocess
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Union

from acpied.exceptions import PipelineCancelled, ToolError
from acpied.string_utils import log_debug_safe, log_warning_safe, safe_format

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class CancelToken:
    """Thread-safe cancellation flag shared by one apply attempt."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def reset(self) -> None:
        """Re-arm the token for the next attempt."""
        self._event.clear()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, stage: Optional[str] = None) -> None:
        if self._event.is_set():
            raise PipelineCancelled("operation cancelled by operator", stage=stage)


@dataclass
class CommandResult:
    """Captured outcome of one external command."""

    args: List[str]
    returncode: int
    stdout: bytes = b""
    stderr: bytes = b""
    duration: float = field(default=0.0, compare=False)

    @property
    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")

    @property
    def diagnostic(self) -> str:
        """Combined tool output, stderr first; ACPICA tools report on both."""
        return "\n".join(
            part.strip() for part in (self.stderr_text, self.stdout_text) if part.strip()
        )


class Shell:
    """Runs external commands with timeout and cancellation support."""

    POLL_INTERVAL = 0.1

    def __init__(
        self,
        timeout: float = 120.0,
        cancel_token: Optional[CancelToken] = None,
    ):
        self.timeout = timeout
        self.cancel_token = cancel_token or CancelToken()

    @staticmethod
    def which(executable: str) -> Optional[str]:
        """Resolve an executable on PATH."""
        return shutil.which(executable)

    def run(
        self,
        args: Sequence[PathLike],
        cwd: Optional[PathLike] = None,
        timeout: Optional[float] = None,
        input_data: Optional[bytes] = None,
        check: bool = True,
    ) -> CommandResult:
        """
        Execute a command and wait for it to finish.

        Args:
            args: Argument vector; never interpreted by a shell
            cwd: Working directory for the child
            timeout: Seconds before the child is killed (default: self.timeout)
            input_data: Bytes written to the child's stdin
            check: Raise ToolError on a non-zero exit status

        Raises:
            ToolError: executable missing, timeout, or non-zero exit with check
            PipelineCancelled: the cancel token fired while the child ran
        """
        argv = [str(a) for a in args]
        command = " ".join(shlex.quote(a) for a in argv)
        timeout = self.timeout if timeout is None else timeout

        self.cancel_token.raise_if_cancelled()
        log_debug_safe(logger, "Running: {cmd}", prefix="SHELL", cmd=command)

        started = time.monotonic()
        try:
            proc = subprocess.Popen(
                argv,
                cwd=str(cwd) if cwd is not None else None,
                stdin=subprocess.PIPE if input_data is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ToolError(
                safe_format("Executable not found: {exe}", exe=argv[0]),
                command=command,
            ) from e
        except OSError as e:
            raise ToolError(
                safe_format("Failed to start {cmd}: {err}", cmd=command, err=str(e)),
                command=command,
            ) from e

        pending_input = input_data
        deadline = started + timeout
        while True:
            try:
                stdout, stderr = proc.communicate(
                    input=pending_input, timeout=self.POLL_INTERVAL
                )
                break
            except subprocess.TimeoutExpired:
                # communicate() refuses input on retry; it is already queued
                pending_input = None
                if self.cancel_token.cancelled:
                    self._kill(proc)
                    log_warning_safe(
                        logger, "Cancelled: {cmd}", prefix="SHELL", cmd=command
                    )
                    raise PipelineCancelled(
                        safe_format("cancelled while running {cmd}", cmd=command)
                    )
                if time.monotonic() >= deadline:
                    self._kill(proc)
                    raise ToolError(
                        safe_format(
                            "Command timed out after {timeout}s: {cmd}",
                            timeout=timeout,
                            cmd=command,
                        ),
                        command=command,
                    )

        result = CommandResult(
            args=argv,
            returncode=proc.returncode,
            stdout=stdout or b"",
            stderr=stderr or b"",
            duration=time.monotonic() - started,
        )

        if check and result.returncode != 0:
            raise ToolError(
                safe_format(
                    "Command failed with exit code {code}: {cmd}",
                    code=result.returncode,
                    cmd=command,
                ),
                command=command,
                returncode=result.returncode,
                output=result.diagnostic,
            )
        return result

    def run_check(self, args: Sequence[PathLike], **kwargs) -> bool:
        """Run a command and return True if it exited with status 0."""
        try:
            self.run(args, **kwargs)
            return True
        except ToolError:
            return False

    @staticmethod
    def _kill(proc: subprocess.Popen) -> None:
        proc.kill()
        proc.communicate()
