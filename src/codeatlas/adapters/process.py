"""Bounded subprocess execution for adapters.

Every external tool an adapter launches goes through ``run_bounded``:

- the environment is reduced to a small allow-list (no ambient credentials);
- on POSIX, CPU time and address space are capped with ``resource`` limits
  and the child gets its own session so the whole process group can be
  signalled;
- output is read in chunks with a hard size cap;
- the cancellation token is polled while the child runs, and cancellation
  or timeout escalates SIGTERM, then SIGKILL after the grace window.
"""

from __future__ import annotations

import os
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from ..logging_config import get_logger
from .cancellation import CancellationToken

logger = get_logger(__name__)

# Environment variables a child process may inherit
SAFE_ENV_KEYS = ("PATH", "HOME", "LANG", "LC_ALL", "LC_CTYPE", "TMPDIR", "TZ", "SYSTEMROOT")

DEFAULT_MAX_OUTPUT_BYTES = 50 * 1024 * 1024
_CHUNK = 1024 * 1024
_POLL_SECONDS = 0.05


@dataclass
class ProcessResult:
    returncode: Optional[int]
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    cancelled: bool = False
    truncated: bool = False
    duration: float = 0.0
    error: Optional[str] = None  # set when the process could not be started

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not (self.timed_out or self.cancelled or self.error)


class _StreamReader(threading.Thread):
    """Drain one pipe into memory, stopping at ``limit`` bytes."""

    def __init__(self, stream, limit: int):
        super().__init__(daemon=True)
        self._stream = stream
        self._limit = limit
        self.chunks: list[bytes] = []
        self.size = 0
        self.truncated = False

    def run(self) -> None:
        while True:
            chunk = self._stream.read(_CHUNK)
            if not chunk:
                break
            if self.truncated:
                continue
            self.size += len(chunk)
            if self.size > self._limit:
                self.truncated = True
                keep = len(chunk) - (self.size - self._limit)
                self.chunks.append(chunk[:keep])
                continue
            self.chunks.append(chunk)

    def text(self) -> str:
        return b"".join(self.chunks).decode("utf-8", errors="replace")


def _limits(cpu_seconds: Optional[int], memory_bytes: Optional[int]):
    """preexec_fn applying resource limits in the child (POSIX only)."""
    if os.name != "posix" or (cpu_seconds is None and memory_bytes is None):
        return None

    def apply() -> None:
        import resource

        if cpu_seconds is not None:
            resource.setrlimit(resource.RLIMIT_CPU, (cpu_seconds, cpu_seconds))
        if memory_bytes is not None:
            resource.setrlimit(resource.RLIMIT_AS, (memory_bytes, memory_bytes))

    return apply


def _signal(proc: subprocess.Popen, sig: int) -> None:
    try:
        if os.name == "posix":
            os.killpg(proc.pid, sig)
        elif sig == getattr(signal, "SIGKILL", None):
            proc.kill()
        else:
            proc.terminate()
    except (ProcessLookupError, PermissionError):
        pass


def terminate(proc: subprocess.Popen, grace: float) -> None:
    """SIGTERM the process group, then SIGKILL if it outlives ``grace``."""
    _signal(proc, signal.SIGTERM)
    try:
        proc.wait(timeout=grace)
    except subprocess.TimeoutExpired:
        logger.debug(f"pid {proc.pid} ignored SIGTERM, killing")
        _signal(proc, getattr(signal, "SIGKILL", signal.SIGTERM))
        proc.wait()


def run_bounded(
    cmd: Sequence[str],
    cwd: Optional[str | os.PathLike] = None,
    cancel: Optional[CancellationToken] = None,
    timeout: Optional[float] = None,
    grace: float = 5.0,
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
    cpu_seconds: Optional[int] = None,
    memory_bytes: Optional[int] = None,
    env: Optional[Mapping[str, str]] = None,
) -> ProcessResult:
    """Run ``cmd`` under time, output and resource bounds.

    Args:
        cmd: Command and arguments
        cwd: Working directory
        cancel: Token polled while the process runs
        timeout: Wall-clock limit in seconds
        grace: Seconds between SIGTERM and SIGKILL
        max_output_bytes: Cap per stream; the process is terminated when exceeded
        cpu_seconds: RLIMIT_CPU for the child
        memory_bytes: RLIMIT_AS for the child
        env: Extra environment entries on top of SAFE_ENV_KEYS

    Returns:
        ProcessResult; never raises for process failures
    """
    child_env = {k: os.environ[k] for k in SAFE_ENV_KEYS if k in os.environ}
    if env:
        child_env.update(env)

    start = time.monotonic()
    try:
        proc = subprocess.Popen(
            list(cmd),
            cwd=os.fspath(cwd) if cwd is not None else None,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=child_env,
            close_fds=True,
            start_new_session=(os.name == "posix"),
            preexec_fn=_limits(cpu_seconds, memory_bytes),
        )
    except (FileNotFoundError, PermissionError) as e:
        return ProcessResult(returncode=None, error=str(e))

    out = _StreamReader(proc.stdout, max_output_bytes)
    err = _StreamReader(proc.stderr, max_output_bytes)
    out.start()
    err.start()

    timed_out = cancelled = False
    try:
        while proc.poll() is None:
            if cancel is not None and cancel.cancelled:
                cancelled = True
            elif timeout is not None and time.monotonic() - start >= timeout:
                timed_out = True
            elif out.truncated or err.truncated:
                logger.warning(
                    f"{cmd[0]} output exceeded {max_output_bytes // (1024 * 1024)}MB limit, truncating"
                )
            else:
                if cancel is not None:
                    cancel.wait(_POLL_SECONDS)
                else:
                    time.sleep(_POLL_SECONDS)
                continue
            terminate(proc, grace)
            break
    finally:
        out.join(timeout=grace)
        err.join(timeout=grace)
        for stream in (proc.stdout, proc.stderr):
            if stream is not None:
                stream.close()

    return ProcessResult(
        returncode=proc.returncode,
        stdout=out.text(),
        stderr=err.text(),
        timed_out=timed_out,
        cancelled=cancelled,
        truncated=out.truncated or err.truncated,
        duration=time.monotonic() - start,
    )
