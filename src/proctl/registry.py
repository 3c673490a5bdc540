"""Process registry for proctl."""

import os
import shlex
import subprocess
import threading
from collections.abc import Iterator
from dataclasses import dataclass

import psutil

from proctl.errors import (
    InvalidArgumentError,
    LaunchFailureError,
    ProcessNotFoundError,
    TerminationFailureError,
)
from proctl.logging_setup import get_logger
from proctl.models import Process

logger = get_logger("registry")

# A pid alone can be recycled by the OS; the start time pins down one process.
ProcessKey = tuple[int, float]


@dataclass(slots=True)
class _Launched:
    """Bookkeeping for a process started by this registry."""

    name: str
    popen: subprocess.Popen


class ProcessRegistry:
    """
    Authoritative view of the processes proctl tracks.

    Samples the OS with psutil on every read. With include_system set, every
    live OS process is tracked; otherwise only the processes this registry
    launched. Mutations and listing bookkeeping are serialized by one lock.
    """

    def __init__(self, include_system: bool = True, stop_timeout: float = 5.0) -> None:
        """
        Initialize the ProcessRegistry.

        Args:
            include_system: Track every OS process, not only launched ones.
            stop_timeout: Seconds to wait after SIGTERM, and again after SIGKILL.
        """
        self._include_system = include_system
        self._stop_timeout = stop_timeout
        self._lock = threading.RLock()
        self._launched: dict[ProcessKey, _Launched] = {}

    @property
    def include_system(self) -> bool:
        """Whether processes not launched here are tracked too."""
        return self._include_system

    @property
    def stop_timeout(self) -> float:
        """Get the termination timeout."""
        return self._stop_timeout

    def list_processes(self) -> Iterator[Process]:
        """
        Return a lazy snapshot of all tracked processes.

        Memory is sampled as the iterator is consumed. Processes that vanish
        mid-iteration are skipped; access-denied memory reads report 0.
        """
        with self._lock:
            self._reap()
            launched = {key: entry.name for key, entry in self._launched.items()}

        if self._include_system:
            return self._iter_system(launched)
        return self._iter_launched(launched)

    def start(self, name: str) -> Process:
        """
        Launch a new process for the given command line.

        Raises:
            InvalidArgumentError: name is blank or cannot be parsed.
            LaunchFailureError: the OS refused to create the process.
        """
        command = (name or "").strip()
        if not command:
            raise InvalidArgumentError("process name must not be blank")
        try:
            argv = shlex.split(command)
        except ValueError as e:
            raise InvalidArgumentError(f"cannot parse command {command!r}: {e}") from e

        with self._lock:
            try:
                popen = subprocess.Popen(
                    argv,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    start_new_session=True,
                )
            except OSError as e:
                logger.error(f"Failed to launch {command!r}: {e}")
                raise LaunchFailureError(f"failed to launch {command!r}: {e.strerror or e}") from e

            try:
                proc = psutil.Process(popen.pid)
                key = (popen.pid, proc.create_time())
            except psutil.Error as e:
                popen.kill()
                popen.wait()
                raise LaunchFailureError(f"process for {command!r} could not be observed: {e}") from e

            self._launched[key] = _Launched(name=command, popen=popen)
            logger.info(f"Started {command!r} with PID {popen.pid}")
            return Process(id=popen.pid, name=command, memory=_sample_memory(proc))

    def stop(self, pid: int) -> Process:
        """
        Terminate the tracked process with the given pid.

        Sends SIGTERM, waits, then SIGKILL. The entry is dropped only once the
        process is confirmed gone.

        Raises:
            InvalidArgumentError: pid is negative, or is proctl itself or one of its ancestors.
            ProcessNotFoundError: no tracked process has this pid.
            TerminationFailureError: the OS refused or termination was not confirmed.
        """
        with self._lock:
            self._reap()
            key, proc, name = self._find(pid)
            self._terminate(proc, name)
            entry = self._launched.pop(key, None)
            if entry is not None:
                # psutil already collected the exit status; this only syncs Popen
                entry.popen.poll()
            logger.info(f"Stopped {name!r} (PID {pid})")
            return Process(id=pid, name=name, memory=0)

    def stop_by_name(self, name: str) -> list[Process]:
        """
        Terminate every tracked process whose name matches exactly.

        Raises:
            InvalidArgumentError: name is blank, or only matches proctl itself or its ancestors.
            ProcessNotFoundError: nothing matches.
            TerminationFailureError: a matching process could not be stopped.
        """
        target = (name or "").strip()
        if not target:
            raise InvalidArgumentError("process name must not be blank")

        with self._lock:
            matches = [proc.id for proc in self.list_processes() if proc.name == target]
            if not matches:
                raise ProcessNotFoundError(f"no process named {target!r}")
            protected = self._protected_pids()
            matches = [pid for pid in matches if pid not in protected]
            if not matches:
                raise InvalidArgumentError(f"refusing to stop {target!r}: proctl depends on it")

            stopped = []
            for pid in matches:
                try:
                    stopped.append(self.stop(pid))
                except ProcessNotFoundError:
                    # Exited on its own between listing and stopping
                    continue
            if not stopped:
                raise ProcessNotFoundError(f"no process named {target!r}")
            return stopped

    def _reap(self) -> None:
        """Forget launched children that have exited on their own."""
        for key, entry in list(self._launched.items()):
            if entry.popen.poll() is not None:
                logger.debug(f"{entry.name!r} (PID {key[0]}) exited with {entry.popen.returncode}")
                del self._launched[key]

    def _protected_pids(self) -> set[int]:
        """This process and its ancestors; stopping any of them takes the service down."""
        me = psutil.Process(os.getpid())
        try:
            return {me.pid} | {parent.pid for parent in me.parents()}
        except psutil.Error:
            return {me.pid}

    def _find(self, pid: int) -> tuple[ProcessKey, psutil.Process, str]:
        """Resolve a pid to a live tracked process."""
        if pid < 0:
            raise InvalidArgumentError(f"invalid process id: {pid}")
        try:
            proc = psutil.Process(pid)
            key = (pid, proc.create_time())
            if proc.status() == psutil.STATUS_ZOMBIE:
                raise ProcessNotFoundError(f"no such process: {pid}")
        except (psutil.NoSuchProcess, psutil.ZombieProcess) as e:
            raise ProcessNotFoundError(f"no such process: {pid}") from e
        except psutil.AccessDenied as e:
            raise TerminationFailureError(f"access denied to process {pid}") from e

        entry = self._launched.get(key)
        if entry is not None:
            return key, proc, entry.name
        if not self._include_system:
            raise ProcessNotFoundError(f"no such process: {pid}")
        if pid in self._protected_pids():
            raise InvalidArgumentError(f"refusing to stop process {pid}: proctl depends on it")
        try:
            return key, proc, proc.name()
        except psutil.NoSuchProcess as e:
            raise ProcessNotFoundError(f"no such process: {pid}") from e
        except psutil.AccessDenied:
            return key, proc, ""

    def _terminate(self, proc: psutil.Process, name: str) -> None:
        """Stop a process, escalating to kill if it ignores SIGTERM."""
        try:
            proc.terminate()
            try:
                proc.wait(timeout=self._stop_timeout)
            except psutil.TimeoutExpired:
                logger.warning(f"{name!r} (PID {proc.pid}) ignored SIGTERM, killing")
                proc.kill()
                proc.wait(timeout=self._stop_timeout)
        except psutil.NoSuchProcess:
            # Gone already, which is what we wanted
            return
        except psutil.AccessDenied as e:
            raise TerminationFailureError(f"access denied stopping {name!r} (PID {proc.pid})") from e
        except psutil.TimeoutExpired as e:
            raise TerminationFailureError(
                f"could not confirm {name!r} (PID {proc.pid}) stopped within {self._stop_timeout}s"
            ) from e

    def _iter_system(self, launched: dict[ProcessKey, str]) -> Iterator[Process]:
        """
        Yield every live OS process.

        Uses psutil.process_iter(), which skips processes that die mid-poll.
        """
        attrs = ["pid", "name", "memory_info", "create_time", "status"]
        for proc in psutil.process_iter(attrs=attrs):
            info = proc.info
            if info.get("status") == psutil.STATUS_ZOMBIE:
                continue

            pid = info.get("pid", 0)
            name = launched.get((pid, info.get("create_time")))
            if name is None:
                name = info.get("name") or ""

            mem_info = info.get("memory_info")
            memory = mem_info.rss if mem_info else 0
            yield Process(id=pid, name=name, memory=memory)

    def _iter_launched(self, launched: dict[ProcessKey, str]) -> Iterator[Process]:
        """Yield the launched processes that are still alive."""
        for (pid, create_time), name in launched.items():
            try:
                proc = psutil.Process(pid)
                with proc.oneshot():
                    if proc.create_time() != create_time or proc.status() == psutil.STATUS_ZOMBIE:
                        continue
                    memory = _sample_memory(proc)
            except (psutil.NoSuchProcess, psutil.ZombieProcess):
                continue
            yield Process(id=pid, name=name, memory=memory)


def _sample_memory(proc: psutil.Process) -> int:
    """Resident memory in bytes, 0 if the OS won't say."""
    try:
        return proc.memory_info().rss
    except psutil.Error:
        return 0
