"""Running-process enumeration and termination using psutil."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import psutil

from focuslock.blocking.rules import normalize_process_name, process_name_matches
from focuslock.core.exceptions import ProcessAccessError

logger = logging.getLogger(__name__)

DEFAULT_KILL_TIMEOUT = 5.0


@dataclass(frozen=True)
class ProcessInfo:
    """A running process as seen by the inspector."""

    pid: int
    name: str
    exe: str | None = None

    @property
    def normalized_name(self) -> str:
        return normalize_process_name(self.name)


class ProcessInspector:
    """Lists running processes and terminates them by name or pid.

    All methods block; callers on an event loop should run them in a worker
    thread.
    """

    def list_processes(self) -> list[ProcessInfo]:
        """Snapshot of running processes, sorted by name.

        Processes that vanish or deny access while being read are skipped.
        """
        processes = []
        for proc in psutil.process_iter(["pid", "name", "exe"]):
            try:
                info = proc.info
                name = info.get("name")
                if not name:
                    continue
                processes.append(ProcessInfo(pid=info["pid"], name=name, exe=info.get("exe")))
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue
        return sorted(processes, key=lambda p: p.name.lower())

    def running_names(self) -> set[str]:
        """Normalized names of all running processes."""
        return {p.normalized_name for p in self.list_processes()}

    def find(self, process_name: str) -> list[ProcessInfo]:
        return [p for p in self.list_processes() if process_name_matches(process_name, p.name)]

    def is_running(self, process_name: str) -> bool:
        return bool(self.find(process_name))

    def kill_by_name(self, process_name: str, timeout: float = DEFAULT_KILL_TIMEOUT) -> bool:
        """Terminate every instance of *process_name*.

        Returns True only if at least one instance was found and all of them
        exited within *timeout* seconds.
        """
        targets = self.find(process_name)
        if not targets:
            return False

        procs = []
        success = True
        for target in targets:
            try:
                proc = psutil.Process(target.pid)
                proc.terminate()
                procs.append(proc)
            except psutil.NoSuchProcess:
                continue
            except (psutil.AccessDenied, psutil.ZombieProcess) as e:
                logger.warning(f"Cannot terminate {target.name} ({target.pid}): {e}")
                success = False

        return self._wait_or_kill(procs, timeout) and success

    def kill_by_pid(self, pid: int, timeout: float = DEFAULT_KILL_TIMEOUT) -> bool:
        """Terminate a single process. Returns False if it was gone or could not be stopped."""
        try:
            proc = psutil.Process(pid)
            proc.terminate()
        except psutil.NoSuchProcess:
            return False
        except (psutil.AccessDenied, psutil.ZombieProcess) as e:
            logger.warning(f"Cannot terminate pid {pid}: {e}")
            return False

        return self._wait_or_kill([proc], timeout)

    def process_path(self, pid: int) -> str:
        """Executable path of *pid*.

        Raises:
            ProcessAccessError: The process is gone or its path is hidden.
        """
        try:
            return psutil.Process(pid).exe()
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess) as e:
            raise ProcessAccessError(f"Cannot read executable of pid {pid}: {e}", pid) from e

    def _wait_or_kill(self, procs: list[psutil.Process], timeout: float) -> bool:
        if not procs:
            return True

        # Graceful terminate first, then force kill whatever is left
        _, alive = psutil.wait_procs(procs, timeout=timeout / 2)
        for proc in alive:
            try:
                proc.kill()
            except psutil.NoSuchProcess:
                continue
            except psutil.AccessDenied as e:
                logger.warning(f"Cannot kill pid {proc.pid}: {e}")

        if alive:
            _, alive = psutil.wait_procs(alive, timeout=timeout / 2)

        if alive:
            logger.warning(f"{len(alive)} process(es) still running after {timeout}s")
        return not alive
