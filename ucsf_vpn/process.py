"""Tracking of the background VPN process via its PID file."""

from pathlib import Path
from typing import Optional

import psutil

from ucsf_vpn.utils import print_debug, print_warning, run_command


class ProcessHandle:
    """A running external process, identified by its PID."""

    def __init__(self, pid: int):
        self.pid = pid

    def __repr__(self) -> str:
        return f"ProcessHandle(pid={self.pid})"

    def is_alive(self) -> bool:
        """Check whether the process exists and is not a zombie."""
        try:
            return psutil.Process(self.pid).status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            # Exists, but is owned by another user (e.g. root)
            return True

    def _signal(self, signal_name: str, use_sudo: bool) -> bool:
        command = ["kill", "-s", signal_name, str(self.pid)]
        if use_sudo:
            command = ["sudo"] + command
        success, _ = run_command(command, check=True, silent=True)
        return success

    def interrupt(self, use_sudo: bool = True) -> bool:
        """Send SIGINT, asking the process to shut down gracefully."""
        print_debug(f"Sending INT to process {self.pid}")
        return self._signal("INT", use_sudo)

    def wait(self, timeout: float) -> bool:
        """Wait up to `timeout` seconds for the process to exit. Returns True if it is gone."""
        try:
            psutil.Process(self.pid).wait(timeout=timeout)
        except psutil.NoSuchProcess:
            return True
        except psutil.TimeoutExpired:
            return not self.is_alive()
        return True


class ProcessTracker:
    """Maps the backend's running instance to a PID via its PID file."""

    def __init__(self, pid_file: Path):
        self.pid_file = Path(pid_file)

    def pid_file_exists(self) -> bool:
        return self.pid_file.is_file()

    def current_pid(self) -> Optional[int]:
        """
        Return the PID of the running process, or None.

        A PID file that refers to a process that is no longer running is
        removed.
        """
        if not self.pid_file.is_file():
            print_debug(f"PID file does not exist: {self.pid_file}")
            return None

        content = self.pid_file.read_text().strip()
        print_debug(f"PID recorded in file: {content}")
        try:
            pid = int(content)
        except ValueError:
            pid = None

        if pid is not None and pid > 0 and ProcessHandle(pid).is_alive():
            print_debug(f"Process is running: {pid}")
            return pid

        if self.remove_pid_file():
            print_warning(f"Removed stray PID file with non-existing process (PID={content}): {self.pid_file}")
        return None

    def current_process(self) -> Optional[ProcessHandle]:
        pid = self.current_pid()
        return ProcessHandle(pid) if pid is not None else None

    def remove_pid_file(self) -> bool:
        """Delete the PID file; returns False if it was already gone."""
        try:
            self.pid_file.unlink()
        except FileNotFoundError:
            return False
        return True
