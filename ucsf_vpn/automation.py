"""
Keyboard automation of the Pulse Secure GUI.

The GUI has no programmatic interface, so logging in is done by sending
synthetic key presses to its windows with 'xdotool'. A login is described
as a list of steps (see `build_login_script`) that an `AutomationSession`
executes one at a time. Every step encodes an observed screen layout; a
window that cannot be found is a fatal desync, never retried.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ucsf_vpn.constants import (
    PULSE_CONNECT_TAB_OFFSET,
    PULSE_CONNECT_TABS_PER_ROW,
    PULSE_NOTIFICATION_TABS,
    PULSE_POPUP_POLL_INTERVAL,
)
from ucsf_vpn.credentials import Credentials
from ucsf_vpn.errors import AutomationDesyncError
from ucsf_vpn.utils import print_debug, print_plain, run_command, with_spinner


class XdotoolWindowDriver:
    """Finds windows and sends input events via 'xdotool'."""

    def __init__(self, executable: str = "xdotool"):
        self.executable = executable

    def _run(self, *args: str, **kwargs) -> bool:
        success, _ = run_command([self.executable] + list(args), check=True, silent=True, **kwargs)
        return success

    def search(self, name: str, pid: Optional[int] = None) -> List[str]:
        """IDs of visible windows with a matching name (optionally owned by pid)."""
        command = [self.executable, "search", "--all", "--onlyvisible"]
        if pid is not None:
            command += ["--pid", str(pid)]
        command += ["--name", name]
        # xdotool exits with status 1 when nothing matches
        success, result = run_command(command, check=True, silent=True)
        if not success:
            return []
        return result.stdout.split()

    def click(self, wid: str) -> bool:
        return self._run("windowmap", "--sync", wid, "windowactivate", "--sync", wid,
                         "windowfocus", "--sync", wid, "windowraise", wid,
                         "mousemove", "--window", wid, "--sync", "0", "0",
                         "sleep", "0.1", "click", "1", "sleep", "0.1")

    def press(self, wid: str, keys: Sequence[str], repeat: int = 1) -> bool:
        args = ["windowactivate", "--sync", wid, "key", "--delay", "50"]
        if repeat > 1:
            args += ["--repeat", str(repeat)]
        return self._run(*args, *keys)

    def type_text(self, wid: str, text: str) -> bool:
        # Read from stdin so that secrets never show up in the process list
        return self._run("windowactivate", "--sync", wid, "type", "--file", "-", input=text)

    def minimize(self, wid: str) -> bool:
        return self._run("windowminimize", wid)

    def kill_windows(self, name: str, pid: int) -> bool:
        return self._run("search", "--all", "--onlyvisible", "--pid", str(pid), "--name", name, "windowkill")


class AutomationSession:
    """Executes automation steps and remembers the windows found so far."""

    def __init__(self, driver: XdotoolWindowDriver, window_name: str, owner_pid: Optional[int] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self.driver = driver
        self.window_name = window_name
        self.owner_pid = owner_pid
        self.sleep = sleep
        self.clock = clock
        self.windows: Dict[str, str] = {}
        self.step_number = 0

    def window(self, slot: str) -> str:
        try:
            return self.windows[slot]
        except KeyError:
            raise AutomationDesyncError(f"No '{slot}' window has been located") from None

    def run(self, steps: Sequence["Step"]) -> None:
        for step in steps:
            print_debug(f"Automation step: {step}")
            step.execute(self)


class Step(ABC):
    """One action in a GUI automation script."""

    @abstractmethod
    def execute(self, session: AutomationSession) -> None:
        """Perform the action against the session's windows."""


@dataclass(frozen=True)
class Pause(Step):
    seconds: float

    def execute(self, session):
        session.sleep(self.seconds)


@dataclass(frozen=True)
class Announce(Step):
    """Print a numbered progress line."""
    message: str

    def execute(self, session):
        session.step_number += 1
        print_plain(f" {session.step_number}. {self.message}")


@dataclass(frozen=True)
class LocateWindow(Step):
    """
    Find a window and store its ID under `slot`.

    With `owned`, only windows of the GUI process are considered. Windows
    already stored in the `exclude` slots are ignored, so that a newly
    opened popup can be told apart from the main window. If several
    candidates remain, the last one listed is used.
    """
    slot: str
    owned: bool = False
    exclude: Tuple[str, ...] = ()
    error: str = "Failed to locate the Pulse Secure GUI window"

    def execute(self, session):
        pid = session.owner_pid if self.owned else None
        wids = session.driver.search(session.window_name, pid=pid)
        print_debug(f"{session.window_name} Window IDs: {' '.join(wids)}")
        excluded = {session.window(slot) for slot in self.exclude}
        candidates = [wid for wid in wids if wid not in excluded]
        if not candidates:
            raise AutomationDesyncError(self.error)
        session.windows[self.slot] = candidates[-1]
        print_debug(f"{session.window_name} '{self.slot}' Window ID: {candidates[-1]}")


@dataclass(frozen=True)
class ClickWindow(Step):
    slot: str

    def execute(self, session):
        session.driver.click(session.window(self.slot))


@dataclass(frozen=True)
class PressKeys(Step):
    slot: str
    keys: Tuple[str, ...]
    repeat: int = 1

    def execute(self, session):
        session.driver.press(session.window(self.slot), self.keys, repeat=self.repeat)


@dataclass(frozen=True)
class TypeText(Step):
    slot: str
    text: str = field(repr=False)

    def execute(self, session):
        session.driver.type_text(session.window(self.slot), self.text)


@dataclass(frozen=True)
class MinimizeWindow(Step):
    slot: str

    def execute(self, session):
        session.driver.minimize(session.window(self.slot))


@dataclass(frozen=True)
class WaitForClose(Step):
    """
    Block until a window disappears.

    Polls without limit unless a timeout is given; the popup closing is the
    only signal that the login went through.
    """
    slot: str
    interval: float = PULSE_POPUP_POLL_INTERVAL
    timeout: Optional[float] = None

    def execute(self, session):
        wid = session.window(self.slot)
        started = session.clock()
        with with_spinner(f"Waiting for {session.window_name} window ({wid}) to close..."):
            while wid in session.driver.search(session.window_name):
                if self.timeout is not None and session.clock() - started >= self.timeout:
                    raise AutomationDesyncError(
                        f"{session.window_name} window ({wid}) did not close within {self.timeout:g} seconds"
                    )
                session.sleep(self.interval)
        print_debug(f"{session.window_name} window ({wid}) closed")


def connect_tab_count(profile_index: int) -> int:
    """Tab presses needed to reach the 'Connect' button of a connection row."""
    return PULSE_CONNECT_TAB_OFFSET + PULSE_CONNECT_TABS_PER_ROW * profile_index


def build_login_script(profile_index: int, credentials: Credentials, dual_factor: bool,
                       notification: bool = False, speed: float = 1.0,
                       popup_timeout: Optional[float] = None) -> List[Step]:
    """
    The sequence of steps that logs in through the Pulse Secure GUI.

    Args:
        profile_index: Position of the connection in the GUI's connection list
        credentials: Username, password and token to enter
        dual_factor: Whether to select the two-factor realm
        notification: Whether to click through the announcement popup
        speed: Speed factor; all waits are divided by it
        popup_timeout: Maximum wait for the final popup to close (None waits forever)
    """
    steps: List[Step] = [
        Pause(1.0 / speed),
        LocateWindow("main", owned=True, error="Failed to locate the Pulse Secure GUI window"),
        Announce("selecting connection"),
        ClickWindow("main"),
        PressKeys("main", ("Tab",), repeat=connect_tab_count(profile_index)),
        PressKeys("main", ("Return",)),
        MinimizeWindow("main"),
        Pause(2.0 / speed),
        LocateWindow("popup", exclude=("main",), error="Failed to locate the Pulse Secure GUI popup window"),
    ]

    if notification:
        steps += [
            Announce("clicking through UCSF notification popup window (--no-notification if it doesn't exist)"),
            PressKeys("popup", ("Tab",), repeat=PULSE_NOTIFICATION_TABS),
            PressKeys("popup", ("Return",)),
            Pause(2.0 / speed),
        ]
    else:
        steps.append(Announce("skipping UCSF notification popup window (--notification if it exists)"))

    realm_keys = ("Tab", "Down", "Tab", "Return") if dual_factor else ("Tab", "Tab", "Return")
    steps += [
        Announce("entering user credentials and selecting realm"),
        TypeText("popup", credentials.username),
        PressKeys("popup", ("Tab",)),
        TypeText("popup", credentials.password or ""),
        PressKeys("popup", realm_keys),
    ]

    if credentials.uses_token:
        steps += [
            Pause(1.0 / speed),
            LocateWindow("token", exclude=("main",), error="Failed to locate the Pulse Secure GUI popup window"),
            Announce("entering 2FA token"),
            TypeText("token", credentials.token),
            PressKeys("token", ("Return",)),
            WaitForClose("token", timeout=popup_timeout),
        ]
    else:
        steps.append(WaitForClose("popup", timeout=popup_timeout))

    steps.append(Announce("connecting ..."))
    return steps
