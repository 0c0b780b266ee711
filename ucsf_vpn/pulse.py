"""
Pulse Secure driver for ucsf-vpn.
Connects either by operating the Pulse Secure GUI ('pulseUi') through
keyboard automation, or via the 'pulsesvc' command-line service.
"""

import json
import os
import re
import shlex
import shutil
import subprocess
import time
from pathlib import Path
from typing import Callable, List, Optional

import psutil

from ucsf_vpn.automation import AutomationSession, XdotoolWindowDriver, build_login_script
from ucsf_vpn.backend import BackendDriver
from ucsf_vpn.config import SessionConfig
from ucsf_vpn.connectivity import ConnectivityProber
from ucsf_vpn.constants import PULSE_CONNECTION_NAME, PULSE_GUI_PROCESS, PULSE_WINDOW_NAME
from ucsf_vpn.credentials import CredentialResolver, Credentials
from ucsf_vpn.errors import (
    AutomationDesyncError,
    StateConflictError,
    UserInputError,
    VPNEnvironmentError,
)
from ucsf_vpn.status import StatusEngine
from ucsf_vpn.tokens import TokenKind, describe_token, is_token_enabled
from ucsf_vpn.utils import (
    command_output,
    print_debug,
    print_info,
    print_note,
    print_plain,
    print_success,
    print_warning,
    run_command,
)

_RECORD = re.compile(r"^[ \t]*{.+}[ \t]*$")


def pulse_config_home() -> Path:
    return Path.home() / ".pulse_secure" / "pulse"


class PulseConnections:
    """The Pulse Secure GUI's list of connections, one JSON record per line."""

    def __init__(self, path: Path = None):
        self.path = Path(path) if path else pulse_config_home() / ".pulse_Connections.txt"

    def records(self) -> List[str]:
        if not self.path.is_file():
            return []
        lines = self.path.read_text(encoding="utf-8").splitlines()
        return [line.strip() for line in lines if _RECORD.match(line)]

    def matches(self, url: str) -> List[int]:
        """Indices of all records for the given URL."""
        needle = f'"{url}"'
        return [idx for idx, record in enumerate(self.records()) if needle in record]

    def find(self, url: str) -> int:
        """Index of the connection for the URL, or -1 if there is none."""
        print_debug(f"Pulse connections file: {self.path}")
        print_debug(f"Searching for VPN URL: {url}")
        found = self.matches(url)
        if len(found) > 1:
            raise VPNEnvironmentError(
                f"Pulse Secure GUI has {len(found)} connections for the VPN: {url}",
                hint=f"Remove the duplicates from {self.path}"
            )
        idx = found[0] if found else -1
        print_debug(f"Index of connection found: {idx}")
        return idx

    def add(self, url: str, name: str = PULSE_CONNECTION_NAME) -> None:
        """Append a connection record for the URL."""
        if not self.path.parent.is_dir():
            raise VPNEnvironmentError(
                f"No Pulse user-specific folder: {self.path.parent}",
                hint="Start the Pulse Secure GUI once to create it"
            )
        record = json.dumps({"connName": name, "preferredCert": "", "baseUrl": url}, ensure_ascii=False)
        print_debug(f"Appending connection: {record}")
        with open(self.path, "a", encoding="utf-8") as file:
            file.write(record + "\n")
        print_plain(f"Appended missing '{name}' connection: {url}")

    def ensure(self, url: str) -> int:
        """Index of the connection for the URL, adding it if missing."""
        idx = self.find(url)
        if idx == -1:
            self.add(url)
            idx = self.find(url)
        if idx == -1:
            raise AutomationDesyncError(f"Pulse Secure GUI does not have a connection for the VPN: {url}")
        return idx


def find_process(name: str) -> Optional[int]:
    """PID of a running process with the given name (like 'pidof')."""
    for proc in psutil.process_iter(["pid", "name"]):
        if proc.info["name"] == name:
            return proc.info["pid"]
    return None


class PulseDriver(BackendDriver):
    """Handles all interactions with the Pulse Secure client."""

    name = "pulse"
    post_start_delay = 4.0
    post_stop_delay = 1.0

    def __init__(self, config: SessionConfig, prober: ConnectivityProber, status: StatusEngine,
                 resolver: CredentialResolver, window_driver: XdotoolWindowDriver = None,
                 connections: PulseConnections = None, sleep: Callable[[float], None] = time.sleep):
        super().__init__(config, prober, status, resolver)
        self.window_driver = window_driver or XdotoolWindowDriver()
        self.connections = connections or PulseConnections()
        self.sleep = sleep
        self.log_file = self.connections.path.parent / "pulsesvc.log"

    def validate(self) -> None:
        realm = self.config.realm
        token = self.config.token
        if not realm.dual_factor and is_token_enabled(token):
            raise UserInputError(
                f"Passing a --token='{describe_token(token)}' with --realm='{realm.value}' does not make sense"
            )
        if not self.config.gui:
            if realm.dual_factor:
                raise UserInputError(
                    f"Using --realm='{realm.value}' (two-factor authentication; 2FA) "
                    "is not supported when using --no-gui"
                )
            if is_token_enabled(token):
                raise UserInputError(
                    f"Using --token='{describe_token(token)}' suggests two-factor authentication (2FA), "
                    "which is currently not supported when using --no-gui"
                )

    # GUI process

    def gui_pid(self) -> Optional[int]:
        return find_process(PULSE_GUI_PROCESS)

    def is_gui_running(self) -> bool:
        return self.gui_pid() is not None

    def launch_gui(self) -> None:
        """Start the Pulse Secure GUI in the background."""
        if self.is_gui_running():
            print_warning("Pulse Secure GUI is already running")
            return
        executable = shutil.which(PULSE_GUI_PROCESS, path=self._search_path())
        if executable is None:
            raise VPNEnvironmentError(
                f"Pulse Secure GUI '{PULSE_GUI_PROCESS}' not found (in neither PULSEPATH nor PATH)"
            )
        print_info(f"Launching the Pulse Secure GUI ({executable})")
        # stderr is silenced; the GUI emits harmless libsoup warnings
        subprocess.Popen([executable], stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL,
                         start_new_session=True, env=self._environment())

    def close_gui(self) -> None:
        """Close the Pulse Secure GUI (and thereby any GUI-driven connection)."""
        pid = self.gui_pid()
        if pid is None:
            return
        print_debug("Closing Pulse Secure GUI")
        if shutil.which(self.window_driver.executable):
            self.window_driver.kill_windows(PULSE_WINDOW_NAME, pid)
        else:
            success, _ = run_command(["pkill", "-QUIT", PULSE_GUI_PROCESS], check=True, silent=True)
            if success:
                print_debug("Killed Pulse Secure GUI")

    def open_gui(self, force: bool = False) -> None:
        self.ensure_not_connected(force)
        if self.config.dry_run:
            return
        self.launch_gui()

    # Connect / disconnect

    def start(self, force: bool = False) -> None:
        """Connect to the VPN via the Pulse Secure GUI or CLI."""
        self.validate()
        self.ensure_not_connected(force)

        if self.config.gui:
            self._start_gui()
        else:
            self._start_cli()

    def _start_gui(self) -> None:
        # The connections file can only be read safely while the GUI is closed
        if self.is_gui_running():
            self.close_gui()
            self.sleep(self.config.scaled(0.5))
        profile_index = self.connections.ensure(self.config.url)

        credentials = self.resolve_credentials()
        self._announce_token(credentials)

        if shutil.which(self.window_driver.executable) is None:
            raise VPNEnvironmentError(
                "Cannot enter credentials in GUI, because 'xdotool' could not be located"
            )

        script = build_login_script(
            profile_index,
            credentials,
            dual_factor=self.config.realm.dual_factor,
            notification=self.config.notification,
            speed=self.config.speed,
            popup_timeout=self.config.popup_timeout,
        )
        if self.config.dry_run:
            print_plain(f"pulseUi & (automation: {len(script)} steps, connection #{profile_index + 1})")
            return

        self.launch_gui()
        print_plain("Pulse Secure GUI automation:")
        session = AutomationSession(self.window_driver, PULSE_WINDOW_NAME, owner_pid=self.gui_pid(),
                                    sleep=self.sleep)
        session.run(script)

    def build_cli_arguments(self, credentials: Credentials) -> List[str]:
        """Command-line arguments for 'pulsesvc'."""
        args = list(self.config.extras)
        if not self.config.debug:
            args += ["-log-level", "5"]
        if credentials.username:
            args += ["-u", credentials.username]
        args += ["-h", self.config.server, "-r", self.config.realm.value]
        return args

    def _start_cli(self) -> None:
        credentials = self.resolve_credentials()
        args = self.build_cli_arguments(credentials)
        print_debug(f"user: {credentials.username}")
        print_debug(f"pwd: {'<hidden>' if credentials.password else '<not specified>'}")
        print_debug(f"call: pulsesvc {shlex.join(args)}")

        if self.config.dry_run:
            prefix = "echo \"<pwd>\" | " if credentials.password else ""
            print_plain(f"{prefix}pulsesvc {shlex.join(args)} &")
            return

        executable = self._pulsesvc()
        process = subprocess.Popen([executable] + args, stdin=subprocess.PIPE, stdout=subprocess.DEVNULL,
                                   text=True, start_new_session=True, env=self._environment())
        if credentials.password:
            process.stdin.write(credentials.password + "\n")
        process.stdin.close()
        print_debug(f"Started 'pulsesvc' (PID {process.pid})")

    def stop(self, force: bool = False) -> None:
        """Disconnect from the VPN and close the GUI."""
        if not force and not self.status.is_connected():
            self.close_gui()
            raise StateConflictError(f"Already disconnected from the VPN [{self.prober.identity().describe()}]")

        if self.config.dry_run:
            print_plain("pulsesvc -Kill")
            return

        self.close_gui()
        run_command([self._pulsesvc(), "-Kill"], check=False, silent=True, env=self._environment())
        print_debug("Killed local ('pulsesvc') VPN process")

    def _announce_token(self, credentials: Credentials) -> None:
        kind = credentials.token_kind
        if kind is TokenKind.PUSH:
            print_note("Open the Duo Mobile app on your smartphone or tablet to confirm ...")
        elif kind is TokenKind.PHONE_CALL:
            print_note("Be prepared to answer your phone to confirm ...")

    # Diagnostics

    def _search_path(self) -> str:
        return os.pathsep.join([str(self.config.pulse_path), os.environ.get("PATH", "")])

    def _environment(self) -> dict:
        env = dict(os.environ)
        env["PATH"] = self._search_path()
        env["LD_LIBRARY_PATH"] = os.pathsep.join(
            [str(self.config.pulse_path), env.get("LD_LIBRARY_PATH", "")]
        )
        return env

    def _pulsesvc(self) -> str:
        executable = shutil.which("pulsesvc", path=self._search_path())
        if executable is None:
            raise VPNEnvironmentError(
                "Pulse Secure software 'pulsesvc' not found (in neither PULSEPATH nor PATH)"
            )
        return executable

    def version(self) -> str:
        executable = shutil.which("pulsesvc", path=self._search_path())
        if executable is None:
            return "<PLEASE INSTALL>"
        for line in command_output([executable, "--version"]).splitlines():
            if "Release Version" in line:
                return re.sub(r".*:[ ]+", "", line).strip()
        return "<PLEASE INSTALL>"

    def log(self) -> bool:
        print_info(f"Displaying log file: {self.log_file}")
        if not self.log_file.is_file():
            print_warning(f"No such log file: {self.log_file}")
            return False
        print_plain(self.log_file.read_text(errors="replace"))
        return True

    def troubleshoot(self) -> None:
        print_info(f"Assumed path to Pulse Secure (PULSEPATH): {self.config.pulse_path}")
        executable = self._pulsesvc()
        print_plain(executable)
        print_info(f"Pulse Secure software: {self.version()}")

        config_home = self.connections.path.parent
        if not config_home.is_dir():
            raise VPNEnvironmentError(f"No Pulse user-specific folder: {config_home}")
        print_info(f"Pulse user configuration folder: {config_home}")

        if not self.connections.path.is_file():
            raise VPNEnvironmentError(f"No Pulse GUI connection file: {self.connections.path}")
        print_info(f"Pulse connections file: {self.connections.path}")

        records = self.connections.records()
        matching = self.connections.matches(self.config.url)
        print_info(f"Number of connections: {len(records)}")
        for idx, record in enumerate(records):
            prefix = ">>>" if idx in matching else "   "
            print_plain(f" {prefix} {idx + 1}. {record}")
        if matching:
            print_info(f"Found connection with URL of interest: {self.config.url}")
        else:
            print_warning(f"No connection with URL of interest: {self.config.url}")

        if not self.log_file.is_file():
            raise VPNEnvironmentError(f"No log file: {self.log_file}")
        print_info(f"Log file: {self.log_file}")
        errors = [line for line in self.log_file.read_text(errors="replace").splitlines() if "Error" in line]
        if not errors:
            print_success(f"No errors found: {self.log_file}")
            return
        print_warning("Detected the following errors in the log file:")
        for line in errors[-3:]:
            print_plain(line)
